#!/usr/bin/env python3
"""
Gaze Estimation Example - Camera or Video Input

This example demonstrates:
- Building the application configuration in code
- Running the face / landmarks / head pose / gaze chain frame by frame
- Reading per-face results and the metrics report

Usage:
    python examples/gaze_from_camera.py --models models/ --source 0
    python examples/gaze_from_camera.py --models models/ --source video.mp4 --frames 100
"""

import sys
from pathlib import Path

import click

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ie_demos.config import AppConfig, load_config
from ie_demos.pipelines import GazePipeline
from ie_demos.utils.errors import DemoError
from ie_demos.utils.logging import LoggingConfig, LogLevel, setup_logging

MODEL_FILES = {
    'face': "face-detection-retail-0004.xml",
    'landmarks': "facial-landmarks-35-adas-0002.xml",
    'head_pose': "head-pose-estimation-adas-0001.xml",
    'gaze': "gaze-estimation-adas-0002.xml",
}


def gaze_example(models_dir: str, source: str, frames: int, device: str = None, config_path: str = None):
    """
    Run the gaze demo on a camera or video.

    Args:
        models_dir: Directory holding the four IR models
        source: Camera index, video file, image or directory
        frames: Number of frames to process
        device: Optional device override
        config_path: Optional configuration file path
    """
    print("=== Gaze Estimation Example ===\n")

    setup_logging(LoggingConfig(level=LogLevel.INFO))

    if config_path:
        print(f"Loading configuration from: {config_path}")
        config = load_config(config_path)
    else:
        print("Using default configuration")
        config = AppConfig(
            name="Gaze Example",
            engine={'device': device or "CPU"},
            gaze={'face_threshold': 0.6, 'roll_align': True},
            output={'output_dir': "gaze_output", 'max_frames': frames}
        )

    paths = {name: str(Path(models_dir) / file_name) for name, file_name in MODEL_FILES.items()}
    for name, path in paths.items():
        print(f"  {name}: {path}")

    pipeline = GazePipeline(
        config, paths['face'], paths['landmarks'], paths['head_pose'], paths['gaze'], device=device
    )
    print("✓ Networks compiled successfully\n")

    report = pipeline.run(source)

    for entry in report.results:
        for face in entry['faces']:
            if face['gaze_yaw'] is None:
                continue
            print(f"Frame {entry['frame']}: gaze yaw={face['gaze_yaw']:.1f} pitch={face['gaze_pitch']:.1f}")

    print(f"\n=== Final Statistics ===")
    print(f"Frames: {report.frames}")
    print(f"Latency: {report.latency_ms:.1f} ms")
    print(f"FPS: {report.fps:.1f}")
    print(f"Images written: {len(report.outputs)}")


@click.command()
@click.option('--models', '-m', 'models_dir', required=True, type=click.Path(exists=True, file_okay=False),
              help='Directory with the face, landmarks, head pose and gaze models')
@click.option('--source', '-s', default="0", help='Camera index, video file, image or directory')
@click.option('--frames', '-n', type=int, default=50, help='Number of frames to process')
@click.option('--device', '-d', default=None, help='Target device')
@click.option('--config', '-c', type=click.Path(exists=True), help='Configuration file path')
def main(models_dir, source, frames, device, config):
    """
    Gaze Estimation Example

    Estimate head pose and gaze direction for every face in a camera stream.
    """
    try:
        gaze_example(models_dir, source, frames, device, config)
    except KeyboardInterrupt:
        print("\nExample terminated by user")
    except DemoError as e:
        print(f"\nExample failed: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
