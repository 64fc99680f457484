#!/usr/bin/env python3
"""
Inference Engine Demos - command line interface

Runs the demo applications (classification, Mask R-CNN, gaze estimation and
smart classroom) on top of OpenVINO Runtime and reports their results.

Usage:
    python main.py --help
    python main.py classify -m model.xml -i images/ --labels labels.txt
    python main.py mask-rcnn -m mask_rcnn.xml -i street.png
    python main.py devices
    python main.py validate-config config/default.yaml
"""

import platform
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import click
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from ie_demos import __version__
from ie_demos.config import (
    AppConfig,
    ConfigManager,
    create_default_config,
    validate_config_file,
)
from ie_demos.models import ModelInfo
from ie_demos.pipelines import (
    ClassificationPipeline,
    ClassroomPipeline,
    DemoReport,
    GazePipeline,
    SegmentationPipeline,
)
from ie_demos.utils.engine import InferenceEngine, get_version_string
from ie_demos.utils.errors import DemoError, handle_error
from ie_demos.utils.logging import LoggingConfig, get_logger, setup_logging


# Global console for rich output
console = Console()


class CLIContext:
    """CLI context for passing state between commands."""

    def __init__(self):
        self.config_path: Optional[str] = None
        self.config_manager: Optional[ConfigManager] = None
        self.verbose: bool = False
        self.quiet: bool = False
        self.log_level: Optional[str] = None


# Global CLI context
cli_context = CLIContext()


def create_engine(config: AppConfig):
    """Create the inference engine for a demo run."""
    return InferenceEngine(config.engine)


def fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


def apply_logging(config: AppConfig) -> None:
    setup_logging(LoggingConfig.from_settings(config.logging))


def configure(updates: Dict[str, Any]) -> AppConfig:
    """Merge command-line flags into the loaded configuration; logging follows every change."""
    manager = cli_context.config_manager
    if manager is None:
        manager = ConfigManager()
        cli_context.config_manager = manager

    if cli_context.log_level:
        updates.setdefault('logging', {})['level'] = cli_context.log_level.lower()
    elif cli_context.verbose:
        updates.setdefault('logging', {})['level'] = 'debug'

    manager.add_watcher(apply_logging)
    return manager.update_config(updates)


def execute_demo(updates: Dict[str, Any], build: Callable[[AppConfig, Any], Any], *run_args, **run_kwargs) -> DemoReport:
    """Build a pipeline and run it, exiting with code 1 on any error."""
    logger = get_logger("ie_demos.cli")
    try:
        config = configure(updates)
        engine = create_engine(config)
        pipeline = build(config, engine)
        networks = pipeline.describe_models()
        report = pipeline.run(*run_args, **run_kwargs)
    except Exception as e:
        error = handle_error(e, {'command': click.get_current_context().info_name})
        logger.debug("Demo failed", **error.to_dict())
        fail(error.message)

    if cli_context.verbose and not cli_context.quiet:
        show_networks(networks)
    show_report(report)
    return report


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False),
              help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True,
              help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True,
              help='Suppress non-essential output')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              default=None, help='Set logging level')
@click.version_option(version=__version__, prog_name='ie-demos')
def cli(config, verbose, quiet, log_level):
    """
    Inference Engine Demos

    Classification, instance segmentation, gaze estimation and face
    re-identification demos running on OpenVINO Runtime.
    """
    cli_context.config_path = config
    cli_context.verbose = verbose
    cli_context.quiet = quiet
    cli_context.log_level = log_level

    try:
        cli_context.config_manager = ConfigManager(config)
    except DemoError as e:
        fail(e.message)

    if verbose and not quiet:
        console.print("[blue]Inference Engine Demos[/blue]")
        if config:
            console.print(f"Config file: {config}")
        for name, value in cli_context.config_manager.get_environment_overrides().items():
            console.print(f"Environment override: {name}={value}")


def engine_options(func):
    """Options shared by every demo that runs networks."""
    options = [
        click.option('--device', '-d', default=None,
                     help='Target device (CPU, GPU, NPU, AUTO, HETERO:...)'),
        click.option('--cpu-extension', '-l', type=click.Path(exists=True, dir_okay=False), default=None,
                     help='Engine extension library with custom layers'),
        click.option('--plugin-config', type=click.Path(exists=True, dir_okay=False), default=None,
                     help='YAML/JSON file with device properties'),
        click.option('--output-dir', '-o', type=click.Path(file_okay=False), default=None,
                     help='Directory for rendered images'),
        click.option('--no-save', is_flag=True, help='Do not write rendered images'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def engine_updates(device, cpu_extension, plugin_config, output_dir, no_save) -> Dict[str, Any]:
    return {
        'engine': {
            'device': device,
            'cpu_extension': cpu_extension,
            'plugin_config': plugin_config,
        },
        'output': {
            'output_dir': output_dir,
            'save_images': False if no_save else None,
        },
    }


model_path = click.Path(exists=True, dir_okay=False)


@cli.command()
@click.option('--model', '-m', type=model_path, required=True, help='Classification model (.xml or .onnx)')
@click.option('--input', '-i', 'inputs', multiple=True, required=True, help='Image files or directories')
@click.option('--labels', type=click.Path(exists=True, dir_okay=False), default=None, help='Labels file')
@click.option('--top-k', type=int, default=None, help='Number of top results')
@click.option('--softmax', type=click.Choice(['auto', 'always', 'never']), default=None,
              help='When to apply softmax to the scores')
@click.option('--batch-size', '-b', type=int, default=None, help='Network batch size')
@engine_options
def classify(model, inputs, labels, top_k, softmax, batch_size, **engine_flags):
    """Classify images and print the top-K classes."""
    updates = engine_updates(**engine_flags)
    updates['classification'] = {
        'labels_file': labels,
        'top_k': top_k,
        'softmax': softmax,
        'batch_size': batch_size,
    }
    execute_demo(
        updates,
        lambda config, engine: ClassificationPipeline(config, model, engine, config.engine.device),
        list(inputs)
    )


@cli.command(name='mask-rcnn')
@click.option('--model', '-m', type=model_path, required=True, help='Mask R-CNN model (.xml or .onnx)')
@click.option('--input', '-i', 'inputs', multiple=True, required=True, help='Image files or directories')
@click.option('--batch-size', '-b', type=int, default=None, help='Network batch size')
@click.option('--detection-output-name', default=None, help='Detection output tensor name')
@click.option('--masks-name', default=None, help='Masks output tensor name')
@click.option('--probability-threshold', '-t', type=float, default=None, help='Minimum detection probability')
@engine_options
def mask_rcnn(model, inputs, batch_size, detection_output_name, masks_name, probability_threshold, **engine_flags):
    """Segment object instances and write out{i}.png composites."""
    updates = engine_updates(**engine_flags)
    updates['segmentation'] = {
        'detection_output_name': detection_output_name,
        'masks_name': masks_name,
        'probability_threshold': probability_threshold,
    }
    execute_demo(
        updates,
        lambda config, engine: SegmentationPipeline(config, model, engine, config.engine.device, batch_size),
        list(inputs)
    )


@cli.command()
@click.option('--input', '-i', 'source', required=True, help='Image, directory, video file or camera index')
@click.option('--model', '-m', type=model_path, required=True, help='Gaze estimation model')
@click.option('--face-model', type=model_path, required=True, help='Face detection model')
@click.option('--landmarks-model', type=model_path, required=True, help='Facial landmarks model')
@click.option('--head-pose-model', type=model_path, required=True, help='Head pose estimation model')
@click.option('--face-threshold', '-t', type=float, default=None, help='Face detection confidence threshold')
@click.option('--roll-align/--no-roll-align', default=None, help='Align eye crops by head roll')
@click.option('--loop', is_flag=True, help='Restart the input when it ends')
@click.option('--max-frames', type=int, default=None, help='Stop after this many frames')
@engine_options
def gaze(source, model, face_model, landmarks_model, head_pose_model, face_threshold, roll_align,
         loop, max_frames, **engine_flags):
    """Estimate head pose and gaze direction for every face."""
    updates = engine_updates(**engine_flags)
    updates['gaze'] = {'face_threshold': face_threshold, 'roll_align': roll_align}
    updates['output']['max_frames'] = max_frames
    execute_demo(
        updates,
        lambda config, engine: GazePipeline(
            config, face_model, landmarks_model, head_pose_model, model, engine, config.engine.device
        ),
        source,
        loop=loop
    )


@cli.command()
@click.option('--input', '-i', 'source', required=True, help='Image, directory, video file or camera index')
@click.option('--face-model', type=model_path, required=True, help='Face detection model')
@click.option('--reid-model', type=model_path, required=True, help='Face re-identification model')
@click.option('--gallery', multiple=True, required=True, help='Gallery images or directories (file name = identity)')
@click.option('--reid-threshold', type=float, default=None, help='Maximum cosine distance for a match')
@click.option('--max-batch-size', type=int, default=None, help='Re-identification batch size')
@click.option('--loop', is_flag=True, help='Restart the input when it ends')
@click.option('--max-frames', type=int, default=None, help='Stop after this many frames')
@engine_options
def classroom(source, face_model, reid_model, gallery, reid_threshold, max_batch_size, loop, max_frames,
              **engine_flags):
    """Recognize people from a face gallery."""
    updates = engine_updates(**engine_flags)
    updates['classroom'] = {'reid_threshold': reid_threshold, 'max_batch_size': max_batch_size}
    updates['output']['max_frames'] = max_frames
    execute_demo(
        updates,
        lambda config, engine: ClassroomPipeline(
            config, face_model, reid_model, list(gallery), engine, config.engine.device
        ),
        source,
        loop=loop
    )


@cli.command()
def devices():
    """List the devices the inference engine can use."""
    try:
        config = configure({})
        engine = create_engine(config)
        available = engine.available_devices
    except Exception as e:
        fail(handle_error(e).message)

    table = Table(title="Available Devices")
    table.add_column("Device", style="cyan")
    for device in available:
        table.add_row(device)
    console.print(table)


@cli.command()
@click.argument('config_file', type=click.Path())
def validate_config(config_file):
    """Validate a configuration file."""
    console.print(f"[blue]Validating configuration: {config_file}[/blue]")

    if not Path(config_file).exists():
        fail(f"Configuration file not found: {config_file}")

    errors = validate_config_file(config_file)
    if errors:
        console.print(f"[red]Configuration validation failed with {len(errors)} errors:[/red]")
        for error in errors:
            console.print(f"  • {error}")
        sys.exit(1)

    console.print("[green]✓ Configuration is valid[/green]")
    if not cli_context.quiet:
        show_config_summary(ConfigManager(config_file).get_config())


@cli.command()
@click.argument('output_file', type=click.Path(dir_okay=False))
@click.option('--force', '-f', is_flag=True, help='Overwrite an existing file')
def create_config(output_file, force):
    """Create a default configuration file."""
    if Path(output_file).exists() and not force:
        if not Confirm.ask(f"Configuration file {output_file} already exists. Overwrite?"):
            return

    try:
        config = create_default_config(output_file)
    except DemoError as e:
        fail(e.message)

    console.print(f"[green]✓ Configuration created: {output_file}[/green]")
    if not cli_context.quiet:
        console.print("[blue]Configuration summary:[/blue]")
        show_config_summary(config)


@cli.command()
def version():
    """Show version information."""
    import cv2
    import numpy

    version_info = {
        "ie-demos": __version__,
        "Python": platform.python_version(),
        "Platform": sys.platform,
        "OpenVINO": get_version_string(),
        "OpenCV": cv2.__version__,
        "NumPy": numpy.__version__,
    }

    table = Table(title="Version Information")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    for component, component_version in version_info.items():
        table.add_row(component, component_version)

    console.print(table)


def show_config_summary(config: AppConfig):
    """Display configuration summary."""
    table = Table(title="Configuration Summary")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Name", config.name)
    table.add_row("Version", config.version)
    table.add_row("Environment", config.environment)
    table.add_row("Device", config.engine.device)
    table.add_row("Output Directory", config.output.output_dir)
    table.add_row("Top K", str(config.classification.top_k))
    table.add_row("Mask Probability Threshold", str(config.segmentation.probability_threshold))
    table.add_row("Face Threshold", str(config.gaze.face_threshold))
    table.add_row("Re-ID Threshold", str(config.classroom.reid_threshold))
    table.add_row("Log Level", config.logging.level.value)

    console.print(table)


def show_networks(networks: List[ModelInfo]):
    """Display the compiled networks of a demo."""
    table = Table(title="Networks")
    table.add_column("Model", style="cyan")
    table.add_column("Path")
    table.add_column("Device", style="green")
    table.add_column("Batch")

    for info in networks:
        table.add_row(info.model_type, info.model_path, info.device, str(info.batch_size))

    console.print(table)


def _result_rows(report: DemoReport):
    if report.demo == "classification":
        for entry in report.results:
            for result in entry['top']:
                yield entry['image'], str(result['class_id']), result['label'], f"{result['probability']:.4f}"
    elif report.demo == "mask_rcnn":
        for entry in report.results:
            box = entry['box']
            yield (entry['image'], str(entry['class_id']), f"{entry['probability']:.4f}",
                   f"[{box['x']}, {box['y']}, {box['width']}, {box['height']}]")
    else:
        for entry in report.results:
            faces = entry['faces']
            if report.demo == "classroom":
                summary = ", ".join(face['identity'] for face in faces)
            else:
                summary = ", ".join(
                    f"gaze yaw={face['gaze_yaw']:.1f} pitch={face['gaze_pitch']:.1f}"
                    for face in faces if face['gaze_yaw'] is not None
                )
            yield str(entry['frame']), str(len(faces)), summary or "-"


RESULT_COLUMNS = {
    "classification": ("Image", "Class", "Label", "Probability"),
    "mask_rcnn": ("Image", "Class", "Probability", "Box"),
    "gaze": ("Frame", "Faces", "Gaze"),
    "classroom": ("Frame", "Faces", "Identities"),
}


def show_report(report: DemoReport):
    """Display demo results and the metrics report."""
    if not cli_context.quiet:
        table = Table(title="Results")
        for column in RESULT_COLUMNS.get(report.demo, ("Result",)):
            table.add_column(column)
        for row in _result_rows(report):
            table.add_row(*row)
        console.print(table)

        for output in report.outputs:
            console.print(f"Image {output} created")

    console.print("Metrics report:")
    console.print(f"\tLatency: {report.latency_ms:.1f} ms")
    if report.frames > 1:
        console.print(f"\tFPS: {report.fps:.1f}")


def main():
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(0)


if __name__ == '__main__':
    main()
