"""
Gaze estimation demo.
"""

import time
from typing import Optional

from ..models.gaze import FaceDetector, GazeEstimator, HeadPoseEstimator, LandmarksEstimator, render_gaze
from ..utils.images import FrameSource, iterate_frames
from .base import DemoPipeline, DemoReport


class GazePipeline(DemoPipeline):
    """Per frame: detect faces, then landmarks, head pose and gaze for each face."""

    name = "gaze"

    def __init__(
        self,
        config,
        face_model: str,
        landmarks_model: str,
        head_pose_model: str,
        gaze_model: str,
        engine=None,
        device: Optional[str] = None
    ):
        super().__init__(config, engine, device)
        settings = config.gaze
        self.face_detector = FaceDetector(self.engine, face_model, device, settings.face_threshold)
        # run order matters: gaze reads landmarks and head pose
        self.estimators = [
            LandmarksEstimator(self.engine, landmarks_model, device),
            HeadPoseEstimator(self.engine, head_pose_model, device),
            GazeEstimator(self.engine, gaze_model, device,
                          roll_align=settings.roll_align, eye_box_scale=settings.eye_box_scale),
        ]

    @property
    def models(self):
        return [self.face_detector] + self.estimators

    def run(self, source: FrameSource, loop: bool = False) -> DemoReport:
        results, outputs = [], []
        for frame_index, frame in enumerate(iterate_frames(source, loop)):
            if self._frame_limit_reached(frame_index):
                break

            start = time.perf_counter()
            faces = self.face_detector.detect(frame)
            for face in faces:
                for estimator in self.estimators:
                    estimator.estimate(frame, face)
            self.metrics.update(start)

            results.append({'frame': frame_index, 'faces': [face.to_dict() for face in faces]})
            self.logger.debug(f"Frame {frame_index}: {len(faces)} faces")

            if self.config.output.save_images:
                rendered = render_gaze(frame, faces, self.config.gaze.arrow_scale)
                outputs.append(self.save_image(rendered, f"gaze_{frame_index:05d}.png"))

        return self.report(results, outputs)
