"""
Smart classroom demo: face detection and gallery re-identification.
"""

import time
from typing import List, Optional, Sequence

import numpy as np

from ..models.cnn import VectorCNN
from ..models.gaze import FaceDetector, crop_with_border
from ..models.reid import UNKNOWN_IDENTITY, EmbeddingsGallery
from ..models.results import RecognizedFace
from ..utils.drawing import FACE_COLOR, TEXT_COLOR, draw_box, put_text_lines
from ..utils.errors import OutputError, handle_exceptions
from ..utils.images import FrameSource, iterate_frames
from ..utils.logging import performance_context
from .base import DemoPipeline, DemoReport


@handle_exceptions(OutputError)
def render_recognized(image: np.ndarray, faces: Sequence[RecognizedFace]) -> np.ndarray:
    output = image.copy()
    for face in faces:
        color = TEXT_COLOR if face.identity == UNKNOWN_IDENTITY else FACE_COLOR
        draw_box(output, face.box.as_corners(), color, 2)
        put_text_lines(output, [face.identity], (face.box.x, max(face.box.y - 5, 12)), color)
    return output


class ClassroomPipeline(DemoPipeline):
    """Recognizes known people in frames against a gallery of face images."""

    name = "classroom"

    def __init__(
        self,
        config,
        face_model: str,
        reid_model: str,
        gallery: Sequence[str],
        engine=None,
        device: Optional[str] = None
    ):
        super().__init__(config, engine, device)
        settings = config.classroom
        self.face_detector = FaceDetector(self.engine, face_model, device, settings.face_threshold)
        self.reid = VectorCNN(self.engine, reid_model, device, max_batch_size=settings.max_batch_size)
        with performance_context("gallery_load"):
            self.gallery = EmbeddingsGallery(self.reid, settings.reid_threshold).load(gallery)

    @property
    def models(self):
        return [self.face_detector, self.reid]

    def recognize(self, frame: np.ndarray) -> List[RecognizedFace]:
        faces = self.face_detector.detect(frame)
        crops = [crop_with_border(frame, face.face_box) for face in faces]
        matches = self.gallery.match(self.reid.compute(crops))
        return [
            RecognizedFace(box=face.face_box, confidence=face.face_confidence, identity=identity, distance=distance)
            for face, (identity, distance) in zip(faces, matches)
        ]

    def run(self, source: FrameSource, loop: bool = False) -> DemoReport:
        results, outputs = [], []
        for frame_index, frame in enumerate(iterate_frames(source, loop)):
            if self._frame_limit_reached(frame_index):
                break

            start = time.perf_counter()
            recognized = self.recognize(frame)
            self.metrics.update(start)

            results.append({'frame': frame_index, 'faces': [face.to_dict() for face in recognized]})
            for face in recognized:
                self.logger.debug(f"Frame {frame_index}: {face.identity} ({face.distance:.3f})")

            if self.config.output.save_images:
                outputs.append(self.save_image(render_recognized(frame, recognized), f"classroom_{frame_index:05d}.png"))

        return self.report(results, outputs)
