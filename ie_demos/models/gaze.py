"""
Gaze estimation chain: face detection, facial landmarks, head pose and gaze.

Each estimator reads a frame together with the FaceInferenceResults filled
in so far and adds its own fields.
"""

import math
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import cv2
import numpy as np

from ..utils.drawing import FACE_COLOR, draw_arrow, draw_box, put_text_lines
from ..utils.errors import ModelLoadError, ModelOutputError, OutputError, handle_exceptions
from ..utils.images import resize_to_network
from ..utils.logging import get_logger
from .results import BoundingBox, FaceInferenceResults, HeadPoseAngles, ModelInfo


def crop_with_border(image: np.ndarray, box: BoundingBox) -> np.ndarray:
    """Crop a box, replicating edge pixels where it extends past the frame."""
    rows, cols = image.shape[:2]
    top = max(0, -box.y)
    left = max(0, -box.x)
    bottom = max(0, box.y2 - rows)
    right = max(0, box.x2 - cols)
    crop = image[max(box.y, 0):min(box.y2, rows), max(box.x, 0):min(box.x2, cols)]
    if top or left or bottom or right:
        if crop.size == 0:
            return np.zeros((box.height, box.width) + image.shape[2:], dtype=image.dtype)
        crop = cv2.copyMakeBorder(crop, top, bottom, left, right, cv2.BORDER_REPLICATE)
    return crop


def rotate_around_center(image: np.ndarray, angle: float) -> np.ndarray:
    rows, cols = image.shape[:2]
    matrix = cv2.getRotationMatrix2D((cols / 2.0, rows / 2.0), angle, 1.0)
    return cv2.warpAffine(image, matrix, (cols, rows), borderMode=cv2.BORDER_REPLICATE)


class BaseEstimator(ABC):
    """Estimator that refines the results of one detected face."""

    model_type = "Estimator"

    def __init__(self, engine, model_path: str, device: Optional[str] = None):
        self.logger = get_logger(__name__)
        self.model_path = model_path
        self.network = engine.load_network(model_path, device, model_type=self.model_type)
        self.request = self.network.create_infer_request()

    @property
    def info(self) -> ModelInfo:
        return ModelInfo.from_network(self.network, self.model_type)

    def _single_image_input(self):
        if len(self.network.inputs) != 1:
            raise ModelLoadError(
                f"{self.model_type} network should have only one input",
                model_path=self.model_path,
                model_type=self.model_type
            )
        return next(iter(self.network.inputs.values()))

    def _require_outputs(self, names: Sequence[str]) -> None:
        for name in names:
            if name not in self.network.outputs:
                raise ModelLoadError(
                    f"{self.model_type} network has no output named {name}",
                    model_path=self.model_path,
                    model_type=self.model_type
                )

    @abstractmethod
    def estimate(self, image: np.ndarray, results: FaceInferenceResults) -> None:
        """Add this estimator's fields to results."""


class FaceDetector:
    """SSD face detector producing adjusted, square face boxes."""

    model_type = "Face Detection"

    def __init__(self, engine, model_path: str, device: Optional[str] = None, threshold: float = 0.5):
        self.logger = get_logger(__name__)
        self.threshold = threshold
        self.network = engine.load_network(model_path, device, model_type=self.model_type)
        if len(self.network.inputs) != 1 or len(self.network.outputs) != 1:
            raise ModelLoadError(
                "Face detection network should have one input and one output",
                model_path=model_path,
                model_type=self.model_type
            )
        self.input_info = next(iter(self.network.inputs.values()))
        self.output_name = next(iter(self.network.outputs))
        self.request = self.network.create_infer_request()

    @property
    def info(self) -> ModelInfo:
        return ModelInfo.from_network(self.network, self.model_type)

    @staticmethod
    def adjust_box(x: float, y: float, width: float, height: float) -> BoundingBox:
        """Widen the raw detection and make it square around the same centre."""
        x -= 0.067 * width
        y -= 0.028 * height
        width += 0.15 * width
        height += 0.13 * height

        if width < height:
            dx = height - width
            x -= dx / 2
            width += dx
        else:
            dy = width - height
            y -= dy / 2
            height += dy

        return BoundingBox(int(round(x)), int(round(y)), int(round(width)), int(round(height)))

    def detect(self, image: np.ndarray) -> List[FaceInferenceResults]:
        """Detect faces in a BGR frame."""
        blob = resize_to_network(image, self.input_info.height, self.input_info.width)
        output = self.request.infer({self.input_info.name: blob})[self.output_name]
        if output.shape[-1] != 7:
            raise ModelOutputError(f"Face detection output must have 7 values per box, got shape {output.shape}", output_name=self.output_name)

        rows, cols = image.shape[:2]
        faces: List[FaceInferenceResults] = []
        for detection in output.reshape(-1, 7):
            image_id, _, confidence = detection[:3]
            if image_id < 0:
                break
            if confidence <= self.threshold:
                continue

            x_min, y_min, x_max, y_max = detection[3:7]
            if x_max <= x_min or y_max <= y_min:
                continue
            box = self.adjust_box(
                x_min * cols, y_min * rows,
                (x_max - x_min) * cols, (y_max - y_min) * rows
            ).clip(cols, rows)
            if box.is_empty:
                continue
            faces.append(FaceInferenceResults(face_box=box, face_confidence=float(confidence)))
        return faces


class LandmarksEstimator(BaseEstimator):
    """35-point facial landmarks regression."""

    model_type = "Facial Landmarks Estimation"

    def __init__(self, engine, model_path: str, device: Optional[str] = None):
        super().__init__(engine, model_path, device)
        self.input_info = self._single_image_input()
        self.output_name = next(iter(self.network.outputs))

    def estimate(self, image: np.ndarray, results: FaceInferenceResults) -> None:
        box = results.face_box
        face = crop_with_border(image, box)
        blob = resize_to_network(face, self.input_info.height, self.input_info.width)
        output = self.request.infer({self.input_info.name: blob})[self.output_name].ravel()
        if output.size < 8 or output.size % 2:
            raise ModelOutputError(f"Unexpected landmarks output size {output.size}", output_name=self.output_name)

        points = output.reshape(-1, 2)
        results.landmarks = [
            (box.x + float(px) * box.width, box.y + float(py) * box.height) for px, py in points
        ]


class HeadPoseEstimator(BaseEstimator):
    """Yaw, pitch and roll of a face, in degrees."""

    model_type = "Head Pose Estimation"
    OUTPUTS = ("angle_y_fc", "angle_p_fc", "angle_r_fc")

    def __init__(self, engine, model_path: str, device: Optional[str] = None):
        super().__init__(engine, model_path, device)
        self.input_info = self._single_image_input()
        self._require_outputs(self.OUTPUTS)

    def estimate(self, image: np.ndarray, results: FaceInferenceResults) -> None:
        face = crop_with_border(image, results.face_box)
        blob = resize_to_network(face, self.input_info.height, self.input_info.width)
        outputs = self.request.infer({self.input_info.name: blob})
        yaw, pitch, roll = (float(outputs[name].ravel()[0]) for name in self.OUTPUTS)
        results.head_pose = HeadPoseAngles(yaw=yaw, pitch=pitch, roll=roll)


class GazeEstimator(BaseEstimator):
    """Gaze direction from both eye crops and the head pose."""

    model_type = "Gaze Estimation"
    LEFT_EYE_INPUT = "left_eye_image"
    RIGHT_EYE_INPUT = "right_eye_image"
    HEAD_POSE_INPUT = "head_pose_angles"
    OUTPUT = "gaze_vector"

    def __init__(self, engine, model_path: str, device: Optional[str] = None,
                 roll_align: bool = True, eye_box_scale: float = 1.8):
        super().__init__(engine, model_path, device)
        self.roll_align = roll_align
        self.eye_box_scale = eye_box_scale
        for name in (self.LEFT_EYE_INPUT, self.RIGHT_EYE_INPUT, self.HEAD_POSE_INPUT):
            if name not in self.network.inputs:
                raise ModelLoadError(
                    f"Gaze estimation network has no input named {name}",
                    model_path=model_path,
                    model_type=self.model_type
                )
        self._require_outputs([self.OUTPUT])
        self.eye_input = self.network.inputs[self.LEFT_EYE_INPUT]

    def eye_box(self, corner_a, corner_b) -> BoundingBox:
        """Square centred between two eye corners, scaled from their distance."""
        mid_x = (corner_a[0] + corner_b[0]) / 2
        mid_y = (corner_a[1] + corner_b[1]) / 2
        side = self.eye_box_scale * math.hypot(corner_b[0] - corner_a[0], corner_b[1] - corner_a[1])
        return BoundingBox(int(round(mid_x - side / 2)), int(round(mid_y - side / 2)), int(round(side)), int(round(side)))

    def _eye_blob(self, image: np.ndarray, box: BoundingBox, roll: float) -> np.ndarray:
        eye = crop_with_border(image, box)
        if eye.size == 0:
            eye = np.zeros((self.eye_input.height, self.eye_input.width, 3), dtype=np.uint8)
        if self.roll_align:
            eye = rotate_around_center(eye, roll)
        return resize_to_network(eye, self.eye_input.height, self.eye_input.width)

    def estimate(self, image: np.ndarray, results: FaceInferenceResults) -> None:
        if len(results.landmarks) < 4 or results.head_pose is None:
            raise ModelOutputError("Gaze estimation needs landmarks and head pose for the face")

        points = results.landmarks
        results.left_eye_box = self.eye_box(points[0], points[1])
        results.right_eye_box = self.eye_box(points[2], points[3])
        results.left_eye_midpoint = results.left_eye_box.center
        results.right_eye_midpoint = results.right_eye_box.center

        pose = results.head_pose
        roll = pose.roll
        angles = np.array([[pose.yaw, pose.pitch, 0.0 if self.roll_align else roll]], dtype=np.float32)
        inputs: Dict[str, np.ndarray] = {
            self.LEFT_EYE_INPUT: self._eye_blob(image, results.left_eye_box, roll),
            self.RIGHT_EYE_INPUT: self._eye_blob(image, results.right_eye_box, roll),
            self.HEAD_POSE_INPUT: angles,
        }
        vector = self.request.infer(inputs)[self.OUTPUT].ravel()[:3].astype(np.float64)
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm

        x, y, z = vector
        if self.roll_align:
            radians = math.radians(roll)
            cs, sn = math.cos(radians), math.sin(radians)
            x, y = x * cs + y * sn, -x * sn + y * cs

        results.gaze_vector = (float(x), float(y), float(z))
        results.gaze_yaw = math.degrees(math.atan2(x, -z))
        results.gaze_pitch = math.degrees(math.asin(max(-1.0, min(1.0, y))))


@handle_exceptions(OutputError)
def render_gaze(image: np.ndarray, faces: Sequence[FaceInferenceResults], arrow_scale: float = 0.4) -> np.ndarray:
    """Draw face boxes, gaze arrows and angle text on a copy of the frame."""
    output = image.copy()
    lines = []
    for face in faces:
        draw_box(output, face.face_box.as_corners(), FACE_COLOR)
        if face.gaze_vector is not None:
            length = arrow_scale * face.face_box.width
            gaze_xy = face.gaze_vector[:2]
            for midpoint in (face.left_eye_midpoint, face.right_eye_midpoint):
                if midpoint is not None:
                    draw_arrow(output, midpoint, gaze_xy, length)
        if face.head_pose is not None:
            pose = face.head_pose
            line = f"Head pose: yaw={pose.yaw:.1f} pitch={pose.pitch:.1f} roll={pose.roll:.1f}"
            if face.gaze_yaw is not None:
                line += f"; gaze: yaw={face.gaze_yaw:.1f} pitch={face.gaze_pitch:.1f}"
            lines.append(line)
    put_text_lines(output, lines)
    return output
