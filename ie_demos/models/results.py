"""
Result records produced by the model wrappers.

Records are built per inference from decoded output tensors, consumed by the
renderers and the CLI report, then discarded.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in absolute pixel coordinates.

    x and y are the top-left corner; width and height are never negative.
    """
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        if self.width < 0:
            raise ValueError(f"width must be non-negative, got {self.width}")
        if self.height < 0:
            raise ValueError(f"height must be non-negative, got {self.height}")

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_corners(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.x2, self.y2

    def clip(self, frame_width: int, frame_height: int) -> 'BoundingBox':
        """Intersect with the frame rectangle."""
        x1 = min(max(self.x, 0), frame_width)
        y1 = min(max(self.y, 0), frame_height)
        x2 = min(max(self.x2, 0), frame_width)
        y2 = min(max(self.y2, 0), frame_height)
        return BoundingBox(x1, y1, max(x2 - x1, 0), max(y2 - y1, 0))

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class ClassificationResult:
    """One of the top-K classes for an image."""
    class_id: int
    label: str
    probability: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InstanceDetection:
    """A detected object instance with its soft segmentation mask."""
    batch_index: int
    class_id: int
    probability: float
    box: BoundingBox
    mask: Optional[np.ndarray] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'batch_index': self.batch_index,
            'class_id': self.class_id,
            'probability': self.probability,
            'box': self.box.to_dict(),
        }


@dataclass(frozen=True)
class HeadPoseAngles:
    """Head pose in degrees."""
    yaw: float
    pitch: float
    roll: float


@dataclass
class FaceInferenceResults:
    """
    Per-face results accumulated by the gaze estimation chain.

    Each estimator fills in its own fields and reads the ones filled in by
    the estimators that ran before it.
    """
    face_box: BoundingBox
    face_confidence: float = 0.0
    landmarks: List[Tuple[float, float]] = field(default_factory=list)
    left_eye_box: Optional[BoundingBox] = None
    right_eye_box: Optional[BoundingBox] = None
    left_eye_midpoint: Optional[Tuple[float, float]] = None
    right_eye_midpoint: Optional[Tuple[float, float]] = None
    head_pose: Optional[HeadPoseAngles] = None
    gaze_vector: Optional[Tuple[float, float, float]] = None
    gaze_yaw: Optional[float] = None
    gaze_pitch: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'face_box': self.face_box.to_dict(),
            'face_confidence': self.face_confidence,
            'head_pose': asdict(self.head_pose) if self.head_pose else None,
            'gaze_vector': list(self.gaze_vector) if self.gaze_vector else None,
            'gaze_yaw': self.gaze_yaw,
            'gaze_pitch': self.gaze_pitch,
        }


@dataclass
class RecognizedFace:
    """A detected face matched against the identity gallery."""
    box: BoundingBox
    confidence: float
    identity: str
    distance: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'box': self.box.to_dict(),
            'confidence': self.confidence,
            'identity': self.identity,
            'distance': self.distance,
        }


@dataclass
class ModelInfo:
    """Description of a compiled network for reports."""
    model_type: str
    model_path: str
    device: str
    batch_size: int
    inputs: Dict[str, Tuple[int, ...]] = field(default_factory=dict)
    outputs: Dict[str, Tuple[int, ...]] = field(default_factory=dict)

    @classmethod
    def from_network(cls, network, model_type: str) -> 'ModelInfo':
        return cls(
            model_type=model_type,
            model_path=network.model_path,
            device=network.device,
            batch_size=network.batch_size,
            inputs={name: info.shape for name, info in network.inputs.items()},
            outputs={name: info.shape for name, info in network.outputs.items()},
        )
