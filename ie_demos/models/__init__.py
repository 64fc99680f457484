"""
Model wrappers for the inference demos.

Each wrapper compiles its network through the inference engine, fills input
tensors and decodes the fixed-layout output tensors into result records.
"""

from .results import (
    BoundingBox,
    ClassificationResult,
    InstanceDetection,
    HeadPoseAngles,
    FaceInferenceResults,
    RecognizedFace,
    ModelInfo
)
from .classification import ClassificationModel, load_labels
from .segmentation import MaskRCNNModel
from .gaze import BaseEstimator, FaceDetector, LandmarksEstimator, HeadPoseEstimator, GazeEstimator
from .cnn import CnnBase, VectorCNN
from .reid import EmbeddingsGallery, cosine_distance

__all__ = [
    'BoundingBox',
    'ClassificationResult',
    'InstanceDetection',
    'HeadPoseAngles',
    'FaceInferenceResults',
    'RecognizedFace',
    'ModelInfo',
    'ClassificationModel',
    'load_labels',
    'MaskRCNNModel',
    'BaseEstimator',
    'FaceDetector',
    'LandmarksEstimator',
    'HeadPoseEstimator',
    'GazeEstimator',
    'CnnBase',
    'VectorCNN',
    'EmbeddingsGallery',
    'cosine_distance'
]
