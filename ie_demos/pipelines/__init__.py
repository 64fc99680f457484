"""
Demo pipelines: one per demo, sharing the DemoPipeline base.
"""

from .base import DemoPipeline, DemoReport
from .classification import ClassificationPipeline
from .segmentation import SegmentationPipeline
from .gaze import GazePipeline
from .classroom import ClassroomPipeline

__all__ = [
    'DemoPipeline',
    'DemoReport',
    'ClassificationPipeline',
    'SegmentationPipeline',
    'GazePipeline',
    'ClassroomPipeline'
]
