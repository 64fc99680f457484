"""
Shared pipeline plumbing: engine ownership, output writing and reporting.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2
import numpy as np

from ..config import AppConfig
from ..models.results import ModelInfo
from ..monitoring.metrics import PerformanceMetrics
from ..utils.engine import InferenceEngine
from ..utils.errors import OutputError
from ..utils.logging import get_logger, update_metrics


@dataclass
class DemoReport:
    """Outcome of one demo run."""
    demo: str
    results: List[Dict[str, Any]] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    latency_ms: float = 0.0
    fps: float = 0.0
    frames: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'demo': self.demo,
            'results': self.results,
            'outputs': self.outputs,
            'latency_ms': round(self.latency_ms, 2),
            'fps': round(self.fps, 2),
            'frames': self.frames,
        }


class DemoPipeline:
    """
    Base class for the demos.

    Subclasses build their models in __init__ and implement run(), which
    returns a DemoReport.
    """

    name = "demo"

    def __init__(self, config: AppConfig, engine=None, device: Optional[str] = None):
        """
        Args:
            config: Application configuration
            engine: InferenceEngine to compile networks with; created from config when omitted
            device: Device override for every network of the demo
        """
        self.config = config
        self.logger = get_logger(__name__)
        self.engine = engine if engine is not None else InferenceEngine(config.engine)
        self.device = device
        self.metrics = PerformanceMetrics(self.name)
        self.output_dir = Path(config.output.output_dir)

    @property
    def models(self) -> List[Any]:
        """Model wrappers owned by the demo, in run order."""
        return []

    def describe_models(self) -> List[ModelInfo]:
        infos = [model.info for model in self.models]
        for info in infos:
            self.logger.info(f"{info.model_type} network {info.model_path} compiled for {info.device} with batch {info.batch_size}")
        return infos

    def save_image(self, image: np.ndarray, name: str) -> str:
        """
        Write an image into the output directory.

        Raises:
            OutputError: If the directory cannot be created or the image cannot be written
        """
        path = self.output_dir / name
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputError(f"Cannot create output directory {self.output_dir}: {e}",
                              output_path=str(self.output_dir), original_exception=e)

        if not cv2.imwrite(str(path), image):
            raise OutputError(f"Cannot write image {path}", output_path=str(path))

        self.logger.info(f"Image {name} created!")
        return str(path)

    def _frame_limit_reached(self, frame_index: int) -> bool:
        limit = self.config.output.max_frames
        return limit is not None and frame_index >= limit

    def report(self, results: List[Dict[str, Any]], outputs: List[str]) -> DemoReport:
        total = self.metrics.get_total()
        update_metrics(latency_ms=total.latency_ms, frames=total.frames)
        self.logger.info("Metrics report:")
        self.logger.info(f"\tLatency: {total.latency_ms:.1f} ms")
        if total.frames > 1:
            self.logger.info(f"\tFPS: {total.fps:.1f}")
        return DemoReport(
            demo=self.name,
            results=results,
            outputs=outputs,
            latency_ms=total.latency_ms,
            fps=total.fps,
            frames=total.frames
        )

    def run(self, *args, **kwargs) -> DemoReport:
        raise NotImplementedError
