"""
Image classification demo.
"""

import time
from typing import Optional, Sequence

from ..models.classification import ClassificationModel
from ..utils.drawing import put_text_lines
from ..utils.errors import InputError
from ..utils.images import parse_input_files, read_image
from ..utils.logging import log_inference_event
from .base import DemoPipeline, DemoReport


class ClassificationPipeline(DemoPipeline):
    """Classifies every input image and reports its top-K classes."""

    name = "classification"

    def __init__(self, config, model_path: str, engine=None, device: Optional[str] = None,
                 labels: Optional[Sequence[str]] = None):
        super().__init__(config, engine, device)
        self.model = ClassificationModel(self.engine, model_path, config.classification, device, labels)

    @property
    def models(self):
        return [self.model]

    def run(self, inputs: Sequence[str]) -> DemoReport:
        files = parse_input_files(inputs)
        if not files:
            raise InputError("No suitable images were found")

        images, sources = [], []
        for path in files:
            image = read_image(path)
            if image is not None:
                images.append(image)
                sources.append(path)
        if not images:
            raise InputError("Valid input images were not found!")

        start = time.perf_counter()
        top_results = self.model.classify(images)
        self.metrics.update(start, frames=len(images))
        log_inference_event(self.logger, self.name, len(top_results), self.model.batch_size)

        results, outputs = [], []
        for index, (path, image, top) in enumerate(zip(sources, images, top_results)):
            self.logger.info(f"Image {path}")
            for result in top:
                self.logger.info(f"\t{result.class_id}\t{result.probability:.7f}\t{result.label}")
            results.append({'image': path, 'top': [result.to_dict() for result in top]})

            if self.config.output.save_images:
                annotated = image.copy()
                put_text_lines(annotated, [f"{r.label}: {r.probability:.3f}" for r in top])
                outputs.append(self.save_image(annotated, f"classification_{index:05d}.png"))

        return self.report(results, outputs)
