"""
Mask R-CNN instance segmentation demo.
"""

import time
from typing import Optional, Sequence

from ..models.segmentation import MaskRCNNModel
from ..utils.images import collect_batch, parse_input_files
from ..utils.logging import log_inference_event
from .base import DemoPipeline, DemoReport


class SegmentationPipeline(DemoPipeline):
    """Runs one network batch of images and writes out{i}.png composites."""

    name = "mask_rcnn"

    def __init__(self, config, model_path: str, engine=None, device: Optional[str] = None,
                 batch_size: Optional[int] = None):
        super().__init__(config, engine, device)
        self.model = MaskRCNNModel(self.engine, model_path, config.segmentation, device, batch_size)

    @property
    def models(self):
        return [self.model]

    def run(self, inputs: Sequence[str]) -> DemoReport:
        files = parse_input_files(inputs)
        images, sources = collect_batch(files, self.model.batch_size)

        start = time.perf_counter()
        detections, rendered = self.model.process(images)
        self.metrics.update(start, frames=len(images))
        log_inference_event(self.logger, self.name, len(detections), self.model.batch_size)

        results = []
        for detection in detections:
            entry = detection.to_dict()
            entry['image'] = sources[detection.batch_index]
            results.append(entry)

        outputs = []
        if self.config.output.save_images:
            for index, image in enumerate(rendered):
                outputs.append(self.save_image(image, f"out{index}.png"))

        return self.report(results, outputs)
