"""
Mask R-CNN instance segmentation.

The network exposes a flat detection output with rows of
(batch, label, probability, x1, y1, x2, y2) in normalized coordinates and a
masks output of shape [boxes, classes, H, W] holding one soft mask per class
for every detection row.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..utils.drawing import ClassColorMap, blend_mask, draw_box
from ..utils.errors import ModelLoadError, ModelOutputError
from ..utils.images import image_to_tensor
from ..utils.logging import get_logger
from .results import BoundingBox, InstanceDetection, ModelInfo


class MaskRCNNModel:
    """Decodes and renders Mask R-CNN detections and masks."""

    model_type = "Mask R-CNN"

    def __init__(self, engine, model_path: str, config, device: Optional[str] = None, batch_size: Optional[int] = None):
        """
        Args:
            engine: InferenceEngine (or compatible) used to compile the network
            model_path: Path to the model
            config: SegmentationConfig section
            device: Target device override
            batch_size: Batch size override
        """
        self.config = config
        self.logger = get_logger(__name__)
        self.network = engine.load_network(
            model_path, device,
            batch_size=batch_size,
            extra_outputs=[config.detection_output_name],
            model_type=self.model_type
        )

        self.image_input = None
        self.info_input = None
        for name, info in self.network.inputs.items():
            if info.rank == 4:
                self.image_input = info
            elif info.rank == 2:
                self.info_input = info
            else:
                raise ModelLoadError(
                    f"Unsupported input shape with size = {info.rank}",
                    model_path=model_path,
                    model_type=self.model_type
                )
        if self.image_input is None:
            raise ModelLoadError("Network has no image input", model_path=model_path, model_type=self.model_type)

        for name in (config.detection_output_name, config.masks_name):
            if name not in self.network.outputs:
                raise ModelLoadError(
                    f"Network has no output named {name}",
                    model_path=model_path,
                    model_type=self.model_type
                )

        self.request = self.network.create_infer_request()
        self.logger.info(f"Batch size is set to {self.batch_size}")

    @property
    def batch_size(self) -> int:
        return self.image_input.batch

    @property
    def info(self) -> ModelInfo:
        return ModelInfo.from_network(self.network, self.model_type)

    def prepare_inputs(self, images: Sequence[np.ndarray]) -> Dict[str, np.ndarray]:
        """Fill the image tensor and, if present, the image-info tensor."""
        blob = self.image_input.empty(np.uint8)
        for index, image in enumerate(images[:self.batch_size]):
            image_to_tensor(image, blob, index)
        inputs = {self.image_input.name: blob}

        if self.info_input is not None:
            info = self.info_input.empty(np.float32)
            info[:, :3] = (self.image_input.height, self.image_input.width, 1)
            inputs[self.info_input.name] = info
        return inputs

    def infer(self, images: Sequence[np.ndarray]) -> Dict[str, np.ndarray]:
        return self.request.infer(self.prepare_inputs(images))

    def decode(self, outputs: Dict[str, np.ndarray], images: Sequence[np.ndarray]) -> List[InstanceDetection]:
        """
        Turn raw detection and mask tensors into instance detections.

        Raises:
            ModelOutputError: If the tensors do not follow the expected layout
                or a row refers to a batch slot without an image
        """
        detections_name = self.config.detection_output_name
        boxes = outputs[detections_name]
        masks = outputs[self.config.masks_name]
        if boxes.ndim != 2:
            raise ModelOutputError(f"Detection output must be 2-D, got shape {boxes.shape}", output_name=detections_name)
        if masks.ndim != 4:
            raise ModelOutputError(f"Masks output must be 4-D, got shape {masks.shape}", output_name=self.config.masks_name)

        detections: List[InstanceDetection] = []
        for row in range(min(boxes.shape[0], masks.shape[0])):
            box_info = boxes[row]
            batch = int(box_info[0])
            if batch < 0:
                break
            if batch >= self.batch_size or batch >= len(images):
                raise ModelOutputError("Invalid batch ID within detection output box", output_name=detections_name)

            rows, cols = images[batch].shape[:2]
            probability = float(box_info[2])
            x1 = min(max(0.0, box_info[3] * cols), float(cols))
            y1 = min(max(0.0, box_info[4] * rows), float(rows))
            x2 = min(max(0.0, box_info[5] * cols), float(cols))
            y2 = min(max(0.0, box_info[6] * rows), float(rows))
            box_width = int(x2 - x1)
            box_height = int(y2 - y1)
            class_id = int(box_info[1] + 1e-6)

            if probability > self.config.probability_threshold and box_width > 0 and box_height > 0:
                channel = class_id - 1
                if not 0 <= channel < masks.shape[1]:
                    raise ModelOutputError(
                        f"Class {class_id} has no mask channel (masks have {masks.shape[1]})",
                        output_name=self.config.masks_name
                    )
                self.logger.info(
                    f"Detected class {class_id} with probability {probability:g} from batch {batch}: "
                    f"[{x1:g}, {y1:g}], [{x2:g}, {y2:g}]"
                )
                detections.append(InstanceDetection(
                    batch_index=batch,
                    class_id=class_id,
                    probability=probability,
                    box=BoundingBox(int(x1), int(y1), box_width, box_height),
                    mask=masks[row, channel]
                ))
        return detections

    def render(self, images: Sequence[np.ndarray], detections: Sequence[InstanceDetection]) -> List[np.ndarray]:
        """Composite masks and outlines onto copies of the input images."""
        colors = ClassColorMap()
        outputs = [image.copy() for image in images]
        for detection in detections:
            color = colors[detection.class_id]
            target = outputs[detection.batch_index]
            blend_mask(
                target, detection.box.as_corners(), detection.mask, color,
                threshold=self.config.mask_threshold, alpha=self.config.alpha
            )
            draw_box(target, detection.box.as_corners())
        return outputs

    def process(self, images: Sequence[np.ndarray]) -> Tuple[List[InstanceDetection], List[np.ndarray]]:
        outputs = self.infer(images)
        detections = self.decode(outputs, images)
        return detections, self.render(images, detections)
