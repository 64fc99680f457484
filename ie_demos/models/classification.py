"""
Image classification with top-K reporting.
"""

import re
from typing import List, Optional, Sequence

import numpy as np

from ..utils.errors import InputError, ModelLoadError
from ..utils.images import image_to_tensor
from ..utils.logging import get_logger
from .results import ClassificationResult, ModelInfo

SYNSET_PREFIX = re.compile(r'^n\d{8}\s+')


def load_labels(path: str) -> List[str]:
    """
    Read one label per line, dropping ImageNet synset ids such as 'n01440764 '.

    Raises:
        InputError: If the file cannot be read
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            lines = f.read().splitlines()
    except IOError as e:
        raise InputError(f"Cannot read labels file {path}: {e}", input_path=path, original_exception=e)
    return [SYNSET_PREFIX.sub('', line.strip()) for line in lines if line.strip()]


def softmax(scores: np.ndarray) -> np.ndarray:
    shifted = scores - scores.max(axis=-1, keepdims=True)
    exp = np.exp(shifted)
    return exp / exp.sum(axis=-1, keepdims=True)


def is_probability_distribution(scores: np.ndarray, tolerance: float = 1e-2) -> bool:
    if scores.size == 0 or np.any(scores < 0) or np.any(scores > 1):
        return False
    return bool(np.all(np.abs(scores.sum(axis=-1) - 1.0) < tolerance))


class ClassificationModel:
    """Network with one image input and one score output."""

    model_type = "Classification"

    def __init__(
        self,
        engine,
        model_path: str,
        config,
        device: Optional[str] = None,
        labels: Optional[Sequence[str]] = None
    ):
        """
        Args:
            engine: InferenceEngine (or compatible) used to compile the network
            model_path: Path to the model
            config: ClassificationConfig section
            device: Target device override
            labels: Class labels; read from config.labels_file when omitted
        """
        self.config = config
        self.logger = get_logger(__name__)
        self.network = engine.load_network(
            model_path, device, batch_size=config.batch_size, model_type=self.model_type
        )

        if len(self.network.inputs) != 1:
            raise ModelLoadError("Classification network should have only one input", model_path=model_path, model_type=self.model_type)
        if len(self.network.outputs) != 1:
            raise ModelLoadError("Classification network should have only one output", model_path=model_path, model_type=self.model_type)

        self.input_name, self.input_info = next(iter(self.network.inputs.items()))
        if self.input_info.rank != 4:
            raise ModelLoadError(
                f"Unsupported input shape with size = {self.input_info.rank}",
                model_path=model_path,
                model_type=self.model_type
            )
        self.output_name = next(iter(self.network.outputs))

        if labels is None and config.labels_file:
            labels = load_labels(config.labels_file)
        self.labels = list(labels or [])
        self.request = self.network.create_infer_request()

    @property
    def batch_size(self) -> int:
        return self.input_info.batch

    @property
    def info(self) -> ModelInfo:
        return ModelInfo.from_network(self.network, self.model_type)

    def label_for(self, class_id: int, num_classes: int) -> str:
        """Map a class index to its label, skipping a leading background class."""
        index = class_id
        if self.labels and num_classes == len(self.labels) + 1:
            index -= 1
        if 0 <= index < len(self.labels):
            return self.labels[index]
        return f"#{class_id}"

    def probabilities(self, scores: np.ndarray) -> np.ndarray:
        mode = getattr(self.config.softmax, 'value', self.config.softmax)
        if mode == 'always' or (mode == 'auto' and not is_probability_distribution(scores)):
            return softmax(scores)
        return scores

    def top_k(self, scores: np.ndarray) -> List[ClassificationResult]:
        """Top-K results for one row of class scores, best first."""
        probabilities = self.probabilities(scores)
        k = min(self.config.top_k, probabilities.shape[-1])
        order = np.argsort(-probabilities, kind='stable')[:k]
        return [
            ClassificationResult(int(i), self.label_for(int(i), probabilities.shape[-1]), float(probabilities[i]))
            for i in order
        ]

    def classify(self, images: Sequence[np.ndarray]) -> List[List[ClassificationResult]]:
        """Classify images in network-sized batches."""
        results: List[List[ClassificationResult]] = []
        for start in range(0, len(images), self.batch_size):
            chunk = images[start:start + self.batch_size]
            blob = self.input_info.empty(np.uint8)
            for index, image in enumerate(chunk):
                image_to_tensor(image, blob, index)

            scores = self.request.infer({self.input_name: blob})[self.output_name]
            scores = scores.reshape(scores.shape[0], -1)
            for row in range(len(chunk)):
                results.append(self.top_k(scores[row]))
        return results
