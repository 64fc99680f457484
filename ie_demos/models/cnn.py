"""
Batched single-input network wrappers used by the smart classroom demo.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..utils.errors import InferenceEngineError, ModelLoadError, ModelOutputError
from ..utils.images import image_to_tensor
from ..utils.logging import get_logger
from .results import ModelInfo

FetchResults = Callable[[Dict[str, np.ndarray], int], None]


class CnnBase:
    """
    Network with exactly one image input, run over frames in batches.

    The network is compiled with max_batch_size when the engine accepts it and
    with batch 1 otherwise.
    """

    def __init__(
        self,
        engine,
        model_path: str,
        device: Optional[str] = None,
        max_batch_size: int = 1,
        model_type: str = "CNN"
    ):
        self.engine = engine
        self.model_path = model_path
        self.device = device
        self.max_batch_size = max_batch_size
        self.model_type = model_type
        self.logger = get_logger(__name__)
        self.load()

    def load(self) -> None:
        try:
            self.network = self.engine.load_network(
                self.model_path, self.device,
                batch_size=self.max_batch_size, model_type=self.model_type
            )
        except InferenceEngineError as e:
            if self.max_batch_size == 1:
                raise
            self.logger.warning(f"{self.model_type} does not accept batch {self.max_batch_size}, using batch 1: {e.message}")
            self.network = self.engine.load_network(
                self.model_path, self.device, batch_size=1, model_type=self.model_type
            )

        if len(self.network.inputs) != 1:
            raise ModelLoadError(
                "Network should have only one input",
                model_path=self.model_path,
                model_type=self.model_type
            )

        self.input_name, self.input_info = next(iter(self.network.inputs.items()))
        self.output_names = list(self.network.outputs)
        self.request = self.network.create_infer_request()

    @property
    def batch_size(self) -> int:
        return self.input_info.batch

    @property
    def info(self) -> ModelInfo:
        return ModelInfo.from_network(self.network, self.model_type)

    def infer_batch(self, frames: Sequence[np.ndarray], fetch_results: FetchResults) -> None:
        """
        Run the frames through the network in chunks of the compiled batch size.

        fetch_results receives the output tensors of each chunk and the number
        of leading batch rows that hold real frames.
        """
        batch_size = self.batch_size
        for start in range(0, len(frames), batch_size):
            chunk = frames[start:start + batch_size]
            blob = self.input_info.empty(np.uint8)
            for index, frame in enumerate(chunk):
                image_to_tensor(frame, blob, index)
            outputs = self.request.infer({self.input_name: blob})
            fetch_results(outputs, len(chunk))

    def infer(self, frame: np.ndarray, fetch_results: FetchResults) -> None:
        self.infer_batch([frame], fetch_results)


class VectorCNN(CnnBase):
    """Network producing one feature vector per image (face re-identification)."""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault('model_type', "Face Re-Identification")
        super().__init__(*args, **kwargs)
        if len(self.output_names) != 1:
            raise ModelLoadError(
                "Demo supports topologies only with 1 output",
                model_path=self.model_path,
                model_type=self.model_type
            )

    def compute(
        self,
        images: Sequence[np.ndarray],
        output_shape: Optional[Tuple[int, int]] = None
    ) -> List[np.ndarray]:
        """
        Compute a feature vector for each image.

        Args:
            images: BGR images of any size
            output_shape: Optional (height, width) to reshape every vector to

        Returns:
            One float32 vector (or matrix when output_shape is given) per image
        """
        vectors: List[np.ndarray] = []
        if len(images) == 0:
            return vectors

        def fetch(outputs: Dict[str, np.ndarray], batch_size: int) -> None:
            for name, blob in outputs.items():
                if blob is None:
                    raise ModelOutputError(f"VectorCNN::compute() Invalid blob '{name}'", output_name=name)
                rows = blob.reshape(blob.shape[0], -1)
                for b in range(batch_size):
                    vector = rows[b].copy()
                    if output_shape is not None:
                        vector = vector.reshape(output_shape)
                    vectors.append(vector)

        self.infer_batch(images, fetch)
        return vectors

    def compute_one(self, image: np.ndarray, output_shape: Optional[Tuple[int, int]] = None) -> np.ndarray:
        return self.compute([image], output_shape)[0]
