"""
Pytest configuration and fixtures for the inference demos test suite.

Provides a fake inference engine that serves scripted output tensors, test
images and configuration files, so no runtime or model files are needed.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

import cv2
import numpy as np
import pytest
import yaml

from ie_demos.config import AppConfig, OutputConfig
from ie_demos.utils.engine import TensorInfo
from ie_demos.utils.errors import InferenceEngineError, ModelLoadError
from ie_demos.utils.logging import LoggingConfig, LogLevel, setup_logging

Responder = Union[Callable[[Dict[str, np.ndarray]], Dict[str, np.ndarray]], Dict[str, np.ndarray]]


class FakeInferRequest:
    """Records inputs and answers with the network's responder."""

    def __init__(self, network: 'FakeNetwork'):
        self.network = network
        self.calls = []

    def infer(self, inputs):
        self.calls.append({name: np.array(value, copy=True) for name, value in inputs.items()})
        responder = self.network.responder
        if responder is None:
            outputs = {name: info.empty() for name, info in self.network.outputs.items()}
        elif callable(responder):
            outputs = responder(inputs)
        else:
            outputs = responder
        return {name: np.asarray(value, dtype=np.float32) for name, value in outputs.items()}


class FakeNetwork:
    """Stands in for a CompiledNetwork."""

    def __init__(self, model_path, device, inputs, outputs, responder=None):
        self.model_path = str(model_path)
        self.device = device
        self.inputs = {name: TensorInfo(name, tuple(shape)) for name, shape in inputs.items()}
        self.outputs = {name: TensorInfo(name, tuple(shape)) for name, shape in outputs.items()}
        self.responder = responder
        self.requests = []

    @property
    def batch_size(self) -> int:
        image_inputs = [info for info in self.inputs.values() if info.rank == 4]
        return image_inputs[0].batch if image_inputs else 1

    def create_infer_request(self) -> FakeInferRequest:
        request = FakeInferRequest(self)
        self.requests.append(request)
        return request


class FakeEngine:
    """Stands in for InferenceEngine; networks are registered per model path."""

    def __init__(self, devices=("CPU", "GPU")):
        self.available_devices = list(devices)
        self.specs: Dict[str, dict] = {}
        self.loaded = []
        self.networks: Dict[str, FakeNetwork] = {}

    def register(
        self,
        model_path,
        inputs: Dict[str, Tuple[int, ...]],
        outputs: Dict[str, Tuple[int, ...]],
        responder: Optional[Responder] = None,
        max_batch: Optional[int] = None
    ) -> None:
        self.specs[str(model_path)] = {
            'inputs': inputs,
            'outputs': outputs,
            'responder': responder,
            'max_batch': max_batch,
        }

    def load_network(self, model_path, device=None, *, batch_size=None, extra_outputs=(), model_type=None):
        self.loaded.append({
            'model_path': str(model_path),
            'device': device,
            'batch_size': batch_size,
            'extra_outputs': tuple(extra_outputs),
            'model_type': model_type,
        })
        spec = self.specs.get(str(model_path))
        if spec is None:
            raise ModelLoadError(f"Model file not found: {model_path}", model_path=str(model_path))
        if batch_size and spec['max_batch'] and batch_size > spec['max_batch']:
            raise InferenceEngineError(f"Batch {batch_size} is not supported")

        inputs = dict(spec['inputs'])
        if batch_size:
            inputs = {
                name: (batch_size,) + tuple(shape[1:]) if len(shape) in (2, 4) else shape
                for name, shape in inputs.items()
            }
        network = FakeNetwork(model_path, device or "CPU", inputs, spec['outputs'], spec['responder'])
        self.networks[str(model_path)] = network
        return network


@pytest.fixture(autouse=True)
def reset_logging():
    """Route logs to the current stderr before every test."""
    setup_logging(LoggingConfig(level=LogLevel.DEBUG, filter_spam=False))
    yield


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def fake_engine():
    """Create an empty fake inference engine."""
    return FakeEngine()


@pytest.fixture
def test_config_path(temp_dir):
    """Create a test configuration file."""
    config_path = temp_dir / "test_config.yaml"
    config_data = {
        "name": "IE Demos Test",
        "version": "0.1.0",
        "environment": "testing",
        "engine": {
            "device": "gpu",
            "properties": {"PERFORMANCE_HINT": "LATENCY"}
        },
        "classification": {
            "top_k": 3
        },
        "segmentation": {
            "probability_threshold": 0.3
        },
        "output": {
            "output_dir": str(temp_dir / "out")
        },
        "logging": {
            "level": "debug",
            "format": "text"
        }
    }

    with open(config_path, 'w') as f:
        yaml.dump(config_data, f)

    return config_path


@pytest.fixture
def test_config(temp_dir):
    """Create a test AppConfig instance writing into the temp directory."""
    return AppConfig(
        name="IE Demos Test",
        version="0.1.0",
        environment="testing",
        output=OutputConfig(output_dir=str(temp_dir / "out"))
    )


def write_image(path: Path, height: int = 48, width: int = 64, value: int = 0) -> Path:
    """Write a uniform BGR image and return its path."""
    image = np.full((height, width, 3), value, dtype=np.uint8)
    assert cv2.imwrite(str(path), image)
    return path


@pytest.fixture
def sample_image(temp_dir):
    """Create a single 48x64 test image."""
    return write_image(temp_dir / "sample.png", value=100)


@pytest.fixture
def image_dir(temp_dir):
    """Create a directory with two test images."""
    directory = temp_dir / "images"
    directory.mkdir()
    write_image(directory / "b.png", value=50)
    write_image(directory / "a.png", value=200)
    return directory


@pytest.fixture
def model_file(temp_dir):
    """Factory creating empty model files so path checks pass."""
    def create(name: str) -> str:
        path = temp_dir / name
        path.write_text("<net/>")
        return str(path)
    return create
