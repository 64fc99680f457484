"""
Inference engine detection and wrapper layer.

This module detects the installed OpenVINO Runtime, checks that it offers the
2.0 API and wraps the handful of engine calls the demos need: reading a model,
configuring input/output precision and layout, compiling it on a device and
running synchronous inference requests.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import yaml

from .errors import InferenceEngineError, ModelLoadError, VersionCompatibilityError
from .logging import get_logger

MIN_ENGINE_VERSION = "2022.1"


def _import_openvino():
    """Import the runtime lazily so configuration and tests work without it."""
    try:
        import openvino
        import openvino.preprocess
    except ImportError as e:
        raise InferenceEngineError(
            f"OpenVINO Runtime is not available: {e}",
            recoverable=False,
            original_exception=e
        )
    return openvino


@dataclass
class EngineInfo:
    """Information about the detected inference engine."""
    version_string: str
    build: str = ""
    devices: List[str] = field(default_factory=list)

    @property
    def major_version(self) -> int:
        """Get major version as integer."""
        match = re.match(r'(\d+)', self.version_string)
        return int(match.group(1)) if match else 0

    @property
    def minor_version(self) -> int:
        """Get minor version as integer."""
        match = re.match(r'\d+\.(\d+)', self.version_string)
        return int(match.group(1)) if match else 0

    def is_compatible_with(self, min_version: str) -> bool:
        """Check if current version is compatible with minimum required version."""
        try:
            min_major, min_minor = map(int, min_version.split('.')[:2])
        except ValueError:
            return False
        return (self.major_version > min_major or
                (self.major_version == min_major and self.minor_version >= min_minor))


class EngineDetector:
    """Detects the inference engine installation and its devices."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self._cached_info: Optional[EngineInfo] = None

    def detect_engine(self, force_refresh: bool = False) -> EngineInfo:
        """
        Detect the runtime and return version information.

        Args:
            force_refresh: Force re-detection even if cached

        Returns:
            EngineInfo with version, build and available devices

        Raises:
            InferenceEngineError: If the runtime cannot be imported
        """
        if self._cached_info and not force_refresh:
            return self._cached_info

        ov = _import_openvino()
        full_version = ov.get_version()
        version_string, _, build = full_version.partition('-')

        try:
            devices = list(ov.Core().available_devices)
        except RuntimeError as e:
            self.logger.warning(f"Could not enumerate devices: {e}")
            devices = []

        self.logger.debug(f"Detected OpenVINO {full_version} with devices {devices}")
        self._cached_info = EngineInfo(version_string=version_string, build=build, devices=devices)
        return self._cached_info


_detector: Optional[EngineDetector] = None
_info: Optional[EngineInfo] = None


def get_engine_info(force_refresh: bool = False) -> EngineInfo:
    """Get inference engine installation information."""
    global _detector, _info

    if _detector is None:
        _detector = EngineDetector()

    if _info is None or force_refresh:
        _info = _detector.detect_engine(force_refresh)

    return _info


def get_version_string() -> str:
    """Get the engine version string, or 'unknown' when no runtime is installed."""
    try:
        return get_engine_info().version_string
    except InferenceEngineError:
        return "unknown"


@dataclass(frozen=True)
class TensorInfo:
    """Name and static shape of a network input or output."""
    name: str
    shape: Tuple[int, ...]

    @property
    def rank(self) -> int:
        return len(self.shape)

    @property
    def batch(self) -> int:
        return self.shape[0] if self.shape else 1

    @property
    def channels(self) -> int:
        return self.shape[1] if self.rank == 4 else 0

    @property
    def height(self) -> int:
        return self.shape[2] if self.rank == 4 else 0

    @property
    def width(self) -> int:
        return self.shape[3] if self.rank == 4 else 0

    def empty(self, dtype=np.float32) -> np.ndarray:
        """Allocate a zero-filled buffer matching this tensor."""
        return np.zeros(self.shape, dtype=dtype)


class InferRequest:
    """Synchronous inference request reused across frames."""

    def __init__(self, request, output_names: Iterable[str]):
        self._request = request
        self._output_names = list(output_names)

    def infer(self, inputs: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        """
        Run one blocking inference.

        Args:
            inputs: Input tensor name to data

        Returns:
            Output tensor name to float32 array (copied out of the request)
        """
        try:
            self._request.infer(inputs)
            return {
                name: np.array(self._request.get_tensor(name).data, dtype=np.float32)
                for name in self._output_names
            }
        except RuntimeError as e:
            raise InferenceEngineError(f"Inference failed: {e}", original_exception=e) from e


class CompiledNetwork:
    """A model compiled for a device, with its input and output metadata."""

    def __init__(self, compiled_model, model_path: str, device: str):
        self._compiled = compiled_model
        self.model_path = model_path
        self.device = device
        self.inputs: Dict[str, TensorInfo] = {
            port.get_any_name(): TensorInfo(port.get_any_name(), tuple(port.shape))
            for port in compiled_model.inputs
        }
        self.outputs: Dict[str, TensorInfo] = {
            port.get_any_name(): TensorInfo(port.get_any_name(), tuple(port.shape))
            for port in compiled_model.outputs
        }

    @property
    def batch_size(self) -> int:
        image_inputs = [info for info in self.inputs.values() if info.rank == 4]
        return image_inputs[0].batch if image_inputs else 1

    def create_infer_request(self) -> InferRequest:
        return InferRequest(self._compiled.create_infer_request(), self.outputs.keys())


class InferenceEngine:
    """Owns the runtime core and compiles networks for the demos."""

    def __init__(self, config, core=None):
        """
        Initialize the engine.

        Args:
            config: EngineConfig section of the application configuration
            core: Pre-built runtime core; created from the installed runtime when omitted
        """
        self.config = config
        self.logger = get_logger(__name__)
        self._ov = None

        if core is None:
            self._ov = _import_openvino()
            info = get_engine_info()
            if not info.is_compatible_with(MIN_ENGINE_VERSION):
                raise VersionCompatibilityError(
                    f"OpenVINO {info.version_string} is not supported, {MIN_ENGINE_VERSION}+ is required",
                    required_version=f"{MIN_ENGINE_VERSION}+",
                    detected_version=info.version_string
                )
            self.logger.info(f"OpenVINO Runtime {info.version_string} {info.build}")
            core = self._ov.Core()

        self.core = core
        self._configure_core()

    def _configure_core(self) -> None:
        """Apply extensions and device properties from configuration."""
        try:
            if self.config.cpu_extension:
                self.core.add_extension(self.config.cpu_extension)
                self.logger.info(f"Loaded extension {self.config.cpu_extension}")

            properties = dict(self.config.properties)
            if self.config.plugin_config:
                properties.update(load_plugin_config(self.config.plugin_config))
            if properties:
                self.core.set_property(self.config.device, properties)
        except RuntimeError as e:
            raise InferenceEngineError(
                f"Failed to configure inference engine: {e}",
                device=self.config.device,
                original_exception=e
            ) from e

    @property
    def available_devices(self) -> List[str]:
        return list(self.core.available_devices)

    def _runtime(self):
        if self._ov is None:
            self._ov = _import_openvino()
        return self._ov

    def load_network(
        self,
        model_path: str,
        device: Optional[str] = None,
        *,
        batch_size: Optional[int] = None,
        extra_outputs: Iterable[str] = (),
        model_type: Optional[str] = None
    ) -> CompiledNetwork:
        """
        Read, configure and compile a network.

        Args:
            model_path: Path to an IR (.xml) or ONNX model
            device: Target device (defaults to the configured device)
            batch_size: Batch size to compile the network with
            extra_outputs: Tensor names to expose as additional outputs
            model_type: Human-readable model role for logs and errors

        Returns:
            CompiledNetwork ready for inference

        Raises:
            ModelLoadError: If the model file does not exist
            InferenceEngineError: If the engine rejects the model or the device
        """
        device = device or self.config.device
        path = Path(model_path)
        if not path.is_file():
            raise ModelLoadError(
                f"Model file not found: {model_path}",
                model_path=str(model_path),
                model_type=model_type
            )

        ov = self._runtime()
        self.logger.info(f"Loading {model_type or 'network'} {path} on {device}")

        try:
            model = self.core.read_model(str(path))
            extra = list(extra_outputs)
            if extra:
                model.add_outputs(extra)
            model = self._configure_precision(ov, model)
            if batch_size:
                ov.set_batch(model, batch_size)
            compiled = self.core.compile_model(model, device)
        except RuntimeError as e:
            raise InferenceEngineError(
                f"Failed to load {model_type or 'network'} {path}: {e}",
                device=device,
                context={'model_path': str(path), 'batch_size': batch_size},
                original_exception=e
            ) from e

        network = CompiledNetwork(compiled, str(path), device)
        self.logger.debug(
            f"Compiled {path.name}: inputs={[i.shape for i in network.inputs.values()]} "
            f"outputs={[o.shape for o in network.outputs.values()]}"
        )
        return network

    @staticmethod
    def _configure_precision(ov, model):
        """Image inputs take u8 NCHW data; everything else is f32."""
        ppp = ov.preprocess.PrePostProcessor(model)
        for port in model.inputs:
            name = port.get_any_name()
            rank = port.get_partial_shape().rank.get_length()
            if rank == 4:
                ppp.input(name).tensor().set_element_type(ov.Type.u8).set_layout(ov.Layout("NCHW"))
                ppp.input(name).model().set_layout(ov.Layout("NCHW"))
            else:
                ppp.input(name).tensor().set_element_type(ov.Type.f32)
                if rank == 2:
                    ppp.input(name).model().set_layout(ov.Layout("NC"))
        for port in model.outputs:
            ppp.output(port.get_any_name()).tensor().set_element_type(ov.Type.f32)
        return ppp.build()


def load_plugin_config(path: str) -> Dict[str, Any]:
    """
    Read device properties from a YAML or JSON file.

    Raises:
        InferenceEngineError: If the file cannot be read or is not a mapping
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.endswith('.json'):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (IOError, ValueError, yaml.YAMLError) as e:
        raise InferenceEngineError(
            f"Failed to read plugin config {path}: {e}",
            original_exception=e
        ) from e

    if not isinstance(data, dict):
        raise InferenceEngineError(f"Plugin config {path} must contain a mapping of properties")
    return {str(key): str(value) for key, value in data.items()}
