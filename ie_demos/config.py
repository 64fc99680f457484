"""
Configuration management for the inference demos.

This module provides YAML configuration loading, validation, runtime updates
and environment variable overrides. Command-line flags take precedence over
the loaded configuration and are merged in by the CLI through update_config.
"""

import json
import os
import threading
from dataclasses import asdict, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic.dataclasses import dataclass as pydantic_dataclass

from .utils.errors import ConfigurationError
from .utils.logging import get_logger


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class SoftmaxMode(str, Enum):
    """When to apply softmax to classification scores."""
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"


@pydantic_dataclass
class EngineConfig:
    """Inference engine settings."""
    device: str = Field(default="CPU", min_length=1, description="Target device name (CPU, GPU, NPU, AUTO:GPU,CPU ...)")
    cpu_extension: Optional[str] = Field(default=None, description="Path to an engine extension library")
    plugin_config: Optional[str] = Field(default=None, description="Path to a YAML/JSON file with device properties")
    properties: Dict[str, Any] = Field(default_factory=dict, description="Device properties passed to the engine")

    @field_validator('device')
    @classmethod
    def validate_device(cls, v):
        """Normalize device names the way the engine expects them."""
        return v.strip().upper()


@pydantic_dataclass
class ClassificationConfig:
    """Classification demo settings."""
    top_k: int = Field(default=5, ge=1, le=1000, description="Number of top results to report")
    labels_file: Optional[str] = Field(default=None, description="Path to class labels file")
    softmax: SoftmaxMode = Field(default=SoftmaxMode.AUTO, description="Softmax application mode")
    batch_size: Optional[int] = Field(default=None, ge=1, le=64, description="Override network batch size")


@pydantic_dataclass
class SegmentationConfig:
    """Mask R-CNN demo settings."""
    detection_output_name: str = Field(default="reshape_do_2d", min_length=1, description="Detection output tensor name")
    masks_name: str = Field(default="masks", min_length=1, description="Masks output tensor name")
    probability_threshold: float = Field(default=0.2, ge=0.0, le=1.0, description="Minimum detection probability")
    mask_threshold: float = Field(default=0.5, ge=0.0, le=1.0, description="Mask pixel object/background threshold")
    alpha: float = Field(default=0.7, ge=0.0, le=1.0, description="Mask colour blending weight")


@pydantic_dataclass
class GazeConfig:
    """Gaze estimation demo settings."""
    face_threshold: float = Field(default=0.5, ge=0.0, le=1.0, description="Face detection confidence threshold")
    eye_box_scale: float = Field(default=1.8, gt=0.0, le=5.0, description="Eye box side relative to eye corner distance")
    roll_align: bool = Field(default=True, description="Align eye crops by head roll before gaze estimation")
    arrow_scale: float = Field(default=0.4, gt=0.0, le=2.0, description="Gaze arrow length relative to face width")


@pydantic_dataclass
class ClassroomConfig:
    """Smart classroom (face re-identification) demo settings."""
    max_batch_size: int = Field(default=16, ge=1, le=64, description="Maximum batch size for re-identification network")
    reid_threshold: float = Field(default=0.7, ge=0.0, le=2.0, description="Maximum cosine distance for a gallery match")
    face_threshold: float = Field(default=0.6, ge=0.0, le=1.0, description="Face detection confidence threshold")


@pydantic_dataclass
class OutputConfig:
    """Rendered output settings."""
    output_dir: str = Field(default=".", description="Directory for rendered images")
    save_images: bool = Field(default=True, description="Write rendered images")
    max_frames: Optional[int] = Field(default=None, ge=1, description="Stop after this many frames for video inputs")


@pydantic_dataclass
class LoggingConfig:
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    format: str = Field(default="colored", pattern="^(json|text|colored)$", description="Log format")
    include_metrics: bool = Field(default=False, description="Include process metrics in logs")
    log_file: Optional[str] = Field(default=None, description="Path to log file")
    max_file_size_mb: int = Field(default=10, ge=1, le=1000, description="Maximum log file size (MB)")
    backup_count: int = Field(default=3, ge=1, le=20, description="Number of backup log files")
    console_output: bool = Field(default=True, description="Enable console output")
    filter_spam: bool = Field(default=True, description="Enable spam filtering")


@pydantic_dataclass
class AppConfig:
    """Main application configuration."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    gaze: GazeConfig = field(default_factory=GazeConfig)
    classroom: ClassroomConfig = field(default_factory=ClassroomConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    name: str = Field(default="Inference Engine Demos", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(default="development", pattern="^(development|testing|production)$", description="Environment")


class ConfigManager:
    """Thread-safe configuration manager with validation and runtime updates."""

    ENV_PREFIX = 'IE_DEMOS_'

    ENV_MAPPINGS = {
        'IE_DEMOS_DEVICE': 'engine.device',
        'IE_DEMOS_CPU_EXTENSION': 'engine.cpu_extension',
        'IE_DEMOS_LOG_LEVEL': 'logging.level',
        'IE_DEMOS_LOG_FILE': 'logging.log_file',
        'IE_DEMOS_OUTPUT_DIR': 'output.output_dir',
        'IE_DEMOS_TOP_K': 'classification.top_k',
        'IE_DEMOS_ENVIRONMENT': 'environment',
    }

    SECTIONS = ('engine', 'classification', 'segmentation', 'gaze', 'classroom', 'output', 'logging')

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file
        """
        self._config: Optional[AppConfig] = None
        self._config_path: Optional[Path] = None
        self._lock = threading.RLock()
        self._logger = get_logger(__name__)
        self._watchers: List[Callable[[AppConfig], None]] = []
        self._environment_overrides: Dict[str, Any] = {}

        if config_path:
            self.load_config(config_path)
        else:
            self._config = self._build_config(self._merge_environment_overrides({}))

    def load_config(self, config_path: Union[str, Path], merge_environment: bool = True) -> AppConfig:
        """
        Load configuration from YAML file with validation.

        Args:
            config_path: Path to configuration file
            merge_environment: Whether to merge environment variable overrides

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationError: If configuration is invalid or file cannot be loaded
        """
        with self._lock:
            config_path = Path(config_path)
            self._config_path = config_path

            if not config_path.exists():
                raise ConfigurationError(
                    f"Configuration file not found: {config_path}",
                    config_path=str(config_path)
                )

            self._logger.info(f"Loading configuration from {config_path}")

            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    config_data = yaml.safe_load(f)
            except (yaml.YAMLError, IOError) as e:
                raise ConfigurationError(
                    f"Failed to load configuration file {config_path}: {e}",
                    config_path=str(config_path),
                    original_exception=e
                )

            if config_data is None:
                config_data = {}
            if not isinstance(config_data, dict):
                raise ConfigurationError(
                    f"Configuration root must be a mapping: {config_path}",
                    config_path=str(config_path)
                )

            if merge_environment:
                config_data = self._merge_environment_overrides(config_data)

            self._config = self._build_config(config_data, config_path=str(config_path))
            self._logger.info(f"Loaded configuration: {self._config.name} v{self._config.version}")
            self._notify_watchers()
            return self._config

    def save_config(self, config_path: Optional[Union[str, Path]] = None) -> None:
        """
        Save current configuration to YAML file.

        Args:
            config_path: Path to save configuration (defaults to loaded path)

        Raises:
            ConfigurationError: If saving fails
        """
        with self._lock:
            if self._config is None:
                raise ConfigurationError("No configuration loaded to save")

            save_path = Path(config_path) if config_path else self._config_path
            if save_path is None:
                raise ConfigurationError("No configuration path specified")

            try:
                save_path.parent.mkdir(parents=True, exist_ok=True)
                with open(save_path, 'w', encoding='utf-8') as f:
                    yaml.safe_dump(
                        config_to_dict(self._config),
                        f,
                        default_flow_style=False,
                        indent=2,
                        sort_keys=False,
                        allow_unicode=True
                    )
                self._logger.info(f"Configuration saved to {save_path}")
            except (IOError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Failed to save configuration to {save_path}: {e}",
                    config_path=str(save_path),
                    original_exception=e
                )

    def get_config(self) -> AppConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise ConfigurationError("No configuration loaded")
            return self._config

    def update_config(self, updates: Dict[str, Any]) -> AppConfig:
        """
        Update configuration with new values.

        Args:
            updates: Nested dictionary of configuration updates; None values are ignored

        Returns:
            Updated configuration object

        Raises:
            ConfigurationError: If the updated configuration fails validation
        """
        with self._lock:
            if self._config is None:
                raise ConfigurationError("No configuration loaded to update")

            updates = _drop_none(updates)
            config_dict = self._deep_merge(config_to_dict(self._config), updates)
            self._config = self._build_config(config_dict, updates=updates)

            self._logger.debug(f"Configuration updates: {updates}")
            self._notify_watchers()
            return self._config

    def add_watcher(self, callback: Callable[[AppConfig], None]) -> None:
        """Add a callback to be notified when configuration changes."""
        with self._lock:
            if callback not in self._watchers:
                self._watchers.append(callback)

    def validate_config(self, config_dict: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Validate configuration without updating.

        Args:
            config_dict: Configuration dictionary to validate (defaults to current)

        Returns:
            List of validation errors (empty if valid)
        """
        if config_dict is None:
            if self._config is None:
                return ["No configuration loaded"]
            config_dict = config_to_dict(self._config)

        try:
            AppConfig(**config_dict)
            return []
        except ValidationError as e:
            return self._format_validation_errors(e).split('\n')
        except TypeError as e:
            return [str(e)]

    def get_environment_overrides(self) -> Dict[str, Any]:
        """Get current environment variable overrides."""
        return self._environment_overrides.copy()

    def _build_config(self, config_data: Dict[str, Any], **context) -> AppConfig:
        """Construct and validate an AppConfig, wrapping validation failures."""
        try:
            return AppConfig(**config_data)
        except ValidationError as e:
            error_details = self._format_validation_errors(e)
            config_path = context.pop('config_path', None)
            raise ConfigurationError(
                f"Configuration validation failed:\n{error_details}",
                config_path=config_path,
                context={'validation_errors': error_details, **context}
            )
        except TypeError as e:
            raise ConfigurationError(
                f"Configuration validation failed: {e}",
                config_path=context.get('config_path'),
                original_exception=e
            )

    def _merge_environment_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge environment variable overrides into configuration."""
        overrides: Dict[str, Any] = {}

        for env_var, config_path in self.ENV_MAPPINGS.items():
            value = os.environ.get(env_var)
            if value is not None:
                converted_value = self._convert_env_value(value)
                self._set_nested_value(overrides, config_path, converted_value)
                self._environment_overrides[env_var] = converted_value

        # IE_DEMOS_<SECTION>_<SETTING> -> section.setting
        for key, value in os.environ.items():
            if not key.startswith(self.ENV_PREFIX) or key in self.ENV_MAPPINGS:
                continue
            remainder = key[len(self.ENV_PREFIX):].lower()
            section = next((s for s in self.SECTIONS if remainder.startswith(s + '_')), None)
            if section is None:
                continue
            config_path = f"{section}.{remainder[len(section) + 1:]}"
            converted_value = self._convert_env_value(value)
            self._set_nested_value(overrides, config_path, converted_value)
            self._environment_overrides[key] = converted_value

        if overrides:
            config_data = self._deep_merge(config_data, overrides)
            self._logger.info(f"Applied {len(self._environment_overrides)} environment overrides")

        return config_data

    @staticmethod
    def _convert_env_value(value: str) -> Any:
        """Convert environment variable string to appropriate type."""
        if value.lower() in ('true', 'false', 'yes', 'no'):
            return value.lower() in ('true', 'yes')

        try:
            if '.' not in value:
                return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    @staticmethod
    def _set_nested_value(dictionary: Dict[str, Any], path: str, value: Any) -> None:
        """Set a nested dictionary value using dot notation."""
        keys = path.split('.')
        current = dictionary
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value

    def _deep_merge(self, base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge two dictionaries."""
        result = base.copy()
        for key, value in updates.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    @staticmethod
    def _format_validation_errors(error: ValidationError) -> str:
        """Format validation errors into a readable string."""
        errors = []
        for err in error.errors():
            location = ' -> '.join(str(loc) for loc in err['loc'])
            errors.append(f"  {location}: {err['msg']} (got: {err.get('input', 'N/A')})")
        return '\n'.join(errors)

    def _notify_watchers(self) -> None:
        """Notify all registered watchers of configuration changes."""
        for watcher in self._watchers:
            watcher(self._config)


def config_to_dict(config: AppConfig) -> Dict[str, Any]:
    """Convert a configuration object to plain YAML-serializable data."""
    return json.loads(json.dumps(asdict(config), default=lambda o: o.value if isinstance(o, Enum) else str(o)))


def _drop_none(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Remove None leaves so unset CLI flags do not clobber configuration."""
    cleaned = {}
    for key, value in updates.items():
        if isinstance(value, dict):
            nested = _drop_none(value)
            if nested:
                cleaned[key] = nested
        elif value is not None:
            cleaned[key] = value
    return cleaned


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def load_config(config_path: Union[str, Path]) -> AppConfig:
    """Load configuration from file using global manager."""
    return get_config_manager().load_config(config_path)


def validate_config_file(config_path: Union[str, Path]) -> List[str]:
    """
    Validate a configuration file without loading it into the global manager.

    Args:
        config_path: Path to configuration file

    Returns:
        List of validation errors (empty if valid)
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}
    except (IOError, yaml.YAMLError) as e:
        return [f"Failed to load configuration file: {e}"]

    if not isinstance(config_data, dict):
        return ["Configuration root must be a mapping"]
    return ConfigManager().validate_config(config_data)


def create_default_config(output_path: Union[str, Path]) -> AppConfig:
    """
    Create a default configuration file.

    Args:
        output_path: Path where to save the default configuration

    Returns:
        The default configuration that was written
    """
    manager = ConfigManager()
    manager.save_config(output_path)
    return manager.get_config()
