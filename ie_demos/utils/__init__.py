"""
Utilities package for the inference demos.

This package provides error handling, logging, the inference engine wrapper,
image input and drawing helpers.
"""

from .errors import (
    DemoError,
    ConfigurationError,
    InputError,
    OutputError,
    InferenceEngineError,
    VersionCompatibilityError,
    ModelLoadError,
    ModelOutputError,
    handle_error
)

from .logging import (
    setup_logging,
    get_logger,
    update_metrics,
    performance_context,
    LoggingConfig
)

from .engine import (
    EngineInfo,
    InferenceEngine,
    CompiledNetwork,
    InferRequest,
    TensorInfo,
    get_engine_info,
    get_version_string
)

__all__ = [
    # Error handling
    'DemoError',
    'ConfigurationError',
    'InputError',
    'OutputError',
    'InferenceEngineError',
    'VersionCompatibilityError',
    'ModelLoadError',
    'ModelOutputError',
    'handle_error',

    # Logging
    'setup_logging',
    'get_logger',
    'update_metrics',
    'performance_context',
    'LoggingConfig',

    # Engine
    'EngineInfo',
    'InferenceEngine',
    'CompiledNetwork',
    'InferRequest',
    'TensorInfo',
    'get_engine_info',
    'get_version_string'
]
