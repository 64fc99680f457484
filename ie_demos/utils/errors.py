"""
Error handling and exception hierarchy for the inference demos.

This module provides an exception hierarchy with context preservation and
error categorization. Demos do not retry: every error raised here travels up
to the command entry point, which reports it and exits with a non-zero code.
"""

import traceback
from datetime import datetime
from enum import Enum
from functools import wraps
from typing import Any, Dict, Optional, Type


class ErrorSeverity(Enum):
    """Error severity levels for logging."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for classification and reporting."""
    CONFIGURATION = "configuration"
    INPUT = "input"
    OUTPUT = "output"
    ENGINE = "engine"
    MODEL = "model"
    SYSTEM = "system"


class DemoError(Exception):
    """
    Base exception class for all demo errors.

    Carries a category, a severity and a context dictionary so the CLI and
    the JSON log formatter can report failures uniformly.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        original_exception: Optional[Exception] = None
    ):
        """
        Initialize demo error with context.

        Args:
            message: Human-readable error description
            category: Error category for classification
            severity: Error severity level
            context: Additional context information
            recoverable: Whether processing may continue past this error
            original_exception: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or {}
        self.recoverable = recoverable
        self.original_exception = original_exception
        self.timestamp = datetime.now()
        self.traceback_str = traceback.format_exc()

        self.context.update({
            'timestamp': self.timestamp.isoformat(),
            'category': self.category.value,
            'severity': self.severity.value,
            'recoverable': self.recoverable
        })

        if original_exception:
            self.context['original_error'] = str(original_exception)
            self.context['original_type'] = type(original_exception).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging and serialization."""
        return {
            'error_type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': self.context,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'traceback': self.traceback_str
        }

    def __str__(self) -> str:
        return f"[{self.category.value.upper()}] {self.message}"


class ConfigurationError(DemoError):
    """Errors related to configuration loading, validation, or CLI arguments."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.CONFIGURATION)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)

        context = kwargs.get('context') or {}
        if config_path:
            context['config_path'] = config_path
        kwargs['context'] = context

        super().__init__(message, **kwargs)


class InputError(DemoError):
    """Errors related to reading input images, videos or label files."""

    def __init__(self, message: str, input_path: Optional[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.INPUT)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)

        context = kwargs.get('context') or {}
        if input_path:
            context['input_path'] = input_path
        kwargs['context'] = context

        super().__init__(message, **kwargs)


class OutputError(DemoError):
    """Errors related to writing rendered results."""

    def __init__(self, message: str, output_path: Optional[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.OUTPUT)
        kwargs.setdefault('severity', ErrorSeverity.MEDIUM)

        context = kwargs.get('context') or {}
        if output_path:
            context['output_path'] = output_path
        kwargs['context'] = context

        super().__init__(message, **kwargs)


class InferenceEngineError(DemoError):
    """Errors raised by the vendor inference engine."""

    def __init__(
        self,
        message: str,
        engine_version: Optional[str] = None,
        device: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('category', ErrorCategory.ENGINE)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)

        context = kwargs.get('context') or {}
        if engine_version:
            context['engine_version'] = engine_version
        if device:
            context['device'] = device
        kwargs['context'] = context

        super().__init__(message, **kwargs)


class VersionCompatibilityError(InferenceEngineError):
    """Errors related to inference engine version compatibility."""

    def __init__(
        self,
        message: str,
        required_version: Optional[str] = None,
        detected_version: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)

        context = kwargs.get('context') or {}
        if required_version:
            context['required_version'] = required_version
        if detected_version:
            context['detected_version'] = detected_version
        kwargs['context'] = context

        super().__init__(message, **kwargs)


class ModelLoadError(DemoError):
    """Errors related to reading a model or checking its declared tensors."""

    def __init__(
        self,
        message: str,
        model_path: Optional[str] = None,
        model_type: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('category', ErrorCategory.MODEL)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)

        context = kwargs.get('context') or {}
        if model_path:
            context['model_path'] = model_path
        if model_type:
            context['model_type'] = model_type
        kwargs['context'] = context

        super().__init__(message, **kwargs)


class ModelOutputError(DemoError):
    """Errors raised when an output tensor does not follow the expected layout."""

    def __init__(self, message: str, output_name: Optional[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.MODEL)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)

        context = kwargs.get('context') or {}
        if output_name:
            context['output_name'] = output_name
        kwargs['context'] = context

        super().__init__(message, **kwargs)


def handle_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None
) -> DemoError:
    """
    Convert any exception to a DemoError with appropriate context.

    Args:
        error: Original exception
        context: Additional context information

    Returns:
        DemoError with full context
    """
    if isinstance(error, DemoError):
        return error

    error_message = str(error)
    error_type = type(error).__name__
    lowered = error_message.lower()

    if isinstance(error, (FileNotFoundError, IsADirectoryError)):
        return InputError(
            error_message,
            context=context,
            original_exception=error
        )
    elif "config" in lowered:
        return ConfigurationError(
            error_message,
            context=context,
            original_exception=error
        )
    elif isinstance(error, RuntimeError) or "openvino" in lowered:
        return InferenceEngineError(
            error_message,
            context=context,
            original_exception=error
        )
    else:
        return DemoError(
            f"{error_type}: {error_message}",
            context=context,
            original_exception=error
        )


def handle_exceptions(error_type: Type[DemoError] = DemoError):
    """
    Decorator to convert foreign exceptions raised by a function into DemoError.

    Args:
        error_type: Type of DemoError to create
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except DemoError:
                raise
            except Exception as e:
                context = {
                    'function': func.__name__,
                    'args': str(args)[:200],
                    'kwargs': str(kwargs)[:200]
                }
                raise error_type(
                    f"Error in {func.__name__}: {str(e)}",
                    context=context,
                    original_exception=e
                ) from e
        return wrapper
    return decorator
