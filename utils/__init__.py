"""
Utility modules for the ensemble engine.
"""
from .logging_config import get_logger, LoggerFactory, LogContext, StructuredFormatter
from .exceptions import (
    EnsembleError,
    InvalidArgumentError,
    ConfigurationError,
    ValidationError,
    InvalidStateError,
    InferenceFailureError
)
from .error_handlers import ErrorContext

__all__ = [
    'get_logger',
    'LoggerFactory',
    'LogContext',
    'StructuredFormatter',
    'EnsembleError',
    'InvalidArgumentError',
    'ConfigurationError',
    'ValidationError',
    'InvalidStateError',
    'InferenceFailureError',
    'ErrorContext',
]
