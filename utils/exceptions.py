"""
Exception hierarchy for the ensemble engine.
"""
from typing import Any, Dict, Optional


class EnsembleError(Exception):
    """Base exception for all ensemble errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details
        }


class InvalidArgumentError(EnsembleError, ValueError):
    """Raised when a caller violates a precondition."""
    pass


class ConfigurationError(InvalidArgumentError):
    """Raised when configuration is invalid."""
    pass


class ValidationError(InvalidArgumentError):
    """Raised when a value fails validation."""
    pass


class InvalidStateError(EnsembleError, RuntimeError):
    """Raised when an operation is invoked in the wrong lifecycle state."""
    pass


class InferenceFailureError(EnsembleError):
    """Raised when a sub-model fails during prediction."""

    def __init__(
        self,
        message: str,
        model_index: int,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        details['model_index'] = model_index
        super().__init__(message, error_code=error_code, details=details)
        self.model_index = model_index
