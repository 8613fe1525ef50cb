"""
Error handling utilities.
"""
import time
from typing import Optional
from .logging_config import get_logger
from .exceptions import EnsembleError


class ErrorContext:
    """
    Context manager that logs the lifecycle of an operation.

    Errors are logged with their structured details and always propagate.
    """

    def __init__(self, operation_name: str, logger_name: Optional[str] = None):
        self.operation_name = operation_name
        self.logger = get_logger(logger_name or __name__)
        self._started = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.info(f"Starting operation: {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.perf_counter() - self._started
        if exc_type is None:
            self.logger.info(
                f"Completed operation: {self.operation_name} ({elapsed:.3f}s)"
            )
            return False

        if isinstance(exc_val, EnsembleError):
            self.logger.error(
                f"Error in operation {self.operation_name}: {exc_val.message}",
                extra={'error_details': exc_val.to_dict()}
            )
        else:
            self.logger.error(
                f"Unexpected error in operation {self.operation_name}: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb)
            )
        return False
