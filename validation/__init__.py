"""
Validation utilities for the ensemble engine.
"""
from .validators import (
    Validator,
    TypeValidator,
    RangeValidator,
    ChoiceValidator,
    PredicateValidator,
    validate_non_negative,
    validate_proportion,
    validate_retained_count
)
from .schema import (
    Schema,
    EnsembleConfigSchema
)

__all__ = [
    'Validator',
    'TypeValidator',
    'RangeValidator',
    'ChoiceValidator',
    'PredicateValidator',
    'validate_non_negative',
    'validate_proportion',
    'validate_retained_count',
    'Schema',
    'EnsembleConfigSchema',
]
