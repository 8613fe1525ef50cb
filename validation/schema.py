"""
Schema validation for configuration dictionaries.

A schema maps field names to dicts with any of these keys: ``type``,
``required`` (default True), ``default``, ``nullable``, ``choices`` and
``validator``. Every failing field is reported together.
"""
from typing import Any, Callable, Dict, List
from utils.exceptions import ValidationError
from .validators import (
    ChoiceValidator,
    RangeValidator,
    PredicateValidator,
    TypeValidator,
    validate_proportion,
    validate_retained_count
)


class Schema:
    """Validates a flat dictionary field by field."""

    def __init__(self, schema: Dict[str, Dict[str, Any]], strict: bool = False):
        """
        Args:
            schema: Field name to field rules
            strict: Reject keys the schema does not name
        """
        self.schema = schema
        self.strict = strict
        self._checks = {key: self._compile(key, rules) for key, rules in schema.items()}

    @staticmethod
    def _compile(key: str, rules: Dict[str, Any]) -> List[Callable[[Any], Any]]:
        checks = []
        if 'type' in rules:
            checks.append(TypeValidator(rules['type'], name=key))
        if 'validator' in rules:
            checks.append(rules['validator'])
        if 'choices' in rules:
            checks.append(ChoiceValidator(rules['choices'], name=key))
        return checks

    def validate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``data`` with defaults filled in."""
        if not isinstance(data, dict):
            raise ValidationError(
                f"Expected dict, got {type(data).__name__}",
                details={'actual_type': type(data).__name__}
            )

        validated = {}
        errors = []

        for key, rules in self.schema.items():
            if key not in data:
                if rules.get('required', True):
                    errors.append(f"Missing required field: {key}")
                elif 'default' in rules:
                    validated[key] = rules['default']
                continue

            value = data[key]
            if value is None and rules.get('nullable', False):
                validated[key] = value
                continue
            try:
                for check in self._checks[key]:
                    value = check(value)
            except ValidationError as e:
                errors.append(e.message)
            else:
                validated[key] = value

        extra_keys = sorted(set(data) - set(self.schema))
        if extra_keys and self.strict:
            errors.append(f"Unexpected fields: {extra_keys}")
        elif extra_keys:
            validated.update((key, data[key]) for key in extra_keys)

        if errors:
            raise ValidationError("Schema validation failed", details={'errors': errors})

        return validated


class EnsembleConfigSchema(Schema):
    """Schema for ensemble build configuration."""

    PREDICTION_KINDS = ['regression', 'binary', 'multiclass']
    SELECTOR_KINDS = ['all', 'best', 'bestDiverse']
    COMBINER_KINDS = ['median', 'average', 'weightedAverage', 'vote', 'stacking']
    TIE_BREAK_POLICIES = ['firstInserted', 'lowestIndex', 'highestConfidence']

    def __init__(self):
        schema = {
            'prediction_kind': {
                'type': str,
                'required': False,
                'default': 'regression',
                'choices': self.PREDICTION_KINDS
            },
            'selector_kind': {
                'type': str,
                'required': False,
                'default': 'all',
                'choices': self.SELECTOR_KINDS
            },
            'combiner_kind': {
                'type': str,
                'required': False,
                'default': 'median',
                'choices': self.COMBINER_KINDS
            },
            'diversity_metric': {
                'type': str,
                'required': False,
                'default': 'disagreement'
            },
            'quality_metric': {
                'type': str,
                'required': False,
                'nullable': True,
                'default': None
            },
            'retained_count': {
                'required': False,
                'default': 'auto',
                'validator': validate_retained_count
            },
            'learners_selection_proportion': {
                'type': (int, float),
                'required': False,
                'default': 0.5,
                'validator': lambda v: validate_proportion(v, name='learners_selection_proportion')
            },
            'min_diversity_gain': {
                'type': (int, float),
                'required': False,
                'nullable': True,
                'default': None,
                'validator': RangeValidator(min_value=0.0, name='min_diversity_gain')
            },
            'quality_threshold': {
                'type': (int, float),
                'required': False,
                'nullable': True,
                'default': None
            },
            'tie_break_policy': {
                'type': str,
                'required': False,
                'default': 'lowestIndex',
                'choices': self.TIE_BREAK_POLICIES
            },
            'normalize': {
                'type': bool,
                'required': False,
                'default': False
            },
            'max_workers': {
                'type': int,
                'required': False,
                'default': 4,
                'validator': PredicateValidator(
                    lambda v: not isinstance(v, bool) and v >= 1,
                    "must be a positive integer",
                    name='max_workers'
                )
            }
        }
        super().__init__(schema, strict=True)
