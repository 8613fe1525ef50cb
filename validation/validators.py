"""
Validators for selector, combiner and configuration arguments.

Each validator returns the value unchanged when it is acceptable and raises
``ValidationError`` otherwise, so it can be used inline::

    self.proportion = validate_proportion(proportion, name='proportion')
"""
import operator
from typing import Any, Callable, List, Optional, Tuple, Union
from utils.exceptions import ValidationError

Number = Union[int, float]


class Validator:
    """Base validator; accepts everything."""

    def __init__(self, name: str = "value"):
        self.name = name

    def validate(self, value: Any) -> Any:
        return value

    def __call__(self, value: Any) -> Any:
        return self.validate(value)

    def fail(self, reason: str, **details) -> None:
        raise ValidationError(f"{self.name} {reason}", details=details or None)


class TypeValidator(Validator):
    """Checks ``isinstance``, refusing bools unless ``bool`` is expected."""

    def __init__(self, expected_type: Union[type, Tuple[type, ...]], name: str = "value"):
        super().__init__(name)
        self.expected_types = expected_type if isinstance(expected_type, tuple) else (expected_type,)

    def validate(self, value: Any) -> Any:
        is_stray_bool = isinstance(value, bool) and bool not in self.expected_types
        if is_stray_bool or not isinstance(value, self.expected_types):
            expected = ' or '.join(t.__name__ for t in self.expected_types)
            self.fail(
                f"must be {expected}, got {type(value).__name__}",
                expected=expected,
                actual=type(value).__name__
            )
        return value


class RangeValidator(Validator):
    """Checks a number against optional lower and upper bounds."""

    def __init__(
        self,
        min_value: Optional[Number] = None,
        max_value: Optional[Number] = None,
        inclusive: bool = True,
        name: str = "value"
    ):
        super().__init__(name)
        self.min_value = min_value
        self.max_value = max_value
        self.inclusive = inclusive

    def validate(self, value: Number) -> Number:
        above, below = (operator.ge, operator.le) if self.inclusive else (operator.gt, operator.lt)
        if self.min_value is not None and not above(value, self.min_value):
            self.fail(f"must be {'>=' if self.inclusive else '>'} {self.min_value}, got {value}")
        if self.max_value is not None and not below(value, self.max_value):
            self.fail(f"must be {'<=' if self.inclusive else '<'} {self.max_value}, got {value}")
        return value


class ChoiceValidator(Validator):
    """Checks membership in a fixed list of names."""

    def __init__(self, choices: List[Any], name: str = "value"):
        super().__init__(name)
        self.choices = list(choices)

    def validate(self, value: Any) -> Any:
        if value not in self.choices:
            self.fail(f"must be one of {self.choices}, got {value!r}", allowed=self.choices, actual=value)
        return value


class PredicateValidator(Validator):
    """Checks an arbitrary predicate."""

    def __init__(self, predicate: Callable[[Any], bool], error_message: str, name: str = "value"):
        super().__init__(name)
        self.predicate = predicate
        self.error_message = error_message

    def validate(self, value: Any) -> Any:
        if not self.predicate(value):
            self.fail(self.error_message, actual=value)
        return value


def validate_non_negative(value: Number, name: str = "value") -> Number:
    return RangeValidator(min_value=0, name=name).validate(value)


def validate_proportion(value: float, name: str = "proportion") -> float:
    """Validate a share in (0, 1]."""
    RangeValidator(min_value=0.0, inclusive=False, name=name).validate(value)
    return RangeValidator(max_value=1.0, name=name).validate(value)


def validate_retained_count(value: Union[int, str], name: str = "retained_count") -> Union[int, str]:
    """Validate a retained count: a positive integer or ``"auto"``."""
    if value == "auto":
        return value
    TypeValidator(int, name=name).validate(value)
    return RangeValidator(min_value=1, name=name).validate(value)
