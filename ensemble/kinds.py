"""
Prediction kinds and the small numeric-vector toolkit shared by all
ensemble components.

Scalar kinds (regression, binary classification) carry one float per
example; the multiclass kind carries one class-score vector per example.
Vectors may arrive dense or as ``scipy.sparse`` rows and are densified
exactly once, in float64.
"""
from enum import Enum
from typing import Any, Sequence, Union

import numpy as np
from scipy import sparse

from utils.exceptions import ConfigurationError, InvalidArgumentError


class PredictionKind(Enum):
    REGRESSION = "regression"
    BINARY_CLASSIFICATION = "binary"
    MULTICLASS_CLASSIFICATION = "multiclass"

    @property
    def is_vector(self) -> bool:
        return self is PredictionKind.MULTICLASS_CLASSIFICATION

    @property
    def is_classification(self) -> bool:
        return self is not PredictionKind.REGRESSION

    @classmethod
    def parse(cls, value: Union['PredictionKind', str]) -> 'PredictionKind':
        """Accept an enum member, its value, or a common alias."""
        if isinstance(value, cls):
            return value
        aliases = {
            'regression': cls.REGRESSION,
            'binary': cls.BINARY_CLASSIFICATION,
            'binary_classification': cls.BINARY_CLASSIFICATION,
            'multiclass': cls.MULTICLASS_CLASSIFICATION,
            'multiclass_classification': cls.MULTICLASS_CLASSIFICATION,
        }
        key = str(value).strip().lower()
        if key not in aliases:
            raise ConfigurationError(
                f"Unknown prediction kind: {value}",
                details={'allowed': sorted(aliases)}
            )
        return aliases[key]


Prediction = Union[float, np.ndarray]


def as_vector(value: Any) -> np.ndarray:
    """Convert a dense or sparse vector prediction to a 1-D float64 array."""
    if sparse.issparse(value):
        if min(value.shape) != 1:
            raise InvalidArgumentError(
                f"Expected a sparse vector, got shape {value.shape}"
            )
        return np.asarray(value.toarray(), dtype=np.float64).ravel()
    array = np.asarray(value, dtype=np.float64)
    if array.ndim == 2 and 1 in array.shape:
        array = array.ravel()
    if array.ndim != 1:
        raise InvalidArgumentError(
            f"Expected a vector prediction, got shape {array.shape}"
        )
    return array


def as_scalar(value: Any) -> float:
    """Convert a scalar-like prediction to float."""
    array = np.asarray(value, dtype=np.float64)
    if array.size != 1:
        raise InvalidArgumentError(
            f"Expected a scalar prediction, got shape {array.shape}"
        )
    return float(array.reshape(-1)[0])


def check_dimensionality(vectors: Sequence[np.ndarray]) -> int:
    """Return the shared dimensionality of ``vectors`` or fail."""
    dims = {len(v) for v in vectors}
    if len(dims) != 1:
        raise InvalidArgumentError(
            f"Vector predictions must share one dimensionality, got {sorted(dims)}",
            details={'dimensions': sorted(dims)}
        )
    return dims.pop()


def check_kind(expected: PredictionKind, actual: PredictionKind, what: str = "component"):
    if expected is not actual:
        raise InvalidArgumentError(
            f"{what} expects {expected.value} predictions, got {actual.value}",
            details={'expected': expected.value, 'actual': actual.value}
        )


def stack_predictions(kind: PredictionKind, predictions: Sequence[Any]) -> np.ndarray:
    """
    Stack one prediction per model into a float64 array.

    Returns shape ``(n_models,)`` for scalar kinds and
    ``(n_models, n_classes)`` for the vector kind.
    """
    if len(predictions) == 0:
        raise InvalidArgumentError("At least one prediction is required")
    if kind.is_vector:
        vectors = [as_vector(p) for p in predictions]
        check_dimensionality(vectors)
        return np.vstack(vectors)
    return np.array([as_scalar(p) for p in predictions], dtype=np.float64)


def l1_normalize(vectors: np.ndarray) -> np.ndarray:
    """Scale each row of non-negative scores to sum to one; all-zero rows are kept."""
    totals = np.abs(vectors).sum(axis=-1, keepdims=True)
    return np.divide(vectors, totals, out=np.zeros_like(vectors), where=totals > 0)
