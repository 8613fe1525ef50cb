"""
Model pool entries and the write-once prediction cache.
"""
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy import sparse
from scipy.special import expit, softmax

from utils.exceptions import InvalidArgumentError, InvalidStateError
from .kinds import PredictionKind


def _read_only(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class FeatureSubsetModel:
    """
    A trained predictor bound to the feature indices it was trained on.

    ``feature_subset=None`` means the model sees every feature. Indices keep
    the order the model was trained with. Entries compare by identity: one
    entry is one member of a pool.
    """
    predictor: Any
    feature_subset: Optional[Tuple[int, ...]] = None
    metrics: Mapping[str, float] = field(default_factory=dict)
    validation_predictions: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.predictor is None:
            raise InvalidArgumentError("FeatureSubsetModel requires a predictor")

        if self.feature_subset is not None:
            subset = tuple(int(i) for i in self.feature_subset)
            if len(subset) == 0:
                raise InvalidArgumentError(
                    "feature_subset must be None (all features) or non-empty"
                )
            if any(i < 0 for i in subset):
                raise InvalidArgumentError(
                    f"feature_subset indices must be non-negative, got {subset}"
                )
            if len(set(subset)) != len(subset):
                raise InvalidArgumentError(
                    f"feature_subset indices must be unique, got {subset}"
                )
            object.__setattr__(self, 'feature_subset', subset)

        object.__setattr__(
            self, 'metrics',
            MappingProxyType({str(k): float(v) for k, v in dict(self.metrics).items()})
        )

        if self.validation_predictions is not None:
            predictions = np.array(self.validation_predictions, dtype=np.float64)
            object.__setattr__(self, 'validation_predictions', _read_only(predictions))

    @property
    def uses_all_features(self) -> bool:
        return self.feature_subset is None

    def validate_features(self, n_features: int):
        """Check every subset index against the shared feature space size."""
        if self.feature_subset is None:
            return
        out_of_range = [i for i in self.feature_subset if i >= n_features]
        if out_of_range:
            raise InvalidArgumentError(
                f"Feature indices {out_of_range} are out of range for {n_features} features",
                details={'n_features': n_features, 'invalid_indices': out_of_range}
            )

    def project(self, X):
        """Restrict a row, a batch or a sparse matrix to this model's features."""
        if self.feature_subset is None:
            return X
        index = list(self.feature_subset)
        try:
            if sparse.issparse(X):
                return sparse.csr_matrix(X)[:, index]
            X = np.asarray(X)
            if X.ndim == 1:
                return X[index]
            return X[:, index]
        except IndexError as e:
            raise InvalidArgumentError(
                f"Input does not cover feature subset {self.feature_subset}: {e}"
            ) from e

    def score(self, X, kind: PredictionKind) -> np.ndarray:
        """
        Run the predictor on a batch and return outputs in the kind's convention.

        Regression yields ``predict``; binary yields the positive-class
        probability; multiclass yields one class-probability vector per row.
        """
        X_sub = self.project(X)
        if not sparse.issparse(X_sub):
            X_sub = np.asarray(X_sub)
            if X_sub.ndim == 1:
                X_sub = X_sub.reshape(1, -1)

        predictor = self.predictor

        if kind is PredictionKind.REGRESSION:
            return np.asarray(predictor.predict(X_sub), dtype=np.float64).reshape(-1)

        if kind is PredictionKind.BINARY_CLASSIFICATION:
            if hasattr(predictor, 'predict_proba'):
                proba = np.asarray(predictor.predict_proba(X_sub), dtype=np.float64)
                return proba[:, -1] if proba.ndim == 2 else proba.reshape(-1)
            if hasattr(predictor, 'decision_function'):
                margin = np.asarray(predictor.decision_function(X_sub), dtype=np.float64)
                return expit(margin.reshape(-1))
            return np.asarray(predictor.predict(X_sub), dtype=np.float64).reshape(-1)

        if hasattr(predictor, 'predict_proba'):
            return np.atleast_2d(np.asarray(predictor.predict_proba(X_sub), dtype=np.float64))
        if hasattr(predictor, 'decision_function'):
            margin = np.atleast_2d(np.asarray(predictor.decision_function(X_sub), dtype=np.float64))
            return softmax(margin, axis=1)
        raise InvalidArgumentError(
            f"{type(predictor).__name__} exposes neither predict_proba nor decision_function; "
            "multiclass ensembles need class scores"
        )


class PredictionCache:
    """
    Arena-indexed cache of validation predictions, one slot per pool model.

    Evaluators may write concurrently, each slot exactly once. ``seal()``
    marks evaluation as complete; selectors only read sealed caches.
    """

    def __init__(self, kind, n_models: int, labels: Optional[Sequence] = None):
        self.kind = PredictionKind.parse(kind)
        if isinstance(n_models, bool) or not isinstance(n_models, (int, np.integer)) or n_models < 0:
            raise InvalidArgumentError(f"n_models must be a non-negative integer, got {n_models}")

        self._slots: List[Optional[np.ndarray]] = [None] * int(n_models)
        self._lock = threading.Lock()
        self._sealed = False
        self._n_classes: Optional[int] = None

        if labels is not None:
            self._labels = _read_only(np.array(labels).reshape(-1))
            self._n_examples: Optional[int] = len(self._labels)
        else:
            self._labels = None
            self._n_examples = None

    @classmethod
    def from_models(cls, kind, pool: Sequence[FeatureSubsetModel],
                    labels: Optional[Sequence] = None) -> 'PredictionCache':
        """Build a sealed cache from each model's held-out predictions."""
        cache = cls(kind, len(pool), labels=labels)
        for index, model in enumerate(pool):
            if model.validation_predictions is None:
                raise InvalidArgumentError(
                    f"Model {index} carries no validation predictions",
                    details={'model_index': index}
                )
            cache.put(index, model.validation_predictions)
        return cache.seal()

    @property
    def labels(self) -> Optional[np.ndarray]:
        return self._labels

    @property
    def n_models(self) -> int:
        return len(self._slots)

    @property
    def n_examples(self) -> Optional[int]:
        return self._n_examples

    @property
    def n_classes(self) -> Optional[int]:
        return self._n_classes

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def _coerce(self, predictions) -> np.ndarray:
        if sparse.issparse(predictions):
            predictions = predictions.toarray()
        array = np.array(predictions, dtype=np.float64)
        if self.kind.is_vector:
            if array.ndim != 2:
                raise InvalidArgumentError(
                    f"Multiclass predictions must be 2-D (examples x classes), got shape {array.shape}"
                )
        else:
            if array.ndim == 2 and array.shape[1] == 1:
                array = array.ravel()
            if array.ndim != 1:
                raise InvalidArgumentError(
                    f"Scalar predictions must be 1-D, got shape {array.shape}"
                )
        return _read_only(array)

    def put(self, index: int, predictions) -> None:
        """Store the predictions of the model at pool position ``index``."""
        array = self._coerce(predictions)
        with self._lock:
            if self._sealed:
                raise InvalidStateError("Prediction cache is sealed")
            if not 0 <= index < len(self._slots):
                raise InvalidArgumentError(
                    f"Model index {index} is outside the pool of {len(self._slots)} models"
                )
            if self._slots[index] is not None:
                raise InvalidStateError(
                    f"Predictions for model {index} were already cached",
                    details={'model_index': index}
                )
            if self._n_examples is not None and len(array) != self._n_examples:
                raise InvalidArgumentError(
                    f"Model {index} produced {len(array)} predictions, expected {self._n_examples}",
                    details={'model_index': index}
                )
            if self.kind.is_vector:
                if self._n_classes is not None and array.shape[1] != self._n_classes:
                    raise InvalidArgumentError(
                        f"Model {index} emits {array.shape[1]} classes, expected {self._n_classes}",
                        details={'model_index': index}
                    )
                self._n_classes = array.shape[1]
            self._n_examples = len(array)
            self._slots[index] = array

    def subset(self, indices: Sequence[int]) -> 'PredictionCache':
        """A sealed cache whose slot ``k`` holds this cache's slot ``indices[k]``."""
        child = PredictionCache(self.kind, len(indices), labels=self._labels)
        for position, index in enumerate(indices):
            child.put(position, self.get(index))
        return child.seal()

    def seal(self) -> 'PredictionCache':
        with self._lock:
            self._sealed = True
        return self

    def get(self, index: int) -> np.ndarray:
        if not 0 <= index < len(self._slots) or self._slots[index] is None:
            raise InvalidArgumentError(
                f"No predictions cached for model {index}",
                details={'model_index': index}
            )
        return self._slots[index]

    def __contains__(self, index) -> bool:
        return isinstance(index, (int, np.integer)) and 0 <= index < len(self._slots) \
            and self._slots[index] is not None

    def __len__(self) -> int:
        return sum(1 for slot in self._slots if slot is not None)

    def require_complete(self, n_models: int):
        """Fail unless the cache is sealed and covers exactly ``n_models`` models."""
        if not self._sealed:
            raise InvalidStateError("Prediction cache must be sealed before selection")
        if n_models != len(self._slots) or len(self) != n_models:
            missing = [i for i, slot in enumerate(self._slots) if slot is None]
            raise InvalidArgumentError(
                f"Prediction cache covers {len(self)} of {n_models} models",
                details={'cache_slots': len(self._slots), 'missing': missing}
            )
