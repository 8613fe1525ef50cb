"""
Diversity measures between sub-models.

Each measure compares models pairwise over a shared evaluation set and
reports a non-negative score per pair; higher means the two models
disagree more. All arithmetic runs in float64 whatever the stored
prediction precision.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Union

import numpy as np
from scipy.spatial.distance import jensenshannon

from patterns.factory import (
    BinaryDiversityFactory,
    MulticlassDiversityFactory,
    RegressionDiversityFactory,
    register_diversity
)
from utils.exceptions import InvalidArgumentError
from .kinds import PredictionKind, l1_normalize
from .models import FeatureSubsetModel


@dataclass(frozen=True)
class ModelDiversityMetric:
    """Diversity between the models at positions ``first`` and ``second``."""
    first: int
    second: int
    diversity: float


PredictionsArg = Union[Sequence[np.ndarray], Mapping[FeatureSubsetModel, np.ndarray]]


class DiversityMeasure(ABC):
    """Base class for pairwise diversity measures."""

    name: str = ""
    vector_input: bool = False

    def calculate_diversity(
        self,
        models: Sequence[FeatureSubsetModel],
        predictions: PredictionsArg
    ) -> List[ModelDiversityMetric]:
        """
        Score every unordered pair of ``models``.

        ``predictions`` is either aligned with ``models`` or a mapping keyed
        by model. Records come back ordered by ``(first, second)`` position.
        """
        arrays = self._aligned(models, predictions)
        matrix = self.pairwise_matrix(arrays)
        n = len(arrays)
        return [
            ModelDiversityMetric(i, j, float(matrix[i, j]))
            for i in range(n)
            for j in range(i + 1, n)
        ]

    def pairwise_matrix(self, predictions: Sequence[np.ndarray]) -> np.ndarray:
        """Symmetric matrix of pair diversities with a zero diagonal."""
        arrays = self._checked(predictions)
        n = len(arrays)
        matrix = np.zeros((n, n), dtype=np.float64)
        for i in range(n):
            for j in range(i + 1, n):
                value = max(0.0, float(self.pair_diversity(arrays[i], arrays[j])))
                matrix[i, j] = matrix[j, i] = value
        return matrix

    @abstractmethod
    def pair_diversity(self, a: np.ndarray, b: np.ndarray) -> float:
        """Diversity between two aligned prediction arrays."""
        pass

    def _aligned(self, models, predictions) -> List[np.ndarray]:
        if len(models) <= 1:
            raise InvalidArgumentError(
                f"Diversity needs more than one model, got {len(models)}"
            )
        if isinstance(predictions, Mapping):
            missing = [i for i, m in enumerate(models) if m not in predictions]
            if missing:
                raise InvalidArgumentError(
                    f"No predictions for models at positions {missing}",
                    details={'missing': missing}
                )
            predictions = [predictions[m] for m in models]
        if len(predictions) != len(models):
            raise InvalidArgumentError(
                f"Got predictions for {len(predictions)} models, expected {len(models)}"
            )
        return list(predictions)

    def _checked(self, predictions: Sequence[np.ndarray]) -> List[np.ndarray]:
        if len(predictions) <= 1:
            raise InvalidArgumentError(
                f"Diversity needs more than one model, got {len(predictions)}"
            )
        ndim = 2 if self.vector_input else 1
        arrays = [np.asarray(p, dtype=np.float64) for p in predictions]
        for position, array in enumerate(arrays):
            if array.ndim != ndim:
                raise InvalidArgumentError(
                    f"{type(self).__name__} expects {ndim}-D predictions, "
                    f"model {position} has shape {array.shape}"
                )
        if len({len(a) for a in arrays}) != 1:
            raise InvalidArgumentError(
                "All models must be evaluated on the same examples",
                details={'lengths': [len(a) for a in arrays]}
            )
        if len(arrays[0]) == 0:
            raise InvalidArgumentError("The evaluation set is empty")
        if self.vector_input and len({a.shape[1] for a in arrays}) != 1:
            raise InvalidArgumentError(
                "All models in one ensemble must emit the same number of classes",
                details={'classes': [a.shape[1] for a in arrays]}
            )
        return arrays


@register_diversity('disagreement', RegressionDiversityFactory)
class RegressionDisagreement(DiversityMeasure):
    """Mean absolute difference between two regressors' outputs."""

    name = 'disagreement'

    def pair_diversity(self, a, b):
        return float(np.mean(np.abs(a - b)))


@register_diversity('squared', RegressionDiversityFactory)
class SquaredDifference(DiversityMeasure):
    """Mean squared difference between two regressors' outputs."""

    name = 'squared'

    def pair_diversity(self, a, b):
        return float(np.mean((a - b) ** 2))


@register_diversity('correlation', RegressionDiversityFactory, BinaryDiversityFactory)
class CorrelationDistance(DiversityMeasure):
    """
    One minus the Pearson correlation of two output series, in [0, 2].

    Uses centred two-pass sums so large constant offsets do not cancel.
    A constant series has no correlation; the pair then scores 0 when the
    series are identical and 1 otherwise.
    """

    name = 'correlation'

    def pair_diversity(self, a, b):
        da = a - a.mean()
        db = b - b.mean()
        var_a = float(np.dot(da, da))
        var_b = float(np.dot(db, db))
        if var_a == 0.0 or var_b == 0.0:
            return 0.0 if np.array_equal(a, b) else 1.0
        r = float(np.dot(da, db)) / np.sqrt(var_a * var_b)
        return float(np.clip(1.0 - r, 0.0, 2.0))


@register_diversity('disagreement', BinaryDiversityFactory)
class BinaryDisagreement(DiversityMeasure):
    """Fraction of examples on which two classifiers predict different labels."""

    name = 'disagreement'

    def __init__(self, threshold: float = 0.5):
        self.threshold = threshold

    def pair_diversity(self, a, b):
        return float(np.mean((a > self.threshold) != (b > self.threshold)))


@register_diversity('disagreement', MulticlassDiversityFactory)
class MulticlassDisagreement(DiversityMeasure):
    """Fraction of examples on which the top-scoring classes differ."""

    name = 'disagreement'
    vector_input = True

    def pair_diversity(self, a, b):
        return float(np.mean(np.argmax(a, axis=1) != np.argmax(b, axis=1)))


@register_diversity('divergence', MulticlassDiversityFactory)
class JensenShannonDivergence(DiversityMeasure):
    """Mean Jensen-Shannon divergence (base 2, in [0, 1]) of class distributions."""

    name = 'divergence'
    vector_input = True

    def pair_diversity(self, a, b):
        p = self._distribution(a)
        q = self._distribution(b)
        distance = jensenshannon(p, q, base=2, axis=1)
        return float(np.mean(np.nan_to_num(distance) ** 2))

    @staticmethod
    def _distribution(scores: np.ndarray) -> np.ndarray:
        probs = l1_normalize(np.clip(scores, 0.0, None))
        empty = probs.sum(axis=1) == 0
        if empty.any():
            probs[empty] = 1.0 / probs.shape[1]
        return probs


_FACTORIES = {
    PredictionKind.REGRESSION: RegressionDiversityFactory,
    PredictionKind.BINARY_CLASSIFICATION: BinaryDiversityFactory,
    PredictionKind.MULTICLASS_CLASSIFICATION: MulticlassDiversityFactory,
}


def create_diversity_measure(kind, name: Optional[str] = None, **kwargs) -> DiversityMeasure:
    """Create the diversity measure called ``name`` for ``kind`` (default: disagreement)."""
    kind = PredictionKind.parse(kind)
    return _FACTORIES[kind].create(name or 'disagreement', **kwargs)
