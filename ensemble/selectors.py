"""
Sub-model selectors: prune a trained pool down to the retained subset.

Selectors never mutate the pool. They return a new list holding a subset
of the pool's entries, unchanged, in the order the ensemble will use them.
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Union

import numpy as np

from patterns.factory import SelectorFactory, register_selector
from utils.exceptions import InvalidArgumentError, InvalidStateError
from utils.logging_config import get_logger
from validation.validators import (
    validate_non_negative,
    validate_proportion,
    validate_retained_count
)
from .diversity import DiversityMeasure, create_diversity_measure
from .kinds import PredictionKind, check_kind
from .metrics import QualityMetric, get_quality_metric, model_quality
from .models import FeatureSubsetModel, PredictionCache


class SubModelSelector(ABC):
    """Base class for selection policies, generic over the prediction kind."""

    name: str = ""

    def __init__(self, kind):
        self.kind = PredictionKind.parse(kind)
        self.logger = get_logger(self.__class__.__name__)

    def select(
        self,
        pool: Sequence[FeatureSubsetModel],
        predictions: Optional[PredictionCache] = None
    ) -> List[FeatureSubsetModel]:
        """Return the retained subset of ``pool``."""
        pool = list(pool)
        if predictions is not None:
            check_kind(self.kind, predictions.kind, "Prediction cache")
        retained = self._select(pool, predictions)
        self.logger.info(
            f"{self.name} selector retained {len(retained)}/{len(pool)} {self.kind.value} models"
        )
        return retained

    @abstractmethod
    def _select(self, pool: List[FeatureSubsetModel],
                predictions: Optional[PredictionCache]) -> List[FeatureSubsetModel]:
        pass

    def describe(self) -> dict:
        return {'selector': self.name, 'kind': self.kind.value}


@register_selector('all')
class AllSelector(SubModelSelector):
    """Keeps the whole pool."""

    name = 'all'

    def _select(self, pool, predictions):
        return list(pool)


class _RankingSelector(SubModelSelector):
    """Shared quality ranking and retained-count handling."""

    def __init__(
        self,
        kind,
        metric: Optional[str] = None,
        retained_count: Union[int, str] = 'auto',
        learners_selection_proportion: float = 0.5
    ):
        super().__init__(kind)
        self.metric: QualityMetric = get_quality_metric(self.kind, metric)
        self.retained_count = validate_retained_count(retained_count)
        self.learners_selection_proportion = validate_proportion(
            learners_selection_proportion, name='learners_selection_proportion'
        )

    def target_count(self, n_models: int) -> int:
        if self.retained_count == 'auto':
            return max(1, int(self.learners_selection_proportion * n_models))
        return min(self.retained_count, n_models)

    def qualities(self, pool: List[FeatureSubsetModel],
                  predictions: Optional[PredictionCache]) -> np.ndarray:
        if predictions is not None and not predictions.is_sealed:
            raise InvalidStateError("Prediction cache must be sealed before selection")
        values = []
        for index, model in enumerate(pool):
            if predictions is None:
                if self.metric.name not in model.metrics:
                    raise InvalidArgumentError(
                        f"Model {index} has no '{self.metric.name}' metric and no "
                        "prediction cache was given",
                        details={'model_index': index}
                    )
                values.append(model.metrics[self.metric.name])
            else:
                values.append(model_quality(model, index, predictions, self.metric))
        return np.array(values, dtype=np.float64)

    def rank(self, quality: np.ndarray) -> List[int]:
        """Pool positions from best to worst; ties keep insertion order, NaN sorts last."""
        sign = -1.0 if self.metric.higher_is_better else 1.0

        def key(index):
            value = quality[index]
            if np.isnan(value):
                return (1, 0.0)
            return (0, sign * value)

        return sorted(range(len(quality)), key=key)

    def describe(self) -> dict:
        description = super().describe()
        description.update({
            'metric': self.metric.name,
            'retained_count': self.retained_count,
            'learners_selection_proportion': self.learners_selection_proportion,
        })
        return description


@register_selector('best')
class BestPerformanceSelector(_RankingSelector):
    """Keeps the top models by a quality metric."""

    name = 'best'

    def __init__(self, kind, metric: Optional[str] = None,
                 retained_count: Union[int, str] = 'auto',
                 learners_selection_proportion: float = 0.5,
                 quality_threshold: Optional[float] = None):
        super().__init__(kind, metric, retained_count, learners_selection_proportion)
        self.quality_threshold = quality_threshold

    def _select(self, pool, predictions):
        if not pool:
            return []

        quality = self.qualities(pool, predictions)
        order = self.rank(quality)

        if self.quality_threshold is not None:
            order = [
                i for i in order
                if quality[i] == self.quality_threshold
                or self.metric.better(quality[i], self.quality_threshold)
            ]
            if not order:
                raise InvalidArgumentError(
                    f"No model reaches {self.metric.name} threshold {self.quality_threshold}",
                    details={'qualities': quality.tolist()}
                )

        retained = order[:self.target_count(len(pool))]
        self.logger.debug(
            f"Ranked by {self.metric.name}: "
            + ", ".join(f"#{i}={quality[i]:.4f}" for i in retained)
        )
        return [pool[i] for i in retained]

    def describe(self) -> dict:
        description = super().describe()
        description['quality_threshold'] = self.quality_threshold
        return description


@register_selector('bestDiverse')
class BestDiverseSelector(_RankingSelector):
    """
    Greedy accuracy-then-diversity selection.

    The best model by quality seeds the retained set. Each round then adds
    the candidate whose mean diversity against the retained models is
    highest, breaking ties by quality and then pool order. Selection stops
    at the target count, or earlier when the best candidate's diversity
    falls below ``min_diversity_gain``.
    """

    name = 'bestDiverse'

    def __init__(self, kind, diversity: Optional[str] = None, metric: Optional[str] = None,
                 retained_count: Union[int, str] = 'auto',
                 learners_selection_proportion: float = 0.5,
                 min_diversity_gain: Optional[float] = None,
                 diversity_measure: Optional[DiversityMeasure] = None):
        super().__init__(kind, metric, retained_count, learners_selection_proportion)
        self.diversity_measure = diversity_measure or create_diversity_measure(self.kind, diversity)
        if min_diversity_gain is not None:
            validate_non_negative(min_diversity_gain, name='min_diversity_gain')
        self.min_diversity_gain = min_diversity_gain

    def _select(self, pool, predictions):
        if len(pool) <= 1:
            raise InvalidArgumentError(
                f"Diverse selection needs more than one model, got {len(pool)}"
            )
        if predictions is None:
            raise InvalidArgumentError("Diverse selection needs cached predictions")
        predictions.require_complete(len(pool))

        quality = self.qualities(pool, predictions)
        order = self.rank(quality)
        rank_position = {index: position for position, index in enumerate(order)}
        matrix = self.diversity_measure.pairwise_matrix(
            [predictions.get(i) for i in range(len(pool))]
        )

        target = self.target_count(len(pool))
        retained = [order[0]]
        candidates = [i for i in range(len(pool)) if i != order[0]]

        while len(retained) < target and candidates:
            gains = {c: float(matrix[c, retained].mean()) for c in candidates}
            best = min(candidates, key=lambda c: (-gains[c], rank_position[c]))
            if self.min_diversity_gain is not None and gains[best] < self.min_diversity_gain:
                self.logger.debug(
                    f"Stopping at {len(retained)} models: best gain {gains[best]:.4f} "
                    f"< {self.min_diversity_gain}"
                )
                break
            retained.append(best)
            candidates.remove(best)

        return [pool[i] for i in retained]

    def describe(self) -> dict:
        description = super().describe()
        description.update({
            'diversity': self.diversity_measure.name,
            'min_diversity_gain': self.min_diversity_gain,
        })
        return description


def create_selector(name: str, kind, **params) -> SubModelSelector:
    """Create a selector by configuration name (``all``, ``best``, ``bestDiverse``)."""
    return SelectorFactory.create(name, kind=kind, **params)
