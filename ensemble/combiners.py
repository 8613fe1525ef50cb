"""
Output combiners: merge the retained models' predictions into one.

``combine`` receives exactly one prediction per retained model, in
retained order, and is a pure function of that input plus any state fixed
when the combiner was fitted.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

import numpy as np
from sklearn.base import clone
from sklearn.linear_model import LinearRegression, LogisticRegression

from patterns.factory import CombinerFactory, register_combiner
from utils.exceptions import ConfigurationError, InvalidArgumentError, InvalidStateError
from utils.logging_config import get_logger
from validation.validators import ChoiceValidator
from .kinds import Prediction, PredictionKind, l1_normalize, stack_predictions
from .metrics import get_quality_metric, model_quality
from .models import FeatureSubsetModel, PredictionCache

logger = get_logger(__name__)

SCALAR_KINDS = (PredictionKind.REGRESSION, PredictionKind.BINARY_CLASSIFICATION)
CLASSIFICATION_KINDS = (PredictionKind.BINARY_CLASSIFICATION, PredictionKind.MULTICLASS_CLASSIFICATION)
ALL_KINDS = tuple(PredictionKind)


class OutputCombiner(ABC):
    """Base class for output combiners."""

    name: str = ""
    supported_kinds = ALL_KINDS

    def __init__(self, kind):
        self.kind = PredictionKind.parse(kind)
        if self.kind not in self.supported_kinds:
            raise ConfigurationError(
                f"{self.name} combiner does not support {self.kind.value} predictions",
                details={'supported': [k.value for k in self.supported_kinds]}
            )

    @property
    def is_fitted(self) -> bool:
        return True

    def fit(self, models: Sequence[FeatureSubsetModel],
            predictions: Optional[PredictionCache] = None) -> 'OutputCombiner':
        """
        Prepare the combiner for the retained ``models``.

        ``predictions``, when given, is a cache aligned with ``models``.
        Stateless combiners do nothing.
        """
        return self

    def combine(self, predictions: Sequence[Any]) -> Prediction:
        """Combine one prediction per retained model into a single prediction."""
        stacked = stack_predictions(self.kind, predictions)
        result = self._combine(stacked)
        if self.kind.is_vector:
            return np.asarray(result, dtype=np.float64)
        return float(result)

    def combine_batch(self, stacked: np.ndarray) -> np.ndarray:
        """
        Combine a batch shaped ``(n_models, n_examples)`` or
        ``(n_models, n_examples, n_classes)``.
        """
        stacked = np.asarray(stacked, dtype=np.float64)
        return np.array([self._combine(stacked[:, row]) for row in range(stacked.shape[1])])

    @abstractmethod
    def _combine(self, stacked: np.ndarray) -> Prediction:
        pass

    def describe(self) -> Dict[str, Any]:
        return {'combiner': self.name, 'kind': self.kind.value}


class _NormalizingCombiner(OutputCombiner):
    """Combiner whose multiclass inputs can be L1-normalised first."""

    def __init__(self, kind, normalize: bool = False):
        super().__init__(kind)
        self.normalize = normalize

    def _prepare(self, stacked: np.ndarray) -> np.ndarray:
        if self.normalize and self.kind.is_vector:
            return l1_normalize(np.clip(stacked, 0.0, None))
        return stacked

    def describe(self) -> Dict[str, Any]:
        description = super().describe()
        description['normalize'] = self.normalize
        return description


@register_combiner('median')
class MedianCombiner(_NormalizingCombiner):
    """Middle value, or mean of the two middle values; element-wise for vectors."""

    name = 'median'

    def _combine(self, stacked):
        return np.median(self._prepare(stacked), axis=0)


@register_combiner('average')
class AverageCombiner(_NormalizingCombiner):
    """Element-wise mean."""

    name = 'average'

    def _combine(self, stacked):
        return np.mean(self._prepare(stacked), axis=0)


@register_combiner('weightedAverage')
class WeightedAverageCombiner(_NormalizingCombiner):
    """
    Mean weighted per model.

    Weights are either given up front or derived in ``fit`` from each
    retained model's quality metric (``weightage``). For metrics where
    lower is better the reciprocal is used.
    """

    name = 'weightedAverage'

    def __init__(self, kind, weights: Optional[Sequence[float]] = None,
                 weightage: Optional[str] = None, normalize: bool = False):
        super().__init__(kind, normalize)
        self.weightage = get_quality_metric(self.kind, weightage)
        self._weights = None if weights is None else self._normalized(weights)

    @property
    def weights(self) -> Optional[np.ndarray]:
        return None if self._weights is None else self._weights.copy()

    @property
    def is_fitted(self) -> bool:
        return self._weights is not None

    @staticmethod
    def _normalized(weights) -> np.ndarray:
        weights = np.asarray(weights, dtype=np.float64).reshape(-1)
        if weights.size == 0 or np.any(weights < 0) or not np.isfinite(weights).all():
            raise InvalidArgumentError(
                f"Weights must be finite and non-negative, got {weights.tolist()}"
            )
        total = weights.sum()
        if total <= 0:
            raise InvalidArgumentError("Weights must have a positive sum")
        return weights / total

    def fit(self, models, predictions=None):
        if self._weights is not None:
            if len(self._weights) != len(models):
                raise InvalidArgumentError(
                    f"{len(self._weights)} weights given for {len(models)} models"
                )
            return self

        values = []
        for index, model in enumerate(models):
            if self.weightage.name in model.metrics:
                values.append(model.metrics[self.weightage.name])
            elif predictions is not None:
                values.append(model_quality(model, index, predictions, self.weightage))
            else:
                raise InvalidArgumentError(
                    f"Model {index} has no '{self.weightage.name}' metric to weight by",
                    details={'model_index': index}
                )

        values = np.asarray(values, dtype=np.float64)
        if not self.weightage.higher_is_better:
            values = 1.0 / np.maximum(values, 1e-12)
        self._weights = self._normalized(np.clip(values, 0.0, None))
        logger.info(f"Weighted average by {self.weightage.name}: {np.round(self._weights, 4).tolist()}")
        return self

    def _combine(self, stacked):
        if self._weights is None:
            raise InvalidStateError("Weighted average combiner has no weights; call fit first")
        if len(self._weights) != stacked.shape[0]:
            raise InvalidArgumentError(
                f"Got {stacked.shape[0]} predictions for {len(self._weights)} weights"
            )
        return np.tensordot(self._weights, self._prepare(stacked), axes=1)

    def describe(self):
        description = super().describe()
        description.update({
            'weightage': self.weightage.name,
            'weights': None if self._weights is None else self._weights.tolist(),
        })
        return description


@register_combiner('vote')
class VotingCombiner(OutputCombiner):
    """
    Majority vote.

    Binary: share of models whose positive-class probability exceeds 0.5.
    Multiclass: per-class vote shares from each model's top class. Ties in
    ``predicted_class`` follow ``tie_break``:

    * ``lowestIndex`` - the smallest tied class index;
    * ``firstInserted`` - the tied class voted for earliest in retained order;
    * ``highestConfidence`` - the tied class with the largest summed score,
      then the smallest index.
    """

    name = 'vote'
    supported_kinds = CLASSIFICATION_KINDS
    TIE_BREAK_POLICIES = ['lowestIndex', 'firstInserted', 'highestConfidence']

    def __init__(self, kind, tie_break: str = 'lowestIndex', threshold: float = 0.5):
        super().__init__(kind)
        try:
            self.tie_break = ChoiceValidator(self.TIE_BREAK_POLICIES, name='tie_break').validate(tie_break)
        except InvalidArgumentError as e:
            raise ConfigurationError(e.message, details=e.details) from e
        self.threshold = threshold

    def _combine(self, stacked):
        if self.kind is PredictionKind.BINARY_CLASSIFICATION:
            return float(np.mean(stacked > self.threshold))
        votes = np.bincount(np.argmax(stacked, axis=1), minlength=stacked.shape[1])
        return votes / float(stacked.shape[0])

    def predicted_class(self, predictions: Sequence[Any]) -> int:
        """Winning class index for one example."""
        stacked = stack_predictions(self.kind, predictions)
        if self.kind is PredictionKind.BINARY_CLASSIFICATION:
            stacked = np.column_stack([1.0 - stacked, stacked])
            choices = (stacked[:, 1] > self.threshold).astype(int)
        else:
            choices = np.argmax(stacked, axis=1)

        votes = np.bincount(choices, minlength=stacked.shape[1])
        tied = np.flatnonzero(votes == votes.max())
        if len(tied) == 1 or self.tie_break == 'lowestIndex':
            return int(tied[0])
        if self.tie_break == 'firstInserted':
            tied_classes = set(tied.tolist())
            return int(next(c for c in choices if c in tied_classes))
        confidence = stacked.sum(axis=0)[tied]
        return int(tied[np.argmax(confidence)])

    def describe(self):
        description = super().describe()
        description.update({'tie_break': self.tie_break, 'threshold': self.threshold})
        return description


@register_combiner('stacking')
class StackingCombiner(OutputCombiner):
    """
    Meta-model over the concatenated sub-model outputs.

    The meta-model is trained once, in ``fit``, on the retained models'
    cached validation predictions and the cache labels. Any scikit-learn
    estimator works; the defaults are ``LinearRegression`` for regression
    and ``LogisticRegression`` for classification.
    """

    name = 'stacking'

    def __init__(self, kind, meta_model: Any = None):
        super().__init__(kind)
        if meta_model is None:
            if self.kind is PredictionKind.REGRESSION:
                meta_model = LinearRegression()
            else:
                meta_model = LogisticRegression(max_iter=1000)
        self._template = meta_model
        self._meta_model = None
        self._n_models: Optional[int] = None
        self._n_classes: Optional[int] = None

    @property
    def is_fitted(self) -> bool:
        return self._meta_model is not None

    @property
    def meta_model(self):
        return self._meta_model

    def fit(self, models, predictions=None):
        if self._meta_model is not None:
            raise InvalidStateError("Stacking meta-model is already trained")
        if predictions is None or predictions.labels is None:
            raise InvalidArgumentError("Stacking needs cached predictions with labels")
        if not models:
            raise InvalidArgumentError("Stacking needs at least one model")

        if predictions.n_models != len(models) or len(predictions) != len(models):
            raise InvalidArgumentError(
                f"Prediction cache holds {len(predictions)} models, stacking was given "
                f"{len(models)}; pass a cache aligned with the retained models"
            )
        blocks = [predictions.get(i) for i in range(len(models))]
        features = np.column_stack([
            b if b.ndim == 2 else b.reshape(-1, 1) for b in blocks
        ])
        labels = predictions.labels
        if self.kind is PredictionKind.BINARY_CLASSIFICATION:
            labels = (np.asarray(labels, dtype=np.float64) > 0).astype(int)
        elif self.kind is PredictionKind.MULTICLASS_CLASSIFICATION:
            labels = np.asarray(labels)
            n_classes = predictions.n_classes
            if not np.issubdtype(labels.dtype, np.number):
                raise InvalidArgumentError(
                    f"Multiclass labels must be class indices, got dtype {labels.dtype}"
                )
            valid = (labels == np.floor(labels)) & (labels >= 0) & (labels < n_classes)
            if not valid.all():
                raise InvalidArgumentError(
                    f"Multiclass labels must be integers in [0, {n_classes}), "
                    f"got {np.unique(labels[~valid]).tolist()}",
                    details={'n_classes': n_classes}
                )
            labels = labels.astype(int)
            self._n_classes = n_classes

        meta_model = clone(self._template)
        try:
            meta_model.fit(features, labels)
        except ValueError as e:
            raise InvalidArgumentError(
                f"Stacking meta-model {type(meta_model).__name__} could not be trained: {e}"
            ) from e
        self._meta_model = meta_model
        self._n_models = len(models)
        logger.info(
            f"Trained stacking meta-model {type(meta_model).__name__} on "
            f"{features.shape[0]} examples x {features.shape[1]} features"
        )
        return self

    def _combine(self, stacked):
        if self._meta_model is None:
            raise InvalidStateError("Stacking combiner used before its meta-model was trained")
        if stacked.shape[0] != self._n_models:
            raise InvalidArgumentError(
                f"Got {stacked.shape[0]} predictions, meta-model was trained on {self._n_models}"
            )
        features = stacked.reshape(1, -1)

        if self.kind is PredictionKind.REGRESSION:
            return float(np.asarray(self._meta_model.predict(features)).reshape(-1)[0])

        proba = np.asarray(self._meta_model.predict_proba(features), dtype=np.float64)[0]
        classes = np.asarray(self._meta_model.classes_).astype(int)
        if self.kind is PredictionKind.BINARY_CLASSIFICATION:
            positive = np.flatnonzero(classes == 1)
            return float(proba[positive[0]]) if len(positive) else 0.0

        full = np.zeros(self._n_classes, dtype=np.float64)
        full[classes] = proba
        return full

    def describe(self):
        description = super().describe()
        description['meta_model'] = type(self._template).__name__
        return description


def create_combiner(name: str, kind, **params) -> OutputCombiner:
    """Create a combiner by configuration name."""
    return CombinerFactory.create(name, kind=kind, **params)
