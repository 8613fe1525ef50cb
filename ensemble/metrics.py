"""
Quality metrics used to rank sub-models and weight their outputs.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    balanced_accuracy_score,
    log_loss,
    mean_absolute_error,
    mean_squared_error,
    r2_score,
    roc_auc_score
)

from utils.exceptions import ConfigurationError, InvalidArgumentError
from .kinds import PredictionKind
from .models import FeatureSubsetModel, PredictionCache

_EPS = 1e-15


@dataclass(frozen=True)
class QualityMetric:
    name: str
    kind: PredictionKind
    higher_is_better: bool
    fn: Callable[[np.ndarray, np.ndarray], float]

    def score(self, predictions: np.ndarray, labels: np.ndarray) -> float:
        if labels is None:
            raise InvalidArgumentError(
                f"Metric '{self.name}' needs labels for the evaluation set"
            )
        if len(predictions) != len(labels):
            raise InvalidArgumentError(
                f"Metric '{self.name}': {len(predictions)} predictions for {len(labels)} labels"
            )
        return float(self.fn(np.asarray(labels), np.asarray(predictions, dtype=np.float64)))

    def better(self, a: float, b: float) -> bool:
        """True when quality ``a`` is strictly better than ``b``."""
        return a > b if self.higher_is_better else a < b


def _binary_labels(labels: np.ndarray) -> np.ndarray:
    return (np.asarray(labels, dtype=np.float64) > 0).astype(int)


def _binary_auc(labels, scores):
    y = _binary_labels(labels)
    # AUC is undefined with a single class present
    if len(np.unique(y)) < 2:
        return 0.5
    return roc_auc_score(y, scores)


def _binary_accuracy(labels, scores):
    return accuracy_score(_binary_labels(labels), (scores > 0.5).astype(int))


def _binary_log_loss(labels, scores):
    probs = np.clip(scores, _EPS, 1 - _EPS)
    return log_loss(_binary_labels(labels), probs, labels=[0, 1])


def _class_labels(labels) -> np.ndarray:
    return np.asarray(labels).astype(int)


def _multiclass_accuracy_micro(labels, probs):
    return accuracy_score(_class_labels(labels), np.argmax(probs, axis=1))


def _multiclass_accuracy_macro(labels, probs):
    return balanced_accuracy_score(_class_labels(labels), np.argmax(probs, axis=1))


def _multiclass_log_loss(labels, probs):
    n_classes = probs.shape[1]
    probs = np.clip(probs, _EPS, None)
    probs = probs / probs.sum(axis=1, keepdims=True)
    return log_loss(_class_labels(labels), probs, labels=list(range(n_classes)))


def _multiclass_log_loss_reduction(labels, probs):
    """Relative improvement of log-loss over the class-prior predictor."""
    y = _class_labels(labels)
    n_classes = probs.shape[1]
    prior = np.bincount(y, minlength=n_classes).astype(np.float64) / len(y)
    prior_probs = np.tile(np.clip(prior, _EPS, None), (len(y), 1))
    prior_loss = _multiclass_log_loss(y, prior_probs)
    if prior_loss == 0:
        return 0.0
    return (prior_loss - _multiclass_log_loss(y, probs)) / prior_loss


_REGISTRY: Dict[PredictionKind, Dict[str, QualityMetric]] = {kind: {} for kind in PredictionKind}


def _register(name: str, kind: PredictionKind, higher_is_better: bool, fn):
    _REGISTRY[kind][name] = QualityMetric(name, kind, higher_is_better, fn)


_register('l2', PredictionKind.REGRESSION, False, mean_squared_error)
_register('l1', PredictionKind.REGRESSION, False, mean_absolute_error)
_register('rms', PredictionKind.REGRESSION, False,
          lambda y, p: float(np.sqrt(mean_squared_error(y, p))))
_register('r_squared', PredictionKind.REGRESSION, True, r2_score)

_register('auc', PredictionKind.BINARY_CLASSIFICATION, True, _binary_auc)
_register('accuracy', PredictionKind.BINARY_CLASSIFICATION, True, _binary_accuracy)
_register('log_loss', PredictionKind.BINARY_CLASSIFICATION, False, _binary_log_loss)

_register('accuracy_micro', PredictionKind.MULTICLASS_CLASSIFICATION, True, _multiclass_accuracy_micro)
_register('accuracy_macro', PredictionKind.MULTICLASS_CLASSIFICATION, True, _multiclass_accuracy_macro)
_register('log_loss', PredictionKind.MULTICLASS_CLASSIFICATION, False, _multiclass_log_loss)
_register('log_loss_reduction', PredictionKind.MULTICLASS_CLASSIFICATION, True,
          _multiclass_log_loss_reduction)

_DEFAULTS = {
    PredictionKind.REGRESSION: 'l2',
    PredictionKind.BINARY_CLASSIFICATION: 'auc',
    PredictionKind.MULTICLASS_CLASSIFICATION: 'accuracy_micro',
}


def get_quality_metric(kind, name: Optional[str] = None) -> QualityMetric:
    """Look up a metric for ``kind``; ``None`` selects the kind's default."""
    kind = PredictionKind.parse(kind)
    name = name or _DEFAULTS[kind]
    if name not in _REGISTRY[kind]:
        raise ConfigurationError(
            f"Unknown {kind.value} quality metric: {name}",
            details={'available': sorted(_REGISTRY[kind])}
        )
    return _REGISTRY[kind][name]


def available_quality_metrics(kind) -> list:
    return sorted(_REGISTRY[PredictionKind.parse(kind)])


def model_quality(model: FeatureSubsetModel, index: int,
                  predictions: PredictionCache, metric: QualityMetric) -> float:
    """
    Quality of the pool model at ``index``.

    A value recorded in ``model.metrics`` wins; otherwise the cached
    predictions are scored against the cache labels.
    """
    if metric.name in model.metrics:
        return model.metrics[metric.name]
    if predictions.labels is None or index not in predictions:
        raise InvalidArgumentError(
            f"No '{metric.name}' value for model {index}: it is not in the model's metrics "
            "and the prediction cache has no labels",
            details={'model_index': index, 'metric': metric.name}
        )
    return metric.score(predictions.get(index), predictions.labels)
