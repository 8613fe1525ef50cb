"""
The deployable ensemble: retained sub-models plus one output combiner.
"""
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from scipy import sparse

from utils.exceptions import (
    InferenceFailureError,
    InvalidArgumentError,
    InvalidStateError
)
from utils.logging_config import get_logger
from .combiners import OutputCombiner
from .kinds import Prediction, PredictionKind, check_kind
from .models import FeatureSubsetModel

logger = get_logger(__name__)


class PredictorState(Enum):
    UNBUILT = "unbuilt"
    READY = "ready"


class EnsemblePredictor:
    """
    Ensemble of retained sub-models combined by an ``OutputCombiner``.

    A predictor starts UNBUILT and becomes READY once ``build`` succeeds.
    A READY predictor rejects attribute assignment, holds its models in a
    tuple and keeps no per-call state, so any number of threads may call
    ``predict`` on it concurrently.
    """

    def __init__(self, kind):
        self.kind = PredictionKind.parse(kind)
        self._models: Tuple[FeatureSubsetModel, ...] = ()
        self._combiner: Optional[OutputCombiner] = None
        self._n_features: Optional[int] = None
        self._state = PredictorState.UNBUILT

    def __setattr__(self, name, value):
        if getattr(self, '_state', None) is PredictorState.READY:
            raise InvalidStateError(
                f"EnsemblePredictor is immutable once built (tried to set '{name}')"
            )
        super().__setattr__(name, value)

    def __delattr__(self, name):
        if getattr(self, '_state', None) is PredictorState.READY:
            raise InvalidStateError("EnsemblePredictor is immutable once built")
        super().__delattr__(name)

    @classmethod
    def create(cls, kind, models: Sequence[FeatureSubsetModel], combiner: OutputCombiner,
               n_features: Optional[int] = None) -> 'EnsemblePredictor':
        """Construct and build in one step."""
        return cls(kind).build(models, combiner, n_features=n_features)

    def build(self, models: Sequence[FeatureSubsetModel], combiner: OutputCombiner,
              n_features: Optional[int] = None) -> 'EnsemblePredictor':
        """
        Take ownership of the retained models and the combiner, then freeze.

        Args:
            models: Retained models, in the order the combiner expects
            combiner: A fitted combiner of the same prediction kind
            n_features: Size of the shared feature space, checked against
                every model's feature subset when given
        """
        if self._state is PredictorState.READY:
            raise InvalidStateError("EnsemblePredictor is already built")

        models = tuple(models)
        if not models:
            raise InvalidArgumentError("An ensemble needs at least one model")
        for index, model in enumerate(models):
            if not isinstance(model, FeatureSubsetModel):
                raise InvalidArgumentError(
                    f"Model {index} is a {type(model).__name__}, expected FeatureSubsetModel",
                    details={'model_index': index}
                )
        if not isinstance(combiner, OutputCombiner):
            raise InvalidArgumentError(
                f"Expected an OutputCombiner, got {type(combiner).__name__}"
            )
        check_kind(self.kind, combiner.kind, "Combiner")
        if not combiner.is_fitted:
            raise InvalidStateError(f"The {combiner.name} combiner must be fitted before build")
        if n_features is not None:
            for model in models:
                model.validate_features(n_features)

        self._models = models
        self._combiner = combiner
        self._n_features = n_features
        self._state = PredictorState.READY

        logger.info(
            f"Built {self.kind.value} ensemble of {len(models)} models with {combiner.name} combiner"
        )
        return self

    @property
    def state(self) -> PredictorState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is PredictorState.READY

    @property
    def models(self) -> Tuple[FeatureSubsetModel, ...]:
        return self._models

    @property
    def combiner(self) -> Optional[OutputCombiner]:
        return self._combiner

    @property
    def n_models(self) -> int:
        return len(self._models)

    def _require_ready(self):
        if self._state is not PredictorState.READY:
            raise InvalidStateError("EnsemblePredictor must be built before predicting")

    def _check_width(self, X):
        if self._n_features is not None and X.shape[-1] != self._n_features:
            raise InvalidArgumentError(
                f"Input has {X.shape[-1]} features, ensemble was built for {self._n_features}"
            )

    def _score_all(self, X) -> list:
        outputs = []
        for index, model in enumerate(self._models):
            try:
                outputs.append(model.score(X, self.kind))
            except Exception as e:
                raise InferenceFailureError(
                    f"Sub-model {index} ({type(model.predictor).__name__}) failed: {e}",
                    model_index=index
                ) from e
        return outputs

    def _as_row(self, x):
        if sparse.issparse(x):
            row = sparse.csr_matrix(x)
        else:
            row = np.asarray(x)
            if row.ndim == 1:
                row = row.reshape(1, -1)
        if row.ndim != 2 or row.shape[0] != 1:
            raise InvalidArgumentError(
                f"predict expects a single row, got shape {row.shape}; use predict_batch"
            )
        return row

    def predict(self, x) -> Prediction:
        """Combined prediction for one input row (dense 1-D array or sparse row)."""
        self._require_ready()
        row = self._as_row(x)
        self._check_width(row)
        outputs = self._score_all(row)
        return self._combiner.combine([output[0] for output in outputs])

    def predict_batch(self, X) -> np.ndarray:
        """Combined predictions for every row of a dense or sparse 2-D input."""
        self._require_ready()
        if not sparse.issparse(X):
            X = np.asarray(X)
            if X.ndim != 2:
                raise InvalidArgumentError(f"predict_batch expects a 2-D input, got shape {X.shape}")
        self._check_width(X)
        outputs = self._score_all(X)
        if self.kind.is_vector:
            widths = sorted({output.shape[1] for output in outputs})
            if len(widths) != 1:
                raise InvalidArgumentError(
                    f"Sub-models emit different class counts: {widths}",
                    details={'dimensions': widths}
                )
        return self._combiner.combine_batch(np.stack(outputs))

    def predict_class(self, x) -> int:
        """Predicted class index for one input row (classification ensembles only)."""
        self._require_ready()
        if not self.kind.is_classification:
            raise InvalidArgumentError("predict_class is only defined for classification ensembles")
        row = self._as_row(x)
        self._check_width(row)
        outputs = [output[0] for output in self._score_all(row)]

        if hasattr(self._combiner, 'predicted_class'):
            return self._combiner.predicted_class(outputs)
        combined = self._combiner.combine(outputs)
        if self.kind is PredictionKind.BINARY_CLASSIFICATION:
            return int(combined > 0.5)
        return int(np.argmax(combined))

    def metadata(self) -> Dict[str, Any]:
        """What a serialization layer needs to rebuild this ensemble from the same models."""
        self._require_ready()
        return {
            'prediction_kind': self.kind.value,
            'n_models': len(self._models),
            'n_features': self._n_features,
            'combiner': self._combiner.describe(),
            'feature_subsets': [
                None if m.feature_subset is None else list(m.feature_subset)
                for m in self._models
            ],
        }

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(kind={self.kind.value}, state={self._state.value}, "
            f"n_models={len(self._models)})"
        )
