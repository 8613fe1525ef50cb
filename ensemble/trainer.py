"""
Build orchestration: evaluate a trained pool, select, fit the combiner and
produce an ``EnsemblePredictor``.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Sequence

from config.config_manager import EnsembleConfig
from utils.error_handlers import ErrorContext
from utils.exceptions import InferenceFailureError, InvalidArgumentError
from utils.logging_config import get_logger
from .combiners import OutputCombiner, create_combiner
from .models import FeatureSubsetModel, PredictionCache
from .predictor import EnsemblePredictor
from .selectors import SubModelSelector, create_selector


class EnsembleTrainer:
    """
    Turns a pool of trained models into a ready ensemble.

    Example:
        >>> trainer = EnsembleTrainer(EnsembleConfig(selector_kind='bestDiverse'))
        >>> ensemble = trainer.build(pool, X_val, y_val)
        >>> ensemble.predict(x)
    """

    def __init__(self, config: Optional[EnsembleConfig] = None):
        self.config = config or EnsembleConfig()
        self.kind = self.config.kind
        self.logger = get_logger(self.__class__.__name__)

    def create_selector(self) -> SubModelSelector:
        return create_selector(self.config.selector_kind, self.kind, **self.config.selector_params())

    def create_combiner(self) -> OutputCombiner:
        return create_combiner(self.config.combiner_kind, self.kind, **self.config.combiner_params())

    def evaluate_pool(self, pool: Sequence[FeatureSubsetModel], X_val, y_val=None) -> PredictionCache:
        """
        Score every model on the validation set and return a sealed cache.

        Models are scored concurrently; each task writes only its own slot.
        The cache is sealed after every task has finished.
        """
        pool = list(pool)
        if not pool:
            raise InvalidArgumentError("Cannot evaluate an empty pool")
        cache = PredictionCache(self.kind, len(pool), labels=y_val)

        def evaluate(index: int):
            model = pool[index]
            try:
                outputs = model.score(X_val, self.kind)
            except Exception as e:
                raise InferenceFailureError(
                    f"Model {index} ({type(model.predictor).__name__}) failed on validation data: {e}",
                    model_index=index
                ) from e
            cache.put(index, outputs)

        workers = min(self.config.max_workers, len(pool))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(evaluate, index) for index in range(len(pool))]
        # Leaving the executor joins every task; re-raise the first failure in pool order
        for future in futures:
            future.result()

        self.logger.info(f"Evaluated {len(pool)} models on {cache.n_examples} validation examples")
        return cache.seal()

    def _prediction_cache(self, pool: List[FeatureSubsetModel], X_val, y_val) -> Optional[PredictionCache]:
        if X_val is not None:
            return self.evaluate_pool(pool, X_val, y_val)
        if all(model.validation_predictions is not None for model in pool):
            self.logger.info("Reusing validation predictions carried by the pool")
            return PredictionCache.from_models(self.kind, pool, labels=y_val)
        return None

    def build(self, pool: Sequence[FeatureSubsetModel], X_val=None, y_val=None,
              n_features: Optional[int] = None) -> EnsemblePredictor:
        """
        Select from ``pool``, fit the combiner and return a ready predictor.

        Args:
            pool: Trained models with their feature subsets
            X_val: Validation features; when omitted, the models' own
                ``validation_predictions`` are used if every model has them
            y_val: Validation labels, needed by metric-based selection and stacking
            n_features: Size of the shared feature space
        """
        pool = list(pool)
        if not pool:
            raise InvalidArgumentError("Cannot build an ensemble from an empty pool")

        with ErrorContext(f"build {self.kind.value} ensemble", self.__class__.__name__):
            predictions = self._prediction_cache(pool, X_val, y_val)

            selector = self.create_selector()
            retained = selector.select(pool, predictions)

            retained_predictions = None
            if predictions is not None:
                positions = {id(model): index for index, model in enumerate(pool)}
                retained_predictions = predictions.subset([positions[id(m)] for m in retained])

            combiner = self.create_combiner()
            combiner.fit(retained, retained_predictions)

            return EnsemblePredictor.create(self.kind, retained, combiner, n_features=n_features)

    def combine_models(self, predictors: Sequence[Any],
                       combiner: Optional[OutputCombiner] = None) -> EnsemblePredictor:
        """
        Wrap already-trained predictors over all features into one ensemble,
        without selection.
        """
        predictors = list(predictors)
        if not predictors:
            raise InvalidArgumentError("combine_models needs at least one predictor")

        models = [
            p if isinstance(p, FeatureSubsetModel) else FeatureSubsetModel(p)
            for p in predictors
        ]
        for index, model in enumerate(models):
            if not model.uses_all_features:
                raise InvalidArgumentError(
                    f"Model {index} is restricted to a feature subset; combine_models "
                    "expects predictors over all features",
                    details={'model_index': index}
                )

        if combiner is None:
            combiner = self.create_combiner()
        if not combiner.is_fitted:
            combiner.fit(models)

        self.logger.info(f"Combining {len(models)} predictors with {combiner.name}")
        return EnsemblePredictor.create(self.kind, models, combiner)


def build_ensemble(pool: Sequence[FeatureSubsetModel], X_val=None, y_val=None,
                   config: Optional[EnsembleConfig] = None, **overrides) -> EnsemblePredictor:
    """Convenience wrapper: ``EnsembleTrainer(config).build(...)``."""
    if overrides:
        values = (config or EnsembleConfig()).to_dict()
        values.update(overrides)
        config = EnsembleConfig.from_dict(values)
    return EnsembleTrainer(config).build(pool, X_val, y_val)
