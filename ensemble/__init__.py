"""
Sub-model selection and output combination for trained model pools.
"""

from ensemble.kinds import PredictionKind, Prediction
from ensemble.models import FeatureSubsetModel, PredictionCache
from ensemble.metrics import (
    QualityMetric,
    get_quality_metric,
    available_quality_metrics,
    model_quality
)
from ensemble.diversity import (
    ModelDiversityMetric,
    DiversityMeasure,
    RegressionDisagreement,
    SquaredDifference,
    CorrelationDistance,
    BinaryDisagreement,
    MulticlassDisagreement,
    JensenShannonDivergence,
    create_diversity_measure
)
from ensemble.selectors import (
    SubModelSelector,
    AllSelector,
    BestPerformanceSelector,
    BestDiverseSelector,
    create_selector
)
from ensemble.combiners import (
    OutputCombiner,
    MedianCombiner,
    AverageCombiner,
    WeightedAverageCombiner,
    VotingCombiner,
    StackingCombiner,
    create_combiner
)
from ensemble.predictor import EnsemblePredictor, PredictorState
from ensemble.trainer import EnsembleTrainer, build_ensemble

__all__ = [
    'PredictionKind',
    'Prediction',
    'FeatureSubsetModel',
    'PredictionCache',
    'QualityMetric',
    'get_quality_metric',
    'available_quality_metrics',
    'model_quality',
    'ModelDiversityMetric',
    'DiversityMeasure',
    'RegressionDisagreement',
    'SquaredDifference',
    'CorrelationDistance',
    'BinaryDisagreement',
    'MulticlassDisagreement',
    'JensenShannonDivergence',
    'create_diversity_measure',
    'SubModelSelector',
    'AllSelector',
    'BestPerformanceSelector',
    'BestDiverseSelector',
    'create_selector',
    'OutputCombiner',
    'MedianCombiner',
    'AverageCombiner',
    'WeightedAverageCombiner',
    'VotingCombiner',
    'StackingCombiner',
    'create_combiner',
    'EnsemblePredictor',
    'PredictorState',
    'EnsembleTrainer',
    'build_ensemble',
]
