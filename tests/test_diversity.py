"""Tests for diversity measures and quality metrics."""
import pytest
import numpy as np

from ensemble import (
    FeatureSubsetModel,
    PredictionCache,
    ModelDiversityMetric,
    RegressionDisagreement,
    CorrelationDistance,
    BinaryDisagreement,
    MulticlassDisagreement,
    JensenShannonDivergence,
    create_diversity_measure,
    get_quality_metric,
    available_quality_metrics,
    model_quality
)
from utils.exceptions import ConfigurationError, InvalidArgumentError


class NullPredictor:
    def predict(self, X):
        return np.zeros(X.shape[0])


def make_models(n):
    return [FeatureSubsetModel(NullPredictor()) for _ in range(n)]


class TestDiversityRecords:
    """Tests for pairwise diversity records."""

    def test_records_ordered_by_pair(self):
        """Test one record per unordered pair, in (first, second) order."""
        measure = RegressionDisagreement()
        predictions = [np.array([0.0, 0.0]), np.array([1.0, 3.0]), np.array([0.0, 1.0])]
        records = measure.calculate_diversity(make_models(3), predictions)

        assert [(r.first, r.second) for r in records] == [(0, 1), (0, 2), (1, 2)]
        assert all(isinstance(r, ModelDiversityMetric) for r in records)
        assert np.isclose(records[0].diversity, 2.0)
        assert np.isclose(records[1].diversity, 0.5)
        assert np.isclose(records[2].diversity, 1.5)

    def test_mapping_predictions(self):
        """Test predictions keyed by model."""
        models = make_models(2)
        predictions = {models[1]: np.array([2.0]), models[0]: np.array([0.0])}
        records = RegressionDisagreement().calculate_diversity(models, predictions)
        assert np.isclose(records[0].diversity, 2.0)

    def test_mapping_missing_model(self):
        """Test a model absent from the mapping is reported."""
        models = make_models(2)
        with pytest.raises(InvalidArgumentError):
            RegressionDisagreement().calculate_diversity(models, {models[0]: np.array([0.0])})

    def test_single_model_rejected(self):
        """Test diversity needs at least two models."""
        with pytest.raises(InvalidArgumentError):
            RegressionDisagreement().calculate_diversity(make_models(1), [np.array([1.0])])

    def test_mismatched_lengths(self):
        """Test models evaluated on different example counts are rejected."""
        with pytest.raises(InvalidArgumentError):
            RegressionDisagreement().calculate_diversity(
                make_models(2), [np.array([1.0, 2.0]), np.array([1.0])]
            )

    def test_empty_evaluation_set(self):
        """Test an empty evaluation set is rejected."""
        with pytest.raises(InvalidArgumentError):
            RegressionDisagreement().calculate_diversity(make_models(2), [np.array([]), np.array([])])

    def test_matrix_is_symmetric_and_non_negative(self):
        """Test the pairwise matrix shape and sign."""
        rng = np.random.RandomState(0)
        predictions = [rng.randn(20) for _ in range(4)]
        for name in ('disagreement', 'squared', 'correlation'):
            matrix = create_diversity_measure('regression', name).pairwise_matrix(predictions)
            assert np.allclose(matrix, matrix.T)
            assert np.allclose(np.diag(matrix), 0.0)
            assert (matrix >= 0).all()

    def test_deterministic(self):
        """Test repeated calls give identical records."""
        rng = np.random.RandomState(1)
        predictions = [rng.rand(15) for _ in range(3)]
        measure = create_diversity_measure('binary')
        first = measure.calculate_diversity(make_models(3), predictions)
        second = measure.calculate_diversity(make_models(3), predictions)
        assert first == second


class TestRegressionMeasures:
    """Tests for regression diversity."""

    def test_correlation_large_offset(self):
        """Test correlation is stable on values with a large common offset."""
        base = np.array([1.0, 2.0, 3.0, 4.0])
        measure = CorrelationDistance()
        assert np.isclose(measure.pair_diversity(1e9 + base, 1e9 + 2 * base), 0.0, atol=1e-9)
        assert np.isclose(measure.pair_diversity(1e9 + base, 1e9 + base[::-1]), 2.0)

    def test_correlation_constant_series(self):
        """Test constant outputs are handled without dividing by zero."""
        measure = CorrelationDistance()
        constant = np.array([3.0, 3.0, 3.0])
        assert measure.pair_diversity(constant, constant.copy()) == 0.0
        assert measure.pair_diversity(constant, np.array([1.0, 2.0, 3.0])) == 1.0


class TestClassificationMeasures:
    """Tests for classifier diversity."""

    def test_binary_disagreement(self):
        """Test thresholded label disagreement."""
        a = np.array([0.9, 0.1, 0.8])
        b = np.array([0.7, 0.6, 0.2])
        assert np.isclose(BinaryDisagreement().pair_diversity(a, b), 2.0 / 3.0)

    def test_multiclass_disagreement(self):
        """Test top-class disagreement."""
        a = np.array([[0.9, 0.1], [0.2, 0.8]])
        b = np.array([[0.6, 0.4], [0.7, 0.3]])
        assert np.isclose(MulticlassDisagreement().pair_diversity(a, b), 0.5)

    def test_jensen_shannon_bounds(self):
        """Test divergence is 0 for identical and 1 for disjoint distributions."""
        measure = JensenShannonDivergence()
        p = np.array([[1.0, 0.0], [0.5, 0.5]])
        assert np.isclose(measure.pair_diversity(p, p.copy()), 0.0)
        assert np.isclose(measure.pair_diversity(np.array([[1.0, 0.0]]), np.array([[0.0, 1.0]])), 1.0)

    def test_class_count_mismatch(self):
        """Test models with different class counts are rejected."""
        with pytest.raises(InvalidArgumentError):
            MulticlassDisagreement().pairwise_matrix(
                [np.array([[0.5, 0.5]]), np.array([[0.2, 0.3, 0.5]])]
            )

    def test_unknown_measure(self):
        """Test unknown names and kind mismatches are configuration errors."""
        with pytest.raises(ConfigurationError):
            create_diversity_measure('multiclass', 'correlation')
        with pytest.raises(ConfigurationError):
            create_diversity_measure('regression', 'divergence')


class TestQualityMetrics:
    """Tests for quality metric lookup and scoring."""

    def test_defaults(self):
        """Test each kind's default metric."""
        assert get_quality_metric('regression').name == 'l2'
        assert get_quality_metric('binary').name == 'auc'
        assert get_quality_metric('multiclass').name == 'accuracy_micro'

    def test_unknown_metric(self):
        """Test unknown metric names."""
        with pytest.raises(ConfigurationError):
            get_quality_metric('regression', 'auc')

    def test_available(self):
        """Test listing metrics."""
        assert 'r_squared' in available_quality_metrics('regression')
        assert 'log_loss_reduction' in available_quality_metrics('multiclass')

    def test_auc_single_class(self):
        """Test AUC with a single class present is neutral."""
        metric = get_quality_metric('binary', 'auc')
        assert metric.score(np.array([0.2, 0.9]), np.array([1, 1])) == 0.5

    def test_better(self):
        """Test direction of comparison."""
        assert get_quality_metric('regression', 'l2').better(0.1, 0.2)
        assert get_quality_metric('binary', 'accuracy').better(0.9, 0.8)

    def test_model_quality_prefers_recorded_metric(self):
        """Test recorded metrics win over cached predictions."""
        metric = get_quality_metric('regression', 'l2')
        cache = PredictionCache('regression', 1, labels=[1.0, 1.0])
        cache.put(0, [0.0, 0.0])
        cache.seal()

        recorded = FeatureSubsetModel(NullPredictor(), metrics={'l2': 0.25})
        assert model_quality(recorded, 0, cache, metric) == 0.25
        assert model_quality(FeatureSubsetModel(NullPredictor()), 0, cache, metric) == 1.0

    def test_model_quality_needs_labels(self):
        """Test scoring without labels fails."""
        metric = get_quality_metric('regression', 'l2')
        cache = PredictionCache('regression', 1)
        cache.put(0, [0.0])
        with pytest.raises(InvalidArgumentError):
            model_quality(FeatureSubsetModel(NullPredictor()), 0, cache.seal(), metric)
