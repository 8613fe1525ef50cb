"""Tests for sub-model selectors."""
import pytest
import numpy as np

from ensemble import (
    FeatureSubsetModel,
    PredictionCache,
    AllSelector,
    BestPerformanceSelector,
    BestDiverseSelector,
    create_selector
)
from utils.exceptions import ConfigurationError, InvalidArgumentError, InvalidStateError

LABELS = np.array([0.0, 1.0, 2.0, 3.0])


class ConstantRegressor:
    def __init__(self, value):
        self.value = value

    def predict(self, X):
        return np.full(X.shape[0], self.value, dtype=np.float64)


def pool_with_metrics(values, name='l2'):
    return [FeatureSubsetModel(ConstantRegressor(v), metrics={name: v}) for v in values]


def filled_cache(predictions, labels=LABELS, kind='regression'):
    cache = PredictionCache(kind, len(predictions), labels=labels)
    for index, values in enumerate(predictions):
        cache.put(index, values)
    return cache.seal()


def diverse_setup():
    """A exact, B close to A, C far from both."""
    predictions = [
        LABELS.copy(),
        LABELS + 0.1,
        LABELS + np.array([0.5, -0.5, 0.5, -0.5]),
    ]
    pool = [FeatureSubsetModel(ConstantRegressor(0.0)) for _ in predictions]
    return pool, filled_cache(predictions)


class TestAllSelector:
    """Tests for select-all."""

    def test_keeps_every_model(self):
        """Test the whole pool is returned in order."""
        pool = pool_with_metrics([3.0, 1.0, 2.0])
        selected = AllSelector('regression').select(pool)
        assert selected == pool
        assert selected is not pool

    def test_single_model_pool(self):
        """Test a pool of one."""
        pool = pool_with_metrics([1.0])
        selected = AllSelector('regression').select(pool)
        assert len(selected) == 1 and selected[0] is pool[0]

    def test_does_not_mutate_pool(self):
        """Test the input list is left alone."""
        pool = pool_with_metrics([1.0, 2.0])
        snapshot = list(pool)
        AllSelector('regression').select(pool)
        assert pool == snapshot

    def test_cache_kind_checked(self):
        """Test a cache of another kind is rejected."""
        pool = pool_with_metrics([1.0])
        cache = filled_cache([[0.5, 0.5, 0.5, 0.5]], labels=[0, 1, 0, 1], kind='binary')
        with pytest.raises(InvalidArgumentError):
            AllSelector('regression').select(pool, cache)


class TestBestPerformanceSelector:
    """Tests for best-by-metric selection."""

    def test_auto_retains_proportion(self):
        """Test the default keeps the better half by quality."""
        pool = pool_with_metrics([3.0, 1.0, 2.0, 0.5])
        selected = BestPerformanceSelector('regression', metric='l2').select(pool)
        assert selected == [pool[3], pool[1]]

    def test_retained_count(self):
        """Test explicit counts, capped at the pool size."""
        pool = pool_with_metrics([3.0, 1.0, 2.0, 0.5])
        assert BestPerformanceSelector('regression', retained_count=3).select(pool) == [pool[3], pool[1], pool[2]]
        assert len(BestPerformanceSelector('regression', retained_count=10).select(pool)) == 4

    def test_auto_keeps_at_least_one(self):
        """Test a tiny proportion still retains one model."""
        pool = pool_with_metrics([2.0, 1.0])
        selector = BestPerformanceSelector('regression', learners_selection_proportion=0.1)
        assert selector.select(pool) == [pool[1]]

    def test_higher_is_better(self):
        """Test ranking direction follows the metric."""
        pool = pool_with_metrics([0.2, 0.9, 0.5], name='r_squared')
        selector = BestPerformanceSelector('regression', metric='r_squared', retained_count=1)
        assert selector.select(pool) == [pool[1]]

    def test_ties_keep_pool_order(self):
        """Test equal qualities keep insertion order."""
        pool = pool_with_metrics([1.0, 1.0, 1.0])
        selector = BestPerformanceSelector('regression', retained_count=2)
        assert selector.select(pool) == [pool[0], pool[1]]

    def test_quality_threshold(self):
        """Test models missing the threshold are dropped."""
        pool = pool_with_metrics([3.0, 1.0, 2.0, 0.5])
        selector = BestPerformanceSelector('regression', retained_count=3, quality_threshold=1.0)
        assert selector.select(pool) == [pool[3], pool[1]]

    def test_quality_threshold_rejects_all(self):
        """Test a threshold nobody meets is an error."""
        pool = pool_with_metrics([3.0, 2.0])
        selector = BestPerformanceSelector('regression', quality_threshold=0.1)
        with pytest.raises(InvalidArgumentError):
            selector.select(pool)

    def test_quality_from_cache(self):
        """Test qualities computed from cached predictions."""
        pool = [FeatureSubsetModel(ConstantRegressor(0.0)) for _ in range(2)]
        cache = filled_cache([LABELS + 1.0, LABELS.copy()])
        selected = BestPerformanceSelector('regression', retained_count=1).select(pool, cache)
        assert selected == [pool[1]]

    def test_missing_metric_without_cache(self):
        """Test ranking needs either recorded metrics or a cache."""
        pool = [FeatureSubsetModel(ConstantRegressor(0.0))]
        with pytest.raises(InvalidArgumentError):
            BestPerformanceSelector('regression').select(pool)

    def test_invalid_parameters(self):
        """Test parameter validation."""
        with pytest.raises(InvalidArgumentError):
            BestPerformanceSelector('regression', retained_count=0)
        with pytest.raises(InvalidArgumentError):
            BestPerformanceSelector('regression', learners_selection_proportion=1.5)
        with pytest.raises(InvalidArgumentError):
            BestPerformanceSelector('regression', learners_selection_proportion=0.0)
        assert BestPerformanceSelector('regression', learners_selection_proportion=1.0).target_count(4) == 4
        with pytest.raises(ConfigurationError):
            BestPerformanceSelector('regression', metric='auc')


class TestBestDiverseSelector:
    """Tests for accuracy-then-diversity selection."""

    def test_prefers_diverse_model(self):
        """Test the far model is chosen over the close one."""
        pool, cache = diverse_setup()
        selector = BestDiverseSelector('regression', retained_count=2)
        assert selector.select(pool, cache) == [pool[0], pool[2]]

    def test_returns_subset_of_pool(self):
        """Test every retained entry is a pool entry, unchanged."""
        pool, cache = diverse_setup()
        selected = BestDiverseSelector('regression', retained_count=3).select(pool, cache)
        assert len(selected) == 3
        assert all(any(s is p for p in pool) for s in selected)
        assert len({id(s) for s in selected}) == 3

    def test_deterministic(self):
        """Test identical inputs give identical selections."""
        pool, cache = diverse_setup()
        selector = BestDiverseSelector('regression', diversity='correlation', retained_count=2)
        assert selector.select(pool, cache) == selector.select(pool, cache)

    def test_min_diversity_gain_stops_early(self):
        """Test selection stops when the best gain is too small."""
        pool, cache = diverse_setup()
        selector = BestDiverseSelector('regression', retained_count=3, min_diversity_gain=0.35)
        assert selector.select(pool, cache) == [pool[0], pool[2]]

    def test_single_model_rejected(self):
        """Test a pool of one cannot be diversified."""
        pool = [FeatureSubsetModel(ConstantRegressor(0.0))]
        cache = filled_cache([LABELS.copy()])
        with pytest.raises(InvalidArgumentError):
            BestDiverseSelector('regression').select(pool, cache)

    def test_needs_cache(self):
        """Test diversity needs cached predictions."""
        pool, _ = diverse_setup()
        with pytest.raises(InvalidArgumentError):
            BestDiverseSelector('regression').select(pool)

    def test_unsealed_cache(self):
        """Test selection waits for a sealed cache."""
        pool, _ = diverse_setup()
        cache = PredictionCache('regression', 3, labels=LABELS)
        with pytest.raises(InvalidStateError):
            BestDiverseSelector('regression').select(pool, cache)

    def test_incomplete_cache(self):
        """Test a cache missing a model is rejected."""
        pool, _ = diverse_setup()
        cache = filled_cache([LABELS.copy(), LABELS.copy()])
        with pytest.raises(InvalidArgumentError):
            BestDiverseSelector('regression').select(pool, cache)

    def test_multiclass_selection(self):
        """Test selection over class-probability vectors."""
        labels = np.array([0, 1, 2, 0])
        onehot = np.eye(3)[labels]
        predictions = [onehot, onehot * 0.9 + 0.1 / 3, np.roll(onehot, 1, axis=1)]
        pool = [FeatureSubsetModel(ConstantRegressor(0.0)) for _ in predictions]
        cache = filled_cache(predictions, labels=labels, kind='multiclass')
        selected = BestDiverseSelector('multiclass', retained_count=2).select(pool, cache)
        assert selected == [pool[0], pool[2]]


class TestSelectorFactory:
    """Tests for selector creation by name."""

    def test_create_by_name(self):
        """Test configuration names map to selectors."""
        assert isinstance(create_selector('all', 'regression'), AllSelector)
        assert isinstance(create_selector('best', 'binary', metric='accuracy'), BestPerformanceSelector)
        assert isinstance(create_selector('bestDiverse', 'multiclass'), BestDiverseSelector)

    def test_unknown_name(self):
        """Test unknown selector names."""
        with pytest.raises(ConfigurationError):
            create_selector('random', 'regression')

    def test_describe(self):
        """Test descriptions carry the parameters."""
        description = create_selector('bestDiverse', 'regression', retained_count=2).describe()
        assert description['selector'] == 'bestDiverse'
        assert description['retained_count'] == 2
        assert description['diversity'] == 'disagreement'
