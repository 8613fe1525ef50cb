"""
Predefined ensemble configurations.
"""
from typing import Dict, Any


class EnsemblePresets:
    """Collection of predefined configuration presets."""

    @staticmethod
    def regression_default() -> Dict[str, Any]:
        """Keep every regressor and take the median."""
        return {
            'prediction_kind': 'regression',
            'selector_kind': 'all',
            'combiner_kind': 'median'
        }

    @staticmethod
    def binary_default() -> Dict[str, Any]:
        """Keep every binary classifier and take the median probability."""
        return {
            'prediction_kind': 'binary',
            'selector_kind': 'all',
            'combiner_kind': 'median'
        }

    @staticmethod
    def multiclass_default() -> Dict[str, Any]:
        """Keep every multiclass model and take the element-wise median."""
        return {
            'prediction_kind': 'multiclass',
            'selector_kind': 'all',
            'combiner_kind': 'median'
        }

    @staticmethod
    def diverse_regression() -> Dict[str, Any]:
        """Half the pool, picked for accuracy then decorrelation, averaged."""
        return {
            'prediction_kind': 'regression',
            'selector_kind': 'bestDiverse',
            'combiner_kind': 'average',
            'diversity_metric': 'correlation',
            'quality_metric': 'l2',
            'retained_count': 'auto',
            'learners_selection_proportion': 0.5
        }

    @staticmethod
    def voting_multiclass() -> Dict[str, Any]:
        """Diverse multiclass subset combined by majority vote."""
        return {
            'prediction_kind': 'multiclass',
            'selector_kind': 'bestDiverse',
            'combiner_kind': 'vote',
            'diversity_metric': 'disagreement',
            'tie_break_policy': 'highestConfidence'
        }

    @staticmethod
    def stacked_binary() -> Dict[str, Any]:
        """Top binary classifiers by AUC feeding a logistic meta-model."""
        return {
            'prediction_kind': 'binary',
            'selector_kind': 'best',
            'combiner_kind': 'stacking',
            'quality_metric': 'auc'
        }

    @staticmethod
    def get_preset(name: str) -> Dict[str, Any]:
        """Get preset by name."""
        presets = {
            'regression_default': EnsemblePresets.regression_default,
            'binary_default': EnsemblePresets.binary_default,
            'multiclass_default': EnsemblePresets.multiclass_default,
            'diverse_regression': EnsemblePresets.diverse_regression,
            'voting_multiclass': EnsemblePresets.voting_multiclass,
            'stacked_binary': EnsemblePresets.stacked_binary,
        }

        if name not in presets:
            raise ValueError(f"Unknown preset: {name}. Available: {list(presets.keys())}")

        return presets[name]()
