"""
Design patterns used by the ensemble engine.
"""
from .factory import (
    Factory,
    SelectorFactory,
    CombinerFactory,
    RegressionDiversityFactory,
    BinaryDiversityFactory,
    MulticlassDiversityFactory,
    register_selector,
    register_combiner,
    register_diversity
)

__all__ = [
    'Factory',
    'SelectorFactory',
    'CombinerFactory',
    'RegressionDiversityFactory',
    'BinaryDiversityFactory',
    'MulticlassDiversityFactory',
    'register_selector',
    'register_combiner',
    'register_diversity',
]
