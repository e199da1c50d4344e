"""
Preprocessing modules for expression data.
"""

from .feature_selection import FeatureSelector, VarianceSelector
from .transformers import ExpressionTransformer

__all__ = ["FeatureSelector", "VarianceSelector", "ExpressionTransformer"]
