"""
Data loading modules for expression analysis.

This module provides loaders that can handle:
- Expression matrices stored as features x samples CSV files
- Sample metadata with class labels
- Optional feature annotations (e.g. gene symbols)
"""

from .base import DataLoader
from .dataset import ExpressionDataset
from .expression import ExpressionDataLoader
from .metadata import MetadataLoader

__all__ = ["DataLoader", "ExpressionDataset", "ExpressionDataLoader", "MetadataLoader"]
