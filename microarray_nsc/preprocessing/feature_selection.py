"""
Feature selection methods for expression data.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np
import pandas as pd

from ..data_loaders.dataset import ExpressionDataset

logger = logging.getLogger(__name__)


class FeatureSelector(ABC):
    """Abstract base class for feature selection methods."""

    selected_indices_: Optional[np.ndarray] = None
    selected_features_: Optional[List[str]] = None

    @abstractmethod
    def fit(self, dataset: ExpressionDataset) -> "FeatureSelector":
        """Fit the selector to the data."""
        pass

    def transform(self, dataset: ExpressionDataset) -> ExpressionDataset:
        """
        Restrict a dataset to the selected features.

        Features are matched by identifier, so a dataset with a different
        feature order (e.g. an external test set) is handled as well.
        """
        if self.selected_features_ is None:
            raise RuntimeError("Selector has not been fitted yet")

        position = {fid: i for i, fid in enumerate(dataset.feature_ids)}
        available = [position[f] for f in self.selected_features_ if f in position]
        if len(available) < len(self.selected_features_):
            logger.warning(
                f"Only {len(available)}/{len(self.selected_features_)} "
                "selected features available in input data"
            )
        return dataset.subset_features(available)

    def fit_transform(self, dataset: ExpressionDataset) -> ExpressionDataset:
        """Fit and transform in one step."""
        return self.fit(dataset).transform(dataset)

    def get_selected_features(self) -> List[str]:
        """Get list of selected feature names."""
        if self.selected_features_ is None:
            raise RuntimeError("Selector has not been fitted yet")
        return self.selected_features_.copy()


class VarianceSelector(FeatureSelector):
    """
    Select features by across-sample variance.

    Keeps either the ``top_n`` most variable features or every feature whose
    variance exceeds ``threshold``. Variance ignores class labels, so this
    filter may be applied before cross-validation without leaking labels.
    """

    def __init__(self, top_n: Optional[int] = None, threshold: Optional[float] = None):
        """
        Initialize variance-based selector.

        Args:
            top_n: Number of most variable features to keep
            threshold: Minimum variance for feature selection
        """
        if top_n is None and threshold is None:
            raise ValueError("Either top_n or threshold must be provided")
        if top_n is not None and top_n < 1:
            raise ValueError(f"top_n must be positive, got {top_n}")
        self.top_n = top_n
        self.threshold = threshold
        self.variances_: Optional[pd.Series] = None

    def fit(self, dataset: ExpressionDataset) -> "VarianceSelector":
        """Compute variances and select features."""
        variances = np.nanvar(dataset.values, axis=1, ddof=1)
        self.variances_ = pd.Series(variances, index=dataset.feature_ids)

        keep = np.ones(dataset.n_features, dtype=bool)
        if self.threshold is not None:
            keep &= variances > self.threshold

        candidates = np.flatnonzero(keep)
        if self.top_n is not None and len(candidates) > self.top_n:
            # Stable sort keeps the original order among equal variances
            order = np.argsort(-variances[candidates], kind="stable")
            candidates = np.sort(candidates[order[:self.top_n]])

        self.selected_indices_ = candidates
        self.selected_features_ = [str(f) for f in dataset.feature_ids[candidates]]

        logger.info(
            f"Selected {len(self.selected_features_)}/{dataset.n_features} features "
            f"by variance (top_n={self.top_n}, threshold={self.threshold})"
        )
        return self

    def get_variance_stats(self) -> pd.DataFrame:
        """Variance per feature with a flag for selection."""
        if self.variances_ is None:
            raise RuntimeError("Selector has not been fitted yet")
        stats = self.variances_.rename("variance").to_frame()
        stats["selected"] = stats.index.isin(self.selected_features_)
        stats.index.name = "feature_id"
        return stats.reset_index()
