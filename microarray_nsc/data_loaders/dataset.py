"""
In-memory expression dataset.

The dataset is a struct of arrays: a numeric matrix of shape
(features x samples) plus separate identifier and metadata tables that are
joined to it by position.
"""

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from ..exceptions import DimensionMismatchError, InvalidDataError

logger = logging.getLogger(__name__)


class ExpressionDataset:
    """
    Expression matrix with positional feature and sample metadata.

    Attributes:
        values: Float matrix of shape (n_features, n_samples)
        feature_ids: Feature identifiers (e.g. probe IDs), one per row
        sample_ids: Sample identifiers, one per column
        labels: Optional class label per sample
        feature_annotations: Optional table with one row per feature
        sample_metadata: Optional table with one row per sample
    """

    def __init__(
        self,
        values: np.ndarray,
        feature_ids: Optional[Sequence[str]] = None,
        sample_ids: Optional[Sequence[str]] = None,
        labels: Optional[Sequence] = None,
        feature_annotations: Optional[pd.DataFrame] = None,
        sample_metadata: Optional[pd.DataFrame] = None
    ):
        values = np.asarray(values, dtype=float)
        if values.ndim != 2:
            raise DimensionMismatchError(
                f"Expression matrix must be 2-D, got shape {values.shape}"
            )
        n_features, n_samples = values.shape

        if feature_ids is None:
            feature_ids = [f"F{i + 1}" for i in range(n_features)]
        if sample_ids is None:
            sample_ids = [f"S{i + 1}" for i in range(n_samples)]

        self.values = values
        self.feature_ids = np.asarray(feature_ids, dtype=object)
        self.sample_ids = np.asarray(sample_ids, dtype=object)
        self.labels = None if labels is None else np.asarray(labels)

        self._check_length("feature_ids", len(self.feature_ids), n_features)
        self._check_length("sample_ids", len(self.sample_ids), n_samples)
        if self.labels is not None:
            self._check_length("labels", len(self.labels), n_samples)

        if feature_annotations is not None:
            self._check_length("feature_annotations", len(feature_annotations), n_features)
            feature_annotations = feature_annotations.reset_index(drop=True)
        if sample_metadata is not None:
            self._check_length("sample_metadata", len(sample_metadata), n_samples)
            sample_metadata = sample_metadata.reset_index(drop=True)

        self.feature_annotations = feature_annotations
        self.sample_metadata = sample_metadata

    @staticmethod
    def _check_length(name: str, actual: int, expected: int) -> None:
        if actual != expected:
            raise DimensionMismatchError(
                f"{name} has length {actual}, expected {expected}"
            )

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        labels: Optional[Sequence] = None,
        feature_annotations: Optional[pd.DataFrame] = None,
        sample_metadata: Optional[pd.DataFrame] = None
    ) -> "ExpressionDataset":
        """Build a dataset from a DataFrame with features as rows and samples as columns."""
        return cls(
            df.to_numpy(dtype=float),
            feature_ids=[str(i) for i in df.index],
            sample_ids=[str(c) for c in df.columns],
            labels=labels,
            feature_annotations=feature_annotations,
            sample_metadata=sample_metadata,
        )

    @property
    def n_features(self) -> int:
        return self.values.shape[0]

    @property
    def n_samples(self) -> int:
        return self.values.shape[1]

    @property
    def shape(self):
        return self.values.shape

    @property
    def X(self) -> np.ndarray:
        """Samples x features view, as expected by estimators."""
        return self.values.T

    @property
    def has_missing(self) -> bool:
        return not np.isfinite(self.values).all()

    def validate_finite(self) -> None:
        """Raise InvalidDataError if any entry is missing or infinite."""
        bad = ~np.isfinite(self.values)
        if bad.any():
            n_rows = int(bad.any(axis=1).sum())
            raise InvalidDataError(
                f"{int(bad.sum())} missing or non-finite values in {n_rows} features; "
                "impute or filter before training"
            )

    def require_labels(self) -> np.ndarray:
        """Return the labels, failing if the dataset is unlabeled."""
        if self.labels is None:
            raise DimensionMismatchError("Dataset has no class labels")
        return self.labels

    def class_counts(self) -> pd.Series:
        """Number of samples per class, in sorted class order."""
        labels = self.require_labels()
        classes, counts = np.unique(labels, return_counts=True)
        return pd.Series(counts, index=classes, name="n_samples")

    def subset_features(self, indices: Sequence[int]) -> "ExpressionDataset":
        """New dataset restricted to the features at the given positions."""
        indices = np.asarray(indices, dtype=int)
        annotations = None
        if self.feature_annotations is not None:
            annotations = self.feature_annotations.iloc[indices]
        return ExpressionDataset(
            self.values[indices, :],
            feature_ids=self.feature_ids[indices],
            sample_ids=self.sample_ids,
            labels=self.labels,
            feature_annotations=annotations,
            sample_metadata=self.sample_metadata,
        )

    def subset_samples(self, indices: Sequence[int]) -> "ExpressionDataset":
        """New dataset restricted to the samples at the given positions."""
        indices = np.asarray(indices, dtype=int)
        metadata = None
        if self.sample_metadata is not None:
            metadata = self.sample_metadata.iloc[indices]
        return ExpressionDataset(
            self.values[:, indices],
            feature_ids=self.feature_ids,
            sample_ids=self.sample_ids[indices],
            labels=None if self.labels is None else self.labels[indices],
            feature_annotations=self.feature_annotations,
            sample_metadata=metadata,
        )

    def with_values(self, values: np.ndarray) -> "ExpressionDataset":
        """Same metadata, new matrix of identical shape."""
        values = np.asarray(values, dtype=float)
        if values.shape != self.values.shape:
            raise DimensionMismatchError(
                f"Replacement matrix has shape {values.shape}, expected {self.values.shape}"
            )
        return ExpressionDataset(
            values,
            feature_ids=self.feature_ids,
            sample_ids=self.sample_ids,
            labels=self.labels,
            feature_annotations=self.feature_annotations,
            sample_metadata=self.sample_metadata,
        )

    def feature_labels(self, annotation_col: Optional[str] = None) -> np.ndarray:
        """Feature IDs, or annotation values where present, for reporting."""
        if (
            annotation_col is None
            or self.feature_annotations is None
            or annotation_col not in self.feature_annotations.columns
        ):
            return self.feature_ids.copy()
        annotated = self.feature_annotations[annotation_col].to_numpy(dtype=object, copy=True)
        missing = pd.isna(annotated)
        annotated[missing] = self.feature_ids[missing]
        return annotated

    def to_frame(self) -> pd.DataFrame:
        """Features x samples DataFrame indexed by identifiers."""
        return pd.DataFrame(self.values, index=self.feature_ids, columns=self.sample_ids)

    def __repr__(self) -> str:
        labelled = "labelled" if self.labels is not None else "unlabelled"
        return (
            f"ExpressionDataset({self.n_features} features x "
            f"{self.n_samples} samples, {labelled})"
        )
