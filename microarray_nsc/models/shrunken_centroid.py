"""
Nearest shrunken centroid classifier.

Class centroids are standardized against the overall centroid, soft
thresholded by a shrinkage amount, and turned back into shrunken class
centroids. Features whose standardized distance is shrunk to zero for every
class drop out of the classifier.
"""

import logging
from typing import Sequence, Tuple, Union

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin

from ..exceptions import (
    DimensionMismatchError,
    InsufficientDataError,
    InvalidDataError,
    InvalidThresholdError,
)
from . import predictor

logger = logging.getLogger(__name__)

PriorSpec = Union[None, str, Sequence[float]]


def validate_threshold(threshold: float) -> float:
    """Return the threshold as a float, rejecting negative or non-finite values."""
    try:
        value = float(threshold)
    except (TypeError, ValueError):
        raise InvalidThresholdError(f"Threshold must be a number, got {threshold!r}") from None
    if not np.isfinite(value) or value < 0:
        raise InvalidThresholdError(f"Threshold must be finite and >= 0, got {threshold}")
    return value


def soft_threshold(d: np.ndarray, threshold: float) -> np.ndarray:
    """sign(d) * max(|d| - threshold, 0), elementwise."""
    return np.sign(d) * np.maximum(np.abs(d) - threshold, 0.0)


def check_training_data(X, y) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Validate a training matrix and labels.

    Args:
        X: Samples x features matrix
        y: One label per sample

    Returns:
        Tuple of (X as float array, sorted classes, class index per sample)
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y)
    if X.ndim != 2:
        raise DimensionMismatchError(f"X must be 2-D (samples x features), got shape {X.shape}")
    if y.ndim != 1 or len(y) != X.shape[0]:
        raise DimensionMismatchError(
            f"Got {len(y)} labels for {X.shape[0]} samples"
        )
    if X.shape[1] == 0:
        raise DimensionMismatchError("X has no features")
    if not np.isfinite(X).all():
        raise InvalidDataError(
            f"X contains {int((~np.isfinite(X)).sum())} missing or non-finite values"
        )

    classes, y_idx, counts = np.unique(y, return_inverse=True, return_counts=True)
    if len(classes) < 2:
        raise InsufficientDataError(f"Need at least 2 classes, got {len(classes)}")
    if counts.min() < 2:
        small = [str(c) for c, n in zip(classes, counts) if n < 2]
        raise InsufficientDataError(
            f"Every class needs at least 2 samples; too few in: {', '.join(small)}"
        )
    return X, classes, y_idx.reshape(-1)


class CentroidStatistics:
    """
    Threshold-independent quantities of a shrunken centroid fit.

    Computed once per training set; ``shrink`` turns them into a model for
    any threshold without touching the data again.

    Attributes:
        classes: Sorted class labels; a class's ordinal index is its position here
        class_counts: Training samples per class
        overall_centroid: Mean of every feature over all samples
        class_centroids: Per-class feature means, shape (n_classes, n_features)
        pooled_sd: Pooled within-class standard deviation per feature
        s0: Constant added to every pooled_sd
        class_scale: m_k = sqrt(1/n_k - 1/n) per class
        standardized_distances: d_kj, shape (n_classes, n_features)
    """

    def __init__(
        self,
        classes: np.ndarray,
        class_counts: np.ndarray,
        overall_centroid: np.ndarray,
        class_centroids: np.ndarray,
        pooled_sd: np.ndarray,
        s0: float
    ):
        self.classes = classes
        self.class_counts = class_counts
        self.overall_centroid = overall_centroid
        self.class_centroids = class_centroids
        self.pooled_sd = pooled_sd
        self.s0 = float(s0)

        n = class_counts.sum()
        self.class_scale = np.sqrt(1.0 / class_counts - 1.0 / n)
        self.feature_scale = pooled_sd + self.s0
        if np.any(self.feature_scale <= 0):
            raise InvalidDataError(
                "Features with zero within-class variance and s0 = 0; "
                "remove constant features or raise the s0 percentile"
            )
        self.standardized_distances = (
            (class_centroids - overall_centroid)
            / (self.class_scale[:, None] * self.feature_scale[None, :])
        )
        self.class_priors = class_counts / n

        for array in (
            self.class_counts,
            self.overall_centroid,
            self.class_centroids,
            self.pooled_sd,
            self.class_scale,
            self.feature_scale,
            self.standardized_distances,
            self.class_priors,
        ):
            array.setflags(write=False)

    @classmethod
    def compute(cls, X, y, s0_percentile: float = 50.0) -> "CentroidStatistics":
        """
        Compute centroid statistics from training data.

        Args:
            X: Samples x features matrix with finite values
            y: Class label per sample (at least 2 classes, 2 samples each)
            s0_percentile: Percentile of the pooled standard deviations used as s0

        Returns:
            CentroidStatistics
        """
        if not 0 <= s0_percentile <= 100:
            raise ValueError(f"s0_percentile must be in [0, 100], got {s0_percentile}")

        X, classes, y_idx = check_training_data(X, y)
        n_samples = X.shape[0]
        n_classes = len(classes)

        counts = np.bincount(y_idx, minlength=n_classes).astype(float)
        overall = X.mean(axis=0)
        centroids = np.vstack([X[y_idx == k].mean(axis=0) for k in range(n_classes)])

        residuals = X - centroids[y_idx]
        pooled_sd = np.sqrt((residuals ** 2).sum(axis=0) / (n_samples - n_classes))
        s0 = float(np.percentile(pooled_sd, s0_percentile))

        logger.debug(
            f"Centroid statistics: {n_samples} samples, {X.shape[1]} features, "
            f"{n_classes} classes, s0={s0:.4g}"
        )
        return cls(classes, counts, overall, centroids, pooled_sd, s0)

    @property
    def n_features(self) -> int:
        return self.overall_centroid.shape[0]

    @property
    def max_threshold(self) -> float:
        """Smallest threshold at which every feature is shrunk away."""
        return float(np.abs(self.standardized_distances).max())

    def threshold_grid(self, n_thresholds: int = 30) -> np.ndarray:
        """Evenly spaced thresholds from 0 (no shrinkage) to max |d_kj|."""
        if n_thresholds < 2:
            raise ValueError(f"n_thresholds must be at least 2, got {n_thresholds}")
        return np.linspace(0.0, self.max_threshold, n_thresholds)

    def shrink(self, threshold: float, prior: PriorSpec = None) -> "ShrunkenCentroidModel":
        """Build the model for one threshold."""
        return ShrunkenCentroidModel(self, validate_threshold(threshold), prior=prior)


class ShrunkenCentroidModel:
    """
    A shrunken centroid classifier at a fixed threshold.

    Immutable: attributes cannot be reassigned and arrays are read-only.

    Attributes:
        threshold: Shrinkage amount applied to the standardized distances
        classes: Sorted class labels
        overall_centroid: Mean of every feature over all training samples
        pooled_sd: Pooled within-class standard deviation per feature
        s0: Constant added to pooled_sd
        priors: Class priors used by the discriminant
        shrunken_distances: Soft-thresholded d'_kj, shape (n_classes, n_features)
        shrunken_centroids: Shrunken class centroids, shape (n_classes, n_features)
        retained_mask: True where a feature contributes to discrimination
    """

    def __init__(self, statistics: CentroidStatistics, threshold: float, prior: PriorSpec = None):
        self.statistics = statistics
        self.threshold = threshold
        self.classes = statistics.classes
        self.overall_centroid = statistics.overall_centroid
        self.pooled_sd = statistics.pooled_sd
        self.s0 = statistics.s0
        self.feature_scale = statistics.feature_scale
        self.priors = predictor.resolve_prior(prior, statistics.class_priors)

        self.shrunken_distances = soft_threshold(statistics.standardized_distances, threshold)
        self.shrunken_centroids = statistics.overall_centroid + (
            statistics.class_scale[:, None]
            * statistics.feature_scale[None, :]
            * self.shrunken_distances
        )

        if threshold == 0:
            # No shrinkage: every feature keeps its weight
            self.retained_mask = np.ones(statistics.n_features, dtype=bool)
        else:
            self.retained_mask = np.any(self.shrunken_distances != 0, axis=0)

        for array in (
            self.priors,
            self.shrunken_distances,
            self.shrunken_centroids,
            self.retained_mask,
        ):
            array.setflags(write=False)
        self._frozen = True

    def __setattr__(self, name, value):
        if getattr(self, "_frozen", False):
            raise AttributeError(f"{type(self).__name__} is immutable")
        super().__setattr__(name, value)

    @property
    def n_features(self) -> int:
        return self.retained_mask.shape[0]

    @property
    def n_retained(self) -> int:
        return int(self.retained_mask.sum())

    @property
    def retained_indices(self) -> np.ndarray:
        return np.flatnonzero(self.retained_mask)

    def discriminant_scores(self, X, prior: PriorSpec = None) -> np.ndarray:
        return predictor.discriminant_scores(self, X, prior=prior)

    def predict_proba(self, X, prior: PriorSpec = None) -> np.ndarray:
        return predictor.posterior_probabilities(self, X, prior=prior)

    def predict(self, X, prior: PriorSpec = None) -> np.ndarray:
        return predictor.predict(self, X, prior=prior)

    def __repr__(self) -> str:
        return (
            f"ShrunkenCentroidModel(threshold={self.threshold:.4g}, "
            f"classes={list(self.classes)}, retained={self.n_retained}/{self.n_features})"
        )


class NearestShrunkenCentroid(ClassifierMixin, BaseEstimator):
    """
    scikit-learn compatible nearest shrunken centroid classifier.

    Fits the threshold-independent statistics once, so the threshold can be
    changed afterwards with ``set_threshold`` without refitting.
    """

    def __init__(
        self,
        threshold: float = 0.0,
        prior: PriorSpec = None,
        s0_percentile: float = 50.0
    ):
        """
        Initialize the classifier.

        Args:
            threshold: Shrinkage threshold (>= 0)
            prior: None for training class frequencies, "uniform", or one
                   weight per class in sorted class order
            s0_percentile: Percentile of pooled standard deviations used as s0
        """
        self.threshold = threshold
        self.prior = prior
        self.s0_percentile = s0_percentile

    def fit(self, X, y) -> "NearestShrunkenCentroid":
        """
        Fit the classifier.

        Args:
            X: Training features (samples x features)
            y: Training labels

        Returns:
            Self
        """
        validate_threshold(self.threshold)
        self.statistics_ = CentroidStatistics.compute(X, y, s0_percentile=self.s0_percentile)
        self.classes_ = self.statistics_.classes
        self.n_features_in_ = self.statistics_.n_features
        self.model_ = self.statistics_.shrink(self.threshold, prior=self.prior)
        logger.debug(f"Fitted {self.model_}")
        return self

    def _check_fitted(self) -> ShrunkenCentroidModel:
        model = getattr(self, "model_", None)
        if model is None:
            raise RuntimeError("Model has not been fitted yet")
        return model

    def set_threshold(self, threshold: float) -> "NearestShrunkenCentroid":
        """Move a fitted classifier to another threshold."""
        self._check_fitted()
        self.model_ = self.statistics_.shrink(threshold, prior=self.prior)
        self.threshold = self.model_.threshold
        return self

    def threshold_grid(self, n_thresholds: int = 30) -> np.ndarray:
        """Threshold grid spanning no shrinkage to full shrinkage for the fitted data."""
        self._check_fitted()
        return self.statistics_.threshold_grid(n_thresholds)

    def predict(self, X) -> np.ndarray:
        """
        Predict class labels.

        Args:
            X: Features to predict

        Returns:
            Predicted class labels
        """
        return predictor.predict(self._check_fitted(), X)

    def predict_proba(self, X) -> np.ndarray:
        """
        Predict class posterior probabilities.

        Args:
            X: Features to predict

        Returns:
            Array of shape (n_samples, n_classes), columns in ``classes_`` order
        """
        return predictor.posterior_probabilities(self._check_fitted(), X)

    def discriminant_scores(self, X) -> np.ndarray:
        """Discriminant score per class; smaller is closer."""
        return predictor.discriminant_scores(self._check_fitted(), X)

    def decision_function(self, X) -> np.ndarray:
        """
        Confidence score per class, -delta_k / 2; larger is closer.

        Returns:
            Array of shape (n_samples, n_classes), columns in ``classes_`` order
        """
        return -0.5 * self.discriminant_scores(X)

    def get_retained_features(self) -> np.ndarray:
        """Positions of the features that contribute at the current threshold."""
        return self._check_fitted().retained_indices
