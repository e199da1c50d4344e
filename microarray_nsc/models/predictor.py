"""
Discriminant scores, posterior probabilities and predictions for shrunken
centroid models.

For a query x the discriminant score of class k is

    delta_k(x) = sum_j (x_j - c'_kj)^2 / (sd_j + s0)^2 - 2 log(pi_k)

and the predicted class is the one with the smallest score. When several
classes share the smallest score the class with the lowest ordinal index
(first in sorted class order) wins. Posteriors are a softmax of
-delta_k(x) / 2 across classes.
"""

import logging
from typing import TYPE_CHECKING, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.special import softmax

from ..exceptions import DimensionMismatchError, InvalidDataError

if TYPE_CHECKING:
    from .shrunken_centroid import CentroidStatistics, ShrunkenCentroidModel

logger = logging.getLogger(__name__)


def resolve_prior(
    prior: Union[None, str, Sequence[float]],
    class_priors: np.ndarray
) -> np.ndarray:
    """
    Turn a prior specification into a normalized probability vector.

    Args:
        prior: None or "class_frequency" for the training frequencies,
               "uniform" for equal priors, or one non-negative weight per
               class in sorted class order
        class_priors: Training class frequencies

    Returns:
        Prior probabilities summing to 1
    """
    n_classes = len(class_priors)
    if prior is None or (isinstance(prior, str) and prior == "class_frequency"):
        return np.array(class_priors, dtype=float)
    if isinstance(prior, str):
        if prior == "uniform":
            return np.full(n_classes, 1.0 / n_classes)
        raise ValueError(
            f"Unknown prior: {prior!r}. Use 'class_frequency', 'uniform' or a vector"
        )

    weights = np.asarray(prior, dtype=float).reshape(-1)
    if len(weights) != n_classes:
        raise DimensionMismatchError(
            f"Prior has {len(weights)} entries for {n_classes} classes"
        )
    if not np.isfinite(weights).all() or (weights < 0).any() or weights.sum() <= 0:
        raise ValueError(f"Prior weights must be non-negative with a positive sum: {prior}")
    return weights / weights.sum()


def _check_query(model: "ShrunkenCentroidModel", X) -> np.ndarray:
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(1, -1)
    if X.ndim != 2:
        raise DimensionMismatchError(f"Query must be 1-D or 2-D, got shape {X.shape}")
    if X.shape[1] != model.n_features:
        raise DimensionMismatchError(
            f"Query has {X.shape[1]} features, model was trained on {model.n_features}"
        )
    if not np.isfinite(X).all():
        raise InvalidDataError("Query contains missing or non-finite values")
    return X


def discriminant_scores(
    model: "ShrunkenCentroidModel",
    X,
    prior: Union[None, str, Sequence[float]] = None
) -> np.ndarray:
    """
    Discriminant score of every class for every query sample.

    Args:
        model: Trained shrunken centroid model
        X: Query features, shape (n_samples, n_features) or (n_features,)
        prior: Optional prior overriding the model's priors

    Returns:
        Array of shape (n_samples, n_classes); smaller means closer
    """
    X = _check_query(model, X)
    priors = model.priors if prior is None else resolve_prior(prior, model.statistics.class_priors)

    weights = 1.0 / model.feature_scale ** 2
    n_classes = len(model.classes)
    scores = np.empty((X.shape[0], n_classes))
    # Class by class, so identical centroids give bit-identical scores
    for k in range(n_classes):
        scores[:, k] = ((X - model.shrunken_centroids[k]) ** 2 * weights).sum(axis=1)

    with np.errstate(divide="ignore"):
        log_priors = np.log(priors)
    return scores - 2.0 * log_priors


def posterior_probabilities(
    model: "ShrunkenCentroidModel",
    X,
    prior: Union[None, str, Sequence[float]] = None
) -> np.ndarray:
    """
    Class posterior probabilities, softmax of -delta / 2.

    Returns:
        Array of shape (n_samples, n_classes), rows summing to 1
    """
    scores = discriminant_scores(model, X, prior=prior)
    return softmax(-0.5 * scores, axis=1)


def predict(
    model: "ShrunkenCentroidModel",
    X,
    prior: Union[None, str, Sequence[float]] = None
) -> np.ndarray:
    """
    Predicted class label per query sample.

    Ties go to the class with the lowest ordinal index.
    """
    scores = discriminant_scores(model, X, prior=prior)
    # argmin returns the first minimum, i.e. the lowest class index
    return model.classes[np.argmin(scores, axis=1)]


def predict_many(
    statistics: "CentroidStatistics",
    X,
    thresholds: Sequence[float],
    prior: Union[None, str, Sequence[float]] = None,
    sample_ids: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """
    Predictions for a whole threshold grid.

    Args:
        statistics: Fitted centroid statistics
        X: Query features (n_samples, n_features)
        thresholds: Thresholds to predict at
        prior: Optional prior
        sample_ids: Optional column names, one per query sample

    Returns:
        DataFrame with one row per threshold, the retained feature count and
        one column per query sample
    """
    rows = []
    n_retained = []
    for threshold in thresholds:
        model = statistics.shrink(threshold, prior=prior)
        rows.append(predict(model, X))
        n_retained.append(model.n_retained)

    result = pd.DataFrame(
        rows,
        index=pd.Index(np.asarray(thresholds, dtype=float), name="threshold"),
        columns=sample_ids,
    )
    result.insert(0, "n_retained", n_retained)
    return result


def shrunken_centroids_table(
    model: "ShrunkenCentroidModel",
    feature_ids: Optional[Sequence[str]] = None,
    retained_only: bool = True
) -> pd.DataFrame:
    """
    Shrunken class centroids as a features x classes table.

    Args:
        model: Trained model
        feature_ids: Optional identifiers, one per model feature
        retained_only: Drop features that do not contribute

    Returns:
        DataFrame indexed by feature with one column per class
    """
    if feature_ids is None:
        feature_ids = [f"F{i + 1}" for i in range(model.n_features)]
    if len(feature_ids) != model.n_features:
        raise DimensionMismatchError(
            f"Got {len(feature_ids)} feature IDs for {model.n_features} features"
        )

    table = pd.DataFrame(
        model.shrunken_centroids.T,
        index=pd.Index(feature_ids, name="feature_id"),
        columns=[str(c) for c in model.classes],
    )
    if retained_only:
        table = table[model.retained_mask]
    return table
