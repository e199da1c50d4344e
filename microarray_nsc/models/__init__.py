"""
Nearest shrunken centroid models, cross-validation and reporting.
"""

from .cross_validation import (
    CrossValidationResult,
    ThresholdCrossValidator,
    make_stratified_folds,
)
from .evaluation import (
    ClassifierEvaluator,
    class_error_rates,
    confusion_table,
    cv_curve_frame,
    list_genes,
    overall_error,
    select_threshold,
)
from .predictor import (
    discriminant_scores,
    posterior_probabilities,
    predict,
    predict_many,
    resolve_prior,
    shrunken_centroids_table,
)
from .shrunken_centroid import (
    CentroidStatistics,
    NearestShrunkenCentroid,
    ShrunkenCentroidModel,
    soft_threshold,
)

__all__ = [
    "CentroidStatistics",
    "ShrunkenCentroidModel",
    "NearestShrunkenCentroid",
    "soft_threshold",
    "discriminant_scores",
    "posterior_probabilities",
    "predict",
    "predict_many",
    "resolve_prior",
    "shrunken_centroids_table",
    "ThresholdCrossValidator",
    "CrossValidationResult",
    "make_stratified_folds",
    "ClassifierEvaluator",
    "confusion_table",
    "class_error_rates",
    "overall_error",
    "cv_curve_frame",
    "select_threshold",
    "list_genes",
]
