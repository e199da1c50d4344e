"""
Reporting utilities: confusion tables, error rates, threshold selection and
gene lists.

Confusion tables have true classes as rows and predicted classes as columns.
"""

import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, confusion_matrix, roc_auc_score, roc_curve

from ..exceptions import DimensionMismatchError, InvalidDataError
from .cross_validation import CrossValidationResult
from .shrunken_centroid import ShrunkenCentroidModel

logger = logging.getLogger(__name__)

SELECTION_RULES = ("min_error", "one_se")


def confusion_table(
    y_true: Sequence,
    y_pred: Sequence,
    classes: Optional[Sequence] = None
) -> pd.DataFrame:
    """
    K x K contingency table of true versus predicted labels.

    Args:
        y_true: True labels
        y_pred: Predicted labels
        classes: Class order; defaults to the sorted union of both label sets

    Returns:
        DataFrame with rows = true class, columns = predicted class

    Raises:
        InvalidDataError: A label is not one of the given classes
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    if len(y_true) != len(y_pred):
        raise DimensionMismatchError(
            f"Got {len(y_pred)} predictions for {len(y_true)} true labels"
        )
    if classes is None:
        classes = np.unique(np.concatenate([y_true, y_pred]))
    classes = list(classes)

    unknown = np.setdiff1d(np.concatenate([y_true, y_pred]), np.asarray(classes))
    if len(unknown) > 0:
        raise InvalidDataError(
            f"Labels {unknown.tolist()} are not among the classes {classes}"
        )

    matrix = confusion_matrix(y_true, y_pred, labels=classes)
    return pd.DataFrame(
        matrix,
        index=pd.Index([str(c) for c in classes], name="true"),
        columns=pd.Index([str(c) for c in classes], name="predicted"),
    )


def class_error_rates(table: pd.DataFrame) -> pd.Series:
    """Fraction of each true class that was misclassified."""
    counts = table.to_numpy()
    totals = counts.sum(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        rates = 1.0 - np.diag(counts) / totals
    return pd.Series(rates, index=table.index, name="class_error")


def overall_error(table: pd.DataFrame) -> float:
    """Fraction of all samples that were misclassified."""
    counts = table.to_numpy()
    total = counts.sum()
    return float(1.0 - np.trace(counts) / total) if total else float("nan")


def cv_curve_frame(cv_result: CrossValidationResult) -> pd.DataFrame:
    """Cross-validation error curve as a table, one row per threshold."""
    return cv_result.to_dataframe()


def select_threshold(cv_result: CrossValidationResult, rule: str = "one_se") -> float:
    """
    Pick a threshold from a cross-validation curve.

    Rules:
        min_error: the largest threshold attaining the minimum error count
                   (the sparsest model among the best).
        one_se: the largest threshold whose error rate is within one
                standard error of the minimum.

    Args:
        cv_result: Output of ThresholdCrossValidator.cross_validate
        rule: Selection rule name

    Returns:
        Selected threshold
    """
    if rule not in SELECTION_RULES:
        raise ValueError(f"Unknown selection rule: {rule}. Available: {SELECTION_RULES}")

    errors = cv_result.errors
    best_positions = np.flatnonzero(errors == errors.min())
    best = int(best_positions[-1])

    if rule == "min_error":
        chosen = best
    else:
        rates = cv_result.error_rate
        limit = rates[best] + cv_result.standard_error[best]
        chosen = int(np.flatnonzero(rates <= limit + 1e-12)[-1])

    threshold = float(cv_result.thresholds[chosen])
    logger.info(
        f"Selected threshold {threshold:.4f} by '{rule}': "
        f"{int(errors[chosen])}/{cv_result.n_samples} CV errors, "
        f"{int(cv_result.n_retained[chosen])} features retained"
    )
    return threshold


def list_genes(
    model: ShrunkenCentroidModel,
    feature_ids: Sequence[str],
    annotations: Optional[Sequence[str]] = None,
    top_n: Optional[int] = None
) -> pd.DataFrame:
    """
    Retained features with their per-class shrunken scores.

    A positive score means the class centroid lies above the overall
    centroid for that feature.

    Args:
        model: Trained model
        feature_ids: Identifier per model feature
        annotations: Optional annotation (e.g. gene symbol) per model feature
        top_n: Keep only the highest ranked features

    Returns:
        DataFrame ranked by the largest absolute class score
    """
    if len(feature_ids) != model.n_features:
        raise DimensionMismatchError(
            f"Got {len(feature_ids)} feature IDs for {model.n_features} features"
        )
    if annotations is not None and len(annotations) != model.n_features:
        raise DimensionMismatchError(
            f"Got {len(annotations)} annotations for {model.n_features} features"
        )

    idx = model.retained_indices
    scores = model.shrunken_distances[:, idx].T

    table = pd.DataFrame({"feature_id": np.asarray(feature_ids, dtype=object)[idx]})
    if annotations is not None:
        table["annotation"] = np.asarray(annotations, dtype=object)[idx]
    for k, cls in enumerate(model.classes):
        table[f"{cls}_score"] = scores[:, k]
    table["max_abs_score"] = np.abs(scores).max(axis=1)

    table = table.sort_values("max_abs_score", ascending=False, kind="stable")
    if top_n is not None:
        table = table.head(top_n)
    return table.reset_index(drop=True)


class ClassifierEvaluator:
    """
    Evaluate a fitted classifier on held-out or external samples.
    """

    def evaluate(
        self,
        model: Any,
        X_test: np.ndarray,
        y_test: np.ndarray
    ) -> Dict[str, Any]:
        """
        Evaluate a fitted model.

        Args:
            model: Fitted classifier with predict and predict_proba
            X_test: Test features
            y_test: Test labels

        Returns:
            Dictionary with evaluation metrics
        """
        y_test = np.asarray(y_test)
        y_pred = model.predict(X_test)
        y_prob = model.predict_proba(X_test)
        classes = list(model.classes_)

        table = confusion_table(y_test, y_pred, classes=classes)
        accuracy = accuracy_score(y_test, y_pred)

        auc = np.nan
        if len(classes) == 2:
            try:
                auc = roc_auc_score(y_test == classes[1], y_prob[:, 1])
            except ValueError:
                logger.warning("Could not compute AUC (possibly single class in test)")

        return {
            "accuracy": accuracy,
            "error_rate": overall_error(table),
            "auc": auc,
            "classes": classes,
            "confusion": table,
            "class_error": class_error_rates(table),
            "y_pred": y_pred,
            "y_prob": y_prob,
        }

    def get_roc_data(
        self,
        results: Dict[str, Dict[str, Any]],
        y_true: np.ndarray
    ) -> Dict[str, Tuple[np.ndarray, np.ndarray, float]]:
        """
        Extract ROC curve data from evaluation results.

        Args:
            results: Mapping of name -> evaluation results
            y_true: True labels; the second class in sorted order is positive

        Returns:
            Dictionary of name -> (fpr, tpr, auc)
        """
        roc_data = {}
        for name, metrics in results.items():
            if np.isnan(metrics["auc"]):
                continue
            positive = metrics["classes"][1]
            fpr, tpr, _ = roc_curve(np.asarray(y_true) == positive, metrics["y_prob"][:, 1])
            roc_data[name] = (fpr, tpr, metrics["auc"])
        return roc_data

    def to_dataframe(self, results: Dict[str, Dict[str, Any]]) -> pd.DataFrame:
        """
        Convert results to DataFrame for export.

        Args:
            results: Mapping of name -> evaluation results

        Returns:
            DataFrame with performance metrics
        """
        rows = []
        for name, metrics in results.items():
            rows.append({
                "Model": name,
                "Accuracy": metrics["accuracy"],
                "Error_Rate": metrics["error_rate"],
                "AUC": metrics["auc"],
            })
        return pd.DataFrame(rows)
