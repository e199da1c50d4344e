# tests/test_evaluation.py
import numpy as np
import pytest

from microarray_nsc.exceptions import DimensionMismatchError, InvalidDataError
from microarray_nsc.models import (
    CentroidStatistics,
    ClassifierEvaluator,
    CrossValidationResult,
    NearestShrunkenCentroid,
    class_error_rates,
    confusion_table,
    cv_curve_frame,
    list_genes,
    overall_error,
    select_threshold,
)


def _curve(fold_errors):
    """Two folds of five samples over four thresholds."""
    fold_errors = np.asarray(fold_errors)
    n_thresholds = fold_errors.shape[1]
    return CrossValidationResult(
        thresholds=np.arange(n_thresholds, dtype=float),
        n_retained=np.array([40, 20, 10, 5])[:n_thresholds],
        fold_errors=fold_errors,
        folds=[np.arange(5), np.arange(5, 10)],
        classes=np.array(["A", "B"]),
        y_true=np.array(["A", "B"] * 5),
        cv_predictions=np.full((n_thresholds, 10), "A"),
        cv_probabilities=np.full((n_thresholds, 10, 2), 0.5),
    )


def test_confusion_rows_are_true_columns_predicted():
    table = confusion_table(["A", "A", "A", "B"], ["A", "B", "B", "B"])

    assert table.index.name == "true"
    assert table.columns.name == "predicted"
    assert table.loc["A", "B"] == 2
    assert table.loc["B", "A"] == 0
    assert table.to_numpy().sum() == 4


def test_confusion_keeps_unpredicted_classes():
    table = confusion_table(["A", "B", "C"], ["A", "A", "A"], classes=["A", "B", "C"])
    assert table.shape == (3, 3)
    assert table["A"].tolist() == [1, 1, 1]
    assert table["C"].sum() == 0


def test_confusion_length_mismatch():
    with pytest.raises(DimensionMismatchError):
        confusion_table(["A", "B"], ["A"])


def test_error_rates():
    table = confusion_table(["A", "A", "A", "A", "B", "B"], ["A", "A", "A", "B", "B", "A"])
    rates = class_error_rates(table)
    assert rates["A"] == pytest.approx(0.25)
    assert rates["B"] == pytest.approx(0.5)
    assert overall_error(table) == pytest.approx(2 / 6)


def test_min_error_rule_prefers_sparsest_minimum():
    curve = _curve([[1, 0, 1, 1], [1, 1, 0, 1]])
    assert select_threshold(curve, rule="min_error") == 2.0


def test_one_se_rule_allows_larger_threshold():
    curve = _curve([[1, 0, 1, 1], [1, 1, 0, 1]])
    # Minimum rate 0.1 at threshold 2 with SE 0.1; threshold 3 has rate 0.2
    assert select_threshold(curve, rule="one_se") == 3.0


def test_unknown_rule():
    with pytest.raises(ValueError):
        select_threshold(_curve([[0, 0, 0, 0], [0, 0, 0, 0]]), rule="best")


def test_cv_curve_frame():
    frame = cv_curve_frame(_curve([[1, 0, 1, 1], [1, 1, 0, 1]]))
    assert frame["errors"].tolist() == [2, 1, 1, 2]
    assert frame["n_retained"].tolist() == [40, 20, 10, 5]


def test_list_genes_ranks_retained_features(scenario):
    X, y = scenario
    stats = CentroidStatistics.compute(X, y)
    model = stats.shrink(stats.max_threshold * 0.3)
    ids = ["f0", "f1", "f2", "f3"]
    genes = list_genes(model, ids, annotations=["G0", "G1", "G2", "G3"])

    assert list(genes.columns) == ["feature_id", "annotation", "A_score", "B_score", "max_abs_score"]
    assert len(genes) == model.n_retained
    assert genes["feature_id"].iloc[0] == "f0"
    assert genes["annotation"].iloc[0] == "G0"
    assert (np.diff(genes["max_abs_score"]) <= 0).all()
    # Class A lies below the overall mean on feature 0
    assert genes["A_score"].iloc[0] < 0 < genes["B_score"].iloc[0]


def test_list_genes_top_n_and_empty(scenario):
    X, y = scenario
    stats = CentroidStatistics.compute(X, y)
    assert len(list_genes(stats.shrink(0.0), ["a", "b", "c", "d"], top_n=2)) == 2
    assert len(list_genes(stats.shrink(stats.max_threshold), ["a", "b", "c", "d"])) == 0


def test_list_genes_checks_lengths(scenario):
    X, y = scenario
    model = CentroidStatistics.compute(X, y).shrink(0.0)
    with pytest.raises(DimensionMismatchError):
        list_genes(model, ["a", "b"])
    with pytest.raises(DimensionMismatchError):
        list_genes(model, ["a", "b", "c", "d"], annotations=["x"])


def test_evaluator_on_separable_data(scenario):
    X, y = scenario
    clf = NearestShrunkenCentroid(threshold=0.0).fit(X, y)
    evaluator = ClassifierEvaluator()
    metrics = evaluator.evaluate(clf, X, y)

    assert metrics["accuracy"] == 1.0
    assert metrics["error_rate"] == 0.0
    assert metrics["auc"] == pytest.approx(1.0)
    assert metrics["confusion"].loc["A", "A"] == 5

    roc = evaluator.get_roc_data({"NSC": metrics}, y)
    fpr, tpr, auc = roc["NSC"]
    assert auc == pytest.approx(1.0)

    summary = evaluator.to_dataframe({"NSC": metrics})
    assert list(summary.columns) == ["Model", "Accuracy", "Error_Rate", "AUC"]


def test_evaluator_multiclass_has_no_auc(three_class_data):
    X, y = three_class_data
    clf = NearestShrunkenCentroid(threshold=0.0).fit(X, y)
    metrics = ClassifierEvaluator().evaluate(clf, X, y)
    assert np.isnan(metrics["auc"])
    assert metrics["confusion"].shape == (3, 3)


def test_confusion_rejects_labels_outside_classes():
    with pytest.raises(InvalidDataError):
        confusion_table(["A", "B", "C"], ["A", "B", "B"], classes=["A", "B"])
    with pytest.raises(InvalidDataError):
        confusion_table(["A", "B"], ["A", "Z"], classes=["A", "B"])
