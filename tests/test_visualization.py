# tests/test_visualization.py
import numpy as np
import pytest

from microarray_nsc.data_loaders import ExpressionDataset
from microarray_nsc.exploration import principal_components
from microarray_nsc.models import (
    ClassifierEvaluator,
    NearestShrunkenCentroid,
    ThresholdCrossValidator,
    confusion_table,
)
from microarray_nsc.utils.config import load_config
from microarray_nsc.visualization import PlotGenerator, get_class_colors


@pytest.fixture
def plotter(tmp_path):
    config = load_config(base_dir=tmp_path)
    config.viz_params["dpi"] = 50
    return PlotGenerator(config)


def test_class_colors_cycle(tmp_path):
    colors = get_class_colors(["a", "b", "c", "d", "e", "f"])
    assert list(colors) == ["a", "b", "c", "d", "e", "f"]
    assert colors["a"] == colors["f"]


def test_cv_curve_plot(plotter, tmp_path, two_class_data):
    X, y = two_class_data
    result = ThresholdCrossValidator(n_folds=3, random_state=0).cross_validate(
        X, y, n_thresholds=6
    )
    out = tmp_path / "plots" / "cv_curve.png"
    plotter.plot_cv_curve(result, out, selected_threshold=result.thresholds[2])
    assert out.stat().st_size > 0


def test_centroid_and_confusion_plots(plotter, tmp_path, two_class_data):
    X, y = two_class_data
    clf = NearestShrunkenCentroid(threshold=1.0).fit(X, y)
    labels = [f"GENE{j}" for j in range(X.shape[1])]

    centroids = tmp_path / "centroids.png"
    plotter.plot_shrunken_centroids(clf.model_, labels, centroids, max_features=10)
    assert centroids.exists()

    confusion = tmp_path / "confusion.png"
    plotter.plot_confusion(confusion_table(y, clf.predict(X)), confusion)
    assert confusion.exists()


def test_centroid_plot_with_nothing_retained(plotter, tmp_path, scenario):
    X, y = scenario
    clf = NearestShrunkenCentroid().fit(X, y)
    clf.set_threshold(clf.statistics_.max_threshold)
    out = tmp_path / "empty.png"
    plotter.plot_shrunken_centroids(clf.model_, ["a", "b", "c", "d"], out)
    assert out.exists()


def test_roc_plot(plotter, tmp_path, scenario):
    X, y = scenario
    clf = NearestShrunkenCentroid(threshold=0.0).fit(X, y)
    evaluator = ClassifierEvaluator()
    results = {"Training": evaluator.evaluate(clf, X, y)}
    out = tmp_path / "roc.png"
    plotter.plot_roc_curves(evaluator.get_roc_data(results, y), out)
    assert out.exists()


def test_pca_and_heatmap_plots(plotter, tmp_path, two_class_data):
    X, y = two_class_data
    ds = ExpressionDataset(X.T, labels=y)
    scores, explained = principal_components(ds)

    pca = tmp_path / "pca.png"
    plotter.plot_pca(scores, explained, y, pca, markers={"AML": "s"})
    assert pca.exists()

    heatmap = tmp_path / "heatmap.png"
    plotter.plot_cluster_heatmap(ds, heatmap, n_features=15)
    assert heatmap.exists()


def test_heatmap_needs_varying_features(plotter, tmp_path):
    ds = ExpressionDataset(np.ones((3, 4)))
    with pytest.raises(ValueError):
        plotter.plot_cluster_heatmap(ds, tmp_path / "flat.png")
