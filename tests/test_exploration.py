# tests/test_exploration.py
import numpy as np
import pytest

from microarray_nsc.data_loaders import ExpressionDataset
from microarray_nsc.exploration import (
    hierarchical_clustering,
    principal_components,
    sample_distances,
)


@pytest.fixture
def scenario_dataset(scenario):
    X, y = scenario
    return ExpressionDataset(X.T, labels=y)


def test_distances_are_symmetric(scenario_dataset):
    dist = sample_distances(scenario_dataset)

    assert dist.shape == (10, 10)
    assert list(dist.index) == list(dist.columns)
    np.testing.assert_allclose(dist.to_numpy(), dist.to_numpy().T)
    np.testing.assert_allclose(np.diag(dist.to_numpy()), 0.0)
    # Samples from different classes are further apart than within a class
    assert dist.iloc[0, 5] > dist.iloc[0, 1]


def test_clusters_recover_classes(scenario_dataset):
    tree, clusters = hierarchical_clustering(scenario_dataset, method="average", n_clusters=2)

    assert tree.shape == (9, 4)
    assert clusters.name == "cluster"
    assert set(clusters) == {1, 2}
    assert clusters.iloc[:5].nunique() == 1
    assert clusters.iloc[5:].nunique() == 1
    assert clusters.iloc[0] != clusters.iloc[5]


def test_correlation_clustering(scenario_dataset):
    _, clusters = hierarchical_clustering(
        scenario_dataset, method="complete", metric="correlation", n_clusters=3
    )
    assert len(clusters) == 10
    assert clusters.nunique() <= 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {"metric": "hamming-ish"},
        {"method": "upgma"},
        {"method": "ward", "metric": "correlation"},
        {"n_clusters": 0},
        {"n_clusters": 11},
    ],
)
def test_clustering_rejects_bad_arguments(scenario_dataset, kwargs):
    with pytest.raises(ValueError):
        hierarchical_clustering(scenario_dataset, **kwargs)


def test_missing_values_rejected():
    ds = ExpressionDataset(np.array([[1.0, np.nan], [2.0, 3.0]]))
    with pytest.raises(ValueError):
        sample_distances(ds)


def test_pca(scenario_dataset):
    scores, explained = principal_components(scenario_dataset, n_components=3)

    assert list(scores.columns) == ["PC1", "PC2", "PC3"]
    assert scores.shape == (10, 3)
    assert explained.sum() <= 1.0 + 1e-9
    assert (np.diff(explained.to_numpy()) <= 1e-12).all()
    # The class split dominates the first component
    assert explained["PC1"] > 0.9
    assert np.sign(scores["PC1"].iloc[0]) != np.sign(scores["PC1"].iloc[5])


def test_pca_component_bounds(scenario_dataset):
    with pytest.raises(ValueError):
        principal_components(scenario_dataset, n_components=5)
    scaled, _ = principal_components(scenario_dataset, n_components=2, scale=True)
    assert scaled.shape == (10, 2)
