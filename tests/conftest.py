# tests/conftest.py
# Ensure project root is importable as a module during pytest runs
import pathlib
import sys

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


# Ten samples (5 per class), four features; feature 0 separates the classes.
SCENARIO_A = [
    [0.1, 1.0, 2.0, 0.5],
    [-0.2, 1.2, 1.8, 0.4],
    [0.0, 0.9, 2.1, 0.6],
    [0.3, 1.1, 2.2, 0.3],
    [-0.1, 0.8, 1.9, 0.7],
]
SCENARIO_B = [
    [5.1, 1.1, 2.0, 0.6],
    [4.8, 0.9, 2.1, 0.5],
    [5.0, 1.0, 1.9, 0.4],
    [5.2, 1.2, 2.2, 0.6],
    [4.9, 0.8, 1.8, 0.5],
]


@pytest.fixture
def scenario():
    """Samples x features matrix and labels of the 5/5 x 4 scenario."""
    X = np.array(SCENARIO_A + SCENARIO_B, dtype=float)
    y = np.array(["A"] * 5 + ["B"] * 5)
    return X, y


def make_expression(n_per_class=(12, 10), n_features=40, n_informative=5, shift=2.0, seed=0):
    """Synthetic two-class log-scale expression, samples x features."""
    rng = np.random.default_rng(seed)
    n_a, n_b = n_per_class
    X = rng.normal(loc=8.0, scale=1.0, size=(n_a + n_b, n_features))
    X[n_a:, :n_informative] += shift
    y = np.array(["ALL"] * n_a + ["AML"] * n_b)
    return X, y


@pytest.fixture
def two_class_data():
    return make_expression()


@pytest.fixture
def three_class_data():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(30, 20))
    X[10:20, 0] += 3.0
    X[20:, 1] += 3.0
    y = np.repeat(["c1", "c2", "c3"], 10)
    return X, y


def write_dataset(directory, X, y, prefix="train", sample_offset=0, annotate=True):
    """
    Write a features x samples matrix, sample metadata and feature annotations.

    Sample columns carry the R-style X prefix; metadata uses the bare IDs.
    """
    directory = pathlib.Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    n_samples, n_features = X.shape
    sample_ids = [str(1000 + sample_offset + i) for i in range(n_samples)]
    feature_ids = [f"probe_{j:03d}" for j in range(n_features)]

    matrix = pd.DataFrame(X.T, index=feature_ids, columns=[f"X{s}" for s in sample_ids])
    matrix.index.name = "feature_id"
    expression_path = directory / f"{prefix}_expression.csv"
    matrix.to_csv(expression_path)

    metadata_path = directory / f"{prefix}_samples.csv"
    pd.DataFrame({"sample_id": sample_ids, "class": y}).to_csv(metadata_path, index=False)

    annotation_path = None
    if annotate:
        annotation_path = directory / "annotations.csv"
        pd.DataFrame({
            "feature_id": feature_ids,
            "symbol": [f"GENE{j}" for j in range(n_features)],
        }).to_csv(annotation_path, index=False)

    return expression_path, metadata_path, annotation_path


@pytest.fixture
def dataset_files(tmp_path, two_class_data):
    X, y = two_class_data
    return write_dataset(tmp_path / "data", X, y)
