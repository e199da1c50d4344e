# tests/test_data_loaders.py
import numpy as np
import pandas as pd
import pytest

from microarray_nsc.data_loaders import ExpressionDataLoader, ExpressionDataset, MetadataLoader
from microarray_nsc.exceptions import DimensionMismatchError, InvalidDataError


def test_dataset_defaults_and_views():
    values = np.arange(12, dtype=float).reshape(3, 4)
    ds = ExpressionDataset(values, labels=["a", "a", "b", "b"])

    assert ds.shape == (3, 4)
    assert ds.feature_ids.tolist() == ["F1", "F2", "F3"]
    assert ds.sample_ids.tolist() == ["S1", "S2", "S3", "S4"]
    np.testing.assert_array_equal(ds.X, values.T)
    assert ds.class_counts().to_dict() == {"a": 2, "b": 2}


def test_dataset_length_checks():
    with pytest.raises(DimensionMismatchError):
        ExpressionDataset(np.zeros((3, 4)), labels=["a", "b"])
    with pytest.raises(DimensionMismatchError):
        ExpressionDataset(np.zeros((3, 4)), feature_ids=["x"])


def test_dataset_subsets_keep_positional_metadata():
    meta = pd.DataFrame({"sample_id": ["s1", "s2", "s3"], "batch": [1, 2, 3]})
    ds = ExpressionDataset(
        np.arange(6, dtype=float).reshape(2, 3),
        feature_ids=["g1", "g2"],
        sample_ids=["s1", "s2", "s3"],
        labels=["x", "y", "x"],
        sample_metadata=meta,
    )
    sub = ds.subset_samples([2, 0])
    assert sub.sample_ids.tolist() == ["s3", "s1"]
    assert sub.labels.tolist() == ["x", "x"]
    assert sub.sample_metadata["batch"].tolist() == [3, 1]
    np.testing.assert_array_equal(sub.values, [[2.0, 0.0], [5.0, 3.0]])

    feat = ds.subset_features([1])
    assert feat.feature_ids.tolist() == ["g2"]
    assert feat.n_samples == 3


def test_validate_finite():
    ds = ExpressionDataset(np.array([[1.0, np.nan], [2.0, 3.0]]))
    assert ds.has_missing
    with pytest.raises(InvalidDataError):
        ds.validate_finite()


def test_load_matrix_strips_r_prefix(dataset_files):
    expression_path, _, _ = dataset_files
    matrix = ExpressionDataLoader().load(expression_path)

    assert matrix.shape == (40, 22)
    assert matrix.columns[0] == "1000"
    assert matrix.index[0] == "probe_000"


def test_load_dataset_joins_by_metadata_order(tmp_path, dataset_files):
    expression_path, metadata_path, annotation_path = dataset_files

    # Shuffle metadata rows and add a sample missing from the matrix
    meta = pd.read_csv(metadata_path)
    meta = meta.iloc[::-1]
    meta = pd.concat(
        [meta, pd.DataFrame({"sample_id": [9999], "class": ["ALL"]})], ignore_index=True
    )
    shuffled = tmp_path / "shuffled.csv"
    meta.to_csv(shuffled, index=False)

    ds = ExpressionDataLoader().load_dataset(
        expression_path, shuffled, annotation_path=annotation_path
    )

    assert ds.n_samples == 22
    assert ds.sample_ids[0] == "1021"
    assert ds.labels[0] == "AML"
    assert ds.feature_annotations["symbol"].iloc[3] == "GENE3"

    matrix = pd.read_csv(expression_path, index_col=0)
    np.testing.assert_allclose(ds.values[:, 0], matrix["X1021"].to_numpy())


def test_load_dataset_drops_unlabelled_samples(tmp_path, dataset_files):
    expression_path, metadata_path, _ = dataset_files
    meta = pd.read_csv(metadata_path)
    meta.loc[0, "class"] = np.nan
    partial = tmp_path / "partial.csv"
    meta.to_csv(partial, index=False)

    ds = ExpressionDataLoader().load_dataset(expression_path, partial)
    assert ds.n_samples == 21
    assert "1000" not in ds.sample_ids.tolist()


def test_label_mapping(tmp_path, dataset_files):
    expression_path, metadata_path, _ = dataset_files
    meta = pd.read_csv(metadata_path)
    meta["class"] = (meta["class"] == "AML").astype(int)
    coded = tmp_path / "coded.csv"
    meta.to_csv(coded, index=False)

    ds = ExpressionDataLoader().load_dataset(
        expression_path, coded, label_mapping={"0": "ALL", "1": "AML"}
    )
    assert set(ds.labels) == {"ALL", "AML"}


def test_missing_columns_and_files(tmp_path, dataset_files):
    expression_path, metadata_path, _ = dataset_files
    loader = ExpressionDataLoader()
    with pytest.raises(ValueError):
        loader.load_dataset(expression_path, metadata_path, label_col="diagnosis")
    with pytest.raises(FileNotFoundError):
        loader.load(tmp_path / "absent.csv")


def test_feature_annotations_follow_matrix_order(tmp_path):
    path = tmp_path / "ann.csv"
    pd.DataFrame({"feature_id": ["b", "a"], "symbol": ["B1", "A1"]}).to_csv(path, index=False)
    ann = MetadataLoader().load_feature_annotations(path, ["a", "b", "c"])

    assert ann["feature_id"].tolist() == ["a", "b", "c"]
    assert ann["symbol"].tolist()[:2] == ["A1", "B1"]
    assert pd.isna(ann["symbol"].iloc[2])


def test_feature_labels_fall_back_to_ids():
    ann = pd.DataFrame({"symbol": ["TP53", None]})
    ds = ExpressionDataset(np.zeros((2, 2)), feature_ids=["p1", "p2"], feature_annotations=ann)
    assert ds.feature_labels("symbol").tolist() == ["TP53", "p2"]
    assert ds.feature_labels().tolist() == ["p1", "p2"]
