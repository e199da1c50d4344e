# tests/test_preprocessing.py
import numpy as np
import pytest

from microarray_nsc.data_loaders import ExpressionDataset
from microarray_nsc.exceptions import InvalidDataError
from microarray_nsc.preprocessing import ExpressionTransformer, VarianceSelector


def _dataset(values, feature_ids=None):
    values = np.asarray(values, dtype=float)
    if feature_ids is None:
        feature_ids = [f"g{i}" for i in range(values.shape[0])]
    return ExpressionDataset(values, feature_ids=feature_ids)


def test_variance_selector_keeps_most_variable_in_original_order():
    ds = _dataset([
        [1, 1, 1, 1],
        [0, 10, 0, 10],
        [0, 1, 0, 1],
        [0, 5, 0, 5],
    ])
    selector = VarianceSelector(top_n=2)
    out = selector.fit_transform(ds)

    assert selector.get_selected_features() == ["g1", "g3"]
    assert out.feature_ids.tolist() == ["g1", "g3"]
    stats = selector.get_variance_stats()
    assert stats["selected"].sum() == 2


def test_variance_selector_transform_matches_by_id():
    train = _dataset([[0, 9, 0, 9], [1, 1, 1, 1]], feature_ids=["a", "b"])
    test = _dataset([[1, 2], [3, 4]], feature_ids=["b", "a"])
    selector = VarianceSelector(top_n=1).fit(train)
    out = selector.transform(test)
    assert out.feature_ids.tolist() == ["a"]
    np.testing.assert_array_equal(out.values, [[3.0, 4.0]])


def test_variance_selector_requires_a_criterion():
    with pytest.raises(ValueError):
        VarianceSelector()


def test_log_transform_floor_and_ceiling():
    ds = _dataset([[-5.0, 4.0, 64.0], [2.0, 8.0, 1000.0]])
    out = ExpressionTransformer(floor=2.0, ceiling=256.0).log_transform(ds)
    np.testing.assert_allclose(out.values, [[1.0, 2.0, 6.0], [1.0, 3.0, 8.0]])


def test_log_transform_default_floor_is_smallest_positive():
    ds = _dataset([[0.0, 4.0], [-1.0, 16.0]])
    out = ExpressionTransformer().log_transform(ds)
    assert np.isfinite(out.values).all()
    np.testing.assert_allclose(out.values, [[2.0, 2.0], [2.0, 4.0]])


def test_imputation_uses_training_means():
    train = _dataset([[1.0, np.nan, 3.0], [4.0, 5.0, 6.0]])
    test = _dataset([[np.nan, 0.0], [1.0, np.nan]])
    transformer = ExpressionTransformer()

    imputed = transformer.fit_impute(train)
    np.testing.assert_allclose(imputed.values[0], [1.0, 2.0, 3.0])

    out = transformer.transform_impute(test)
    np.testing.assert_allclose(out.values, [[2.0, 0.0], [1.0, 5.0]])


def test_imputation_rejects_unobserved_features():
    with pytest.raises(InvalidDataError):
        ExpressionTransformer().fit_impute(_dataset([[np.nan, np.nan], [1.0, 2.0]]))


def test_transform_before_fit():
    with pytest.raises(RuntimeError):
        ExpressionTransformer().transform_impute(_dataset([[1.0]]))


def test_prepare_aligns_external_features():
    train = _dataset([[1.0, 3.0], [2.0, 4.0], [5.0, 7.0]], feature_ids=["a", "b", "c"])
    test = _dataset([[10.0], [20.0]], feature_ids=["c", "a"])

    prepared_train, prepared_test = ExpressionTransformer().prepare_for_training(train, test)

    assert prepared_test.feature_ids.tolist() == ["a", "b", "c"]
    # Feature "b" is absent from the test set and takes the training mean
    np.testing.assert_allclose(prepared_test.values[:, 0], [20.0, 3.0, 10.0])
    assert not prepared_train.has_missing


def test_external_cohort_uses_training_floor():
    train = _dataset([[4.0, 8.0], [16.0, 32.0]], feature_ids=["a", "b"])
    # The test cohort dips below the smallest training intensity
    test = _dataset([[1.0, 8.0], [0.5, 32.0]], feature_ids=["a", "b"])

    transformer = ExpressionTransformer()
    prepared_train, prepared_test = transformer.prepare_for_training(
        train, test, log_transform=True
    )

    assert transformer.floor_ == 4.0
    np.testing.assert_allclose(prepared_train.values, [[2.0, 3.0], [4.0, 5.0]])
    np.testing.assert_allclose(prepared_test.values, [[2.0, 3.0], [2.0, 5.0]])


def test_explicit_floor_wins_over_fitted_one():
    transformer = ExpressionTransformer(floor=2.0)
    transformer.fit_log_transform(_dataset([[8.0, 16.0]]))
    assert transformer.floor_ == 2.0
    out = transformer.log_transform(_dataset([[1.0, 4.0]]))
    np.testing.assert_allclose(out.values, [[1.0, 2.0]])
