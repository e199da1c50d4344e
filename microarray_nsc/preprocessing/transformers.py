"""
Data transformation utilities for expression analysis.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..data_loaders.dataset import ExpressionDataset
from ..exceptions import InvalidDataError

logger = logging.getLogger(__name__)


class ExpressionTransformer:
    """
    Transform expression data for model training.

    Handles log transformation, missing value imputation with training
    means, and alignment of external datasets to the training features.
    """

    def __init__(self, floor: Optional[float] = None, ceiling: Optional[float] = None):
        """
        Initialize transformer.

        Args:
            floor: Lower intensity bound applied before taking logs
            ceiling: Upper intensity bound applied before taking logs
        """
        self.floor = floor
        self.ceiling = ceiling
        self.floor_: Optional[float] = None
        self.imputer_means_: Optional[pd.Series] = None

    def log_transform(self, dataset: ExpressionDataset) -> ExpressionDataset:
        """
        Clip intensities to [floor, ceiling] and take log2.

        Without an explicit floor the floor learned by ``fit_log_transform``
        is used; before fitting it is the smallest positive intensity of the
        dataset itself, so non-positive readings do not become missing values.

        Args:
            dataset: Dataset with raw intensities

        Returns:
            Dataset with log2 intensities
        """
        values = dataset.values
        floor = self._resolve_floor(values) if self.floor_ is None else self.floor_

        n_clipped = int(np.sum(values < floor))
        if n_clipped > 0:
            logger.info(f"Flooring {n_clipped} values at {floor}")

        logged = np.log2(np.clip(values, floor, self.ceiling))
        return dataset.with_values(logged)

    def _resolve_floor(self, values: np.ndarray) -> float:
        if self.floor is not None:
            if self.floor <= 0:
                raise ValueError(f"Log transform floor must be positive, got {self.floor}")
            return float(self.floor)
        positive = values[np.isfinite(values) & (values > 0)]
        return float(positive.min()) if positive.size else 1.0

    def fit_log_transform(self, dataset: ExpressionDataset) -> ExpressionDataset:
        """
        Learn the floor on training data, then log transform it.

        Later ``log_transform`` calls (e.g. on an external cohort) clip at the
        same floor.
        """
        self.floor_ = self._resolve_floor(dataset.values)
        return self.log_transform(dataset)

    def fit_impute(self, dataset: ExpressionDataset) -> ExpressionDataset:
        """
        Fit imputer on training data and transform.

        Args:
            dataset: Training dataset with potential missing values

        Returns:
            Imputed training dataset
        """
        values = np.where(np.isfinite(dataset.values), dataset.values, np.nan)
        observed = ~np.isnan(values).all(axis=1)
        if not observed.all():
            raise InvalidDataError(
                f"{int((~observed).sum())} features have no observed values; "
                "filter them before imputation"
            )

        self.imputer_means_ = pd.Series(
            np.nanmean(values, axis=1), index=dataset.feature_ids
        )
        return self.transform_impute(dataset)

    def transform_impute(self, dataset: ExpressionDataset) -> ExpressionDataset:
        """
        Impute missing values using fitted means.

        Args:
            dataset: Dataset with potential missing values, same features as training

        Returns:
            Imputed dataset
        """
        if self.imputer_means_ is None:
            raise RuntimeError("Imputer has not been fitted yet")

        means = self.imputer_means_.reindex(dataset.feature_ids).to_numpy()
        if np.isnan(means).any():
            raise InvalidDataError("Dataset has features unknown to the fitted imputer")

        values = dataset.values.copy()
        missing = ~np.isfinite(values)
        n_missing = int(missing.sum())
        if n_missing > 0:
            logger.info(f"Imputing {n_missing} missing values with training means")
            rows, _ = np.nonzero(missing)
            values[missing] = means[rows]
        return dataset.with_values(values)

    def align_features(
        self,
        dataset: ExpressionDataset,
        feature_ids: Sequence[str]
    ) -> ExpressionDataset:
        """
        Reorder a dataset to the given feature order.

        Features absent from the dataset are added as missing rows, to be
        filled by ``transform_impute``.

        Args:
            dataset: External dataset, e.g. an independent test cohort
            feature_ids: Training feature order

        Returns:
            Dataset with exactly the given features, in order
        """
        feature_ids = [str(f) for f in feature_ids]
        frame = dataset.to_frame()
        frame.index = frame.index.astype(str)
        aligned = frame.reindex(feature_ids)

        n_absent = int(aligned.isna().all(axis=1).sum())
        if n_absent > 0:
            logger.warning(
                f"{n_absent}/{len(feature_ids)} training features absent from dataset"
            )

        annotations = None
        if dataset.feature_annotations is not None:
            annotations = dataset.feature_annotations.set_index(
                pd.Index([str(f) for f in dataset.feature_ids])
            ).reindex(feature_ids)

        return ExpressionDataset(
            aligned.to_numpy(dtype=float),
            feature_ids=feature_ids,
            sample_ids=dataset.sample_ids,
            labels=dataset.labels,
            feature_annotations=annotations,
            sample_metadata=dataset.sample_metadata,
        )

    def prepare_for_training(
        self,
        train: ExpressionDataset,
        test: Optional[ExpressionDataset] = None,
        log_transform: bool = False
    ) -> Tuple[ExpressionDataset, Optional[ExpressionDataset]]:
        """
        Complete preparation pipeline for model training.

        Performs: log transform -> imputation (training means) -> test alignment

        Args:
            train: Training dataset
            test: Optional external dataset to prepare identically
            log_transform: Apply log2 transform first

        Returns:
            Tuple of (prepared_train, prepared_test)
        """
        if log_transform:
            train = self.fit_log_transform(train)
            if test is not None:
                test = self.log_transform(test)

        train = self.fit_impute(train)

        if test is not None:
            test = self.align_features(test, train.feature_ids)
            test = self.transform_impute(test)

        logger.info(
            f"Prepared data: {train.n_samples} train"
            + (f", {test.n_samples} test" if test is not None else "")
            + f" samples with {train.n_features} features"
        )
        return train, test

    def get_imputer_means(self) -> pd.Series:
        """Get the imputation means."""
        if self.imputer_means_ is None:
            raise RuntimeError("Imputer has not been fitted yet")
        return self.imputer_means_.copy()
