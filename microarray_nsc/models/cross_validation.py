"""
Cross-validation of shrunken centroid classifiers over a threshold grid.
"""

import logging
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.special import softmax

from ..exceptions import DegenerateFoldError, InsufficientDataError
from .predictor import discriminant_scores
from .shrunken_centroid import (
    CentroidStatistics,
    PriorSpec,
    check_training_data,
    validate_threshold,
)

logger = logging.getLogger(__name__)

RandomState = Union[None, int, np.random.Generator]


def make_stratified_folds(
    y_idx: np.ndarray,
    n_folds: int,
    rng: np.random.Generator
) -> List[np.ndarray]:
    """
    Partition samples into stratified folds.

    The members of each class are shuffled and dealt round-robin across the
    folds. Dealing continues where the previous class stopped, so fold sizes
    stay balanced as well. Each fold holds floor(n_k / F) or ceil(n_k / F)
    samples of class k.

    Args:
        y_idx: Class index per sample
        n_folds: Number of folds
        rng: Random generator used for shuffling

    Returns:
        List of sorted sample index arrays, one per fold
    """
    assignment = np.empty(len(y_idx), dtype=int)
    offset = 0
    for k in np.unique(y_idx):
        members = rng.permutation(np.flatnonzero(y_idx == k))
        assignment[members] = (offset + np.arange(len(members))) % n_folds
        offset = (offset + len(members)) % n_folds
    return [np.flatnonzero(assignment == f) for f in range(n_folds)]


def _evaluate_fold(
    X: np.ndarray,
    y_idx: np.ndarray,
    classes: np.ndarray,
    test_idx: np.ndarray,
    thresholds: np.ndarray,
    s0_percentile: float,
    prior: PriorSpec
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Train on everything outside one fold and predict the fold at every threshold.

    Returns:
        Tuple of (predicted class index, shape (n_thresholds, n_test);
        posteriors, shape (n_thresholds, n_test, n_classes))
    """
    train_mask = np.ones(len(y_idx), dtype=bool)
    train_mask[test_idx] = False

    # Every class is present in every training split, so class indices line up
    statistics = CentroidStatistics.compute(
        X[train_mask], y_idx[train_mask], s0_percentile=s0_percentile
    )
    X_test = X[test_idx]

    predictions = np.empty((len(thresholds), len(test_idx)), dtype=int)
    probabilities = np.empty((len(thresholds), len(test_idx), len(classes)))
    for t, threshold in enumerate(thresholds):
        scores = discriminant_scores(statistics.shrink(threshold, prior=prior), X_test)
        predictions[t] = np.argmin(scores, axis=1)
        probabilities[t] = softmax(-0.5 * scores, axis=1)
    return predictions, probabilities


class CrossValidationResult:
    """
    Cross-validated error curve over a threshold grid.

    Attributes:
        thresholds: Threshold grid, ascending
        n_retained: Retained features at each threshold (full-data model)
        errors: Misclassifications summed over all held-out folds
        fold_errors: Misclassifications per fold, shape (n_folds, n_thresholds)
        folds: Held-out sample indices per fold
        classes: Sorted class labels
        y_true: True label per sample
        cv_predictions: Held-out predicted labels, shape (n_thresholds, n_samples)
        cv_probabilities: Held-out posteriors, shape (n_thresholds, n_samples, n_classes)
    """

    def __init__(
        self,
        thresholds: np.ndarray,
        n_retained: np.ndarray,
        fold_errors: np.ndarray,
        folds: List[np.ndarray],
        classes: np.ndarray,
        y_true: np.ndarray,
        cv_predictions: np.ndarray,
        cv_probabilities: np.ndarray
    ):
        self.thresholds = thresholds
        self.n_retained = n_retained
        self.fold_errors = fold_errors
        self.errors = fold_errors.sum(axis=0)
        self.folds = folds
        self.classes = classes
        self.y_true = y_true
        self.cv_predictions = cv_predictions
        self.cv_probabilities = cv_probabilities

    @property
    def n_samples(self) -> int:
        return len(self.y_true)

    @property
    def n_folds(self) -> int:
        return len(self.folds)

    @property
    def error_rate(self) -> np.ndarray:
        return self.errors / self.n_samples

    @property
    def fold_error_rates(self) -> np.ndarray:
        sizes = np.array([len(f) for f in self.folds], dtype=float)
        return self.fold_errors / sizes[:, None]

    @property
    def standard_error(self) -> np.ndarray:
        """Standard error of the error rate, from the spread across folds."""
        rates = self.fold_error_rates
        return rates.std(axis=0, ddof=1) / np.sqrt(self.n_folds)

    def threshold_index(self, threshold: float) -> int:
        """Position of the grid threshold closest to the given value."""
        index = int(np.argmin(np.abs(self.thresholds - threshold)))
        if not np.isclose(self.thresholds[index], threshold, rtol=0.0, atol=1e-12):
            logger.warning(
                f"Threshold {threshold:.4f} is not on the cross-validation grid; "
                f"using nearest grid value {self.thresholds[index]:.4f}"
            )
        return index

    def predictions_at(self, threshold: float) -> np.ndarray:
        """Held-out predicted labels at the grid threshold closest to the given value."""
        return self.cv_predictions[self.threshold_index(threshold)]

    def probabilities_at(self, threshold: float) -> np.ndarray:
        """Held-out posteriors at the grid threshold closest to the given value."""
        return self.cv_probabilities[self.threshold_index(threshold)]

    def to_dataframe(self) -> pd.DataFrame:
        """
        Tabular error curve for export.

        Returns:
            DataFrame with threshold, retained features, errors, error rate and SE
        """
        return pd.DataFrame({
            "threshold": self.thresholds,
            "n_retained": self.n_retained,
            "errors": self.errors,
            "error_rate": self.error_rate,
            "standard_error": self.standard_error,
        })

    def __repr__(self) -> str:
        best = int(self.errors.min())
        return (
            f"CrossValidationResult({self.n_folds} folds, "
            f"{len(self.thresholds)} thresholds, min errors={best}/{self.n_samples})"
        )


class ThresholdCrossValidator:
    """
    Stratified K-fold cross-validation across a threshold grid.

    The validator reports the error curve; it does not pick a threshold.
    Folds are independent and may be evaluated in parallel, and their
    counts are combined by summation, so the result does not depend on the
    order in which folds finish.
    """

    def __init__(
        self,
        n_folds: int = 5,
        random_state: RandomState = None,
        n_jobs: Optional[int] = 1,
        s0_percentile: float = 50.0,
        prior: PriorSpec = None
    ):
        """
        Initialize the cross-validator.

        Args:
            n_folds: Number of folds (>= 2)
            random_state: Seed or ``numpy.random.Generator`` used for fold
                          assignment. A seed gives the same folds on every call;
                          a generator is advanced by each call.
            n_jobs: Parallel fold workers for joblib (1 runs in process, -1 uses all cores)
            s0_percentile: Passed to the centroid fit
            prior: Class prior used for held-out prediction
        """
        if int(n_folds) != n_folds or n_folds < 2:
            raise InsufficientDataError(f"n_folds must be an integer >= 2, got {n_folds}")
        self.n_folds = int(n_folds)
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.s0_percentile = s0_percentile
        self.prior = prior

    def _rng(self) -> np.random.Generator:
        if isinstance(self.random_state, np.random.Generator):
            return self.random_state
        return np.random.default_rng(self.random_state)

    def _check_fold_feasibility(self, y_idx: np.ndarray, classes: np.ndarray) -> None:
        if len(y_idx) < self.n_folds:
            raise InsufficientDataError(
                f"{len(y_idx)} samples cannot fill {self.n_folds} folds"
            )
        counts = np.bincount(y_idx, minlength=len(classes))
        too_small = [f"{c} ({n})" for c, n in zip(classes, counts) if n < self.n_folds]
        if too_small:
            raise DegenerateFoldError(
                f"Classes with fewer samples than folds ({self.n_folds}): "
                f"{', '.join(too_small)}; reduce the number of folds"
            )

    def split(self, y) -> List[np.ndarray]:
        """
        Stratified fold assignment for the given labels.

        Args:
            y: Class label per sample

        Returns:
            List of held-out sample index arrays, one per fold
        """
        classes, y_idx = np.unique(np.asarray(y), return_inverse=True)
        y_idx = y_idx.reshape(-1)
        self._check_fold_feasibility(y_idx, classes)
        return make_stratified_folds(y_idx, self.n_folds, self._rng())

    def cross_validate(
        self,
        X,
        y,
        thresholds: Optional[Sequence[float]] = None,
        n_thresholds: int = 30,
        extra_thresholds: Optional[Sequence[float]] = None
    ) -> CrossValidationResult:
        """
        Cross-validate over a threshold grid.

        Args:
            X: Samples x features matrix
            y: Class label per sample
            thresholds: Threshold grid; defaults to ``n_thresholds`` points from
                        0 to the full-data maximum standardized distance
            n_thresholds: Grid size when thresholds are not given
            extra_thresholds: Values merged into the grid, e.g. a fixed
                              threshold chosen outside cross-validation

        Returns:
            CrossValidationResult
        """
        X, classes, y_idx = check_training_data(X, y)
        self._check_fold_feasibility(y_idx, classes)

        full = CentroidStatistics.compute(X, y_idx, s0_percentile=self.s0_percentile)
        if thresholds is None:
            grid = full.threshold_grid(n_thresholds)
        else:
            grid = np.unique([validate_threshold(t) for t in thresholds])
        if extra_thresholds is not None:
            grid = np.union1d(grid, [validate_threshold(t) for t in extra_thresholds])
        n_retained = np.array([full.shrink(t).n_retained for t in grid])

        folds = make_stratified_folds(y_idx, self.n_folds, self._rng())
        logger.info(
            f"Cross-validating {len(grid)} thresholds over {self.n_folds} folds "
            f"({len(y_idx)} samples, {X.shape[1]} features)"
        )

        outputs = Parallel(n_jobs=self.n_jobs)(
            delayed(_evaluate_fold)(
                X, y_idx, classes, test_idx, grid, self.s0_percentile, self.prior
            )
            for test_idx in folds
        )

        fold_errors = np.zeros((self.n_folds, len(grid)), dtype=int)
        cv_pred_idx = np.empty((len(grid), len(y_idx)), dtype=int)
        cv_proba = np.empty((len(grid), len(y_idx), len(classes)))
        for f, (test_idx, (pred_idx, proba)) in enumerate(zip(folds, outputs)):
            fold_errors[f] = (pred_idx != y_idx[test_idx][None, :]).sum(axis=1)
            cv_pred_idx[:, test_idx] = pred_idx
            cv_proba[:, test_idx, :] = proba
            logger.debug(
                f"Fold {f + 1}/{self.n_folds}: {len(test_idx)} held out, "
                f"min errors {fold_errors[f].min()}"
            )

        result = CrossValidationResult(
            thresholds=grid,
            n_retained=n_retained,
            fold_errors=fold_errors,
            folds=folds,
            classes=classes,
            y_true=classes[y_idx],
            cv_predictions=classes[cv_pred_idx],
            cv_probabilities=cv_proba,
        )
        logger.info(f"Cross-validation done: {result}")
        return result
