"""
Error types raised by the shrunken centroid core.

All errors are raised at the point of detection. The computations are
deterministic, so the caller has to fix the input rather than retry.
"""


class ShrunkenCentroidError(ValueError):
    """Base class for input errors detected by the classifier core."""


class InsufficientDataError(ShrunkenCentroidError):
    """A class has too few samples, or there are fewer samples than folds."""


class DimensionMismatchError(ShrunkenCentroidError):
    """Label, prior or feature vector lengths do not agree."""


class DegenerateFoldError(ShrunkenCentroidError):
    """A stratified fold cannot be formed without leaving out a class."""


class InvalidThresholdError(ShrunkenCentroidError):
    """A shrinkage threshold is negative or not finite."""


class InvalidDataError(ShrunkenCentroidError):
    """The expression matrix contains missing or non-finite values."""
