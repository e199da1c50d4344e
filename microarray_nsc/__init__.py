"""
Microarray Nearest Shrunken Centroid Analysis

A modular framework for exploratory and supervised analysis of
gene-expression microarray data, built around the nearest shrunken
centroid classifier with cross-validated threshold selection.
"""

__version__ = "1.0.0"
