"""
Expression matrix loader for microarray datasets.
"""

import logging
import re
from pathlib import Path
from typing import Any, List, Optional, Union

import pandas as pd

from .base import DataLoader
from .dataset import ExpressionDataset
from .metadata import MetadataLoader

logger = logging.getLogger(__name__)

# R prefixes syntactically invalid column names (e.g. "1234") with "X"
_R_PREFIX = re.compile(r"^X(\d[\w.]*)$")


class ExpressionDataLoader(DataLoader):
    """
    Load expression matrices stored as features x samples CSV files.

    Handles:
    - Sample name normalization (X prefix handling)
    - Feature and sample filtering
    - Coercion of non-numeric entries to missing values
    - Joining with sample metadata and feature annotations
    """

    def __init__(self, config: Any = None):
        super().__init__(config)
        self.metadata_loader = MetadataLoader(config)

    def load(
        self,
        file_path: Union[str, Path],
        sample_filter: Optional[List[str]] = None,
        feature_filter: Optional[List[str]] = None,
        handle_x_prefix: bool = True,
        **kwargs
    ) -> pd.DataFrame:
        """
        Load an expression matrix from CSV file.

        Args:
            file_path: Path to the matrix CSV (first column holds feature IDs)
            sample_filter: Optional list of sample IDs to keep, in that order
            feature_filter: Optional list of feature IDs to keep, in that order
            handle_x_prefix: Strip the R-style X prefix from sample names

        Returns:
            Numeric DataFrame with features as rows and samples as columns
        """
        path = self._locate(file_path)

        logger.info(f"Loading expression data from {path.name}...")
        df = self._read_csv(path, index_col=0, **kwargs)
        df.index = df.index.astype(str)
        df.columns = [str(c).strip() for c in df.columns]

        if handle_x_prefix:
            df = self._normalize_column_names(df)

        df = df.apply(pd.to_numeric, errors="coerce")

        if feature_filter is not None:
            available_features = [f for f in feature_filter if f in df.index]
            df = df.loc[available_features]
            logger.info(f"Filtered to {len(available_features)} features")

        if sample_filter is not None:
            available_samples = [s for s in sample_filter if s in df.columns]
            df = df[available_samples]
            logger.info(f"Filtered to {len(available_samples)} samples")

        n_missing = int(df.isna().sum().sum())
        if n_missing > 0:
            logger.warning(f"Expression matrix has {n_missing} missing values")

        logger.info(f"Loaded {df.shape[0]} features x {df.shape[1]} samples")
        return df

    def _normalize_column_names(self, df: pd.DataFrame) -> pd.DataFrame:
        """Remove X prefix from sample names if present."""
        df.columns = [_R_PREFIX.sub(r"\1", col) for col in df.columns]
        return df

    def load_dataset(
        self,
        expression_path: Union[str, Path],
        metadata_path: Optional[Union[str, Path]] = None,
        sample_col: str = "sample_id",
        label_col: Optional[str] = "class",
        annotation_path: Optional[Union[str, Path]] = None,
        feature_col: str = "feature_id",
        label_mapping: Optional[dict] = None,
        require_labels: bool = True
    ) -> ExpressionDataset:
        """
        Load an expression matrix and join it with its metadata by position.

        Samples are kept in metadata order. Samples missing from either file,
        and (when labels are required) samples without a label, are dropped
        with a warning.

        Args:
            expression_path: Path to features x samples matrix
            metadata_path: Path to sample metadata CSV
            sample_col: Metadata column with sample IDs
            label_col: Metadata column with class labels
            annotation_path: Optional feature annotation CSV
            feature_col: Annotation column with feature IDs
            label_mapping: Optional recoding of raw label values
            require_labels: Drop samples whose label is missing

        Returns:
            ExpressionDataset with aligned labels and metadata
        """
        matrix = self.load(expression_path)

        meta_df = None
        labels = None
        if metadata_path is not None:
            meta_df = self.metadata_loader.load(metadata_path)
            if sample_col not in meta_df.columns:
                raise ValueError(
                    f"Metadata has no '{sample_col}' column "
                    f"(columns: {list(meta_df.columns)})"
                )
            meta_df[sample_col] = meta_df[sample_col].astype(str).str.strip()

            if label_col is not None and label_col in meta_df.columns:
                if label_mapping:
                    meta_df = self.metadata_loader.recode_labels(
                        meta_df, label_col, label_mapping
                    )
                if require_labels:
                    unlabeled = meta_df[label_col].isna()
                    if unlabeled.any():
                        logger.warning(f"Dropping {int(unlabeled.sum())} samples without a label")
                        meta_df = meta_df[~unlabeled]
            elif label_col is not None and require_labels:
                raise ValueError(f"Metadata has no '{label_col}' label column")

            in_matrix = meta_df[sample_col].isin(matrix.columns)
            if not in_matrix.all():
                logger.warning(
                    f"{int((~in_matrix).sum())} metadata samples not found in expression matrix"
                )
            meta_df = meta_df[in_matrix].drop_duplicates(subset=sample_col)

            n_unmatched = len(set(matrix.columns) - set(meta_df[sample_col]))
            if n_unmatched > 0:
                logger.warning(f"{n_unmatched} matrix samples have no metadata and are dropped")

            matrix = matrix[meta_df[sample_col].tolist()]
            meta_df = meta_df.reset_index(drop=True)

            if label_col is not None and label_col in meta_df.columns:
                labels = meta_df[label_col].to_numpy()

        annotations = None
        if annotation_path is not None:
            annotations = self.metadata_loader.load_feature_annotations(
                annotation_path, matrix.index.tolist(), feature_col=feature_col
            )

        dataset = ExpressionDataset.from_frame(
            matrix,
            labels=labels,
            feature_annotations=annotations,
            sample_metadata=meta_df,
        )
        logger.info(f"Built {dataset}")
        if labels is not None:
            counts = ", ".join(f"{k}={v}" for k, v in dataset.class_counts().items())
            logger.info(f"Class sizes: {counts}")
        return dataset

