"""
Metadata loader for sample and feature annotations.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from .base import DataLoader

logger = logging.getLogger(__name__)


class MetadataLoader(DataLoader):
    """
    Load and process sample metadata from various formats.

    Handles:
    - Different column naming conventions
    - Class filtering
    - Label recoding
    """

    def load(
        self,
        file_path: Union[str, Path],
        column_mapping: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> pd.DataFrame:
        """
        Load metadata from CSV file.

        Args:
            file_path: Path to metadata CSV
            column_mapping: Optional mapping to standardize column names
                           e.g., {"sample_id": "geo_accession", "class": "diagnosis"}

        Returns:
            DataFrame with standardized metadata
        """
        path = self._locate(file_path)

        logger.info(f"Loading metadata from {path.name}...")
        df = self._read_csv(path, **kwargs)

        if column_mapping:
            reverse_mapping = {v: k for k, v in column_mapping.items()}
            df = df.rename(columns=reverse_mapping)

        logger.info(f"Loaded metadata for {len(df)} rows")
        return df

    def load_feature_annotations(
        self,
        file_path: Union[str, Path],
        feature_ids: List[str],
        feature_col: str = "feature_id"
    ) -> pd.DataFrame:
        """
        Load a feature annotation table aligned to the given feature order.

        Features without an annotation row get missing values.

        Args:
            file_path: Path to annotation CSV
            feature_ids: Feature identifiers in matrix row order
            feature_col: Column holding the feature identifier

        Returns:
            DataFrame with one row per feature, in the order of feature_ids
        """
        df = self.load(file_path)
        if feature_col not in df.columns:
            raise ValueError(
                f"Annotation file has no '{feature_col}' column "
                f"(columns: {list(df.columns)})"
            )

        df[feature_col] = df[feature_col].astype(str)
        df = df.drop_duplicates(subset=feature_col).set_index(feature_col)
        aligned = df.reindex([str(f) for f in feature_ids])

        n_missing = int(aligned.isna().all(axis=1).sum())
        if n_missing > 0:
            logger.warning(f"{n_missing} features have no annotation")

        aligned.index.name = feature_col
        return aligned.reset_index()

    def filter_by_class(
        self,
        df: pd.DataFrame,
        classes: Union[str, List[str]],
        label_col: str = "class"
    ) -> pd.DataFrame:
        """
        Filter metadata to the given class label(s).

        Args:
            df: Metadata DataFrame
            classes: Class value(s) to keep
            label_col: Name of class label column

        Returns:
            Filtered DataFrame
        """
        if isinstance(classes, str):
            classes = [classes]

        mask = df[label_col].isin(classes)
        filtered = df[mask].copy()

        logger.info(f"Filtered to {len(filtered)} samples for class(es): {classes}")
        return filtered

    def recode_labels(
        self,
        df: pd.DataFrame,
        column: str,
        mapping: Dict[str, str]
    ) -> pd.DataFrame:
        """
        Recode raw label values, keeping values the mapping does not cover.

        Args:
            df: DataFrame with categorical column
            column: Column name to recode
            mapping: Mapping from raw values (as strings) to class names

        Returns:
            Copy of df with the column recoded
        """
        df = df.copy()
        raw = df[column].astype(str)
        unmapped = ~raw.isin(list(mapping)) & df[column].notna()
        if mapping and unmapped.any():
            logger.warning(
                f"{int(unmapped.sum())} samples had {column} values outside the label mapping"
            )
        df[column] = raw.map(mapping).where(~unmapped, df[column])
        return df

    def get_sample_list(
        self,
        df: pd.DataFrame,
        sample_col: str = "sample_id"
    ) -> List[str]:
        """
        Get list of sample IDs.

        Args:
            df: Metadata DataFrame
            sample_col: Column containing sample IDs

        Returns:
            List of sample IDs
        """
        return df[sample_col].astype(str).tolist()
