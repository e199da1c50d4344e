"""
Shared file handling for the expression and metadata loaders.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import pandas as pd

logger = logging.getLogger(__name__)


class DataLoader(ABC):
    """
    Base class for CSV-backed loaders.

    Relative paths are taken from the configured project root. Every table
    is parsed once per loader instance; repeated loads get a fresh copy.
    """

    def __init__(self, config: Any = None):
        """
        Args:
            config: Optional Config; only its ``base_dir`` is used here
        """
        self.config = config
        self._tables: Dict[Tuple[str, str], pd.DataFrame] = {}

    @abstractmethod
    def load(self, file_path: Union[str, Path], **kwargs) -> pd.DataFrame:
        """Read one table from ``file_path``."""

    def _locate(self, file_path: Union[str, Path]) -> Path:
        """Resolve ``file_path`` against the project root and check it is a file."""
        path = Path(file_path)
        if not path.is_absolute() and self.config is not None:
            path = Path(self.config.base_dir) / path

        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")
        if not path.is_file():
            raise ValueError(f"Path is not a file: {path}")
        return path

    def _read_csv(self, path: Path, **kwargs) -> pd.DataFrame:
        key = (str(path), repr(sorted(kwargs.items())))
        if key not in self._tables:
            self._tables[key] = pd.read_csv(path, **kwargs)
        else:
            logger.debug(f"Reusing parsed table {path.name}")
        return self._tables[key].copy()
