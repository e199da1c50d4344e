"""
Configuration management for the shrunken centroid analysis pipeline.

Supports loading configurations from YAML files for:
- Dataset specifications (input files and column names)
- Preprocessing settings
- Model and cross-validation parameters
- Visualization settings
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class Config:
    """
    Central configuration class for the analysis pipeline.

    Built-in defaults are overridden first by a dataset YAML file under
    ``configs/datasets/`` and then by an optional user YAML file.

    Attributes:
        base_dir: Root directory of the project
        data_dir: Directory containing input data
        output_dir: Directory for results and figures
        dataset: Current dataset configuration
        preprocessing: Transformation and filtering settings
        model_params: Classifier and cross-validation parameters
        viz_params: Visualization settings
    """

    def __init__(
        self,
        config_file: Optional[str] = None,
        dataset: str = "example",
        base_dir: Optional[Path] = None
    ):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML config file. If None, uses defaults.
            dataset: Name of dataset to use (looks up configs/datasets/<name>.yaml)
            base_dir: Project root; defaults to the repository root
        """
        if base_dir is None:
            base_dir = Path(__file__).parent.parent.parent
        self.base_dir = Path(base_dir)
        self.dataset_name = dataset

        self._init_defaults()
        self._load_dataset_config(dataset)

        if config_file:
            self._load_yaml(config_file)

    def _init_defaults(self):
        """Initialize default configuration values."""
        # Directories
        self.data_dir = self.base_dir / "data"
        self.output_dir = self.base_dir / "results"

        self.preprocessing = {
            "log_transform": True,
            "floor": None,
            "ceiling": None,
            "top_variance": 1000,
        }

        self.model_params = {
            "random_state": 42,
            "cv_folds": 5,
            "n_thresholds": 30,
            "s0_percentile": 50.0,
            "prior": "class_frequency",
            "selection_rule": "one_se",
            "threshold": None,
            "n_jobs": 1,
        }

        self.viz_params = {
            "dpi": 300,
            "format": "pdf",
            "figure_sizes": {
                "single": (6, 5),
                "wide": (8, 6),
                "tall": (6, 8)
            },
            "font_sizes": {
                "title": 12,
                "label": 11,
                "tick": 10,
                "legend": 9
            },
            "colors": {
                "error": "#e74c3c",
                "features": "#3498db",
                "selected": "#2ecc71",
            },
            "class_palette": ["#3498db", "#e74c3c", "#2ecc71", "#9b59b6", "#e67e22"],
            "heatmap_features": 50,
        }

        # Optional recoding of raw metadata labels (e.g. {"0": "ALL", "1": "AML"})
        self.label_mapping: Dict[str, str] = {}

    def _load_yaml(self, config_file: str):
        """Load configuration from YAML file."""
        config_path = Path(config_file)
        if not config_path.is_absolute():
            config_path = self.base_dir / config_file

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
        self._update_from_dict(config_data)

    def _load_dataset_config(self, dataset: str):
        """Load dataset-specific configuration."""
        dataset_config_path = self.base_dir / "configs" / "datasets" / f"{dataset}.yaml"

        self.dataset = self._get_default_dataset_config(dataset)
        if dataset_config_path.exists():
            with open(dataset_config_path, 'r') as f:
                self._merge_dataset(yaml.safe_load(f) or {})

    def _get_default_dataset_config(self, dataset: str) -> Dict[str, Any]:
        """Get default configuration for a dataset laid out in the standard way."""
        return {
            "name": dataset,
            "description": "Two-class expression dataset (features x samples)",
            "files": {
                "expression": f"data/raw/{dataset}_expression.csv",
                "metadata": f"data/metadata/{dataset}_samples.csv",
                "annotations": None,
                "test_expression": None,
                "test_metadata": None,
            },
            "columns": {
                "sample_id": "sample_id",
                "label": "class",
                "feature_id": "feature_id",
                "annotation": "symbol",
            },
        }

    def _merge_dataset(self, dataset_dict: Dict[str, Any]):
        """Merge a (possibly partial) dataset section into the current one."""
        for key, value in dataset_dict.items():
            if key in ("files", "columns") and isinstance(value, dict):
                self.dataset.setdefault(key, {}).update(value)
            else:
                self.dataset[key] = value

    def _update_from_dict(self, config_dict: Dict[str, Any]):
        """Update configuration from dictionary."""
        if "dataset" in config_dict:
            self._merge_dataset(config_dict["dataset"])
        if "preprocessing" in config_dict:
            self.preprocessing.update(config_dict["preprocessing"])
        if "model_params" in config_dict:
            self.model_params.update(config_dict["model_params"])
        if "viz_params" in config_dict:
            self.viz_params.update(config_dict["viz_params"])
        if "label_mapping" in config_dict:
            self.label_mapping.update(
                {str(k): v for k, v in config_dict["label_mapping"].items()}
            )
        if "output_dir" in config_dict:
            self.output_dir = self.base_dir / config_dict["output_dir"]

    def get_data_path(self, file_key: str) -> Optional[Path]:
        """Get full path for a configured data file, or None if it is unset."""
        file_name = self.dataset.get("files", {}).get(file_key)
        if not file_name:
            return None
        path = Path(file_name)
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    def get_column(self, key: str) -> str:
        """Get the configured column name for a metadata role."""
        return self.dataset["columns"][key]

    def get_output_path(self, filename: str, subdir: str = "tables") -> Path:
        """Get output path for results."""
        return self.output_dir / subdir / filename

    def ensure_output_dirs(self):
        """Create output directories if they don't exist."""
        for subdir in ("tables", "plots", "models"):
            (self.output_dir / subdir).mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of the effective configuration, for logging and provenance."""
        return copy.deepcopy({
            "dataset": self.dataset,
            "preprocessing": self.preprocessing,
            "model_params": self.model_params,
            "viz_params": self.viz_params,
            "label_mapping": self.label_mapping,
        })

    def __repr__(self) -> str:
        return (
            f"Config(dataset='{self.dataset_name}', "
            f"base_dir='{self.base_dir}')"
        )


def load_config(
    config_file: Optional[str] = None,
    dataset: str = "example",
    base_dir: Optional[Path] = None
) -> Config:
    """
    Load configuration for the analysis pipeline.

    Args:
        config_file: Path to custom YAML configuration file
        dataset: Dataset name to use
        base_dir: Optional project root override

    Returns:
        Config object with all settings loaded

    Example:
        >>> config = load_config(dataset="example")
        >>> config.get_data_path("expression")
        PosixPath('/path/to/data/raw/example_expression.csv')
    """
    return Config(config_file=config_file, dataset=dataset, base_dir=base_dir)
