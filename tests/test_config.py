# tests/test_config.py
import logging

import pytest
import yaml

from microarray_nsc.utils.config import load_config
from microarray_nsc.utils.logging_utils import setup_logger


def test_defaults(tmp_path):
    config = load_config(dataset="toy", base_dir=tmp_path)

    assert config.model_params["cv_folds"] == 5
    assert config.model_params["n_thresholds"] == 30
    assert config.model_params["random_state"] == 42
    assert config.model_params["selection_rule"] == "one_se"
    assert config.get_column("label") == "class"
    assert config.get_data_path("expression") == tmp_path / "data/raw/toy_expression.csv"
    assert config.get_data_path("test_expression") is None


def test_dataset_yaml_is_merged(tmp_path):
    datasets = tmp_path / "configs" / "datasets"
    datasets.mkdir(parents=True)
    (datasets / "golub.yaml").write_text(yaml.safe_dump({
        "files": {"expression": "golub/train.csv"},
        "columns": {"label": "ALL.AML"},
    }))

    config = load_config(dataset="golub", base_dir=tmp_path)
    assert config.get_data_path("expression") == tmp_path / "golub/train.csv"
    assert config.get_column("label") == "ALL.AML"
    # Keys the dataset file leaves out keep their defaults
    assert config.get_column("sample_id") == "sample_id"


def test_run_yaml_overrides(tmp_path):
    run = tmp_path / "run.yaml"
    run.write_text(yaml.safe_dump({
        "model_params": {"cv_folds": 10, "prior": "uniform"},
        "preprocessing": {"top_variance": None},
        "label_mapping": {0: "ALL", 1: "AML"},
        "output_dir": "out",
    }))

    config = load_config(config_file=str(run), base_dir=tmp_path)
    assert config.model_params["cv_folds"] == 10
    assert config.model_params["prior"] == "uniform"
    assert config.model_params["n_thresholds"] == 30
    assert config.preprocessing["top_variance"] is None
    assert config.label_mapping == {"0": "ALL", "1": "AML"}
    assert config.output_dir == tmp_path / "out"

    config.ensure_output_dirs()
    assert (tmp_path / "out" / "models").is_dir()
    assert config.get_output_path("x.csv") == tmp_path / "out" / "tables" / "x.csv"


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(config_file="nope.yaml", base_dir=tmp_path)


def test_setup_logger_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    logger = setup_logger("microarray_nsc.test", level="debug", log_file=str(log_file))
    logger.debug("hello")
    for handler in logger.handlers:
        handler.flush()
    assert "hello" in log_file.read_text()
    # Re-running setup replaces handlers instead of stacking them
    logger = setup_logger("microarray_nsc.test", console=False)
    assert len(logger.handlers) == 0


def test_setup_logger_levels():
    assert setup_logger("microarray_nsc.test", verbose=True).level == logging.DEBUG
    assert setup_logger("microarray_nsc.test", level="warning").level == logging.WARNING
    with pytest.raises(ValueError):
        setup_logger("microarray_nsc.test", level="loud")
