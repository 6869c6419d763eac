"""
tests/test_utils.py

config.yaml loading: required keys, defaults, validation, path resolution.
"""

from __future__ import annotations

import logging
import os

import pytest
import yaml

from iccid_activator.errors import ConfigError
from iccid_activator.models import DEFAULT_MARKER_TEXTS
from iccid_activator.utils import load_config, random_delay_ms, setup_logging

BASE = {
    "url": "https://activation.test/form",
    "selectors": {
        "iccid_input": "input.iccid",
        "next_button": "#next",
        "activate_button": "#activate",
    },
}


def _config_file(tmp_path, **overrides) -> str:
    data = {**BASE, **overrides}
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


class TestLoadConfig:
    def test_defaults(self, tmp_path) -> None:
        config = load_config(_config_file(tmp_path))
        assert config["max_workers"] == 3
        assert config["max_retries"] == 2
        assert config["nav_timeout_ms"] == 30_000
        assert config["marker_timeout_ms"] == 5_000
        assert config["delay_range_ms"] == [200, 500]
        assert config["headless"] is True
        assert config["auto_start"] is False
        assert config["markers"] == DEFAULT_MARKER_TEXTS

    def test_relative_paths_follow_config_file(self, tmp_path) -> None:
        config = load_config(_config_file(tmp_path, input_file="data/in.csv"))
        assert config["input_file"] == os.path.join(str(tmp_path), "data/in.csv")
        assert config["results_file"] == os.path.join(str(tmp_path), "activation_results.csv")

    def test_absolute_paths_untouched(self, tmp_path) -> None:
        target = str(tmp_path / "elsewhere" / "in.csv")
        assert load_config(_config_file(tmp_path, input_file=target))["input_file"] == target

    def test_marker_override_merges(self, tmp_path) -> None:
        config = load_config(_config_file(tmp_path, markers={"processing": "Please wait"}))
        assert config["markers"]["processing"] == "Please wait"
        assert config["markers"]["success"] == DEFAULT_MARKER_TEXTS["success"]

    def test_default_path_is_working_directory(self, tmp_path, monkeypatch) -> None:
        _config_file(tmp_path, max_workers=7)
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config["max_workers"] == 7
        assert config["input_file"] == os.path.join(str(tmp_path), "iccids.csv")

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_missing_url(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="url"):
            load_config(_config_file(tmp_path, url=None))

    def test_missing_selector(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="activate_button"):
            load_config(_config_file(tmp_path, selectors={"iccid_input": "a", "next_button": "b"}))

    @pytest.mark.parametrize("overrides", [
        {"max_workers": 0},
        {"max_retries": "two"},
        {"max_workers": True},
        {"marker_timeout_ms": 10},
        {"delay_range_ms": [500, 200]},
        {"delay_range_ms": [100]},
        {"markers": {"bogus": "x"}},
        {"markers": "not a mapping"},
    ])
    def test_invalid_values(self, tmp_path, overrides) -> None:
        with pytest.raises(ConfigError):
            load_config(_config_file(tmp_path, **overrides))

    def test_config_error_is_value_error(self) -> None:
        assert issubclass(ConfigError, ValueError)


class TestHelpers:
    def test_random_delay_in_range(self) -> None:
        for _ in range(50):
            assert 200 <= random_delay_ms([200, 500]) <= 500

    def test_setup_logging_does_not_duplicate_handlers(self, tmp_path) -> None:
        logger = setup_logging(str(tmp_path))
        count = len(logger.handlers)
        assert setup_logging(str(tmp_path)) is logger
        assert len(logger.handlers) == count
        assert logger.level == logging.DEBUG

    def test_default_log_dir_under_working_directory(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        setup_logging()
        assert (tmp_path / "logs").is_dir()
