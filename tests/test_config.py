"""
tests/test_config.py
Config file defaults, persistence and HOMEOPS_* overrides.
"""

import json

from homeops.config import CONFIG_FILENAME, DEFAULT_CONFIG, load_config, save_config


class TestLoadConfig:

    def test_defaults_when_missing(self, tmp_path):
        assert load_config(tmp_path, environ={}) == DEFAULT_CONFIG

    def test_file_values_merge_over_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"timezone": "UTC"}), encoding="utf-8")
        config = load_config(tmp_path, environ={})
        assert config["timezone"] == "UTC"
        assert config["quiet_start_hour"] == 22

    def test_corrupt_file_falls_back(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("{oops", encoding="utf-8")
        assert load_config(tmp_path, environ={}) == DEFAULT_CONFIG

    def test_save_then_load(self, tmp_path):
        save_config({**DEFAULT_CONFIG, "model": "llama3"}, tmp_path)
        assert load_config(tmp_path, environ={})["model"] == "llama3"


class TestEnvOverrides:

    def test_env_wins_and_is_typed(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"classify_timeout_sec": 20}), encoding="utf-8")
        config = load_config(tmp_path, environ={
            "HOMEOPS_CLASSIFY_TIMEOUT_SEC": "3",
            "HOMEOPS_DB_PATH":              "/var/lib/homeops/homeops.db",
        })
        assert config["classify_timeout_sec"] == 3
        assert config["db_path"] == "/var/lib/homeops/homeops.db"

    def test_bad_value_ignored(self, tmp_path):
        config = load_config(tmp_path, environ={"HOMEOPS_QUIET_START_HOUR": "late"})
        assert config["quiet_start_hour"] == 22

    def test_unknown_keys_ignored(self, tmp_path):
        config = load_config(tmp_path, environ={"HOMEOPS_NOT_A_SETTING": "x"})
        assert "not_a_setting" not in config
