"""
tests/test_config.py — YAML Configuration Loader Tests
========================================================
"""

from __future__ import annotations

import dataclasses

import pytest

from scorgs.config import DEFAULT_CONFIG, load_config

_REQUIRED = """\
platform_name: "SC Orgs Test"
rsi_base_url: "https://rsi.test/"
frontend_url: "https://orgs.test/"
api_port: 9000
"""


class TestLoadConfig:

    def test_required_keys_and_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(_REQUIRED, encoding="utf-8")

        cfg = load_config(path)
        assert cfg.platform_name == "SC Orgs Test"
        assert cfg.rsi_base_url == "https://rsi.test"
        assert cfg.frontend_url == "https://orgs.test"
        assert cfg.api_port == 9000
        assert cfg.bot_prefix == DEFAULT_CONFIG.bot_prefix
        assert cfg.upvote_cooldown_days == 7
        assert cfg.reacknowledgment_threshold == pytest.approx(0.10)
        assert cfg.reminder_sweep_minutes == 5

    def test_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            _REQUIRED + "upvote_cooldown_days: 3\napplication_reapply_days: 14\n"
            "reacknowledgment_threshold: 0.25\nreminder_sweep_minutes: 10\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.upvote_cooldown_days == 3
        assert cfg.application_reapply_days == 14
        assert cfg.reacknowledgment_threshold == pytest.approx(0.25)
        assert cfg.reminder_sweep_minutes == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text('platform_name: "x"\n', encoding="utf-8")
        with pytest.raises(KeyError):
            load_config(path)

    def test_config_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_CONFIG.api_port = 1  # type: ignore[misc]
