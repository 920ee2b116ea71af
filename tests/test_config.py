"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest

from ascent.config import load_config
from ascent.engine.catalog import CatalogError, RewardCatalog

MINIMAL = "app_name: Ascent Test\ndashboard_port: 8123\n"


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_minimal_file_uses_default_catalog(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL))
        assert cfg.app_name == "Ascent Test"
        assert cfg.dashboard_port == 8123
        assert cfg.streak_timezone == "UTC"
        assert cfg.catalog == RewardCatalog()
        assert cfg.event_buffer_size == 10_000

    def test_catalog_section_overrides(self, tmp_path):
        text = MINIMAL + (
            "streak_timezone: Europe/Berlin\n"
            "catalog:\n"
            "  level_thresholds: [10, 20, 40]\n"
            "  experience_multipliers:\n"
            "    learning: 2.0\n"
        )
        cfg = load_config(_write(tmp_path, text))
        assert cfg.catalog.level_for_experience(25) == 3
        assert cfg.catalog.multiplier_for_category("learning") == 2.0
        assert cfg.tz == ZoneInfo("Europe/Berlin")

    def test_event_buffer_size_override(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL + "event_buffer_size: 250\n"))
        assert cfg.event_buffer_size == 250

    def test_missing_file_has_hint(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "absent.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "app_name: x\n"))

    def test_non_monotonic_thresholds_fail_at_load(self, tmp_path):
        text = MINIMAL + "catalog:\n  level_thresholds: [100, 90]\n"
        with pytest.raises(CatalogError):
            load_config(_write(tmp_path, text))

    def test_unknown_timezone_fails_at_load(self, tmp_path):
        text = MINIMAL + "streak_timezone: Mars/Olympus_Mons\n"
        with pytest.raises(CatalogError, match="streak_timezone"):
            load_config(_write(tmp_path, text))
