from pathlib import Path

import pytest

from envrisk.common.config_loader import load_all_configs
from envrisk.common.errors import ConfigError

ROOT = Path(__file__).resolve().parents[2]


def test_load_all_configs_from_repo_config_dir():
    bundle = load_all_configs(ROOT / "config")

    assert {"sems", "tri_facility", "tri_basic", "lust", "sdwis"} <= set(bundle.sources)
    assert "lust" not in bundle.enabled_sources()
    assert bundle.risk_profiles["toxic_release"]["radius_miles"] == 15.0
    assert bundle.retry_config().max_attempts == 1
    assert bundle.adapter_timeout == 45.0


def test_load_all_configs_applies_overlay_values(tmp_path: Path):
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "sources.yml").write_text(
        """orchestrator:
  adapter_timeout_seconds: 5
sources:
  lust:
    enabled: true
    url_template: "https://example.test/lust/{state}.csv"
  sems:
    enabled: false
""",
        encoding="utf-8",
    )
    (overlay / "risk_profiles.yml").write_text(
        """profiles:
  toxic_release:
    radius_miles: 10
""",
        encoding="utf-8",
    )

    bundle = load_all_configs(ROOT / "config", overlay_config_dir=overlay)

    assert bundle.sources["lust"]["enabled"] is True
    assert bundle.sources["lust"]["risk_profile"] == "leaking_tank"
    assert "sems" not in bundle.enabled_sources()
    assert bundle.risk_profiles["toxic_release"]["radius_miles"] == 10
    assert bundle.risk_profiles["toxic_release"]["high_below"] == 1.0
    assert bundle.adapter_timeout == 5.0


def test_load_all_configs_ignores_empty_overlay_file(tmp_path: Path):
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "sources.yml").write_text("", encoding="utf-8")

    bundle = load_all_configs(ROOT / "config", overlay_config_dir=overlay)

    assert "sems" in bundle.enabled_sources()


def test_load_all_configs_missing_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_all_configs(tmp_path)
