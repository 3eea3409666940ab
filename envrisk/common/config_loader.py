"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from envrisk.common.errors import ConfigError
from envrisk.common.fs import read_yaml
from envrisk.common.http import RetryConfig, TimeoutConfig
from envrisk.common.schema import validate_risk_profiles_config, validate_sources_config

DEFAULT_ADAPTER_TIMEOUT_SECONDS = 45.0


@dataclass(frozen=True)
class ConfigBundle:
    sources: dict[str, dict]
    risk_profiles: dict[str, dict]
    http: dict
    orchestrator: dict

    def enabled_sources(self) -> dict[str, dict]:
        return {name: cfg for name, cfg in self.sources.items() if cfg.get("enabled")}

    def timeout_config(self) -> TimeoutConfig:
        timeout = self.http.get("timeout") or {}
        return TimeoutConfig(
            connect=float(timeout.get("connect", TimeoutConfig.connect)),
            read=float(timeout.get("read", TimeoutConfig.read)),
        )

    def retry_config(self) -> RetryConfig:
        retry = self.http.get("retry") or {}
        return RetryConfig(
            max_attempts=int(retry.get("max_attempts", RetryConfig.max_attempts)),
            multiplier=float(retry.get("multiplier", RetryConfig.multiplier)),
            max_wait=float(retry.get("max_wait", RetryConfig.max_wait)),
        )

    @property
    def adapter_timeout(self) -> float:
        return float(self.orchestrator.get("adapter_timeout_seconds", DEFAULT_ADAPTER_TIMEOUT_SECONDS))

    @property
    def max_workers(self) -> int | None:
        value = self.orchestrator.get("max_workers")
        return int(value) if value is not None else None


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    profiles_cfg = validate_risk_profiles_config(
        _load_yaml_with_overlay(config_dir / "risk_profiles.yml", _overlay("risk_profiles.yml"))
    )
    sources_cfg = validate_sources_config(
        _load_yaml_with_overlay(config_dir / "sources.yml", _overlay("sources.yml")),
        profiles_cfg["profiles"],
    )
    return ConfigBundle(
        sources=sources_cfg["sources"],
        risk_profiles=profiles_cfg["profiles"],
        http=sources_cfg.get("http") or {},
        orchestrator=sources_cfg.get("orchestrator") or {},
    )
