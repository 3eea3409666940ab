"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

import math

from envrisk.common.errors import ConfigError
from envrisk.common.models import SiteCategory

SOURCE_KINDS = ("remote_query", "bulk_extract", "water_violations")
PROFILE_KINDS = ("distance", "health_indicator")
QUERY_KEYS = ("state", "zip")
SITE_FIELD_ROLES = {"name", "latitude", "longitude", "status", "address", "contaminants", "identifier"}
WATER_FIELD_ROLES = {
    "system_name",
    "system_id",
    "violation_type",
    "contaminant",
    "measured_level",
    "limit_level",
    "violation_date",
    "health_based",
}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive_number(value, ctx: str, *, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise ConfigError(f"{ctx} must be a number")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{ctx} must be positive, got {value}")


def validate_risk_profiles_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"profiles"}, "risk_profiles")
    profiles = cfg["profiles"]
    if not isinstance(profiles, dict) or not profiles:
        raise ConfigError("risk_profiles.profiles must be a non-empty mapping")

    for name, profile in profiles.items():
        ctx = f"profiles.{name}"
        _assert_required_keys(profile, {"kind"}, ctx)
        kind = profile["kind"]
        if kind not in PROFILE_KINDS:
            raise ConfigError(f"{ctx}.kind must be one of {', '.join(PROFILE_KINDS)}")
        if kind == "health_indicator":
            continue
        _assert_required_keys(profile, {"radius_miles", "high_below", "medium_below"}, ctx)
        _assert_positive_number(profile["radius_miles"], f"{ctx}.radius_miles")
        _assert_positive_number(profile["high_below"], f"{ctx}.high_below", allow_zero=True)
        _assert_positive_number(profile["medium_below"], f"{ctx}.medium_below", allow_zero=True)
        if profile["high_below"] > profile["medium_below"]:
            raise ConfigError(f"{ctx}: high_below must not exceed medium_below")
    return cfg


def _validate_query_templates(source: dict, ctx: str) -> None:
    templates = source.get("url_templates")
    if not isinstance(templates, dict) or not templates:
        raise ConfigError(f"{ctx}.url_templates must be a non-empty mapping")
    unknown = set(templates) - set(QUERY_KEYS)
    if unknown:
        raise ConfigError(f"{ctx}.url_templates has unsupported query keys: {', '.join(sorted(unknown))}")


def _validate_fields(fields: dict, roles: set[str], required: set[str], ctx: str) -> None:
    _assert_required_keys(fields, required, ctx)
    _assert_no_unknown_keys(fields, roles, ctx, allow_unknown=False)
    for role, candidates in fields.items():
        if not isinstance(candidates, list) or not all(isinstance(c, str) for c in candidates):
            raise ConfigError(f"{ctx}.{role} must be a list of strings")


def validate_source_config(name: str, source: dict, profiles: dict) -> dict:
    ctx = f"sources.{name}"
    _assert_required_keys(source, {"kind", "enabled", "label"}, ctx)
    kind = source["kind"]
    if kind not in SOURCE_KINDS:
        raise ConfigError(f"{ctx}.kind must be one of {', '.join(SOURCE_KINDS)}")
    if "max_results" in source:
        _assert_positive_number(source["max_results"], f"{ctx}.max_results")

    if kind == "water_violations":
        _validate_query_templates(source, ctx)
        _validate_fields(source.get("fields") or {}, WATER_FIELD_ROLES, {"system_name", "health_based"}, f"{ctx}.fields")
        return source

    _assert_required_keys(source, {"category", "risk_profile"}, ctx)
    try:
        category = SiteCategory(source["category"])
    except ValueError as exc:
        raise ConfigError(f"{ctx}.category is not a known site category: {source['category']}") from exc
    if category is SiteCategory.WATER_SYSTEM:
        raise ConfigError(f"{ctx}.category WaterSystem is reserved for water_violations sources")
    profile = profiles.get(source["risk_profile"])
    if profile is None:
        raise ConfigError(f"{ctx}.risk_profile references unknown profile: {source['risk_profile']}")
    if profile.get("kind") != "distance":
        raise ConfigError(f"{ctx}.risk_profile must be a distance profile")

    if kind == "remote_query":
        _validate_query_templates(source, ctx)
        _validate_fields(source.get("fields") or {}, SITE_FIELD_ROLES, {"name", "latitude", "longitude"}, f"{ctx}.fields")
    else:
        # A disabled bulk source may leave its location unset until configured.
        if source["enabled"] and not source.get("url_template"):
            raise ConfigError(f"{ctx}.url_template is required for an enabled bulk extract")
        if "max_rows_scanned" in source:
            _assert_positive_number(source["max_rows_scanned"], f"{ctx}.max_rows_scanned")
        _validate_fields(source.get("columns") or {}, SITE_FIELD_ROLES, {"name", "latitude", "longitude"}, f"{ctx}.columns")
    return source


def validate_sources_config(cfg: dict, profiles: dict) -> dict:
    _assert_required_keys(cfg, {"sources"}, "sources config")
    _assert_no_unknown_keys(cfg, {"http", "orchestrator", "sources"}, "sources config", allow_unknown=False)
    sources = cfg["sources"]
    if not isinstance(sources, dict) or not sources:
        raise ConfigError("sources must be a non-empty mapping")
    for name, source in sources.items():
        validate_source_config(name, source, profiles)

    orchestrator = cfg.get("orchestrator") or {}
    if "adapter_timeout_seconds" in orchestrator:
        _assert_positive_number(orchestrator["adapter_timeout_seconds"], "orchestrator.adapter_timeout_seconds")
    if "max_workers" in orchestrator:
        _assert_positive_number(orchestrator["max_workers"], "orchestrator.max_workers")

    retry = (cfg.get("http") or {}).get("retry") or {}
    if "max_attempts" in retry:
        _assert_positive_number(retry["max_attempts"], "http.retry.max_attempts")
    return cfg
