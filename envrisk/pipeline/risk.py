"""Risk tier classification.

Distance profiles resolve exact boundaries to the lower tier: with
``high_below: 0.5`` a distance of exactly 0.5 miles is Medium.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping

from envrisk.common.errors import ConfigError
from envrisk.common.models import RiskLevel, SiteCategory

WATER_SYSTEM_PROFILE = "water_system"


@dataclass(frozen=True)
class RiskProfile:
    name: str
    kind: str
    radius_miles: float | None = None
    high_below: float | None = None
    medium_below: float | None = None

    @classmethod
    def from_config(cls, name: str, cfg: Mapping) -> "RiskProfile":
        if cfg["kind"] == "health_indicator":
            return cls(name=name, kind="health_indicator")
        return cls(
            name=name,
            kind="distance",
            radius_miles=float(cfg["radius_miles"]),
            high_below=float(cfg["high_below"]),
            medium_below=float(cfg["medium_below"]),
        )


DEFAULT_PROFILES: dict[str, RiskProfile] = {
    "contaminated_site": RiskProfile("contaminated_site", "distance", 2.0, 0.5, 1.0),
    "leaking_tank": RiskProfile("leaking_tank", "distance", 1.0, 0.25, 0.5),
    "toxic_release": RiskProfile("toxic_release", "distance", 15.0, 1.0, 5.0),
    WATER_SYSTEM_PROFILE: RiskProfile(WATER_SYSTEM_PROFILE, "health_indicator"),
}


CATEGORY_PROFILES: dict[SiteCategory, str] = {
    SiteCategory.CONTAMINATED_SITE: "contaminated_site",
    SiteCategory.TOXIC_RELEASE_FACILITY: "toxic_release",
    SiteCategory.WATER_SYSTEM: WATER_SYSTEM_PROFILE,
}


def build_profiles(profiles_cfg: Mapping[str, Mapping]) -> dict[str, RiskProfile]:
    return {name: RiskProfile.from_config(name, cfg) for name, cfg in profiles_cfg.items()}


def resolve_profile(category: str | SiteCategory, profiles: Mapping[str, RiskProfile] | None = None) -> RiskProfile:
    """Look up a profile by name, or by site category via its default profile."""
    table = DEFAULT_PROFILES if profiles is None else profiles
    name = CATEGORY_PROFILES.get(category, category)
    try:
        return table[name]
    except KeyError as exc:
        raise ConfigError(f"Unknown risk profile: {category}") from exc


def parse_indicator(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"y", "yes", "true", "t", "1"}
    return bool(value)


def classify(
    distance_miles: float | None,
    category: str | SiteCategory,
    severity_hint: object = None,
    *,
    profiles: Mapping[str, RiskProfile] | None = None,
) -> RiskLevel:
    profile = resolve_profile(category, profiles)

    if profile.kind == "health_indicator":
        return RiskLevel.HIGH if parse_indicator(severity_hint) else RiskLevel.MEDIUM

    if distance_miles is None or math.isnan(distance_miles) or distance_miles < 0:
        raise ValueError(f"distance must be a non-negative number, got {distance_miles!r}")
    if distance_miles < profile.high_below:
        return RiskLevel.HIGH
    if distance_miles < profile.medium_below:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW
