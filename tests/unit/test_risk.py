import pytest

from envrisk.common.errors import ConfigError
from envrisk.common.models import RiskLevel, SiteCategory
from envrisk.pipeline.risk import RiskProfile, build_profiles, classify


@pytest.mark.parametrize(
    ("distance", "expected"),
    [
        (0.0, RiskLevel.HIGH),
        (0.49, RiskLevel.HIGH),
        (0.5, RiskLevel.MEDIUM),
        (0.99, RiskLevel.MEDIUM),
        (1.0, RiskLevel.LOW),
        (1.9, RiskLevel.LOW),
    ],
)
def test_contaminated_site_thresholds(distance, expected):
    assert classify(distance, "contaminated_site") is expected


@pytest.mark.parametrize(
    ("distance", "expected"),
    [
        (0.1, RiskLevel.HIGH),
        (0.25, RiskLevel.MEDIUM),
        (0.5, RiskLevel.LOW),
    ],
)
def test_leaking_tank_thresholds(distance, expected):
    assert classify(distance, "leaking_tank") is expected


@pytest.mark.parametrize(
    ("distance", "expected"),
    [
        (0.3, RiskLevel.HIGH),
        (1.0, RiskLevel.MEDIUM),
        (4.99, RiskLevel.MEDIUM),
        (5.0, RiskLevel.LOW),
        (14.0, RiskLevel.LOW),
    ],
)
def test_toxic_release_thresholds(distance, expected):
    assert classify(distance, "toxic_release") is expected


def test_classify_is_deterministic():
    results = {classify(0.75, "contaminated_site", None) for _ in range(50)}
    assert results == {RiskLevel.MEDIUM}


@pytest.mark.parametrize("hint", [True, "Y", "y", "true", "1", 1])
def test_water_health_based_is_high_regardless_of_distance(hint):
    assert classify(None, "water_system", hint) is RiskLevel.HIGH
    assert classify(250.0, "water_system", hint) is RiskLevel.HIGH


@pytest.mark.parametrize("hint", [False, "N", "", None, 0])
def test_water_without_health_indicator_is_medium(hint):
    assert classify(0.0, "water_system", hint) is RiskLevel.MEDIUM


def test_negative_or_missing_distance_rejected_for_distance_profiles():
    with pytest.raises(ValueError):
        classify(-0.1, "toxic_release")
    with pytest.raises(ValueError):
        classify(None, "toxic_release")
    with pytest.raises(ValueError):
        classify(float("nan"), "toxic_release")


def test_unknown_profile_raises_config_error():
    with pytest.raises(ConfigError):
        classify(1.0, "volcano")


def test_custom_profiles_override_defaults():
    profiles = build_profiles(
        {
            "toxic_release": {"kind": "distance", "radius_miles": 10, "high_below": 2, "medium_below": 3},
            "water_system": {"kind": "health_indicator"},
        }
    )

    assert profiles["toxic_release"] == RiskProfile("toxic_release", "distance", 10.0, 2.0, 3.0)
    assert classify(1.5, "toxic_release", profiles=profiles) is RiskLevel.HIGH
    assert classify(2.5, "toxic_release", profiles=profiles) is RiskLevel.MEDIUM
    with pytest.raises(ConfigError):
        classify(0.1, "contaminated_site", profiles=profiles)


@pytest.mark.parametrize(
    ("category", "distance", "expected"),
    [
        (SiteCategory.CONTAMINATED_SITE, 0.3, RiskLevel.HIGH),
        (SiteCategory.CONTAMINATED_SITE, 0.5, RiskLevel.MEDIUM),
        (SiteCategory.TOXIC_RELEASE_FACILITY, 0.3, RiskLevel.HIGH),
        (SiteCategory.TOXIC_RELEASE_FACILITY, 7.0, RiskLevel.LOW),
    ],
)
def test_site_categories_use_their_default_profile(category, distance, expected):
    assert classify(distance, category) is expected


def test_water_system_category_uses_health_indicator():
    assert classify(None, SiteCategory.WATER_SYSTEM, True) is RiskLevel.HIGH
    assert classify(None, SiteCategory.WATER_SYSTEM, "N") is RiskLevel.MEDIUM


def test_category_lookup_respects_configured_thresholds():
    profiles = build_profiles(
        {"toxic_release": {"kind": "distance", "radius_miles": 10, "high_below": 0.2, "medium_below": 0.4}}
    )
    assert classify(0.3, SiteCategory.TOXIC_RELEASE_FACILITY, profiles=profiles) is RiskLevel.MEDIUM
