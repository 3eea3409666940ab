"""Data models shared by adapters, the pipeline and the CLI."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from envrisk.common.errors import PreconditionError
from envrisk.common.time_utils import isoformat_utc


class SiteCategory(str, Enum):
    CONTAMINATED_SITE = "ContaminatedSite"
    TOXIC_RELEASE_FACILITY = "ToxicReleaseFacility"
    WATER_SYSTEM = "WaterSystem"


class RiskLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class RunState(str, Enum):
    IDLE = "Idle"
    RUNNING = "Running"
    COMPLETED = "Completed"
    COMPLETED_WITH_ERRORS = "CompletedWithErrors"


def _coerce_coordinate(value: Any, name: str, bound: float) -> float:
    if value is None or isinstance(value, bool):
        raise PreconditionError(f"Location.{name} is required")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise PreconditionError(f"Location.{name} must be numeric, got {value!r}") from exc
    if math.isnan(number) or not -bound <= number <= bound:
        raise PreconditionError(f"Location.{name} out of range: {value!r}")
    return number


@dataclass(frozen=True)
class Location:
    latitude: float | None
    longitude: float | None
    address: str = ""
    state: str | None = None
    zip: str | None = None
    county: str | None = None

    def require_coordinates(self) -> "Location":
        _coerce_coordinate(self.latitude, "latitude", 90.0)
        _coerce_coordinate(self.longitude, "longitude", 180.0)
        return self

    @property
    def state_code(self) -> str | None:
        if not self.state or not self.state.strip():
            return None
        return self.state.strip().upper()

    @property
    def zip5(self) -> str | None:
        if not self.zip:
            return None
        digits = self.zip.strip()[:5]
        return digits if digits.isdigit() and len(digits) == 5 else None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SiteCandidate:
    """Intermediate record produced by a site adapter."""

    source: str
    category: SiteCategory
    risk_profile: str
    name: str
    latitude: float
    longitude: float
    distance_miles: float
    status: str = ""
    address: str = ""
    contaminants: tuple[str, ...] = ()
    identifier: str | None = None


@dataclass(frozen=True)
class ViolationCandidate:
    """Intermediate record produced by a water violation adapter."""

    source: str
    system_name: str
    violation_type: str
    contaminant: str
    violation_date: str
    health_based: bool
    measured_level: float | None = None
    limit_level: float | None = None
    system_id: str | None = None


@dataclass(frozen=True)
class NormalizedSite:
    name: str
    category: SiteCategory
    status: str
    distance_miles: float
    address: str
    contaminants: tuple[str, ...]
    risk_level: RiskLevel
    source: str = ""
    identifier: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    def __post_init__(self) -> None:
        if not self.distance_miles >= 0:
            raise ValueError(f"distance_miles must be >= 0, got {self.distance_miles!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "status": self.status,
            "distance_miles": round(self.distance_miles, 3),
            "address": self.address,
            "contaminants": list(self.contaminants),
            "risk_level": self.risk_level.value,
            "source": self.source,
            "identifier": self.identifier,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


@dataclass(frozen=True)
class WaterViolation:
    system_name: str
    violation_type: str
    contaminant: str
    violation_date: str
    risk_level: RiskLevel
    measured_level: float | None = None
    limit_level: float | None = None
    source: str = ""
    system_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "system_name": self.system_name,
            "violation_type": self.violation_type,
            "contaminant": self.contaminant,
            "measured_level": self.measured_level,
            "limit_level": self.limit_level,
            "violation_date": self.violation_date,
            "risk_level": self.risk_level.value,
            "source": self.source,
            "system_id": self.system_id,
        }


@dataclass(frozen=True)
class AggregationResult:
    run_id: str
    location: Location
    contamination_sites: tuple[NormalizedSite, ...]
    toxic_facilities: tuple[NormalizedSite, ...]
    water_violations: tuple[WaterViolation, ...]
    errors: tuple[str, ...]
    completed_at: datetime
    status: RunState = field(default=RunState.COMPLETED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "location": self.location.to_dict(),
            "contamination_sites": [site.to_dict() for site in self.contamination_sites],
            "toxic_facilities": [site.to_dict() for site in self.toxic_facilities],
            "water_violations": [violation.to_dict() for violation in self.water_violations],
            "errors": list(self.errors),
            "completed_at": isoformat_utc(self.completed_at),
        }
