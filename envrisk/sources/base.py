"""Shared adapter contract and record helpers."""

from __future__ import annotations

import logging
import math
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from envrisk.common.errors import FetchCancelledError, SourceError
from envrisk.common.http import HttpClient, RetryConfig, TimeoutConfig
from envrisk.common.logging import get_library_logger, log_event
from envrisk.common.models import Location, SiteCandidate, ViolationCandidate

DEFAULT_MAX_RESULTS = 25
DEFAULT_MAX_ROWS_SCANNED = 50000
_CONTAMINANT_SPLIT_RE = re.compile(r";|,\s+")


@dataclass(frozen=True)
class FetchOptions:
    radius_miles: float | None = None
    max_results: int = DEFAULT_MAX_RESULTS
    max_rows_scanned: int = DEFAULT_MAX_ROWS_SCANNED
    cancel_event: threading.Event = field(default_factory=threading.Event)
    run_id: str | None = None

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise FetchCancelledError("fetch cancelled by a newer run or timeout")


@dataclass(frozen=True)
class SourceOutcome:
    source: str
    label: str
    sites: tuple[SiteCandidate, ...] = ()
    violations: tuple[ViolationCandidate, ...] = ()
    error: str | None = None
    error_code: str | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def valid_coordinates(lat: float | None, lon: float | None) -> bool:
    # Zero is the usual placeholder for "not geocoded" in these datasets.
    if lat is None or lon is None or lat == 0 or lon == 0:
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def casefold_keys(row: dict) -> dict[str, Any]:
    return {str(key).strip().lower(): value for key, value in row.items()}


def lookup_first(row: dict[str, Any], candidates: Iterable[str]) -> Any | None:
    for key in candidates:
        value = row.get(key.lower())
        if value not in (None, ""):
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    continue
            return value
    return None


def join_parts(row: dict[str, Any], keys: Iterable[str]) -> str:
    parts = []
    for key in keys:
        value = row.get(key.lower())
        if value in (None, ""):
            continue
        text = str(value).strip()
        if text and text not in parts:
            parts.append(text)
    return ", ".join(parts)


def split_contaminants(value: Any) -> tuple[str, ...]:
    if value in (None, ""):
        return ()
    if isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value]
    else:
        # ", " separates names; bare commas belong to names like 1,2,4-Trimethylbenzene.
        items = [part.strip() for part in _CONTAMINANT_SPLIT_RE.split(str(value))]
    return tuple(dict.fromkeys(item for item in items if item))


def nearest_first(candidates: Iterable[SiteCandidate], max_results: int) -> tuple[SiteCandidate, ...]:
    ordered = sorted(candidates, key=lambda candidate: candidate.distance_miles)
    return tuple(ordered[:max_results])


class SourceAdapter:
    """One external data source.

    Subclasses implement ``fetch``, which raises ``SourceError`` subclasses.
    ``collect`` is the adapter boundary: it never raises.
    """

    kind = "abstract"

    def __init__(
        self,
        name: str,
        config: dict,
        *,
        http_client: HttpClient | None = None,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.name = name
        self.config = config
        self.label = config.get("label", name)
        self.http_client = http_client
        self.timeout = timeout
        self.retry = retry
        self.logger = logger or get_library_logger("sources")

    @property
    def risk_profile(self) -> str | None:
        return self.config.get("risk_profile")

    @property
    def max_results(self) -> int:
        return int(self.config.get("max_results", DEFAULT_MAX_RESULTS))

    def fetch_options(self, *, radius_miles: float | None, cancel_event: threading.Event, run_id: str | None) -> FetchOptions:
        return FetchOptions(
            radius_miles=radius_miles,
            max_results=self.max_results,
            max_rows_scanned=int(self.config.get("max_rows_scanned", DEFAULT_MAX_ROWS_SCANNED)),
            cancel_event=cancel_event,
            run_id=run_id,
        )

    def _client(self) -> tuple[HttpClient, bool]:
        if self.http_client is not None:
            return self.http_client, False
        return HttpClient(timeout=self.timeout, retry=self.retry), True

    def fetch(self, location: Location, options: FetchOptions):
        raise NotImplementedError

    def _outcome(self, records: Iterable, duration_ms: int) -> SourceOutcome:
        return SourceOutcome(source=self.name, label=self.label, sites=tuple(records), duration_ms=duration_ms)

    def collect(self, location: Location, options: FetchOptions) -> SourceOutcome:
        started = time.monotonic()
        try:
            records = self.fetch(location, options)
        except SourceError as exc:
            error, error_code = f"{self.label}: {exc}", exc.error_code
        except Exception as exc:
            error, error_code = f"{self.label}: unexpected {type(exc).__name__}: {exc}", "UNEXPECTED_ERROR"
        else:
            return self._outcome(records, int((time.monotonic() - started) * 1000))

        duration_ms = int((time.monotonic() - started) * 1000)
        log_event(
            self.logger,
            error,
            level=logging.WARNING,
            run_id=options.run_id,
            stage="fetch",
            source=self.name,
            event="SOURCE_FAIL",
            status="error",
            duration_ms=duration_ms,
            error_code=error_code,
        )
        return SourceOutcome(
            source=self.name,
            label=self.label,
            error=error,
            error_code=error_code,
            duration_ms=duration_ms,
        )
