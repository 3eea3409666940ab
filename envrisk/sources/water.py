"""Drinking-water violation adapter.

Violations are keyed to the water system serving a zip code (or state) rather
than to a point, so candidates carry no distance and are ordered most recent
first before the result cap applies.
"""

from __future__ import annotations

import time
from datetime import datetime

from envrisk.common.logging import log_event
from envrisk.common.models import Location, ViolationCandidate
from envrisk.pipeline.risk import parse_indicator
from envrisk.sources.base import FetchOptions, SourceAdapter, SourceOutcome, casefold_keys, lookup_first, safe_float
from envrisk.sources.remote import expect_rows, resolve_query_url

DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%m/%d/%Y", "%d-%b-%y", "%d-%b-%Y")


def parse_violation_date(value: str) -> datetime | None:
    text = value.strip()
    if "T" in text and len(text) > 19:
        text = text[:19]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _recency_key(candidate: ViolationCandidate) -> tuple[int, float]:
    parsed = parse_violation_date(candidate.violation_date) if candidate.violation_date else None
    if parsed is None:
        return (1, 0.0)
    return (0, -(parsed - datetime.min).total_seconds())


class WaterViolationAdapter(SourceAdapter):
    kind = "water_violations"

    def __init__(self, name: str, config: dict, **kwargs) -> None:
        super().__init__(name, config, **kwargs)
        self.fields = config["fields"]

    def _text(self, row: dict, role: str) -> str:
        value = lookup_first(row, self.fields.get(role, []))
        return str(value) if value is not None else ""

    def _to_candidate(self, raw: dict) -> ViolationCandidate | None:
        row = casefold_keys(raw)
        system_name = self._text(row, "system_name")
        if not system_name:
            return None
        return ViolationCandidate(
            source=self.name,
            system_name=system_name,
            violation_type=self._text(row, "violation_type"),
            contaminant=self._text(row, "contaminant"),
            violation_date=self._text(row, "violation_date"),
            health_based=parse_indicator(lookup_first(row, self.fields["health_based"])),
            measured_level=safe_float(lookup_first(row, self.fields.get("measured_level", []))),
            limit_level=safe_float(lookup_first(row, self.fields.get("limit_level", []))),
            system_id=self._text(row, "system_id") or None,
        )

    def fetch(self, location: Location, options: FetchOptions) -> tuple[ViolationCandidate, ...]:
        query_key, url = resolve_query_url(self.config["url_templates"], location)
        started = time.monotonic()

        client, owns_client = self._client()
        try:
            payload = client.get_json(url, timeout=self.timeout)
        finally:
            if owns_client:
                client.close()
        options.check_cancelled()

        rows = expect_rows(payload, url)
        candidates = []
        for raw in rows:
            if not isinstance(raw, dict):
                continue
            candidate = self._to_candidate(raw)
            if candidate is not None:
                candidates.append(candidate)

        kept = tuple(sorted(candidates, key=_recency_key)[: options.max_results])
        log_event(
            self.logger,
            f"{self.name} queried by {query_key}",
            run_id=options.run_id,
            stage="fetch",
            source=self.name,
            event="SOURCE_OK",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_in=len(rows),
            rows_out=len(kept),
        )
        return kept

    def _outcome(self, records, duration_ms: int) -> SourceOutcome:
        return SourceOutcome(source=self.name, label=self.label, violations=tuple(records), duration_ms=duration_ms)
