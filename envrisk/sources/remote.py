"""Remote query adapter for services filtered by state or zip."""

from __future__ import annotations

import time
from typing import Any
from urllib.parse import quote

from envrisk.common.errors import DataAbsentError, MalformedResponseError
from envrisk.common.logging import log_event
from envrisk.common.models import Location, SiteCandidate, SiteCategory
from envrisk.pipeline.geofilter import distance_miles
from envrisk.sources.base import (
    FetchOptions,
    SourceAdapter,
    casefold_keys,
    join_parts,
    lookup_first,
    nearest_first,
    safe_float,
    split_contaminants,
    valid_coordinates,
)


def query_value(location: Location, key: str) -> str | None:
    if key == "state":
        return location.state_code
    if key == "zip":
        return location.zip5
    return None


def resolve_query_url(url_templates: dict[str, str], location: Location, extra: dict[str, Any] | None = None) -> tuple[str, str]:
    """Pick the first configured query key the Location can satisfy."""
    for key, template in url_templates.items():
        value = query_value(location, key)
        if value is None:
            continue
        values = dict(extra or {})
        values[key] = quote(value, safe="")
        return key, template.format(**values)
    keys = ", ".join(url_templates)
    raise DataAbsentError(f"location has no value for query key(s): {keys}")


def expect_rows(payload: Any, url: str) -> list:
    if isinstance(payload, dict):
        if "error" in payload:
            raise MalformedResponseError(f"Service error payload from {url}: {payload['error']}")
        for key in ("Results", "results", "rows"):
            if isinstance(payload.get(key), list):
                return payload[key]
    if not isinstance(payload, list):
        raise MalformedResponseError(f"Expected a JSON array from {url}, got {type(payload).__name__}")
    return payload


class RemoteQueryAdapter(SourceAdapter):
    kind = "remote_query"

    def __init__(self, name: str, config: dict, **kwargs) -> None:
        super().__init__(name, config, **kwargs)
        self.category = SiteCategory(config["category"])
        self.fields = config["fields"]

    def _to_candidate(self, raw: dict, location: Location) -> SiteCandidate | None:
        row = casefold_keys(raw)
        name = lookup_first(row, self.fields["name"])
        lat = safe_float(lookup_first(row, self.fields["latitude"]))
        lon = safe_float(lookup_first(row, self.fields["longitude"]))
        if name is None:
            return None
        if lon is not None and self.config.get("force_west_longitude"):
            lon = -abs(lon)
        if not valid_coordinates(lat, lon):
            return None

        status = lookup_first(row, self.fields.get("status", []))
        identifier = lookup_first(row, self.fields.get("identifier", []))
        return SiteCandidate(
            source=self.name,
            category=self.category,
            risk_profile=self.config["risk_profile"],
            name=str(name),
            latitude=lat,
            longitude=lon,
            distance_miles=distance_miles(location, (lat, lon)),
            status=str(status) if status is not None else self.config.get("default_status", ""),
            address=join_parts(row, self.fields.get("address", [])),
            contaminants=split_contaminants(lookup_first(row, self.fields.get("contaminants", []))),
            identifier=str(identifier) if identifier is not None else None,
        )

    def fetch(self, location: Location, options: FetchOptions) -> tuple[SiteCandidate, ...]:
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
        candidates: list[SiteCandidate] = []
        for raw in rows:
            if not isinstance(raw, dict):
                continue
            candidate = self._to_candidate(raw, location)
            if candidate is not None:
                candidates.append(candidate)

        kept = nearest_first(candidates, options.max_results)
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
