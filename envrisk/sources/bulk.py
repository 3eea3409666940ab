"""Bulk extract adapter for per-state delimited files."""

from __future__ import annotations

import csv
import io
import re
import time
from dataclasses import dataclass
from typing import Iterator
from urllib.parse import quote

from envrisk.common.errors import DataAbsentError, MalformedResponseError, UpstreamStatusError
from envrisk.common.logging import log_event
from envrisk.common.models import Location, SiteCandidate, SiteCategory
from envrisk.pipeline.geofilter import distance_miles
from envrisk.sources.base import (
    FetchOptions,
    SourceAdapter,
    nearest_first,
    safe_float,
    valid_coordinates,
)

REQUIRED_ROLES = ("name", "latitude", "longitude")
# Roles whose tokens each resolve to their own column, joined in order.
MULTI_COLUMN_ROLES = ("address",)
CANCEL_CHECK_EVERY = 500

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalise_header(value: str) -> str:
    return _NON_ALNUM_RE.sub(" ", value.lower()).strip()


def find_column(headers: list[str], tokens: list[str]) -> int | None:
    """Index of the first header containing any token, trying tokens in priority order."""
    normalised = [normalise_header(h) for h in headers]
    for token in tokens:
        needle = normalise_header(token)
        if not needle:
            continue
        for idx, header in enumerate(normalised):
            if needle in header:
                return idx
    return None


@dataclass(frozen=True)
class ColumnMap:
    single: dict[str, int]
    multi: dict[str, tuple[int, ...]]

    def value(self, row: list[str], role: str) -> str | None:
        idx = self.single.get(role)
        if idx is None or idx >= len(row):
            return None
        value = row[idx].strip()
        return value or None

    def joined(self, row: list[str], role: str) -> str:
        parts: list[str] = []
        for idx in self.multi.get(role, ()):
            if idx < len(row):
                text = row[idx].strip()
                if text and text not in parts:
                    parts.append(text)
        return ", ".join(parts)


def locate_columns(headers: list[str], columns_cfg: dict[str, list[str]]) -> ColumnMap:
    single: dict[str, int] = {}
    multi: dict[str, tuple[int, ...]] = {}
    for role, tokens in columns_cfg.items():
        if role in MULTI_COLUMN_ROLES:
            found = [find_column(headers, [token]) for token in tokens]
            multi[role] = tuple(dict.fromkeys(idx for idx in found if idx is not None))
            continue
        idx = find_column(headers, tokens)
        if idx is not None:
            single[role] = idx

    missing = [role for role in REQUIRED_ROLES if role not in single]
    if missing:
        raise MalformedResponseError(f"extract header is missing required column(s): {', '.join(missing)}")
    if single["latitude"] == single["longitude"]:
        raise MalformedResponseError("extract header maps latitude and longitude to the same column")
    return ColumnMap(single=single, multi=multi)


def iter_rows(text: str, delimiter: str = ",") -> Iterator[list[str]]:
    # csv handles quoted fields containing the delimiter and embedded newlines.
    # The reader resumes at the next line after a csv.Error.
    return csv.reader(io.StringIO(text.lstrip("\ufeff")), delimiter=delimiter)


class BulkExtractAdapter(SourceAdapter):
    kind = "bulk_extract"

    def __init__(self, name: str, config: dict, **kwargs) -> None:
        super().__init__(name, config, **kwargs)
        self.category = SiteCategory(config["category"])
        self.columns = config["columns"]
        self.delimiter = config.get("delimiter", ",")

    def extract_url(self, location: Location) -> str:
        state = location.state_code
        if state is None:
            raise DataAbsentError("location has no state to select an extract")
        return self.config["url_template"].format(
            state=quote(state, safe=""),
            year=self.config.get("year", ""),
        )

    def _download(self, url: str) -> str:
        client, owns_client = self._client()
        try:
            return client.get_text(url, timeout=self.timeout)
        except UpstreamStatusError as exc:
            if exc.status_code in (404, 410):
                raise DataAbsentError(f"no extract published at {url}") from exc
            raise
        finally:
            if owns_client:
                client.close()

    def parse(self, text: str, location: Location, options: FetchOptions) -> tuple[list[SiteCandidate], int, bool]:
        """Return candidates, rows scanned, and whether the row cap cut the scan short."""
        rows = iter_rows(text, self.delimiter)
        try:
            headers = next(rows, None)
        except csv.Error as exc:
            raise MalformedResponseError(f"extract header is not valid delimited text: {exc}") from exc
        if not headers or not any(h.strip() for h in headers):
            raise DataAbsentError("extract is empty")
        columns = locate_columns(headers, self.columns)

        # One facility can span many rows, e.g. one per reported chemical.
        grouped: dict[tuple[str, float, float], dict] = {}
        scanned = 0
        truncated = False
        while True:
            try:
                row = next(rows)
            except StopIteration:
                break
            except csv.Error:
                row = None
            if scanned >= options.max_rows_scanned:
                truncated = True
                break
            scanned += 1
            if scanned % CANCEL_CHECK_EVERY == 0:
                options.check_cancelled()
            if row is None:
                continue

            name = columns.value(row, "name")
            lat = safe_float(columns.value(row, "latitude"))
            lon = safe_float(columns.value(row, "longitude"))
            if name is None or not valid_coordinates(lat, lon):
                continue

            key = (name, lat, lon)
            entry = grouped.get(key)
            if entry is None:
                entry = {
                    "status": columns.value(row, "status"),
                    "address": columns.joined(row, "address"),
                    "identifier": columns.value(row, "identifier"),
                    "contaminants": [],
                }
                grouped[key] = entry
            contaminant = columns.value(row, "contaminants")
            if contaminant is not None:
                entry["contaminants"].append(contaminant)

        if scanned == 0:
            raise DataAbsentError("extract has a header but no rows")

        candidates = [
            SiteCandidate(
                source=self.name,
                category=self.category,
                risk_profile=self.config["risk_profile"],
                name=name,
                latitude=lat,
                longitude=lon,
                distance_miles=distance_miles(location, (lat, lon)),
                status=entry["status"] or self.config.get("default_status", ""),
                address=entry["address"],
                contaminants=tuple(dict.fromkeys(entry["contaminants"])),
                identifier=entry["identifier"],
            )
            for (name, lat, lon), entry in grouped.items()
        ]
        return candidates, scanned, truncated

    def fetch(self, location: Location, options: FetchOptions) -> tuple[SiteCandidate, ...]:
        url = self.extract_url(location)
        started = time.monotonic()
        text = self._download(url)
        options.check_cancelled()

        candidates, scanned, truncated = self.parse(text, location, options)
        kept = nearest_first(candidates, options.max_results)
        log_event(
            self.logger,
            f"{self.name} scanned extract",
            run_id=options.run_id,
            stage="fetch",
            source=self.name,
            event="SOURCE_OK",
            status="truncated" if truncated else "ok",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_in=scanned,
            rows_out=len(kept),
        )
        return kept
