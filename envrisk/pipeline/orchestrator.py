"""Aggregation run orchestration with fail-soft, concurrent source fetches."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Mapping

from envrisk.common.config_loader import ConfigBundle
from envrisk.common.errors import ConfigError, RunSupersededError
from envrisk.common.http import HttpClient
from envrisk.common.ids import generate_run_id
from envrisk.common.logging import get_library_logger, log_event
from envrisk.common.models import (
    AggregationResult,
    Location,
    NormalizedSite,
    RunState,
    SiteCandidate,
    SiteCategory,
    ViolationCandidate,
    WaterViolation,
)
from envrisk.common.time_utils import utc_now
from envrisk.pipeline.dedupe import dedupe
from envrisk.pipeline.geofilter import filter_within_radius
from envrisk.pipeline.risk import DEFAULT_PROFILES, WATER_SYSTEM_PROFILE, RiskProfile, build_profiles, classify
from envrisk.sources.base import SourceAdapter, SourceOutcome
from envrisk.sources.registry import build_adapters

DEFAULT_ADAPTER_TIMEOUT = 45.0


@dataclass(frozen=True)
class _RunToken:
    generation: int
    run_id: str
    cancel_event: threading.Event


class AggregationOrchestrator:
    """Runs every adapter against a Location and assembles one result.

    State moves Idle -> Running -> Completed / CompletedWithErrors. While a run
    is in flight, ``result`` still returns the previous run's output. Starting
    a new run signals the in-flight one to stop; the superseded run never
    publishes and its caller gets ``RunSupersededError``.
    """

    def __init__(
        self,
        adapters: Iterable[SourceAdapter],
        *,
        profiles: Mapping[str, RiskProfile] | None = None,
        adapter_timeout: float = DEFAULT_ADAPTER_TIMEOUT,
        max_workers: int | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.adapters = list(adapters)
        self.profiles = dict(DEFAULT_PROFILES if profiles is None else profiles)
        self.profiles.setdefault(WATER_SYSTEM_PROFILE, DEFAULT_PROFILES[WATER_SYSTEM_PROFILE])
        self.adapter_timeout = adapter_timeout
        self.max_workers = max_workers
        self.logger = logger or get_library_logger("orchestrator")
        self.clock = clock

        names = [adapter.name for adapter in self.adapters]
        dupes = sorted({name for name in names if names.count(name) > 1})
        if dupes:
            raise ConfigError(f"Duplicate source names: {', '.join(dupes)}")
        for adapter in self.adapters:
            if adapter.risk_profile is not None and adapter.risk_profile not in self.profiles:
                raise ConfigError(f"Source {adapter.name} uses unknown risk profile: {adapter.risk_profile}")

        self._lock = threading.Lock()
        self._generation = 0
        self._active: _RunToken | None = None
        self._state = RunState.IDLE
        self._result: AggregationResult | None = None

    @classmethod
    def from_config(
        cls,
        bundle: ConfigBundle,
        *,
        http_client: HttpClient | None = None,
        logger: logging.Logger | None = None,
    ) -> "AggregationOrchestrator":
        return cls(
            build_adapters(bundle, http_client=http_client, logger=logger),
            profiles=build_profiles(bundle.risk_profiles),
            adapter_timeout=bundle.adapter_timeout,
            max_workers=bundle.max_workers,
            logger=logger,
        )

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def result(self) -> AggregationResult | None:
        with self._lock:
            return self._result

    def run(self, location: Location, *, run_id: str | None = None) -> AggregationResult:
        location.require_coordinates()
        token = self._begin(run_id or generate_run_id())
        started = time.monotonic()
        log_event(
            self.logger,
            f"aggregation started for {location.address or (location.latitude, location.longitude)}",
            run_id=token.run_id,
            stage="run",
            event="RUN_START",
            status="ok",
            rows_in=len(self.adapters),
        )

        try:
            outcomes = self._gather(location, token)
            result = self._assemble(location, token, outcomes)
        except BaseException:
            self._abandon(token)
            raise

        if not self._publish(token, result):
            log_event(
                self.logger,
                "aggregation superseded by a newer run; result discarded",
                run_id=token.run_id,
                stage="run",
                event="RUN_SUPERSEDED",
                status="discarded",
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            raise RunSupersededError(f"run {token.run_id} was superseded before it completed")

        log_event(
            self.logger,
            "aggregation finished",
            run_id=token.run_id,
            stage="run",
            event="RUN_END",
            status=result.status.value,
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_out=len(result.contamination_sites) + len(result.toxic_facilities) + len(result.water_violations),
        )
        return result

    def _begin(self, run_id: str) -> _RunToken:
        with self._lock:
            if self._active is not None:
                self._active.cancel_event.set()
            self._generation += 1
            token = _RunToken(generation=self._generation, run_id=run_id, cancel_event=threading.Event())
            self._active = token
            self._state = RunState.RUNNING
            return token

    def _publish(self, token: _RunToken, result: AggregationResult) -> bool:
        with self._lock:
            if self._active is not token:
                return False
            self._active = None
            self._result = result
            self._state = result.status
            return True

    def _abandon(self, token: _RunToken) -> None:
        token.cancel_event.set()
        with self._lock:
            if self._active is not token:
                return
            self._active = None
            self._state = self._result.status if self._result is not None else RunState.IDLE

    def _radius_for(self, adapter: SourceAdapter) -> float | None:
        if adapter.risk_profile is None:
            return None
        return self.profiles[adapter.risk_profile].radius_miles

    def _gather(self, location: Location, token: _RunToken) -> list[SourceOutcome]:
        if not self.adapters:
            return []

        workers = self.max_workers or len(self.adapters)
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="envrisk-source")
        futures = {}
        not_done: set = set()
        try:
            for adapter in self.adapters:
                options = adapter.fetch_options(
                    radius_miles=self._radius_for(adapter),
                    cancel_event=token.cancel_event,
                    run_id=token.run_id,
                )
                futures[adapter.name] = executor.submit(adapter.collect, location, options)
            _done, not_done = wait(futures.values(), timeout=self.adapter_timeout)
        finally:
            if not_done:
                # Stragglers poll the event and stop at their next checkpoint.
                token.cancel_event.set()
            executor.shutdown(wait=False, cancel_futures=True)

        outcomes: list[SourceOutcome] = []
        for adapter in self.adapters:
            future = futures[adapter.name]
            if future in not_done:
                outcomes.append(self._timeout_outcome(adapter, token))
            else:
                outcomes.append(future.result())
        return outcomes

    def _timeout_outcome(self, adapter: SourceAdapter, token: _RunToken) -> SourceOutcome:
        message = f"{adapter.label}: no response within {self.adapter_timeout:g}s"
        log_event(
            self.logger,
            message,
            level=logging.WARNING,
            run_id=token.run_id,
            stage="fetch",
            source=adapter.name,
            event="SOURCE_TIMEOUT",
            status="error",
            error_code="SOURCE_TIMEOUT",
        )
        return SourceOutcome(
            source=adapter.name,
            label=adapter.label,
            error=message,
            error_code="SOURCE_TIMEOUT",
            duration_ms=int(self.adapter_timeout * 1000),
        )

    def _normalise_sites(self, location: Location, candidates: Iterable[SiteCandidate]) -> list[NormalizedSite]:
        by_profile: dict[str, list[SiteCandidate]] = {}
        for candidate in candidates:
            by_profile.setdefault(candidate.risk_profile, []).append(candidate)

        sites: list[NormalizedSite] = []
        for profile_name, group in by_profile.items():
            profile = self.profiles.get(profile_name)
            if profile is None or profile.radius_miles is None:
                raise ConfigError(f"No distance profile named {profile_name}")
            for candidate in filter_within_radius(group, location, profile.radius_miles):
                sites.append(
                    NormalizedSite(
                        name=candidate.name,
                        category=candidate.category,
                        status=candidate.status,
                        distance_miles=candidate.distance_miles,
                        address=candidate.address,
                        contaminants=candidate.contaminants,
                        risk_level=classify(candidate.distance_miles, profile_name, profiles=self.profiles),
                        source=candidate.source,
                        identifier=candidate.identifier,
                        latitude=candidate.latitude,
                        longitude=candidate.longitude,
                    )
                )
        return sites

    def _normalise_violation(self, candidate: ViolationCandidate) -> WaterViolation:
        return WaterViolation(
            system_name=candidate.system_name,
            violation_type=candidate.violation_type,
            contaminant=candidate.contaminant,
            violation_date=candidate.violation_date,
            risk_level=classify(None, WATER_SYSTEM_PROFILE, candidate.health_based, profiles=self.profiles),
            measured_level=candidate.measured_level,
            limit_level=candidate.limit_level,
            source=candidate.source,
            system_id=candidate.system_id,
        )

    def _assemble(self, location: Location, token: _RunToken, outcomes: list[SourceOutcome]) -> AggregationResult:
        errors: list[str] = []
        contamination: list[NormalizedSite] = []
        toxic: list[NormalizedSite] = []
        violations: list[WaterViolation] = []

        # Outcomes arrive in configured adapter order, so folding is deterministic.
        for outcome in outcomes:
            if not outcome.ok:
                errors.append(outcome.error)
                continue
            violations.extend(self._normalise_violation(candidate) for candidate in outcome.violations)
            for site in self._normalise_sites(location, outcome.sites):
                if site.category is SiteCategory.TOXIC_RELEASE_FACILITY:
                    toxic.append(site)
                else:
                    contamination.append(site)

        toxic = dedupe(toxic)

        def by_distance(sites: list[NormalizedSite]) -> tuple[NormalizedSite, ...]:
            return tuple(sorted(sites, key=lambda site: site.distance_miles))

        return AggregationResult(
            run_id=token.run_id,
            location=location,
            contamination_sites=by_distance(contamination),
            toxic_facilities=by_distance(toxic),
            water_violations=tuple(violations),
            errors=tuple(errors),
            completed_at=self.clock(),
            status=RunState.COMPLETED_WITH_ERRORS if errors else RunState.COMPLETED,
        )
