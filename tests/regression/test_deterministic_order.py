from __future__ import annotations

import time

import pytest

from envrisk.common.models import Location, SiteCandidate, SiteCategory
from envrisk.pipeline.geofilter import distance_miles
from envrisk.pipeline.orchestrator import AggregationOrchestrator
from envrisk.sources.base import SourceAdapter

ORIGIN = Location(latitude=39.2904, longitude=-76.6122, state="MD")


def facility(name: str, lat: float, source: str) -> SiteCandidate:
    return SiteCandidate(
        source=source,
        category=SiteCategory.TOXIC_RELEASE_FACILITY,
        risk_profile="toxic_release",
        name=name,
        latitude=lat,
        longitude=-76.6122,
        distance_miles=distance_miles(ORIGIN, (lat, -76.6122)),
    )


class DelayedAdapter(SourceAdapter):
    def __init__(self, name: str, delay: float, records):
        super().__init__(name, {"label": name, "risk_profile": "toxic_release"})
        self.delay = delay
        self.records = tuple(records)

    def fetch(self, location, options):
        time.sleep(self.delay)
        return self.records


def _orchestrator(first_delay: float, second_delay: float) -> AggregationOrchestrator:
    return AggregationOrchestrator(
        [
            DelayedAdapter(
                "registry",
                first_delay,
                [facility("Harbor Chemical Co", 39.2947, "registry"), facility("Canton Works", 39.2804, "registry")],
            ),
            DelayedAdapter(
                "extract",
                second_delay,
                [facility("Harbor Chemical Co", 39.2950, "extract"), facility("Fairfield Terminal", 39.2404, "extract")],
            ),
        ]
    )


@pytest.mark.regression
@pytest.mark.parametrize(("first_delay", "second_delay"), [(0.0, 0.05), (0.05, 0.0)])
def test_result_does_not_depend_on_completion_order(first_delay, second_delay):
    result = _orchestrator(first_delay, second_delay).run(ORIGIN, run_id="order")

    assert [(s.name, s.source) for s in result.toxic_facilities] == [
        ("Harbor Chemical Co", "registry"),
        ("Canton Works", "registry"),
        ("Fairfield Terminal", "extract"),
    ]


@pytest.mark.regression
def test_repeated_runs_serialise_identically():
    orchestrator = _orchestrator(0.01, 0.0)
    first = orchestrator.run(ORIGIN, run_id="repeat").to_dict()
    second = orchestrator.run(ORIGIN, run_id="repeat").to_dict()

    first.pop("completed_at")
    second.pop("completed_at")
    assert first == second
