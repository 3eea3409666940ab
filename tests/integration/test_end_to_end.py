from __future__ import annotations

from pathlib import Path

import pytest

from envrisk.common.config_loader import load_all_configs
from envrisk.common.errors import UpstreamStatusError
from envrisk.common.models import Location, RiskLevel, RunState
from envrisk.pipeline.orchestrator import AggregationOrchestrator

ROOT = Path(__file__).resolve().parents[2]
BALTIMORE = Location(latitude=39.2904, longitude=-76.6122, address="100 N Holliday St, Baltimore, MD", state="MD", zip="21202")

SEMS_ROWS = [
    {"site_name": "Inner Harbor Site", "latitude": "39.2850", "longitude": "-76.6122", "npl_status_name": "Final NPL"},
    {"site_name": "Dundalk Marine", "latitude": "39.2904", "longitude": "-76.5900"},
    {"site_name": "County Landfill", "latitude": "39.3304", "longitude": "-76.6122"},
]

TRI_REGISTRY_ROWS = [
    {
        "facility_name": "Harbor Chemical Co",
        "pref_latitude": "39.2947",
        "pref_longitude": "76.6122",
        "street_address": "1 Pier Rd",
        "city_name": "Baltimore",
        "state_abbr": "MD",
        "tri_facility_id": "21230HRBRC1PIER",
    },
    {"facility_name": "Glen Burnie Plant", "pref_latitude": "39.1626", "pref_longitude": "76.6247"},
]

TRI_BASIC_CSV = (
    '"2. TRIFD","4. FACILITY NAME","5. STREET ADDRESS","6. CITY","9. ZIP","12. LATITUDE","13. LONGITUDE","34. CHEMICAL"\n'
    '"21230HRBRC1PIER","Harbor Chemical Co","1 Pier Rd","Baltimore","21230","39.2948","-76.6122","Lead"\n'
    '"21230HRBRC1PIER","Harbor Chemical Co","1 Pier Rd","Baltimore","21230","39.2948","-76.6122","Toluene"\n'
    '"21801NRTHR1REFN","Northern Refinery","9 Ridge Rd","Parkton","21120","39.5798","-76.6122","Benzene"\n'
)

SDWIS_ROWS = [
    {
        "pws_name": "Baltimore City Water",
        "pwsid": "MD0300002",
        "violation_category_code": "MCL",
        "contaminant_code": "PB90",
        "compl_per_begin_date": "2024-06-01",
        "is_health_based_ind": "Y",
    }
]


class RoutingClient:
    """Serves canned payloads keyed by a URL fragment."""

    def __init__(self, json_routes: dict, text_routes: dict):
        self.json_routes = json_routes
        self.text_routes = text_routes
        self.urls: list[str] = []

    @staticmethod
    def _route(routes: dict, url: str):
        for fragment, payload in routes.items():
            if fragment in url:
                if isinstance(payload, Exception):
                    raise payload
                return payload
        raise AssertionError(f"unexpected url {url}")

    def get_json(self, url: str, **_kwargs):
        self.urls.append(url)
        return self._route(self.json_routes, url)

    def get_text(self, url: str, **_kwargs):
        self.urls.append(url)
        return self._route(self.text_routes, url)

    def close(self):
        return None


def _client(text_payload=TRI_BASIC_CSV) -> RoutingClient:
    return RoutingClient(
        {"sems.envirofacts_site": SEMS_ROWS, "tri.tri_facility": TRI_REGISTRY_ROWS, "sdwis.water_system": SDWIS_ROWS},
        {"mv_tri_basic_download": text_payload},
    )


@pytest.mark.integration
def test_configured_sources_aggregate_for_baltimore():
    bundle = load_all_configs(ROOT / "config")
    client = _client()
    orchestrator = AggregationOrchestrator.from_config(bundle, http_client=client)

    result = orchestrator.run(BALTIMORE, run_id="baltimore")

    assert result.status is RunState.COMPLETED
    assert result.errors == ()

    assert [s.name for s in result.contamination_sites] == ["Inner Harbor Site", "Dundalk Marine"]
    assert [s.risk_level for s in result.contamination_sites] == [RiskLevel.HIGH, RiskLevel.LOW]
    assert result.contamination_sites[0].status == "Final NPL"
    assert result.contamination_sites[1].status == "Listed site"

    # Harbor Chemical appears in the registry and the extract; the registry is configured first.
    assert [s.name for s in result.toxic_facilities] == ["Harbor Chemical Co", "Glen Burnie Plant"]
    harbor = result.toxic_facilities[0]
    assert harbor.source == "tri_facility"
    assert harbor.risk_level is RiskLevel.HIGH
    assert harbor.distance_miles == pytest.approx(0.297, abs=0.005)
    assert result.toxic_facilities[1].risk_level is RiskLevel.LOW

    assert [v.system_name for v in result.water_violations] == ["Baltimore City Water"]
    assert result.water_violations[0].risk_level is RiskLevel.HIGH

    assert any(url.endswith("/2022_MD/csv") for url in client.urls)
    assert any("/zip_code/equals/21202/" in url for url in client.urls)


@pytest.mark.integration
def test_extract_only_facility_is_kept_when_registry_misses_it():
    bundle = load_all_configs(ROOT / "config")
    client = _client()
    client.json_routes["tri.tri_facility"] = []

    result = AggregationOrchestrator.from_config(bundle, http_client=client).run(BALTIMORE)

    assert [s.name for s in result.toxic_facilities] == ["Harbor Chemical Co"]
    harbor = result.toxic_facilities[0]
    assert harbor.source == "tri_basic"
    assert harbor.contaminants == ("Lead", "Toluene")
    assert harbor.address == "1 Pier Rd, Baltimore, 21230"


@pytest.mark.integration
def test_missing_extract_is_reported_and_other_sources_survive():
    bundle = load_all_configs(ROOT / "config")
    client = _client(text_payload=UpstreamStatusError("HTTP status 404", status_code=404))

    result = AggregationOrchestrator.from_config(bundle, http_client=client).run(BALTIMORE)

    assert result.status is RunState.COMPLETED_WITH_ERRORS
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Toxic release facilities (TRI basic data file): no extract published at")
    assert [s.name for s in result.toxic_facilities] == ["Harbor Chemical Co", "Glen Burnie Plant"]
    assert result.contamination_sites
    assert result.water_violations


@pytest.mark.integration
def test_result_serialises_to_plain_json_types():
    bundle = load_all_configs(ROOT / "config")
    result = AggregationOrchestrator.from_config(bundle, http_client=_client()).run(BALTIMORE, run_id="json")

    payload = result.to_dict()

    assert payload["run_id"] == "json"
    assert payload["status"] == "Completed"
    assert payload["location"]["state"] == "MD"
    assert payload["toxic_facilities"][0]["category"] == "ToxicReleaseFacility"
    assert payload["toxic_facilities"][0]["risk_level"] == "High"
    assert payload["water_violations"][0]["risk_level"] == "High"
    assert payload["completed_at"].endswith("+00:00")
