import pytest
from fastapi.testclient import TestClient

import src.api.main as api_main
from src.api.services.affordability_service import get_affordability_service
from tests.conftest import LA_CBSA, LA_CBSA_NAME, LA_GEOMETRY


@pytest.fixture
def client(service):
    api_main.app.dependency_overrides[get_affordability_service] = lambda: service
    yield TestClient(api_main.app)
    api_main.app.dependency_overrides.clear()


def test_root_endpoint():
    client = TestClient(api_main.app)
    resp = client.get("/")
    assert resp.status_code == 200
    body = resp.json()
    assert "name" in body
    assert "percentile" in body["endpoints"]


def test_health_endpoint(monkeypatch, service):
    monkeypatch.setattr(api_main, "get_affordability_service", lambda: service)

    client = TestClient(api_main.app)
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["counties_mapped"] == 4
    assert set(body["caches"]) == {"region", "geometry"}


def test_health_endpoint_degraded_without_lookups(monkeypatch, tmp_path):
    from src.api.services.affordability_service import AffordabilityService
    from src.utils.blob_store import FileBlobStore

    empty = AffordabilityService(FileBlobStore(tmp_path))
    monkeypatch.setattr(api_main, "get_affordability_service", lambda: empty)

    resp = TestClient(api_main.app).get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"


def test_affordability_from_rent(client, uniform_counts):
    resp = client.post(
        "/api/v1/affordability",
        json={"total_households": 160, "bracket_counts": uniform_counts, "monthly_rent": 812.5},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["income_threshold"] == pytest.approx(32500)
    assert body["percent_can_afford"] == 65.6
    assert body["households_above_threshold"] == 105
    assert body["ami_table"] == []


def test_affordability_from_income_with_ami_table(client, uniform_counts):
    resp = client.post(
        "/api/v1/affordability",
        json={
            "total_households": 160,
            "bracket_counts": uniform_counts,
            "income_threshold": 60000,
            "size_adjusted_ami": 100000,
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["monthly_rent"] == pytest.approx(1500)
    assert len(body["ami_table"]) == 13


@pytest.mark.parametrize(
    "extra",
    [
        {},
        {"monthly_rent": 1500, "income_threshold": 60000},
    ],
)
def test_affordability_requires_exactly_one_threshold(client, uniform_counts, extra):
    resp = client.post(
        "/api/v1/affordability",
        json={"total_households": 160, "bracket_counts": uniform_counts, **extra},
    )
    assert resp.status_code == 422


def test_affordability_rejects_short_histogram(client):
    resp = client.post(
        "/api/v1/affordability",
        json={"total_households": 10, "bracket_counts": [1] * 10, "monthly_rent": 1500},
    )
    assert resp.status_code == 422


def test_tract_lookup(client, sample_lookup_request):
    resp = client.post("/api/v1/tracts/lookup", json=sample_lookup_request)
    assert resp.status_code == 200
    body = resp.json()
    assert body["percent_can_afford"] == 20.0
    assert body["msa_percentile"] == 20.0
    assert body["cbsa_name"] == LA_CBSA_NAME


def test_tract_lookup_validation(client, sample_lookup_request):
    resp = client.post("/api/v1/tracts/lookup", json={**sample_lookup_request, "tract_fips": "12"})
    assert resp.status_code == 422


def test_percentile(client):
    resp = client.get(
        "/api/v1/percentile",
        params={"state_fips": "06", "county_fips": "037", "tract_fips": "000200", "monthly_rent": 1250},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["percentile"] == 20.0
    assert body["tract_count"] == 5
    assert body["region_name"] == LA_CBSA_NAME
    assert body["income_threshold"] == pytest.approx(50000)


def test_percentile_with_zip_rents(client):
    resp = client.get(
        "/api/v1/percentile",
        params={
            "state_fips": "06",
            "county_fips": "037",
            "tract_fips": "000200",
            "income_threshold": 50000,
            "use_zip_rents": "true",
            "bedrooms": 2,
        },
    )
    assert resp.status_code == 200
    assert resp.json()["percentile"] == 40.0


def test_percentile_needs_one_threshold(client):
    resp = client.get(
        "/api/v1/percentile",
        params={"state_fips": "06", "county_fips": "037", "tract_fips": "000200"},
    )
    assert resp.status_code == 400


def test_percentile_not_found(client):
    resp = client.get(
        "/api/v1/percentile",
        params={"state_fips": "01", "county_fips": "001", "tract_fips": "000100", "monthly_rent": 1250},
    )
    assert resp.status_code == 404


def test_choropleth(client):
    resp = client.get("/api/v1/choropleth", params={"state_fips": "06", "county_fips": "059"})
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "public, max-age=86400"
    body = resp.json()
    assert body["cbsa_code"] == LA_CBSA
    assert body["geo"] == LA_GEOMETRY
    assert len(body["tracts"]) == 5


def test_choropleth_outside_msa(client):
    resp = client.get("/api/v1/choropleth", params={"state_fips": "01", "county_fips": "001"})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Location is not in a Metropolitan Statistical Area."


def test_choropleth_region_without_data(client):
    resp = client.get("/api/v1/choropleth", params={"state_fips": "06", "county_fips": "999"})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "No income data available for this MSA."


def test_choropleth_rejects_malformed_fips(client):
    resp = client.get("/api/v1/choropleth", params={"state_fips": "6", "county_fips": "037"})
    assert resp.status_code == 422


def test_region_metrics(client):
    resp = client.get(
        f"/api/v1/regions/{LA_CBSA}/metrics",
        params=[("bedrooms", 2)] + [("fallback_rents", r) for r in (900, 1050, 1250, 1600, 1900)],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["tract_count"] == 5
    assert body["metrics"]["06059000400"]["affordability"] == 0.0


@pytest.mark.parametrize("region_id", ["00000", "not-a-region"])
def test_region_metrics_unknown(client, region_id):
    resp = client.get(f"/api/v1/regions/{region_id}/metrics")
    assert resp.status_code == 404


def test_health_endpoint_sql_backend_unreachable(monkeypatch, service):
    monkeypatch.setattr(api_main, "get_affordability_service", lambda: service)
    monkeypatch.setattr(api_main.settings, "DATASET_BACKEND", "sql", raising=False)
    monkeypatch.setattr(api_main, "test_connection", lambda: False)

    body = TestClient(api_main.app).get("/health").json()
    assert body["status"] == "degraded"
    assert body["database"] == "disconnected"
