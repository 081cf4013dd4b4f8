import pytest

from src.api.services.affordability_service import AffordabilityService
from tests.conftest import (
    HOUSTON_CBSA,
    LA_CBSA,
    LA_CBSA_NAME,
    LA_GEOMETRY,
    SAFMR_BY_ZIP,
)


def test_lookup_tract_summary(service, sample_lookup_request):
    summary = service.lookup_tract(**sample_lookup_request)

    # 2BR FMR $1,250 -> $50,000; tract 000200 has 20 of 100 households in $200k+
    assert summary["income_threshold"] == pytest.approx(50000)
    assert summary["monthly_rent"] == 1250
    assert summary["percent_can_afford"] == 20.0
    assert summary["households_above_threshold"] == 20
    assert summary["size_adjusted_ami"] == 100000
    assert summary["tract_median"] == 85000
    assert summary["msa_percentile"] == 20.0
    assert summary["msa_tract_count"] == 5
    assert summary["cbsa_name"] == LA_CBSA_NAME


def test_lookup_tract_ami_table_and_brackets(service, sample_lookup_request):
    summary = service.lookup_tract(**sample_lookup_request)

    assert len(summary["ami_table"]) == 13
    assert summary["ami_table"][0]["ami_percent"] == 30
    assert len(summary["brackets"]) == 16
    assert summary["brackets"][-1] == {"min": 200000, "max": None, "count": 20}


def test_lookup_tract_with_zip_rents_ranks_against_mixed_thresholds(service, sample_lookup_request):
    summary = service.lookup_tract(**{**sample_lookup_request, "is_safmr": True})

    assert summary["percent_can_afford"] == 20.0
    assert summary["msa_percentile"] == 40.0


def test_lookup_tract_outside_metro_has_no_percentile(service, sample_lookup_request):
    summary = service.lookup_tract(**{**sample_lookup_request, "state_fips": "01", "county_fips": "001"})

    assert summary["percent_can_afford"] == 20.0
    assert summary["msa_percentile"] is None
    assert summary["msa_tract_count"] is None
    assert summary["cbsa_name"] is None


def test_lookup_tract_large_household_uses_capped_median(service, sample_lookup_request):
    summary = service.lookup_tract(**{**sample_lookup_request, "household_size": 8})

    assert summary["size_adjusted_ami"] == 132000
    assert summary["tract_median"] == 99000  # index 7 covers 7+ person households


def test_lookup_tract_without_income_limits(service, sample_lookup_request):
    summary = service.lookup_tract(**{**sample_lookup_request, "income_limits_by_size": [], "median_by_size": []})

    assert summary["size_adjusted_ami"] is None
    assert summary["tract_median"] is None
    assert summary["ami_table"] == []


@pytest.mark.parametrize("overrides", [{"bedrooms": 5}, {"household_size": 0}])
def test_lookup_tract_rejects_bad_profile(service, sample_lookup_request, overrides):
    with pytest.raises(ValueError):
        service.lookup_tract(**{**sample_lookup_request, **overrides})


def test_choropleth_payload(service):
    payload = service.choropleth("06", "037")

    assert payload["cbsa_code"] == LA_CBSA
    assert payload["cbsa_name"] == LA_CBSA_NAME
    assert payload["geo"] == LA_GEOMETRY
    assert len(payload["tracts"]) == 5

    by_id = {row[0]: row for row in payload["tracts"]}
    assert by_id["06037000200"][1] == 100
    assert len(by_id["06037000200"][2]) == 16
    assert by_id["06037000200"][3] is None
    assert by_id["06037000300"][3] == SAFMR_BY_ZIP["90001"]


def test_choropleth_without_geometry(service):
    payload = service.choropleth("48", "201")

    assert payload["cbsa_code"] == HOUSTON_CBSA
    assert payload["geo"] is None
    assert len(payload["tracts"]) == 2


@pytest.mark.parametrize("state,county", [("01", "001"), ("06", "999")])
def test_choropleth_absent(service, state, county):
    assert service.choropleth(state, county) is None


def test_caches_are_independent(service):
    service.choropleth("06", "037")
    service.rank("48", "201", "000100", 50000)

    assert service.region_cache.keys() == [LA_CBSA, HOUSTON_CBSA]
    assert service.geometry_cache.keys() == [LA_CBSA]

    stats = service.cache_stats()
    assert stats["region"]["size"] == 2
    assert stats["geometry"]["size"] == 1


def test_region_cache_evicts_oldest(file_store):
    service = AffordabilityService(file_store, region_cache_size=1, geometry_cache_size=1)

    service.rank("06", "037", "000200", 50000)
    service.rank("48", "201", "000100", 50000)

    assert service.region_cache.keys() == [HOUSTON_CBSA]
    assert service.cache_stats()["region"]["evictions"] == 1
    # Reloaded on demand
    assert service.rank("06", "037", "000200", 50000).percentile == 20.0


def test_region_metrics(service):
    metrics = service.region_metrics(LA_CBSA, bedroom_index=2, fallback_rents=[900, 1050, 1250, 1600, 1900])

    assert len(metrics) == 5
    assert metrics["06059000500"] == {"affordability": 90.0, "percentile": 80.0}


def test_region_metrics_unknown_region(service):
    assert service.region_metrics("00000") is None


def test_region_name_comes_from_county_lookup(service):
    assert service.get_region(LA_CBSA).region_name == LA_CBSA_NAME


def test_compute_affordability_from_rent(service, uniform_counts):
    result = service.compute_affordability(160, uniform_counts, monthly_rent=812.5)

    assert result["income_threshold"] == pytest.approx(32500)
    assert result["percent_can_afford"] == 65.6
    assert result["households_above_threshold"] == 105
    assert result["ami_table"] == []


def test_compute_affordability_from_income_with_ami(service, uniform_counts):
    result = service.compute_affordability(160, uniform_counts, income_threshold=60000, size_adjusted_ami=90000)

    assert result["monthly_rent"] == pytest.approx(1500)
    assert [row["ami_percent"] for row in result["ami_table"]][:2] == [30, 40]


@pytest.mark.parametrize("kwargs", [{}, {"monthly_rent": 1500, "income_threshold": 60000}])
def test_compute_affordability_needs_one_threshold(service, uniform_counts, kwargs):
    with pytest.raises(ValueError):
        service.compute_affordability(160, uniform_counts, **kwargs)
