"""
Pytest configuration and shared fixtures for Tract Affordability Atlas tests.
"""

import json
from pathlib import Path
from typing import Dict, List

import pytest

from src.api.services.affordability_service import AffordabilityService
from src.utils.blob_store import FileBlobStore


LA_CBSA = "31080"
LA_CBSA_NAME = "Los Angeles-Long Beach-Anaheim, CA"
HOUSTON_CBSA = "26420"
HOUSTON_CBSA_NAME = "Houston-Pasadena-The Woodlands, TX"


def histogram(low: int = 0, mid: int = 0, top: int = 0) -> List[int]:
    """
    16 bracket counts with households only in <$10k, $50-60k and $200k+.

    At a $50,000 threshold the affordability percentage is (mid + top) / total;
    at $60,000 it is top / total.
    """
    counts = [0] * 16
    counts[0] = low
    counts[9] = mid
    counts[15] = top
    return counts


def tract_row(tract_id: str, counts: List[int]) -> list:
    return [tract_id, sum(counts)] + counts


# Affordability at $50,000 (2BR rent of $1,250): 10, 20, 20, 55, 90
LA_TRACTS = [
    tract_row("06037000100", histogram(low=90, top=10)),
    tract_row("06037000200", histogram(low=80, top=20)),
    tract_row("06037000300", histogram(low=80, mid=20)),
    tract_row("06059000400", histogram(low=45, mid=55)),
    tract_row("06059000500", histogram(low=10, top=90)),
]

HOUSTON_TRACTS = [
    tract_row("48201000100", histogram(low=50, mid=50)),
    tract_row("48201000200", histogram(top=100)),
]

COUNTY_TO_CBSA = {
    "06037": {"code": LA_CBSA, "name": LA_CBSA_NAME},
    "06059": {"code": LA_CBSA, "name": LA_CBSA_NAME},
    "48201": {"code": HOUSTON_CBSA, "name": HOUSTON_CBSA_NAME},
    "06999": {"code": "99999", "name": "Region Without Data"},
}

TRACT_TO_ZIP = {
    "06037000300": "90001",
    "06059000400": "92801",
    "06059000500": "99999",  # no SAFMR row
}

SAFMR_BY_ZIP = {
    "90001": [700, 850, 1000, 1300, 1500],   # 2BR -> $40,000
    "92801": [1100, 1300, 1500, 1900, 2200],  # 2BR -> $60,000
}

LA_GEOMETRY = {"type": "Topology", "objects": {"tracts": {"type": "GeometryCollection", "geometries": []}}}


def _write(root: Path, key: str, payload) -> None:
    path = root / f"{key}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


@pytest.fixture
def dataset_dir(tmp_path) -> Path:
    """Dataset directory laid out the way the builders write it."""
    root = tmp_path / "data"
    _write(root, "county-to-cbsa", COUNTY_TO_CBSA)
    _write(root, "tract-to-zip", TRACT_TO_ZIP)
    _write(root, "safmr-by-zip", SAFMR_BY_ZIP)
    _write(root, f"msa/{LA_CBSA}", LA_TRACTS)
    _write(root, f"msa/{HOUSTON_CBSA}", HOUSTON_TRACTS)
    _write(root, f"msa-geo/{LA_CBSA}", LA_GEOMETRY)
    return root


@pytest.fixture
def file_store(dataset_dir) -> FileBlobStore:
    return FileBlobStore(dataset_dir)


@pytest.fixture
def service(file_store) -> AffordabilityService:
    return AffordabilityService(file_store, region_cache_size=2, geometry_cache_size=2)


@pytest.fixture
def uniform_counts() -> List[int]:
    """Ten households in every bracket (160 total)."""
    return [10] * 16


@pytest.fixture
def sample_lookup_request() -> Dict:
    counts = LA_TRACTS[1][2:]
    return {
        "state_fips": "06",
        "county_fips": "037",
        "tract_fips": "000200",
        "total_households": sum(counts),
        "bracket_counts": counts,
        "fmr_by_bedroom": [900, 1050, 1250, 1600, 1900],
        "income_limits_by_size": [70000, 80000, 90000, 100000, 108000, 116000, 124000, 132000],
        "median_by_size": [65000, 40000, 70000, 80000, 85000, 90000, 95000, 99000],
        "household_size": 4,
        "bedrooms": 2,
        "is_safmr": False,
    }
