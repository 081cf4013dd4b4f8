"""Affordability service: owns the dataset store, lookups, caches and ranker."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

from config.settings import get_settings
from src.processing.affordability import build_ami_table, calculate_affordability
from src.processing.brackets import RegionRecord, build_brackets, parse_region_rows
from src.processing.percentile import PercentileRanker, PercentileResult, RentTable
from src.processing.thresholds import income_for_rent, rent_for_income
from src.utils.blob_store import BlobStore, FileBlobStore, SqlBlobStore
from src.utils.lookups import StaticLookups
from src.utils.region_cache import BoundedDatasetCache
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

# B19019 reports medians for 1..7+ person households at indexes 1..7 (0 = overall)
MEDIAN_BY_SIZE_MAX_INDEX = 7


def build_blob_store() -> BlobStore:
    backend = (settings.DATASET_BACKEND or "files").strip().lower()
    if backend == "sql":
        from config.database import get_engine

        return SqlBlobStore(get_engine())
    if backend != "files":
        raise ValueError(f"Unknown DATASET_BACKEND: {settings.DATASET_BACKEND!r}")
    return FileBlobStore(settings.DATA_DIR)


class AffordabilityService:
    """Composes the engine around one dataset store."""

    def __init__(
        self,
        store: BlobStore,
        region_cache_size: int = settings.REGION_CACHE_SIZE,
        geometry_cache_size: int = settings.GEOMETRY_CACHE_SIZE,
    ) -> None:
        self.store = store
        self.lookups = StaticLookups(store)
        self.region_cache: BoundedDatasetCache[str, RegionRecord] = BoundedDatasetCache(
            self._load_region, region_cache_size, name="region"
        )
        self.geometry_cache: BoundedDatasetCache[str, Any] = BoundedDatasetCache(
            self._load_geometry, geometry_cache_size, name="geometry"
        )
        self.ranker = PercentileRanker(self.lookups, self.region_cache)

    def _load_region(self, region_id: str) -> Optional[RegionRecord]:
        rows = self.store.get(f"{settings.REGION_TRACTS_PREFIX}/{region_id}")
        if rows is None:
            return None
        if not isinstance(rows, list):
            logger.warning(f"Region dataset {region_id} is not a list of tract rows")
            return None

        region = parse_region_rows(region_id, self.lookups.region_name(region_id) or "", rows)
        logger.info(f"Loaded region {region_id} with {region.tract_count} tracts")
        return region

    def _load_geometry(self, region_id: str) -> Optional[Any]:
        return self.store.get(f"{settings.REGION_GEOMETRY_PREFIX}/{region_id}")

    def compute_affordability(
        self,
        total_households: int,
        bracket_counts: Sequence[int],
        monthly_rent: Optional[float] = None,
        income_threshold: Optional[float] = None,
        size_adjusted_ami: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Affordability of a caller-supplied histogram at one rent or income level.

        Exactly one of ``monthly_rent`` and ``income_threshold`` must be given;
        the other is derived at the 30% ratio.
        """
        if (monthly_rent is None) == (income_threshold is None):
            raise ValueError("Provide exactly one of monthly_rent or income_threshold")

        if monthly_rent is not None:
            income_threshold = income_for_rent(monthly_rent)
        else:
            monthly_rent = rent_for_income(income_threshold)

        result = calculate_affordability(income_threshold, monthly_rent, total_households, bracket_counts)

        ami_table: List[Dict[str, Any]] = []
        if size_adjusted_ami:
            ami_table = [
                row.to_dict()
                for row in build_ami_table(size_adjusted_ami, total_households, bracket_counts)
            ]

        return {**result.to_dict(), "ami_table": ami_table}

    def get_region(self, region_id: str) -> Optional[RegionRecord]:
        return self.region_cache.get(region_id)

    def rank(
        self,
        state_fips: str,
        county_fips: str,
        tract_fips: str,
        income_threshold: float,
        use_zip_rents: bool = False,
        bedroom_index: int = settings.DEFAULT_BEDROOM_INDEX,
    ) -> Optional[PercentileResult]:
        zip_rents: Optional[RentTable] = self.lookups.zip_rents if use_zip_rents else None
        return self.ranker.rank(
            state_fips,
            county_fips,
            tract_fips,
            income_threshold,
            zip_rents=zip_rents,
            bedroom_index=bedroom_index,
        )

    def lookup_tract(
        self,
        state_fips: str,
        county_fips: str,
        tract_fips: str,
        total_households: int,
        bracket_counts: Sequence[int],
        fmr_by_bedroom: Sequence[float],
        income_limits_by_size: Sequence[float] = (),
        median_by_size: Sequence[Optional[float]] = (),
        household_size: int = settings.DEFAULT_HOUSEHOLD_SIZE,
        bedrooms: int = settings.DEFAULT_BEDROOM_INDEX,
        is_safmr: bool = False,
    ) -> Dict[str, Any]:
        """
        Full tract summary for one household size and bedroom count.

        Mirrors the address lookup flow once geocoding and the upstream
        Census/HUD fetches have already produced their figures.
        """
        if not 0 <= bedrooms < len(fmr_by_bedroom):
            raise ValueError(f"No fair market rent for bedroom index {bedrooms}")
        if household_size < 1:
            raise ValueError("Household size must be at least 1")

        monthly_rent = fmr_by_bedroom[bedrooms]
        income_needed = income_for_rent(monthly_rent)
        result = calculate_affordability(income_needed, monthly_rent, total_households, bracket_counts)

        size_adjusted_ami = (
            income_limits_by_size[household_size - 1]
            if household_size <= len(income_limits_by_size)
            else None
        )
        median_index = min(household_size, MEDIAN_BY_SIZE_MAX_INDEX)
        tract_median = median_by_size[median_index] if median_index < len(median_by_size) else None

        ami_table: List[Dict[str, Any]] = []
        if size_adjusted_ami:
            ami_table = [
                row.to_dict()
                for row in build_ami_table(size_adjusted_ami, total_households, bracket_counts)
            ]

        percentile = self.rank(
            state_fips,
            county_fips,
            tract_fips,
            income_needed,
            use_zip_rents=is_safmr,
            bedroom_index=bedrooms,
        )

        return {
            **result.to_dict(),
            "state_fips": state_fips,
            "county_fips": county_fips,
            "tract_fips": tract_fips,
            "household_size": household_size,
            "bedrooms": bedrooms,
            "is_safmr": is_safmr,
            "size_adjusted_ami": size_adjusted_ami,
            "tract_median": tract_median,
            "ami_table": ami_table,
            "brackets": [
                {"min": b.min, "max": None if b.is_open_ended else b.max, "count": b.count}
                for b in build_brackets(bracket_counts)
            ],
            "msa_percentile": percentile.percentile if percentile else None,
            "msa_tract_count": percentile.tract_count if percentile else None,
            "cbsa_name": percentile.region_name if percentile else None,
        }

    def choropleth(self, state_fips: str, county_fips: str) -> Optional[Dict[str, Any]]:
        """
        Compact region payload for map clients.

        Each tract is ``[tractId, totalHouseholds, bracketCounts, zipRents | None]``
        so the client can recompute affordability for any bedroom count.
        """
        ref = self.lookups.resolve_region(state_fips, county_fips)
        if ref is None:
            return None

        region = self.region_cache.get(ref.region_id)
        if region is None or region.tract_count == 0:
            return None

        tracts = [
            [
                tract.tract_id,
                tract.total_households,
                list(tract.bracket_counts),
                self.lookups.zip_rents_for_tract(tract.tract_id),
            ]
            for tract in region.tracts
        ]

        return {
            "cbsa_code": ref.region_id,
            "cbsa_name": ref.region_name,
            "tracts": tracts,
            "geo": self.geometry_cache.get(ref.region_id),
        }

    def region_metrics(
        self,
        region_id: str,
        bedroom_index: int = settings.DEFAULT_BEDROOM_INDEX,
        fallback_rents: Optional[Sequence[Optional[float]]] = None,
    ) -> Optional[Dict[str, Dict[str, float]]]:
        region = self.region_cache.get(region_id)
        if region is None:
            return None

        metrics = self.ranker.region_metrics(region, bedroom_index, fallback_rents=fallback_rents)
        return {
            tract_id: {"affordability": m.affordability, "percentile": m.percentile}
            for tract_id, m in metrics.items()
        }

    def cache_stats(self) -> Dict[str, Dict[str, int]]:
        return {
            "region": self.region_cache.stats(),
            "geometry": self.geometry_cache.stats(),
        }


@lru_cache()
def get_affordability_service() -> AffordabilityService:
    """Process-wide service; FastAPI dependency."""
    store = build_blob_store()
    logger.info(f"Affordability service using {store!r}")
    return AffordabilityService(store)
