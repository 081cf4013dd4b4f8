"""
Tract Affordability Atlas - Metro Percentile Ranking

Ranks a tract's affordability against every tract in its metropolitan
region (CBSA). The percentile is the share of tracts whose affordability
percentage is strictly lower than the target's; ties never count in the
target's favor.

Every query recomputes the whole region. When a per-ZIP rent table is
given, each tract is measured against its own ZIP's rent and only tracts
without one fall back to the uniform threshold, so a region can be ranked
under mixed thresholds.

Ranking sorts once and binary-searches (numpy.searchsorted) instead of
comparing tracts pairwise; large regions hold thousands of tracts.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from src.processing.affordability import compute_affordability_pct, percent_of
from src.processing.brackets import RegionRecord, tract_geoid
from src.processing.thresholds import income_for_rent
from src.utils.lookups import StaticLookups
from src.utils.region_cache import BoundedDatasetCache
from src.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BEDROOM_INDEX = 2

RentTable = Mapping[str, Sequence[Optional[float]]]


@dataclass(frozen=True)
class PercentileResult:
    percentile: float
    tract_count: int
    region_name: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class TractMetrics:
    affordability: float
    percentile: float


def _rent_at(rents: Optional[Sequence[Optional[float]]], bedroom_index: int) -> Optional[float]:
    if not rents or not 0 <= bedroom_index < len(rents):
        return None
    rent = rents[bedroom_index]
    if not rent:
        return None
    return rent


def _affordability_array(region: RegionRecord, thresholds: Sequence[float]) -> np.ndarray:
    return np.array(
        [
            compute_affordability_pct(threshold, tract.total_households, tract.bracket_counts)
            for tract, threshold in zip(region.tracts, thresholds)
        ],
        dtype=float,
    )


class PercentileRanker:
    def __init__(self, lookups: StaticLookups, region_cache: BoundedDatasetCache):
        self.lookups = lookups
        self.region_cache = region_cache

    def tract_thresholds(
        self,
        region: RegionRecord,
        uniform_threshold: float,
        zip_rents: Optional[RentTable] = None,
        bedroom_index: int = DEFAULT_BEDROOM_INDEX,
    ) -> np.ndarray:
        """
        Income threshold for each tract, in region order.
        """
        if zip_rents is None:
            return np.full(region.tract_count, float(uniform_threshold))

        tract_to_zip = self.lookups.tract_to_zip
        thresholds = np.empty(region.tract_count, dtype=float)
        overridden = 0

        for i, tract in enumerate(region.tracts):
            zip_code = tract_to_zip.get(tract.tract_id)
            rent = _rent_at(zip_rents.get(zip_code), bedroom_index) if zip_code else None
            if rent is None:
                thresholds[i] = uniform_threshold
            else:
                thresholds[i] = income_for_rent(rent)
                overridden += 1

        logger.debug(
            f"Region {region.region_id}: {overridden}/{region.tract_count} tracts use ZIP-level rents"
        )
        return thresholds

    def rank(
        self,
        state_fips: str,
        county_fips: str,
        tract_fips: str,
        uniform_threshold: float,
        zip_rents: Optional[RentTable] = None,
        bedroom_index: int = DEFAULT_BEDROOM_INDEX,
    ) -> Optional[PercentileResult]:
        """
        Percentile of one tract's affordability within its metro region.

        Returns:
            PercentileResult, or None when the county is outside any region,
            the region has no data, or the tract is not in the region's data.
        """
        ref = self.lookups.resolve_region(state_fips, county_fips)
        if ref is None:
            logger.debug(f"County {state_fips}{county_fips} is not in a metro region")
            return None

        region = self.region_cache.get(ref.region_id)
        if region is None or region.tract_count == 0:
            logger.debug(f"No tract data for region {ref.region_id}")
            return None

        target_id = tract_geoid(state_fips, county_fips, tract_fips)
        target_index = next(
            (i for i, tract in enumerate(region.tracts) if tract.tract_id == target_id), None
        )
        if target_index is None:
            logger.debug(f"Tract {target_id} not found in region {ref.region_id}")
            return None

        thresholds = self.tract_thresholds(region, uniform_threshold, zip_rents, bedroom_index)
        pcts = _affordability_array(region, thresholds)

        sorted_pcts = np.sort(pcts)
        below = int(np.searchsorted(sorted_pcts, pcts[target_index], side="left"))

        return PercentileResult(
            percentile=percent_of(below, len(pcts)),
            tract_count=len(pcts),
            region_name=region.region_name or ref.region_name,
        )

    def region_metrics(
        self,
        region: RegionRecord,
        bedroom_index: int = DEFAULT_BEDROOM_INDEX,
        fallback_rents: Optional[Sequence[Optional[float]]] = None,
        zip_rents: Optional[RentTable] = None,
    ) -> Dict[str, TractMetrics]:
        """
        Affordability and percentile for every tract of a region (map layer).

        Each tract uses its own ZIP's rents when available, else
        ``fallback_rents`` (typically the metro-level FMR). Tracts with no
        usable rent at ``bedroom_index`` are left out and do not count
        toward anyone's percentile.
        """
        tract_to_zip = self.lookups.tract_to_zip
        if zip_rents is None:
            zip_rents = self.lookups.zip_rents

        included = []
        thresholds = []
        for tract in region.tracts:
            zip_code = tract_to_zip.get(tract.tract_id)
            rents = zip_rents.get(zip_code) if zip_code else None
            rent = _rent_at(rents or fallback_rents, bedroom_index)
            if rent is None:
                continue
            included.append(tract)
            thresholds.append(income_for_rent(rent))

        if not included:
            return {}

        subset = RegionRecord(region.region_id, region.region_name, tuple(included))
        pcts = _affordability_array(subset, thresholds)
        below = np.searchsorted(np.sort(pcts), pcts, side="left")
        n = len(pcts)

        return {
            tract.tract_id: TractMetrics(affordability=float(pct), percentile=percent_of(int(count), n))
            for tract, pct, count in zip(included, pcts, below)
        }
