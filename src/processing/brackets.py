"""
Tract Affordability Atlas - Income Bracket Model

ACS 5-year Table B19001 (Household Income in the Past 12 Months) reports
16 household-count brackets from <$10k to $200k+. Every tract histogram in
the atlas is aligned to this table.

Bounds are inclusive on both ends; the top bracket is open-ended.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from src.utils.logging import get_logger

logger = get_logger(__name__)

# B19001_002E through B19001_017E
BRACKET_BOUNDS: Tuple[Tuple[int, float], ...] = (
    (0, 9999),
    (10000, 14999),
    (15000, 19999),
    (20000, 24999),
    (25000, 29999),
    (30000, 34999),
    (35000, 39999),
    (40000, 44999),
    (45000, 49999),
    (50000, 59999),
    (60000, 74999),
    (75000, 99999),
    (100000, 124999),
    (125000, 149999),
    (150000, 199999),
    (200000, math.inf),
)

BRACKET_COUNT = len(BRACKET_BOUNDS)

# B19001_001E is the tract total; the brackets follow in order
B19001_VARIABLES = ["B19001_001E"] + [f"B19001_{i:03d}E" for i in range(2, 2 + BRACKET_COUNT)]


@dataclass(frozen=True)
class IncomeBracket:
    min: int
    max: float  # math.inf for the top bracket
    count: int

    @property
    def is_open_ended(self) -> bool:
        return math.isinf(self.max)


@dataclass(frozen=True)
class TractRecord:
    """One tract's household income histogram."""

    tract_id: str  # state(2) + county(3) + tract(6)
    total_households: int
    bracket_counts: Tuple[int, ...]


@dataclass(frozen=True)
class RegionRecord:
    """All tracts of one metropolitan region (CBSA)."""

    region_id: str
    region_name: str
    tracts: Tuple[TractRecord, ...]

    @property
    def tract_count(self) -> int:
        return len(self.tracts)


def build_brackets(bracket_counts: Sequence[int]) -> List[IncomeBracket]:
    """Pair household counts with the shared bracket bounds."""
    return [
        IncomeBracket(min=bounds[0], max=bounds[1], count=count)
        for bounds, count in zip(BRACKET_BOUNDS, bracket_counts)
    ]


def tract_geoid(state_fips: str, county_fips: str, tract_fips: str) -> str:
    return f"{state_fips}{county_fips}{tract_fips}"


def _coerce_count(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_tract_row(row: Sequence[Any]) -> Optional[TractRecord]:
    """
    Normalize one compact dataset row ``[tractId, total, c0, ..., c15]``.

    Returns None for rows that are too short to carry a tract id and total.
    Missing or non-numeric bracket values count as zero.
    """
    if not isinstance(row, (list, tuple)) or len(row) < 2:
        return None

    counts = [_coerce_count(v) for v in row[2:2 + BRACKET_COUNT]]
    counts.extend([0] * (BRACKET_COUNT - len(counts)))

    return TractRecord(
        tract_id=str(row[0]),
        total_households=_coerce_count(row[1]),
        bracket_counts=tuple(counts),
    )


def parse_region_rows(region_id: str, region_name: str, rows: Iterable[Any]) -> RegionRecord:
    tracts = []
    skipped = 0
    for row in rows:
        record = parse_tract_row(row)
        if record is None:
            skipped += 1
            continue
        tracts.append(record)

    if skipped:
        logger.warning(f"Skipped {skipped} malformed tract rows in region {region_id}")

    return RegionRecord(region_id=region_id, region_name=region_name, tracts=tuple(tracts))
