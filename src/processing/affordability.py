"""
Tract Affordability Atlas - Affordability Interpolation

Estimates the share of a tract's households earning at least an income
threshold, from its B19001 bracket histogram.

Within the bracket that straddles the threshold, households are assumed to
be spread uniformly over whole-dollar incomes, so the bracket contributes

    count * (max - threshold + 1) / (max - min + 1)

The open-ended top bracket ($200k+) has no known upper bound and is never
interpolated: its whole count is treated as above any threshold. This
overstates affordability for thresholds beyond $200k and is kept on
purpose.

No validation happens here; callers own the shape of their histograms.
"""

import math
from dataclasses import asdict, dataclass
from typing import Dict, List, Sequence

from src.processing.brackets import BRACKET_BOUNDS
from src.processing.thresholds import feasibility_floor, rent_for_income

# AMI levels shown in the affordability table (percent of area median income)
AMI_PERCENTS = (30, 40, 50, 60, 70, 80, 90, 100, 110, 120, 130, 140, 150)


@dataclass(frozen=True)
class AffordabilityResult:
    income_threshold: float
    monthly_rent: float
    percent_can_afford: float
    households_above_threshold: int
    total_households: int

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class AmiTableRow:
    ami_percent: int
    income: int
    rent: int
    percent_can_afford: float
    percent_feasible: float  # eligible at this AMI level but not rent-burdened past 40%

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up, unlike Python's round-half-even."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def percent_of(part: float, whole: float) -> float:
    return math.floor(part / whole * 1000 + 0.5) / 10


def households_above(income_threshold: float, bracket_counts: Sequence[int]) -> float:
    """
    Number of households (fractional) earning ``income_threshold`` or more.
    """
    above = 0.0
    for (low, high), count in zip(BRACKET_BOUNDS, bracket_counts):
        is_top_bracket = math.isinf(high)

        if low >= income_threshold:
            above += count
        elif not is_top_bracket and high >= income_threshold:
            bracket_width = high - low + 1
            portion_above = (high - income_threshold + 1) / bracket_width
            above += count * portion_above
        elif is_top_bracket and low < income_threshold:
            above += count

    return above


def compute_affordability_pct(
    income_threshold: float,
    total_households: int,
    bracket_counts: Sequence[int],
) -> float:
    """
    Percent of households at or above ``income_threshold``.

    Args:
        income_threshold: Annual income needed
        total_households: Tract total (B19001_001E)
        bracket_counts: 16 household counts aligned to BRACKET_BOUNDS

    Returns:
        Percentage in [0, 100], one decimal. 0 when the tract has no households.
    """
    if total_households == 0:
        return 0

    return percent_of(households_above(income_threshold, bracket_counts), total_households)


def calculate_affordability(
    income_threshold: float,
    monthly_rent: float,
    total_households: int,
    bracket_counts: Sequence[int],
) -> AffordabilityResult:
    if total_households == 0:
        return AffordabilityResult(
            income_threshold=income_threshold,
            monthly_rent=monthly_rent,
            percent_can_afford=0,
            households_above_threshold=0,
            total_households=0,
        )

    above = households_above(income_threshold, bracket_counts)

    return AffordabilityResult(
        income_threshold=income_threshold,
        monthly_rent=monthly_rent,
        percent_can_afford=percent_of(above, total_households),
        households_above_threshold=int(round_half_up(above)),
        total_households=total_households,
    )


def build_ami_table(
    size_adjusted_ami: float,
    total_households: int,
    bracket_counts: Sequence[int],
    ami_percents: Sequence[int] = AMI_PERCENTS,
) -> List[AmiTableRow]:
    """
    Affordability at each AMI level for one household size.

    ``percent_feasible`` is the band of households earning between the
    40%-of-income floor and the AMI ceiling: eligible for a unit priced at
    that AMI level, and able to carry it without paying more than 40%.
    """
    rows = []
    for pct in ami_percents:
        income = size_adjusted_ami * pct / 100
        rent = rent_for_income(income)
        floor = feasibility_floor(income)

        pct_above_floor = compute_affordability_pct(floor, total_households, bracket_counts)
        pct_above_ceiling = compute_affordability_pct(income, total_households, bracket_counts)

        rows.append(
            AmiTableRow(
                ami_percent=pct,
                income=int(round_half_up(income)),
                rent=int(round_half_up(rent)),
                percent_can_afford=pct_above_ceiling,
                percent_feasible=round_half_up(pct_above_floor - pct_above_ceiling, 1),
            )
        )

    return rows
