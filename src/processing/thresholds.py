"""
Tract Affordability Atlas - Rent / Income Threshold Derivation

A rent is "affordable" when it takes no more than 30% of gross income.
The 40% ratio marks the edge of feasibility: a household paying between
30% and 40% is rent-burdened but can still carry the unit.
"""

RENT_TO_INCOME_RATIO = 0.30
FEASIBLE_RENT_TO_INCOME_RATIO = 0.40

# Income at which a given rent equals 40% of income, relative to the 30% income
# (0.30 / 0.40, written out because the float division lands on 0.7499...)
FEASIBILITY_FACTOR = 0.75

MONTHS_PER_YEAR = 12


def income_for_rent(monthly_rent: float) -> float:
    """Annual income needed to afford ``monthly_rent`` at 30% of income."""
    return monthly_rent * MONTHS_PER_YEAR / RENT_TO_INCOME_RATIO


def rent_for_income(annual_income: float) -> float:
    """Monthly rent affordable at 30% of ``annual_income``."""
    return annual_income * RENT_TO_INCOME_RATIO / MONTHS_PER_YEAR


def feasibility_floor(annual_income: float) -> float:
    """
    Lowest income that can carry the rent affordable at ``annual_income``
    while spending no more than 40% on it.
    """
    return annual_income * FEASIBILITY_FACTOR
