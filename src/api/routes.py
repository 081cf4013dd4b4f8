"""
Tract Affordability Atlas - API Routes
Endpoints for tract affordability, metro percentiles and map data
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from config.settings import get_settings
from src.api.services.affordability_service import (
    AffordabilityService,
    get_affordability_service,
)
from src.processing.brackets import BRACKET_COUNT
from src.processing.thresholds import income_for_rent
from src.utils.logging import get_logger

router = APIRouter()
settings = get_settings()
logger = get_logger(__name__)

NOT_IN_MSA_DETAIL = "Location is not in a Metropolitan Statistical Area."
NO_MSA_DATA_DETAIL = "No income data available for this MSA."


# Request / response models
class AffordabilityRequest(BaseModel):
    """Histogram plus exactly one of monthly_rent / income_threshold"""

    total_households: int = Field(..., ge=0)
    bracket_counts: List[int] = Field(..., min_length=BRACKET_COUNT, max_length=BRACKET_COUNT)
    monthly_rent: Optional[float] = Field(None, gt=0)
    income_threshold: Optional[float] = Field(None, ge=0)
    size_adjusted_ami: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def _one_threshold(self):
        if (self.monthly_rent is None) == (self.income_threshold is None):
            raise ValueError("Provide exactly one of monthly_rent or income_threshold")
        return self


class AmiRow(BaseModel):
    ami_percent: int
    income: int
    rent: int
    percent_can_afford: float
    percent_feasible: float


class AffordabilityResponse(BaseModel):
    income_threshold: float
    monthly_rent: float
    percent_can_afford: float
    households_above_threshold: int
    total_households: int
    ami_table: List[AmiRow] = Field(default_factory=list)


class TractLookupRequest(BaseModel):
    """Tract figures already gathered by the geocoding and Census/HUD clients"""

    state_fips: str = Field(..., pattern=r"^\d{2}$")
    county_fips: str = Field(..., pattern=r"^\d{3}$")
    tract_fips: str = Field(..., pattern=r"^\d{6}$")
    total_households: int = Field(..., ge=0)
    bracket_counts: List[int] = Field(..., min_length=BRACKET_COUNT, max_length=BRACKET_COUNT)
    fmr_by_bedroom: List[float] = Field(..., min_length=5, max_length=5)
    income_limits_by_size: List[float] = Field(default_factory=list, max_length=8)
    median_by_size: List[Optional[float]] = Field(default_factory=list, max_length=8)
    household_size: int = Field(settings.DEFAULT_HOUSEHOLD_SIZE, ge=1, le=8)
    bedrooms: int = Field(settings.DEFAULT_BEDROOM_INDEX, ge=0, le=4)
    is_safmr: bool = False


class PercentileResponse(BaseModel):
    percentile: float
    tract_count: int
    region_name: str
    income_threshold: float


class TractMetricsResponse(BaseModel):
    region_id: str
    bedrooms: int
    tract_count: int
    metrics: Dict[str, Dict[str, float]]


@router.post("/affordability", response_model=AffordabilityResponse)
async def post_affordability(
    request: AffordabilityRequest,
    service: AffordabilityService = Depends(get_affordability_service),
):
    """
    Percent of a histogram's households that can afford a rent (or income) level
    """
    try:
        return service.compute_affordability(**request.model_dump())

    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/tracts/lookup")
async def post_tract_lookup(
    request: TractLookupRequest,
    service: AffordabilityService = Depends(get_affordability_service),
):
    """
    Tract affordability, AMI table and metro percentile for one household profile
    """
    try:
        return service.lookup_tract(**request.model_dump())

    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(f"Tract lookup failed: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from exc


@router.get("/percentile", response_model=PercentileResponse)
async def get_percentile(
    state_fips: str = Query(..., pattern=r"^\d{2}$"),
    county_fips: str = Query(..., pattern=r"^\d{3}$"),
    tract_fips: str = Query(..., pattern=r"^\d{6}$"),
    monthly_rent: Optional[float] = Query(None, gt=0),
    income_threshold: Optional[float] = Query(None, ge=0),
    use_zip_rents: bool = False,
    bedrooms: int = Query(settings.DEFAULT_BEDROOM_INDEX, ge=0, le=4),
    service: AffordabilityService = Depends(get_affordability_service),
):
    """
    Rank a tract's affordability against every tract in its metro region
    """
    if (monthly_rent is None) == (income_threshold is None):
        raise HTTPException(
            status_code=400, detail="Provide exactly one of monthly_rent or income_threshold"
        )

    threshold = income_for_rent(monthly_rent) if monthly_rent is not None else income_threshold

    try:
        result = service.rank(
            state_fips,
            county_fips,
            tract_fips,
            threshold,
            use_zip_rents=use_zip_rents,
            bedroom_index=bedrooms,
        )
    except Exception as exc:
        logger.error(f"Percentile ranking failed: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    if result is None:
        raise HTTPException(
            status_code=404,
            detail=f"No metro percentile for tract {state_fips}{county_fips}{tract_fips}",
        )

    return PercentileResponse(**result.to_dict(), income_threshold=threshold)


@router.get("/choropleth")
async def get_choropleth(
    state_fips: str = Query(..., pattern=r"^\d{2}$"),
    county_fips: str = Query(..., pattern=r"^\d{3}$"),
    service: AffordabilityService = Depends(get_affordability_service),
):
    """
    Region tract histograms, ZIP-level rents and simplified geometry for map shading
    """
    if service.lookups.resolve_region(state_fips, county_fips) is None:
        raise HTTPException(status_code=404, detail=NOT_IN_MSA_DETAIL)

    try:
        payload = service.choropleth(state_fips, county_fips)
    except Exception as exc:
        logger.error(f"Choropleth build failed: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    if payload is None:
        raise HTTPException(status_code=404, detail=NO_MSA_DATA_DETAIL)

    return JSONResponse(
        content=payload,
        headers={"Cache-Control": f"public, max-age={settings.CHOROPLETH_CACHE_MAX_AGE}"},
    )


@router.get("/regions/{region_id}/metrics", response_model=TractMetricsResponse)
async def get_region_metrics(
    region_id: str,
    bedrooms: int = Query(settings.DEFAULT_BEDROOM_INDEX, ge=0, le=4),
    fallback_rents: Optional[List[float]] = Query(None),
    service: AffordabilityService = Depends(get_affordability_service),
):
    """
    Affordability and metro percentile for every tract of a region
    """
    if not region_id.isdigit():
        raise HTTPException(status_code=404, detail=f"Unknown region: {region_id}")

    metrics = service.region_metrics(region_id, bedroom_index=bedrooms, fallback_rents=fallback_rents)
    if metrics is None:
        raise HTTPException(status_code=404, detail=f"Unknown region: {region_id}")

    return TractMetricsResponse(
        region_id=region_id,
        bedrooms=bedrooms,
        tract_count=len(metrics),
        metrics=metrics,
    )
