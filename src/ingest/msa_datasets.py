"""
Tract Affordability Atlas - Metro Dataset Builders

Materializes the read-only datasets the engine serves from:

- county-to-cbsa.json   county FIPS -> {code, name}   (OMB CBSA delineation)
- msa/{cbsa}.json        [[tractId, total, 16 bracket counts], ...]  (ACS B19001)
- tract-to-zip.json      tract FIPS -> primary ZCTA   (Census 2020 ZCTA-tract relationship)
- safmr-by-zip.json      ZIP -> [studio, 1BR, 2BR, 3BR, 4BR]  (HUD Small Area FMRs)

Inputs are local files already downloaded from the publishing agencies;
nothing here touches the network.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd

from config.settings import get_settings
from src.processing.brackets import B19001_VARIABLES
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

PathLike = Union[str, Path]

DELINEATION_HEADER_SCAN_ROWS = 10

# Census 2020 ZCTA-to-tract relationship file columns
REL_ZCTA_COL = "GEOID_ZCTA5_20"
REL_TRACT_COL = "GEOID_TRACT_20"
REL_AREA_COL = "AREALAND_PART"

# HUD SAFMR workbook: ZIP in column 0, then a rent every third column
SAFMR_ZIP_POSITION = 0
SAFMR_RENT_POSITIONS = (3, 6, 9, 12, 15)  # studio, 1BR, 2BR, 3BR, 4BR


def _read_table(path: PathLike, header: Optional[int] = 0, **kwargs) -> pd.DataFrame:
    path = Path(path)
    if path.suffix.lower() in {".xlsx", ".xls"}:
        return pd.read_excel(path, header=header, dtype=str, **kwargs)
    return pd.read_csv(path, header=header, dtype=str, **kwargs)


def _find_col(columns: List[str], needle: str) -> Optional[str]:
    for col in columns:
        if needle.lower() in str(col).lower():
            return col
    return None


def read_delineation(path: PathLike) -> pd.DataFrame:
    """
    Read an OMB CBSA delineation sheet.

    The published workbook has a few title rows above the real header, so
    the header is located by scanning for "CBSA Code".
    """
    raw = _read_table(path, header=None)

    header_idx = None
    for idx in range(min(len(raw), DELINEATION_HEADER_SCAN_ROWS)):
        if raw.iloc[idx].astype(str).str.contains("CBSA Code", regex=False).any():
            header_idx = idx
            break

    if header_idx is None:
        raise ValueError(f"Could not find header row in delineation file {path}")

    df = raw.iloc[header_idx + 1:].copy()
    df.columns = [str(c).strip() for c in raw.iloc[header_idx]]
    return df.reset_index(drop=True)


def build_county_to_region(delineation: pd.DataFrame) -> Dict[str, Dict[str, str]]:
    columns = list(delineation.columns)
    code_col = _find_col(columns, "CBSA Code")
    title_col = _find_col(columns, "CBSA Title")
    state_col = _find_col(columns, "FIPS State Code")
    county_col = _find_col(columns, "FIPS County Code")

    missing = [
        name
        for name, col in [
            ("CBSA Code", code_col),
            ("CBSA Title", title_col),
            ("FIPS State Code", state_col),
            ("FIPS County Code", county_col),
        ]
        if col is None
    ]
    if missing:
        raise ValueError(f"Delineation table missing columns: {', '.join(missing)}")

    df = pd.DataFrame({
        "code": delineation[code_col].fillna("").astype(str).str.strip(),
        "name": delineation[title_col].fillna("").astype(str).str.strip(),
        "state": delineation[state_col].fillna("").astype(str).str.strip().str.zfill(2),
        "county": delineation[county_col].fillna("").astype(str).str.strip().str.zfill(3),
    })
    df = df[(df["code"] != "") & (df["state"] != "00") & (df["county"] != "000")]

    mapping = {
        f"{row.state}{row.county}": {"code": row.code, "name": row.name}
        for row in df.itertuples(index=False)
    }

    logger.info(f"Parsed {len(mapping)} county -> CBSA mappings")
    return mapping


def build_region_tracts(
    acs: pd.DataFrame,
    county_to_region: Dict[str, Dict[str, str]],
    min_households: int = settings.MIN_TRACT_HOUSEHOLDS,
) -> Dict[str, List[List[Any]]]:
    """
    Group B19001 tract rows by CBSA.

    Args:
        acs: Census API shaped table with B19001_001E..B19001_017E and
             state/county/tract columns
        county_to_region: Output of build_county_to_region
        min_households: Tracts below this total are dropped as too noisy

    Returns:
        CBSA code -> list of [tractId, total, c0..c15]
    """
    missing = [c for c in B19001_VARIABLES + ["state", "county", "tract"] if c not in acs.columns]
    if missing:
        raise ValueError(f"ACS table missing columns: {', '.join(missing)}")

    df = acs.copy()
    numeric = df[B19001_VARIABLES].apply(pd.to_numeric, errors="coerce")
    total = numeric[B19001_VARIABLES[0]]
    counts = numeric[B19001_VARIABLES[1:]].fillna(0).astype(int)

    state = df["state"].astype(str).str.zfill(2)
    county = df["county"].astype(str).str.zfill(3)
    tract = df["tract"].astype(str).str.zfill(6)
    region = (state + county).map(lambda key: (county_to_region.get(key) or {}).get("code"))

    keep = total.notna() & (total >= min_households) & region.notna()
    dropped = int((~keep).sum())

    regions: Dict[str, List[List[Any]]] = {}
    for idx in np.flatnonzero(keep.to_numpy()):
        code = region.iloc[idx]
        row = [state.iloc[idx] + county.iloc[idx] + tract.iloc[idx], int(total.iloc[idx])]
        row.extend(int(v) for v in counts.iloc[idx])
        regions.setdefault(code, []).append(row)

    logger.info(
        f"Grouped {int(keep.sum())} tracts into {len(regions)} CBSAs "
        f"({dropped} dropped: outside any CBSA or under {min_households} households)"
    )
    return regions


def build_tract_to_zip(relationship: pd.DataFrame) -> Dict[str, str]:
    """
    Primary ZIP per tract: the ZCTA with the largest land-area overlap.
    Ties keep the first row in file order.
    """
    df = relationship[[REL_ZCTA_COL, REL_TRACT_COL, REL_AREA_COL]].copy()
    df[REL_ZCTA_COL] = df[REL_ZCTA_COL].fillna("").astype(str).str.strip()
    df[REL_TRACT_COL] = df[REL_TRACT_COL].fillna("").astype(str).str.strip()
    df[REL_AREA_COL] = pd.to_numeric(df[REL_AREA_COL], errors="coerce").fillna(0)

    df = df[(df[REL_ZCTA_COL].str.len() == 5) & (df[REL_TRACT_COL].str.len() == 11)]

    best = (
        df.sort_values(REL_AREA_COL, ascending=False, kind="mergesort")
        .drop_duplicates(subset=REL_TRACT_COL, keep="first")
    )

    mapping = dict(zip(best[REL_TRACT_COL], best[REL_ZCTA_COL]))
    logger.info(f"Mapped {len(mapping)} tracts to primary ZIPs from {len(df)} ZCTA-tract pairs")
    return mapping


def read_relationship_file(path: PathLike) -> pd.DataFrame:
    return pd.read_csv(path, sep="|", dtype=str)


def _rent_or_none(value: Any) -> Optional[float]:
    if value is None:
        return None
    rent = pd.to_numeric(value, errors="coerce")
    if pd.isna(rent):
        return None
    rent = float(rent)
    return int(rent) if rent.is_integer() else rent


def build_zip_rent_table(safmr: pd.DataFrame) -> Dict[str, List[Optional[float]]]:
    """
    ZIP -> five bedroom rents from the HUD SAFMR sheet (positional columns).
    Rows without a studio or 2BR rent are skipped.
    """
    table: Dict[str, List[Optional[float]]] = {}
    for row in safmr.itertuples(index=False):
        zip_code = str(row[SAFMR_ZIP_POSITION] if row[SAFMR_ZIP_POSITION] is not None else "").strip()
        zip_code = zip_code.split(".")[0].zfill(5)
        if len(zip_code) != 5 or not zip_code.isdigit():
            continue

        rents = [
            _rent_or_none(row[pos]) if pos < len(row) else None
            for pos in SAFMR_RENT_POSITIONS
        ]
        if rents[0] is None or rents[2] is None:
            continue

        table[zip_code] = rents

    logger.info(f"Parsed SAFMRs for {len(table)} ZIP codes")
    return table


def read_safmr_sheet(path: PathLike) -> pd.DataFrame:
    return _read_table(path, header=0)


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, separators=(",", ":"))
    path.write_text(text, encoding="utf-8")
    logger.info(f"Saved {path} ({len(text) / 1024 / 1024:.1f} MB)")


def write_datasets(
    output_dir: PathLike,
    county_to_region: Optional[Dict[str, Dict[str, str]]] = None,
    region_tracts: Optional[Dict[str, List[List[Any]]]] = None,
    tract_to_zip: Optional[Dict[str, str]] = None,
    zip_rents: Optional[Dict[str, List[Optional[float]]]] = None,
) -> List[Path]:
    """Write whichever datasets were built; returns the files written."""
    root = Path(output_dir)
    written: List[Path] = []

    if county_to_region is not None:
        path = root / f"{settings.COUNTY_TO_REGION_KEY}.json"
        _write_json(path, county_to_region)
        written.append(path)

    if region_tracts is not None:
        for code, rows in region_tracts.items():
            path = root / settings.REGION_TRACTS_PREFIX / f"{code}.json"
            _write_json(path, rows)
            written.append(path)

    if tract_to_zip is not None:
        path = root / f"{settings.TRACT_TO_ZIP_KEY}.json"
        _write_json(path, tract_to_zip)
        written.append(path)

    if zip_rents is not None:
        path = root / f"{settings.ZIP_RENTS_KEY}.json"
        _write_json(path, zip_rents)
        written.append(path)

    return written
