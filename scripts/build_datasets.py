#!/usr/bin/env python3
"""
Dataset Build Script

Builds the county, tract, ZIP and rent datasets from locally downloaded
source files and writes them under the data directory. Optionally mirrors
every document into the SQL dataset store.

Usage:
    python scripts/build_datasets.py \
        --delineation list1_2023.xlsx \
        --acs b19001_tracts.csv \
        --relationship tab20_zcta520_tract20_natl.txt \
        --safmr fy2026_safmrs.xlsx \
        --output-dir data [--sql]
"""

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pandas as pd

from config.settings import get_settings
from src.ingest.msa_datasets import (
    build_county_to_region,
    build_region_tracts,
    build_tract_to_zip,
    build_zip_rent_table,
    read_delineation,
    read_relationship_file,
    read_safmr_sheet,
    write_datasets,
)
from src.utils.blob_store import FileBlobStore, SqlBlobStore
from src.utils.logging import setup_logging

logger = setup_logging("build_datasets")
settings = get_settings()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build tract affordability datasets")
    parser.add_argument("--delineation", help="OMB CBSA delineation file (xlsx or csv)")
    parser.add_argument("--acs", help="ACS B19001 tract table (csv, Census API columns)")
    parser.add_argument("--relationship", help="Census ZCTA-to-tract relationship file (pipe-delimited)")
    parser.add_argument("--safmr", help="HUD Small Area FMR file (xlsx or csv)")
    parser.add_argument("--output-dir", default=settings.DATA_DIR, help="Dataset directory")
    parser.add_argument(
        "--min-households",
        type=int,
        default=settings.MIN_TRACT_HOUSEHOLDS,
        help="Drop tracts with fewer households",
    )
    parser.add_argument("--sql", action="store_true", help="Also load datasets into DATABASE_URL")
    return parser.parse_args(argv)


def publish_to_sql(output_dir: Path, written: list) -> int:
    from config.database import get_engine

    files = FileBlobStore(output_dir)
    sql_store = SqlBlobStore(get_engine())
    sql_store.create_table()

    for path in written:
        key = path.resolve().relative_to(files.root).with_suffix("").as_posix()
        sql_store.put(key, files.get(key))

    logger.info(f"Loaded {len(written)} datasets into {sql_store!r}")
    return len(written)


def main(argv=None) -> int:
    args = parse_args(argv)
    output_dir = Path(args.output_dir)

    county_to_region = None
    region_tracts = None
    tract_to_zip = None
    zip_rents = None

    try:
        if args.delineation:
            county_to_region = build_county_to_region(read_delineation(args.delineation))

        if args.acs:
            if county_to_region is None:
                logger.error("--acs requires --delineation to assign tracts to CBSAs")
                return 1
            acs = pd.read_csv(args.acs, dtype=str)
            region_tracts = build_region_tracts(acs, county_to_region, args.min_households)

        if args.relationship:
            tract_to_zip = build_tract_to_zip(read_relationship_file(args.relationship))

        if args.safmr:
            zip_rents = build_zip_rent_table(read_safmr_sheet(args.safmr))

        written = write_datasets(
            output_dir,
            county_to_region=county_to_region,
            region_tracts=region_tracts,
            tract_to_zip=tract_to_zip,
            zip_rents=zip_rents,
        )

        if not written:
            logger.warning("No inputs given, nothing built")
            return 1

        if args.sql:
            publish_to_sql(output_dir, written)

        logger.info(f"Wrote {len(written)} dataset files to {output_dir}")
        return 0

    except Exception as e:
        logger.error(f"Dataset build failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
