"""
Tract Affordability Atlas - Static Lookup Tables

Three build-time mappings, read until found and then shared read-only:

- county-to-cbsa: 5-digit county FIPS -> {"code": CBSA code, "name": CBSA title}
- tract-to-zip:   11-digit tract FIPS -> primary ZIP (largest land overlap)
- safmr-by-zip:   ZIP -> [studio, 1BR, 2BR, 3BR, 4BR] Small Area FMRs
"""

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from config.settings import get_settings
from src.utils.blob_store import BlobStore
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class RegionRef:
    region_id: str
    region_name: str


def _as_mapping(document: Any, key: str) -> Dict[str, Any]:
    if document is None:
        logger.warning(f"Lookup table {key} not found, using empty mapping")
        return {}
    if not isinstance(document, dict):
        logger.warning(f"Lookup table {key} is not a JSON object, using empty mapping")
        return {}
    return document


def _parse_county_to_region(raw: Dict[str, Any]) -> Dict[str, RegionRef]:
    mapping = {}
    for county, info in raw.items():
        if not isinstance(info, dict) or not info.get("code"):
            continue
        mapping[str(county)] = RegionRef(region_id=str(info["code"]), region_name=str(info.get("name", "")))
    return mapping


class StaticLookups:
    def __init__(
        self,
        store: BlobStore,
        county_to_region_key: str = settings.COUNTY_TO_REGION_KEY,
        tract_to_zip_key: str = settings.TRACT_TO_ZIP_KEY,
        zip_rents_key: str = settings.ZIP_RENTS_KEY,
    ):
        self._store = store
        self._keys = (county_to_region_key, tract_to_zip_key, zip_rents_key)
        self._lock = threading.Lock()
        self._loaded_keys: Set[str] = set()

        self._county_to_region: Mapping[str, RegionRef] = MappingProxyType({})
        self._region_names: Mapping[str, str] = MappingProxyType({})
        self._tract_to_zip: Mapping[str, str] = MappingProxyType({})
        self._zip_rents: Mapping[str, List[Optional[float]]] = MappingProxyType({})

    def _read(self, key: str) -> Tuple[Dict[str, Any], bool]:
        document = self._store.get(key)
        return _as_mapping(document, key), document is not None

    def load(self) -> "StaticLookups":
        """
        Read any table not loaded yet.

        A table whose read returned nothing stays empty and is retried on the
        next access; once a document has been read it is never read again.
        """
        if len(self._loaded_keys) == len(self._keys):
            return self

        with self._lock:
            county_key, tract_key, rents_key = self._keys

            if county_key not in self._loaded_keys:
                raw, found = self._read(county_key)
                county_to_region = _parse_county_to_region(raw)
                self._county_to_region = MappingProxyType(county_to_region)
                self._region_names = MappingProxyType(
                    {ref.region_id: ref.region_name for ref in county_to_region.values()}
                )
                if found:
                    self._loaded_keys.add(county_key)
                    logger.info(f"Loaded {len(county_to_region)} county -> region mappings")

            if tract_key not in self._loaded_keys:
                tract_to_zip, found = self._read(tract_key)
                self._tract_to_zip = MappingProxyType(tract_to_zip)
                if found:
                    self._loaded_keys.add(tract_key)
                    logger.info(f"Loaded {len(tract_to_zip)} tract -> ZIP mappings")

            if rents_key not in self._loaded_keys:
                zip_rents, found = self._read(rents_key)
                self._zip_rents = MappingProxyType(zip_rents)
                if found:
                    self._loaded_keys.add(rents_key)
                    logger.info(f"Loaded {len(zip_rents)} ZIP rent rows")

        return self

    @property
    def county_to_region(self) -> Mapping[str, RegionRef]:
        return self.load()._county_to_region

    @property
    def tract_to_zip(self) -> Mapping[str, str]:
        return self.load()._tract_to_zip

    @property
    def zip_rents(self) -> Mapping[str, List[Optional[float]]]:
        return self.load()._zip_rents

    def resolve_region(self, state_fips: str, county_fips: str) -> Optional[RegionRef]:
        return self.county_to_region.get(f"{state_fips}{county_fips}")

    def region_name(self, region_id: str) -> Optional[str]:
        return self.load()._region_names.get(region_id)

    def zip_rents_for_tract(self, tract_id: str) -> Optional[List[Optional[float]]]:
        zip_code = self.tract_to_zip.get(tract_id)
        if not zip_code:
            return None
        return self.zip_rents.get(zip_code)
