"""
Tract Affordability Atlas - Dataset Blob Stores
Read-only keyed access to the prebuilt JSON datasets

Keys are slash-separated names without extension, e.g. ``"msa/31080"`` or
``"county-to-cbsa"``. A store returns the parsed JSON document, or None when
the key is unknown or the document cannot be read. Failures never raise:
absence is a normal outcome for the engine.
"""

import json
from pathlib import Path
from typing import Any, Optional, Protocol, Union

from sqlalchemy import Column, MetaData, String, Table, Text, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.utils.logging import get_logger

logger = get_logger(__name__)

metadata = MetaData()

dataset_blobs = Table(
    "dataset_blobs",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("payload", Text, nullable=False),
)


class BlobStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...


class FileBlobStore:
    """JSON documents on disk: ``{root}/{key}.json``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def _path_for(self, key: str) -> Optional[Path]:
        path = (self.root / f"{key}.json").resolve()
        if self.root not in path.parents:
            logger.warning(f"Rejected dataset key outside data root: {key!r}")
            return None
        return path

    def get(self, key: str) -> Optional[Any]:
        path = self._path_for(key)
        if path is None or not path.is_file():
            logger.debug(f"Dataset not found: {key}")
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read dataset {path}: {e}")
            return None

    def __repr__(self) -> str:
        return f"FileBlobStore(root={str(self.root)!r})"


class SqlBlobStore:
    """JSON documents in a ``dataset_blobs`` table."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_table(self) -> None:
        metadata.create_all(self.engine, tables=[dataset_blobs])

    def get(self, key: str) -> Optional[Any]:
        try:
            with self.engine.connect() as conn:
                payload = conn.execute(
                    select(dataset_blobs.c.payload).where(dataset_blobs.c.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to load dataset {key} from database: {e}")
            return None

        if payload is None:
            logger.debug(f"Dataset not found: {key}")
            return None

        try:
            return json.loads(payload)
        except ValueError as e:
            logger.warning(f"Stored dataset {key} is not valid JSON: {e}")
            return None

    def put(self, key: str, document: Any) -> None:
        payload = json.dumps(document, separators=(",", ":"))
        with self.engine.begin() as conn:
            conn.execute(dataset_blobs.delete().where(dataset_blobs.c.key == key))
            conn.execute(dataset_blobs.insert().values(key=key, payload=payload))

    def __repr__(self) -> str:
        return f"SqlBlobStore(url={self.engine.url!r})"
