"""
Durable storage for fetched catalog data.

Layout below ``data_dir``::

    catalog-index.json                      master index of the last fetch run
    <catalog_type>/<ocp_version>/configs/   extracted /configs of the image
    <catalog_type>/<ocp_version>/operators.json
    <catalog_type>/<ocp_version>/catalog-info.json

All JSON documents are written to a temporary file and moved into place so
readers never see a partially written file.
"""
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .errors import CacheLoadError
from .models import CatalogIndex, CatalogIndexDocument, CatalogInfo, CatalogKey, OperatorEntry, as_utc

logger = logging.getLogger(__name__)

INDEX_FILE = "catalog-index.json"
OPERATORS_FILE = "operators.json"
INFO_FILE = "catalog-info.json"
CONFIGS_DIR = "configs"


def atomic_write_json(path: Path, data: Any) -> None:
    """Write *data* as JSON to *path* via a temp file in the same directory."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as exc:
        raise CacheLoadError(f"{path.name} not found", detail=str(path)) from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise CacheLoadError(f"{path.name} is unreadable: {exc}", detail=str(path)) from exc


class CatalogIndexStore:
    """Reads and writes the catalog data directory."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    @property
    def index_path(self) -> Path:
        return self.data_dir / INDEX_FILE

    def job_dir(self, catalog_type: str, ocp_version: str) -> Path:
        return self.data_dir / catalog_type / ocp_version

    def configs_dir(self, catalog_type: str, ocp_version: str) -> Path:
        return self.job_dir(catalog_type, ocp_version) / CONFIGS_DIR

    # ------------------------------------------------------------------
    # Per-catalog documents
    # ------------------------------------------------------------------

    def read_info(self, catalog_type: str, ocp_version: str) -> Optional[CatalogInfo]:
        """Return the stored ``catalog-info.json``, or None if absent or corrupt."""
        path = self.job_dir(catalog_type, ocp_version) / INFO_FILE
        if not path.exists():
            return None
        try:
            return CatalogInfo.model_validate(_read_json(path))
        except (CacheLoadError, PydanticValidationError) as exc:
            logger.warning(f"Ignoring unreadable {path}: {exc}")
            return None

    def last_extracted_at(self, catalog_type: str, ocp_version: str) -> Optional[datetime]:
        info = self.read_info(catalog_type, ocp_version)
        return as_utc(info.extracted_at) if info else None

    def read_operators(self, catalog_type: str, ocp_version: str) -> List[OperatorEntry]:
        path = self.job_dir(catalog_type, ocp_version) / OPERATORS_FILE
        data = _read_json(path)
        if not isinstance(data, list):
            raise CacheLoadError(f"{path.name} must contain a list", detail=str(path))
        try:
            return [OperatorEntry.model_validate(item) for item in data]
        except PydanticValidationError as exc:
            raise CacheLoadError(f"{path.name} has invalid entries: {exc}", detail=str(path)) from exc

    def write_job_output(self, info: CatalogInfo, entries: Iterable[OperatorEntry]) -> None:
        """Persist operators first, then the info file that marks the job fresh."""
        job_dir = self.job_dir(info.catalog_type, info.ocp_version)
        atomic_write_json(
            job_dir / OPERATORS_FILE,
            [entry.model_dump(mode="json", by_alias=True) for entry in entries],
        )
        atomic_write_json(job_dir / INFO_FILE, info.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Master index
    # ------------------------------------------------------------------

    def write_master_index(self, document: CatalogIndexDocument) -> None:
        atomic_write_json(self.index_path, document.model_dump(mode="json"))

    def read_master_index(self) -> CatalogIndexDocument:
        data = _read_json(self.index_path)
        try:
            return CatalogIndexDocument.model_validate(data)
        except PydanticValidationError as exc:
            raise CacheLoadError(f"{INDEX_FILE} is invalid: {exc}", detail=str(self.index_path)) from exc

    def load_index(self) -> CatalogIndex:
        """Build an in-memory ``CatalogIndex`` from the master index.

        A catalog whose operators file cannot be read is skipped with a warning.

        Raises:
            CacheLoadError: if the master index is missing or unreadable
        """
        document = self.read_master_index()
        operators: Dict[CatalogKey, List[OperatorEntry]] = {}
        catalogs: List[CatalogInfo] = []
        for info in document.catalogs:
            try:
                entries = self.read_operators(info.catalog_type, info.ocp_version)
            except CacheLoadError as exc:
                logger.warning(f"Could not load operators for {info.catalog_type}:{info.ocp_version}: {exc}")
                continue
            operators[info.key] = entries
            catalogs.append(info)
            logger.info(f"Loaded {len(entries)} operators for {info.catalog_type}:{info.ocp_version}")

        index = CatalogIndex(catalogs=catalogs, operators=operators, generated_at=document.generated_at)
        logger.info(f"Pre-fetched catalog data loaded with {index.operator_count()} total operators")
        return index
