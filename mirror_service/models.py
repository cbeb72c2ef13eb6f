"""
Catalog data models.

Pydantic models describe the documents written to ``catalog_data_dir``
(``operators.json``, ``catalog-info.json``, ``catalog-index.json``); dataclasses
carry the per-run fetch bookkeeping; ``CatalogIndex`` is the immutable
in-memory view served by the catalog cache.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


def normalize_version(version: str) -> str:
    """Return an OCP version in catalog tag form (``4.16`` -> ``v4.16``)."""
    version = (version or "").strip()
    if not version:
        return version
    return version if version.startswith("v") else f"v{version}"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC so they compare with aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CatalogKey(NamedTuple):
    """Composite key of one catalog image: source type and OCP version."""
    catalog_type: str
    ocp_version: str


class ChannelKey(NamedTuple):
    """Composite key of an operator's channel list inside one catalog."""
    operator: str
    catalog_type: str
    ocp_version: str


class OperatorEntry(BaseModel):
    """Canonical operator record produced by the catalog parser."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(description="Operator package name")
    default_channel: Optional[str] = Field(default=None, alias="defaultChannel")
    channels: List[str] = Field(default_factory=list, description="Channel names, version sorted")
    catalog: Optional[str] = Field(default=None, description="Catalog type the operator came from")
    ocp_version: Optional[str] = Field(default=None, alias="ocpVersion")
    catalog_url: Optional[str] = Field(default=None, alias="catalogUrl")


class CatalogInfo(BaseModel):
    """Per-catalog metadata written next to ``operators.json``."""
    catalog_type: str
    ocp_version: str
    catalog_url: str
    extracted_at: datetime
    operator_count: int = 0

    @property
    def key(self) -> CatalogKey:
        return CatalogKey(self.catalog_type, self.ocp_version)


class CatalogIndexDocument(BaseModel):
    """The master ``catalog-index.json`` written after each fetch run."""
    generated_at: datetime
    ocp_versions: List[str] = Field(default_factory=list)
    catalog_types: List[str] = Field(default_factory=list)
    catalogs: List[CatalogInfo] = Field(default_factory=list)
    summary: Dict[str, int] = Field(default_factory=dict)
    jobs: List[Dict[str, Any]] = Field(default_factory=list)


class JobOutcome(str, Enum):
    """Terminal result of one fetch job."""
    SKIPPED = "skipped"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class FetchJobDescriptor:
    """One (catalog type, OCP version) unit of work for a fetch run."""
    catalog_type: str
    ocp_version: str
    catalog_url: str
    last_extracted_at: Optional[datetime] = None
    attempts: int = 0
    outcome: Optional[JobOutcome] = None
    operator_count: int = 0
    error_message: Optional[str] = None

    @property
    def key(self) -> CatalogKey:
        return CatalogKey(self.catalog_type, self.ocp_version)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "catalog_type": self.catalog_type,
            "ocp_version": self.ocp_version,
            "catalog_url": self.catalog_url,
            "last_extracted_at": self.last_extracted_at.isoformat() if self.last_extracted_at else None,
            "attempts": self.attempts,
            "outcome": self.outcome.value if self.outcome else None,
            "operator_count": self.operator_count,
            "error_message": self.error_message,
        }


@dataclass
class FetchSummary:
    """Outcome counts for one orchestrator run."""
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    failed_jobs: List[CatalogKey] = field(default_factory=list)

    @classmethod
    def from_descriptors(cls, descriptors: Iterable[FetchJobDescriptor]) -> "FetchSummary":
        summary = cls()
        for descriptor in descriptors:
            summary.total += 1
            if descriptor.outcome is JobOutcome.SUCCESS:
                summary.success += 1
            elif descriptor.outcome is JobOutcome.SKIPPED:
                summary.skipped += 1
            else:
                # A job that never reported is counted as failed
                summary.failed += 1
                summary.failed_jobs.append(descriptor.key)
        return summary

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
        }


class CatalogIndex:
    """Read-only view of all fetched catalogs.

    Instances are never mutated after construction; a refresh builds a new
    index and swaps the reference.
    """

    def __init__(
        self,
        catalogs: Iterable[CatalogInfo] = (),
        operators: Optional[Mapping[CatalogKey, Iterable[OperatorEntry]]] = None,
        generated_at: Optional[datetime] = None,
    ):
        self._catalogs: Tuple[CatalogInfo, ...] = tuple(catalogs)
        frozen_operators: Dict[CatalogKey, Tuple[OperatorEntry, ...]] = {}
        channels: Dict[ChannelKey, Tuple[str, ...]] = {}
        for key, entries in (operators or {}).items():
            entries = tuple(entries)
            frozen_operators[key] = entries
            for entry in entries:
                channels[ChannelKey(entry.name, key.catalog_type, key.ocp_version)] = tuple(entry.channels)
        self._operators = MappingProxyType(frozen_operators)
        self._channels = MappingProxyType(channels)
        self.generated_at = generated_at

    @classmethod
    def empty(cls) -> "CatalogIndex":
        return cls()

    @property
    def catalogs(self) -> Tuple[CatalogInfo, ...]:
        return self._catalogs

    @property
    def keys(self) -> Tuple[CatalogKey, ...]:
        return tuple(self._operators.keys())

    def is_empty(self) -> bool:
        return not self._operators

    def operators_for(self, key: CatalogKey) -> Optional[Tuple[OperatorEntry, ...]]:
        """Operators for an exact key, or None when the key was never fetched."""
        return self._operators.get(key)

    def channels_for(self, key: ChannelKey) -> Optional[Tuple[str, ...]]:
        return self._channels.get(key)

    def find_operator(self, operator: str, catalog_type: Optional[str] = None,
                      ocp_version: Optional[str] = None) -> Optional[CatalogKey]:
        """First catalog (in index order) whose entry for *operator* lists channels.

        *catalog_type* and *ocp_version* narrow the search when given.
        """
        for key in self._operators:
            if catalog_type and key.catalog_type != catalog_type:
                continue
            if ocp_version and key.ocp_version != ocp_version:
                continue
            if self._channels.get(ChannelKey(operator, key.catalog_type, key.ocp_version)):
                return key
        return None

    def operator_count(self) -> int:
        return sum(len(entries) for entries in self._operators.values())
