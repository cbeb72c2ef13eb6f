# Catalog fetch pipeline and shared models for the oc-mirror web backend

from .errors import (
    MirrorWebError,
    NotFound,
    ValidationError,
    OperationLimitReached,
    ProcessSpawnError,
    ExternalToolFailure,
    CacheLoadError,
    FetchJobError,
    ParseError,
)
from .models import (
    CatalogIndex,
    CatalogInfo,
    CatalogKey,
    ChannelKey,
    FetchJobDescriptor,
    FetchSummary,
    JobOutcome,
    OperatorEntry,
    normalize_version,
)
from .retry import RetryPolicy
from .catalog_parser import CatalogParser, ParseResult
from .container import ContainerTool, ContainerToolError
from .index_store import CatalogIndexStore
from .job_runner import FetchJobRunner
from .orchestrator import CatalogFetchOrchestrator, build_orchestrator

__all__ = [
    # Errors
    'MirrorWebError',
    'NotFound',
    'ValidationError',
    'OperationLimitReached',
    'ProcessSpawnError',
    'ExternalToolFailure',
    'CacheLoadError',
    'FetchJobError',
    'ParseError',

    # Models
    'CatalogIndex',
    'CatalogInfo',
    'CatalogKey',
    'ChannelKey',
    'FetchJobDescriptor',
    'FetchSummary',
    'JobOutcome',
    'OperatorEntry',
    'normalize_version',

    # Pipeline
    'RetryPolicy',
    'CatalogParser',
    'ParseResult',
    'ContainerTool',
    'ContainerToolError',
    'CatalogIndexStore',
    'FetchJobRunner',
    'CatalogFetchOrchestrator',
    'build_orchestrator',
]
