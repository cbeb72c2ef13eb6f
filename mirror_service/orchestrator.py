"""
Catalog fetch orchestrator.

Builds the (OCP version x catalog type) job matrix, skips catalogs that were
extracted recently, runs the rest on a bounded worker pool and writes the
master ``catalog-index.json`` once every job has reported.
"""
import logging
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, Iterable, List, Optional

from tqdm import tqdm

from .index_store import CatalogIndexStore
from .job_runner import FetchJobRunner, utc_now
from .models import (
    CatalogIndexDocument,
    CatalogInfo,
    FetchJobDescriptor,
    FetchSummary,
    JobOutcome,
    as_utc,
    normalize_version,
)

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "registry.redhat.io/redhat"
DEFAULT_OCP_VERSIONS = ("4.16", "4.17", "4.18", "4.19", "4.20")
DEFAULT_CATALOG_TYPES = (
    "redhat-operator-index",
    "certified-operator-index",
    "community-operator-index",
)
DEFAULT_MAX_PARALLEL_JOBS = 3
DEFAULT_FRESHNESS = timedelta(hours=24)


def catalog_image(registry: str, catalog_type: str, ocp_version: str) -> str:
    """``registry.redhat.io/redhat/redhat-operator-index:v4.16``"""
    return f"{registry.rstrip('/')}/{catalog_type}:{normalize_version(ocp_version)}"


class CatalogFetchOrchestrator:
    """Runs one catalog fetch pass over the configured job matrix."""

    def __init__(
        self,
        store: CatalogIndexStore,
        runner: FetchJobRunner,
        ocp_versions: Iterable[str] = DEFAULT_OCP_VERSIONS,
        catalog_types: Iterable[str] = DEFAULT_CATALOG_TYPES,
        registry: str = DEFAULT_REGISTRY,
        max_parallel_jobs: int = DEFAULT_MAX_PARALLEL_JOBS,
        freshness: timedelta = DEFAULT_FRESHNESS,
        clock: Callable[[], datetime] = utc_now,
        poll_interval: float = 5.0,
        show_progress: bool = True,
    ):
        if max_parallel_jobs < 1:
            raise ValueError("max_parallel_jobs must be at least 1")
        self.store = store
        self.runner = runner
        self.ocp_versions = [normalize_version(v) for v in ocp_versions]
        self.catalog_types = list(catalog_types)
        self.registry = registry
        self.max_parallel_jobs = max_parallel_jobs
        self.freshness = freshness
        self.clock = clock
        self.poll_interval = poll_interval
        self.show_progress = show_progress

    def build_jobs(self) -> List[FetchJobDescriptor]:
        """One fresh descriptor per (version, type), in matrix order."""
        jobs = []
        for ocp_version in self.ocp_versions:
            for catalog_type in self.catalog_types:
                jobs.append(FetchJobDescriptor(
                    catalog_type=catalog_type,
                    ocp_version=ocp_version,
                    catalog_url=catalog_image(self.registry, catalog_type, ocp_version),
                    last_extracted_at=self.store.last_extracted_at(catalog_type, ocp_version),
                ))
        return jobs

    def is_fresh(self, descriptor: FetchJobDescriptor, now: datetime) -> bool:
        if descriptor.last_extracted_at is None or self.freshness <= timedelta(0):
            return False
        age = as_utc(now) - as_utc(descriptor.last_extracted_at)
        return age < self.freshness

    def run(self) -> FetchSummary:
        """Fetch every stale catalog and write the master index.

        Job failures are recorded on their descriptors and never abort the
        run; check ``FetchSummary.has_failures`` for the overall result.
        """
        jobs = self.build_jobs()
        now = self.clock()
        pending: List[FetchJobDescriptor] = []
        for descriptor in jobs:
            if self.is_fresh(descriptor, now):
                descriptor.outcome = JobOutcome.SKIPPED
                logger.info(
                    f"Skipping {descriptor.catalog_type} {descriptor.ocp_version} "
                    f"(extracted {descriptor.last_extracted_at.isoformat()}, still fresh)"
                )
            else:
                pending.append(descriptor)

        logger.info(
            f"Processing {len(pending)} of {len(jobs)} catalogs with up to "
            f"{self.max_parallel_jobs} parallel jobs..."
        )
        self._dispatch(pending)

        summary = FetchSummary.from_descriptors(jobs)
        self._write_master_index(jobs, summary)
        logger.info(
            f"Catalog fetch finished: {summary.success} succeeded, {summary.failed} failed, "
            f"{summary.skipped} skipped (total {summary.total})"
        )
        return summary

    def _dispatch(self, pending: List[FetchJobDescriptor]) -> None:
        """Keep at most ``max_parallel_jobs`` jobs submitted and unfinished."""
        if not pending:
            return

        queue: Deque[FetchJobDescriptor] = deque(pending)
        in_flight: Dict[Future, FetchJobDescriptor] = {}
        with ThreadPoolExecutor(max_workers=self.max_parallel_jobs, thread_name_prefix="catalog-fetch") as pool, \
                tqdm(total=len(pending), desc="Catalogs", disable=not self.show_progress) as progress:
            try:
                while queue or in_flight:
                    while queue and len(in_flight) < self.max_parallel_jobs:
                        descriptor = queue.popleft()
                        in_flight[pool.submit(self.runner.run, descriptor)] = descriptor

                    done, _ = wait(list(in_flight), timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                    for future in done:
                        descriptor = in_flight.pop(future)
                        self._collect(future, descriptor)
                        progress.update(1)
            except KeyboardInterrupt:
                logger.warning("🛑  Fetch interrupted by user. Cancelling remaining jobs...")
                queue.clear()
                for future in in_flight:
                    future.cancel()
                raise

    @staticmethod
    def _collect(future: Future, descriptor: FetchJobDescriptor) -> None:
        try:
            future.result()
        except Exception as exc:  # pylint: disable=broad-except
            descriptor.outcome = JobOutcome.FAILED
            descriptor.error_message = str(exc)
            logger.error(f"Job {descriptor.catalog_type} {descriptor.ocp_version} raised: {exc}")
        if descriptor.outcome is None:
            descriptor.outcome = JobOutcome.FAILED
            descriptor.error_message = descriptor.error_message or "Job finished without reporting an outcome"

    def _write_master_index(self, jobs: List[FetchJobDescriptor], summary: FetchSummary) -> None:
        catalogs: List[CatalogInfo] = []
        for descriptor in jobs:
            info = self.store.read_info(descriptor.catalog_type, descriptor.ocp_version)
            if info is not None:
                catalogs.append(info)

        document = CatalogIndexDocument(
            generated_at=self.clock(),
            ocp_versions=list(self.ocp_versions),
            catalog_types=list(self.catalog_types),
            catalogs=catalogs,
            summary=summary.to_dict(),
            jobs=[descriptor.to_dict() for descriptor in jobs],
        )
        self.store.write_master_index(document)
        logger.info(f"Master catalog index written to {self.store.index_path} ({len(catalogs)} catalogs)")


def build_orchestrator(
    data_dir,
    container_tool,
    retry_policy=None,
    authfile=None,
    cleanup_images: bool = True,
    freshness: Optional[timedelta] = None,
    **kwargs,
) -> CatalogFetchOrchestrator:
    """Wire a store, runner and orchestrator around *data_dir*."""
    store = CatalogIndexStore(data_dir)
    runner = FetchJobRunner(
        store,
        container_tool,
        retry_policy=retry_policy,
        authfile=authfile,
        cleanup_images=cleanup_images,
    )
    return CatalogFetchOrchestrator(
        store,
        runner,
        freshness=DEFAULT_FRESHNESS if freshness is None else freshness,
        **kwargs,
    )
