"""
Fetch job runner: pull one catalog image, extract ``/configs``, parse it and
persist the result. Every failure is caught here and recorded on the job
descriptor so sibling jobs are never affected.
"""
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .catalog_parser import CatalogParser
from .container import ContainerTool, ContainerToolError
from .errors import FetchJobError, ParseError
from .index_store import CatalogIndexStore
from .models import CatalogInfo, FetchJobDescriptor, JobOutcome
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

CONFIGS_PATH_IN_IMAGE = "/configs"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FetchJobRunner:
    """Executes a single ``FetchJobDescriptor``."""

    def __init__(
        self,
        store: CatalogIndexStore,
        container_tool: ContainerTool,
        parser: Optional[CatalogParser] = None,
        retry_policy: Optional[RetryPolicy] = None,
        authfile: Optional[Path] = None,
        cleanup_images: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.container_tool = container_tool
        self.parser = parser or CatalogParser()
        self.retry_policy = retry_policy or RetryPolicy(retry_on=(ContainerToolError,))
        self.authfile = authfile
        self.cleanup_images = cleanup_images
        self.clock = clock

    def run(self, descriptor: FetchJobDescriptor) -> FetchJobDescriptor:
        """Run the job and set ``outcome`` to success or failed."""
        logger.info(f"Fetching {descriptor.catalog_type} for OCP {descriptor.ocp_version}...")
        try:
            self._execute(descriptor)
        except FetchJobError as exc:
            descriptor.outcome = JobOutcome.FAILED
            descriptor.error_message = f"{exc.message}: {exc.detail}" if exc.detail else exc.message
            logger.error(f"❌ {descriptor.catalog_type} {descriptor.ocp_version}: {descriptor.error_message}")
        except Exception as exc:  # pylint: disable=broad-except
            descriptor.outcome = JobOutcome.FAILED
            descriptor.error_message = f"Unexpected error: {exc}"
            logger.exception(f"❌ {descriptor.catalog_type} {descriptor.ocp_version} crashed")
        else:
            descriptor.outcome = JobOutcome.SUCCESS
            logger.info(
                f"✅ Processed {descriptor.operator_count} operators for "
                f"{descriptor.catalog_type} {descriptor.ocp_version}"
            )
        return descriptor

    def _pull(self, descriptor: FetchJobDescriptor) -> None:
        def attempt():
            descriptor.attempts += 1
            logger.info(f"Attempt {descriptor.attempts}: Pulling {descriptor.catalog_url}...")
            self.container_tool.pull(descriptor.catalog_url, self.authfile)

        try:
            self.retry_policy.call(attempt)
        except ContainerToolError as exc:
            raise FetchJobError(
                f"Failed to pull {descriptor.catalog_url} after {descriptor.attempts} attempts",
                detail=str(exc),
            ) from exc

    def _extract(self, descriptor: FetchJobDescriptor) -> Path:
        job_dir = self.store.job_dir(descriptor.catalog_type, descriptor.ocp_version)
        configs_dir = self.store.configs_dir(descriptor.catalog_type, descriptor.ocp_version)
        if configs_dir.exists():
            shutil.rmtree(configs_dir)
        job_dir.mkdir(parents=True, exist_ok=True)

        container = None
        try:
            container = self.container_tool.create_container(descriptor.catalog_url)
            self.container_tool.copy_from(container, CONFIGS_PATH_IN_IMAGE, job_dir)
        except ContainerToolError as exc:
            raise FetchJobError(
                f"Failed to extract catalog data from {descriptor.catalog_url}", detail=str(exc)
            ) from exc
        finally:
            if container:
                self.container_tool.remove_container(container)
            if self.cleanup_images:
                logger.info(f"Removing image to save disk space: {descriptor.catalog_url}")
                self.container_tool.remove_image(descriptor.catalog_url)
        return configs_dir

    def _execute(self, descriptor: FetchJobDescriptor) -> None:
        self._pull(descriptor)
        configs_dir = self._extract(descriptor)

        try:
            result = self.parser.parse_configs_dir(
                configs_dir, descriptor.catalog_type, descriptor.ocp_version, descriptor.catalog_url
            )
        except ParseError as exc:
            raise FetchJobError(f"Failed to parse {descriptor.catalog_url}", detail=exc.message) from exc

        if result.errors:
            logger.warning(
                f"{len(result.errors)} operator(s) skipped in {descriptor.catalog_type} {descriptor.ocp_version}"
            )

        info = CatalogInfo(
            catalog_type=descriptor.catalog_type,
            ocp_version=descriptor.ocp_version,
            catalog_url=descriptor.catalog_url,
            extracted_at=self.clock(),
            operator_count=len(result.entries),
        )
        self.store.write_job_output(info, result.entries)
        descriptor.operator_count = info.operator_count
        descriptor.last_extracted_at = info.extracted_at
