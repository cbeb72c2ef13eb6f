"""
fetch_catalogs_service.py
=========================
Batch *service* that pre-fetches operator catalogs for the web backend:

* ``mirror_service.orchestrator`` – job matrix, freshness skip, bounded dispatch
* ``mirror_service.job_runner`` – pull, extract ``/configs``, parse, persist
* ``mirror_service.container`` – podman/docker command wrapper
* ``mirror_service.catalog_parser`` – operator/channel normalization
* ``mirror_service.index_store`` – ``catalog-data`` layout and master index

Every OCP version is combined with every catalog type (5 x 3 = 15 jobs by
default). Catalogs extracted within the freshness window are skipped. The
process exits with status 1 when any job failed.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import List

from config_manager import get_catalog_fetch_config, get_paths_config
from mirror_service.container import ContainerTool, ContainerToolError
from mirror_service.logging_config import setup_logging, stop_logging
from mirror_service.orchestrator import build_orchestrator
from mirror_service.retry import RetryPolicy

__version__ = "1.0.0"
_LOG = logging.getLogger("fetch_catalogs_service")


def _parse_args(argv: List[str] | None = None) -> argparse.Namespace:  # noqa: D401
    fetch_config = get_catalog_fetch_config()
    paths_config = get_paths_config()
    p = argparse.ArgumentParser(
        description="Pre-fetch operator catalogs for every configured OCP version and catalog type, "
                    "extract operator and channel data, and write catalog-index.json.",
        epilog="""
Examples:
  Fetch with defaults (3 parallel jobs, skip catalogs younger than 24 hours):
    %(prog)s

  Re-fetch everything with 5 parallel jobs and keep the pulled images:
    %(prog)s --force --parallel 5 --no-cleanup-images
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument(
        "--parallel",
        type=int,
        default=fetch_config.max_parallel_jobs,
        help=f"Maximum number of concurrent fetch jobs (default: {fetch_config.max_parallel_jobs})",
    )
    p.add_argument(
        "--freshness-hours",
        dest="freshness_hours",
        type=float,
        default=fetch_config.freshness_hours,
        help=f"Skip catalogs extracted less than this many hours ago (default: {fetch_config.freshness_hours:g})",
    )
    p.add_argument(
        "--force",
        action="store_true",
        help="Ignore freshness and fetch every catalog.",
    )
    p.add_argument(
        "--no-cleanup-images",
        dest="cleanup_images",
        action="store_false",
        default=fetch_config.cleanup_images,
        help="Keep pulled catalog images instead of removing them after extraction.",
    )
    p.add_argument(
        "--output-dir",
        dest="output_dir",
        type=Path,
        default=Path(paths_config.catalog_data_dir),
        help="Catalog data directory (default: %(default)s)",
    )
    p.add_argument(
        "--authfile",
        type=Path,
        default=Path(fetch_config.authfile) if fetch_config.authfile else None,
        help="Registry pull secret used for authenticated pulls.",
    )
    p.add_argument("--debug", action="store_true", help="Verbose logging")
    args = p.parse_args(argv)
    if args.parallel < 1:
        p.error("--parallel must be at least 1")
    return args


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: List[str] | None = None) -> int:  # noqa: D401
    args = _parse_args(argv)
    setup_logging(args.debug)
    fetch_config = get_catalog_fetch_config()

    _LOG.info("🚀  fetch_catalogs_service %s", __version__)

    container_tool = ContainerTool(fetch_config.container_tool)
    if not container_tool.is_available():
        _LOG.error("%s is not installed or not on PATH", fetch_config.container_tool)
        return 1

    freshness = timedelta(0) if args.force else timedelta(hours=args.freshness_hours)
    orchestrator = build_orchestrator(
        args.output_dir,
        container_tool,
        retry_policy=RetryPolicy(
            max_attempts=fetch_config.max_retries,
            delay_seconds=fetch_config.retry_delay_seconds,
            retry_on=(ContainerToolError,),
        ),
        authfile=args.authfile,
        cleanup_images=args.cleanup_images,
        freshness=freshness,
        ocp_versions=fetch_config.ocp_versions,
        catalog_types=fetch_config.catalog_types,
        registry=fetch_config.registry,
        max_parallel_jobs=args.parallel,
    )

    summary = orchestrator.run()

    _LOG.info("📊  Catalog fetch summary:")
    _LOG.info("   Total catalogs: %d", summary.total)
    _LOG.info("   Successful: %d", summary.success)
    _LOG.info("   Failed: %d", summary.failed)
    _LOG.info("   Skipped (fresh): %d", summary.skipped)
    for key in summary.failed_jobs:
        _LOG.warning("   ❌ %s %s", key.catalog_type, key.ocp_version)

    if summary.has_failures:
        _LOG.error("Some catalogs failed to fetch. Check the logs for details.")
        return 1

    _LOG.info("✨  All done!")
    return 0


if __name__ == "__main__":  # pragma: no cover
    try:
        exit_code = main()
    except KeyboardInterrupt:
        _LOG.info("🛑  Process interrupted by user. Cleaning up...")
        stop_logging()
        sys.exit(130)  # Standard exit code for SIGINT
    except Exception as e:
        _LOG.error("💥  Fatal error: %s", e)
        stop_logging()
        sys.exit(1)
    stop_logging()
    sys.exit(exit_code)
