"""
Tests for the catalog fetch pipeline: container wrapper, job runner,
orchestrator and the fetch_catalogs_service entry point.
"""

import json
import subprocess
import threading
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

import fetch_catalogs_service
from mirror_service.container import ContainerTool, ContainerToolError
from mirror_service.index_store import CatalogIndexStore
from mirror_service.job_runner import FetchJobRunner
from mirror_service.models import (
    CatalogInfo,
    CatalogKey,
    FetchJobDescriptor,
    FetchSummary,
    JobOutcome,
)
from mirror_service.orchestrator import CatalogFetchOrchestrator, catalog_image
from mirror_service.retry import RetryPolicy

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeContainerTool:
    """In-memory stand-in for podman that writes a small configs tree on copy."""

    def __init__(self, operators=("etcd", "kiali"), pull_failures=None, copy_fails=False, delay=0.0,
                 barrier=None):
        self.operators = operators
        self.barrier = barrier
        self.pull_failures = dict(pull_failures or {})
        self.copy_fails = copy_fails
        self.delay = delay
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.pulls = []
        self.containers = {}
        self.removed_containers = []
        self.removed_images = []

    def is_available(self):
        return True

    def pull(self, image, authfile=None):
        with self.lock:
            self.pulls.append(image)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            remaining = self.pull_failures.get(image, 0)
            if remaining:
                self.pull_failures[image] = remaining - 1
        try:
            if self.barrier is not None:
                # Only returns once enough pulls are in flight together
                self.barrier.wait(timeout=5)
            if self.delay:
                time.sleep(self.delay)
            if remaining:
                raise ContainerToolError(["podman", "pull", image], 125, "Error: unauthorized")
        finally:
            with self.lock:
                self.active -= 1

    def create_container(self, image, name=None):
        with self.lock:
            name = name or f"ctr-{len(self.containers)}"
            self.containers[name] = image
        return name

    def copy_from(self, container, source, destination):
        if self.copy_fails:
            raise ContainerToolError(["podman", "cp"], 125, "Error: no such path /configs")
        configs = destination / "configs"
        for operator in self.operators:
            op_dir = configs / operator
            op_dir.mkdir(parents=True, exist_ok=True)
            documents = [
                {"schema": "olm.package", "name": operator, "defaultChannel": "stable"},
                {"schema": "olm.channel", "package": operator, "name": "stable"},
            ]
            (op_dir / "catalog.json").write_text("\n".join(json.dumps(d) for d in documents), encoding="utf-8")

    def remove_container(self, container):
        self.removed_containers.append(container)

    def remove_image(self, image):
        self.removed_images.append(image)


def no_sleep_policy(max_attempts=3):
    return RetryPolicy(max_attempts=max_attempts, delay_seconds=0, retry_on=(ContainerToolError,),
                       sleep=lambda _: None)


def make_descriptor(catalog_type="redhat-operator-index", ocp_version="v4.18"):
    return FetchJobDescriptor(
        catalog_type=catalog_type,
        ocp_version=ocp_version,
        catalog_url=catalog_image("registry.example.com/redhat", catalog_type, ocp_version),
    )


def make_orchestrator(tmp_path, tool, **kwargs):
    store = CatalogIndexStore(tmp_path / "catalog-data")
    runner = FetchJobRunner(store, tool, retry_policy=no_sleep_policy(), clock=lambda: NOW)
    options = {
        "ocp_versions": ["4.18", "4.19"],
        "catalog_types": ["redhat-operator-index", "community-operator-index"],
        "registry": "registry.example.com/redhat",
        "max_parallel_jobs": 2,
        "clock": lambda: NOW,
        "poll_interval": 0.01,
        "show_progress": False,
    }
    options.update(kwargs)
    return store, CatalogFetchOrchestrator(store, runner, **options)


class TestContainerTool:
    """Test the podman command wrapper with a mocked subprocess."""

    def test_pull_with_authfile(self, tmp_path):
        authfile = tmp_path / "auth.json"
        authfile.write_text("{}", encoding="utf-8")
        completed = subprocess.CompletedProcess([], 0, stdout="ok", stderr="")

        with patch("mirror_service.container.subprocess.run", return_value=completed) as mock_run:
            ContainerTool("podman").pull("quay.io/x:v1", authfile)

        command = mock_run.call_args[0][0]
        assert command == ["podman", "pull", "--authfile", str(authfile), "quay.io/x:v1"]

    def test_pull_without_authfile_skips_tls_verification(self):
        completed = subprocess.CompletedProcess([], 0, stdout="", stderr="")

        with patch("mirror_service.container.subprocess.run", return_value=completed) as mock_run:
            ContainerTool("podman").pull("quay.io/x:v1")

        assert "--tls-verify=false" in mock_run.call_args[0][0]

    def test_non_zero_exit_raises(self):
        completed = subprocess.CompletedProcess([], 125, stdout="", stderr="Error: manifest unknown\n")

        with patch("mirror_service.container.subprocess.run", return_value=completed):
            with pytest.raises(ContainerToolError) as exc_info:
                ContainerTool("podman").pull("quay.io/x:v1")

        assert exc_info.value.return_code == 125
        assert "manifest unknown" in str(exc_info.value)

    def test_timeout_raises(self):
        with patch("mirror_service.container.subprocess.run",
                   side_effect=subprocess.TimeoutExpired(["podman"], 5)):
            with pytest.raises(ContainerToolError, match="timed out"):
                ContainerTool("podman", timeout=5).pull("quay.io/x:v1")

    def test_cleanup_failures_are_tolerated(self):
        completed = subprocess.CompletedProcess([], 1, stdout="", stderr="Error: image in use")

        with patch("mirror_service.container.subprocess.run", return_value=completed):
            ContainerTool("podman").remove_image("quay.io/x:v1")
            ContainerTool("podman").remove_container("ctr")


class TestFetchJobRunner:
    """Test a single fetch job."""

    def test_successful_job(self, tmp_path):
        store = CatalogIndexStore(tmp_path)
        tool = FakeContainerTool()
        runner = FetchJobRunner(store, tool, retry_policy=no_sleep_policy(), clock=lambda: NOW)
        descriptor = make_descriptor()

        runner.run(descriptor)

        assert descriptor.outcome is JobOutcome.SUCCESS
        assert descriptor.attempts == 1
        assert descriptor.operator_count == 2
        assert descriptor.last_extracted_at == NOW
        assert [e.name for e in store.read_operators("redhat-operator-index", "v4.18")] == ["etcd", "kiali"]
        assert store.last_extracted_at("redhat-operator-index", "v4.18") == NOW
        assert tool.removed_containers == ["ctr-0"]
        assert tool.removed_images == [descriptor.catalog_url]

    def test_pull_retried_then_succeeds(self, tmp_path):
        descriptor = make_descriptor()
        tool = FakeContainerTool(pull_failures={descriptor.catalog_url: 2})
        runner = FetchJobRunner(CatalogIndexStore(tmp_path), tool, retry_policy=no_sleep_policy())

        runner.run(descriptor)

        assert descriptor.outcome is JobOutcome.SUCCESS
        assert descriptor.attempts == 3

    def test_pull_failure_after_all_attempts(self, tmp_path):
        descriptor = make_descriptor()
        tool = FakeContainerTool(pull_failures={descriptor.catalog_url: 10})
        store = CatalogIndexStore(tmp_path)
        runner = FetchJobRunner(store, tool, retry_policy=no_sleep_policy())

        runner.run(descriptor)

        assert descriptor.outcome is JobOutcome.FAILED
        assert descriptor.attempts == 3
        assert "after 3 attempts" in descriptor.error_message
        assert store.read_info("redhat-operator-index", "v4.18") is None

    def test_extract_failure_removes_container(self, tmp_path):
        tool = FakeContainerTool(copy_fails=True)
        runner = FetchJobRunner(CatalogIndexStore(tmp_path), tool, retry_policy=no_sleep_policy(),
                                cleanup_images=False)
        descriptor = make_descriptor()

        runner.run(descriptor)

        assert descriptor.outcome is JobOutcome.FAILED
        assert "extract" in descriptor.error_message
        assert tool.removed_containers == ["ctr-0"]
        assert tool.removed_images == []

    def test_stale_configs_replaced(self, tmp_path):
        store = CatalogIndexStore(tmp_path)
        stale = store.configs_dir("redhat-operator-index", "v4.18") / "removed-operator"
        stale.mkdir(parents=True)
        (stale / "package.json").write_text('{"name": "removed-operator"}', encoding="utf-8")
        runner = FetchJobRunner(store, FakeContainerTool(), retry_policy=no_sleep_policy())
        descriptor = make_descriptor()

        runner.run(descriptor)

        assert not stale.exists()
        assert descriptor.operator_count == 2


class TestCatalogFetchOrchestrator:
    """Test job matrix, freshness and bounded dispatch."""

    def test_catalog_image(self):
        assert catalog_image("registry.redhat.io/redhat/", "redhat-operator-index", "4.16") == \
            "registry.redhat.io/redhat/redhat-operator-index:v4.16"

    def test_default_matrix(self, tmp_path):
        store = CatalogIndexStore(tmp_path)
        orchestrator = CatalogFetchOrchestrator(store, MagicMock())

        jobs = orchestrator.build_jobs()

        assert len(jobs) == 15
        assert jobs[0].key == CatalogKey("redhat-operator-index", "v4.16")
        assert len({job.key for job in jobs}) == 15

    def test_all_jobs_run_and_index_written(self, tmp_path):
        tool = FakeContainerTool()
        store, orchestrator = make_orchestrator(tmp_path, tool)

        summary = orchestrator.run()

        assert summary.total == 4
        assert summary.success == 4
        assert summary.failed == summary.skipped == 0
        document = store.read_master_index()
        assert document.summary == {"total": 4, "success": 4, "failed": 0, "skipped": 0}
        assert len(document.catalogs) == 4
        assert document.ocp_versions == ["v4.18", "v4.19"]
        assert store.load_index().operator_count() == 8

    def test_fresh_catalog_skipped_without_pull(self, tmp_path):
        tool = FakeContainerTool()
        store, orchestrator = make_orchestrator(tmp_path, tool)
        store.write_job_output(
            CatalogInfo(catalog_type="redhat-operator-index", ocp_version="v4.18",
                        catalog_url="x", extracted_at=NOW - timedelta(hours=1)),
            [],
        )

        summary = orchestrator.run()

        assert summary.skipped == 1
        assert summary.success == 3
        assert "registry.example.com/redhat/redhat-operator-index:v4.18" not in tool.pulls
        # Skipped catalogs keep their previous data in the index
        assert len(store.read_master_index().catalogs) == 4

    def test_stale_catalog_fetched_again(self, tmp_path):
        tool = FakeContainerTool()
        store, orchestrator = make_orchestrator(tmp_path, tool)
        store.write_job_output(
            CatalogInfo(catalog_type="redhat-operator-index", ocp_version="v4.18",
                        catalog_url="x", extracted_at=NOW - timedelta(hours=30)),
            [],
        )

        summary = orchestrator.run()

        assert summary.skipped == 0
        assert len(tool.pulls) == 4

    def test_zero_freshness_forces_fetch(self, tmp_path):
        tool = FakeContainerTool()
        store, orchestrator = make_orchestrator(tmp_path, tool, freshness=timedelta(0))
        store.write_job_output(
            CatalogInfo(catalog_type="redhat-operator-index", ocp_version="v4.18",
                        catalog_url="x", extracted_at=NOW),
            [],
        )

        assert orchestrator.run().skipped == 0

    def test_failed_job_does_not_affect_others(self, tmp_path):
        failing = "registry.example.com/redhat/community-operator-index:v4.19"
        tool = FakeContainerTool(pull_failures={failing: 99})
        store, orchestrator = make_orchestrator(tmp_path, tool)

        summary = orchestrator.run()

        assert summary.success == 3
        assert summary.failed == 1
        assert summary.failed_jobs == [CatalogKey("community-operator-index", "v4.19")]
        assert summary.success + summary.failed + summary.skipped == summary.total
        jobs = {(j["catalog_type"], j["ocp_version"]): j for j in store.read_master_index().jobs}
        assert jobs[("community-operator-index", "v4.19")]["outcome"] == "failed"
        assert jobs[("community-operator-index", "v4.19")]["attempts"] == 3

    def test_parallelism_reaches_limit_and_no_further(self, tmp_path):
        tool = FakeContainerTool(delay=0.05, barrier=threading.Barrier(2))
        _, orchestrator = make_orchestrator(
            tmp_path, tool,
            ocp_versions=["4.16", "4.17", "4.18"],
            max_parallel_jobs=2,
        )

        summary = orchestrator.run()

        assert summary.success == 6
        assert tool.max_active == 2

    def test_runner_crash_counted_as_failure(self, tmp_path):
        class CrashingRunner(FetchJobRunner):
            def run(self, descriptor):
                if descriptor.catalog_type == "community-operator-index":
                    raise RuntimeError("boom")
                return super().run(descriptor)

        store = CatalogIndexStore(tmp_path)
        runner = CrashingRunner(store, FakeContainerTool(), retry_policy=no_sleep_policy())
        orchestrator = CatalogFetchOrchestrator(
            store, runner,
            ocp_versions=["4.18"],
            catalog_types=["redhat-operator-index", "community-operator-index"],
            poll_interval=0.01,
            show_progress=False,
        )

        summary = orchestrator.run()

        assert summary.success == 1
        assert summary.failed == 1

    def test_invalid_parallelism(self, tmp_path):
        with pytest.raises(ValueError):
            CatalogFetchOrchestrator(CatalogIndexStore(tmp_path), MagicMock(), max_parallel_jobs=0)


class TestFetchCatalogsService:
    """Test the command line entry point."""

    def test_missing_container_tool(self, tmp_path):
        with patch("fetch_catalogs_service.setup_logging"), \
                patch("fetch_catalogs_service.ContainerTool") as mock_tool:
            mock_tool.return_value.is_available.return_value = False

            assert fetch_catalogs_service.main(["--output-dir", str(tmp_path)]) == 1

    def test_failures_give_non_zero_exit(self, tmp_path):
        summary = FetchSummary(total=2, success=1, failed=1,
                               failed_jobs=[CatalogKey("redhat-operator-index", "v4.18")])
        with patch("fetch_catalogs_service.setup_logging"), \
                patch("fetch_catalogs_service.ContainerTool") as mock_tool, \
                patch("fetch_catalogs_service.build_orchestrator") as mock_build:
            mock_tool.return_value.is_available.return_value = True
            mock_build.return_value.run.return_value = summary

            assert fetch_catalogs_service.main(["--output-dir", str(tmp_path)]) == 1

    def test_success_and_force(self, tmp_path):
        with patch("fetch_catalogs_service.setup_logging"), \
                patch("fetch_catalogs_service.ContainerTool") as mock_tool, \
                patch("fetch_catalogs_service.build_orchestrator") as mock_build:
            mock_tool.return_value.is_available.return_value = True
            mock_build.return_value.run.return_value = FetchSummary(total=1, success=1)

            exit_code = fetch_catalogs_service.main(
                ["--output-dir", str(tmp_path), "--force", "--parallel", "5", "--no-cleanup-images"]
            )

        assert exit_code == 0
        kwargs = mock_build.call_args.kwargs
        assert kwargs["freshness"] == timedelta(0)
        assert kwargs["max_parallel_jobs"] == 5
        assert kwargs["cleanup_images"] is False

    def test_invalid_parallel_argument(self):
        with pytest.raises(SystemExit):
            fetch_catalogs_service._parse_args(["--parallel", "0"])
