"""
System subsystem services: tool versions, host facts and health.
"""
import logging
import platform
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from mirror_service.models import normalize_version

from app.operations.services import OperationSupervisor, parse_tool_version, run_version_command

from .models import HealthStatus, SystemInfo

logger = logging.getLogger(__name__)

MIN_FREE_DISK_BYTES = 1_000_000_000


class SystemInspector:
    """Answers system status questions for the dashboard.

    The mirroring tool version comes from the supervisor that launches it;
    the ``oc`` client is queried directly. Health is ``error`` when either
    tool cannot run and ``degraded`` when the storage volume has at most
    ``min_free_disk_bytes`` free.
    """

    def __init__(
        self,
        supervisor: OperationSupervisor,
        storage_dir: Path,
        oc_executable: str = "oc",
        ocp_versions: Iterable[str] = (),
        timeout_seconds: float = 10.0,
        min_free_disk_bytes: int = MIN_FREE_DISK_BYTES,
    ):
        self.supervisor = supervisor
        self.storage_dir = Path(storage_dir)
        self.oc_executable = oc_executable
        self.ocp_versions = list(ocp_versions)
        self.timeout_seconds = timeout_seconds
        self.min_free_disk_bytes = min_free_disk_bytes

    def oc_version(self) -> Optional[str]:
        output = run_version_command([self.oc_executable, "version", "--client"], self.timeout_seconds)
        return parse_tool_version(output)

    def disk_usage(self) -> Tuple[int, int]:
        """``(free, total)`` bytes of the storage volume; zeros if it cannot be read."""
        try:
            usage = shutil.disk_usage(self.storage_dir)
        except OSError as e:
            logger.warning(f"Cannot read disk usage of {self.storage_dir}: {e}")
            return 0, 0
        return usage.free, usage.total

    def info(self) -> SystemInfo:
        free, total = self.disk_usage()
        return SystemInfo(
            oc_mirror_version=self.supervisor.tool_version(self.timeout_seconds),
            oc_version=self.oc_version(),
            architecture=platform.machine() or None,
            available_disk_bytes=free,
            total_disk_bytes=total,
        )

    def health(self, info: Optional[SystemInfo] = None) -> HealthStatus:
        info = info or self.info()
        if not info.tools_available:
            return HealthStatus.ERROR
        if info.available_disk_bytes <= self.min_free_disk_bytes:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def status(self) -> dict:
        info = self.info()
        health = self.health(info)
        if health is not HealthStatus.HEALTHY:
            logger.warning(f"System health is {health.value}")
        data = info.to_dict()
        return {
            "ocMirrorVersion": data["ocMirrorVersion"],
            "ocVersion": data["ocVersion"],
            "systemHealth": health.value
        }

    def release_channels(self) -> List[str]:
        """OpenShift release channels for the configured versions, e.g. ``stable-4.18``."""
        channels = [f"stable-{normalize_version(version).lstrip('v')}" for version in self.ocp_versions]
        return list(dict.fromkeys(channels))
