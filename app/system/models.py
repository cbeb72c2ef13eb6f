"""
System subsystem models: host facts and tool availability.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

NOT_AVAILABLE = "Not available"


class HealthStatus(str, Enum):
    """Overall readiness of the host for mirroring."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    ERROR = "error"


@dataclass
class SystemInfo:
    """Versions of the external tools plus architecture and disk space of the storage volume."""
    oc_mirror_version: Optional[str]
    oc_version: Optional[str]
    architecture: Optional[str]
    available_disk_bytes: int = 0
    total_disk_bytes: int = 0

    @property
    def tools_available(self) -> bool:
        return self.oc_mirror_version is not None and self.oc_version is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'ocMirrorVersion': self.oc_mirror_version or NOT_AVAILABLE,
            'ocVersion': self.oc_version or NOT_AVAILABLE,
            'systemArchitecture': self.architecture or NOT_AVAILABLE,
            'availableDiskSpace': self.available_disk_bytes,
            'totalDiskSpace': self.total_disk_bytes
        }
