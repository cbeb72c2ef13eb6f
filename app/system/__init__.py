"""
System Subsystem

Reports tool versions, host health and the OpenShift release channels on offer.
"""

from .models import HealthStatus, SystemInfo
from .services import SystemInspector

__all__ = ["HealthStatus", "SystemInfo", "SystemInspector"]
