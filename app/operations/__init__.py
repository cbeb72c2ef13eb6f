"""
Operations Subsystem

Launches oc-mirror runs, tracks their lifecycle and streams their logs.
"""

from .models import Operation, OperationStatus, OperationDetails, LogChunk
from .store import OperationStore
from .services import OperationSupervisor
from .log_tailer import LogTailer, LogSubscription

__all__ = [
    'Operation',
    'OperationStatus',
    'OperationDetails',
    'LogChunk',
    'OperationStore',
    'OperationSupervisor',
    'LogTailer',
    'LogSubscription',
]
