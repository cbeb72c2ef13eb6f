"""
Operation subsystem models for supervised oc-mirror runs.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class OperationStatus(str, Enum):
    """Lifecycle state of an operation."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self is not OperationStatus.RUNNING


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Operation:
    """One supervised run of the mirroring tool."""
    id: str
    name: str
    config_ref: str
    status: OperationStatus
    started_at: datetime
    log_file: str
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    error_message: Optional[str] = None
    pid: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def finish(self, status: OperationStatus, completed_at: datetime,
               error_message: Optional[str] = None) -> None:
        """Move to a terminal status and derive the duration."""
        self.status = status
        self.completed_at = completed_at
        self.duration_seconds = max((completed_at - self.started_at).total_seconds(), 0.0)
        self.error_message = error_message

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'name': self.name,
            'config_ref': self.config_ref,
            'status': self.status.value,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration_seconds': self.duration_seconds,
            'error_message': self.error_message,
            'log_file': self.log_file,
            'pid': self.pid
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Operation":
        return cls(
            id=data['id'],
            name=data.get('name') or data['id'],
            config_ref=data['config_ref'],
            status=OperationStatus(data['status']),
            started_at=datetime.fromisoformat(data['started_at']),
            log_file=data['log_file'],
            completed_at=_parse_datetime(data.get('completed_at')),
            duration_seconds=data.get('duration_seconds'),
            error_message=data.get('error_message'),
            pid=data.get('pid')
        )


@dataclass
class MirrorCommand:
    """Command line for one mirroring run."""
    command: List[str]
    config_path: str
    log_file: str


@dataclass
class OperationDetails:
    """Measured facts about an operation.

    Mirror result statistics require parsing the tool's output manifests,
    which is not implemented; ``available`` stays False and ``reason`` says
    why instead of reporting made-up numbers.
    """
    operation_id: str
    status: OperationStatus
    available: bool
    reason: Optional[str]
    log_size_bytes: int
    log_line_count: int
    duration_seconds: Optional[float]

    def to_dict(self) -> dict:
        return {
            'operation_id': self.operation_id,
            'status': self.status.value,
            'available': self.available,
            'reason': self.reason,
            'log_size_bytes': self.log_size_bytes,
            'log_line_count': self.log_line_count,
            'duration_seconds': self.duration_seconds
        }


@dataclass
class OperationStats:
    """Dashboard counters."""
    total: int = 0
    running: int = 0
    success: int = 0
    failed: int = 0
    stopped: int = 0

    def to_dict(self) -> dict:
        return {
            'total': self.total,
            'running': self.running,
            'success': self.success,
            'failed': self.failed,
            'stopped': self.stopped
        }


@dataclass
class LogChunk:
    """New log output delivered to one stream subscriber."""
    operation_id: str
    offset: int
    size: int
    text: str

    def to_sse(self) -> str:
        """Format as a server-sent event, one ``data:`` line per log line."""
        lines = self.text.split('\n')
        if lines and lines[-1] == '':
            lines.pop()
        return ''.join(f"data: {line}\n" for line in lines) + "\n"


def sse_event(event: str, payload: Dict[str, Any]) -> str:
    """Named server-sent event carrying a JSON payload."""
    return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"
