"""
File-backed persistence for operation records and their log artifacts.
"""
import json
import logging
import re
import threading
from pathlib import Path
from typing import List, Optional

from mirror_service.errors import ValidationError
from mirror_service.index_store import atomic_write_json

from .models import Operation

logger = logging.getLogger(__name__)

_OPERATION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def validate_operation_id(operation_id: str) -> str:
    """Reject identifiers that could escape the storage directories."""
    if not operation_id or not _OPERATION_ID_RE.match(operation_id):
        raise ValidationError(f"Invalid operation id: {operation_id!r}")
    return operation_id


class OperationStore:
    """One JSON document per operation plus one append-only log per operation.

    ``lock`` is reentrant and must be held around read-modify-write
    sequences so a stop and a process exit cannot both win.
    """

    def __init__(self, operations_dir: Path, logs_dir: Path):
        self.operations_dir = Path(operations_dir)
        self.logs_dir = Path(logs_dir)
        self.operations_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.lock = threading.RLock()

    def record_path(self, operation_id: str) -> Path:
        return self.operations_dir / f"{validate_operation_id(operation_id)}.json"

    def log_path(self, operation_id: str) -> Path:
        return self.logs_dir / f"{validate_operation_id(operation_id)}.log"

    def save(self, operation: Operation) -> None:
        with self.lock:
            atomic_write_json(self.record_path(operation.id), operation.to_dict())

    def load(self, operation_id: str) -> Optional[Operation]:
        """Return the stored operation, or None if it does not exist or is corrupt."""
        path = self.record_path(operation_id)
        with self.lock:
            if not path.exists():
                return None
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    return Operation.from_dict(json.load(f))
            except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
                logger.warning(f"Ignoring unreadable operation record {path.name}: {e}")
                return None

    def delete(self, operation_id: str) -> bool:
        """Remove the record and its log. Returns True if anything was removed."""
        removed = False
        with self.lock:
            for path in (self.record_path(operation_id), self.log_path(operation_id)):
                try:
                    path.unlink()
                    removed = True
                except FileNotFoundError:
                    pass
        return removed

    def list_all(self) -> List[Operation]:
        """All readable operations, newest first."""
        operations = []
        with self.lock:
            for path in self.operations_dir.glob("*.json"):
                if not _OPERATION_ID_RE.match(path.stem):
                    continue
                operation = self.load(path.stem)
                if operation is not None:
                    operations.append(operation)
        operations.sort(key=lambda op: op.started_at, reverse=True)
        return operations
