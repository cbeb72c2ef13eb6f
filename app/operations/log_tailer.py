"""
Incremental log delivery for running operations.

Each subscriber keeps its own byte offset into the operation's log file and
receives only the bytes appended since its last read. A subscription ends
after a final drain once the operation is terminal, or immediately when the
subscriber closes it.
"""
import codecs
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Set

from mirror_service.errors import NotFound

from .models import LogChunk
from .store import OperationStore

logger = logging.getLogger(__name__)

MAX_CHUNK_BYTES = 64 * 1024


class LogSubscription(Iterator[LogChunk]):
    """Iterator over new log output for one subscriber."""

    def __init__(
        self,
        operation_id: str,
        log_path: Path,
        is_terminal: Callable[[], bool],
        poll_interval: float = 1.0,
        on_close: Optional[Callable[["LogSubscription"], None]] = None,
    ):
        self.operation_id = operation_id
        self.log_path = Path(log_path)
        self.poll_interval = poll_interval
        self._is_terminal = is_terminal
        self._on_close = on_close
        self._offset = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._wake = threading.Event()
        self._closed = threading.Event()
        self._terminal = threading.Event()

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def mark_terminal(self) -> None:
        """Operation finished: drain what is left, then stop."""
        self._terminal.set()
        self._wake.set()

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._wake.set()
        if self._on_close:
            self._on_close(self)

    def __enter__(self) -> "LogSubscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __iter__(self) -> "LogSubscription":
        return self

    def __next__(self) -> LogChunk:
        while not self._closed.is_set():
            chunk = self._read_new()
            if chunk is not None:
                return chunk
            if self._terminal.is_set() or self._is_terminal():
                self._terminal.set()
                chunk = self._read_new()
                if chunk is not None:
                    return chunk
                break
            self._wake.wait(self.poll_interval)
        self.close()
        raise StopIteration

    def _read_new(self) -> Optional[LogChunk]:
        try:
            size = self.log_path.stat().st_size
        except FileNotFoundError:
            return None
        if size < self._offset:
            logger.info(f"Log for {self.operation_id} was truncated; restarting from the beginning")
            self._offset = 0
            self._decoder.reset()
        if size == self._offset:
            return None

        with open(self.log_path, "rb") as f:
            f.seek(self._offset)
            data = f.read(min(size - self._offset, MAX_CHUNK_BYTES))
        if not data:
            return None

        chunk = LogChunk(
            operation_id=self.operation_id,
            offset=self._offset,
            size=len(data),
            text=self._decoder.decode(data),
        )
        self._offset += len(data)
        return chunk


class LogTailer:
    """Hands out independent log subscriptions and reads whole logs."""

    def __init__(self, store: OperationStore, poll_interval: float = 1.0):
        self.store = store
        self.poll_interval = poll_interval
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, Set[LogSubscription]] = {}

    def _operation_is_terminal(self, operation_id: str) -> bool:
        operation = self.store.load(operation_id)
        # A deleted operation will never produce more output
        return operation is None or operation.is_terminal

    def open_stream(self, operation_id: str) -> LogSubscription:
        """Subscribe to an operation's log, starting from the first byte.

        Raises:
            NotFound: if the operation does not exist
        """
        if self.store.load(operation_id) is None:
            raise NotFound(f"Operation {operation_id} not found")

        subscription = LogSubscription(
            operation_id,
            self.store.log_path(operation_id),
            is_terminal=lambda: self._operation_is_terminal(operation_id),
            poll_interval=self.poll_interval,
            on_close=self._discard,
        )
        with self._lock:
            self._subscriptions.setdefault(operation_id, set()).add(subscription)
        logger.debug(f"Opened log stream for {operation_id}")
        return subscription

    def notify_terminal(self, operation_id: str) -> None:
        """Wake every subscriber of *operation_id* for its final drain."""
        with self._lock:
            subscriptions = list(self._subscriptions.get(operation_id, ()))
        for subscription in subscriptions:
            subscription.mark_terminal()

    def active_subscriptions(self, operation_id: Optional[str] = None) -> int:
        with self._lock:
            if operation_id is not None:
                return len(self._subscriptions.get(operation_id, ()))
            return sum(len(subs) for subs in self._subscriptions.values())

    def fetch_full(self, operation_id: str) -> str:
        """Entire log content, or an empty string if no log exists yet."""
        path = self.store.log_path(operation_id)
        try:
            return path.read_bytes().decode("utf-8", errors="replace")
        except FileNotFoundError:
            return ""

    def _discard(self, subscription: LogSubscription) -> None:
        with self._lock:
            subscriptions = self._subscriptions.get(subscription.operation_id)
            if subscriptions is None:
                return
            subscriptions.discard(subscription)
            if not subscriptions:
                del self._subscriptions[subscription.operation_id]
        logger.debug(f"Closed log stream for {subscription.operation_id}")
