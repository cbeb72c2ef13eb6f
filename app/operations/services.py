"""
Operation subsystem services: launches and supervises oc-mirror runs.
"""
import logging
import os
import re
import signal
import subprocess
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from mirror_service.errors import (
    ExternalToolFailure,
    NotFound,
    OperationLimitReached,
    ProcessSpawnError,
    ValidationError,
)

from .models import (
    MirrorCommand,
    Operation,
    OperationDetails,
    OperationStats,
    OperationStatus,
)
from .store import OperationStore

logger = logging.getLogger(__name__)

ERROR_MARKERS = ("[error]", "error:")
DETAILS_UNAVAILABLE_REASON = "manifest parsing not implemented"

_UNSAFE_CONFIG_RE = re.compile(r"[\\/]|\.\.")
_GIT_VERSION_RE = re.compile(r'GitVersion:"v?(\d+\.\d+\.\d+)')
_SEMVER_RE = re.compile(r"(\d+\.\d+\.\d+)")


def find_error_marker(text: str) -> Optional[str]:
    """First log line containing an error marker (case-insensitive)."""
    for line in (text or "").splitlines():
        lowered = line.lower()
        if any(marker in lowered for marker in ERROR_MARKERS):
            return line.strip()
    return None


def scan_log_for_error(log_path: Path) -> Optional[str]:
    """Stream a log file and return its first error marker line, if any."""
    try:
        with open(log_path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                marker = find_error_marker(line)
                if marker:
                    return marker
    except FileNotFoundError:
        return None
    return None


def run_version_command(command: List[str], timeout: float = 10.0) -> Optional[str]:
    """Stdout of a version command, or None if the tool is missing, fails or hangs."""
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=timeout, check=True)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"Version check {' '.join(command)} failed: {e}")
        return None
    return result.stdout.strip()


def parse_tool_version(output: Optional[str]) -> Optional[str]:
    """Extract ``X.Y.Z`` from version output.

    Prefers the ``GitVersion:"..."`` field of Go version structs, then the
    first version-like string, then the first non-empty line as printed.
    """
    if output is None:
        return None
    for pattern in (_GIT_VERSION_RE, _SEMVER_RE):
        match = pattern.search(output)
        if match:
            return match.group(1)
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return lines[0] if lines else None


class OperationSupervisor:
    """Starts the mirroring tool, tracks its lifecycle and answers queries.

    Each started process writes combined stdout/stderr to its log file and is
    watched by a daemon thread that records the terminal status when the
    process exits. ``max_concurrent_operations`` slots are guarded by a
    bounded semaphore; a start beyond the limit is rejected, not queued.
    """

    def __init__(
        self,
        store: OperationStore,
        configs_dir: Path,
        cache_dir: Path,
        executable: str = "oc-mirror",
        destination: str = "file://mirror",
        authfile: Optional[str] = None,
        src_tls_verify: bool = False,
        dest_tls_verify: bool = False,
        max_concurrent_operations: int = 1,
        stop_grace_seconds: float = 10.0,
        working_directory: Optional[Path] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if max_concurrent_operations < 1:
            raise ValueError("max_concurrent_operations must be at least 1")
        self.store = store
        self.configs_dir = Path(configs_dir)
        self.cache_dir = Path(cache_dir)
        self.executable = executable
        self.destination = destination
        self.authfile = authfile
        self.src_tls_verify = src_tls_verify
        self.dest_tls_verify = dest_tls_verify
        self.max_concurrent_operations = max_concurrent_operations
        self.stop_grace_seconds = stop_grace_seconds
        self.working_directory = Path(working_directory) if working_directory else self.store.operations_dir.parent
        self.clock = clock

        self._slots = threading.BoundedSemaphore(max_concurrent_operations)
        self._slot_holders: set = set()
        self._processes: Dict[str, subprocess.Popen] = {}
        self._watchers: Dict[str, threading.Thread] = {}
        self._terminal_listeners: List[Callable[[str], None]] = []

        self.recover_interrupted()

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def add_terminal_listener(self, listener: Callable[[str], None]) -> None:
        """Call *listener(operation_id)* whenever an operation becomes terminal."""
        self._terminal_listeners.append(listener)

    def _notify_terminal(self, operation_id: str) -> None:
        for listener in self._terminal_listeners:
            try:
                listener(operation_id)
            except Exception as e:  # pylint: disable=broad-except
                logger.warning(f"Terminal listener failed for {operation_id}: {e}")

    def _release_slot(self, operation_id: str) -> None:
        with self.store.lock:
            if operation_id not in self._slot_holders:
                return
            self._slot_holders.discard(operation_id)
        self._slots.release()

    def recover_interrupted(self) -> int:
        """Fail records left running by a previous server process."""
        recovered = 0
        with self.store.lock:
            for operation in self.store.list_all():
                if operation.status is OperationStatus.RUNNING and operation.id not in self._processes:
                    operation.finish(OperationStatus.FAILED, self.clock(),
                                     "Interrupted: server restarted while the operation was running")
                    self.store.save(operation)
                    recovered += 1
        if recovered:
            logger.warning(f"Marked {recovered} interrupted operation(s) as failed")
        return recovered

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def resolve_config(self, config_ref: str) -> Path:
        """Map a config file name to a path inside ``configs_dir``."""
        if not config_ref or not config_ref.strip():
            raise ValidationError("configFile is required")
        if _UNSAFE_CONFIG_RE.search(config_ref) or config_ref.startswith("."):
            raise ValidationError(f"Invalid configuration file name: {config_ref}")
        config_path = self.configs_dir / config_ref
        if not config_path.is_file():
            raise NotFound(f"Configuration file not found: {config_ref}")
        return config_path

    def build_command(self, config_path: Path, log_file: Path) -> MirrorCommand:
        command = [
            self.executable,
            "--v2",
            "--config", str(config_path),
            f"--dest-tls-verify={str(self.dest_tls_verify).lower()}",
            f"--src-tls-verify={str(self.src_tls_verify).lower()}",
            "--cache-dir", str(self.cache_dir),
        ]
        if self.authfile:
            command += ["--authfile", str(self.authfile)]
        command.append(self.destination)
        return MirrorCommand(command=command, config_path=str(config_path), log_file=str(log_file))

    def tool_version(self, timeout: float = 10.0) -> Optional[str]:
        """Version reported by ``<executable> version``, or None if it cannot run."""
        return parse_tool_version(run_version_command([self.executable, "version"], timeout))

    def start(self, config_ref: str, name: Optional[str] = None) -> Operation:
        """Launch the mirroring tool for *config_ref* and return immediately.

        Raises:
            ValidationError: for an empty or unsafe config name
            NotFound: if the config file does not exist
            OperationLimitReached: if every concurrency slot is taken
        """
        config_path = self.resolve_config(config_ref)

        if not self._slots.acquire(blocking=False):
            raise OperationLimitReached(
                f"Maximum of {self.max_concurrent_operations} concurrent operation(s) already running"
            )

        operation_id = str(uuid.uuid4())
        with self.store.lock:
            self._slot_holders.add(operation_id)

        try:
            log_path = self.store.log_path(operation_id)
            operation = Operation(
                id=operation_id,
                name=name or f"Mirror Operation {operation_id[:8]}",
                config_ref=config_ref,
                status=OperationStatus.RUNNING,
                started_at=self.clock(),
                log_file=str(log_path),
            )
            self.store.save(operation)
            command = self.build_command(config_path, log_path)
            logger.info(f"Starting operation {operation_id}: {' '.join(command.command)}")

            try:
                process = self._spawn(command)
            except ProcessSpawnError as e:
                return self._fail_spawn(operation, e)

            with self.store.lock:
                # A stop or delete may have landed while the process was spawning
                current = self.store.load(operation_id)
                cancelled = current is None or current.is_terminal
                if not cancelled:
                    current.pid = process.pid
                    self.store.save(current)
                operation = current or operation
                self._processes[operation_id] = process
                watcher = threading.Thread(
                    target=self._watch,
                    args=(operation_id, process),
                    daemon=True,
                    name=f"oc-mirror-{operation_id[:8]}",
                )
                self._watchers[operation_id] = watcher
            watcher.start()
            if cancelled:
                logger.info(f"🛑 Operation {operation_id} was stopped while starting; terminating pid {process.pid}")
                self._terminate(operation_id, process.pid)
            return operation
        except BaseException:
            self._release_slot(operation_id)
            raise

    def _spawn(self, command: MirrorCommand) -> subprocess.Popen:
        try:
            with open(command.log_file, "ab") as log_handle:
                return subprocess.Popen(
                    command.command,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    cwd=str(self.working_directory),
                    start_new_session=True,
                )
        except OSError as e:
            raise ProcessSpawnError(f"Failed to launch {self.executable}: {e}", detail=command.command[0]) from e

    def _fail_spawn(self, operation: Operation, error: ProcessSpawnError) -> Operation:
        logger.error(f"Operation {operation.id} could not start: {error.message}")
        try:
            with open(operation.log_file, "a", encoding="utf-8") as f:
                f.write(f"{error.message}\n")
        except OSError as e:
            logger.warning(f"Could not write spawn error to log for {operation.id}: {e}")
        with self.store.lock:
            current = self.store.load(operation.id)
            if current is None or current.is_terminal:
                operation = current or operation
            else:
                operation.finish(OperationStatus.FAILED, self.clock(), error.message)
                self.store.save(operation)
        self._release_slot(operation.id)
        self._notify_terminal(operation.id)
        return operation

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _watch(self, operation_id: str, process: subprocess.Popen) -> None:
        exit_code = process.wait()
        try:
            captured = scan_log_for_error(self.store.log_path(operation_id)) or ""
            self.on_process_exit(operation_id, exit_code, captured)
        except Exception:  # pylint: disable=broad-except
            logger.exception(f"Failed to record exit of operation {operation_id}")
            self._release_slot(operation_id)

    def determine_failure(self, exit_code: int, captured_text: str) -> Optional[ExternalToolFailure]:
        """Failure for a non-zero exit or an error marker in the output, else None."""
        if exit_code != 0:
            return ExternalToolFailure(f"exit code {exit_code}", detail=find_error_marker(captured_text))
        marker = find_error_marker(captured_text)
        if marker:
            return ExternalToolFailure(marker)
        return None

    def on_process_exit(self, operation_id: str, exit_code: int, captured_text: str) -> Optional[Operation]:
        """Record the terminal status of a finished process.

        A record that is already terminal (stopped, or failed at spawn) is
        left untouched.
        """
        with self.store.lock:
            self._processes.pop(operation_id, None)
            operation = self.store.load(operation_id)
            if operation is None:
                logger.info(f"Operation {operation_id} exited with code {exit_code} after being deleted")
            elif operation.is_terminal:
                logger.info(
                    f"Operation {operation_id} exited with code {exit_code}; keeping status {operation.status.value}"
                )
            else:
                failure = self.determine_failure(exit_code, captured_text)
                if failure is None:
                    operation.finish(OperationStatus.SUCCESS, self.clock())
                    logger.info(f"✅ Operation {operation_id} completed successfully")
                else:
                    operation.finish(OperationStatus.FAILED, self.clock(), failure.message)
                    logger.warning(f"❌ Operation {operation_id} failed: {failure.message}")
                self.store.save(operation)

        self._release_slot(operation_id)
        self._notify_terminal(operation_id)
        return operation

    # ------------------------------------------------------------------
    # Stop / delete
    # ------------------------------------------------------------------

    def stop(self, operation_id: str) -> Operation:
        """Terminate a running operation and mark it stopped.

        Stopping an operation that already finished returns it unchanged.

        Raises:
            NotFound: for unknown ids
        """
        with self.store.lock:
            operation = self.get(operation_id)
            if operation.is_terminal:
                return operation
            operation.finish(OperationStatus.STOPPED, self.clock())
            self.store.save(operation)
            pid = operation.pid

        logger.info(f"🛑 Stopping operation {operation_id}")
        self._terminate(operation_id, pid)
        self._notify_terminal(operation_id)
        return operation

    def _terminate(self, operation_id: str, pid: Optional[int]) -> None:
        if pid is None:
            return
        try:
            os.killpg(pid, signal.SIGTERM)
        except ProcessLookupError:
            return
        except PermissionError as e:
            logger.warning(f"Not allowed to signal process group {pid}: {e}")
            return

        watcher = self._watchers.get(operation_id)
        if watcher is None or watcher is threading.current_thread():
            return
        watcher.join(timeout=self.stop_grace_seconds)
        if not watcher.is_alive():
            return

        logger.warning(f"Operation {operation_id} ignored SIGTERM for {self.stop_grace_seconds}s, sending SIGKILL")
        try:
            os.killpg(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    def delete(self, operation_id: str) -> None:
        """Remove an operation and its log, terminating it first if running.

        Deleting an unknown id succeeds.
        """
        operation = self.store.load(operation_id)
        if operation is not None and operation.status is OperationStatus.RUNNING:
            self.stop(operation_id)
        with self.store.lock:
            removed = self.store.delete(operation_id)
            self._watchers.pop(operation_id, None)
        self._notify_terminal(operation_id)
        if removed:
            logger.info(f"Deleted operation {operation_id}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, operation_id: str) -> Operation:
        operation = self.store.load(operation_id)
        if operation is None:
            raise NotFound(f"Operation {operation_id} not found")
        return operation

    def list(self, status: Optional[str] = None) -> List[Operation]:
        """All operations, newest first, optionally filtered by status."""
        operations = self.store.list_all()
        if not status:
            return operations
        try:
            wanted = OperationStatus(status)
        except ValueError as e:
            valid = ", ".join(s.value for s in OperationStatus)
            raise ValidationError(f"Invalid status filter: {status} (expected one of {valid})") from e
        return [op for op in operations if op.status is wanted]

    def recent(self, limit: int = 10) -> List[Operation]:
        return self.store.list_all()[:max(limit, 0)]

    def stats(self) -> OperationStats:
        stats = OperationStats()
        for operation in self.store.list_all():
            stats.total += 1
            if operation.status is OperationStatus.RUNNING:
                stats.running += 1
            elif operation.status is OperationStatus.SUCCESS:
                stats.success += 1
            elif operation.status is OperationStatus.FAILED:
                stats.failed += 1
            else:
                stats.stopped += 1
        return stats

    def details(self, operation_id: str) -> OperationDetails:
        """Measured facts only; mirror statistics are reported as unavailable."""
        operation = self.get(operation_id)
        log_path = self.store.log_path(operation_id)
        size = 0
        line_count = 0
        if log_path.exists():
            size = log_path.stat().st_size
            with open(log_path, "rb") as f:
                line_count = sum(1 for _ in f)

        duration = operation.duration_seconds
        if duration is None and not operation.is_terminal:
            duration = max((self.clock() - operation.started_at).total_seconds(), 0.0)

        return OperationDetails(
            operation_id=operation.id,
            status=operation.status,
            available=False,
            reason=DETAILS_UNAVAILABLE_REASON,
            log_size_bytes=size,
            log_line_count=line_count,
            duration_seconds=duration,
        )

    def wait(self, operation_id: str, timeout: Optional[float] = None) -> Optional[Operation]:
        """Block until the operation's watcher finished (or *timeout* passed)."""
        watcher = self._watchers.get(operation_id)
        if watcher is not None:
            watcher.join(timeout=timeout)
        return self.store.load(operation_id)

    def shutdown(self) -> None:
        """Stop every operation this supervisor launched that is still running."""
        for operation_id in list(self._processes):
            try:
                self.stop(operation_id)
            except NotFound:
                continue
