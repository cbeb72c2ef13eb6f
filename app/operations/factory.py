"""
Factory for creating the operations module.
"""
from pathlib import Path

from config_manager import MirrorConfig, PathsConfig

from .log_tailer import LogTailer
from .routes import create_operation_routes
from .services import OperationSupervisor
from .store import OperationStore


def create_operations_module(paths_config: PathsConfig, mirror_config: MirrorConfig) -> dict:
    """Create operations module with services and routes.

    Args:
        paths_config: Storage locations for configs, records, logs and cache
        mirror_config: Mirroring tool settings

    Returns:
        Dictionary containing the supervisor, log tailer and blueprint
    """
    store = OperationStore(Path(paths_config.operations_dir), Path(paths_config.logs_dir))
    supervisor = OperationSupervisor(
        store,
        configs_dir=Path(paths_config.configs_dir),
        cache_dir=Path(paths_config.cache_dir),
        executable=mirror_config.executable,
        destination=mirror_config.destination,
        authfile=mirror_config.authfile,
        src_tls_verify=mirror_config.src_tls_verify,
        dest_tls_verify=mirror_config.dest_tls_verify,
        max_concurrent_operations=mirror_config.max_concurrent_operations,
        stop_grace_seconds=mirror_config.stop_grace_seconds,
        working_directory=Path(paths_config.storage_dir),
    )
    log_tailer = LogTailer(store, poll_interval=mirror_config.log_poll_interval)
    supervisor.add_terminal_listener(log_tailer.notify_terminal)

    blueprint = create_operation_routes(supervisor, log_tailer)

    return {
        "service": supervisor,
        "log_tailer": log_tailer,
        "blueprint": blueprint
    }
