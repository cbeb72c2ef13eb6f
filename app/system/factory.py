"""
Factory for creating the system module.
"""
from pathlib import Path

from config_manager import CatalogFetchConfig, MirrorConfig, PathsConfig
from app.operations.services import OperationSupervisor

from .routes import create_system_routes
from .services import SystemInspector


def create_system_module(
    supervisor: OperationSupervisor,
    paths_config: PathsConfig,
    mirror_config: MirrorConfig,
    fetch_config: CatalogFetchConfig,
) -> dict:
    """Create system module with services and routes.

    Args:
        supervisor: Supervisor that owns the mirroring tool executable
        paths_config: Storage locations; disk space is measured on storage_dir
        mirror_config: Tool settings (oc client path, version check timeout)
        fetch_config: Supplies the OCP versions offered as release channels

    Returns:
        Dictionary containing the service and blueprint
    """
    inspector = SystemInspector(
        supervisor,
        storage_dir=Path(paths_config.storage_dir),
        oc_executable=mirror_config.oc_executable,
        ocp_versions=fetch_config.ocp_versions,
        timeout_seconds=mirror_config.version_timeout_seconds,
    )

    blueprint = create_system_routes(inspector)

    return {
        "service": inspector,
        "blueprint": blueprint
    }
