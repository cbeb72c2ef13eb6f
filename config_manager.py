"""
Configuration management for the oc-mirror web backend.
Handles loading, validating, and providing access to application settings.
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass


@dataclass
class AppConfig:
    """Application configuration settings."""
    host: str
    port: int
    debug: bool


@dataclass
class PathsConfig:
    """Path configuration settings."""
    storage_dir: str
    configs_dir: str
    operations_dir: str
    logs_dir: str
    cache_dir: str
    catalog_data_dir: str

    def ensure_directories(self) -> None:
        """Create every storage directory that does not exist yet."""
        for directory in (self.storage_dir, self.configs_dir, self.operations_dir,
                          self.logs_dir, self.cache_dir):
            Path(directory).mkdir(parents=True, exist_ok=True)


@dataclass
class MirrorConfig:
    """Settings for launching the mirroring tool."""
    executable: str
    destination: str
    authfile: Optional[str]
    src_tls_verify: bool
    dest_tls_verify: bool
    max_concurrent_operations: int
    log_poll_interval: float
    stop_grace_seconds: float
    oc_executable: str = "oc"
    version_timeout_seconds: float = 10.0


@dataclass
class CatalogFetchConfig:
    """Settings for the batch catalog fetch service."""
    registry: str
    ocp_versions: List[str]
    catalog_types: List[str]
    max_parallel_jobs: int
    freshness_hours: float
    cleanup_images: bool
    max_retries: int
    retry_delay_seconds: float
    container_tool: str
    authfile: Optional[str]


@dataclass
class CatalogCacheConfig:
    """Settings for the catalog response cache."""
    ttl_seconds: float


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConfigManager:
    """Manages application configuration loading and access."""

    def __init__(self, config_file: str = "mirror_web_config.json"):
        self.config_file = Path(config_file)
        self._config: Optional[Dict[str, Any]] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        self._config = self._get_default_config()

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
                    self._merge_config(file_config)
            except (json.JSONDecodeError, FileNotFoundError):
                # Keep default config if file is invalid or not found
                pass

        self._override_with_env()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "app": {
                "host": "0.0.0.0",
                "port": 3001,
                "debug": False
            },
            "paths": {
                "storage_dir": "data",
                "configs_dir": None,
                "operations_dir": None,
                "logs_dir": None,
                "cache_dir": None,
                "catalog_data_dir": "catalog-data"
            },
            "mirror": {
                "executable": "oc-mirror",
                "destination": "file://mirror",
                "authfile": None,
                "src_tls_verify": False,
                "dest_tls_verify": False,
                "max_concurrent_operations": 1,
                "log_poll_interval": 1.0,
                "stop_grace_seconds": 10.0,
                "oc_executable": "oc",
                "version_timeout_seconds": 10.0
            },
            "catalog_fetch": {
                "registry": "registry.redhat.io/redhat",
                "ocp_versions": ["4.16", "4.17", "4.18", "4.19", "4.20"],
                "catalog_types": [
                    "redhat-operator-index",
                    "certified-operator-index",
                    "community-operator-index"
                ],
                "max_parallel_jobs": 3,
                "freshness_hours": 24,
                "cleanup_images": True,
                "max_retries": 3,
                "retry_delay_seconds": 2.0,
                "container_tool": "podman",
                "authfile": None
            },
            "catalog_cache": {
                "ttl_seconds": 3600
            }
        }

    def _merge_config(self, file_config: Dict[str, Any]) -> None:
        """Merge file configuration with current config."""
        for section, values in file_config.items():
            if section in self._config:
                if isinstance(values, dict):
                    self._config[section].update(values)
                else:
                    self._config[section] = values
            else:
                self._config[section] = values

    def _override_with_env(self) -> None:
        """Override configuration with environment variables."""
        # App settings
        if os.getenv("APP_HOST"):
            self._config["app"]["host"] = os.getenv("APP_HOST")

        if os.getenv("APP_PORT"):
            self._config["app"]["port"] = int(os.getenv("APP_PORT"))

        if os.getenv("APP_DEBUG"):
            self._config["app"]["debug"] = os.getenv("APP_DEBUG").lower() == "true"

        # Paths
        if os.getenv("STORAGE_DIR"):
            self._config["paths"]["storage_dir"] = os.getenv("STORAGE_DIR")

        if os.getenv("OC_MIRROR_CACHE_DIR"):
            self._config["paths"]["cache_dir"] = os.getenv("OC_MIRROR_CACHE_DIR")

        if os.getenv("CATALOG_DATA_DIR"):
            self._config["paths"]["catalog_data_dir"] = os.getenv("CATALOG_DATA_DIR")

        # Mirroring tool
        if os.getenv("OC_MIRROR_BIN"):
            self._config["mirror"]["executable"] = os.getenv("OC_MIRROR_BIN")

        if os.getenv("OC_BIN"):
            self._config["mirror"]["oc_executable"] = os.getenv("OC_BIN")

        if os.getenv("OC_MIRROR_AUTHFILE"):
            self._config["mirror"]["authfile"] = os.getenv("OC_MIRROR_AUTHFILE")
            if not self._config["catalog_fetch"]["authfile"]:
                self._config["catalog_fetch"]["authfile"] = os.getenv("OC_MIRROR_AUTHFILE")

        if os.getenv("MAX_CONCURRENT_OPERATIONS"):
            self._config["mirror"]["max_concurrent_operations"] = int(os.getenv("MAX_CONCURRENT_OPERATIONS"))

        # Catalog fetch
        if os.getenv("MAX_PARALLEL_JOBS"):
            self._config["catalog_fetch"]["max_parallel_jobs"] = int(os.getenv("MAX_PARALLEL_JOBS"))

        if os.getenv("CATALOG_FRESHNESS_HOURS"):
            self._config["catalog_fetch"]["freshness_hours"] = float(os.getenv("CATALOG_FRESHNESS_HOURS"))

        if os.getenv("CLEANUP_IMAGES"):
            self._config["catalog_fetch"]["cleanup_images"] = _as_bool(os.getenv("CLEANUP_IMAGES"))

        # Catalog cache
        if os.getenv("CATALOG_CACHE_TTL"):
            self._config["catalog_cache"]["ttl_seconds"] = float(os.getenv("CATALOG_CACHE_TTL"))

    def get_app_config(self) -> AppConfig:
        """Get application configuration."""
        app_config = self._config["app"]
        return AppConfig(
            host=app_config["host"],
            port=int(app_config["port"]),
            debug=bool(app_config["debug"])
        )

    def get_paths_config(self) -> PathsConfig:
        """Get paths configuration.

        Sub-directories left unset are placed below ``storage_dir``.
        """
        paths_config = self._config["paths"]
        storage_dir = paths_config["storage_dir"]
        return PathsConfig(
            storage_dir=storage_dir,
            configs_dir=paths_config.get("configs_dir") or os.path.join(storage_dir, "configs"),
            operations_dir=paths_config.get("operations_dir") or os.path.join(storage_dir, "operations"),
            logs_dir=paths_config.get("logs_dir") or os.path.join(storage_dir, "logs"),
            cache_dir=paths_config.get("cache_dir") or os.path.join(storage_dir, "cache"),
            catalog_data_dir=paths_config["catalog_data_dir"]
        )

    def get_mirror_config(self) -> MirrorConfig:
        """Get mirroring tool configuration."""
        mirror_config = self._config["mirror"]
        max_concurrent = int(mirror_config["max_concurrent_operations"])
        if max_concurrent < 1:
            raise ValueError("mirror.max_concurrent_operations must be at least 1")
        return MirrorConfig(
            executable=mirror_config["executable"],
            destination=mirror_config["destination"],
            authfile=mirror_config.get("authfile"),
            src_tls_verify=bool(mirror_config["src_tls_verify"]),
            dest_tls_verify=bool(mirror_config["dest_tls_verify"]),
            max_concurrent_operations=max_concurrent,
            log_poll_interval=float(mirror_config["log_poll_interval"]),
            stop_grace_seconds=float(mirror_config["stop_grace_seconds"]),
            oc_executable=mirror_config.get("oc_executable") or "oc",
            version_timeout_seconds=float(mirror_config.get("version_timeout_seconds", 10.0))
        )

    def get_catalog_fetch_config(self) -> CatalogFetchConfig:
        """Get catalog fetch configuration."""
        fetch_config = self._config["catalog_fetch"]
        return CatalogFetchConfig(
            registry=fetch_config["registry"],
            ocp_versions=list(fetch_config["ocp_versions"]),
            catalog_types=list(fetch_config["catalog_types"]),
            max_parallel_jobs=int(fetch_config["max_parallel_jobs"]),
            freshness_hours=float(fetch_config["freshness_hours"]),
            cleanup_images=bool(fetch_config["cleanup_images"]),
            max_retries=int(fetch_config["max_retries"]),
            retry_delay_seconds=float(fetch_config["retry_delay_seconds"]),
            container_tool=fetch_config["container_tool"],
            authfile=fetch_config.get("authfile")
        )

    def get_catalog_cache_config(self) -> CatalogCacheConfig:
        """Get catalog cache configuration."""
        return CatalogCacheConfig(ttl_seconds=float(self._config["catalog_cache"]["ttl_seconds"]))

    def get_config(self) -> Dict[str, Any]:
        """Get raw configuration dictionary."""
        return self._config.copy()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def save_config(self) -> None:
        """Save current configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)


# Global configuration instance
config_manager = ConfigManager()


def get_app_config() -> AppConfig:
    """Get application configuration."""
    return config_manager.get_app_config()


def get_paths_config() -> PathsConfig:
    """Get paths configuration."""
    return config_manager.get_paths_config()


def get_mirror_config() -> MirrorConfig:
    """Get mirroring tool configuration."""
    return config_manager.get_mirror_config()


def get_catalog_fetch_config() -> CatalogFetchConfig:
    """Get catalog fetch configuration."""
    return config_manager.get_catalog_fetch_config()


def get_catalog_cache_config() -> CatalogCacheConfig:
    """Get catalog cache configuration."""
    return config_manager.get_catalog_cache_config()


def reload_config() -> None:
    """Reload configuration."""
    config_manager.reload()
