"""
Basic import tests to verify the core functionality.
"""

import pytest


def test_mirror_service_imports():
    """Test that the catalog pipeline modules can be imported."""
    from mirror_service import (
        CatalogFetchOrchestrator,
        CatalogIndexStore,
        CatalogParser,
        FetchJobRunner,
        RetryPolicy,
    )

    # Test that classes are callable
    assert callable(CatalogFetchOrchestrator)
    assert callable(CatalogIndexStore)
    assert callable(CatalogParser)
    assert callable(FetchJobRunner)
    assert callable(RetryPolicy)


def test_models_imports():
    """Test that catalog models can be imported and instantiated."""
    from mirror_service.models import OperatorEntry, CatalogKey, normalize_version

    entry = OperatorEntry(name="odf-operator", defaultChannel="stable-4.18", channels=["stable-4.18"])
    assert entry.default_channel == "stable-4.18"
    assert CatalogKey("redhat-operator-index", "v4.18").ocp_version == "v4.18"
    assert normalize_version("4.18") == "v4.18"
    assert normalize_version("v4.18") == "v4.18"


def test_app_subsystem_imports():
    """Test that the web subsystems can be imported."""
    from app.operations import OperationSupervisor, LogTailer
    from app.operations.factory import create_operations_module
    from app.catalog import CatalogCacheManager
    from app.catalog.factory import create_catalog_module
    from app.system import SystemInspector
    from app.system.factory import create_system_module

    assert callable(OperationSupervisor)
    assert callable(LogTailer)
    assert callable(create_operations_module)
    assert callable(CatalogCacheManager)
    assert callable(create_catalog_module)
    assert callable(SystemInspector)
    assert callable(create_system_module)


def test_error_taxonomy():
    """Every application error carries a stable code and status."""
    from mirror_service.errors import (
        MirrorWebError,
        NotFound,
        ValidationError,
        OperationLimitReached,
        ProcessSpawnError,
        ExternalToolFailure,
        CacheLoadError,
        FetchJobError,
        ParseError,
    )

    codes = set()
    for error_cls in (NotFound, ValidationError, OperationLimitReached, ProcessSpawnError,
                      ExternalToolFailure, CacheLoadError, FetchJobError, ParseError):
        error = error_cls("boom", detail="why")
        assert isinstance(error, MirrorWebError)
        assert error.to_dict() == {"error": "boom", "code": error_cls.code, "detail": "why"}
        codes.add(error_cls.code)

    assert len(codes) == 8
    assert OperationLimitReached.http_status == 409


if __name__ == "__main__":
    pytest.main([__file__])
