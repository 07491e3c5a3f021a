"""Metrics REST API endpoints.

Publishes the serialized registry trees as JSON. Reads never create
registries.
"""

from fastapi import APIRouter, HTTPException
from multimeter.core.config import settings
from multimeter.services.metrics import reporter
from multimeter.services.metrics.instance import find_registry, registries
from multimeter.services.metrics.models import (
    MetricsSnapshotModel,
    RegistrySnapshotModel,
    MetricsHealthModel,
)
from multimeter.services.metrics.snapshot import registry_snapshot, take_snapshot

router = APIRouter(prefix="/metrics", tags=["metrics"])


def _ensure_export_enabled() -> None:
    if not settings.EXPORT_ENABLED:
        raise HTTPException(
            status_code=503,
            detail="Metrics export is disabled. Set MULTIMETER_EXPORT_ENABLED=true to enable."
        )


@router.get("/", response_model=MetricsSnapshotModel)
async def get_metrics_snapshot():
    """Get the serialized tree of every root registry.

    Raises:
        HTTPException: 503 if metrics export is disabled
    """
    _ensure_export_enabled()
    return take_snapshot()


@router.get("/health", response_model=MetricsHealthModel)
async def get_metrics_health():
    """Lightweight health check that always returns 200."""
    return MetricsHealthModel(
        export_enabled=settings.EXPORT_ENABLED,
        reporter_running=reporter.is_reporter_running(),
        registry_count=len(registries()),
        version=settings.VERSION,
    )


@router.get("/{group}/{scope}", response_model=RegistrySnapshotModel)
async def get_registry_snapshot(group: str, scope: str):
    """Get the serialized tree of one root registry.

    Raises:
        HTTPException: 503 if metrics export is disabled
        HTTPException: 404 if no registry exists for (group, scope)
    """
    _ensure_export_enabled()
    registry = find_registry(group, scope)
    if registry is None:
        raise HTTPException(status_code=404, detail=f"No registry for group '{group}' and scope '{scope}'")
    return registry_snapshot(group, scope, registry)
