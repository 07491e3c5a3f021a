"""Build export models from the root registry cache."""

import time

from .instance import registries
from .models import MetricsSnapshotModel, RegistrySnapshotModel
from .registry import Registry


def registry_snapshot(group: str, scope: str, registry: Registry) -> RegistrySnapshotModel:
    return RegistrySnapshotModel(group=group, scope=scope, metrics=registry.to_dict())


def take_snapshot() -> MetricsSnapshotModel:
    """Serialize every root registry into one MetricsSnapshotModel."""
    return MetricsSnapshotModel(
        timestamp=time.time(),
        registries=[registry_snapshot(group, scope, registry) for group, scope, registry in registries()],
    )
