"""Pydantic V2 models for metrics export responses.

The ``metrics`` field carries ``Registry.to_dict()`` output unchanged:
scope name -> metric name -> serialized metric or aggregate wrapper.
"""

from typing import Any, Dict, List
from pydantic import BaseModel, ConfigDict


class RegistrySnapshotModel(BaseModel):
    """Serialized tree of one root registry"""
    model_config = ConfigDict(from_attributes=True)

    group: str
    scope: str
    metrics: Dict[str, Dict[str, Any]]


class MetricsSnapshotModel(BaseModel):
    """Root envelope for every root registry in the process"""
    model_config = ConfigDict(from_attributes=True)

    timestamp: float
    registries: List[RegistrySnapshotModel]


class MetricsHealthModel(BaseModel):
    """Lightweight health check response"""
    model_config = ConfigDict(from_attributes=True)

    export_enabled: bool
    reporter_running: bool
    registry_count: int
    version: str
