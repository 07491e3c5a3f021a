"""Multimeter - typed, hierarchical metrics for Python processes."""

from multimeter.services.metrics import (
    GaugeRedeclaredError,
    InstanceMetrics,
    MetricTypeConflictError,
    MultimeterError,
    Registry,
    ScopeKindConflictError,
    obtain_registry,
)

__all__ = [
    "obtain_registry",
    "Registry",
    "InstanceMetrics",
    "MultimeterError",
    "MetricTypeConflictError",
    "GaugeRedeclaredError",
    "ScopeKindConflictError",
]
