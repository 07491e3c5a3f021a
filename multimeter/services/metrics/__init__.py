"""Hierarchical in-process metrics registry.

Root registries are obtained by (group, scope) and hold typed metrics
and named sub registries. Sibling registries distinguished by instance
id are aggregated when the tree is serialized.
"""

from .errors import (
    GaugeRedeclaredError,
    MetricTypeConflictError,
    MultimeterError,
    ScopeKindConflictError,
)
from .types import Counter, Gauge, Histogram, Meter, Metric, MetricKind, Timer
from .registry import Registry
from .instance_group import InstanceGroup
from .instance import find_registry, obtain_registry, registries
from .binding import (
    InstanceMetrics,
    IRegistryProvider,
    LinkedRegistryProvider,
    MetricBinding,
    PrivateRegistryProvider,
)

__all__ = [
    "MultimeterError",
    "MetricTypeConflictError",
    "GaugeRedeclaredError",
    "ScopeKindConflictError",
    "Metric",
    "MetricKind",
    "Counter",
    "Gauge",
    "Meter",
    "Histogram",
    "Timer",
    "Registry",
    "InstanceGroup",
    "obtain_registry",
    "find_registry",
    "registries",
    "InstanceMetrics",
    "IRegistryProvider",
    "PrivateRegistryProvider",
    "LinkedRegistryProvider",
    "MetricBinding",
]
