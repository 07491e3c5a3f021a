"""Registry - a named node in the metrics tree.

A Registry owns a catalog of metrics keyed by name and a set of named
children. A child is either a plain sub registry or an InstanceGroup
holding sibling registries that share one scope and differ by instance
id. Which of the two a scope denotes is fixed by whichever call creates
it first.
"""

import threading
import weakref
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from multimeter.core.logging_config import get_logger
from .errors import (
    GaugeRedeclaredError,
    MetricTypeConflictError,
    MultimeterError,
    ScopeKindConflictError,
)
from .instance_group import InstanceGroup
from .types import Counter, Gauge, Histogram, Meter, Metric, MetricKind, Timer

logger = get_logger(__name__)

ScopeMap = Dict[str, Dict[str, Any]]


def merge_scopes(target: ScopeMap, other: ScopeMap) -> ScopeMap:
    """Merge the scope mapping ``other`` into ``target`` name by name."""
    for scope, values in other.items():
        target.setdefault(scope, {}).update(values)
    return target


class Registry:
    """Catalog of metrics plus named child registries.

    All get-or-create operations take the registry lock, so racing first
    callers observe the same object. Serialization only holds the lock
    long enough to copy the catalog and child map.
    """

    def __init__(
        self,
        scope: str,
        instance_id: Optional[str] = None,
        parent: Optional["Registry"] = None,
    ):
        self.scope = scope
        self.instance_id = instance_id
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self._metrics: Dict[str, Metric] = {}
        self._children: Dict[str, Union["Registry", InstanceGroup]] = {}
        self._lock = threading.RLock()

    @property
    def parent(self) -> Optional["Registry"]:
        """Back-pointer to the creating registry. Never used for lookups."""
        return self._parent_ref() if self._parent_ref is not None else None

    def __repr__(self) -> str:
        if self.instance_id is None:
            return f"<Registry {self.scope!r}>"
        return f"<Registry {self.scope!r} instance={self.instance_id!r}>"

    def __contains__(self, name: str) -> bool:
        return name in self._metrics

    # Metric catalog

    def _get_or_create(self, name: str, kind: MetricKind, factory: Callable[[], Metric]) -> Metric:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = factory()
                self._metrics[name] = metric
                logger.debug(f"Created {kind.value} '{name}' in {self!r}")
                return metric
        if metric.kind is not kind:
            logger.warning(f"Refusing to redeclare {metric.kind.value} '{name}' as {kind.value} in {self!r}")
            raise MetricTypeConflictError(name, metric.kind.value, kind.value)
        return metric

    def counter(self, name: str) -> Counter:
        return self._get_or_create(name, MetricKind.COUNTER, Counter)

    def meter(self, name: str) -> Meter:
        return self._get_or_create(name, MetricKind.METER, Meter)

    def histogram(self, name: str) -> Histogram:
        return self._get_or_create(name, MetricKind.HISTOGRAM, Histogram)

    def timer(self, name: str) -> Timer:
        return self._get_or_create(name, MetricKind.TIMER, Timer)

    def gauge(self, name: str, value_fn: Optional[Callable[[], Any]] = None) -> Gauge:
        """Create the gauge ``name`` or return the existing one.

        Args:
            name: Metric name
            value_fn: Function computing the gauge value. Required when the
                gauge doesn't exist yet, forbidden once it does.

        Raises:
            MetricTypeConflictError: ``name`` is bound to another kind
            GaugeRedeclaredError: the gauge exists and ``value_fn`` was given
            MultimeterError: the gauge doesn't exist and no ``value_fn`` was given
        """
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                if value_fn is None:
                    raise MultimeterError(f"Gauge '{name}' does not exist and no value function was given")
                metric = Gauge(value_fn)
                self._metrics[name] = metric
                logger.debug(f"Created gauge '{name}' in {self!r}")
                return metric
        if metric.kind is not MetricKind.GAUGE:
            logger.warning(f"Refusing to redeclare {metric.kind.value} '{name}' as gauge in {self!r}")
            raise MetricTypeConflictError(name, metric.kind.value, MetricKind.GAUGE.value)
        if value_fn is not None:
            logger.warning(f"Refusing to redeclare gauge '{name}' in {self!r}")
            raise GaugeRedeclaredError(name)
        return metric

    def get(self, name: str) -> Optional[Metric]:
        """Look ``name`` up in this registry's own catalog only."""
        return self._metrics.get(name)

    def metrics(self) -> List[Tuple[str, Metric]]:
        with self._lock:
            return list(self._metrics.items())

    # Tree

    def sub_registry(self, scope: str, instance_id: Optional[Any] = None) -> "Registry":
        """Get or create a child registry.

        Without ``instance_id`` this returns the plain child ``scope``.
        With one, ``scope`` names an InstanceGroup and the member keyed by
        ``str(instance_id)`` is returned.

        Raises:
            ScopeKindConflictError: ``scope`` already holds the other kind of child
        """
        if instance_id is not None:
            return self._instance_group(scope, instance_id).member(instance_id)

        with self._lock:
            child = self._children.get(scope)
            if child is None:
                child = Registry(scope, parent=self)
                self._children[scope] = child
                logger.debug(f"Created sub registry {scope!r} under {self!r}")
            elif isinstance(child, InstanceGroup):
                logger.warning(f"Scope {scope!r} under {self!r} is an instance group")
                raise ScopeKindConflictError(scope, "instance group")
            return child

    def private_registry(self, scope: str, instance_id: Any) -> "Registry":
        """Create a new, unshared member of the instance group ``scope``.

        Every call returns a fresh registry, even for an ``instance_id``
        that is already taken; such members get a ``#<n>`` suffix.

        Raises:
            ScopeKindConflictError: ``scope`` is a plain sub registry
        """
        return self._instance_group(scope, instance_id).add_member(instance_id)

    def _instance_group(self, scope: str, instance_id: Any) -> InstanceGroup:
        with self._lock:
            child = self._children.get(scope)
            if child is None:
                child = InstanceGroup(scope, parent=self)
                self._children[scope] = child
                logger.debug(f"Created instance group {scope!r} under {self!r}")
            elif not isinstance(child, InstanceGroup):
                logger.warning(f"Scope {scope!r} under {self!r} is a plain sub registry")
                raise ScopeKindConflictError(scope, "plain sub registry", str(instance_id))
            return child

    def children(self) -> List[str]:
        with self._lock:
            return list(self._children)

    def _child_nodes(self) -> List[Union["Registry", InstanceGroup]]:
        with self._lock:
            return list(self._children.values())

    def find_metric(self, name: str) -> Optional[Metric]:
        """Find ``name`` here, or anywhere below, depth first in creation order."""
        metric = self.get(name)
        if metric is not None:
            return metric
        for child in self._child_nodes():
            metric = child.find_metric(name)
            if metric is not None:
                return metric
        return None

    # Serialization

    def to_dict(self) -> ScopeMap:
        """Serialize this registry and every descendant.

        Returns a mapping from scope name to that scope's metrics. Plain
        descendants appear as sibling keys. Scopes that would map to an
        empty dict are left out at every depth.
        """
        result: ScopeMap = {}
        own = {name: metric.to_dict() for name, metric in self.metrics()}
        if own:
            result[self.scope] = own
        for child in self._child_nodes():
            merge_scopes(result, child.to_dict())
        return result
