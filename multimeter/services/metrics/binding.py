"""Per-instance registries for arbitrary stateful objects.

A class declares an ``InstanceMetrics`` attribute naming how to compute
an instance id from an object, an optional group scope and a fixed list
of metric bindings. Reading the attribute on an object resolves (once)
and returns that object's Registry.

Usage example:
```python
class Worker:
    metrics = InstanceMetrics(
        identity=lambda worker: f"worker-{worker.id}",
        group_scope="workers",
        bindings=[counter("jobs"), gauge("backlog", lambda worker: len(worker.queue))],
    )

    def run(self, job):
        self.metrics.counter("jobs").inc()
```

Without ``group_scope`` every object gets its own private registry.
With it, objects computing the same id share one registry, so counts
recorded through one are visible through the other.
"""

import threading
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from multimeter.core.config import settings
from multimeter.core.logging_config import get_logger
from .errors import MetricTypeConflictError
from .instance import obtain_registry
from .registry import Registry
from .types import MetricKind

logger = get_logger(__name__)

# Serializes binding materialization so two objects resolving the same
# shared registry at once can't both declare its gauges
_materialize_lock = threading.Lock()


@dataclass(frozen=True)
class MetricBinding:
    """A metric every resolved registry of a type must carry."""
    name: str
    kind: MetricKind
    accessor: Optional[Callable[[Any], Any]] = None

    def __post_init__(self):
        if self.kind is MetricKind.AGGREGATE:
            raise ValueError("aggregate is not a declarable metric kind")
        if self.kind is MetricKind.GAUGE and self.accessor is None:
            raise ValueError(f"Gauge binding '{self.name}' needs an accessor")
        if self.kind is not MetricKind.GAUGE and self.accessor is not None:
            raise ValueError(f"Only gauge bindings take an accessor, '{self.name}' is a {self.kind.value}")


def counter(name: str) -> MetricBinding:
    return MetricBinding(name, MetricKind.COUNTER)


def meter(name: str) -> MetricBinding:
    return MetricBinding(name, MetricKind.METER)


def histogram(name: str) -> MetricBinding:
    return MetricBinding(name, MetricKind.HISTOGRAM)


def timer(name: str) -> MetricBinding:
    return MetricBinding(name, MetricKind.TIMER)


def gauge(name: str, accessor: Callable[[Any], Any]) -> MetricBinding:
    return MetricBinding(name, MetricKind.GAUGE, accessor)


class GaugeSource:
    """Value function of a bound gauge, reading from any live bound object.

    Objects are held weakly and tried in binding order, so a gauge shared
    by several objects keeps reporting while any of them is alive. It
    reads None once all of them have been collected.
    """

    def __init__(self, accessor: Callable[[Any], Any]):
        self.accessor = accessor
        self._refs: List[weakref.ref] = []
        self._lock = threading.Lock()

    def bind(self, obj: Any) -> None:
        with self._lock:
            self._refs = [ref for ref in self._refs if ref() is not None]
            if not any(ref() is obj for ref in self._refs):
                self._refs.append(weakref.ref(obj))

    def read(self) -> Any:
        with self._lock:
            targets = [ref() for ref in self._refs]
        for target in targets:
            if target is not None:
                return self.accessor(target)
        return None


# registry -> gauge name -> source, for gauges declared through bindings
_gauge_sources: "weakref.WeakKeyDictionary[Registry, Dict[str, GaugeSource]]" = weakref.WeakKeyDictionary()


def materialize(registry: Registry, obj: Any, bindings: Sequence[MetricBinding]) -> None:
    """Declare ``bindings`` in ``registry`` and bind ``obj`` to its gauges.

    Safe to repeat: other kinds are get-or-create, and gauges that already
    exist are never redeclared. Every binding is checked against the
    catalog before anything is created.

    Raises:
        MetricTypeConflictError: a binding's name is taken by another kind
    """
    with _materialize_lock:
        for binding in bindings:
            existing = registry.get(binding.name)
            if existing is not None and existing.kind is not binding.kind:
                logger.warning(f"Binding {binding.kind.value} '{binding.name}' conflicts with {registry!r}")
                raise MetricTypeConflictError(binding.name, existing.kind.value, binding.kind.value)

        sources = _gauge_sources.setdefault(registry, {})
        for binding in bindings:
            if binding.kind is not MetricKind.GAUGE:
                getattr(registry, binding.kind.value)(binding.name)
                continue
            source = sources.get(binding.name)
            if source is None:
                if binding.name in registry:
                    # Declared directly on the registry, not through a binding
                    continue
                source = GaugeSource(binding.accessor)
                registry.gauge(binding.name, source.read)
                sources[binding.name] = source
            source.bind(obj)


class IRegistryProvider(Protocol):
    """Strategy deciding which Registry an object resolves to."""

    def acquire(self, obj: Any, root: Registry, type_name: str, identity: str) -> Registry:
        """Return the registry for ``obj`` with its bindings declared.

        Args:
            obj: The object being resolved
            root: Root registry of the declaring type
            type_name: Name of the declaring class
            identity: Instance id computed from ``obj``
        """
        ...


class PrivateRegistryProvider:
    """Gives every object its own registry, even when ids collide.

    The registries are members of the ``type_name`` instance group under
    the root, so they are exported and aggregated like any other.
    """

    def __init__(self, bindings: Sequence[MetricBinding] = ()):
        self.bindings: Tuple[MetricBinding, ...] = tuple(bindings)

    def acquire(self, obj: Any, root: Registry, type_name: str, identity: str) -> Registry:
        registry = root.private_registry(type_name, identity)
        materialize(registry, obj, self.bindings)
        return registry


class LinkedRegistryProvider:
    """Shares one registry between objects with equal ids under ``group_scope``."""

    def __init__(self, group_scope: str, bindings: Sequence[MetricBinding] = ()):
        self.group_scope = group_scope
        self.bindings: Tuple[MetricBinding, ...] = tuple(bindings)

    def acquire(self, obj: Any, root: Registry, type_name: str, identity: str) -> Registry:
        registry = root.sub_registry(self.group_scope, identity)
        materialize(registry, obj, self.bindings)
        return registry


def _default_identity(obj: Any) -> str:
    return str(id(obj))


class InstanceMetrics:
    """Class attribute resolving each instance to its Registry.

    The resolved registry is cached in the instance ``__dict__``, so
    declaring classes need a ``__dict__`` and must support weak
    references (any class without ``__slots__`` does).
    """

    def __init__(
        self,
        identity: Callable[[Any], Any] = _default_identity,
        group_scope: Optional[str] = None,
        bindings: Sequence[MetricBinding] = (),
        group: Optional[str] = None,
        scope: Optional[str] = None,
    ):
        self.identity = identity
        self.group_scope = group_scope
        self.bindings: Tuple[MetricBinding, ...] = tuple(bindings)
        self.group = group
        self.scope = scope
        self.type_name: Optional[str] = None
        self._attr: Optional[str] = None
        self._resolve_lock = threading.RLock()

        names = [binding.name for binding in self.bindings]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate metric names in bindings: {names}")

        self.provider: IRegistryProvider
        if group_scope is None:
            self.provider = PrivateRegistryProvider(self.bindings)
        else:
            self.provider = LinkedRegistryProvider(group_scope, self.bindings)

    def __set_name__(self, owner: type, name: str) -> None:
        self.type_name = owner.__name__
        self._attr = f"_multimeter_{name}"

    def __get__(self, obj: Any, objtype: Optional[type] = None) -> Any:
        if obj is None:
            return self
        registry = obj.__dict__.get(self._attr)
        if registry is None:
            with self._resolve_lock:
                registry = obj.__dict__.get(self._attr)
                if registry is None:
                    registry = self.resolve(obj)
                    obj.__dict__[self._attr] = registry
        return registry

    def root(self) -> Registry:
        return obtain_registry(self.group or settings.DEFAULT_GROUP, self.scope or settings.DEFAULT_SCOPE)

    def resolve(self, obj: Any) -> Registry:
        """Resolve ``obj`` to a registry without consulting the per-object cache."""
        if self.type_name is None:
            raise TypeError("InstanceMetrics must be declared as a class attribute")
        identity = str(self.identity(obj))
        registry = self.provider.acquire(obj, self.root(), self.type_name, identity)
        logger.debug(f"Resolved {self.type_name} instance {identity!r} to {registry!r}")
        return registry
