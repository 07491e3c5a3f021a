"""InstanceGroup - sibling registries sharing one scope, keyed by instance id.

When serialized, metrics defined by a single member pass through as they
are. Metrics defined by several members are folded into an aggregate
wrapper holding min/max/sum/avg of their scalar plus each member's own
value under ``parts``.
"""

import threading
import weakref
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from .types import METRIC_TYPES, MetricKind, Metric

if TYPE_CHECKING:
    from .registry import Registry, ScopeMap

# Which field of a serialized metric can be combined, per type tag
SCALAR_FIELDS: Dict[str, str] = {kind.value: cls.scalar_field for kind, cls in METRIC_TYPES.items()}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def aggregate_total(values: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Summarize the scalar of several serialized metrics of the same kind.

    Returns None when the values can't be combined: mixed kinds, kinds
    without a scalar (e.g. nested aggregates) or non-numeric scalars.
    """
    kinds = {value.get("type") for value in values}
    if len(kinds) != 1:
        return None
    kind = kinds.pop()
    field = SCALAR_FIELDS.get(kind)
    if field is None:
        return None
    scalars = [value.get(field) for value in values]
    if not all(_is_number(scalar) for scalar in scalars):
        return None
    total = sum(scalars)
    return {
        "type": kind,
        field: {
            "min": min(scalars),
            "max": max(scalars),
            "sum": total,
            "avg": total / float(len(scalars)),
        },
    }


def aggregate(parts: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    """Build the aggregate wrapper for values keyed by instance id."""
    wrapper: Dict[str, Any] = {"type": MetricKind.AGGREGATE.value}
    total = aggregate_total(list(parts.values()))
    if total is not None:
        wrapper["total"] = total
    wrapper["parts"] = dict(parts)
    return wrapper


class InstanceGroup:
    """Container for registries that share ``scope`` under one parent."""

    def __init__(self, scope: str, parent: Optional["Registry"] = None):
        self.scope = scope
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self._members: Dict[str, "Registry"] = {}
        self._lock = threading.Lock()

    @property
    def parent(self) -> Optional["Registry"]:
        return self._parent_ref() if self._parent_ref is not None else None

    def __repr__(self) -> str:
        return f"<InstanceGroup {self.scope!r} members={len(self._members)}>"

    def __contains__(self, instance_id: Any) -> bool:
        return str(instance_id) in self._members

    def member(self, instance_id: Any) -> "Registry":
        """Get or create the member registry for ``instance_id``."""
        # Import here to avoid circular imports
        from .registry import Registry

        instance_id = str(instance_id)
        with self._lock:
            registry = self._members.get(instance_id)
            if registry is None:
                registry = Registry(self.scope, instance_id=instance_id, parent=self.parent)
                self._members[instance_id] = registry
            return registry

    def add_member(self, instance_id: Any) -> "Registry":
        """Always create a new member, suffixing ``#<n>`` when the id is taken."""
        from .registry import Registry

        base = str(instance_id)
        with self._lock:
            key = base
            n = 1
            while key in self._members:
                n += 1
                key = f"{base}#{n}"
            registry = Registry(self.scope, instance_id=key, parent=self.parent)
            self._members[key] = registry
            return registry

    def members(self) -> List[Tuple[str, "Registry"]]:
        with self._lock:
            return list(self._members.items())

    def find_metric(self, name: str) -> Optional[Metric]:
        for _, registry in self.members():
            metric = registry.find_metric(name)
            if metric is not None:
                return metric
        return None

    def to_dict(self) -> "ScopeMap":
        """Serialize all members, aggregating names defined by more than one."""
        snapshots = [(instance_id, registry.to_dict()) for instance_id, registry in self.members()]

        # Union of scope keys and names, in first-seen order
        layout: Dict[str, Dict[str, None]] = {}
        for _, snapshot in snapshots:
            for scope, values in snapshot.items():
                names = layout.setdefault(scope, {})
                for name in values:
                    names.setdefault(name)

        result: "ScopeMap" = {}
        for scope, names in layout.items():
            merged: Dict[str, Any] = {}
            for name in names:
                parts = {
                    instance_id: snapshot[scope][name]
                    for instance_id, snapshot in snapshots
                    if name in snapshot.get(scope, {})
                }
                if len(parts) == 1:
                    merged[name] = next(iter(parts.values()))
                else:
                    merged[name] = aggregate(parts)
            result[scope] = merged
        return result
