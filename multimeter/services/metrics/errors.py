"""Exceptions raised by the metrics registry.

All of these are caller-contract violations detected at registration
time. They are raised before anything is mutated, so a registry that
raised is left exactly as it was.
"""

from typing import Optional


class MultimeterError(ValueError):
    """Base class for registry contract violations."""


class MetricTypeConflictError(MultimeterError):
    """A metric name is already bound to a different kind."""

    def __init__(self, name: str, existing_kind: str, requested_kind: str):
        self.name = name
        self.existing_kind = existing_kind
        self.requested_kind = requested_kind
        super().__init__(
            f"Metric '{name}' is already registered as a {existing_kind}, "
            f"cannot redeclare it as a {requested_kind}"
        )


class GaugeRedeclaredError(MultimeterError):
    """A value function was supplied for a gauge that already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Gauge '{name}' already exists and cannot be redeclared")


class ScopeKindConflictError(MultimeterError):
    """A scope is already used by the other kind of child registry."""

    def __init__(self, scope: str, existing_kind: str, instance_id: Optional[str] = None):
        self.scope = scope
        self.existing_kind = existing_kind
        self.instance_id = instance_id
        if instance_id is None:
            requested = "a plain sub registry"
        else:
            requested = f"instance registry '{instance_id}'"
        super().__init__(
            f"Scope '{scope}' is already used by an existing {existing_kind}, "
            f"cannot create {requested} there"
        )
