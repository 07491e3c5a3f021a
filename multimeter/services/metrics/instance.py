"""Process-wide cache of root registries keyed by (group, scope).

Roots are created on first request and are never removed.
"""

import threading
from typing import Dict, List, Optional, Tuple

from multimeter.core.logging_config import get_logger
from .registry import Registry

logger = get_logger(__name__)

# Module-level cache, populated lazily
_registries: Dict[Tuple[str, str], Registry] = {}
_lock = threading.Lock()


def obtain_registry(group: str, scope: str) -> Registry:
    """Get or create the root registry for ``(group, scope)``.

    Args:
        group: Name of the group the registry belongs to
        scope: Scope name of the root registry

    Returns:
        The same Registry object for every call with an equal pair
    """
    key = (group, scope)
    with _lock:
        registry = _registries.get(key)
        if registry is None:
            registry = Registry(scope)
            _registries[key] = registry
            logger.info(f"Created root registry group={group!r} scope={scope!r}")
        return registry


def find_registry(group: str, scope: str) -> Optional[Registry]:
    """Return the root registry for ``(group, scope)`` without creating it."""
    with _lock:
        return _registries.get((group, scope))


def registries() -> List[Tuple[str, str, Registry]]:
    """Snapshot of every root registry as ``(group, scope, registry)``."""
    with _lock:
        return [(group, scope, registry) for (group, scope), registry in _registries.items()]
