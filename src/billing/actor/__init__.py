"""Bill actor registry factory.

Provides get_registry() / set_registry() so the API and tests share one
registry per process.
"""

from billing.actor.registry import BillActorRegistry

_current_registry: BillActorRegistry | None = None


def get_registry() -> BillActorRegistry:
    """Return the current registry, creating one over the default store."""
    global _current_registry
    if _current_registry is None:
        from billing.domain import billing

        _current_registry = BillActorRegistry(billing)
    return _current_registry


def set_registry(registry: BillActorRegistry) -> None:
    """Override the active registry (useful for tests)."""
    global _current_registry
    _current_registry = registry


def reset_registry() -> None:
    """Drop the current registry; the next get_registry() builds a new one."""
    global _current_registry
    _current_registry = None
