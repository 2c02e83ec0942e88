"""Analyzer registry for discovering and instantiating analyzers.

Usage:
    @register_analyzer(Domain.SMC)
    class SMCAnalyzer(BaseAnalyzer):
        ...

    analyzer = create_analyzer(Domain.SMC, order_block_lookback=30)
    analyzers = create_all_analyzers()
"""

from __future__ import annotations

import logging
from typing import Any

from signal_core.models.analysis import Domain

logger = logging.getLogger(__name__)

# Global registry: domain -> analyzer class
_REGISTRY: dict[Domain, type] = {}


def register_analyzer(domain: Domain):
    """Decorator to register an analyzer class for a domain.

    Raises:
        ValueError: If the domain already has an analyzer registered.
    """

    def decorator(cls):
        if domain in _REGISTRY:
            raise ValueError(
                f"Analyzer for '{domain.value}' is already registered by {_REGISTRY[domain].__name__}"
            )
        _REGISTRY[domain] = cls
        logger.debug("Registered analyzer: %s -> %s", domain.value, cls.__name__)
        return cls

    return decorator


def get_analyzer_class(domain: Domain | str) -> type:
    """Get the analyzer class for a domain (without instantiating).

    Raises:
        KeyError: If no analyzer is registered for the domain.
    """
    try:
        key = Domain(domain)
    except ValueError:
        key = None
    cls = _REGISTRY.get(key) if key is not None else None
    if cls is None:
        available = ", ".join(sorted(d.value for d in _REGISTRY)) or "(none)"
        raise KeyError(f"Unknown analyzer '{domain}'. Available: {available}")
    return cls


def create_analyzer(domain: Domain | str, **kwargs: Any):
    """Create an analyzer instance for a domain.

    Args:
        domain: Registered domain (enum or its string value).
        **kwargs: Lookback/threshold overrides passed to the constructor.
    """
    return get_analyzer_class(domain)(**kwargs)


def create_all_analyzers(overrides: dict[str, dict[str, Any]] | None = None) -> list:
    """Instantiate every registered analyzer in Domain declaration order.

    Args:
        overrides: Optional per-domain constructor kwargs keyed by domain value.
    """
    overrides = overrides or {}
    return [
        _REGISTRY[domain](**overrides.get(domain.value, {}))
        for domain in Domain
        if domain in _REGISTRY
    ]


def list_analyzers() -> list[str]:
    """Return a sorted list of registered domain names."""
    return sorted(d.value for d in _REGISTRY)
