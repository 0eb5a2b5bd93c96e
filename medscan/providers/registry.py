"""Registry for the available analysis providers."""

from __future__ import annotations

import logging
from importlib import import_module
from typing import Callable, Dict

from ..config import AppConfig
from .base import AnalysisProvider, ProviderInfo


Factory = Callable[..., AnalysisProvider]
logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Tracks provider factories and instantiates the configured one on demand."""

    _factories: Dict[str, Factory] = {}
    _bootstrap_complete: bool = False

    @classmethod
    def register(cls, name: str, factory: Factory) -> None:
        """Register a provider factory under the provided name."""
        cls._factories[name] = factory

    @classmethod
    def unregister(cls, name: str) -> None:
        cls._factories.pop(name, None)

    @classmethod
    def ensure_bootstrapped(cls) -> None:
        if cls._bootstrap_complete:
            return
        modules = [
            "medscan.providers.heuristic",
            "medscan.providers.remote",
        ]
        for module_name in modules:
            import_module(module_name)
        cls._bootstrap_complete = True

    @classmethod
    def names(cls) -> list[str]:
        cls.ensure_bootstrapped()
        return sorted(cls._factories)

    @classmethod
    def list_provider_infos(cls) -> list[ProviderInfo]:
        """Return metadata for all registered providers, ordered by identifier."""
        cls.ensure_bootstrapped()
        return [cls._factories[name]().info() for name in sorted(cls._factories)]

    @classmethod
    def display_name(cls, name: str) -> str:
        """Human-readable name for ``name``, or the identifier itself if unknown."""
        cls.ensure_bootstrapped()
        factory = cls._factories.get(name)
        return factory().info().display_name if factory is not None else name

    @classmethod
    def get(cls, name: str, *, config: AppConfig | None = None) -> AnalysisProvider:
        cls.ensure_bootstrapped()
        try:
            factory = cls._factories[name]
        except KeyError as exc:
            available = ", ".join(sorted(cls._factories))
            raise KeyError(f"Unknown provider '{name}'. Available: {available}") from exc
        instance = factory(config) if config is not None else factory()
        instance.load()
        logger.info("Provider '%s' ready.", name)
        return instance
