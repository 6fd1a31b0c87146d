"""Destroyer registry.

Maps service names to ServiceDestroyer classes discovered in the
``teardown.destroy.destroyers`` package.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
from typing import Dict, List, Optional, Type

from .destroyers.base import ServiceDestroyer
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class DestroyerRegistry:
    """Registry of destroyer classes keyed by service name.

    The registry automatically discovers every ServiceDestroyer subclass in
    the destroyers package. Instances are built on demand so each run gets
    fresh destroyers bound to its own retry policy.
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.retry_policy = retry_policy or RetryPolicy()
        self.classes: Dict[str, Type[ServiceDestroyer]] = {}
        self._instances: Dict[str, ServiceDestroyer] = {}
        self._load_destroyers()

    def _load_destroyers(self) -> None:
        """Import every destroyer module and register its concrete classes."""
        from . import destroyers

        for _, modname, _ in pkgutil.iter_modules(destroyers.__path__):
            if modname == "base":
                continue

            module = importlib.import_module(f"{destroyers.__name__}.{modname}")
            for _, obj in inspect.getmembers(module, inspect.isclass):
                if not issubclass(obj, ServiceDestroyer) or inspect.isabstract(obj):
                    continue
                # Subclasses imported into other modules are registered once
                if obj.__module__ != module.__name__:
                    continue
                self.register(obj)

    def register(self, cls: Type[ServiceDestroyer]) -> None:
        """Register a destroyer class under its service name.

        Raises:
            ValueError: If another class already uses the service name
        """
        name = cls().service_name
        existing = self.classes.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(f"Duplicate destroyer for {name}: {existing.__name__} and {cls.__name__}")
        self.classes[name] = cls
        self._instances.pop(name, None)
        logger.debug(f"Registered destroyer {name} ({cls.__name__})")

    def get(self, name: str) -> ServiceDestroyer:
        """Return the destroyer instance for a service name.

        Raises:
            KeyError: If no destroyer is registered under that name
        """
        if name not in self._instances:
            if name not in self.classes:
                raise KeyError(f"No destroyer registered for {name!r}")
            self._instances[name] = self.classes[name](retry_policy=self.retry_policy)
        return self._instances[name]

    def set(self, destroyer: ServiceDestroyer) -> None:
        """Use a prebuilt destroyer instance (e.g., with a custom clock)."""
        self.classes[destroyer.service_name] = type(destroyer)
        self._instances[destroyer.service_name] = destroyer

    def names(self) -> List[str]:
        return sorted(self.classes)

    def all(self) -> List[ServiceDestroyer]:
        return [self.get(name) for name in self.names()]

    def __contains__(self, name: object) -> bool:
        return name in self.classes
