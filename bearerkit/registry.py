"""Named strategy registries.

One generic registry backs every pluggable family in bearerkit: token
generators, token hashers, token types, audit drivers, revocation strategies
and rotation strategies. Each registry maps a name to an implementation and
tracks a default; the first registration becomes the default unless one is
set explicitly.

Example:
    registry: StrategyRegistry[TokenHasher] = StrategyRegistry("token hasher")
    registry.register("sha256", Sha256TokenHasher())
    registry.register("sha512", Sha512TokenHasher())
    registry.set_default("sha512")
    hasher = registry.default()
"""

from __future__ import annotations

import logging
import threading
from typing import Generic, TypeVar

from .exceptions import NoDefaultStrategyError, UnknownStrategyError

logger = logging.getLogger("bearerkit.registry")

T = TypeVar("T")


class StrategyRegistry(Generic[T]):
    """Name to implementation map with default tracking.

    Lookups of unknown names and of a missing default always raise; nothing is
    silently substituted.
    """

    def __init__(self, kind: str):
        """Initialize the registry.

        Args:
            kind: Human-readable family name used in error messages
                (e.g. "token generator").
        """
        self.kind = kind
        self._entries: dict[str, T] = {}
        self._default: str | None = None
        self._lock = threading.Lock()

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation under a name.

        Re-registering a name replaces the previous implementation.

        Args:
            name: Unique name for the implementation
            implementation: The implementation to register
        """
        with self._lock:
            self._entries[name] = implementation
            if self._default is None:
                self._default = name
        logger.debug(f"Registered {self.kind}: {name}")

    def unregister(self, name: str) -> None:
        """Remove an implementation.

        Removing the current default leaves the registry without one.
        """
        with self._lock:
            if self._entries.pop(name, None) is None:
                return
            if self._default == name:
                self._default = None
        logger.debug(f"Unregistered {self.kind}: {name}")

    def get(self, name: str) -> T:
        """Get an implementation by name.

        Raises:
            UnknownStrategyError: If nothing is registered under the name.
        """
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownStrategyError(self.kind, name) from None

    def has(self, name: str) -> bool:
        """Check whether a name is registered."""
        return name in self._entries

    def default(self) -> T:
        """Get the default implementation.

        Raises:
            NoDefaultStrategyError: If no default has been registered or set.
        """
        if self._default is None:
            raise NoDefaultStrategyError(self.kind)
        return self.get(self._default)

    @property
    def default_name(self) -> str | None:
        """Name of the current default, if any."""
        return self._default

    def set_default(self, name: str) -> None:
        """Make a registered implementation the default.

        Raises:
            UnknownStrategyError: If nothing is registered under the name.
        """
        with self._lock:
            if name not in self._entries:
                raise UnknownStrategyError(self.kind, name)
            self._default = name

    def all(self) -> list[str]:
        """Get all registered names in registration order."""
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
