"""Domain registry: domain name -> handler, plus enable flags.

Built once at startup and frozen; lookups after that are lock-free reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from mategate.services.base import DomainHandler


class RegistryFrozenError(RuntimeError):
    """Raised when registering after :meth:`DomainRegistry.freeze`."""


@dataclass(frozen=True)
class _Entry:
    handler: DomainHandler
    enabled: bool


class DomainRegistry:
    """Registered domain facades."""

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._frozen = False

    def register(self, name: str, handler: DomainHandler, *, enabled: bool = True) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Registry is frozen; cannot register {name!r}")
        if name in self._entries:
            raise ValueError(f"Domain already registered: {name}")
        self._entries[name] = _Entry(handler=handler, enabled=enabled)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, name: str) -> DomainHandler | None:
        """Handler for *name*, or None if no such domain is registered.

        Disabled domains still resolve; the dispatcher refuses them.
        """
        entry = self._entries.get(name)
        return entry.handler if entry is not None else None

    def is_enabled(self, name: str) -> bool:
        entry = self._entries.get(name)
        return entry is not None and entry.enabled

    def names(self) -> list[str]:
        return sorted(self._entries)

    def describe(self) -> list[dict[str, Any]]:
        """Every domain with its enable flag and command names."""
        return [
            {
                "domain": name,
                "enabled": entry.enabled,
                "commands": sorted(entry.handler.commands),
            }
            for name, entry in sorted(self._entries.items())
        ]
