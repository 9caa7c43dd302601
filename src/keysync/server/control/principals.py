"""Principals (end users) and the permission table they are resolved from."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

WILDCARD_PERMISSION = "*"


@dataclass(frozen=True, slots=True)
class Principal:
    name: str
    permissions: frozenset[str] = field(default_factory=frozenset)

    def has_permission(self, permission: str) -> bool:
        if not permission:
            return True
        return permission in self.permissions or WILDCARD_PERMISSION in self.permissions


# Operator identity used for console-issued commands (e.g. SIGHUP reload).
CONSOLE = Principal(name="console", permissions=frozenset({WILDCARD_PERMISSION}))


class PrincipalTable:
    def __init__(self, entries: Optional[Mapping[str, Iterable[str]]] = None) -> None:
        self._entries: Dict[str, frozenset[str]] = {}
        self.replace(entries or {})

    def replace(self, entries: Mapping[str, Iterable[str]]) -> None:
        self._entries = {str(name): frozenset(str(p) for p in perms) for name, perms in entries.items()}

    def resolve(self, name: str) -> Principal:
        permissions = self._entries.get(name)
        if permissions is None:
            logger.debug("Principal %r has no configured permissions", name)
            permissions = frozenset()
        return Principal(name=name, permissions=permissions)


__all__ = ["CONSOLE", "WILDCARD_PERMISSION", "Principal", "PrincipalTable"]
