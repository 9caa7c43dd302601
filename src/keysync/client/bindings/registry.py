"""Host input-binding registry contracts plus an in-memory host.

The reconciler only ever creates, keeps, or disposes handles. A host
adapter owns whatever privileged access the real UI framework needs to
splice bindings into its own collections.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class RegistryImmutable(RuntimeError):
    """Raised by a category index that cannot be mutated in place."""


@runtime_checkable
class TriggerHandle(Protocol):
    def was_triggered(self) -> bool:
        """Consume one pending trigger event; False when none are pending."""


@runtime_checkable
class BindingRegistry(Protocol):
    """Surface the reconciler needs from the host's binding registry."""

    def create_binding(self, label: str, default_trigger: int, category: str) -> TriggerHandle: ...

    def dispose_binding(self, handle: TriggerHandle) -> None: ...


@runtime_checkable
class CategoryIndex(Protocol):
    """Shared category -> priority ordering lookup.

    ``put`` raises :class:`RegistryImmutable` when the backing mapping is
    frozen; callers then rebuild it through ``replace_all``.
    """

    def get(self, tag: str) -> Optional[int]: ...

    def put(self, tag: str, priority: int) -> None: ...

    def remove(self, tag: str) -> Optional[int]: ...

    def replace_all(self, mapping: Mapping[str, int]) -> None: ...

    def snapshot(self) -> Dict[str, int]: ...


def refresh_registry(registry: Any) -> None:
    """Invoke the registry's optional ``refresh`` hook (rebuild key lookups)."""

    refresh = getattr(registry, "refresh", None)
    if callable(refresh):
        refresh()


class CategoryOrderIndex:
    """Category ordering index that may start out frozen."""

    def __init__(self, entries: Optional[Mapping[str, int]] = None, *, frozen: bool = False) -> None:
        base = dict(entries or {})
        self._entries: Mapping[str, int] = MappingProxyType(base) if frozen else base
        self.replacements = 0

    @property
    def frozen(self) -> bool:
        return isinstance(self._entries, MappingProxyType)

    def get(self, tag: str) -> Optional[int]:
        return self._entries.get(tag)

    def put(self, tag: str, priority: int) -> None:
        try:
            self._entries[tag] = int(priority)  # type: ignore[index]
        except TypeError as exc:
            raise RegistryImmutable("category order index is frozen") from exc

    def remove(self, tag: str) -> Optional[int]:
        if tag not in self._entries:
            return None
        if self.frozen:
            # a frozen index is rebuilt without the tag
            remaining = {key: value for key, value in self._entries.items() if key != tag}
            priority = self._entries[tag]
            self.replace_all(remaining)
            return priority
        return self._entries.pop(tag)  # type: ignore[union-attr]

    def replace_all(self, mapping: Mapping[str, int]) -> None:
        self._entries = {str(key): int(value) for key, value in mapping.items()}
        self.replacements += 1

    def snapshot(self) -> Dict[str, int]:
        return dict(self._entries)

    def __contains__(self, tag: object) -> bool:
        return tag in self._entries

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(eq=False)
class BindingHandle:
    """Live binding owned by :class:`InMemoryBindingRegistry`.

    ``trigger`` is the user-assigned input code; it starts at the default
    and is never touched by reconciliation.
    """

    label: str
    default_trigger: int
    category: str
    trigger: int = field(init=False)
    disposed: bool = field(default=False, init=False)
    _pending: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        self.trigger = int(self.default_trigger)

    def press(self, times: int = 1) -> None:
        if self.disposed:
            return
        self._pending += max(0, int(times))

    def was_triggered(self) -> bool:
        if self._pending <= 0:
            return False
        self._pending -= 1
        return True

    @property
    def pending(self) -> int:
        return self._pending


class InMemoryBindingRegistry:
    """Reference host registry keeping bindings in an ordered list."""

    def __init__(self, builtin: Optional[List[Any]] = None) -> None:
        self.bindings: List[Any] = list(builtin or [])
        self.created = 0
        self.disposed = 0
        self.refreshes = 0

    def create_binding(self, label: str, default_trigger: int, category: str) -> BindingHandle:
        handle = BindingHandle(label=label, default_trigger=int(default_trigger), category=category)
        self.bindings.append(handle)
        self.created += 1
        return handle

    def dispose_binding(self, handle: BindingHandle) -> None:
        try:
            self.bindings.remove(handle)
        except ValueError:
            logger.debug("dispose_binding: handle %r not registered", handle)
            return
        handle.disposed = True
        self.disposed += 1

    def refresh(self) -> None:
        self.refreshes += 1

    def by_trigger(self, trigger: int) -> List[BindingHandle]:
        return [
            handle
            for handle in self.bindings
            if isinstance(handle, BindingHandle) and handle.trigger == int(trigger)
        ]


__all__ = [
    "BindingHandle",
    "BindingRegistry",
    "CategoryIndex",
    "CategoryOrderIndex",
    "InMemoryBindingRegistry",
    "RegistryImmutable",
    "TriggerHandle",
    "refresh_registry",
]
