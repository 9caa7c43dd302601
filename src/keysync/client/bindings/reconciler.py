"""Differential reconciliation of live bindings against a sync message.

Handles are created the first time an id appears and disposed only when
the id disappears. An id that survives a sync keeps its handle, and with
it whatever trigger the user assigned, even if the server changed the
label or default trigger in the meantime.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping, Sequence
from typing import Any, Dict, NamedTuple, Optional

from keysync.client.bindings.registry import (
    BindingRegistry,
    CategoryIndex,
    RegistryImmutable,
    refresh_registry,
)
from keysync.protocol import ActionDescriptor

logger = logging.getLogger(__name__)

# Sorts after every built-in category of the host.
CATEGORY_PRIORITY = 100


class ReconcileResult(NamedTuple):
    additions: frozenset[str]
    removals: frozenset[str]

    @property
    def changed(self) -> bool:
        return bool(self.additions or self.removals)


class BindingReconciler:
    """Apply sync messages to an active binding set with minimal churn.

    The reconciler is main-thread affine: every call mutates the host
    registry and must run on the loop that owns it.
    """

    def __init__(
        self,
        registry: BindingRegistry,
        category_index: Optional[CategoryIndex] = None,
        *,
        priority: int = CATEGORY_PRIORITY,
    ) -> None:
        self._registry = registry
        self._category_index = category_index
        self._priority = int(priority)
        self._category: Optional[str] = None

    @property
    def category(self) -> Optional[str]:
        return self._category

    def reconcile(
        self,
        current: MutableMapping[str, Any],
        incoming: Sequence[ActionDescriptor],
        category: str,
    ) -> ReconcileResult:
        if self._category is None:
            self.register_category(category)
        elif category != self._category:
            logger.debug(
                "reconcile: keeping category %r for this connection (ignoring %r)",
                self._category,
                category,
            )
        tag = self._category or category

        latest: Dict[str, ActionDescriptor] = {}
        for descriptor in incoming:
            if descriptor.id in latest:
                logger.warning("reconcile: duplicate action id %r; last occurrence wins", descriptor.id)
            latest[descriptor.id] = descriptor

        additions: list[str] = []
        for action_id, descriptor in latest.items():
            if action_id in current:
                logger.debug("reconcile: keeping binding %r (user trigger preserved)", action_id)
                continue
            handle = self._registry.create_binding(descriptor.label, descriptor.default_trigger, tag)
            current[action_id] = handle
            additions.append(action_id)
            logger.info(
                "Binding added: %r -> %s (default trigger %d)",
                action_id,
                descriptor.label,
                descriptor.default_trigger,
            )

        removals: list[str] = []
        for action_id in [key for key in current if key not in latest]:
            handle = current.pop(action_id)
            self._registry.dispose_binding(handle)
            removals.append(action_id)
            logger.info("Binding removed: %r", action_id)

        result = ReconcileResult(additions=frozenset(additions), removals=frozenset(removals))
        refresh_registry(self._registry)
        if result.changed:
            logger.info(
                "Bindings reconciled: +%d -%d, %d active (category %r)",
                len(additions),
                len(removals),
                len(current),
                tag,
            )
        else:
            logger.info("Bindings unchanged; %d active (category %r)", len(current), tag)
        return result

    def teardown(self, current: MutableMapping[str, Any]) -> int:
        """Dispose every handle, clear ``current`` and drop the category.

        Safe to call repeatedly.
        """

        count = len(current)
        if count:
            logger.info("Clearing %d bindings", count)
        for action_id in list(current.keys()):
            handle = current.pop(action_id)
            try:
                self._registry.dispose_binding(handle)
            except Exception:
                logger.exception("Failed to dispose binding %r; dropping it", action_id)
        self.unregister_category()
        refresh_registry(self._registry)
        return count

    def register_category(self, tag: str) -> None:
        self._category = tag
        index = self._category_index
        if index is None:
            return
        if index.get(tag) is not None:
            logger.info("Category %r already registered; skipping", tag)
            return
        try:
            index.put(tag, self._priority)
        except RegistryImmutable:
            logger.info("Category index is immutable; replacing it with a mutable copy")
            entries = index.snapshot()
            entries[tag] = self._priority
            index.replace_all(entries)
        logger.info("Category %r registered with priority %d", tag, self._priority)

    def unregister_category(self) -> None:
        tag = self._category
        self._category = None
        if tag is None or self._category_index is None:
            return
        if self._category_index.remove(tag) is not None:
            logger.info("Category %r removed", tag)


__all__ = ["CATEGORY_PRIORITY", "BindingReconciler", "ReconcileResult"]
