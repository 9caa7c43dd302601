"""Authoritative mapping from action id to action definition.

The catalog is rebuilt wholesale: a new mapping is fully constructed
before it replaces the old one, so a concurrent ``lookup`` sees either
the old catalog or the new one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from numbers import Integral
from typing import Any, Dict, List, Optional, Protocol

from keysync.protocol import ActionDescriptor, encode_catalog

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """A catalog record is missing required fields or has bad values."""


class ConfigSource(Protocol):
    def load(self) -> List[Any]: ...

    def reload_from_disk(self) -> None: ...


@dataclass(frozen=True, slots=True)
class ActionDefinition:
    id: str
    label: str
    default_trigger: int
    command: str
    permission: str = ""

    @property
    def requires_permission(self) -> bool:
        return bool(self.permission)

    def descriptor(self) -> ActionDescriptor:
        return ActionDescriptor(id=self.id, label=self.label, default_trigger=self.default_trigger)


def _text(record: Mapping[str, Any], key: str) -> str:
    value = record.get(key)
    if value is None:
        return ""
    return str(value).strip()


def parse_definition(record: Any) -> ActionDefinition:
    """Build a definition from one raw configuration record."""

    if not isinstance(record, Mapping):
        raise ConfigError(f"action entry must be a mapping, got {type(record).__name__}")
    action_id = _text(record, "id")
    label = _text(record, "label")
    command = _text(record, "command").lstrip("/")
    missing = [name for name, value in (("id", action_id), ("label", label), ("command", command)) if not value]
    if missing:
        raise ConfigError(f"action entry {action_id or '?'!r} is missing {', '.join(missing)}")
    raw_key = record.get("default_key", 0)
    if isinstance(raw_key, bool) or not isinstance(raw_key, Integral):
        raise ConfigError(f"action {action_id!r}: default_key must be an integer")
    return ActionDefinition(
        id=action_id,
        label=label,
        default_trigger=int(raw_key),
        command=command,
        permission=_text(record, "permission"),
    )


class ActionCatalog:
    def __init__(self, source: Optional[ConfigSource] = None, *, log_catalog: bool = False) -> None:
        self._source = source
        self._log_catalog = log_catalog
        self._actions: Dict[str, ActionDefinition] = {}

    def load(self, records: Iterable[Any]) -> List[ActionDefinition]:
        """Replace the catalog with the valid entries of ``records``.

        Bad entries are skipped with a warning; the rest still load.
        """

        actions: Dict[str, ActionDefinition] = {}
        for index, record in enumerate(records):
            try:
                definition = parse_definition(record)
            except ConfigError as exc:
                logger.warning("Skipping catalog entry %d: %s", index, exc)
                continue
            if definition.id in actions:
                logger.warning("Duplicate action id %r in catalog; keeping the last entry", definition.id)
                del actions[definition.id]
            actions[definition.id] = definition
            if self._log_catalog:
                logger.debug(
                    "Action loaded: %r -> /%s (trigger %d, permission %r)",
                    definition.id,
                    definition.command,
                    definition.default_trigger,
                    definition.permission,
                )
        self._actions = actions
        if not actions:
            logger.warning("Action catalog is empty")
        else:
            logger.info("Action catalog loaded: %d actions", len(actions))
        return list(actions.values())

    def reload(self) -> List[ActionDefinition]:
        """Re-read the configuration source and rebuild the catalog."""

        if self._source is None:
            raise RuntimeError("ActionCatalog.reload requires a configuration source")
        self._source.reload_from_disk()
        return self.load(self._source.load())

    def lookup(self, action_id: str) -> Optional[ActionDefinition]:
        return self._actions.get(action_id)

    def all(self) -> List[ActionDefinition]:
        return list(self._actions.values())

    def descriptors(self) -> List[ActionDescriptor]:
        return [definition.descriptor() for definition in self._actions.values()]

    def encode_sync(self) -> Optional[bytes]:
        """Return the sync message for the current catalog, or None if empty."""

        descriptors = self.descriptors()
        if not descriptors:
            return None
        return encode_catalog(descriptors)

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._actions


__all__ = ["ActionCatalog", "ActionDefinition", "ConfigError", "ConfigSource", "parse_definition"]
