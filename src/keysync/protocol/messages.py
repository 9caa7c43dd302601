"""Message shapes carried on the keysync channel.

Two payloads exist. The sync message travels server -> client and is a
JSON array of action descriptors. The invocation notice travels
client -> server and names a single action id.
"""

from __future__ import annotations

from dataclasses import dataclass
from numbers import Integral
from typing import Any, Dict, Mapping

CHANNEL_ID = "keysync:main"

DESCRIPTOR_ID_KEY = "id"
DESCRIPTOR_LABEL_KEY = "label"
DESCRIPTOR_TRIGGER_KEY = "default_key"
NOTICE_ACTION_KEY = "action_id"


def _require_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"field '{key}' must be a string")
    return value


def _require_int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    # bool is an Integral subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise ValueError(f"field '{key}' must be an integer")
    return int(value)


@dataclass(frozen=True, slots=True)
class ActionDescriptor:
    """Client-visible subset of an action."""

    id: str
    label: str
    default_trigger: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            DESCRIPTOR_ID_KEY: self.id,
            DESCRIPTOR_LABEL_KEY: self.label,
            DESCRIPTOR_TRIGGER_KEY: int(self.default_trigger),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActionDescriptor":
        action_id = _require_str(data, DESCRIPTOR_ID_KEY)
        if not action_id:
            raise ValueError("field 'id' must not be empty")
        return cls(
            id=action_id,
            label=_require_str(data, DESCRIPTOR_LABEL_KEY),
            default_trigger=_require_int(data, DESCRIPTOR_TRIGGER_KEY),
        )


@dataclass(frozen=True, slots=True)
class InvocationNotice:
    action_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {NOTICE_ACTION_KEY: self.action_id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InvocationNotice":
        return cls(action_id=_require_str(data, NOTICE_ACTION_KEY))


__all__ = [
    "CHANNEL_ID",
    "DESCRIPTOR_ID_KEY",
    "DESCRIPTOR_LABEL_KEY",
    "DESCRIPTOR_TRIGGER_KEY",
    "NOTICE_ACTION_KEY",
    "ActionDescriptor",
    "InvocationNotice",
]
