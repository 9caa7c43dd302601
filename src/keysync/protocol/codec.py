"""Byte-level encoding for keysync messages.

Payloads are compact UTF-8 JSON with no length prefix; the transport
supplies message boundaries. All functions here are pure.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping

from .messages import ActionDescriptor, InvocationNotice

_SEPARATORS = (",", ":")


class MalformedMessage(ValueError):
    """Raised when an inbound payload is not a well-formed keysync message."""


def _loads(raw: bytes | bytearray | str) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessage("payload is not valid UTF-8") from exc
    else:
        text = raw
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedMessage(f"payload is not valid JSON: {exc.msg}") from exc
    except (ValueError, RecursionError) as exc:
        # Valid JSON the decoder still refuses: oversized integers, deep nesting.
        raise MalformedMessage(f"payload could not be decoded: {exc.__class__.__name__}") from exc


def _dumps(obj: Any) -> bytes:
    return json.dumps(obj, separators=_SEPARATORS, ensure_ascii=False).encode("utf-8")


def encode_catalog(descriptors: Iterable[ActionDescriptor]) -> bytes:
    """Serialize descriptors, in order, as a sync message."""

    return _dumps([descriptor.to_dict() for descriptor in descriptors])


def decode_catalog(raw: bytes | bytearray | str) -> List[ActionDescriptor]:
    """Parse a sync message into an ordered descriptor list.

    Duplicate ids within one message are rejected so the reconciler never
    has to pick a winner for ids coming off the wire.
    """

    data = _loads(raw)
    if not isinstance(data, list):
        raise MalformedMessage("sync message must be a JSON array")
    descriptors: List[ActionDescriptor] = []
    seen: set[str] = set()
    for index, entry in enumerate(data):
        if not isinstance(entry, Mapping):
            raise MalformedMessage(f"sync entry {index} must be an object")
        try:
            descriptor = ActionDescriptor.from_dict(entry)
        except ValueError as exc:
            raise MalformedMessage(f"sync entry {index}: {exc}") from exc
        if descriptor.id in seen:
            raise MalformedMessage(f"sync entry {index}: duplicate id '{descriptor.id}'")
        seen.add(descriptor.id)
        descriptors.append(descriptor)
    return descriptors


def encode_invocation(action_id: str) -> bytes:
    return _dumps(InvocationNotice(action_id=action_id).to_dict())


def decode_invocation(raw: bytes | bytearray | str) -> str:
    """Return the action id carried by an invocation notice."""

    data = _loads(raw)
    if not isinstance(data, Mapping):
        raise MalformedMessage("invocation notice must be a JSON object")
    try:
        notice = InvocationNotice.from_dict(data)
    except ValueError as exc:
        raise MalformedMessage(f"invocation notice: {exc}") from exc
    if not notice.action_id:
        raise MalformedMessage("invocation notice: empty action_id")
    return notice.action_id


__all__ = [
    "MalformedMessage",
    "decode_catalog",
    "decode_invocation",
    "encode_catalog",
    "encode_invocation",
]
