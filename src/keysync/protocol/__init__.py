"""Wire protocol shared by the keysync client and server."""

from __future__ import annotations

from .codec import (
    MalformedMessage,
    decode_catalog,
    decode_invocation,
    encode_catalog,
    encode_invocation,
)
from .messages import (
    CHANNEL_ID,
    ActionDescriptor,
    InvocationNotice,
)

__all__ = [
    "CHANNEL_ID",
    "ActionDescriptor",
    "InvocationNotice",
    "MalformedMessage",
    "decode_catalog",
    "decode_invocation",
    "encode_catalog",
    "encode_invocation",
]
