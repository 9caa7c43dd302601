"""Shared configuration dataclasses for the keysync server."""

from .logging_policy import DebugPolicy, load_debug_policy
from .models import ServerConfig

__all__ = [
    "DebugPolicy",
    "ServerConfig",
    "load_debug_policy",
]
