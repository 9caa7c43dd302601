"""Client configuration resolved from ``KEYSYNC_*`` environment values."""

from __future__ import annotations

import getpass
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from keysync.shared.env import coerce_int, coerce_str
from keysync.shared.scheduling import DEFAULT_TICK_MS


def _default_principal() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "player"


@dataclass(frozen=True)
class ClientConfig:
    host: str = "localhost"
    port: int = 8765
    principal: str = "player"
    tick_ms: int = DEFAULT_TICK_MS
    server_name: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            host=coerce_str(env.get("KEYSYNC_HOST"), defaults.host),
            port=coerce_int(env.get("KEYSYNC_PORT"), defaults.port),
            principal=coerce_str(env.get("KEYSYNC_PRINCIPAL"), _default_principal()),
            tick_ms=max(1, coerce_int(env.get("KEYSYNC_TICK_MS"), defaults.tick_ms)),
            server_name=coerce_str(env.get("KEYSYNC_SERVER_NAME")) or None,
        )


__all__ = ["ClientConfig"]
