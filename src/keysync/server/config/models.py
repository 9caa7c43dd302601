"""Configuration dataclasses for the keysync server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from keysync.server.config.logging_policy import DebugPolicy, load_debug_policy
from keysync.shared.env import coerce_int, coerce_str
from keysync.shared.scheduling import DEFAULT_TICK_MS

ADMIN_PERMISSION = "keysync.admin"


@dataclass(frozen=True)
class ServerConfig:
    """Top-level server configuration values."""

    host: str = "0.0.0.0"
    port: int = 8765
    catalog_path: str = "keysync.json"
    tick_ms: int = DEFAULT_TICK_MS
    # Give a freshly connected client time to initialise before the first sync.
    sync_delay_ticks: int = 40
    admin_permission: str = ADMIN_PERMISSION
    debug_policy: DebugPolicy = field(default_factory=DebugPolicy)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            host=coerce_str(env.get("KEYSYNC_BIND"), defaults.host),
            port=coerce_int(env.get("KEYSYNC_PORT"), defaults.port),
            catalog_path=coerce_str(env.get("KEYSYNC_CATALOG"), defaults.catalog_path),
            tick_ms=max(1, coerce_int(env.get("KEYSYNC_TICK_MS"), defaults.tick_ms)),
            sync_delay_ticks=max(0, coerce_int(env.get("KEYSYNC_SYNC_DELAY_TICKS"), defaults.sync_delay_ticks)),
            admin_permission=coerce_str(env.get("KEYSYNC_ADMIN_PERMISSION"), defaults.admin_permission),
            debug_policy=load_debug_policy(env),
        )


__all__ = ["ADMIN_PERMISSION", "ServerConfig"]
