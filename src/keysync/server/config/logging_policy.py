"""Debug/logging policy plumbing for the keysync server."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Optional

from keysync.shared.env import coerce_bool, split_flags

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DebugPolicy:
    enabled: bool = False
    log_catalog: bool = False
    log_sync_payloads: bool = False
    log_invocations: bool = False
    log_sessions: bool = False


_FLAG_MAP: dict[str, Iterable[str]] = {
    "catalog": ("log_catalog",),
    "sync": ("log_sync_payloads",),
    "invocations": ("log_invocations",),
    "sessions": ("log_sessions",),
    "all": ("log_catalog", "log_sync_payloads", "log_invocations", "log_sessions"),
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _load_debug_config(env: Mapping[str, str]) -> tuple[bool, dict[str, object]]:
    raw = env.get("KEYSYNC_DEBUG")
    if raw is None:
        return False, {}
    raw_str = raw.strip()
    if raw_str.lower() in _FALSY:
        return False, {}
    if raw_str.lower() in _TRUTHY:
        return True, {"flags": ["all"]}
    try:
        parsed = json.loads(raw_str)
        if isinstance(parsed, dict):
            enabled = coerce_bool(parsed.get("enabled", True), True)
            return enabled, parsed
        if isinstance(parsed, (list, tuple)):
            return True, {"flags": parsed}
    except json.JSONDecodeError:
        logger.debug("Failed to parse KEYSYNC_DEBUG JSON; treating as flag list", exc_info=True)
    return True, {"flags": raw_str}


def load_debug_policy(env: Optional[Mapping[str, str]] = None) -> DebugPolicy:
    env = os.environ if env is None else env
    enabled, cfg = _load_debug_config(env)
    if not enabled:
        return DebugPolicy()

    flags = split_flags(cfg.get("flags"))
    kwargs = {name: False for name in DebugPolicy.__annotations__.keys() if name != "enabled"}
    for flag, attrs in _FLAG_MAP.items():
        if flag in flags:
            for attr in attrs:
                kwargs[attr] = True
    return DebugPolicy(enabled=True, **kwargs)


__all__ = ["DebugPolicy", "load_debug_policy"]
