"""The ``/keysync`` administrative command.

``/keysync reload`` re-reads the configuration store, rebuilds the
catalog and pushes a fresh sync message to every connected principal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from keysync.server.catalog import ActionCatalog
from keysync.server.config.models import ADMIN_PERMISSION
from keysync.server.control.principals import Principal

logger = logging.getLogger(__name__)

ADMIN_COMMAND = "keysync"
_PREFIX = "[keysync]"
_USAGE = f"{_PREFIX} Usage: /{ADMIN_COMMAND} reload"

Reply = Callable[[Principal, str], None]


@dataclass(frozen=True)
class ReloadReport:
    actions_loaded: int
    principals_synced: int


def log_reply(principal: Principal, text: str) -> None:
    logger.info("-> %s: %s", principal.name, text)


class AdminCommand:
    def __init__(
        self,
        catalog: ActionCatalog,
        broadcast_sync: Callable[[], int],
        *,
        admin_permission: str = ADMIN_PERMISSION,
        reply: Optional[Reply] = None,
        on_reload: Optional[Callable[[], None]] = None,
    ) -> None:
        self._catalog = catalog
        self._broadcast_sync = broadcast_sync
        self._admin_permission = admin_permission
        self._reply = reply or log_reply
        self._on_reload = on_reload

    def __call__(self, principal: Principal, args: Sequence[str]) -> Optional[ReloadReport]:
        if not args:
            self._reply(principal, _USAGE)
            return None
        if args[0].lower() != "reload":
            self._reply(principal, f"{_PREFIX} Unknown subcommand. Usage: /{ADMIN_COMMAND} reload")
            return None
        if not principal.has_permission(self._admin_permission):
            logger.info("%s lacks %r for /%s reload", principal.name, self._admin_permission, ADMIN_COMMAND)
            self._reply(principal, f"{_PREFIX} You do not have permission to do that.")
            return None
        return self.reload(principal)

    def reload(self, principal: Principal) -> ReloadReport:
        self._catalog.reload()
        if self._on_reload is not None:
            self._on_reload()
        loaded = len(self._catalog)
        self._reply(principal, f"{_PREFIX} Configuration reloaded. {loaded} actions loaded.")
        if loaded == 0:
            self._reply(principal, f"{_PREFIX} No actions configured to send.")
            logger.info("Reload by %s: no actions configured", principal.name)
            return ReloadReport(actions_loaded=0, principals_synced=0)
        synced = self._broadcast_sync()
        self._reply(principal, f"{_PREFIX} Sync sent to {synced} connected principal(s).")
        logger.info("Reload by %s. Actions: %d, principals synced: %d", principal.name, loaded, synced)
        return ReloadReport(actions_loaded=loaded, principals_synced=synced)


__all__ = ["ADMIN_COMMAND", "AdminCommand", "ReloadReport", "log_reply"]
