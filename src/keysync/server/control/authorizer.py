"""Authorization of inbound invocation notices.

Only ids present in the current catalog are honoured. Unknown ids are a
sign of a forged or stale client and are logged at warning level; the
sender never gets a reply either way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Protocol, Union

from keysync.server.catalog import ActionCatalog, ActionDefinition
from keysync.server.control.principals import Principal
from keysync.shared.scheduling import MainThreadScheduler

logger = logging.getLogger(__name__)


class RejectReason(str, Enum):
    UNKNOWN_ACTION = "unknown_action"
    PERMISSION_DENIED = "permission_denied"


@dataclass(frozen=True, slots=True)
class Accept:
    definition: ActionDefinition


@dataclass(frozen=True, slots=True)
class Reject:
    reason: RejectReason
    action_id: str
    permission: str = ""


Decision = Union[Accept, Reject]


class CommandExecutor(Protocol):
    def run_as_principal(self, principal: Principal, command: str) -> Any: ...


@dataclass
class AuthorizerStats:
    accepted: int = 0
    unknown: int = 0
    denied: int = 0


class InvocationAuthorizer:
    def __init__(
        self,
        catalog: ActionCatalog,
        executor: CommandExecutor,
        scheduler: MainThreadScheduler,
        *,
        log_invocations: bool = False,
    ) -> None:
        self._catalog = catalog
        self._executor = executor
        self._scheduler = scheduler
        self._log_invocations = log_invocations
        self.stats = AuthorizerStats()

    def authorize(self, action_id: str, principal: Principal) -> Decision:
        definition = self._catalog.lookup(action_id)
        if definition is None:
            logger.warning(
                "Unknown action %r received from %s; request rejected",
                action_id,
                principal.name,
            )
            return Reject(reason=RejectReason.UNKNOWN_ACTION, action_id=action_id)
        if definition.requires_permission and not principal.has_permission(definition.permission):
            logger.info(
                "%s lacks permission %r for action %r",
                principal.name,
                definition.permission,
                action_id,
            )
            return Reject(
                reason=RejectReason.PERMISSION_DENIED,
                action_id=action_id,
                permission=definition.permission,
            )
        return Accept(definition=definition)

    def dispatch(self, action_id: str, principal: Principal) -> Decision:
        """Authorize and, on acceptance, queue the command exactly once."""

        decision = self.authorize(action_id, principal)
        if isinstance(decision, Reject):
            if decision.reason is RejectReason.UNKNOWN_ACTION:
                self.stats.unknown += 1
            else:
                self.stats.denied += 1
            return decision
        self.stats.accepted += 1
        command = decision.definition.command
        logger.info("Running action %r for %s -> /%s", action_id, principal.name, command)
        if self._log_invocations:
            logger.debug("dispatch: stats=%s", self.stats)
        self._scheduler.run_on_main_thread(partial(self._executor.run_as_principal, principal, command))
        return decision


__all__ = [
    "Accept",
    "AuthorizerStats",
    "CommandExecutor",
    "Decision",
    "InvocationAuthorizer",
    "Reject",
    "RejectReason",
]
