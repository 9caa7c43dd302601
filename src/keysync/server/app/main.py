"""
keysync server - serves the action catalog over the keysync channel.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from contextlib import suppress
from dataclasses import replace
from typing import Optional, Sequence

from keysync.server.catalog import ActionCatalog, JsonConfigStore
from keysync.server.config import ServerConfig
from keysync.server.control.admin_command import ADMIN_COMMAND
from keysync.server.control.channel_server import KeysyncServer
from keysync.server.control.command_registry import CommandRegistry, say_command
from keysync.server.control.principals import CONSOLE, PrincipalTable

logger = logging.getLogger(__name__)


def build_server(config: ServerConfig, *, write_default: bool = True) -> KeysyncServer:
    """Wire the store, catalog, principals and commands into a server."""

    store = JsonConfigStore(config.catalog_path)
    if write_default:
        store.save_default()
    catalog = ActionCatalog(store, log_catalog=config.debug_policy.log_catalog)
    catalog.load(store.load())
    principals = PrincipalTable(store.principals())

    commands = CommandRegistry()
    commands.register_command("say", say_command, description="Log a message as the principal")

    def _refresh_principals() -> None:
        principals.replace(store.principals())

    return KeysyncServer(
        config,
        catalog,
        commands=commands,
        principals=principals,
        on_reload=_refresh_principals,
    )


async def run_server(server: KeysyncServer) -> None:
    loop = asyncio.get_running_loop()

    def _console_reload() -> None:
        logger.info("SIGHUP received; reloading catalog")
        server.commands.run_as_principal(CONSOLE, f"{ADMIN_COMMAND} reload")

    # Signal handlers are unavailable on some platforms (e.g. Windows).
    with suppress(NotImplementedError, AttributeError):
        loop.add_signal_handler(signal.SIGHUP, _console_reload)
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError, AttributeError):
            loop.add_signal_handler(sig, server.request_stop)
    await server.serve()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""
    config = ServerConfig.from_env()
    parser = argparse.ArgumentParser(description="keysync server")
    parser.add_argument("--host", default=config.host, help=f"Bind address (default: {config.host})")
    parser.add_argument("--port", type=int, default=config.port, help=f"Listen port (default: {config.port})")
    parser.add_argument("--catalog", default=config.catalog_path, help="Path to the JSON action catalog")
    parser.add_argument(
        "--sync-delay-ticks",
        type=int,
        default=config.sync_delay_ticks,
        help="Ticks to wait after connect before the first sync",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if (args.debug or config.debug_policy.enabled) else logging.INFO,
        format="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
    )
    config = replace(
        config,
        host=args.host,
        port=args.port,
        catalog_path=args.catalog,
        sync_delay_ticks=max(0, args.sync_delay_ticks),
    )
    server = build_server(config)
    try:
        asyncio.run(run_server(server))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
