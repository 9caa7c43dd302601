"""
Launcher for the keysync desktop client.

Opens a small Qt window that hosts the server-defined bindings and keeps
them synchronized with the server over the keysync channel.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import threading
from dataclasses import replace
from typing import Optional, Sequence

from qtpy import QtCore, QtWidgets

from keysync.client._qt.qt_bindings import QtBindingRegistry
from keysync.client._qt.qt_bridge import CallProxy, QtMainThreadScheduler
from keysync.client.bindings import BindingReconciler, CategoryOrderIndex
from keysync.client.config import ClientConfig
from keysync.client.control import SessionController, SessionState
from keysync.client.control.channel_client import KeysyncChannel

logger = logging.getLogger(__name__)


class BindingsWindow(QtWidgets.QWidget):
    """Host window listing the live bindings of the current server."""

    def __init__(self, parent=None) -> None:  # type: ignore[no-untyped-def]
        super().__init__(parent)
        self.setWindowTitle("keysync")
        layout = QtWidgets.QVBoxLayout(self)
        self.status = QtWidgets.QLabel("Disconnected", self)
        self.listing = QtWidgets.QListWidget(self)
        layout.addWidget(self.status)
        layout.addWidget(self.listing)

    def show_session(self, controller: SessionController, registry: QtBindingRegistry) -> None:
        state = controller.state
        if state is SessionState.SYNCED:
            self.status.setText(controller.category or "")
        elif state is SessionState.CONNECTED_UNSYNCED:
            self.status.setText("Connected, waiting for actions...")
        else:
            self.status.setText("Disconnected")
        rows = [f"{binding.label}  [{binding.key_sequence}]" for binding in registry.bindings()]
        current = [self.listing.item(i).text() for i in range(self.listing.count())]
        if rows != current:
            self.listing.clear()
            self.listing.addItems(rows)


def launch_client(config: ClientConfig, debug: bool = False) -> int:
    if os.getenv("KEYSYNC_DEBUG", "").lower() in ("1", "true", "yes"):
        debug = True
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Launching keysync client for %s:%d as %s", config.host, config.port, config.principal)

    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication(sys.argv)
    window = BindingsWindow()

    registry = QtBindingRegistry(window)
    scheduler = QtMainThreadScheduler(CallProxy(window), tick_ms=config.tick_ms)
    reconciler = BindingReconciler(registry, CategoryOrderIndex())

    channel = KeysyncChannel(config.host, config.port, config.principal, server_name=config.server_name)
    controller = SessionController(
        reconciler,
        scheduler,
        channel.send,
        session_active=registry.session_active,
    )
    channel.handle_connected = controller.on_connected
    channel.handle_sync = controller.on_sync_message
    channel.handle_disconnect = controller.on_disconnected

    def _tick() -> None:
        controller.tick()
        window.show_session(controller, registry)

    timer = QtCore.QTimer(window)
    timer.setInterval(config.tick_ms)
    timer.timeout.connect(_tick)
    timer.start()

    thread = threading.Thread(target=channel.run, name="keysync-channel", daemon=True)
    thread.start()

    window.resize(360, 240)
    window.show()
    logger.info("Client launched successfully")

    try:
        code = app.exec_()
    finally:
        timer.stop()
        channel.stop()
        controller.teardown()
        logger.info("Client closed")
    return int(code)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""
    config = ClientConfig.from_env()
    parser = argparse.ArgumentParser(description="keysync client")
    parser.add_argument("--host", default=config.host, help=f"Server hostname/IP (default: {config.host})")
    parser.add_argument("--port", type=int, default=config.port, help=f"Server port (default: {config.port})")
    parser.add_argument("--principal", default=config.principal, help="Principal name sent to the server")
    parser.add_argument("--server-name", default=config.server_name, help="Display name for the server's binding category")
    parser.add_argument("--tick-ms", type=int, default=config.tick_ms, help="Input polling interval in milliseconds")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    config = replace(
        config,
        host=args.host,
        port=args.port,
        principal=args.principal,
        server_name=args.server_name,
        tick_ms=max(1, args.tick_ms),
    )
    return launch_client(config, debug=args.debug)


if __name__ == "__main__":
    sys.exit(main())
