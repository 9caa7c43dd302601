"""Qt implementation of the host binding registry.

Each binding is a window-scoped ``QShortcut``. Trigger codes are Qt key
codes; printable ASCII keys share their code with the common desktop
keyboard tables, so ``77`` is ``M`` on both sides.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from qtpy import QtCore, QtGui, QtWidgets

logger = logging.getLogger(__name__)


class QtBinding:
    """A live shortcut whose activations queue up as trigger events."""

    def __init__(self, shortcut: QtWidgets.QShortcut, label: str, category: str) -> None:
        self.shortcut = shortcut
        self.label = label
        self.category = category
        self._pending = 0
        shortcut.activated.connect(self._on_activated)

    def _on_activated(self) -> None:
        self._pending += 1

    def was_triggered(self) -> bool:
        if self._pending <= 0:
            return False
        self._pending -= 1
        return True

    @property
    def key_sequence(self) -> str:
        return self.shortcut.key().toString()

    def rebind(self, sequence: str) -> None:
        """Apply a user-chosen key sequence (e.g. ``"Ctrl+K"``)."""

        self.shortcut.setKey(QtGui.QKeySequence(sequence))

    def _release(self) -> None:
        self._pending = 0
        shortcut = self.shortcut
        shortcut.setEnabled(False)
        try:
            shortcut.activated.disconnect(self._on_activated)
        except (RuntimeError, TypeError):
            logger.debug("QtBinding: activated already disconnected", exc_info=True)
        shortcut.setParent(None)
        shortcut.deleteLater()


class QtBindingRegistry:
    """Create and dispose ``QShortcut`` bindings on a host widget."""

    def __init__(self, host: QtWidgets.QWidget) -> None:
        self._host = host
        self._bindings: Dict[int, QtBinding] = {}

    def create_binding(self, label: str, default_trigger: int, category: str) -> QtBinding:
        shortcut = QtWidgets.QShortcut(QtGui.QKeySequence(int(default_trigger)), self._host)
        shortcut.setContext(QtCore.Qt.WindowShortcut)
        shortcut.setWhatsThis(f"{category} / {label}")
        binding = QtBinding(shortcut, label, category)
        self._bindings[id(binding)] = binding
        logger.debug("QtBindingRegistry: created %r (%s)", label, binding.key_sequence)
        return binding

    def dispose_binding(self, handle: QtBinding) -> None:
        binding = self._bindings.pop(id(handle), None)
        if binding is None:
            logger.debug("QtBindingRegistry: dispose of unknown binding %r", handle)
            return
        binding._release()

    def bindings(self) -> list[QtBinding]:
        return list(self._bindings.values())

    def session_active(self) -> bool:
        """True while the host window has focus and no modal is up."""

        if not self._host.isActiveWindow():
            return False
        return QtWidgets.QApplication.activeModalWidget() is None

    def find(self, label: str) -> Optional[QtBinding]:
        for binding in self._bindings.values():
            if binding.label == label:
                return binding
        return None


__all__ = ["QtBinding", "QtBindingRegistry"]
