"""JSON-file configuration store for the action catalog.

The document looks like::

    {
      "actions": [
        {"id": "open_menu", "label": "Open Menu", "default_key": 77,
         "command": "menu open", "permission": ""}
      ],
      "principals": {"alex": ["keysync.admin"]}
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT: Dict[str, Any] = {
    "actions": [
        {
            "id": "open_menu",
            "label": "Open Menu",
            "default_key": 77,
            "command": "say menu",
            "permission": "",
        }
    ],
    "principals": {},
}


class JsonConfigStore:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._document: Dict[str, Any] = {}
        self.reload_from_disk()

    @property
    def path(self) -> Path:
        return self._path

    def save_default(self) -> bool:
        """Write :data:`DEFAULT_DOCUMENT` if no file exists yet."""

        if self._path.exists():
            return False
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(DEFAULT_DOCUMENT, indent=2) + "\n", encoding="utf-8")
        logger.info("Wrote default keysync configuration to %s", self._path)
        self.reload_from_disk()
        return True

    def reload_from_disk(self) -> None:
        if not self._path.exists():
            logger.warning("Configuration file %s not found; using an empty document", self._path)
            self._document = {}
            return
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read configuration %s (%s); using an empty document", self._path, exc)
            self._document = {}
            return
        if not isinstance(document, Mapping):
            logger.warning("Configuration %s must be a JSON object; using an empty document", self._path)
            self._document = {}
            return
        self._document = dict(document)

    def load(self) -> List[Any]:
        """Return the raw action records, in file order."""

        records = self._document.get("actions")
        if records is None:
            logger.warning("No 'actions' found in %s", self._path)
            return []
        if not isinstance(records, list):
            logger.warning("'actions' in %s must be a list; ignoring it", self._path)
            return []
        return list(records)

    def principals(self) -> Dict[str, List[str]]:
        raw = self._document.get("principals")
        if not isinstance(raw, Mapping):
            return {}
        table: Dict[str, List[str]] = {}
        for name, perms in raw.items():
            if isinstance(perms, str):
                perms = [perms]
            if not isinstance(perms, list):
                logger.warning("Permissions for principal %r must be a list; ignoring", name)
                continue
            table[str(name)] = [str(perm) for perm in perms]
        return table


__all__ = ["DEFAULT_DOCUMENT", "JsonConfigStore"]
