"""Authoritative action catalog and its configuration store."""

from .action_catalog import ActionCatalog, ActionDefinition, ConfigError, parse_definition
from .config_store import DEFAULT_DOCUMENT, JsonConfigStore

__all__ = [
    "DEFAULT_DOCUMENT",
    "ActionCatalog",
    "ActionDefinition",
    "ConfigError",
    "JsonConfigStore",
    "parse_definition",
]
