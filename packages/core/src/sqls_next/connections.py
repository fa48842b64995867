"""Connection config store.

Maps connection aliases to their driver and data source name, plus a single
default-alias pointer, on top of the persisted global state:

    {prefix}.conn.alias.{alias} -> ConnectionConfig
    {prefix}.conn.default       -> alias
"""

from __future__ import annotations

import logging

from pydantic import ValidationError
from sqls_next_models import ConnectionConfig, ConnectionEntry

from sqls_next.state import GlobalState

logger = logging.getLogger(__name__)


class ConnectionConfigStore:
    """Durable alias -> ConnectionConfig mapping with one default alias."""

    def __init__(self, state: GlobalState, prefix: str = "sqls") -> None:
        self._state = state
        self._alias_prefix = f"{prefix}.conn.alias."
        self._default_key = f"{prefix}.conn.default"

    @property
    def default_key(self) -> str:
        return self._default_key

    def key_for(self, alias: str) -> str:
        """Persisted key for an alias."""
        return f"{self._alias_prefix}{alias}"

    def _alias_keys(self) -> list[str]:
        return [key for key in self._state.keys() if key.startswith(self._alias_prefix)]

    def _read(self, key: str) -> ConnectionConfig | None:
        raw = self._state.get(key)
        if not raw:
            return None
        try:
            return ConnectionConfig.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping unreadable connection entry %s: %s", key, e)
            return None

    def upsert(self, config: ConnectionConfig) -> str:
        """Write a config under its alias (last write wins). Returns the key."""
        key = self.key_for(config.alias)
        self._state.update(key, config.model_dump(mode="json", by_alias=True))
        logger.info("Saved connection config %s", config.alias)
        return key

    def get(self, alias: str) -> ConnectionConfig | None:
        return self._read(self.key_for(alias))

    def remove(self, alias: str) -> None:
        """Delete one alias. A default pointer to it is left dangling."""
        self._state.update(self.key_for(alias), None)
        logger.info("Removed connection config %s", alias)

    def set_default(self, alias: str) -> None:
        self._state.update(self._default_key, alias)
        logger.info("Default connection set to %s", alias)

    def get_default_alias(self) -> str | None:
        return self._state.get(self._default_key) or None

    def clear_all(self) -> None:
        """Delete the default pointer and every alias entry."""
        self._state.update(self._default_key, None)
        for key in self._alias_keys():
            self._state.update(key, None)
        logger.info("Cleared all connection configs")

    def list_all(self) -> list[ConnectionEntry]:
        """All stored configs in insertion order, flagged if default."""
        default_alias = self.get_default_alias()
        entries = []
        for key in self._alias_keys():
            config = self._read(key)
            if config is None:
                continue
            entries.append(
                ConnectionEntry(
                    selected=bool(default_alias) and config.alias == default_alias,
                    config=config,
                )
            )
        return entries

    def get_current(self) -> ConnectionConfig | None:
        """The default config, else the first stored config, else None."""
        default_alias = self.get_default_alias()
        if default_alias:
            config = self.get(default_alias)
            if config is not None:
                return config
            logger.debug("Default alias %s no longer exists", default_alias)

        for key in self._alias_keys():
            config = self._read(key)
            if config is not None:
                return config
        return None
