"""
CLI Context for managing application dependencies.

Holds the settings and object store shared by one CLI command execution,
avoiding global state and letting tests inject an in-memory store.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .operations import Operations, OpsConfig
from .settings import Settings, create_settings_from_env
from .storage.base import ObjectStore
from .storage.object_store import object_store_for


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    The store is created on first access from ``settings.backend`` and
    reused for the rest of the command.
    """
    settings: Settings
    _store: Optional[ObjectStore] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """
        Create CLI context from environment variables.

        Returns:
            CLIContext with settings loaded from environment
        """
        return cls(settings=create_settings_from_env())

    @property
    def store(self) -> ObjectStore:
        if self._store is None:
            self._store = object_store_for(self.settings)
        return self._store

    def operations(self, config: Optional[OpsConfig] = None) -> Operations:
        """Build an Operations facade over this context's store and settings."""
        return Operations(config=config or OpsConfig(), store=self.store, settings=self.settings)
