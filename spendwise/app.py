"""Application context and dependency injection.

The ApplicationContext wires together the selection store, the query cache
and the mutation service around a data service, and provides them to the
presentation layer.
"""

import logging
from typing import Any, Iterable, Optional

from spendwise.data.queries import QueryKey, QueryName
from spendwise.data.query_cache import QueryCache
from spendwise.data.service import DataService
from spendwise.domain.settings import AppSettings, LoggingSettings
from spendwise.services.mutations import MutationService
from spendwise.state.persistence import SettingsStore
from spendwise.state.store import SelectionStore

logger = logging.getLogger(__name__)


def configure_logging(settings: LoggingSettings) -> None:
    """Apply the configured level to the spendwise logger hierarchy."""
    logging.getLogger("spendwise").setLevel(settings.level)


class ApplicationContext:
    """Application context providing dependency injection.

    Example:
        >>> ctx = ApplicationContext(data_service, owner_id="u1")
        >>> ctx.store.dispatch(ToggleOverallBalance())
        >>> balance = await ctx.fetch("partitionBalance", partition_id="p1")
        >>> await ctx.mutations.create_transaction("p1", "c1", Decimal("20"))
    """

    def __init__(
        self,
        data_service: DataService,
        owner_id: str,
        settings_store: Optional[SettingsStore] = None,
    ):
        """Initialize application context.

        Args:
            data_service: Backend for all reads and mutations
            owner_id: User the session belongs to
            settings_store: Optional settings store. Defaults to the
                settings file in the user's home directory.
        """
        self.owner_id = owner_id
        self.data_service = data_service

        # Settings
        self.settings_store = settings_store or SettingsStore()
        self.settings: AppSettings = self.settings_store.load()
        configure_logging(self.settings.logging)

        # State
        self.store = SelectionStore.from_settings(self.settings)

        # Services
        self.cache = QueryCache(data_service.load)
        self.mutations = MutationService(
            data_service, self.cache, owner_id, store=self.store
        )

        logger.info(f"Application context ready for {owner_id}")

    def query_key(self, name: QueryName, **scope: Any) -> QueryKey:
        """Derive a query key from the current selection."""
        return self.store.query_key(name, **scope)

    async def fetch(self, name: QueryName, **scope: Any) -> Any:
        """Fetch a query for the current selection through the cache.

        Args:
            name: Query to run
            **scope: Entity identity of the query (e.g. partition_id="p1")

        Returns:
            The (possibly cached) query result
        """
        return await self.cache.fetch(self.query_key(name, **scope))

    def abandon_stale(self, active_keys: Iterable[QueryKey]) -> int:
        """Cancel in-flight fetches not derived from the current selection."""
        return self.cache.abandon(active_keys)

    def save_settings(self) -> None:
        """Persist the UI state of the selection."""
        self.store.save_to(self.settings)
        self.settings_store.save(self.settings)
        logger.debug(f"Settings saved to {self.settings_store.path}")
