from __future__ import annotations

import logging
from typing import Optional

import httpx

from .backend import BackendClient
from .catalog import CatalogStore
from .configuration import DashboardSettings, build_config_metadata, load_settings
from .errors import RefreshError
from .models import ConfigMetadata, Stats
from .notices import NoticeBoard
from .orchestrator import GenerationOrchestrator, Sleep
from .stats import StatsAggregator

logger = logging.getLogger(__name__)


class RecipeDashboard:
    """
    Wires the dashboard components and owns their lifetime.

    The catalog and the generation job each have a single owner; this class
    only connects them (job completion -> catalog refresh, snapshot or job
    change -> stats) and releases the HTTP client and background tasks on
    close().
    """

    def __init__(
        self,
        settings: Optional[DashboardSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.client = BackendClient(self.settings.backend, transport=transport)
        self.notices = NoticeBoard()
        self.catalog = CatalogStore(self.client, self.settings.catalog)

        orchestrator_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.orchestrator = GenerationOrchestrator(
            self.client,
            self.catalog,
            self.settings.generation,
            notices=self.notices,
            **orchestrator_kwargs,
        )

        self.stats = StatsAggregator(lambda: self.orchestrator.status, self.settings.catalog.storage_label)
        self.catalog.add_listener(self.stats.on_snapshot)
        self.orchestrator.add_listener(lambda _snapshot: self.stats.recompute())

    async def start(self) -> None:
        """Load the storage label and the initial catalog; failures become notices."""
        await self.stats.load_storage_label(self.client)
        try:
            await self.catalog.refresh()
        except RefreshError as exc:
            self.notices.report("refresh", str(exc))

    async def close(self) -> None:
        await self.orchestrator.close()
        await self.client.aclose()
        logger.info("Dashboard closed")

    def current_stats(self) -> Stats:
        return self.stats.recompute()

    def config_metadata(self) -> ConfigMetadata:
        return build_config_metadata(self.settings)
