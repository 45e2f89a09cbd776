# backend/geogrid/workers/service_locator.py
"""
Service Locator for Worker Dependencies

Central place where database operations, services and workers are wired
together. Used by both the long-running orchestrator and the one-shot CLI.
"""

from functools import lru_cache
from typing import Optional

from ..config import settings
from ..database.business_operations import BusinessOperations
from ..database.core import AsyncDatabase
from ..database.point_operations import PointOperations
from ..database.run_operations import RunOperations
from ..database.schedule_operations import ScheduleOperations
from ..enums import LogEmoji, LoggerName
from ..services.collaborators import (
    RankedResultsExtractor,
    SearchContentProvider,
    load_collaborator,
)
from ..services.logger import get_service_logger
from ..services.measurement_config_service import DatabaseMeasurementConfigProvider
from ..services.run_claimer_service import DueRunClaimer
from ..services.scheduling.schedule_service import ScheduleService
from .claimer_worker import ClaimerWorker
from .geogrid_worker import GeoGridWorker


class ServiceLocator:
    """
    Service locator for worker dependencies.

    Collaborators can be injected directly (tests, embedding applications);
    otherwise they are loaded from the import paths in settings.
    """

    def __init__(
        self,
        async_db: AsyncDatabase,
        search_provider: Optional[SearchContentProvider] = None,
        results_extractor: Optional[RankedResultsExtractor] = None,
    ):
        """Initialize service locator with the database and optional collaborators."""
        self.async_db = async_db
        self._search_provider = search_provider
        self._results_extractor = results_extractor

    @lru_cache(maxsize=None)
    def get_schedule_operations(self) -> ScheduleOperations:
        return ScheduleOperations(self.async_db)

    @lru_cache(maxsize=None)
    def get_run_operations(self) -> RunOperations:
        return RunOperations(self.async_db)

    @lru_cache(maxsize=None)
    def get_point_operations(self) -> PointOperations:
        return PointOperations(self.async_db)

    @lru_cache(maxsize=None)
    def get_business_operations(self) -> BusinessOperations:
        return BusinessOperations(self.async_db)

    @lru_cache(maxsize=None)
    def get_config_provider(self) -> DatabaseMeasurementConfigProvider:
        """Get the DB-backed measurement config provider (cached)."""
        return DatabaseMeasurementConfigProvider(self.get_business_operations())

    @lru_cache(maxsize=None)
    def get_schedule_service(self) -> ScheduleService:
        """Get schedule service (cached)."""
        return ScheduleService(self.get_schedule_operations(), self.get_config_provider())

    @lru_cache(maxsize=None)
    def get_claimer(self) -> DueRunClaimer:
        """Get the due-run claimer (cached)."""
        return DueRunClaimer(
            schedule_ops=self.get_schedule_operations(),
            run_ops=self.get_run_operations(),
            schedule_service=self.get_schedule_service(),
            config_provider=self.get_config_provider(),
        )

    def get_search_provider(self) -> SearchContentProvider:
        """
        Raises:
            CollaboratorLoadError: If no provider was injected or configured
        """
        if self._search_provider is None:
            self._search_provider = load_collaborator(
                settings.search_provider, SearchContentProvider
            )
        return self._search_provider

    def get_results_extractor(self) -> RankedResultsExtractor:
        """
        Raises:
            CollaboratorLoadError: If no extractor was injected or configured
        """
        if self._results_extractor is None:
            self._results_extractor = load_collaborator(
                settings.results_extractor, RankedResultsExtractor
            )
        return self._results_extractor

    def create_claimer_worker(self, on_runs_queued=None) -> ClaimerWorker:
        return ClaimerWorker(
            claimer=self.get_claimer(),
            schedule_service=self.get_schedule_service(),
            on_runs_queued=on_runs_queued,
        )

    def create_geogrid_worker(self) -> GeoGridWorker:
        """
        Build the worker pool engine.

        Raises:
            CollaboratorLoadError: If a search collaborator cannot be resolved
        """
        return GeoGridWorker(
            run_ops=self.get_run_operations(),
            point_ops=self.get_point_operations(),
            search_provider=self.get_search_provider(),
            results_extractor=self.get_results_extractor(),
        )


def create_worker_ecosystem(
    async_db: AsyncDatabase,
    search_provider: Optional[SearchContentProvider] = None,
    results_extractor: Optional[RankedResultsExtractor] = None,
) -> ServiceLocator:
    """Create the service locator for one process."""
    logger = get_service_logger(LoggerName.SYSTEM)
    logger.info("Creating worker ecosystem with service locator", emoji=LogEmoji.STARTUP)

    return ServiceLocator(async_db, search_provider, results_extractor)
