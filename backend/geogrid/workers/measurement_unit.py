# backend/geogrid/workers/measurement_unit.py
"""
Measurement Unit - one execution slot of the worker pool.

A unit reads messages from its own task queue and writes every PointOutcome
to the coordinator's shared result queue. It never touches the database and
never raises: exhausted retries become a failed outcome.
"""

import asyncio
from typing import Optional, Union

from ..constants import (
    FAILURE_REASON_EXCEPTION,
    FAILURE_REASON_NO_CONTENT,
    FAILURE_REASON_UNKNOWN,
)
from ..enums import LoggerName, PointOutcomeStatus
from ..exceptions import PointMeasurementError
from ..models.ranking_model import Coordinate, RankedResults, SearchContentResult
from ..services.collaborators import RankedResultsExtractor, SearchContentProvider
from ..services.logger import get_service_logger
from .mixins.retry_manager import RetryManager
from .models.unit_messages import PointOutcome, PointTask, UnitExit

logger = get_service_logger(LoggerName.MEASUREMENT_UNIT)


class _AcquisitionFailed(PointMeasurementError):
    def __init__(self, reason: str, content: SearchContentResult):
        super().__init__(f"Search content unavailable: {reason}")
        self.reason = reason
        self.content = content


class MeasurementUnit:
    """Acquire-then-parse executor for single grid points."""

    def __init__(
        self,
        unit_id: int,
        search_provider: SearchContentProvider,
        results_extractor: RankedResultsExtractor,
        retry_manager: RetryManager,
        results: "asyncio.Queue[PointOutcome]",
    ):
        self.unit_id = unit_id
        self.search_provider = search_provider
        self.results_extractor = results_extractor
        self.retry_manager = retry_manager
        self.results = results
        self.tasks: "asyncio.Queue[Union[PointTask, UnitExit]]" = asyncio.Queue()

    async def run(self) -> None:
        """Process tasks until an exit message arrives."""
        while True:
            message = await self.tasks.get()
            if isinstance(message, UnitExit):
                logger.debug(f"Unit {self.unit_id} retiring")
                return
            outcome = await self.measure(message)
            await self.results.put(outcome)

    async def measure(self, task: PointTask) -> PointOutcome:
        """Measure one point, retrying failed attempts with backoff."""
        last_content: Optional[SearchContentResult] = None

        async def attempt():
            nonlocal last_content
            content = await self.search_provider.acquire_search_content(
                task.keyword, Coordinate(lat=task.lat, lng=task.lng), task.proxy_config
            )
            last_content = content
            if not content.succeeded:
                raise _AcquisitionFailed(
                    content.failure_reason or FAILURE_REASON_NO_CONTENT, content
                )
            ranked = await self.results_extractor.extract_ranked_results(
                content.content, task.business_name
            )
            return content, ranked

        try:
            (content, ranked), attempts = await self.retry_manager.run_with_retry(
                attempt, label=f"Point {task.point_id}"
            )
        except _AcquisitionFailed as e:
            return self._failed(task, e.reason, str(e), e.content)
        except Exception as e:
            return self._failed(task, FAILURE_REASON_EXCEPTION, repr(e), last_content)

        # The page body is not needed past this point
        stripped = content.model_copy(update={"content": None})

        if not isinstance(ranked, RankedResults) or not ranked.reason:
            return PointOutcome(
                unit_id=self.unit_id,
                point_id=task.point_id,
                status=PointOutcomeStatus.FAILED,
                attempts=attempts,
                reason=FAILURE_REASON_UNKNOWN,
                content=stripped,
                proxy_ip=stripped.proxy_ip,
            )

        return PointOutcome(
            unit_id=self.unit_id,
            point_id=task.point_id,
            status=PointOutcomeStatus.SUCCESS,
            attempts=attempts,
            reason=ranked.reason,
            content=stripped,
            ranked=ranked,
            proxy_ip=stripped.proxy_ip,
        )

    def _failed(
        self,
        task: PointTask,
        reason: str,
        error: str,
        content: Optional[SearchContentResult],
    ) -> PointOutcome:
        stripped = content.model_copy(update={"content": None}) if content else None
        return PointOutcome(
            unit_id=self.unit_id,
            point_id=task.point_id,
            status=PointOutcomeStatus.FAILED,
            attempts=self.retry_manager.max_attempts,
            reason=reason,
            error=error,
            content=stripped,
            proxy_ip=stripped.proxy_ip if stripped else None,
        )
