# backend/geogrid/workers/geogrid_worker.py
"""
GeoGrid Worker - the worker pool engine.

One measure pass holds the host process lock and works through every queued
or running run, oldest first. Per run, unmeasured points are dispatched to a
bounded set of MeasurementUnits over asyncio queues. The coordinator is the
only writer: it persists each outcome, feeds the failure window and pauses
dispatch when the recent failure ratio is too high.

Progress is durable. Failed points stay unmeasured and are picked up again
by the next pass, so a run only becomes ``done`` once every point has a rank.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Dict, List, Optional, Set, Union

from pydantic import SecretStr

from ..config import settings
from ..constants import NOT_FOUND_RANK
from ..database.exceptions import DatabaseOperationError
from ..database.point_operations import PointOperations
from ..database.run_operations import RunOperations
from ..enums import LogEmoji, LoggerName, LogSource, PointOutcomeStatus, RunStatus, WorkerType
from ..exceptions import ProcessLockError
from ..models.ranking_model import ProxyConfig, RankingSnapshotCreate, SearchContentResult
from ..models.run_model import ActiveRun, GeoGridPoint, PointResultUpdate
from ..services.collaborators import RankedResultsExtractor, SearchContentProvider
from ..services.logger import get_service_logger
from ..services.run_completion_service import check_run_completion
from ..utils.process_lock import acquire_process_lock
from .base_worker import BaseWorker
from .circuit_breaker import FailureWindow
from .measurement_unit import MeasurementUnit
from .mixins.retry_manager import RetryManager
from .models.unit_messages import PointOutcome, PointTask, UnitExit

logger = get_service_logger(LoggerName.GEOGRID_WORKER, LogSource.WORKER)


@dataclass
class RunPassResult:
    """What one engine pass did to one run."""

    run_id: int
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    not_found: int = 0
    ignored: int = 0
    pauses: int = 0
    halted: bool = False
    final_status: Optional[RunStatus] = None

    @property
    def not_found_ratio(self) -> float:
        return self.not_found / self.succeeded if self.succeeded else 0.0


@dataclass
class EnginePassSummary:
    """Totals for one measure pass."""

    runs_processed: int = 0
    runs_failed: int = 0
    results: List[RunPassResult] = field(default_factory=list)


@dataclass
class _DispatchState:
    pending: Deque[GeoGridPoint]
    window: FailureWindow
    in_flight: Dict[int, PointTask] = field(default_factory=dict)
    ready_at: Dict[int, float] = field(default_factory=dict)
    retired: Set[int] = field(default_factory=set)
    resume_at: Optional[float] = None


class GeoGridWorker(BaseWorker):
    """
    Bounded worker pool that measures grid points.

    Responsibilities:
    - Host exclusivity through the process lock file
    - Dispatch with a fixed delay before a freed unit gets more work
    - Retry with backoff inside each unit
    - Circuit breaking on the recent failure ratio, including DB write failures
    - Halting when a run is stopped or deleted externally
    - Completion detection after every pass
    """

    def __init__(
        self,
        run_ops: RunOperations,
        point_ops: PointOperations,
        search_provider: SearchContentProvider,
        results_extractor: RankedResultsExtractor,
        concurrency: Optional[int] = None,
        max_attempts: Optional[int] = None,
        retry_delays: Optional[List[float]] = None,
        failure_window_size: Optional[int] = None,
        failure_threshold: Optional[float] = None,
        failure_pause_seconds: Optional[float] = None,
        dispatch_delay_seconds: Optional[float] = None,
        run_status_poll_seconds: Optional[float] = None,
        unit_exit_timeout_seconds: Optional[float] = None,
        lock_path: Optional[Union[str, Path]] = None,
        proxy_password: Optional[str] = None,
    ):
        super().__init__(WorkerType.GEOGRID_WORKER.value)
        self.run_ops = run_ops
        self.point_ops = point_ops
        self.search_provider = search_provider
        self.results_extractor = results_extractor

        def _pick(value, default):
            return default if value is None else value

        self.concurrency = _pick(concurrency, settings.worker_concurrency)
        self.max_attempts = _pick(max_attempts, settings.point_max_attempts)
        self.retry_delays = _pick(retry_delays, settings.point_retry_delays_list)
        self.failure_window_size = _pick(failure_window_size, settings.failure_window_size)
        self.failure_threshold = _pick(failure_threshold, settings.failure_threshold)
        self.failure_pause_seconds = _pick(
            failure_pause_seconds, settings.failure_pause_seconds
        )
        self.dispatch_delay_seconds = _pick(
            dispatch_delay_seconds, settings.dispatch_delay_seconds
        )
        self.run_status_poll_seconds = _pick(
            run_status_poll_seconds, settings.run_status_poll_seconds
        )
        self.unit_exit_timeout_seconds = _pick(
            unit_exit_timeout_seconds, settings.unit_exit_timeout_seconds
        )
        self.lock_path = Path(_pick(lock_path, settings.process_lock_path))
        self.proxy_password = _pick(proxy_password, settings.proxy_password)

        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

    async def initialize(self) -> None:
        self.log_info(
            f"Initialized with {self.concurrency} unit(s), "
            f"{self.max_attempts} attempt(s) per point"
        )

    async def cleanup(self) -> None:
        self.log_info("Cleaned up")

    async def run_measure_pass(self) -> Optional[EnginePassSummary]:
        """
        Run one engine pass while holding the process lock.

        Returns:
            EnginePassSummary, or None if another instance holds the lock
        """
        try:
            with acquire_process_lock(self.lock_path):
                return await self.process_active_runs()
        except ProcessLockError as e:
            self.log_warning(f"Skipping measure pass, another engine is active: {e}")
            return None

    async def process_active_runs(self) -> EnginePassSummary:
        """Process every queued or running run. One failing run never aborts the pass."""
        summary = EnginePassSummary()
        try:
            runs = await self.run_ops.get_active_runs()
        except DatabaseOperationError as e:
            logger.error("Failed to load active runs", exception=e)
            return summary

        if not runs:
            self.log_debug("No active runs")
            return summary

        self.log_info(f"Processing {len(runs)} active run(s)")
        for run in runs:
            try:
                result = await self.process_run(run)
            except Exception as e:
                summary.runs_failed += 1
                logger.error(
                    f"Run {run.run_id} failed during measure pass",
                    exception=e,
                    error_context={"business_id": run.business_id},
                )
                continue
            summary.runs_processed += 1
            summary.results.append(result)
        return summary

    async def process_run(self, run: ActiveRun) -> RunPassResult:
        """Measure the unmeasured points of one run, then check completion."""
        result = RunPassResult(run_id=run.run_id)

        if run.status == RunStatus.QUEUED:
            await self.run_ops.update_run_status(run.run_id, RunStatus.RUNNING)

        status = await self.run_ops.get_run_status(run.run_id)
        if status != RunStatus.RUNNING:
            self.log_warning(
                f"Run {run.run_id} is '{status.value if status else 'deleted'}', skipping"
            )
            result.halted = True
            return result

        points = await self.run_ops.get_unmeasured_points(run.run_id)
        if points:
            logger.info(
                f"Measuring {len(points)} point(s) for run {run.run_id}",
                extra_context={"keyword": run.keyword, "business": run.business_name},
                emoji=LogEmoji.RUNNING,
            )
            await self._dispatch_points(run, points, result)

        if result.halted:
            current = await self.run_ops.get_run_status(run.run_id)
            if current == RunStatus.RUNNING and await self.run_ops.update_run_status(
                run.run_id, RunStatus.ERROR
            ):
                result.final_status = RunStatus.ERROR
            final = result.final_status or current
            self.log_warning(
                f"Run {run.run_id} halted early with status "
                f"'{final.value if final else 'deleted'}'"
            )
        else:
            result.final_status = await check_run_completion(self.run_ops, run.run_id)

        logger.info(
            f"Run {run.run_id} pass finished",
            extra_context={
                "succeeded": result.succeeded,
                "failed": result.failed,
                "not_found_ratio": f"{result.not_found_ratio:.2f}",
                "pauses": result.pauses,
            },
            emoji=LogEmoji.CHART,
        )
        return result

    def _proxy_config(self, run: ActiveRun) -> ProxyConfig:
        return ProxyConfig(
            username=run.proxy_username,
            password=SecretStr(self.proxy_password or ""),
            endpoint=run.proxy_endpoint,
        )

    async def _dispatch_points(
        self, run: ActiveRun, points: List[GeoGridPoint], result: RunPassResult
    ) -> None:
        loop = asyncio.get_running_loop()
        results: "asyncio.Queue[PointOutcome]" = asyncio.Queue()
        retry_manager = RetryManager(self.max_attempts, self.retry_delays, self.name)
        proxy_config = self._proxy_config(run)

        unit_count = min(self.concurrency, len(points))
        units = [
            MeasurementUnit(
                unit_id, self.search_provider, self.results_extractor, retry_manager, results
            )
            for unit_id in range(unit_count)
        ]
        unit_tasks = {
            unit.unit_id: asyncio.create_task(
                unit.run(), name=f"measurement-unit-{run.run_id}-{unit.unit_id}"
            )
            for unit in units
        }

        state = _DispatchState(
            pending=deque(points),
            window=FailureWindow(self.failure_window_size, self.failure_threshold),
            ready_at={unit.unit_id: loop.time() for unit in units},
        )
        next_poll = loop.time() + self.run_status_poll_seconds

        try:
            while True:
                now = loop.time()
                if state.resume_at is not None and now >= state.resume_at:
                    state.window.resume()
                    state.resume_at = None
                    self.log_info(f"Resuming dispatch for run {run.run_id} after pause")

                if not result.halted and not state.window.is_paused:
                    await self._fill_slots(run, units, state, proxy_config, result, now)

                if not state.in_flight and (result.halted or not state.pending):
                    break

                deadlines = [next_poll]
                if state.resume_at is not None:
                    deadlines.append(state.resume_at)
                elif state.pending and state.ready_at and not result.halted:
                    deadlines.append(min(state.ready_at.values()))
                timeout = max(0.0, min(deadlines) - loop.time())

                try:
                    outcome = await asyncio.wait_for(results.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    outcome = None

                if outcome is not None:
                    await self._on_outcome(run, units, state, outcome, result, loop.time())

                if loop.time() >= next_poll:
                    next_poll = loop.time() + self.run_status_poll_seconds
                    if not result.halted and not await self._run_still_active(run.run_id):
                        result.halted = True
                        state.pending.clear()
        finally:
            await self._retire_units(units, unit_tasks, state)

    async def _fill_slots(
        self,
        run: ActiveRun,
        units: List[MeasurementUnit],
        state: _DispatchState,
        proxy_config: ProxyConfig,
        result: RunPassResult,
        now: float,
    ) -> None:
        for unit_id, ready_at in sorted(state.ready_at.items(), key=lambda item: item[1]):
            if not state.pending:
                return
            if ready_at > now:
                continue
            point = state.pending.popleft()
            task = PointTask(
                point_id=point.id,
                run_id=run.run_id,
                business_id=run.business_id,
                business_name=run.business_name,
                keyword=run.keyword,
                lat=point.lat,
                lng=point.lng,
                row_idx=point.row_idx,
                col_idx=point.col_idx,
                proxy_config=proxy_config,
            )
            del state.ready_at[unit_id]
            state.in_flight[unit_id] = task
            await units[unit_id].tasks.put(task)
            result.dispatched += 1

    async def _on_outcome(
        self,
        run: ActiveRun,
        units: List[MeasurementUnit],
        state: _DispatchState,
        outcome: PointOutcome,
        result: RunPassResult,
        now: float,
    ) -> None:
        task = state.in_flight.pop(outcome.unit_id, None)

        if result.halted:
            result.ignored += 1
            self.log_debug(
                f"Ignoring result for point {outcome.point_id}, run {run.run_id} is stopping"
            )
        elif task is not None:
            failed = await self._persist_outcome(run, task, outcome, result)
            if state.window.record(failed):
                result.pauses += 1
                state.resume_at = now + self.failure_pause_seconds
                logger.warning(
                    f"High failure rate on run {run.run_id}, pausing dispatch "
                    f"for {self.failure_pause_seconds:g}s",
                    extra_context={"failure_ratio": f"{state.window.failure_ratio:.2f}"},
                    emoji=LogEmoji.PAUSED,
                )

        if state.pending:
            state.ready_at[outcome.unit_id] = now + self.dispatch_delay_seconds
        else:
            await self._retire_unit(units[outcome.unit_id], state)

    async def _persist_outcome(
        self,
        run: ActiveRun,
        task: PointTask,
        outcome: PointOutcome,
        result: RunPassResult,
    ) -> bool:
        """Store a successful outcome. Returns True when the outcome counts as a failure."""
        if not outcome.succeeded or outcome.ranked is None:
            result.failed += 1
            self.log_warning(
                f"Point {task.point_id} failed after {outcome.attempts} attempt(s): "
                f"{outcome.error or outcome.reason}"
            )
            return True

        ranked = outcome.ranked
        content = outcome.content or SearchContentResult()
        update = PointResultUpdate(
            rank_pos=ranked.rank if ranked.rank is not None else NOT_FOUND_RANK,
            place_id=ranked.matched_place_id,
            results_json=ranked.to_results_payload(),
            screenshot_path=content.screenshot_path,
            search_url=content.search_url,
            landing_url=content.landing_url or content.search_url,
        )
        snapshot = RankingSnapshotCreate(
            run_id=run.run_id,
            business_id=run.business_id,
            keyword=run.keyword,
            origin_lat=task.lat,
            origin_lng=task.lng,
            total_results=ranked.total_returned,
            matched_place_id=ranked.matched_place_id,
            matched_position=ranked.rank,
            results=[place.model_dump(exclude_none=True) for place in ranked.places],
        )

        try:
            stored = await self.point_ops.record_point_result(task.point_id, update, snapshot)
        except DatabaseOperationError as e:
            outcome.status = PointOutcomeStatus.PERSIST_FAILED
            result.failed += 1
            logger.error(
                f"DB save failed for point {task.point_id}",
                exception=e,
                error_context={"run_id": run.run_id},
            )
            return True

        if not stored:
            self.log_debug(f"Point {task.point_id} was already measured")

        result.succeeded += 1
        if ranked.rank is None:
            result.not_found += 1
        self.log_debug(
            f"Point {task.point_id} rank: {ranked.rank or 'not found'} "
            f"(reason: {ranked.reason}, total={ranked.total_returned})"
        )
        return False

    async def _run_still_active(self, run_id: int) -> bool:
        try:
            status = await self.run_ops.get_run_status(run_id)
        except DatabaseOperationError as e:
            self.log_warning(f"Failed to check status for run {run_id}: {e}")
            return True

        if status != RunStatus.RUNNING:
            self.log_warning(
                f"Run {run_id} marked as '{status.value if status else 'deleted'}', "
                "halting new tasks"
            )
            return False
        return True

    async def _retire_unit(self, unit: MeasurementUnit, state: _DispatchState) -> None:
        if unit.unit_id in state.retired:
            return
        state.retired.add(unit.unit_id)
        state.ready_at.pop(unit.unit_id, None)
        await unit.tasks.put(UnitExit(unit_id=unit.unit_id))

    async def _retire_units(
        self,
        units: List[MeasurementUnit],
        unit_tasks: Dict[int, "asyncio.Task[None]"],
        state: _DispatchState,
    ) -> None:
        for unit in units:
            await self._retire_unit(unit, state)

        for unit in units:
            task = unit_tasks[unit.unit_id]
            done, _ = await asyncio.wait({task}, timeout=self.unit_exit_timeout_seconds)
            if not done:
                self.log_warning(
                    f"Unit {unit.unit_id} did not exit in time, cancelling"
                )
                task.cancel()
                await asyncio.wait({task})
            elif not task.cancelled() and task.exception() is not None:
                self.log_error(f"Unit {unit.unit_id} crashed", task.exception())
