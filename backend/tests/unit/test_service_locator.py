#!/usr/bin/env python3
"""
Unit tests for service wiring and the worker process.
"""

from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from geogrid.exceptions import CollaboratorLoadError
from geogrid.main_worker import GeoGridWorkerProcess
from geogrid.models.ranking_model import RankedResults, SearchContentResult
from geogrid.workers.geogrid_worker import GeoGridWorker
from geogrid.workers.scheduler_worker import (
    CLAIM_JOB_ID,
    MEASURE_JOB_ID,
    STUCK_SWEEP_JOB_ID,
    SchedulerWorker,
)
from geogrid.workers.service_locator import create_worker_ecosystem


class StubProvider:
    async def acquire_search_content(self, keyword, coordinate, proxy_config):
        return SearchContentResult(content="<html/>")


class StubExtractor:
    async def extract_ranked_results(self, content, business_name):
        return RankedResults(reason="stub")


def _scheduler_worker():
    scheduler = MagicMock()
    scheduler.running = False
    scheduler.add_job.side_effect = lambda **kwargs: MagicMock(id=kwargs["id"])
    return SchedulerWorker(scheduler=scheduler)


@pytest.mark.unit
class TestServiceLocator:
    """Dependency wiring."""

    def test_services_are_cached(self):
        locator = create_worker_ecosystem(Mock())

        assert locator.get_schedule_service() is locator.get_schedule_service()
        assert locator.get_claimer().schedule_service is locator.get_schedule_service()
        assert locator.get_claimer().run_ops is locator.get_run_operations()

    def test_injected_collaborators_build_engine(self):
        locator = create_worker_ecosystem(Mock(), StubProvider(), StubExtractor())

        worker = locator.create_geogrid_worker()

        assert isinstance(worker, GeoGridWorker)
        assert isinstance(worker.search_provider, StubProvider)

    def test_missing_collaborators_raise(self, monkeypatch):
        from geogrid.workers import service_locator

        monkeypatch.setattr(service_locator.settings, "search_provider", None)
        locator = create_worker_ecosystem(Mock())

        with pytest.raises(CollaboratorLoadError):
            locator.create_geogrid_worker()


@pytest.mark.unit
class TestWorkerProcess:
    """Process orchestration without a running event loop scheduler."""

    def test_measurement_disabled_without_collaborators(self, monkeypatch):
        from geogrid.workers import service_locator

        monkeypatch.setattr(service_locator.settings, "search_provider", None)
        process = GeoGridWorkerProcess(
            create_worker_ecosystem(Mock()),
            scheduler_worker=_scheduler_worker(),
            install_signal_handlers=False,
        )

        assert process.geogrid_worker is None
        assert process.get_status()["measurement_enabled"] is False

    @pytest.mark.asyncio
    async def test_runs_queued_triggers_measure_job(self):
        scheduler_worker = _scheduler_worker()
        process = GeoGridWorkerProcess(
            create_worker_ecosystem(Mock(), StubProvider(), StubExtractor()),
            scheduler_worker=scheduler_worker,
            install_signal_handlers=False,
        )
        scheduler_worker.add_standard_jobs(process.claim, 60, process.measure, 300)

        await process._on_runs_queued(Mock())

        scheduler_worker.job_registry[MEASURE_JOB_ID].modify.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_registers_jobs_and_stops(self, monkeypatch):
        scheduler_worker = _scheduler_worker()
        process = GeoGridWorkerProcess(
            create_worker_ecosystem(Mock(), StubProvider(), StubExtractor()),
            scheduler_worker=scheduler_worker,
            install_signal_handlers=False,
        )
        registered = {}

        async def fake_sleep(seconds):
            registered.update(scheduler_worker.job_registry)
            process.running = False

        monkeypatch.setattr("geogrid.main_worker.asyncio.sleep", fake_sleep)

        await process.start()

        assert set(registered) == {CLAIM_JOB_ID, MEASURE_JOB_ID, STUCK_SWEEP_JOB_ID}
        assert scheduler_worker.job_registry == {}

    @pytest.mark.asyncio
    async def test_measure_pass_delegates_to_engine(self):
        process = GeoGridWorkerProcess(
            create_worker_ecosystem(Mock(), StubProvider(), StubExtractor()),
            scheduler_worker=_scheduler_worker(),
            install_signal_handlers=False,
        )
        process.geogrid_worker.run_measure_pass = AsyncMock(return_value=None)

        await process.measure()

        process.geogrid_worker.run_measure_pass.assert_awaited_once()
