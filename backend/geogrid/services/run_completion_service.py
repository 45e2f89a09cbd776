# backend/geogrid/services/run_completion_service.py
"""
Run Completion Detector.

Completion is an idempotent re-scan of the run's points rather than an
incremental counter, so it is safe to call after every engine pass.
"""

from typing import Optional

from ..database.run_operations import RunOperations
from ..enums import LogEmoji, LoggerName, RunStatus
from ..models.run_model import RunProgress
from .logger import get_service_logger

logger = get_service_logger(LoggerName.COMPLETION_SERVICE)


async def check_run_completion(
    run_ops: RunOperations, run_id: int
) -> Optional[RunStatus]:
    """
    Mark a run ``done`` when every point is measured.

    A run without any points is degenerate and is marked ``error``. Runs
    with unmeasured points are left for the next pass.

    Returns:
        The status the run was moved to, or None if nothing changed
    """
    progress: RunProgress = await run_ops.get_run_progress(run_id)

    if progress.total_points == 0:
        if await run_ops.update_run_status(run_id, RunStatus.ERROR):
            logger.warning(f"Run {run_id} has no points, marked error")
            return RunStatus.ERROR
        return None

    if progress.is_complete:
        if await run_ops.update_run_status(run_id, RunStatus.DONE):
            logger.info(
                f"Run {run_id} complete",
                extra_context={"points": progress.total_points},
                emoji=LogEmoji.COMPLETED,
            )
            return RunStatus.DONE
        return None

    logger.debug(
        f"Run {run_id} has {progress.unmeasured_points} unmeasured point(s), "
        "leaving for next pass"
    )
    return None
