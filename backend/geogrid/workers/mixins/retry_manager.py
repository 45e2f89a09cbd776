# backend/geogrid/workers/mixins/retry_manager.py
"""
Retry Manager for point measurement.

Provides bounded-attempt retry with backoff delays indexed by attempt, so an
execution unit can wrap its acquire-then-parse sequence in one call.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

from ...enums import LogEmoji, LoggerName
from ...services.logger import get_service_logger

logger = get_service_logger(LoggerName.MEASUREMENT_UNIT)

T = TypeVar("T")


class RetryManager:
    """
    Manages attempt counting and backoff delays for flaky operations.

    Features:
    - Configurable maximum attempts
    - Backoff delays indexed by the failed attempt (e.g. [2, 4, 8] seconds)
    - Injectable sleep for tests
    """

    def __init__(
        self,
        max_attempts: int,
        retry_delays: List[float],
        worker_name: str = "Worker",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize retry manager.

        Args:
            max_attempts: Total attempts before the operation is given up
            retry_delays: Delay in seconds after each failed attempt
            worker_name: Name of the worker for logging purposes
            sleep: Coroutine used to wait between attempts
        """
        self.max_attempts = max_attempts
        self.retry_delays = retry_delays
        self.worker_name = worker_name
        self._sleep = sleep

        # Validate configuration
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than 0")
        if not retry_delays:
            raise ValueError("retry_delays cannot be empty")
        if any(delay < 0 for delay in retry_delays):
            raise ValueError("Retry delays cannot be negative")

    def should_retry(self, attempts_made: int) -> bool:
        """Whether another attempt is allowed after ``attempts_made`` failures."""
        return attempts_made < self.max_attempts

    def get_retry_delay(self, attempt_index: int) -> float:
        """
        Delay in seconds after the failed attempt ``attempt_index`` (0-based).

        If the index exceeds the configured delays, the last delay is used.
        """
        if attempt_index < 0:
            return self.retry_delays[0]

        delay_index = min(attempt_index, len(self.retry_delays) - 1)
        return self.retry_delays[delay_index]

    async def run_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        label: Optional[str] = None,
    ) -> Tuple[T, int]:
        """
        Run ``operation`` until it succeeds or the attempts are exhausted.

        Returns:
            Tuple of (result, attempts used)

        Raises:
            The last exception raised by ``operation`` once attempts run out
        """
        attempt = 0
        while True:
            try:
                return await operation(), attempt + 1
            except retry_on as e:
                attempt += 1
                if not self.should_retry(attempt):
                    logger.warning(
                        f"[{self.worker_name}] {label or 'Operation'} failed after "
                        f"{attempt} attempt(s): {e}",
                        emoji=LogEmoji.FAILED,
                    )
                    raise

                delay = self.get_retry_delay(attempt - 1)
                logger.debug(
                    f"[{self.worker_name}] {label or 'Operation'} failed "
                    f"(attempt {attempt}/{self.max_attempts}), retrying in {delay}s: {e}",
                    emoji=LogEmoji.RETRY,
                )
                await self._sleep(delay)

    def __repr__(self) -> str:
        """String representation of retry manager."""
        return (
            f"RetryManager(worker='{self.worker_name}', "
            f"max_attempts={self.max_attempts}, "
            f"delays={self.retry_delays})"
        )
