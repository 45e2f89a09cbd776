# backend/geogrid/workers/base_worker.py
"""
Base worker class for the geo-grid worker process.

Workers expose two lifecycles:

1. start()/stop() - resource lifecycle, called by the orchestrator. Sets the
   running flag and calls initialize()/cleanup(). Does not start any loop.

2. A pass method (run_claim_pass, run_measure_pass) - one unit of work. The
   orchestrator's APScheduler jobs decide when passes happen; workers never
   make timing decisions of their own.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from loguru import logger


class BaseWorker(ABC):
    """
    Abstract base class for geo-grid workers.

    Provides the common lifecycle and ``[name]``-prefixed logging helpers.
    """

    def __init__(self, name: str):
        """
        Initialize base worker.

        Args:
            name: Worker name for logging and identification
        """
        self.name = name
        self.running = False

    async def start(self) -> None:
        """Start the worker."""
        logger.info(f"Starting {self.name} worker")
        self.running = True
        await self.initialize()

    async def stop(self) -> None:
        """Stop the worker."""
        logger.info(f"Stopping {self.name} worker")
        self.running = False
        await self.cleanup()

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize worker-specific resources."""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Cleanup worker-specific resources."""
        pass

    def log_info(self, message: str) -> None:
        """Log info message with worker name prefix."""
        logger.info(f"[{self.name}] {message}")

    def log_error(self, message: str, error: Optional[BaseException] = None) -> None:
        """Log error message with worker name prefix."""
        if error:
            logger.error(f"[{self.name}] {message}: {error}")
        else:
            logger.error(f"[{self.name}] {message}")

    def log_warning(self, message: str) -> None:
        """Log warning message with worker name prefix."""
        logger.warning(f"[{self.name}] {message}")

    def log_debug(self, message: str) -> None:
        """Log debug message with worker name prefix."""
        logger.debug(f"[{self.name}] {message}")

    def get_status(self) -> Dict[str, Any]:
        """
        Get current worker status.

        Returns:
            Dictionary with worker status information
        """
        return {
            "name": self.name,
            "running": self.running,
            "worker_type": self.__class__.__name__,
        }
