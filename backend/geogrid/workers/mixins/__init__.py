# backend/geogrid/workers/mixins/__init__.py
"""
Shared helpers for geo-grid worker components.
"""

from .retry_manager import RetryManager

__all__ = ["RetryManager"]
