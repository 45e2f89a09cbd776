# backend/geogrid/services/collaborators.py
"""
External collaborator interfaces.

Page fetching and result parsing live outside this package. Implementations
are plugged in through import paths configured in settings, e.g.
``SEARCH_PROVIDER=acme_browser.providers:build_provider``.
"""

import importlib
from typing import Any, Optional, Protocol, runtime_checkable

from ..exceptions import CollaboratorLoadError
from ..models.measurement_model import MeasurementConfig
from ..models.ranking_model import (
    Coordinate,
    ProxyConfig,
    RankedResults,
    SearchContentResult,
)


@runtime_checkable
class SearchContentProvider(Protocol):
    """Fetches a rendered results page through a proxy session."""

    async def acquire_search_content(
        self, keyword: str, coordinate: Coordinate, proxy_config: ProxyConfig
    ) -> SearchContentResult:
        ...


@runtime_checkable
class RankedResultsExtractor(Protocol):
    """Parses a results page into a ranked list and the target's position."""

    async def extract_ranked_results(
        self, content: str, business_name: str
    ) -> RankedResults:
        ...


@runtime_checkable
class MeasurementConfigProvider(Protocol):
    """Supplies the keyword and origin-zone inputs for a business."""

    async def get_active_config(self, business_id: int) -> Optional[MeasurementConfig]:
        ...


def _import_target(path: str) -> Any:
    if ":" in path:
        module_name, _, attr_path = path.partition(":")
    else:
        module_name, _, attr_path = path.rpartition(".")
    if not module_name or not attr_path:
        raise CollaboratorLoadError(f"Invalid import path '{path}'")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise CollaboratorLoadError(
            f"Cannot import module '{module_name}'", details={"path": path}
        ) from e

    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            raise CollaboratorLoadError(
                f"'{module_name}' has no attribute '{attr_path}'",
                details={"path": path},
            ) from e
    return target


def load_collaborator(path: Optional[str], protocol: type) -> Any:
    """
    Resolve an import path to a collaborator instance.

    Classes and factory functions are called without arguments; any other
    object is used as-is.

    Raises:
        CollaboratorLoadError: If the path is empty, unresolvable, or the
            resulting object does not implement ``protocol``
    """
    if not path:
        raise CollaboratorLoadError(f"No import path configured for {protocol.__name__}")

    target = _import_target(path)
    if isinstance(target, type) or (callable(target) and not isinstance(target, protocol)):
        instance = target()
    else:
        instance = target

    if not isinstance(instance, protocol):
        raise CollaboratorLoadError(
            f"'{path}' does not implement {protocol.__name__}",
            details={"path": path},
        )
    return instance
