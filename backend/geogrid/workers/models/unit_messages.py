"""
Messages exchanged between the worker pool coordinator and its execution units.

Units share no state with the coordinator or with each other; everything a
unit needs travels in a PointTask and everything it learned travels back in
a PointOutcome, including per-call details such as the proxy exit IP.
"""

from dataclasses import dataclass, field
from typing import Optional

from ...enums import PointOutcomeStatus, UnitMessageType
from ...models.ranking_model import ProxyConfig, RankedResults, SearchContentResult


@dataclass
class PointTask:
    """One grid point to measure."""

    point_id: int
    run_id: int
    business_id: int
    business_name: str
    keyword: str
    lat: float
    lng: float
    row_idx: int
    col_idx: int
    proxy_config: ProxyConfig = field(default_factory=ProxyConfig)
    message_type: UnitMessageType = UnitMessageType.TASK


@dataclass
class PointOutcome:
    """Terminal result of measuring one point, reported by a unit."""

    unit_id: int
    point_id: int
    status: PointOutcomeStatus
    attempts: int = 0
    reason: Optional[str] = None
    error: Optional[str] = None
    content: Optional[SearchContentResult] = None
    ranked: Optional[RankedResults] = None
    proxy_ip: Optional[str] = None
    message_type: UnitMessageType = UnitMessageType.RESULT

    @property
    def succeeded(self) -> bool:
        return self.status == PointOutcomeStatus.SUCCESS

    @property
    def rank(self) -> Optional[int]:
        return self.ranked.rank if self.ranked else None


@dataclass
class UnitExit:
    """Control message telling an idle unit to retire."""

    unit_id: int
    message_type: UnitMessageType = UnitMessageType.EXIT
