# backend/geogrid/models/ranking_model.py
"""
Ranking Models - inputs and outputs of the external search collaborators
and the append-only ranking snapshot record.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Coordinate(BaseModel):
    """A latitude/longitude pair."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ProxyConfig(BaseModel):
    """Residential proxy credentials handed to the search content provider."""

    username: Optional[str] = None
    password: SecretStr = SecretStr("")
    endpoint: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.endpoint)


class SearchContentResult(BaseModel):
    """Outcome of fetching one results page."""

    content: Optional[str] = None
    failure_reason: Optional[str] = None
    search_url: Optional[str] = None
    landing_url: Optional[str] = None
    screenshot_path: Optional[str] = None
    proxy_ip: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.content is not None and self.failure_reason is None


class PlaceResult(BaseModel):
    """One ranked business in a results page."""

    model_config = ConfigDict(extra="allow")

    position: int = Field(..., ge=1)
    name: Optional[str] = None
    place_id: Optional[str] = None
    is_match: bool = False


class RankedResults(BaseModel):
    """
    Parsed results for one point.

    ``rank`` is None when the business was not among the results. ``reason``
    is the parser's explanation and is required for the outcome to count as
    a measurement.
    """

    rank: Optional[int] = Field(default=None, ge=1)
    places: List[PlaceResult] = Field(default_factory=list)
    matched: Optional[PlaceResult] = None
    total_results: Optional[int] = None
    reason: Optional[str] = None

    @property
    def total_returned(self) -> int:
        if self.total_results is not None:
            return self.total_results
        return len(self.places)

    @property
    def matched_place_id(self) -> Optional[str]:
        return self.matched.place_id if self.matched else None

    def to_results_payload(self) -> Optional[Dict[str, Any]]:
        """Compact JSON payload stored on the point, or None when there is nothing to store."""
        if not self.places and self.matched is None and self.total_results is None:
            return None
        payload: Dict[str, Any] = {"totalResults": self.total_returned}
        if self.matched is not None:
            payload["matched"] = self.matched.model_dump(exclude_none=True)
        payload["places"] = [p.model_dump(exclude_none=True) for p in self.places]
        return payload


class RankingSnapshotCreate(BaseModel):
    """Append-only ranked competitor record for one successful measurement."""

    run_id: int
    business_id: int
    keyword: str
    origin_lat: float
    origin_lng: float
    total_results: int = 0
    matched_place_id: Optional[str] = None
    matched_position: Optional[int] = None
    results: List[Dict[str, Any]] = Field(default_factory=list)
