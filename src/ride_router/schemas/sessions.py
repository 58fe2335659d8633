"""Session request/response schemas."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..services.routing.models import InsertPolicy, SessionStatus


class StopModel(BaseModel):
    position: int
    stop_id: str
    name: str
    full_address: str
    formatted_address: Optional[str] = None
    coordinates: Optional[tuple[float, float]] = None
    phone: str = ""
    notes: str = ""
    category: str = ""
    rider_count: int
    is_origin: bool


class RejectedStopModel(BaseModel):
    stop_id: str
    name: str
    full_address: str
    reason: str


class SessionResponse(BaseModel):
    session_id: str
    generation: int
    status: SessionStatus
    rider_total: int
    stop_count: int
    category_summary: Dict[str, int]
    categories: List[str]
    total_cost: Optional[float] = None
    category_filter: Optional[str] = None
    stops: List[StopModel]
    rejected: List[RejectedStopModel] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class DecisionRequest(BaseModel):
    proceed: bool = Field(..., description="Build with the validated stops only (true) or abort the load (false).")


class InsertStopRequest(BaseModel):
    name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip: str = Field(..., min_length=1)
    phone: str = ""
    notes: str = ""
    category: str = ""
    rider_count: int = Field(default=1, ge=1)
    policy: Optional[InsertPolicy] = Field(
        default=None,
        description="append keeps the current order; reoptimize rebuilds the tour. Defaults to the server setting.",
    )


class MoveStopRequest(BaseModel):
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class RiderCountRequest(BaseModel):
    delta: int


class CategoryFilterRequest(BaseModel):
    category: Optional[str] = Field(default=None, description="Category tag; empty or 'all' selects every stop.")


class CapacityWarningModel(BaseModel):
    kind: str
    limit: int
    dropped: int
    message: str


class DirectionsResponse(BaseModel):
    source: str
    path: List[tuple[float, float]]
    rendered_stop_ids: List[str]
    distance_m: Optional[float] = None
    duration_s: Optional[float] = None
    warnings: List[CapacityWarningModel] = Field(default_factory=list)


class DeepLinkResponse(BaseModel):
    url: str
    warnings: List[CapacityWarningModel] = Field(default_factory=list)
