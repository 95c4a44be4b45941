"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


class TickStatus(str, Enum):
    """Outcome of a single poll of the sensor network."""

    completed = "completed"
    rate_limited = "rate_limited"
    transport_error = "transport_error"
    decode_error = "decode_error"
    failed = "failed"
    skipped = "skipped"


class PropertyDescription(BaseModel):
    """Metadata fixed when a property is first created on a device."""

    semantic_type: str = Field(..., description="Semantic property tag, e.g. LevelProperty.")
    type: str = Field(..., description="Primitive value type: number or integer.")
    title: str
    unit: Optional[str] = None
    read_only: bool = True
    minimum: Optional[float] = None
    maximum: Optional[float] = None


class PropertyState(BaseModel):
    """A property description together with its last cached value."""

    description: PropertyDescription
    value: Optional[Union[int, float]] = None


class DeviceSnapshot(BaseModel):
    """Host-side view of a sensor device."""

    device_id: str
    sensor_id: str
    title: str
    capabilities: List[str] = Field(default_factory=list)
    properties: Dict[str, PropertyState] = Field(default_factory=dict)
    added_at: datetime
    updated_at: Optional[datetime] = None


class BoundingBoxSchema(BaseModel):
    nw_lat: float
    nw_lng: float
    se_lat: float
    se_lng: float


class PollerStatus(BaseModel):
    """Counters describing the scheduler's progress."""

    running: bool
    interval_seconds: float
    bounding_box: BoundingBoxSchema
    tick_count: int = Field(0, ge=0)
    last_status: Optional[TickStatus] = None
    last_tick_at: Optional[datetime] = None
    status_counts: Dict[str, int] = Field(default_factory=dict)


class TickResponse(BaseModel):
    status: TickStatus


class AQIResponse(BaseModel):
    pm25: float = Field(..., ge=0)
    aqi: int = Field(..., ge=0, le=500)
    category: str
