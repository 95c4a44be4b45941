"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Union

from app.schemas import PropertyDescription

FieldValue = Union[int, float, str, bool, None]
SensorRecord = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Rectangular query region given by its north-west and south-east corners."""

    nw_lat: float
    nw_lng: float
    se_lat: float
    se_lng: float

    def as_query(self) -> Dict[str, float]:
        return {
            "nwlat": self.nw_lat,
            "selat": self.se_lat,
            "nwlng": self.nw_lng,
            "selng": self.se_lng,
        }


@dataclass(slots=True)
class Sensor:
    """A known sensor and the last values cached for each of its properties."""

    device_id: str
    sensor_id: str
    title: str
    capabilities: List[str] = field(default_factory=list)
    properties: Dict[str, PropertyDescription] = field(default_factory=dict)
    values: Dict[str, FieldValue] = field(default_factory=dict)

    def has_property(self, name: str) -> bool:
        return name in self.properties

    def cached_values(self) -> Mapping[str, FieldValue]:
        return dict(self.values)
