from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Dict, Optional

from app.schemas import DeviceSnapshot, PropertyDescription, PropertyState
from models.records import FieldValue, Sensor

logger = logging.getLogger(__name__)


class DeviceStore:
    """In-memory host for sensor devices and their cached property values."""

    def __init__(self) -> None:
        self._devices: Dict[str, DeviceSnapshot] = {}
        self._lock = Lock()

    def notify_device_added(self, sensor: Sensor) -> None:
        now = datetime.now(timezone.utc)
        snapshot = DeviceSnapshot(
            device_id=sensor.device_id,
            sensor_id=sensor.sensor_id,
            title=sensor.title,
            capabilities=list(sensor.capabilities),
            properties={
                name: PropertyState(
                    description=description.model_copy(deep=True),
                    value=sensor.values.get(name),
                )
                for name, description in sensor.properties.items()
            },
            added_at=now,
            updated_at=now,
        )
        with self._lock:
            self._devices[sensor.device_id] = snapshot
        logger.info("Device added", extra={"device_id": sensor.device_id})

    def create_property(
        self,
        device_id: str,
        name: str,
        description: PropertyDescription,
        capability: str,
    ) -> None:
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return
            if name not in device.properties:
                device.properties[name] = PropertyState(
                    description=description.model_copy(deep=True)
                )
            if capability not in device.capabilities:
                device.capabilities.append(capability)

    def set_cached_value(self, device_id: str, name: str, value: FieldValue) -> None:
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return
            state = device.properties.get(name)
            if state is None:
                logger.warning(
                    "Value for unknown property dropped",
                    extra={"device_id": device_id, "property_name": name},
                )
                return
            state.value = value
            device.updated_at = datetime.now(timezone.utc)

    def get_device(self, device_id: str) -> Optional[DeviceSnapshot]:
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return None
            return device.model_copy(deep=True)

    def get_by_sensor_id(self, sensor_id: str) -> Optional[DeviceSnapshot]:
        with self._lock:
            for device in self._devices.values():
                if device.sensor_id == sensor_id:
                    return device.model_copy(deep=True)
        return None

    def scan(self) -> list[DeviceSnapshot]:
        """Return deep copies of all announced devices."""

        with self._lock:
            return [device.model_copy(deep=True) for device in self._devices.values()]


@lru_cache
def build_default_store() -> DeviceStore:
    return DeviceStore()
