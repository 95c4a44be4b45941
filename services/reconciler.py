"""Reconciliation of decoded records against the set of known sensors."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from app.schemas import PropertyDescription
from models.records import FieldValue, Sensor, SensorRecord
from services.aqi import MAX_AQI, derive_aqi

logger = logging.getLogger(__name__)

DEVICE_ID_PREFIX = "purpleair-"
OUTDOOR_SENSOR_TYPE = 0


class DeviceHost(Protocol):
    """Operations the reconciler needs from the platform hosting the devices."""

    def notify_device_added(self, sensor: Sensor) -> None: ...

    def create_property(
        self,
        device_id: str,
        name: str,
        description: PropertyDescription,
        capability: str,
    ) -> None: ...

    def set_cached_value(self, device_id: str, name: str, value: FieldValue) -> None: ...


@dataclass(frozen=True)
class ReconcilerOptions:
    pm_field: str = "pm_0"
    temperature_field: Optional[str] = None
    require_coordinates: bool = False
    outdoor_only: bool = False
    compute_aqi: bool = True

    def request_fields(self) -> List[str]:
        fields = [self.pm_field]
        if self.temperature_field:
            fields.append(self.temperature_field)
        return fields


VARIANT_OPTIONS: Dict[str, ReconcilerOptions] = {
    "realtime": ReconcilerOptions(pm_field="pm_0"),
    "outdoor": ReconcilerOptions(
        pm_field="pm_1",
        temperature_field="temp_f",
        require_coordinates=True,
        outdoor_only=True,
    ),
}


def options_for_variant(variant: str) -> ReconcilerOptions:
    try:
        return VARIANT_OPTIONS[variant]
    except KeyError as exc:
        raise ValueError(f"Unknown sensor variant {variant!r}.") from exc


@dataclass(frozen=True)
class DerivedProperty:
    name: str
    source: str
    capability: str
    description: PropertyDescription
    convert: Callable[[float], FieldValue]


@dataclass
class ReconcileSummary:
    seen: int = 0
    skipped: int = 0
    created: int = 0
    updated: int = 0


def fahrenheit_to_celsius(value: float) -> float:
    return (value - 32) * 5 / 9


def _numeric(record: Mapping[str, Any], field: str) -> Optional[float]:
    if field not in record:
        return None
    value = record[field]
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _snapshot(sensor: Sensor) -> Sensor:
    return replace(
        sensor,
        capabilities=list(sensor.capabilities),
        properties=dict(sensor.properties),
        values=dict(sensor.values),
    )


def _usable_id(record: Mapping[str, Any]) -> Optional[str]:
    value = record.get("ID")
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def build_properties(options: ReconcilerOptions) -> List[DerivedProperty]:
    properties = [
        DerivedProperty(
            name="pm25",
            source=options.pm_field,
            capability="AirQualitySensor",
            description=PropertyDescription(
                semantic_type="DensityProperty",
                type="number",
                title="PM2.5",
                unit="micrograms per cubic metre",
                read_only=True,
            ),
            convert=lambda value: value,
        )
    ]
    if options.compute_aqi:
        properties.append(
            DerivedProperty(
                name="aqi",
                source=options.pm_field,
                capability="MultiLevelSensor",
                description=PropertyDescription(
                    semantic_type="LevelProperty",
                    type="integer",
                    title="AQI",
                    read_only=True,
                    minimum=0,
                    maximum=MAX_AQI,
                ),
                convert=derive_aqi,
            )
        )
    if options.temperature_field:
        properties.append(
            DerivedProperty(
                name="temperature",
                source=options.temperature_field,
                capability="TemperatureSensor",
                description=PropertyDescription(
                    semantic_type="TemperatureProperty",
                    type="number",
                    title="Temperature",
                    unit="degree celsius",
                    read_only=True,
                ),
                convert=fahrenheit_to_celsius,
            )
        )
    return properties


class Reconciler:
    """Owns the known sensors and decides create-or-update for every record."""

    def __init__(self, host: DeviceHost, options: Optional[ReconcilerOptions] = None) -> None:
        self.host = host
        self.options = options or ReconcilerOptions()
        self._properties = build_properties(self.options)
        self._sensors: Dict[str, Sensor] = {}
        self._lock = Lock()

    def reconcile(self, records: Iterable[SensorRecord]) -> ReconcileSummary:
        summary = ReconcileSummary()
        with self._lock:
            for record in records:
                summary.seen += 1
                sensor_id = self._accept(record)
                if sensor_id is None:
                    summary.skipped += 1
                    continue

                sensor = self._sensors.get(sensor_id)
                if sensor is None:
                    sensor = self._register(sensor_id, record)
                    self._apply(sensor, record)
                    self.host.notify_device_added(sensor)
                    summary.created += 1
                else:
                    self._apply(sensor, record)
                    summary.updated += 1
        return summary

    def get(self, sensor_id: str) -> Optional[Sensor]:
        with self._lock:
            sensor = self._sensors.get(sensor_id)
            return None if sensor is None else _snapshot(sensor)

    def sensors(self) -> List[Sensor]:
        with self._lock:
            return [_snapshot(sensor) for sensor in self._sensors.values()]

    def _accept(self, record: Mapping[str, Any]) -> Optional[str]:
        sensor_id = _usable_id(record)
        if sensor_id is None:
            logger.debug("Skipping record without a usable ID")
            return None
        if self.options.require_coordinates and (
            record.get("Lat") is None or record.get("Lon") is None
        ):
            logger.debug("Skipping record without coordinates", extra={"sensor_id": sensor_id})
            return None
        if self.options.outdoor_only and record.get("Type") != OUTDOOR_SENSOR_TYPE:
            logger.debug("Skipping non-outdoor sensor", extra={"sensor_id": sensor_id})
            return None
        return sensor_id

    def _register(self, sensor_id: str, record: Mapping[str, Any]) -> Sensor:
        label = record.get("Label")
        title = label.strip() if isinstance(label, str) and label.strip() else f"PurpleAir {sensor_id}"
        sensor = Sensor(
            device_id=f"{DEVICE_ID_PREFIX}{sensor_id}",
            sensor_id=sensor_id,
            title=title,
        )
        self._sensors[sensor_id] = sensor
        logger.info(
            "Creating device for %s",
            title,
            extra={"sensor_id": sensor_id, "device_id": sensor.device_id},
        )
        return sensor

    def _apply(self, sensor: Sensor, record: Mapping[str, Any]) -> None:
        for prop in self._properties:
            raw = _numeric(record, prop.source)
            if raw is None:
                continue
            try:
                value = prop.convert(raw)
            except ValueError as exc:
                logger.warning(
                    "Cannot derive %s from %r: %s",
                    prop.name,
                    raw,
                    exc,
                    extra={"sensor_id": sensor.sensor_id, "property_name": prop.name},
                )
                continue

            if not sensor.has_property(prop.name):
                logger.debug(
                    "Creating %s property in %s",
                    prop.description.title,
                    sensor.title,
                    extra={"device_id": sensor.device_id, "property_name": prop.name},
                )
                sensor.properties[prop.name] = prop.description
                if prop.capability not in sensor.capabilities:
                    sensor.capabilities.append(prop.capability)
                self.host.create_property(
                    sensor.device_id, prop.name, prop.description, prop.capability
                )

            sensor.values[prop.name] = value
            self.host.set_cached_value(sensor.device_id, prop.name, value)
