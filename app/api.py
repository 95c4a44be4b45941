"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import AQIResponse, DeviceSnapshot, PollerStatus, TickResponse
from datastore.device_store import DeviceStore, build_default_store
from services.aqi import aqi_category, derive_aqi
from services.poller import Poller, build_default_poller

router = APIRouter()


def get_store() -> DeviceStore:
    return build_default_store()


def get_poller() -> Poller:
    return build_default_poller()


@router.get(
    "/sensors",
    response_model=List[DeviceSnapshot],
    summary="List every sensor seen so far with its cached property values.",
)
async def list_sensors(store: DeviceStore = Depends(get_store)) -> List[DeviceSnapshot]:
    return sorted(store.scan(), key=lambda device: device.device_id)


@router.get(
    "/sensors/{sensor_id}",
    response_model=DeviceSnapshot,
    summary="Fetch a single sensor by its network ID.",
)
async def get_sensor(
    sensor_id: str,
    store: DeviceStore = Depends(get_store),
) -> DeviceSnapshot:
    device = store.get_by_sensor_id(sensor_id)
    if device is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sensor {sensor_id!r} not found.",
        )
    return device


@router.get(
    "/poller",
    response_model=PollerStatus,
    summary="Report scheduler progress and the fixed query region.",
)
async def poller_status(poller: Poller = Depends(get_poller)) -> PollerStatus:
    return poller.status()


@router.post(
    "/poller/ticks",
    response_model=TickResponse,
    summary="Run one poll immediately and report its outcome.",
)
def trigger_tick(poller: Poller = Depends(get_poller)) -> TickResponse:
    return TickResponse(status=poller.run_once())


@router.get(
    "/aqi",
    response_model=AQIResponse,
    summary="Convert a PM2.5 concentration into an AQI value.",
)
async def convert_pm25(
    pm25: float = Query(..., ge=0, description="PM2.5 concentration in ug/m3."),
) -> AQIResponse:
    value = derive_aqi(pm25)
    return AQIResponse(pm25=pm25, aqi=value, category=aqi_category(value))


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
