"""HTTP retrieval of sensor readings for a bounding box."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import httpx

from models.records import BoundingBox

logger = logging.getLogger(__name__)

_MAP_OPTIONS = "1/mAQI/a0/cC0"


@dataclass(frozen=True)
class RateLimited:
    """The network answered 429; wait for the next tick."""


@dataclass(frozen=True)
class Fetched:
    text: str


@dataclass(frozen=True)
class TransportFailure:
    reason: str
    status_code: Optional[int] = None


FetchOutcome = Union[RateLimited, Fetched, TransportFailure]


class SensorNetworkClient:
    """Issues one query per call against the sensor network's data endpoint."""

    def __init__(
        self,
        base_url: str,
        fields: Sequence[str],
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.fields = tuple(fields)
        self._client = httpx.Client(timeout=timeout, transport=transport, follow_redirects=True)

    def close(self) -> None:
        self._client.close()

    def build_params(self, box: BoundingBox) -> dict[str, Union[str, float]]:
        params: dict[str, Union[str, float]] = {"opt": _MAP_OPTIONS, "fetch": "true"}
        params.update(box.as_query())
        params["fields"] = ",".join(self.fields)
        return params

    def poll(self, box: BoundingBox) -> FetchOutcome:
        params = self.build_params(box)
        try:
            response = self._client.get(self.base_url, params=params)
        except httpx.HTTPError as exc:
            return TransportFailure(reason=f"{type(exc).__name__}: {exc}")

        logger.debug("Called sensor network", extra={"url": str(response.url)})

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            return RateLimited()
        if not response.is_success:
            return TransportFailure(
                reason=f"Unexpected response status {response.status_code}",
                status_code=response.status_code,
            )
        return Fetched(text=response.text)
