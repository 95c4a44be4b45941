"""EPA air quality index derived from PM2.5 concentrations."""

from __future__ import annotations

import math
from typing import Tuple

# (concentration upper bound in ug/m3, AQI upper bound). The first pair is the
# lower anchor so that the first band starts at AQI 0.
AQI_BREAKPOINTS: Tuple[Tuple[float, int], ...] = (
    (0.0, -1),
    (12.0, 50),
    (35.4, 100),
    (55.4, 150),
    (150.4, 200),
    (250.4, 300),
    (350.4, 400),
    (500.0, 500),
)

MAX_AQI = 500

AQI_CATEGORIES: Tuple[Tuple[int, str], ...] = (
    (50, "Good"),
    (100, "Moderate"),
    (150, "Unhealthy for Sensitive Groups"),
    (200, "Unhealthy"),
    (300, "Very Unhealthy"),
    (500, "Hazardous"),
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def derive_aqi(concentration: float) -> int:
    """Convert a PM2.5 concentration into an AQI value in ``[0, 500]``.

    Interpolates linearly inside the breakpoint band that contains the
    concentration. Anything above the last band saturates at 500.
    """
    if math.isnan(concentration):
        raise ValueError("PM2.5 concentration must be a number.")
    if concentration < 0:
        raise ValueError(f"PM2.5 concentration must be non-negative, got {concentration!r}.")

    prev_pm, prev_aqi = AQI_BREAKPOINTS[0]
    for pm, aqi in AQI_BREAKPOINTS[1:]:
        if concentration <= pm:
            lower_aqi = prev_aqi + 1
            ratio = (concentration - prev_pm) / (pm - prev_pm)
            return _round_half_up(lower_aqi + ratio * (aqi - lower_aqi))
        prev_pm, prev_aqi = pm, aqi

    return MAX_AQI


def aqi_category(aqi: int) -> str:
    """Return the EPA category label for an AQI value."""
    for upper, label in AQI_CATEGORIES:
        if aqi <= upper:
            return label
    return AQI_CATEGORIES[-1][1]
