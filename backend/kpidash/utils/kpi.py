"""KPI computed fields and display formatting.

These are pure functions over plain numbers so the same math backs the API
responses, the dashboard metrics and the client-side store.
"""

from __future__ import annotations

import math
from typing import Mapping, Union

from ..schemas import KpiData, KpiDataWithProgress

ON_TRACK_RATIO = 0.8
TREND_THRESHOLD = 0.5

UNIT_SYMBOLS = {
    "currency": "$",
    "percentage": "%",
    "count": "",
    "ratio": ":",
}


def calculate_progress(value: float, target: float) -> int:
    """Percent of target reached, rounded. 0 when there is no target."""
    if target == 0:
        return 0
    # Halves round up; round() would round them to even.
    return math.floor(value / target * 100 + 0.5)


def is_on_track(value: float, target: float) -> bool:
    """True when the value is at least 80% of target. False when there is no target."""
    if target == 0:
        return False
    return value / target >= ON_TRACK_RATIO


def calculate_trend(change_percent: float) -> str:
    """Classify a change: strictly above +0.5 is up, strictly below -0.5 is down."""
    if change_percent > TREND_THRESHOLD:
        return "up"
    if change_percent < -TREND_THRESHOLD:
        return "down"
    return "neutral"


def get_unit_symbol(unit: str) -> str:
    return UNIT_SYMBOLS.get(unit, "")


def _plain(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _grouped(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


def format_value(value: float, unit: str) -> str:
    """
    Render a KPI value with its unit.

    >>> format_value(45000, "currency")
    '$45,000'
    >>> format_value(3.2, "percentage")
    '3.2%'
    >>> format_value(2, "ratio")
    '2:1'
    """
    symbol = get_unit_symbol(unit)
    if unit == "currency":
        return f"{symbol}{_grouped(value)}"
    if unit == "percentage":
        return f"{_plain(value)}{symbol}"
    if unit == "count":
        return _grouped(value)
    if unit == "ratio":
        return f"{_plain(value)}{symbol}1"
    return _plain(value)


def enhance_kpi_data(kpi: Union[KpiData, Mapping]) -> KpiDataWithProgress:
    """Attach progress, on-track flag, unit symbol and formatted value to a KPI row."""
    if not isinstance(kpi, KpiData):
        kpi = KpiData.model_validate(kpi)
    return KpiDataWithProgress(
        **kpi.model_dump(),
        progress=calculate_progress(kpi.value, kpi.target),
        is_on_track=is_on_track(kpi.value, kpi.target),
        unit_symbol=get_unit_symbol(kpi.unit),
        formatted_value=format_value(kpi.value, kpi.unit),
    )
