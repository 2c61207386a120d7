"""
Time-bucketed rollups of raw readings.

Two entry points:

``device_series``
    Mean of each field per bucket for one device. The output schema is
    fixed (``gfr, gor, gvf, ofr, wfr, wlr, pressure, temperature``); fields
    the device type does not report are ``None``.

``hierarchy_series``
    Per bucket, each device's mean is taken first; flow rates are then
    summed across devices, GVF/WLR are derived from the sums, and
    pressure/temperature are averaged. When the window holds no readings
    at all, a fixed-length series is synthesized from the latest
    projection of every device so charts always have a line to draw.

Buckets are sparse: only buckets containing at least one reading appear.
"""
import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.device import Device
from app.services import reading_store
from app.services.time_buckets import TimeWindow, truncate

logger = logging.getLogger(__name__)

SERIES_FIELDS = ("gfr", "gor", "gvf", "ofr", "wfr", "wlr", "pressure", "temperature")

# device type -> {output field: payload tag}
DEVICE_FIELD_MAP: Dict[str, Dict[str, str]] = {
    "MPFM": {
        "gfr": "GFR",
        "gor": "GOR",
        "gvf": "GVF",
        "ofr": "OFR",
        "wfr": "WFR",
        "wlr": "WLR",
        "pressure": "PressureAvg",
        "temperature": "TemperatureAvg",
    },
    "Pressure Sensor": {
        "pressure": "Pressure",
        "temperature": "TemperatureAvg",
    },
    # PressureAvg/Temperature is what these sensors publish
    "Temperature Sensor": {
        "pressure": "PressureAvg",
        "temperature": "Temperature",
    },
    "Flow Meter": {
        "ofr": "FlowRate",
        "pressure": "PressureAvg",
        "temperature": "TemperatureAvg",
    },
}

# read from every device in a hierarchy rollup, whatever its type
HIERARCHY_TAGS = {
    "gfr": "GFR",
    "gor": "GOR",
    "ofr": "OFR",
    "wfr": "WFR",
    "pressure": "PressureAvg",
    "temperature": "TemperatureAvg",
}

SUMMED_FIELDS = ("gfr", "gor", "ofr", "wfr")
AVERAGED_FIELDS = ("pressure", "temperature")


def numeric(payload: Optional[Mapping[str, Any]], tag: str) -> Optional[float]:
    """Numeric value of ``tag`` in a payload, or None when absent/unusable."""
    if not payload:
        return None
    value = payload.get(tag)
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def field_map(type_name: Optional[str]) -> Dict[str, str]:
    return DEVICE_FIELD_MAP.get(type_name or "", {})


def latest_values(type_name: Optional[str], payload: Optional[Mapping[str, Any]]) -> Dict[str, Optional[float]]:
    """Map one payload onto the fixed field schema for a device type."""
    fields = field_map(type_name)
    return {f: numeric(payload, fields[f]) if f in fields else None for f in SERIES_FIELDS}


class _Mean:
    __slots__ = ("total", "count")

    def __init__(self):
        self.total = 0.0
        self.count = 0

    def add(self, value: float) -> None:
        self.total += value
        self.count += 1

    @property
    def value(self) -> Optional[float]:
        return self.total / self.count if self.count else None


def device_series(db: Session, device: Device, window: TimeWindow) -> List[Dict[str, Any]]:
    fields = field_map(device.type_name)
    readings = reading_store.readings_in_window(db, [device.id], window.start, window.end)

    buckets: Dict[datetime, Dict[str, _Mean]] = {}
    points: Dict[datetime, int] = defaultdict(int)
    for reading in readings:
        bucket = truncate(reading.created_at, window.bucket)
        means = buckets.setdefault(bucket, defaultdict(_Mean))
        points[bucket] += 1
        for field, tag in fields.items():
            value = numeric(reading.data, tag)
            if value is not None:
                means[field].add(value)

    series = []
    for bucket in sorted(buckets):
        means = buckets[bucket]
        row: Dict[str, Any] = {"timestamp": bucket}
        for field in SERIES_FIELDS:
            row[field] = means[field].value if field in fields else None
        row["data_points"] = points[bucket]
        series.append(row)

    logger.debug(
        "Device %s: %d readings into %d buckets (%s)",
        device.serial_number, len(readings), len(series), window.label,
    )
    return series


def _safe_ratio(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    ratio = numerator / denominator * 100
    return ratio if math.isfinite(ratio) else 0.0


def combine_devices(values: Sequence[Mapping[str, Optional[float]]]) -> Dict[str, float]:
    """Roll per-device values for one bucket into hierarchy totals."""
    totals = {f: sum(v.get(f) or 0.0 for v in values) for f in SUMMED_FIELDS}

    row: Dict[str, float] = {
        "total_gfr": totals["gfr"],
        "total_gor": totals["gor"],
        "total_ofr": totals["ofr"],
        "total_wfr": totals["wfr"],
        "total_gvf": _safe_ratio(totals["gfr"], totals["gfr"] + totals["ofr"] + totals["wfr"]),
        "total_wlr": _safe_ratio(totals["wfr"], totals["ofr"] + totals["wfr"]),
    }
    for field in AVERAGED_FIELDS:
        present = [v[field] for v in values if v.get(field) is not None]
        row[f"avg_{field}"] = sum(present) / len(present) if present else 0.0
    return row


def _hierarchy_values(payload: Optional[Mapping[str, Any]]) -> Dict[str, Optional[float]]:
    return {f: numeric(payload, tag) for f, tag in HIERARCHY_TAGS.items()}


def fallback_series(
    db: Session,
    device_ids: Iterable[int],
    now: datetime,
    points: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """``points`` rows, one minute apart and ending at ``now``, built from
    each device's latest projection. Every row carries the same totals."""
    points = points or settings.FALLBACK_POINTS
    latest = reading_store.latest_for_devices(db, device_ids)

    values = [_hierarchy_values(row.data) for row in latest.values()]
    totals = combine_devices(values)

    series = []
    for i in range(points - 1, -1, -1):
        row: Dict[str, Any] = {"timestamp": now - timedelta(minutes=i)}
        row.update(totals)
        row["device_count"] = len(latest)
        series.append(row)
    return series


def hierarchy_series(db: Session, devices: Sequence[Device], window: TimeWindow) -> List[Dict[str, Any]]:
    device_ids = [d.id for d in devices]
    readings = reading_store.readings_in_window(db, device_ids, window.start, window.end)

    # bucket -> device -> field -> mean
    buckets: Dict[datetime, Dict[int, Dict[str, _Mean]]] = {}
    for reading in readings:
        bucket = truncate(reading.created_at, window.bucket)
        per_device = buckets.setdefault(bucket, {})
        means = per_device.setdefault(reading.device_id, defaultdict(_Mean))
        for field, value in _hierarchy_values(reading.data).items():
            if value is not None:
                means[field].add(value)

    if not buckets:
        logger.info(
            "Hierarchy rollup: no readings for %d devices in %s window, serving fallback series",
            len(device_ids), window.label,
        )
        return fallback_series(db, device_ids, window.end)

    series = []
    for bucket in sorted(buckets):
        per_device = buckets[bucket]
        values = [
            {f: means[f].value for f in HIERARCHY_TAGS}
            for means in per_device.values()
        ]
        row: Dict[str, Any] = {"timestamp": bucket}
        row.update(combine_devices(values))
        row["device_count"] = len(per_device)
        series.append(row)

    logger.info(
        "Hierarchy rollup: %d readings from %d devices into %d buckets (%s)",
        len(readings), len(device_ids), len(series), window.label,
    )
    return series
