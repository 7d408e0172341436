from __future__ import annotations

import copy
from numbers import Number
from typing import Any, Dict, List, Mapping, Optional, Tuple

from chart_agent.registry.chart_types import ChartTypeProfile, chart_type_key, get_profile

AXIS_KEYS = ("xAxis", "yAxis")
# Keys some generators nest the real option object under
ENVELOPE_KEYS = ("chart_spec", "option", "options", "chart", "config")

DEFAULT_VALUE_RANGE = (0, 10)
MAP_EMPHASIS = {"itemStyle": {"areaColor": "#389BB7"}}


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _unwrap_envelope(config: Dict[str, Any]) -> Dict[str, Any]:
    if "series" in config:
        return config
    wrapped = [k for k in ENVELOPE_KEYS if isinstance(config.get(k), Mapping) and "series" in config[k]]
    if len(wrapped) == 1:
        return dict(config[wrapped[0]])
    return config


def _coerce_axis(axis: Any) -> Any:
    if not isinstance(axis, list):
        return axis
    if len(axis) == 1 and isinstance(axis[0], Mapping):
        return dict(axis[0])
    if axis and all(isinstance(a, Mapping) for a in axis):
        # Several axis objects is ECharts' legitimate multi-axis form
        return axis
    return {"data": axis}


def _treemap_data(data: List[Any]) -> List[Any]:
    return [
        {"name": f"Item {i + 1}", "value": item} if _is_number(item) else item
        for i, item in enumerate(data)
    ]


def _scatter_data(data: List[Any]) -> List[Any]:
    coerced = []
    for i, item in enumerate(data):
        if _is_number(item):
            coerced.append([i, item])
        elif isinstance(item, Mapping) and "x" in item and "y" in item:
            coerced.append([item["x"], item["y"]])
        else:
            coerced.append(item)
    return coerced


def _heat_value(point: Any) -> Optional[float]:
    if isinstance(point, (list, tuple)):
        if len(point) >= 3 and _is_number(point[2]):
            return point[2]
        return None
    if isinstance(point, Mapping):
        value = point.get("value")
        if _is_number(value):
            return value
        if isinstance(value, (list, tuple)) and len(value) >= 3 and _is_number(value[2]):
            return value[2]
    return None


def value_range(series: List[Any]) -> Tuple[float, float]:
    """Min/max over every heatmap point value, (0, 10) when none are found."""
    values = []
    for s in series:
        data = s.get("data") if isinstance(s, Mapping) else None
        if not isinstance(data, list):
            continue
        for point in data:
            v = _heat_value(point)
            if v is not None:
                values.append(v)
    if not values:
        return DEFAULT_VALUE_RANGE
    return min(values), max(values)


def _normalize_series(chart_type: str, profile: ChartTypeProfile, series: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(series)

    if profile.area_fill:
        out["type"] = "line"
        if out.get("areaStyle") is None:
            out["areaStyle"] = {}
    elif out.get("type") != chart_type:
        out["type"] = chart_type

    data = out.get("data")
    if isinstance(data, list):
        if chart_type == "treemap":
            out["data"] = _treemap_data(data)
        elif profile.data_shape == "pair":
            out["data"] = _scatter_data(data)

    if chart_type == "map":
        out.setdefault("map", "world")
        out.setdefault("roam", True)
        emphasis = out.get("emphasis")
        out["emphasis"] = {**copy.deepcopy(MAP_EMPHASIS), **(emphasis if isinstance(emphasis, Mapping) else {})}

    return out


def normalize(chart_type: str, extracted: Any) -> Any:
    """
    Apply chart-type fix-ups so a generator's object matches what ECharts expects.

    Pure and idempotent: the input is never mutated, and normalizing an
    already-normalized config returns an equal config. Non-mapping input is
    returned unchanged for the validator to reject.
    """
    if not isinstance(extracted, Mapping):
        return extracted

    chart_type = chart_type_key(chart_type)
    profile = get_profile(chart_type)
    out: Dict[str, Any] = _unwrap_envelope(copy.deepcopy(dict(extracted)))

    series = out.get("series")
    if isinstance(series, Mapping):
        series = [series]
    if isinstance(series, list):
        out["series"] = [
            _normalize_series(chart_type, profile, s) if isinstance(s, Mapping) else s
            for s in series
        ]

    for key in AXIS_KEYS:
        if key in out:
            out[key] = _coerce_axis(out[key])

    if chart_type == "heatmap" and out.get("visualMap") is None:
        series = out.get("series")
        low, high = value_range(series if isinstance(series, list) else [])
        out["visualMap"] = {
            "min": low,
            "max": high,
            "calculable": True,
            "orient": "horizontal",
            "left": "center",
        }

    return out
