from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple


# Axis-free chart types never get xAxis/yAxis instructions.
AXISLESS_TYPES = frozenset(
    {"pie", "funnel", "gauge", "sankey", "treemap", "sunburst", "map", "parallel", "boxplot"}
)


@dataclass(frozen=True)
class ChartTypeProfile:
    """Behavior record for one chart type.

    The prompt composer reads ``prompt_rule``, the normalizer
    reads ``series_type``/``area_fill``/``data_shape`` and the chart tools
    describe ``uses_axes``/``data_shape`` to agents.
    """

    name: str
    label: str
    prompt_rule: str
    series_type: str = ""
    area_fill: bool = False
    uses_axes: bool = True
    data_shape: str = "scalar"
    fallback_variations: Tuple[str, ...] = field(default_factory=tuple)

    def resolved_series_type(self, requested: str) -> str:
        return self.series_type or requested


_NO_AXES = "Do NOT include xAxis or yAxis fields; this chart type has no cartesian axes."

DEFAULT_PROFILE = ChartTypeProfile(
    name="",
    label="Chart",
    prompt_rule=(
        "Use a category xAxis with a data list of labels, a value yAxis, "
        "and series data as a flat list of numbers aligned with the categories."
    ),
)


def _profile(name: str, label: str, prompt_rule: str, variations: Tuple[str, ...], **kwargs) -> ChartTypeProfile:
    return ChartTypeProfile(
        name=name,
        label=label,
        prompt_rule=prompt_rule,
        uses_axes=name not in AXISLESS_TYPES,
        fallback_variations=variations,
        **kwargs,
    )


CHART_TYPES: Dict[str, ChartTypeProfile] = {
    "area": _profile(
        "area",
        "Area Chart",
        DEFAULT_PROFILE.prompt_rule + " Every series must be type \"line\" with an \"areaStyle\": {} object.",
        ("smooth", "stacked", "step"),
        series_type="line",
        area_fill=True,
    ),
    "bar": _profile(
        "bar", "Bar Chart", DEFAULT_PROFILE.prompt_rule,
        ("horizontal", "stacked", "negative", "racing", "waterfall"),
    ),
    "line": _profile(
        "line", "Line Chart", DEFAULT_PROFILE.prompt_rule,
        ("line-area", "line-smooth", "line-stacked", "line-step"),
    ),
    "boxplot": _profile(
        "boxplot",
        "Boxplot Chart",
        _NO_AXES + " Each data item is a 5-number summary [min, Q1, median, Q3, max].",
        ("multiple",),
        data_shape="boxplot",
    ),
    "candlestick": _profile(
        "candlestick",
        "Candlestick Chart",
        "Use a category xAxis of dates and a value yAxis; each data item is [open, close, low, high].",
        ("candlestick-with-ma", "candlestick-with-volume"),
        data_shape="ohlc",
    ),
    "funnel": _profile(
        "funnel", "Funnel Chart",
        _NO_AXES + " Series data items are {\"name\": string, \"value\": number} objects.",
        ("comparison", "sorted"),
        data_shape="named_value",
    ),
    "gauge": _profile(
        "gauge", "Gauge Chart",
        _NO_AXES + " Series data holds {\"name\": string, \"value\": number} readings.",
        ("dashboard", "multi"),
        data_shape="named_value",
    ),
    "graph": _profile(
        "graph",
        "Graph Chart",
        "Describe the network with series \"data\" (or \"nodes\") as node objects carrying a unique \"name\", "
        "and \"links\" (or \"edges\") as {\"source\": name, \"target\": name} objects.",
        ("circular-graph", "force-graph", "graph-with-categories"),
        data_shape="graph",
    ),
    "heatmap": _profile(
        "heatmap",
        "Heatmap Chart",
        "Provide xAxis and yAxis as category axes with paired \"data\" label lists; series data items are "
        "[xIndex, yIndex, value] triples; include a top-level \"visualMap\" with min and max derived from the values.",
        ("calendar-heatmap", "geo-heatmap"),
        data_shape="heatmap",
    ),
    "map": _profile(
        "map", "Map Chart",
        _NO_AXES + " Series data items are {\"name\": region name, \"value\": number} objects.",
        ("china-map",),
        data_shape="named_value",
    ),
    "parallel": _profile(
        "parallel", "Parallel Chart",
        _NO_AXES + " Declare a top-level \"parallelAxis\" list; each data item is one row of values, one per axis.",
        ("parallel-with-multiple-lines",),
    ),
    "pie": _profile(
        "pie", "Pie Chart",
        _NO_AXES + " Series data items are {\"name\": string, \"value\": number} objects.",
        ("doughnut(Ring)-pie", "rose-pie", "nested-pie"),
        data_shape="named_value",
    ),
    "radar": _profile(
        "radar",
        "Radar Chart",
        "Include a top-level \"radar\" object with an \"indicator\" list of {\"name\": string, \"max\": number} "
        "dimensions; each data item is {\"name\": string, \"value\": [one number per indicator]}.",
        ("filled-radar", "multiple-radar"),
        data_shape="named_value",
    ),
    "sankey": _profile(
        "sankey", "Sankey Chart",
        _NO_AXES + " Series \"data\" lists nodes by \"name\" and \"links\" lists {\"source\", \"target\", \"value\"} flows.",
        ("sankey-node-alignments",),
        data_shape="graph",
    ),
    "scatter": _profile(
        "scatter",
        "Scatter Chart",
        "Use value axes for xAxis and yAxis; series data MUST be a list of [x, y] coordinate pairs, "
        "never single numbers and never {x, y} objects.",
        ("bubble-scatter", "effect-scatter", "large-scatter"),
        data_shape="pair",
    ),
    "sunburst": _profile(
        "sunburst", "Sunburst Chart",
        _NO_AXES + " Series data is a tree of {\"name\", \"value\", \"children\"} nodes.",
        ("sunburst-with-levels", "sunburst-with-radius"),
        data_shape="tree",
    ),
    "treemap": _profile(
        "treemap", "Treemap Chart",
        _NO_AXES + " Series data is a list of {\"name\", \"value\"} nodes, optionally nested via \"children\".",
        ("treemap-drilldown", "treemap-with-levels"),
        data_shape="tree",
    ),
}

FALLBACK_CHART_TYPES: Tuple[str, ...] = tuple(sorted(CHART_TYPES))


def chart_type_key(chart_type: str) -> str:
    return (chart_type or "").strip().lower()


def get_profile(chart_type: str) -> ChartTypeProfile:
    """Return the behavior record for ``chart_type``, or the default one."""
    return CHART_TYPES.get(chart_type_key(chart_type), DEFAULT_PROFILE)


def fallback_variations(chart_type: str) -> List[str]:
    return list(get_profile(chart_type).fallback_variations)
