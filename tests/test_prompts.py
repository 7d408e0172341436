"""Tests for prompt composition and per-chart-type rules."""

from __future__ import annotations

import json

import pytest

from chart_agent.agent.prompts import ChartRequest, ConversationTurn, PromptSegment, compose, flatten

pytestmark = pytest.mark.unit


def test_minimal_prompt_has_leading_system_and_trailing_user() -> None:
    """Without schema, example or history only the two framing segments are emitted."""

    segments = compose(ChartRequest(query="weekly revenue", chart_type="bar"))

    assert [s.role for s in segments] == ["system", "user"]
    assert "JSON" in segments[0].content
    assert '"bar"' in segments[0].content
    assert "weekly revenue" in segments[-1].content
    assert "Chart type: bar" in segments[-1].content


def test_schema_and_example_segments_embed_serialized_json() -> None:
    """Non-empty schema and example each add one system segment, in that order."""

    schema = {"required": ["series"]}
    example = {"series": [{"type": "bar", "data": [1, 2, 3]}]}

    segments = compose(ChartRequest(query="q", chart_type="bar"), schema, example)

    assert [s.role for s in segments] == ["system", "system", "system", "user"]
    assert json.dumps(schema, indent=2) in segments[1].content
    assert json.dumps(example, indent=2) in segments[2].content
    assert "different data" in segments[2].content


def test_empty_schema_and_example_are_skipped() -> None:
    """Empty mappings behave like missing layers."""

    segments = compose(ChartRequest(query="q", chart_type="line"), {}, {})

    assert len(segments) == 2


def test_area_requires_line_series_with_area_fill() -> None:
    """Area charts ask for line series carrying an areaStyle marker."""

    segments = compose(ChartRequest(query="traffic", chart_type="area"))

    system = segments[0].content
    assert 'series "type" MUST be "line"' in system
    assert "areaStyle" in system
    assert "Series type: line with areaStyle" in segments[-1].content


def test_history_turns_are_replayed_without_duplicating_query() -> None:
    """Prior turns alternate user/assistant; a turn equal to the query is dropped."""

    history = (
        ConversationTurn("user", "sales by month"),
        ConversationTurn("assistant", "generated a bar chart"),
        ConversationTurn("user", " weekly revenue "),
    )

    segments = compose(ChartRequest(query="weekly revenue", chart_type="bar", history=history))

    assert [(s.role, s.content) for s in segments[1:-1]] == [
        ("user", "sales by month"),
        ("assistant", "generated a bar chart"),
    ]
    assert segments[-1].role == "user"


def test_variation_is_restated_in_user_segment() -> None:
    """The trailing segment repeats the variation for emphasis."""

    segments = compose(ChartRequest(query="q", chart_type="bar", variation="stacked"))

    assert "Variation: stacked" in segments[-1].content


@pytest.mark.parametrize("chart_type", ["pie", "funnel", "gauge", "sankey", "treemap", "sunburst", "map", "parallel", "boxplot"])
def test_axisless_types_forbid_axes(chart_type: str) -> None:
    """Axis-free chart types are told not to emit xAxis/yAxis."""

    system = compose(ChartRequest(query="q", chart_type=chart_type))[0].content

    assert "Do NOT include xAxis or yAxis" in system


@pytest.mark.parametrize(
    ("chart_type", "marker"),
    [
        ("heatmap", "visualMap"),
        ("scatter", "[x, y] coordinate pairs"),
        ("radar", "indicator"),
        ("graph", "links"),
        ("unknown-kind", "category xAxis"),
    ],
)
def test_type_specific_rules(chart_type: str, marker: str) -> None:
    """Each chart type carries its own structural rule, unknown types get the default."""

    system = compose(ChartRequest(query="q", chart_type=chart_type))[0].content

    assert marker in system


def test_flatten_joins_role_tagged_segments() -> None:
    """Flattening produces the single-string backend format."""

    text = flatten([PromptSegment("system", "rules"), PromptSegment("user", "ask")])

    assert text == "system: rules\n\nuser: ask"


def test_segments_serialize_as_role_content_dicts() -> None:
    """Segments render as chat-style role/content mappings."""

    assert PromptSegment("user", "ask").as_dict() == {"role": "user", "content": "ask"}
