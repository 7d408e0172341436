from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from chart_agent.registry.chart_types import get_profile


@dataclass(frozen=True)
class ConversationTurn:
    role: str  # "user" | "assistant"
    text: str


@dataclass(frozen=True)
class ChartRequest:
    query: str
    chart_type: str
    variation: str = ""
    history: Tuple[ConversationTurn, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PromptSegment:
    role: str
    content: str

    def as_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


SYSTEM_PROMPT = (
    "You are an ECharts expert. Generate a complete ECharts option object in JSON format for a \"{chart_type}\" chart.\n\n"
    "Rules:\n"
    "1. Return ONLY valid JSON: no markdown, no prose, no explanations.\n"
    "2. The chart type MUST be strictly \"{chart_type}\", not any other type.\n"
    "3. Every series \"type\" MUST be \"{series_type}\".{area_note}\n"
    "4. {type_rule}\n"
    "5. The JSON must be usable directly with echarts.setOption()."
)

AREA_NOTE = (
    " This is an area chart: use series type \"line\" and give every series an \"areaStyle\": {} object."
)


def build_system_prompt(chart_type: str) -> str:
    profile = get_profile(chart_type)
    return SYSTEM_PROMPT.format(
        chart_type=chart_type,
        series_type=profile.resolved_series_type(chart_type),
        area_note=AREA_NOTE if profile.area_fill else "",
        type_rule=profile.prompt_rule,
    )


def build_schema_prompt(schema: Mapping[str, Any]) -> str:
    return f"Follow this ECharts schema structure:\n{json.dumps(schema, indent=2)}"


def build_example_prompt(example: Mapping[str, Any]) -> str:
    return (
        "Here is an example chart configuration for reference. Keep its structure "
        "but create different data values that fit the request:\n"
        f"{json.dumps(example, indent=2)}"
    )


def build_user_prompt(request: ChartRequest) -> str:
    profile = get_profile(request.chart_type)
    series_type = profile.resolved_series_type(request.chart_type)
    lines = [
        f"Create a {request.chart_type} chart for: \"{request.query}\"",
        "",
        f"- Chart type: {request.chart_type}",
    ]
    if request.variation:
        lines.append(f"- Variation: {request.variation}")
    lines.append(f"- Series type: {series_type}" + (" with areaStyle: {}" if profile.area_fill else ""))
    lines.append("- Include realistic data and a title that reflects the request")
    lines.append("Output policy: JSON only, no markdown, no prose.")
    return "\n".join(lines)


def _history_segments(history: Iterable[ConversationTurn], query: str) -> List[PromptSegment]:
    segments: List[PromptSegment] = []
    current = query.strip()
    for turn in history:
        role = "assistant" if turn.role == "assistant" else "user"
        # Re-sending the current query as history only reinforces itself
        if role == "user" and turn.text.strip() == current:
            continue
        segments.append(PromptSegment(role, turn.text))
    return segments


def compose(
    request: ChartRequest,
    schema: Optional[Mapping[str, Any]] = None,
    example: Optional[Mapping[str, Any]] = None,
) -> List[PromptSegment]:
    """
    Build the ordered prompt for one chart request.

    Order: system rules, schema reference, example reference, prior turns,
    then exactly one trailing user segment.
    """
    segments = [PromptSegment("system", build_system_prompt(request.chart_type))]
    if schema:
        segments.append(PromptSegment("system", build_schema_prompt(schema)))
    if example:
        segments.append(PromptSegment("system", build_example_prompt(example)))
    segments.extend(_history_segments(request.history, request.query))
    segments.append(PromptSegment("user", build_user_prompt(request)))
    return segments


def flatten(segments: Iterable[PromptSegment]) -> str:
    """Join segments into the single ``role: content`` string chat backends accept."""
    parts = [f"{s.role}: {s.content}" for s in segments]
    return "\n\n".join(parts)
