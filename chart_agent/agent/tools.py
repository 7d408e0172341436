from __future__ import annotations

import json
import time
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from llama_index.core.tools import FunctionTool

from chart_agent.agent.logging_config import get_logger
from chart_agent.agent.orchestrator import ChartOrchestrator
from chart_agent.registry.chart_types import get_profile
from chart_agent.validator.chart_validator import ChartValidator
from chart_agent.validator.normalizer import normalize

tool_logger = get_logger("tool")


def log_tool_execution(tool_name: str):
    """
    Decorator to log tool execution with telemetry.

    Args:
        tool_name: Name of the tool being executed
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            tool_logger.info(
                f"Tool execution started: {tool_name}",
                extra={
                    "event_type": "tool.execute",
                    "tool": tool_name,
                    "input": {
                        "args": [str(arg)[:200] for arg in args],
                        "kwargs": {k: str(v)[:200] for k, v in kwargs.items()},
                    },
                },
            )
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                tool_logger.error(
                    f"Tool execution failed: {tool_name}",
                    exc_info=True,
                    extra={
                        "event_type": "tool.error",
                        "tool": tool_name,
                        "error": str(e),
                        "duration_ms": round((time.time() - start_time) * 1000, 2),
                    },
                )
                raise

            tool_logger.info(
                f"Tool execution completed: {tool_name}",
                extra={
                    "event_type": "tool.result",
                    "tool": tool_name,
                    "output": str(result)[:500],
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                },
            )
            return result

        return wrapper
    return decorator


@log_tool_execution("validate_chart_config")
def validate_chart_config_tool(
    config: Any,
    chart_type: str,
    validator: ChartValidator,
    schema: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Normalize a chart config for ``chart_type`` and validate it."""
    outcome = validator.validate(normalize(chart_type, config), schema)
    return outcome.to_dict()


@log_tool_execution("describe_chart_type")
def describe_chart_type(chart_type: str) -> Dict[str, Any]:
    profile = get_profile(chart_type)
    return {
        "chart_type": chart_type,
        "label": profile.label if profile.name else f"{chart_type} chart",
        "series_type": profile.resolved_series_type(chart_type),
        "uses_axes": profile.uses_axes,
        "data_shape": profile.data_shape,
        "rule": profile.prompt_rule,
    }


def create_tools(orchestrator: ChartOrchestrator) -> List[FunctionTool]:
    """
    Expose the chart pipeline as LlamaIndex FunctionTools.

    Every tool returns a JSON string.
    """
    repository = orchestrator.repository

    async def generate_tool_fn(query: str, chart_type: str = "bar", variation: str = "") -> str:
        """Generate a validated ECharts option object. Returns JSON string."""
        outcome = await orchestrator.run(query, chart_type=chart_type, variation=variation or None)
        return json.dumps(outcome.to_dict(), default=str)

    generate_tool = FunctionTool.from_defaults(
        async_fn=generate_tool_fn,
        name="generate_chart_config",
        description=(
            "Generate a validated ECharts configuration from a natural language request. "
            "Input: query string, chart_type string (e.g. bar, line, pie), optional variation string. "
            "Returns JSON with 'valid', 'data' (the chart option) and 'error'/'stage' on failure."
        ),
    )

    async def validate_tool_fn(config_json: str, chart_type: str = "bar", variation: str = "") -> str:
        """Normalize and validate a chart config. Returns JSON string."""
        try:
            config = json.loads(config_json) if isinstance(config_json, str) else config_json
        except json.JSONDecodeError as e:
            return json.dumps({"valid": False, "data": None, "error": f"Invalid JSON: {e}"})
        schema = await repository.load_composed_schema(chart_type, variation or None)
        result = validate_chart_config_tool(config, chart_type, orchestrator.validator, schema)
        return json.dumps(result, default=str)

    validate_tool = FunctionTool.from_defaults(
        async_fn=validate_tool_fn,
        name="validate_chart_config",
        description=(
            "Normalize and validate an ECharts configuration for a chart type. "
            "Input: config JSON string, chart_type string, optional variation. "
            "Returns JSON with 'valid', 'data', 'error' and 'ignored' (suppressed cosmetic issues)."
        ),
    )

    async def list_types_tool_fn() -> str:
        """List supported chart types. Returns JSON string."""
        chart_types = await repository.list_chart_types()
        return json.dumps([describe_chart_type(t) for t in chart_types])

    list_types_tool = FunctionTool.from_defaults(
        async_fn=list_types_tool_fn,
        name="list_chart_types",
        description="List the supported chart types with their series type and data rules. Returns JSON list.",
    )

    async def list_variations_tool_fn(chart_type: str) -> str:
        """List variations of one chart type. Returns JSON string."""
        return json.dumps(await repository.list_variations(chart_type))

    list_variations_tool = FunctionTool.from_defaults(
        async_fn=list_variations_tool_fn,
        name="list_variations",
        description="List the variations (e.g. stacked, horizontal) available for a chart type. Returns JSON list.",
    )

    return [generate_tool, validate_tool, list_types_tool, list_variations_tool]
