from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from chart_agent.agent.config import Settings, get_llm
from chart_agent.agent.gateway import GenerationGateway, HttpChatGateway, LLMGateway
from chart_agent.agent.logging_config import setup_logging
from chart_agent.agent.orchestrator import ChartOrchestrator
from chart_agent.registry.asset_store import store_from_location
from chart_agent.registry.schema_repository import SchemaRepository


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chart config generator (natural language -> ECharts option)")
    parser.add_argument("query", type=str, nargs="?", help="Natural language chart request")
    parser.add_argument("--type", dest="chart_type", default="bar", help="Chart type (bar, line, pie, ...)")
    parser.add_argument("--variation", default="", help="Chart variation (e.g. stacked)")
    parser.add_argument("--assets", default=None, help="Asset directory or base URL for schema/example JSON")
    parser.add_argument("--backend", choices=("llm", "http"), default=None, help="Generator backend")
    parser.add_argument("--output", default=None, help="Write the chart config JSON to this path")
    parser.add_argument("--list-types", action="store_true", help="List chart types and variations, then exit")
    return parser


def build_gateway(settings: Settings, backend: str) -> GenerationGateway:
    if backend == "http":
        return HttpChatGateway(settings.chat_url, timeout=settings.timeout)
    return LLMGateway(get_llm(settings))


async def list_types(repository: SchemaRepository) -> dict:
    chart_types = await repository.list_chart_types()
    variations = await asyncio.gather(*(repository.list_variations(t) for t in chart_types))
    return dict(zip(chart_types, variations))


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)

    repository = SchemaRepository(store_from_location(args.assets or settings.assets, timeout=settings.timeout))

    if args.list_types:
        print(json.dumps(await list_types(repository), indent=2))
        return 0

    if not args.query:
        parser.error("query is required unless --list-types is given")

    orch = ChartOrchestrator(repository, build_gateway(settings, args.backend or settings.backend))
    outcome = await orch.run(args.query, chart_type=args.chart_type, variation=args.variation or None)

    if outcome.valid and args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(outcome.data, f, indent=2)

    print(json.dumps(outcome.to_dict(), indent=2, default=str))
    return 0 if outcome.valid else 1


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
