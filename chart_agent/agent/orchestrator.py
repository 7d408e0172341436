from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from chart_agent.agent.extractor import ExtractionFailure, extract
from chart_agent.agent.gateway import GatewayError, GenerationGateway
from chart_agent.agent.logging_config import get_logger
from chart_agent.agent.prompts import ChartRequest, ConversationTurn, compose
from chart_agent.registry.schema_repository import SchemaRepository
from chart_agent.validator.chart_validator import ChartValidator
from chart_agent.validator.normalizer import normalize

workflow_logger = get_logger("workflow")

STAGES = ("schema", "prompt", "generation", "extraction", "normalization", "validation")


@dataclass(frozen=True)
class PipelineOutcome:
    valid: bool
    data: Any
    error: Optional[str]
    stage: Optional[str]  # stage that failed; None on success
    chart_type: str
    variation: str
    workflow_id: str
    duration_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.valid,
            "valid": self.valid,
            "chart_type": self.chart_type,
            "variation": self.variation,
            "stage": self.stage,
            "error": self.error,
            "data": self.data,
            "workflow_id": self.workflow_id,
            "duration_ms": self.duration_ms,
        }


class ChartOrchestrator:
    """
    Runs the chart pipeline for one conversation:
    schema + example -> prompt -> generator -> extraction -> normalization -> validation.

    ``history`` belongs to this conversation only; concurrent conversations
    need their own orchestrator. The schema repository may be shared.
    """

    def __init__(
        self,
        repository: SchemaRepository,
        gateway: GenerationGateway,
        validator: Optional[ChartValidator] = None,
        session_id: Optional[str] = None,
    ):
        self.repository = repository
        self.gateway = gateway
        self.validator = validator or ChartValidator()
        self.session_id = session_id or f"chart-session-{uuid.uuid4().hex[:12]}"
        self.history: List[ConversationTurn] = []

    def reset_history(self) -> None:
        self.history = []

    async def run(self, query: str, chart_type: str = "bar", variation: Optional[str] = None) -> PipelineOutcome:
        workflow_id = str(uuid.uuid4())
        start_time = time.time()
        variation = variation or ""
        stage = STAGES[0]

        def finish(valid: bool, data: Any, error: Optional[str], failed_stage: Optional[str]) -> PipelineOutcome:
            duration_ms = round((time.time() - start_time) * 1000, 2)
            workflow_logger.info(
                "Workflow execution completed" if valid else f"Workflow failed at {failed_stage}",
                extra={
                    "event_type": "workflow.end",
                    "workflow_id": workflow_id,
                    "chart_type": chart_type,
                    "stage": failed_stage,
                    "error": error,
                    "duration_ms": duration_ms,
                },
            )
            return PipelineOutcome(valid, data, error, failed_stage, chart_type, variation, workflow_id, duration_ms)

        def enter(name: str) -> str:
            workflow_logger.debug(
                f"Stage {name}",
                extra={"event_type": "workflow.stage", "workflow_id": workflow_id, "stage": name},
            )
            return name

        workflow_logger.info(
            "Workflow execution started",
            extra={
                "event_type": "workflow.start",
                "workflow_id": workflow_id,
                "chart_type": chart_type,
                "input": {"query": query, "variation": variation},
            },
        )

        try:
            stage = enter("schema")
            schema, example = await asyncio.gather(
                self.repository.load_composed_schema(chart_type, variation or None),
                self.repository.load_example(chart_type, variation or None),
            )

            stage = enter("prompt")
            request = ChartRequest(query=query, chart_type=chart_type, variation=variation, history=tuple(self.history))
            segments = compose(request, schema, example)
            workflow_logger.debug(
                f"Prompt composed with {len(segments)} segments",
                extra={
                    "event_type": "workflow.prompt",
                    "workflow_id": workflow_id,
                    "input": [s.as_dict() for s in segments],
                },
            )

            stage = enter("generation")
            try:
                raw_reply = await self.gateway.generate(segments, request=request, session_id=self.session_id)
            except GatewayError as e:
                return finish(False, None, f"[{e.reason}] {e}", stage)

            stage = enter("extraction")
            try:
                extracted = extract(raw_reply)
            except ExtractionFailure as e:
                return finish(False, None, str(e), stage)

            stage = enter("normalization")
            normalized = normalize(chart_type, extracted)

            stage = enter("validation")
            outcome = self.validator.validate(normalized, schema)
            if not outcome.valid:
                return finish(False, outcome.data, f"LLM returned invalid chart: {outcome.error}", stage)

        except Exception as e:
            duration_ms = round((time.time() - start_time) * 1000, 2)
            workflow_logger.error(
                "Workflow execution failed",
                exc_info=True,
                extra={
                    "event_type": "workflow.error",
                    "workflow_id": workflow_id,
                    "stage": stage,
                    "error": str(e),
                    "duration_ms": duration_ms,
                },
            )
            return PipelineOutcome(False, None, f"{type(e).__name__}: {e}", stage, chart_type, variation, workflow_id, duration_ms)

        self.history.append(ConversationTurn("user", query))
        self.history.append(ConversationTurn("assistant", f"generated a {chart_type} chart"))
        return finish(True, outcome.data, None, None)
