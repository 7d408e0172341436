from __future__ import annotations

import time
from typing import Any, Iterable, List, Mapping, Optional, Protocol

import httpx
import openai
from llama_index.core.llms import ChatMessage, MessageRole

from chart_agent.agent.logging_config import get_logger
from chart_agent.agent.prompts import ChartRequest, PromptSegment, flatten

gateway_logger = get_logger("gateway")

# Envelope fields some chat backends wrap their reply in
ENVELOPE_FIELDS = ("response", "message", "content", "text")


# Transport failures surface as GatewayError subclasses; nothing here retries.
class GatewayError(Exception):
    reason = "unknown"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GeneratorUnavailable(GatewayError):
    reason = "connection_refused"


class EndpointNotFound(GatewayError):
    reason = "not_found"


class GeneratorServerError(GatewayError):
    reason = "server_error"


class MalformedRequest(GatewayError):
    reason = "bad_request"


class GenerationGateway(Protocol):
    async def generate(
        self,
        segments: List[PromptSegment],
        request: Optional[ChartRequest] = None,
        session_id: Optional[str] = None,
    ) -> Any:
        ...


def unwrap_envelope(reply: Any) -> Any:
    """Return the payload of a ``{"response": ...}``-style envelope, else the reply itself.

    Nested chat-API envelopes such as ``{"message": {"role": ..., "content": ...}}``
    are unwrapped down to their content.
    """
    if isinstance(reply, Mapping) and "series" not in reply:
        for key in ENVELOPE_FIELDS:
            value = reply.get(key)
            if isinstance(value, str):
                return value
            if isinstance(value, Mapping):
                return unwrap_envelope(value)
    return reply


def error_for_status(status_code: int, detail: str) -> GatewayError:
    if status_code == 404:
        return EndpointNotFound(
            f"Generator endpoint not found (404): check the backend URL or model name. {detail}".strip(),
            status_code,
        )
    if status_code in (400, 422):
        return MalformedRequest(
            f"Generator rejected the request as malformed ({status_code}). {detail}".strip(),
            status_code,
        )
    if status_code >= 500:
        return GeneratorServerError(
            f"Generator backend failed with a server error ({status_code}). {detail}".strip(),
            status_code,
        )
    return GatewayError(f"Generator returned unexpected status {status_code}. {detail}".strip(), status_code)


def _extract_text_from_llm_response(response: Any) -> str:
    """Extract text content from LlamaIndex LLM response."""
    message = getattr(response, "message", None)
    if message is not None:
        content = getattr(message, "content", None)
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: list[str] = []
            for item in content:
                text = getattr(item, "text", None)
                if text:
                    parts.append(str(text))
                elif isinstance(item, dict):
                    parts.append(str(item.get("text", item.get("content", ""))))
            if parts:
                return "".join(parts)

    text_attr = getattr(response, "text", None)
    if isinstance(text_attr, str):
        return text_attr
    return str(response)


_ROLES = {
    "system": MessageRole.SYSTEM,
    "user": MessageRole.USER,
    "assistant": MessageRole.ASSISTANT,
}


class LLMGateway:
    """Gateway backed by a LlamaIndex LLM (OpenAI by default)."""

    def __init__(self, llm: Any):
        self.llm = llm

    @staticmethod
    def to_messages(segments: Iterable[PromptSegment]) -> List[ChatMessage]:
        return [ChatMessage(role=_ROLES.get(s.role, MessageRole.USER), content=s.content) for s in segments]

    async def generate(
        self,
        segments: List[PromptSegment],
        request: Optional[ChartRequest] = None,
        session_id: Optional[str] = None,
    ) -> Any:
        start_time = time.time()
        try:
            response = await self.llm.achat(self.to_messages(segments))
        except openai.APIConnectionError as e:
            raise GeneratorUnavailable(f"Could not reach the OpenAI API: {e}") from e
        except openai.NotFoundError as e:
            raise EndpointNotFound(f"Model or endpoint not found: {e}", 404) from e
        except (openai.BadRequestError, openai.UnprocessableEntityError) as e:
            raise MalformedRequest(f"OpenAI rejected the request: {e}", e.status_code) from e
        except openai.APIStatusError as e:
            raise error_for_status(e.status_code, str(e)) from e

        text = _extract_text_from_llm_response(response)
        gateway_logger.info(
            "LLM reply received",
            extra={
                "event_type": "gateway.reply",
                "duration_ms": round((time.time() - start_time) * 1000, 2),
                "output": text[:500],
            },
        )
        return text


class HttpChatGateway:
    """
    Gateway for a chat backend that accepts one concatenated message per call.

    Request body: ``{message, chartType, variation, session_id}``.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def build_body(
        self,
        segments: List[PromptSegment],
        request: Optional[ChartRequest],
        session_id: Optional[str],
    ) -> dict:
        return {
            "message": flatten(segments),
            "chartType": request.chart_type if request else "",
            "variation": (request.variation or "") if request else "",
            "session_id": session_id or f"chart-session-{int(time.time() * 1000)}",
        }

    async def generate(
        self,
        segments: List[PromptSegment],
        request: Optional[ChartRequest] = None,
        session_id: Optional[str] = None,
    ) -> Any:
        body = self.build_body(segments, request, session_id)
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=body, headers={"Accept": "application/json"})
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise GeneratorUnavailable(
                f"Could not connect to the generator at {self.url}: is the backend running? ({type(e).__name__})"
            ) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Transport error talking to {self.url}: {e}") from e

        if response.status_code >= 400:
            raise error_for_status(response.status_code, response.text[:200])

        try:
            reply: Any = response.json()
        except ValueError:
            reply = response.text

        gateway_logger.info(
            "Chat backend reply received",
            extra={
                "event_type": "gateway.reply",
                "duration_ms": round((time.time() - start_time) * 1000, 2),
                "output": str(reply)[:500],
            },
        )
        return unwrap_envelope(reply)
