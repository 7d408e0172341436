from __future__ import annotations

import json
import re
from typing import Any, Iterator, Optional

from chart_agent.agent.logging_config import get_logger

extractor_logger = get_logger("extractor")

PREVIEW_LIMIT = 240

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?[ \t]*\r?\n?(.*?)```", re.DOTALL)
_FENCE_OPEN_PATTERN = re.compile(r"```(?:json|JSON)?[ \t]*\r?\n?")


class ExtractionFailure(Exception):
    """No JSON value could be recovered from a generator reply."""

    def __init__(self, text: str, reason: str = "No JSON found in generator reply"):
        self.preview = preview(text)
        self.reason = reason
        super().__init__(f"{reason}. Raw response: {self.preview!r}")


def preview(text: Any, limit: int = PREVIEW_LIMIT) -> str:
    text = text if isinstance(text, str) else repr(text)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _try_parse(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None


def _from_fence(text: str) -> Optional[Any]:
    for match in _FENCE_PATTERN.finditer(text):
        value = _try_parse(match.group(1).strip())
        if value is not None:
            return value
    return None


def _from_braces(text: str) -> Optional[Any]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return _try_parse(text[start : end + 1])


def repair_truncated(text: str) -> Optional[str]:
    """
    Close a JSON object that was cut off mid-stream.

    Scans from the first ``{``, tracks open strings and brackets, drops a
    dangling ``,`` or ``:`` tail and appends the missing closers.
    """
    start = text.find("{")
    if start == -1:
        return None

    body = text[start:]
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in body:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]":
            if not stack:
                break
            stack.pop()

    if not stack and not in_string:
        return None

    if in_string:
        body += '"'
    body = body.rstrip()
    while body and body[-1] in ",:":
        body = body[:-1].rstrip()
    # A key with no value left ("a": 1, "b") cannot be closed meaningfully
    if body.endswith('"') and stack and stack[-1] == "}":
        last_key = re.search(r'[{,]\s*"(?:[^"\\]|\\.)*"$', body)
        if last_key:
            body = body[: last_key.start() + 1].rstrip()
            if body.endswith(","):
                body = body[:-1]
    return body + "".join(reversed(stack))


def _unclosed_fence_body(text: str) -> Optional[str]:
    fences = list(_FENCE_OPEN_PATTERN.finditer(text))
    # An odd number of fences means the last one never closed
    if len(fences) % 2 == 0:
        return None
    return text[fences[-1].end():]


def _truncated_bodies(text: str) -> Iterator[str]:
    fenced = _unclosed_fence_body(text)
    if fenced is not None:
        yield fenced
    start = text.find("{")
    while start != -1:
        yield text[start:]
        start = text.find("{", start + 1)


def _from_truncated(text: str) -> Optional[Any]:
    for body in _truncated_bodies(text):
        repaired = repair_truncated(body)
        if repaired is None:
            continue
        value = _try_parse(repaired)
        if isinstance(value, dict):
            return value
    return None


def extract(raw_reply: Any) -> Any:
    """
    Recover a JSON value from a generator reply.

    Tries, in order: already-parsed objects, a direct parse, a fenced code
    block, the outermost ``{...}`` span, and a truncated-object repair.
    Raises ``ExtractionFailure`` carrying a bounded preview otherwise.
    """
    if isinstance(raw_reply, (bytes, bytearray)):
        raw_reply = raw_reply.decode("utf-8", errors="replace")

    if raw_reply is None:
        raise ExtractionFailure("", "Empty response from generator")
    if not isinstance(raw_reply, str):
        return raw_reply

    text = raw_reply.strip()
    if not text:
        raise ExtractionFailure(raw_reply, "Empty response from generator")

    for strategy, attempt in (
        ("direct", _try_parse),
        ("fence", _from_fence),
        ("braces", _from_braces),
    ):
        value = attempt(text)
        if value is not None:
            extractor_logger.debug(f"Extracted JSON via {strategy}", extra={"event_type": "extract.ok"})
            return value

    value = _from_truncated(text)
    if value is not None:
        extractor_logger.warning(
            "Recovered truncated JSON reply", extra={"event_type": "extract.repaired", "input": preview(text)}
        )
        return value

    raise ExtractionFailure(text)
