from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, ValidationError

from chart_agent.agent.logging_config import get_logger
from chart_agent.registry.schema_repository import deep_merge
from chart_agent.validator.base_schema import (
    BASE_OPTION_SCHEMA,
    MAPPING_KEYWORDS,
    SUBSCHEMA_KEYWORDS,
    SUBSCHEMA_MAP_KEYWORDS,
    UNSUPPORTED_KEYWORDS,
)

validator_logger = get_logger("validator")

AXIS_KEYS = ("xAxis", "yAxis")


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str
    keyword: str
    cosmetic: bool

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    data: Any
    error: Optional[str]
    ignored: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "data": self.data, "error": self.error, "ignored": list(self.ignored)}


def format_path(path: Iterable[Any]) -> str:
    """Render a jsonschema path deque as ``series[0].data``."""
    rendered = ""
    for part in path:
        if isinstance(part, int):
            rendered += f"[{part}]"
        elif rendered:
            rendered += f".{part}"
        else:
            rendered = str(part)
    return rendered or "(root)"


def lift_property_fragments(schema: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Read top-level mappings that are not schema keywords as property declarations.

    Asset fragments are often written as ``{"title": {"type": "object"}}``
    instead of ``{"properties": {"title": {...}}}``.
    """
    lifted: Dict[str, Any] = {}
    declared: Dict[str, Any] = {}
    for key, value in schema.items():
        if key not in MAPPING_KEYWORDS and isinstance(value, Mapping):
            declared[key] = value
        else:
            lifted[key] = value

    if declared:
        properties = lifted.get("properties")
        lifted["properties"] = deep_merge(properties if isinstance(properties, Mapping) else {}, declared)
    return lifted


def strip_unsupported(schema: Any) -> Any:
    """Drop composition/reference/conditional keywords at every subschema position."""
    if isinstance(schema, list):
        return [strip_unsupported(s) for s in schema]
    if not isinstance(schema, Mapping):
        return schema

    out: Dict[str, Any] = {}
    for key, value in schema.items():
        if key in UNSUPPORTED_KEYWORDS:
            continue
        if key in SUBSCHEMA_MAP_KEYWORDS and isinstance(value, Mapping):
            out[key] = {name: strip_unsupported(sub) for name, sub in value.items()}
        elif key in SUBSCHEMA_KEYWORDS:
            out[key] = strip_unsupported(value)
        else:
            out[key] = value
    return out


def relax_series_type(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Loosen a series ``type`` pinned by const/enum to any string; the normalizer owns that value."""
    series = schema.get("properties", {}).get("series")
    if not isinstance(series, dict):
        return schema
    items = series.get("items")
    for item in items if isinstance(items, list) else [items]:
        if not isinstance(item, dict):
            continue
        properties = item.get("properties")
        if not isinstance(properties, dict):
            continue
        type_schema = properties.get("type")
        if isinstance(type_schema, Mapping) and ("const" in type_schema or "enum" in type_schema):
            properties["type"] = {"type": "string"}
    return schema


def prepare_schema(schema: Mapping[str, Any], base: Mapping[str, Any] = BASE_OPTION_SCHEMA) -> Dict[str, Any]:
    merged = deep_merge(base, lift_property_fragments(schema))
    return relax_series_type(strip_unsupported(merged))


def missing_properties(error: ValidationError) -> List[str]:
    """Names a ``required`` error's instance lacks, read from the keyword value."""
    if not isinstance(error.instance, Mapping) or not isinstance(error.validator_value, list):
        return []
    return [p for p in error.validator_value if p not in error.instance]


def _is_marked_optional(error: ValidationError, name: str) -> bool:
    properties = error.schema.get("properties", {}) if isinstance(error.schema, Mapping) else {}
    subschema = properties.get(name) if isinstance(properties, Mapping) else None
    return isinstance(subschema, Mapping) and subschema.get("optional") is True


def is_cosmetic(error: ValidationError) -> bool:
    """
    Cosmetic violations reflect generator variance, not an unusable config:

    - an axis present in the wrong shape (object vs. array, or neither)
    - a ``title`` sub-field typed as something other than a string
    - a missing property whose subschema says ``"optional": true``
    """
    path = list(error.absolute_path)
    if error.validator == "type":
        if path and path[0] in AXIS_KEYS and len(path) <= 2:
            return True
        if path and path[0] == "title" and len(path) in (2, 3) and isinstance(path[-1], str):
            return True
    if error.validator == "required":
        missing = missing_properties(error)
        return bool(missing) and all(_is_marked_optional(error, name) for name in missing)
    return False


def _issues_for(error: ValidationError) -> List[ValidationIssue]:
    path = format_path(error.absolute_path)
    if error.validator == "required":
        # One issue per missing name, each judged on its own subschema
        return [
            ValidationIssue(
                path=path,
                message=f"{name!r} is a required property",
                keyword="required",
                cosmetic=_is_marked_optional(error, name),
            )
            for name in missing_properties(error)
        ]
    return [ValidationIssue(path=path, message=error.message, keyword=str(error.validator), cosmetic=is_cosmetic(error))]


def precheck(config: Any) -> Optional[str]:
    """Structural checks enforced regardless of schema; returns an error or None."""
    if not isinstance(config, Mapping):
        return f"Chart configuration must be a JSON object, got {type(config).__name__}"
    series = config.get("series")
    if not isinstance(series, list) or not series:
        return "Missing required chart structure: 'series' must be a non-empty array"
    if not any(isinstance(s, Mapping) and s.get("data") is not None for s in series):
        return "Missing required chart structure: no series carries a 'data' field"
    return None


class ChartValidator:
    """
    Validates normalized chart configs against a permissive base schema
    merged with an optional caller schema.

    Compiled validators are cached by the canonical JSON of the prepared
    schema, so repeated requests for the same chart type compile once.
    """

    def __init__(self, base_schema: Mapping[str, Any] = BASE_OPTION_SCHEMA):
        self.base_schema = base_schema
        self._compiled: Dict[str, Draft7Validator] = {}

    def clear_cache(self) -> None:
        self._compiled = {}

    def _compile(self, prepared: Dict[str, Any]) -> Draft7Validator:
        key = json.dumps(prepared, sort_keys=True, default=str)
        compiled = self._compiled.get(key)
        if compiled is not None:
            return compiled

        try:
            Draft7Validator.check_schema(prepared)
            compiled = Draft7Validator(prepared)
        except SchemaError as e:
            validator_logger.warning(
                "Caller schema is not a usable JSON Schema, validating against the base schema only",
                extra={"event_type": "validator.schema_error", "error": e.message},
            )
            compiled = Draft7Validator(strip_unsupported(dict(self.base_schema)))

        self._compiled[key] = compiled
        return compiled

    def issues(self, config: Mapping[str, Any], schema: Mapping[str, Any]) -> List[ValidationIssue]:
        compiled = self._compile(prepare_schema(schema, self.base_schema))
        errors = sorted(compiled.iter_errors(config), key=lambda e: format_path(e.absolute_path))
        issues: List[ValidationIssue] = []
        seen_required = set()
        for error in errors:
            if error.validator == "required":
                # jsonschema reports each missing name separately under the same keyword
                key = (tuple(error.absolute_path), tuple(error.absolute_schema_path))
                if key in seen_required:
                    continue
                seen_required.add(key)
            issues.extend(_issues_for(error))
        return issues

    def validate(self, config: Any, schema: Optional[Mapping[str, Any]] = None) -> ValidationOutcome:
        structural_error = precheck(config)
        if structural_error:
            validator_logger.info(
                "Chart config failed structural pre-check",
                extra={"event_type": "validator.precheck", "error": structural_error},
            )
            return ValidationOutcome(False, config, structural_error)

        if not schema:
            return ValidationOutcome(True, config, None)

        issues = self.issues(config, schema)
        ignored = tuple(str(i) for i in issues if i.cosmetic)
        critical = [i for i in issues if not i.cosmetic]

        if ignored:
            validator_logger.debug(
                f"Ignoring {len(ignored)} cosmetic schema violations",
                extra={"event_type": "validator.cosmetic", "output": list(ignored)},
            )

        if critical:
            error = "; ".join(str(i) for i in critical)
            validator_logger.info(
                f"Chart config has {len(critical)} critical schema violations",
                extra={"event_type": "validator.critical", "error": error},
            )
            return ValidationOutcome(False, config, error, ignored)

        return ValidationOutcome(True, config, None, ignored)


_default_validator = ChartValidator()


def validate_chart_config(config: Any, schema: Optional[Mapping[str, Any]] = None) -> ValidationOutcome:
    return _default_validator.validate(config, schema)
