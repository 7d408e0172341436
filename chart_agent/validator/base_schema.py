from __future__ import annotations

from typing import Any, Dict

# Permissive ECharts option schema: loose typing for the common top-level
# components, and series items that must carry a type and data.
BASE_OPTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": True,
    "properties": {
        "title": {
            "type": ["object", "array"],
            "additionalProperties": True,
            "properties": {
                "text": {"type": "string"},
                "subtext": {"type": "string"},
            },
        },
        "tooltip": {"type": "object", "additionalProperties": True},
        "legend": {"type": ["object", "array"], "additionalProperties": True},
        "grid": {"type": ["object", "array"], "additionalProperties": True},
        "xAxis": {"type": ["object", "array"], "additionalProperties": True},
        "yAxis": {"type": ["object", "array"], "additionalProperties": True},
        "series": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": True,
                "properties": {
                    "type": {"type": "string"},
                    "name": {"type": ["string", "number"]},
                    "data": {"type": "array"},
                },
                "required": ["type", "data"],
            },
        },
    },
    "required": ["series"],
}

# Keywords this validator does not evaluate; stripped before compiling.
UNSUPPORTED_KEYWORDS = frozenset(
    {
        "$ref",
        "$schema",
        "$id",
        "id",
        "definitions",
        "$defs",
        "allOf",
        "anyOf",
        "oneOf",
        "not",
        "if",
        "then",
        "else",
        "dependencies",
        "dependentSchemas",
    }
)

# Keywords whose values are subschemas (or maps/lists of them).
SUBSCHEMA_MAP_KEYWORDS = frozenset({"properties", "patternProperties"})
SUBSCHEMA_KEYWORDS = frozenset({"items", "additionalItems", "additionalProperties", "contains", "propertyNames"})

# Keywords that are allowed to hold a mapping at schema level; any other
# top-level mapping in a caller fragment is read as a property declaration.
MAPPING_KEYWORDS = SUBSCHEMA_MAP_KEYWORDS | SUBSCHEMA_KEYWORDS | UNSUPPORTED_KEYWORDS | {"default", "const", "examples"}
