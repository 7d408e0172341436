from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, Iterable, List, Mapping, Optional

from chart_agent.agent.logging_config import get_logger
from chart_agent.registry.asset_store import AssetNotFound, AssetStore, is_safe_name
from chart_agent.registry.chart_types import FALLBACK_CHART_TYPES, fallback_variations

registry_logger = get_logger("registry")

BASE_SCHEMA_PATH = "base/base.json"
MANIFEST_PATH = "manifest.json"


def deep_merge(target: Mapping[str, Any], source: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Layer ``source`` over ``target`` and return a new dict.

    Mapping values merge recursively, anything else (scalars, lists) from
    ``source`` replaces the value in ``target`` wholesale. Keys only present
    in ``target`` survive untouched.
    """
    merged: Dict[str, Any] = copy.deepcopy(dict(target))
    for key, value in source.items():
        existing = merged.get(key)
        if isinstance(value, Mapping):
            base = existing if isinstance(existing, Mapping) else {}
            merged[key] = deep_merge(base, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _non_empty_mapping(value: Any) -> bool:
    return isinstance(value, Mapping) and len(value) > 0


class SchemaRepository:
    """
    Loads and layers schema/example fragments for a (chart type, variation) pair.

    The repository is the only component that talks to the asset store.
    Memoized state (all reset by ``clear_cache``):

    - ``_fragments``: path -> parsed mapping ({} for definitively absent files)
    - ``_manifest``: parsed manifest.json, {} when absent, None until loaded
    - ``_chart_types``: resolved chart type list, None until resolved
    - ``_variations``: chart type -> resolved variation list

    Each cache write is a single key assignment so concurrent first loads
    simply race to store the same value.
    """

    def __init__(
        self,
        store: AssetStore,
        candidate_types: Iterable[str] = FALLBACK_CHART_TYPES,
    ):
        self.store = store
        self.candidate_types = tuple(candidate_types)
        self._fragments: Dict[str, Dict[str, Any]] = {}
        self._manifest: Optional[Dict[str, Any]] = None
        self._chart_types: Optional[List[str]] = None
        self._variations: Dict[str, List[str]] = {}

    def clear_cache(self) -> None:
        self._fragments = {}
        self._manifest = None
        self._chart_types = None
        self._variations = {}
        registry_logger.debug("Schema repository cache cleared", extra={"event_type": "registry.clear"})

    async def load_fragment(self, path: str) -> Dict[str, Any]:
        """Load one JSON fragment; any failure degrades to an empty mapping."""
        if path in self._fragments:
            return copy.deepcopy(self._fragments[path])

        try:
            raw = await self.store.fetch_json(path)
        except AssetNotFound:
            registry_logger.debug(f"Fragment absent: {path}", extra={"event_type": "registry.absent"})
            self._fragments[path] = {}
            return {}
        except Exception as e:
            # Transient or malformed: treat as absent but leave it uncached.
            registry_logger.warning(
                f"Failed to load fragment {path}, treating as absent",
                extra={"event_type": "registry.load_error", "error": f"{type(e).__name__}: {e}"},
            )
            return {}

        fragment = dict(raw) if isinstance(raw, Mapping) else {}
        if not isinstance(raw, Mapping):
            registry_logger.warning(
                f"Fragment {path} is not a JSON object, treating as absent",
                extra={"event_type": "registry.load_error", "error": type(raw).__name__},
            )
        self._fragments[path] = fragment
        return copy.deepcopy(fragment)

    @staticmethod
    def _type_path(chart_type: str, filename: str, variation: Optional[str] = None) -> str:
        names = [chart_type, variation] if variation else [chart_type]
        for name in names:
            if not is_safe_name(name):
                raise AssetNotFound(f"{name}/{filename}")
        if variation:
            return f"{chart_type}/{variation}/{filename}"
        return f"{chart_type}/{filename}"

    def _safe_request(self, chart_type: str, variation: Optional[str]) -> bool:
        if is_safe_name(chart_type) and (not variation or is_safe_name(variation)):
            return True
        registry_logger.warning(
            f"Rejected asset lookup for {chart_type!r}/{variation!r}: names must be single path segments",
            extra={"event_type": "registry.rejected", "chart_type": chart_type},
        )
        return False

    async def load_composed_schema(self, chart_type: str, variation: Optional[str] = None) -> Dict[str, Any]:
        paths = [BASE_SCHEMA_PATH]
        if self._safe_request(chart_type, variation):
            paths.append(self._type_path(chart_type, "schema.json"))
            if variation:
                paths.append(self._type_path(chart_type, "schema.json", variation))

        layers = await asyncio.gather(*(self.load_fragment(p) for p in paths))

        composed: Dict[str, Any] = {}
        for layer in layers:
            if layer:
                composed = deep_merge(composed, layer)

        registry_logger.debug(
            f"Composed schema for {chart_type}/{variation or '-'}",
            extra={"event_type": "registry.schema", "output": {"layers": [bool(l) for l in layers]}},
        )
        return composed

    async def load_example(self, chart_type: str, variation: Optional[str] = None) -> Dict[str, Any]:
        if not self._safe_request(chart_type, variation):
            return {}
        type_example = await self.load_fragment(self._type_path(chart_type, "example.json"))
        if not variation:
            return type_example

        variation_example = await self.load_fragment(self._type_path(chart_type, "example.json", variation))
        if type_example and variation_example:
            return deep_merge(type_example, variation_example)
        return variation_example or type_example

    async def load_manifest(self) -> Dict[str, Any]:
        if self._manifest is None:
            self._manifest = await self.load_fragment(MANIFEST_PATH)
        return self._manifest

    async def list_chart_types(self) -> List[str]:
        """Supported chart types: manifest > probe-discovery > static fallback."""
        if self._chart_types is not None:
            return list(self._chart_types)

        manifest = await self.load_manifest()
        declared = manifest.get("chartTypes")
        if isinstance(declared, list) and declared:
            resolved = [str(t) for t in declared]
            source = "manifest"
        else:
            resolved = await self._probe(
                self.candidate_types, lambda t: self._type_path(t, "schema.json")
            )
            source = "probe"
            if not resolved:
                resolved = list(self.candidate_types)
                source = "fallback"

        registry_logger.info(
            f"Resolved {len(resolved)} chart types from {source}",
            extra={"event_type": "registry.chart_types", "output": resolved},
        )
        self._chart_types = resolved
        return list(resolved)

    async def list_variations(self, chart_type: str) -> List[str]:
        """Variations of one chart type, same precedence as ``list_chart_types``."""
        if chart_type in self._variations:
            return list(self._variations[chart_type])

        manifest = await self.load_manifest()
        declared_map = manifest.get("variations")
        declared = declared_map.get(chart_type) if isinstance(declared_map, Mapping) else None
        if isinstance(declared, list) and declared:
            resolved = [str(v) for v in declared]
        else:
            candidates = fallback_variations(chart_type)
            resolved = await self._probe(
                candidates, lambda v: self._type_path(chart_type, "schema.json", v)
            )
            if not resolved:
                resolved = candidates

        self._variations[chart_type] = resolved
        return list(resolved)

    async def _probe(self, candidates: Iterable[str], path_for) -> List[str]:
        candidates = list(candidates)
        fragments = await asyncio.gather(*(self.load_fragment(path_for(c)) for c in candidates))
        return [c for c, fragment in zip(candidates, fragments) if _non_empty_mapping(fragment)]
