"""Tests for schema/example layering, discovery precedence and caching."""

from __future__ import annotations

import asyncio

import pytest

from chart_agent.registry.chart_types import FALLBACK_CHART_TYPES, fallback_variations
from chart_agent.registry.schema_repository import SchemaRepository, deep_merge

pytestmark = pytest.mark.unit


def test_deep_merge_layers_leaves_objects_and_arrays() -> None:
    """Later layers win at leaves, objects merge, arrays replace wholesale."""

    base = {"a": 1, "nested": {"keep": "base", "override": "base"}, "list": [1, 2, 3]}
    top = {"nested": {"override": "top", "new": True}, "list": [9]}

    merged = deep_merge(base, top)

    assert merged == {
        "a": 1,
        "nested": {"keep": "base", "override": "top", "new": True},
        "list": [9],
    }
    assert base["nested"]["override"] == "base"


def test_composed_schema_respects_base_type_variation_order(memory_store) -> None:
    """Each leaf reflects the highest layer defining it; base-only leaves survive."""

    store = memory_store(
        {
            "base/base.json": {"only_base": "b", "shared": "base", "deep": {"x": "base", "y": "base"}},
            "bar/schema.json": {"shared": "type", "deep": {"x": "type"}, "only_type": 1},
            "bar/stacked/schema.json": {"deep": {"x": "variation"}, "only_variation": [1]},
        }
    )
    repo = SchemaRepository(store)

    composed = asyncio.run(repo.load_composed_schema("bar", "stacked"))

    assert composed == {
        "only_base": "b",
        "shared": "type",
        "deep": {"x": "variation", "y": "base"},
        "only_type": 1,
        "only_variation": [1],
    }


def test_missing_and_broken_layers_are_treated_as_absent(memory_store) -> None:
    """A failing or empty fragment never aborts composition."""

    store = memory_store(
        {"base/base.json": {}, "bar/schema.json": {"required": ["series"]}},
        failing={"bar/stacked/schema.json"},
    )
    repo = SchemaRepository(store)

    composed = asyncio.run(repo.load_composed_schema("bar", "stacked"))

    assert composed == {"required": ["series"]}


def test_all_layers_absent_yields_empty_schema(memory_store) -> None:
    """No fragments at all composes to an empty mapping."""

    repo = SchemaRepository(memory_store())

    assert asyncio.run(repo.load_composed_schema("pie", "rose-pie")) == {}


def test_malformed_fragment_file_degrades_to_absent(asset_dir) -> None:
    """Unparseable JSON files are tolerated like missing ones."""

    store = asset_dir({"bar/schema.json": "{not json", "base/base.json": {"type": "object"}})
    repo = SchemaRepository(store)

    assert asyncio.run(repo.load_composed_schema("bar")) == {"type": "object"}


def test_example_variation_overrides_type_example(memory_store) -> None:
    """Variation examples deep-merge over the type example."""

    store = memory_store(
        {
            "bar/example.json": {"title": {"text": "Demo", "left": "center"}, "series": [{"type": "bar", "data": [1]}]},
            "bar/stacked/example.json": {"title": {"text": "Stacked"}, "series": [{"type": "bar", "stack": "t", "data": [2]}]},
        }
    )
    repo = SchemaRepository(store)

    example = asyncio.run(repo.load_example("bar", "stacked"))

    assert example["title"] == {"text": "Stacked", "left": "center"}
    assert example["series"] == [{"type": "bar", "stack": "t", "data": [2]}]


def test_example_falls_back_to_whichever_side_is_present(memory_store) -> None:
    """If only one example exists it is returned as-is."""

    only_variation = memory_store({"line/line-step/example.json": {"series": [{"step": "start"}]}})
    only_type = memory_store({"line/example.json": {"series": [{"type": "line"}]}})

    assert asyncio.run(SchemaRepository(only_variation).load_example("line", "line-step")) == {
        "series": [{"step": "start"}]
    }
    assert asyncio.run(SchemaRepository(only_type).load_example("line", "line-step")) == {
        "series": [{"type": "line"}]
    }


def test_chart_types_prefer_manifest(memory_store) -> None:
    """A manifest list wins over discovery and fallback."""

    store = memory_store(
        {
            "manifest.json": {"chartTypes": ["bar", "custom"], "variations": {"bar": ["wide"]}},
            "pie/schema.json": {"type": "object"},
        }
    )
    repo = SchemaRepository(store)

    assert asyncio.run(repo.list_chart_types()) == ["bar", "custom"]
    assert asyncio.run(repo.list_variations("bar")) == ["wide"]


def test_chart_types_discovered_by_probing(memory_store) -> None:
    """Without a manifest, chart types with a non-empty schema fragment are discovered."""

    store = memory_store(
        {
            "pie/schema.json": {"type": "object"},
            "line/schema.json": {"properties": {}},
            "bar/schema.json": {},
            "line/line-step/schema.json": {"properties": {"series": {}}},
        }
    )
    repo = SchemaRepository(store)

    assert asyncio.run(repo.list_chart_types()) == ["line", "pie"]
    assert asyncio.run(repo.list_variations("line")) == ["line-step"]


def test_chart_types_fall_back_to_static_list(memory_store) -> None:
    """With nothing to read, the static lists are used."""

    repo = SchemaRepository(memory_store())

    assert asyncio.run(repo.list_chart_types()) == list(FALLBACK_CHART_TYPES)
    assert asyncio.run(repo.list_variations("bar")) == fallback_variations("bar")
    assert asyncio.run(repo.list_variations("unknown")) == []


def test_discovery_is_memoized_until_cleared(memory_store) -> None:
    """Lists and manifest are cached; clear_cache forces a reload."""

    store = memory_store({"manifest.json": {"chartTypes": ["bar"]}})
    repo = SchemaRepository(store)

    asyncio.run(repo.list_chart_types())
    fetches_after_first = len(store.fetches)
    store.assets["manifest.json"] = {"chartTypes": ["pie"]}

    assert asyncio.run(repo.list_chart_types()) == ["bar"]
    assert len(store.fetches) == fetches_after_first

    repo.clear_cache()

    assert asyncio.run(repo.list_chart_types()) == ["pie"]


def test_transient_failures_are_not_cached(memory_store) -> None:
    """A fragment that failed in transit is fetched again on the next request."""

    store = memory_store({"bar/schema.json": {"required": ["series"]}}, failing={"bar/schema.json"})
    repo = SchemaRepository(store)

    assert asyncio.run(repo.load_composed_schema("bar")) == {}

    store.failing.clear()

    assert asyncio.run(repo.load_composed_schema("bar")) == {"required": ["series"]}


def test_callers_cannot_corrupt_cached_fragments(memory_store) -> None:
    """Mutating a returned schema leaves the cache untouched."""

    repo = SchemaRepository(memory_store({"bar/schema.json": {"properties": {"title": {}}}}))

    first = asyncio.run(repo.load_composed_schema("bar"))
    first["properties"]["title"]["type"] = "string"

    assert asyncio.run(repo.load_composed_schema("bar")) == {"properties": {"title": {}}}


def test_variation_lookup_matches_profile_case_handling(memory_store) -> None:
    """Chart type keys are trimmed and lowercased the same way everywhere."""

    repo = SchemaRepository(memory_store())

    assert fallback_variations(" Bar ") == fallback_variations("bar")
    assert asyncio.run(repo.list_variations("Bar")) == fallback_variations("bar")


@pytest.mark.parametrize(
    ("chart_type", "variation"),
    [("../secret", None), ("bar", "../../secret"), ("bar/..", None), ("..\\secret", None), ("..", None)],
)
def test_path_like_names_never_reach_the_store(memory_store, chart_type, variation) -> None:
    """Chart type and variation names must be single path segments."""

    store = memory_store({"base/base.json": {"title": {"type": "object"}}})
    repo = SchemaRepository(store)

    assert asyncio.run(repo.load_composed_schema(chart_type, variation)) == {"title": {"type": "object"}}
    assert asyncio.run(repo.load_example(chart_type, variation)) == {}
    assert store.fetches == ["base/base.json"]
