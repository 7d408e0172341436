"""Tests for the file and HTTP asset stores."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from chart_agent.registry.asset_store import AssetNotFound, FileAssetStore, HttpAssetStore, store_from_location
from chart_agent.registry.schema_repository import SchemaRepository

pytestmark = pytest.mark.unit


def test_file_store_reads_nested_json(asset_dir) -> None:
    """Slash-separated paths resolve under the base directory."""

    store = asset_dir({"bar/stacked/schema.json": {"required": ["series"]}})

    assert asyncio.run(store.fetch_json("bar/stacked/schema.json")) == {"required": ["series"]}


def test_file_store_missing_file_raises(asset_dir) -> None:
    """Absent files are reported as AssetNotFound."""

    store = asset_dir({})

    with pytest.raises(AssetNotFound) as excinfo:
        asyncio.run(store.fetch_json("pie/schema.json"))

    assert excinfo.value.path == "pie/schema.json"


def test_http_store_fetches_relative_to_base_url() -> None:
    """Asset paths are joined onto the base URL."""

    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"title": {"type": "object"}})

    store = HttpAssetStore("http://assets.test/echarts", transport=httpx.MockTransport(handler))

    assert asyncio.run(store.fetch_json("base/base.json")) == {"title": {"type": "object"}}
    assert seen == ["http://assets.test/echarts/base/base.json"]


def test_http_store_maps_404_and_raises_other_failures() -> None:
    """404 means absent; other statuses are transport failures."""

    def handler(request: httpx.Request) -> httpx.Response:
        status = 404 if request.url.path.endswith("missing.json") else 502
        return httpx.Response(status)

    store = HttpAssetStore("http://assets.test", transport=httpx.MockTransport(handler))

    with pytest.raises(AssetNotFound):
        asyncio.run(store.fetch_json("missing.json"))
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(store.fetch_json("broken.json"))


def test_store_from_location() -> None:
    """URLs select the HTTP store, anything else a directory."""

    assert isinstance(store_from_location("https://cdn.test/echarts"), HttpAssetStore)
    assert isinstance(store_from_location("assets/echarts"), FileAssetStore)


def test_file_store_refuses_paths_outside_its_root(tmp_path) -> None:
    """Dot-dot segments and absolute paths cannot read files beside the asset root."""

    (tmp_path / "secret").mkdir()
    (tmp_path / "secret" / "schema.json").write_text('{"api_key": "sk-test"}', encoding="utf-8")
    (tmp_path / "assets").mkdir()
    store = FileAssetStore(str(tmp_path / "assets"))

    for path in ("../secret/schema.json", "bar/../../secret/schema.json", str(tmp_path / "secret" / "schema.json")):
        with pytest.raises(AssetNotFound):
            asyncio.run(store.fetch_json(path))


def test_file_store_refuses_symlinks_leaving_its_root(tmp_path) -> None:
    """A symlinked directory pointing outside the root is treated as absent."""

    (tmp_path / "secret").mkdir()
    (tmp_path / "secret" / "schema.json").write_text('{"api_key": "sk-test"}', encoding="utf-8")
    (tmp_path / "assets").mkdir()
    try:
        (tmp_path / "assets" / "bar").symlink_to(tmp_path / "secret", target_is_directory=True)
    except OSError:
        pytest.skip("symlinks unavailable")

    with pytest.raises(AssetNotFound):
        asyncio.run(FileAssetStore(str(tmp_path / "assets")).fetch_json("bar/schema.json"))


def test_composed_schema_cannot_escape_file_store(tmp_path) -> None:
    """A traversal-shaped chart type composes nothing from outside the root."""

    (tmp_path / "secret").mkdir()
    (tmp_path / "secret" / "schema.json").write_text('{"api_key": "sk-test"}', encoding="utf-8")
    (tmp_path / "assets").mkdir()
    repo = SchemaRepository(FileAssetStore(str(tmp_path / "assets")))

    assert asyncio.run(repo.load_composed_schema("../secret")) == {}


def test_http_store_refuses_paths_outside_its_root() -> None:
    """Traversal paths are rejected before any request is sent."""

    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"api_key": "sk-test"})

    store = HttpAssetStore("http://assets.test/echarts", transport=httpx.MockTransport(handler))

    for path in ("../secret.json", "/etc/secret.json", "bar//schema.json", "https://evil.test/x.json"):
        with pytest.raises(AssetNotFound):
            asyncio.run(store.fetch_json(path))

    assert seen == []
