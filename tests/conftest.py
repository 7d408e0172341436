"""Pytest fixtures shared across the chart pipeline tests."""

from __future__ import annotations

import json
import os

# Keep test runs from writing a rotating log file into the working tree.
os.environ.setdefault("CHART_AGENT_LOG_FILE", "")

import pytest

from chart_agent.registry.asset_store import AssetNotFound, FileAssetStore


class MemoryAssetStore:
    """In-memory asset store that counts fetches and can simulate transport faults."""

    def __init__(self, assets=None, failing=()):
        self.assets = dict(assets or {})
        self.failing = set(failing)
        self.fetches = []

    async def fetch_json(self, path):
        self.fetches.append(path)
        if path in self.failing:
            raise ConnectionError(f"simulated transport failure for {path}")
        if path not in self.assets:
            raise AssetNotFound(path)
        return json.loads(json.dumps(self.assets[path]))


class FakeGateway:
    """Generation gateway returning a canned reply (or raising a canned error)."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def generate(self, segments, request=None, session_id=None):
        self.calls.append({"segments": list(segments), "request": request, "session_id": session_id})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def memory_store():
    """Return a factory for ``MemoryAssetStore`` instances."""

    return MemoryAssetStore


@pytest.fixture
def fake_gateway():
    """Return a factory for ``FakeGateway`` instances."""

    return FakeGateway


@pytest.fixture
def asset_dir(tmp_path):
    """Return a function that writes ``{relative_path: payload}`` files and yields a FileAssetStore."""

    def _write(files):
        for rel_path, payload in files.items():
            target = tmp_path.joinpath(*rel_path.split("/"))
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(payload, str):
                target.write_text(payload, encoding="utf-8")
            else:
                target.write_text(json.dumps(payload), encoding="utf-8")
        return FileAssetStore(str(tmp_path))

    return _write
