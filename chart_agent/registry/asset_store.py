from __future__ import annotations

import asyncio
import json
import os
from typing import Any, List, Optional, Protocol

import httpx


class AssetNotFound(Exception):
    """Raised when an asset path does not exist in the store."""

    def __init__(self, path: str):
        super().__init__(f"Asset not found: {path}")
        self.path = path


class AssetStore(Protocol):
    async def fetch_json(self, path: str) -> Any:
        ...


def is_safe_name(name: str) -> bool:
    """True for a single path segment: non-empty, no separators, not ``.``/``..``."""
    return bool(name) and "/" not in name and "\\" not in name and name not in (".", "..")


def check_asset_path(path: str) -> List[str]:
    """Split a store-relative path into segments; AssetNotFound if any would leave the store root."""
    if not path or path.startswith("/") or ":" in path:
        raise AssetNotFound(path)
    segments = path.split("/")
    if not all(is_safe_name(s) for s in segments):
        raise AssetNotFound(path)
    return segments


class FileAssetStore:
    """Read JSON assets from a directory tree (``<base>/<type>/schema.json`` ...)."""

    def __init__(self, base_dir: str):
        self.base_dir = os.path.abspath(base_dir)

    def _read(self, path: str) -> Any:
        full_path = os.path.realpath(os.path.join(self.base_dir, *check_asset_path(path)))
        root = os.path.realpath(self.base_dir)
        # Symlinks may still point outside the root
        if os.path.commonpath([root, full_path]) != root:
            raise AssetNotFound(path)
        if not os.path.isfile(full_path):
            raise AssetNotFound(path)
        with open(full_path, "r", encoding="utf-8") as f:
            return json.load(f)

    async def fetch_json(self, path: str) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read, path)

    def __repr__(self) -> str:
        return f"FileAssetStore({self.base_dir!r})"


class HttpAssetStore:
    """Fetch JSON assets relative to a base URL (e.g. a static ``assets/echarts`` mount)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self.transport = transport

    async def fetch_json(self, path: str) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            response = await client.get("/".join(check_asset_path(path)))
            if response.status_code == 404:
                raise AssetNotFound(path)
            response.raise_for_status()
            return response.json()

    def __repr__(self) -> str:
        return f"HttpAssetStore({self.base_url!r})"


def store_from_location(location: str, timeout: float = 10.0) -> AssetStore:
    """Pick an asset store for a directory path or an http(s) URL."""
    if location.startswith(("http://", "https://")):
        return HttpAssetStore(location, timeout=timeout)
    return FileAssetStore(location)
