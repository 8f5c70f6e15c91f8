"""
blobstore.py
Remote object store clients: an httpx-based HTTP client and an in-memory one.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import quote

import httpx


@dataclass(frozen=True)
class BlobRef:
    name: str
    url: str


class BlobStoreError(Exception):
    pass


class BlobStore(ABC):
    """Minimal object-store contract used by the persistence gateway."""

    @abstractmethod
    def put(
        self, name: str, data: bytes, content_type: str = "application/json", overwrite: bool = True
    ) -> BlobRef:
        ...

    @abstractmethod
    def list(self, prefix: str | None = None) -> list[BlobRef]:
        ...

    @abstractmethod
    def get(self, url: str) -> bytes:
        ...

    def find(self, name: str) -> BlobRef | None:
        for ref in self.list(prefix=name):
            if ref.name == name:
                return ref
        return None


class HttpBlobStore(BlobStore):
    """
    Talks to a blob service that exposes:

    - PUT  {base}/{name}   -> {"url", "pathname"}
    - GET  {base}?prefix=  -> {"blobs": [{"pathname", "url"}]}
    - GET  {url}           -> raw document bytes
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 8.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"authorization": f"Bearer {token}"} if token else {}
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(headers=headers, timeout=timeout, transport=transport)

    def put(
        self, name: str, data: bytes, content_type: str = "application/json", overwrite: bool = True
    ) -> BlobRef:
        response = self._client.put(
            f"{self.base_url}/{quote(name)}",
            content=data,
            headers={
                "x-content-type": content_type,
                "x-allow-overwrite": "1" if overwrite else "0",
            },
        )
        response.raise_for_status()
        body = response.json()
        return BlobRef(name=body.get("pathname", name), url=body["url"])

    def list(self, prefix: str | None = None) -> list[BlobRef]:
        params = {"prefix": prefix} if prefix else None
        response = self._client.get(self.base_url, params=params)
        response.raise_for_status()
        blobs = response.json().get("blobs", [])
        return [BlobRef(name=b["pathname"], url=b["url"]) for b in blobs]

    def get(self, url: str) -> bytes:
        # cache-busting query, the CDN in front of the store may serve stale copies
        response = self._client.get(url, params={"t": str(int(time.time() * 1000))})
        response.raise_for_status()
        return response.content

    def close(self) -> None:
        self._client.close()


class MemoryBlobStore(BlobStore):
    """In-process store for tests and local demos. Set ``fail`` to simulate an outage."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise BlobStoreError("blob store unavailable")

    def put(
        self, name: str, data: bytes, content_type: str = "application/json", overwrite: bool = True
    ) -> BlobRef:
        self._check()
        if not overwrite and name in self._blobs:
            raise BlobStoreError(f"blob {name!r} already exists")
        self._blobs[name] = bytes(data)
        return BlobRef(name=name, url=f"memory://{name}")

    def list(self, prefix: str | None = None) -> list[BlobRef]:
        self._check()
        return [
            BlobRef(name=name, url=f"memory://{name}")
            for name in sorted(self._blobs)
            if prefix is None or name.startswith(prefix)
        ]

    def get(self, url: str) -> bytes:
        self._check()
        name = url.removeprefix("memory://")
        if name not in self._blobs:
            raise BlobStoreError(f"blob {name!r} not found")
        return self._blobs[name]
