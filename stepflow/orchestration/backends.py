"""Default storage and remote-call backends used by built-in steps.

Both are plain collaborators of the step dispatcher; hosts can substitute any
object exposing the same coroutine methods.
"""
from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .errors import RemoteCallError, StoragePathError

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Directory-scoped file access for ``file-operation`` steps."""

    @abstractmethod
    async def read(self, path: str) -> str:
        """Read a text file."""

    @abstractmethod
    async def write(self, path: str, content: str) -> Dict[str, Any]:
        """Write a text file, creating missing parent directories.

        Returns:
            Mapping with the written ``path`` and ``size`` in characters
        """

    @abstractmethod
    async def list(self, path: str) -> List[str]:
        """List entry names of a directory."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check whether a path exists."""


class LocalStorageBackend(StorageBackend):
    """Storage backend confined to a directory on the local filesystem."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        """Resolve ``path`` under the root, rejecting anything that escapes it."""
        root = self.root.resolve()
        target = (root / path).resolve()
        if not target.is_relative_to(root):
            raise StoragePathError(f"Path escapes root: {path!r} is outside {root}")
        return target

    async def _run(self, func, *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def read(self, path: str) -> str:
        target = self._resolve(path)
        return await self._run(target.read_text, "utf-8")

    async def write(self, path: str, content: str) -> Dict[str, Any]:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await self._run(_write)
        logger.debug(f"Wrote {len(content)} characters to {target}")
        return {"path": str(target), "size": len(content)}

    async def list(self, path: str) -> List[str]:
        target = self._resolve(path)
        return sorted(await self._run(os.listdir, target))

    async def exists(self, path: str) -> bool:
        target = self._resolve(path)
        return await self._run(target.exists)


class Transport(ABC):
    """Sends the HTTP request described by a ``remote-call`` step."""

    @abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and return the parsed response body.

        Raises:
            RemoteCallError: On a non-2xx response
        """


class HttpxTransport(Transport):
    """Transport built on ``httpx.AsyncClient``.

    The client is created lazily and shared by every call, so one transport
    can serve concurrent runs. A caller-supplied client is never closed here.
    """

    DEFAULT_HEADERS = {"Content-Type": "application/json"}

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        request_headers = {**self.DEFAULT_HEADERS, **(headers or {})}
        kwargs: Dict[str, Any] = {"headers": request_headers}
        if body is not None:
            if isinstance(body, (str, bytes)):
                kwargs["content"] = body
            else:
                kwargs["content"] = json.dumps(body)
        if timeout is not None:
            kwargs["timeout"] = timeout

        logger.debug(f"{method.upper()} {url}")
        response = await self._get_client().request(method.upper(), url, **kwargs)

        if not response.is_success:
            raise RemoteCallError(
                f"API call failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
