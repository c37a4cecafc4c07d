"""REST and event-feed transport for an OpenCode server."""

import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from ocmt.llm.base import RequestError, StreamSubscribeError, StreamInterruptedError

logger = logging.getLogger(__name__)


class BackendTransport(ABC):
    """The calls the session protocol needs from a backend."""

    @abstractmethod
    async def get_config(self) -> dict:
        pass

    @abstractmethod
    async def create_session(self, title: str) -> dict:
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> None:
        pass

    @abstractmethod
    async def prompt_async(self, session_id: str, body: dict, directory: str | None = None) -> None:
        pass

    @abstractmethod
    async def list_messages(self, session_id: str) -> list:
        pass

    @abstractmethod
    async def abort_session(self, session_id: str) -> None:
        pass

    @abstractmethod
    async def respond_permission(self, session_id: str, permission_id: str, response: str) -> None:
        pass

    @abstractmethod
    def subscribe(self):
        """Async context manager yielding an async iterator of raw event dicts.

        Entering raises StreamSubscribeError if the feed cannot be opened.
        Iteration raises StreamInterruptedError if the feed drops.
        """

    async def aclose(self) -> None:
        pass


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[Any]:
    """Yield decoded JSON payloads from server-sent event lines."""
    data_lines: list[str] = []

    async for line in lines:
        line = line.rstrip('\r')
        if not line:
            # Blank line ends an event
            if data_lines:
                payload = "\n".join(data_lines)
                data_lines = []
                try:
                    yield json.loads(payload)
                except json.JSONDecodeError:
                    logger.debug("dropping non-JSON event data: %.200s", payload)
            continue

        if line.startswith(':'):
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())

    if data_lines:
        payload = "\n".join(data_lines)
        try:
            yield json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("dropping non-JSON event data: %.200s", payload)


class OpencodeClient(BackendTransport):
    """httpx-based client for the OpenCode server REST API.

    One instance lives for one orchestration call; its AsyncClient is bound to
    the running event loop.
    """

    REQUEST_TIMEOUT = 30.0

    def __init__(self, base_url: str, http: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip('/')
        self._http = http or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.REQUEST_TIMEOUT),
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, path, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            body = e.response.text[:200].strip()
            raise RequestError(
                f"{method} {path} failed ({e.response.status_code}){': ' + body if body else ''}"
            ) from e
        except httpx.HTTPError as e:
            raise RequestError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RequestError(f"Invalid JSON from {response.request.url}") from e

    async def get_config(self) -> dict:
        return self._json(await self._request("GET", "/config")) or {}

    async def create_session(self, title: str) -> dict:
        data = self._json(await self._request("POST", "/session", json={"title": title}))
        if not isinstance(data, dict) or not data.get("id"):
            raise RequestError("Failed to create session")
        return data

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/session/{session_id}")

    async def prompt_async(self, session_id: str, body: dict, directory: str | None = None) -> None:
        params = {"directory": directory} if directory else None
        await self._request("POST", f"/session/{session_id}/prompt_async", json=body, params=params)

    async def list_messages(self, session_id: str) -> list:
        data = self._json(await self._request("GET", f"/session/{session_id}/message"))
        return data if isinstance(data, list) else []

    async def abort_session(self, session_id: str) -> None:
        await self._request("POST", f"/session/{session_id}/abort")

    async def respond_permission(self, session_id: str, permission_id: str, response: str) -> None:
        await self._request(
            "POST",
            f"/session/{session_id}/permissions/{permission_id}",
            json={"response": response},
        )

    @asynccontextmanager
    async def subscribe(self):
        request = self._http.build_request(
            "GET", "/event",
            headers={"Accept": "text/event-stream"},
            # The feed stays open for the whole generation
            timeout=httpx.Timeout(self.REQUEST_TIMEOUT, read=None),
        )
        try:
            response = await self._http.send(request, stream=True)
        except httpx.HTTPError as e:
            raise StreamSubscribeError(f"Could not subscribe to event stream: {e}") from e

        try:
            if response.status_code != 200:
                raise StreamSubscribeError(
                    f"Could not subscribe to event stream: HTTP {response.status_code}"
                )
            yield self._events(response)
        finally:
            await response.aclose()

    async def _events(self, response: httpx.Response) -> AsyncIterator[Any]:
        try:
            async for payload in iter_sse_data(response.aiter_lines()):
                yield payload
        except httpx.HTTPError as e:
            raise StreamInterruptedError(f"event stream interrupted: {e}") from e
