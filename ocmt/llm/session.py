"""Session Lifecycle - one short-lived backend session per generation."""

import logging
from dataclasses import dataclass
from typing import Any

from ocmt.llm.client import BackendTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    id: str
    title: str
    created_at: Any = None


class SessionLifecycle:
    """Creates a session and guarantees it is deleted at most once.

    async with SessionLifecycle(transport) as lifecycle:
        session = await lifecycle.open("oc-commit")
        ...
    """

    def __init__(self, transport: BackendTransport):
        self.transport = transport
        self.session: Session | None = None
        self._closed = False

    async def open(self, title: str) -> Session:
        if self.session is not None:
            raise RuntimeError("session already opened; open a new lifecycle instead")
        data = await self.transport.create_session(title)
        time = data.get("time") if isinstance(data.get("time"), dict) else {}
        self.session = Session(
            id=data["id"],
            title=data.get("title") or title,
            created_at=time.get("created"),
        )
        logger.debug("opened session %s (%s)", self.session.id, title)
        return self.session

    async def abort(self) -> None:
        if self.session is None or self._closed:
            return
        try:
            await self.transport.abort_session(self.session.id)
        except Exception as e:
            logger.debug("abort of session %s failed: %s", self.session.id, e)

    async def close(self) -> None:
        """Delete the session. Safe to call repeatedly; never raises."""
        if self._closed:
            return
        self._closed = True
        if self.session is None:
            return
        try:
            await self.transport.delete_session(self.session.id)
            logger.debug("deleted session %s", self.session.id)
        except Exception as e:
            logger.debug("delete of session %s failed: %s", self.session.id, e)

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
