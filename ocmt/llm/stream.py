"""Event Stream Consumer - assemble one session's answer from the event feed.

The feed is global: every session on the server shares it, so events are
filtered by session id. Text arrives as parts that are updated in place;
the answer is the text parts of the assistant message that completes.

The consumer runs under an overall deadline and may reconnect once if the
feed drops before a terminal event.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable

from ocmt.llm.base import (
    LLMError, RequestError, StreamResult, SessionFailedError, IncompleteResponseError,
    OperationTimeoutError, StreamDisconnectedError, StreamSubscribeError, StreamInterruptedError,
)
from ocmt.llm.client import BackendTransport
from ocmt.llm.events import (
    MessageInfo, MessageUpdated, Part, PartUpdated, Permission, PermissionUpdated,
    SessionError, SessionIdle, decode_event, decode_history,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0

# A completed step that only requested tools; the run continues
TOOL_CALLS_FINISH = "tool-calls"

PermissionHandler = Callable[[Permission], Awaitable[str]]


class StreamState(Enum):
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    StreamState.STREAMING: {StreamState.RECONNECTING, StreamState.DONE, StreamState.FAILED},
    StreamState.RECONNECTING: {StreamState.DONE, StreamState.FAILED},
    StreamState.DONE: set(),
    StreamState.FAILED: set(),
}


def text_of(parts, message_id: str) -> str:
    """Concatenate text parts of one message, in first-seen order."""
    return "".join(
        part.text for part in parts
        if part.type == "text" and part.message_id in (None, message_id)
    ).strip()


class EventStreamConsumer:
    """Consumes the event feed for a single session."""

    def __init__(self, transport: BackendTransport, timeout: float = DEFAULT_TIMEOUT):
        self.transport = transport
        self.timeout = timeout
        self.state = StreamState.STREAMING
        self._parts: dict[str, Part] = {}
        self._message: MessageInfo | None = None

    def _transition(self, new: StreamState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"invalid stream transition {self.state.value} -> {new.value}")
        logger.debug("stream %s -> %s", self.state.value, new.value)
        self.state = new

    def _fail(self) -> None:
        if self.state not in (StreamState.DONE, StreamState.FAILED):
            self._transition(StreamState.FAILED)

    async def consume(
        self,
        session_id: str,
        on_permission: PermissionHandler,
        on_subscribed: Callable[[], Awaitable[None]] | None = None,
    ) -> StreamResult:
        """Stream until the assistant's answer completes.

        on_subscribed runs once the feed is open, so a prompt submitted
        from it cannot race ahead of the subscription.
        """
        try:
            return await asyncio.wait_for(
                self._consume(session_id, on_permission, on_subscribed),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self._fail()
            await self._abort(session_id)
            raise OperationTimeoutError(self.timeout) from None

    async def _consume(self, session_id, on_permission, on_subscribed) -> StreamResult:
        try:
            async with self.transport.subscribe() as events:
                if on_subscribed is not None:
                    await on_subscribed()
                result = await self._pump(events, session_id, on_permission)
        except StreamInterruptedError as e:
            logger.debug("event stream dropped: %s", e)
            result = None
        except LLMError:
            self._fail()
            raise

        if result is not None:
            self._transition(StreamState.DONE)
            return result

        return await self._reconnect(session_id)

    async def _pump(self, events, session_id: str, on_permission: PermissionHandler) -> StreamResult | None:
        """Process events in feed order. None means the feed ended early."""
        async for raw in events:
            event = decode_event(raw)
            if event is None or event.session_id != session_id:
                continue

            if isinstance(event, PartUpdated):
                self._parts[event.part.id] = event.part

            elif isinstance(event, MessageUpdated):
                info = event.info
                if not info.is_assistant:
                    continue
                self._message = info
                if info.error:
                    raise SessionFailedError(*info.error_summary())
                if info.is_complete and info.finish != TOOL_CALLS_FINISH:
                    return self._result()

            elif isinstance(event, PermissionUpdated):
                await on_permission(event.permission)

            elif isinstance(event, SessionError):
                raise SessionFailedError(event.name, event.message)

            elif isinstance(event, SessionIdle):
                if self._message is not None and self._message.is_complete:
                    return self._result()
                logger.debug("session %s idle without a complete message, checking history", session_id)
                result = await self._from_history(session_id)
                if result is not None:
                    return result
                raise IncompleteResponseError("Session went idle before the response completed")

        return None

    def _result(self) -> StreamResult:
        message = self._message
        return StreamResult(text=text_of(self._parts.values(), message.id), message_id=message.id)

    async def _from_history(self, session_id: str) -> StreamResult | None:
        """Return the last assistant message if it completed cleanly."""
        try:
            messages = await self.transport.list_messages(session_id)
        except RequestError as e:
            logger.debug("message history unavailable: %s", e)
            return None

        for info, parts in reversed(decode_history(messages)):
            if not info.is_assistant:
                continue
            if info.is_complete and not info.error:
                return StreamResult(text=text_of(parts, info.id), message_id=info.id)
            return None
        return None

    async def _reconnect(self, session_id: str) -> StreamResult:
        self._transition(StreamState.RECONNECTING)
        result = None
        try:
            async with self.transport.subscribe():
                result = await self._from_history(session_id)
        except (StreamSubscribeError, StreamInterruptedError) as e:
            logger.debug("re-subscribe failed: %s", e)

        if result is not None:
            self._transition(StreamState.DONE)
            return result

        self._transition(StreamState.FAILED)
        await self._abort(session_id)
        raise StreamDisconnectedError("stream disconnected, reconnect failed")

    async def _abort(self, session_id: str) -> None:
        try:
            await self.transport.abort_session(session_id)
        except Exception as e:
            logger.debug("abort of session %s failed: %s", session_id, e)
