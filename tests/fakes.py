"""
An in-memory backend that replays scripted event feeds.

Each entry in ``feeds`` is consumed by one subscribe() call. A feed is a
list of raw event dicts; an exception instance inside a feed is raised at
that point of iteration, HANG blocks forever, and an exception instance in
place of the whole feed makes subscribe() itself fail.
"""

import asyncio
from contextlib import asynccontextmanager

from ocmt.llm.client import BackendTransport
from ocmt.llm.gateway import BackendHandle

SESSION_ID = "ses_1"
HANG = object()


class FakeBackend(BackendTransport):

    def __init__(self, feeds=None, history=None, session_id=SESSION_ID):
        self.feeds = list(feeds or [])
        self.history = history if history is not None else []
        self.session_id = session_id
        self.created = []
        self.deleted = []
        self.aborted = []
        self.prompts = []
        self.permission_replies = []
        self.history_requests = 0
        self.subscriptions = 0
        self.closed = 0

    async def get_config(self) -> dict:
        return {"model": "opencode/gpt-5-nano"}

    async def create_session(self, title: str) -> dict:
        self.created.append(title)
        return {"id": self.session_id, "title": title, "time": {"created": 1700000000}}

    async def delete_session(self, session_id: str) -> None:
        self.deleted.append(session_id)

    async def prompt_async(self, session_id: str, body: dict, directory: str | None = None) -> None:
        self.prompts.append((session_id, body, directory))

    async def list_messages(self, session_id: str) -> list:
        self.history_requests += 1
        if isinstance(self.history, Exception):
            raise self.history
        return self.history

    async def abort_session(self, session_id: str) -> None:
        self.aborted.append(session_id)

    async def respond_permission(self, session_id: str, permission_id: str, response: str) -> None:
        self.permission_replies.append((permission_id, response))

    @asynccontextmanager
    async def subscribe(self):
        self.subscriptions += 1
        feed = self.feeds.pop(0) if self.feeds else []
        if isinstance(feed, Exception):
            raise feed
        yield self._replay(feed)

    async def _replay(self, feed):
        for item in feed:
            if item is HANG:
                await asyncio.Event().wait()
            if isinstance(item, Exception):
                raise item
            yield item
            await asyncio.sleep(0)

    async def aclose(self) -> None:
        self.closed += 1


class FakeGateway:

    def __init__(self, base_url="http://fake:4096"):
        self.handle = BackendHandle(base_url)
        self.calls = 0

    def resolve_handle(self) -> BackendHandle:
        self.calls += 1
        return self.handle


class ScriptedPrompter:
    """Answers permission questions from a list; None never answers."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.asked = []

    async def ask(self, description: str, title: str) -> str:
        self.asked.append(description)
        answer = self.answers.pop(0)
        if answer is None:
            await asyncio.Event().wait()
        return answer


# ---------------------------------------------------------------------------
# Raw event builders
# ---------------------------------------------------------------------------

class Events:

    @staticmethod
    def part(text, part_id="prt_1", message_id="msg_1", session=SESSION_ID, type="text"):
        return {"type": "message.part.updated", "properties": {"part": {
            "id": part_id, "sessionID": session, "messageID": message_id, "type": type, "text": text,
        }}}

    @staticmethod
    def message(message_id="msg_1", session=SESSION_ID, role="assistant", completed=True,
                finish="stop", error=None):
        info = {"id": message_id, "sessionID": session, "role": role, "time": {"created": 1}}
        if completed:
            info["time"]["completed"] = 2
        if finish:
            info["finish"] = finish
        if error:
            info["error"] = error
        return {"type": "message.updated", "properties": {"info": info}}

    @staticmethod
    def permission(permission_id="per_1", session=SESSION_ID, type="bash", pattern="ls", title="Run ls",
                   metadata=None):
        return {"type": "permission.updated", "properties": {
            "id": permission_id, "sessionID": session, "type": type, "pattern": pattern,
            "title": title, "metadata": metadata or {},
        }}

    @staticmethod
    def session_error(name="ProviderAuthError", message="bad key", session=SESSION_ID):
        return {"type": "session.error", "properties": {
            "sessionID": session, "error": {"name": name, "data": {"message": message}},
        }}

    @staticmethod
    def idle(session=SESSION_ID):
        return {"type": "session.idle", "properties": {"sessionID": session}}

    @staticmethod
    def history_entry(text, message_id="msg_1", role="assistant", completed=True, error=None):
        info = {"id": message_id, "sessionID": SESSION_ID, "role": role, "time": {"created": 1}}
        if completed:
            info["time"]["completed"] = 2
        if error:
            info["error"] = error
        return {"info": info, "parts": [{
            "id": f"prt_{message_id}", "sessionID": SESSION_ID, "messageID": message_id,
            "type": "text", "text": text,
        }]}


