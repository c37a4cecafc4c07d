"""Permission Negotiator - answer tool-use requests raised mid-generation."""

import asyncio
import logging
import queue
import sys
import threading

from ocmt.llm.client import BackendTransport
from ocmt.llm.events import Permission
from ocmt.output import bold, dim, warning, suspend_spinner

logger = logging.getLogger(__name__)

ONCE = "once"
ALWAYS = "always"
REJECT = "reject"
DECISIONS = (ONCE, ALWAYS, REJECT)

DEFAULT_PERMISSION_TIMEOUT = 60.0

_CHOICES = {
    "1": ONCE, "o": ONCE, "y": ONCE, "once": ONCE,
    "2": ALWAYS, "a": ALWAYS, "always": ALWAYS,
    "3": REJECT, "r": REJECT, "n": REJECT, "reject": REJECT,
}


def _first_pattern(pattern) -> str:
    if isinstance(pattern, list):
        return ", ".join(str(p) for p in pattern)
    return pattern or ""


def describe_permission(permission: Permission) -> str:
    """One-line, human readable description of what is being asked."""
    meta = permission.metadata
    pattern = _first_pattern(permission.pattern)

    if permission.type == "bash":
        command = meta.get("command") or pattern
        return f"Run command: {command}" if command else permission.title or "Run a shell command"
    if permission.type == "edit":
        path = meta.get("filePath") or pattern
        return f"Edit file: {path}" if path else permission.title or "Edit a file"
    if permission.type == "webfetch":
        url = meta.get("url") or pattern
        return f"Fetch URL: {url}" if url else permission.title or "Fetch a URL"
    if permission.type == "doom_loop":
        return "The agent is repeating the same tool call. Allow it to continue?"
    if permission.type == "external_directory":
        return "Access files outside the working directory" + (f": {pattern}" if pattern else "")
    return permission.title or f"Permission requested: {permission.type}"


class _LineFeeder:
    """A daemon thread reading lines for streams the event loop can't watch.

    The thread only reads when asked. A read abandoned by a timeout stays
    pending in the thread and its line goes to the next caller, so no
    executor job is left for asyncio.run() to wait on.
    """

    POLL_INTERVAL = 0.05

    def __init__(self, stream):
        self.stream = stream
        self._lines = queue.Queue()
        self._wanted = threading.Event()
        self._lock = threading.Lock()
        self._reading = False
        self._thread = threading.Thread(target=self._feed, daemon=True)
        self._thread.start()

    def _feed(self):
        while True:
            self._wanted.wait()
            try:
                line = self.stream.readline()
            except (OSError, ValueError):
                line = ""
            with self._lock:
                self._wanted.clear()
                self._reading = False
                self._lines.put(line)
            if line == "":
                return

    def _request(self) -> None:
        # At most one read outstanding; queued lines are served first
        with self._lock:
            if self._lines.empty() and not self._reading:
                self._reading = True
                self._wanted.set()

    async def readline(self) -> str:
        self._request()
        while True:
            try:
                return self._lines.get_nowait()
            except queue.Empty:
                if not self._thread.is_alive():
                    return ""
            await asyncio.sleep(self.POLL_INTERVAL)


_feeders: dict[int, _LineFeeder] = {}
_feeders_lock = threading.Lock()


def line_feeder(stream) -> _LineFeeder:
    """The one feeder for ``stream``, started on first use."""
    with _feeders_lock:
        feeder = _feeders.get(id(stream))
        if feeder is None or feeder.stream is not stream:
            feeder = _feeders[id(stream)] = _LineFeeder(stream)
        return feeder


class TerminalPrompter:
    """Asks on the terminal without leaving a blocked reader thread behind."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdin

    async def readline(self) -> str:
        loop = asyncio.get_running_loop()
        try:
            fd = self.stream.fileno()
        except (AttributeError, OSError, ValueError):
            fd = None

        if fd is not None:
            future = loop.create_future()

            def on_readable():
                if not future.done():
                    future.set_result(self.stream.readline())

            try:
                loop.add_reader(fd, on_readable)
            except (NotImplementedError, ValueError, OSError):
                fd = None
            else:
                try:
                    return await future
                finally:
                    loop.remove_reader(fd)

        return await line_feeder(self.stream).readline()

    async def ask(self, description: str, title: str) -> str:
        print(f"\n{warning('Permission requested')} {bold(description)}")
        if title and title != description:
            print(dim(f"  {title}"))
        print(f"  1) allow once   2) always allow   3) reject")
        print("  Select [1/2/3]: ", end='', flush=True)
        line = await self.readline()
        if line == "":
            raise EOFError
        return line


class PermissionNegotiator:
    """Turns a permission request into exactly one reply."""

    def __init__(
        self,
        transport: BackendTransport,
        prompter=None,
        timeout: float = DEFAULT_PERMISSION_TIMEOUT,
        interactive: bool | None = None,
        auto_approve: bool = False,
    ):
        self.transport = transport
        self.prompter = prompter or TerminalPrompter()
        self.timeout = timeout
        self.interactive = sys.stdin.isatty() if interactive is None else interactive
        self.auto_approve = auto_approve
        self.replies: list[tuple[str, str]] = []

    async def decide(self, permission: Permission) -> str:
        if not self.interactive:
            decision = ONCE if self.auto_approve else REJECT
            logger.debug("non-interactive permission %s -> %s", permission.id, decision)
            return decision

        description = describe_permission(permission)
        with suspend_spinner():
            try:
                answer = await asyncio.wait_for(
                    self.prompter.ask(description, permission.title),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                print()
                print(dim(f"  No answer after {self.timeout:g}s, rejecting."))
                return REJECT
            except (EOFError, KeyboardInterrupt):
                print()
                return REJECT

        return _CHOICES.get(answer.strip().lower(), REJECT)

    async def negotiate(self, permission: Permission) -> str:
        decision = await self.decide(permission)
        try:
            await self.transport.respond_permission(permission.session_id, permission.id, decision)
        except Exception as e:
            logger.warning("Failed to send permission reply for %s: %s", permission.id, e)
        self.replies.append((permission.id, decision))
        return decision

    __call__ = negotiate
