"""Backend Gateway - find or start an OpenCode server.

Resolution order:
  1. OPENCODE_SERVER_URL / OPENCODE_URL, if set and reachable
  2. the well-known local server at http://localhost:4096
  3. a server spawned for this process (``opencode serve``)

A spawned server is shared by every generation in the process and torn down
exactly once, at interpreter exit or on SIGTERM.
"""

import atexit
import logging
import os
import queue
import re
import shutil
import signal
import subprocess
import threading
import time
from dataclasses import dataclass

import httpx

from ocmt.llm.base import BackendNotInstalledError, BackendAuthError, BackendUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:4096"
ENV_URL_VARS = ("OPENCODE_SERVER_URL", "OPENCODE_URL")
PROBE_TIMEOUT = 1.5
DEFAULT_STARTUP_TIMEOUT = 10.0
SPAWN_HOST = "127.0.0.1"
SPAWN_PORT = 4096

_LISTENING = re.compile(r'opencode server listening.*?(https?://\S+)', re.IGNORECASE)


@dataclass(frozen=True)
class BackendHandle:
    """How to reach the backend for the rest of this process."""
    base_url: str
    spawned: bool = False


def probe(base_url: str, timeout: float = PROBE_TIMEOUT) -> bool:
    """Advisory liveness check: GET /config answers below 500."""
    try:
        response = httpx.get(f"{base_url.rstrip('/')}/config", timeout=timeout)
    except httpx.HTTPError:
        return False
    return response.status_code < 500


def check_auth(base_url: str, timeout: float = 5.0) -> bool:
    """A server with credentials returns a non-empty config."""
    try:
        response = httpx.get(f"{base_url.rstrip('/')}/config", timeout=timeout)
        response.raise_for_status()
        return bool(response.json())
    except (httpx.HTTPError, ValueError):
        return False


def env_url() -> str | None:
    for var in ENV_URL_VARS:
        value = os.environ.get(var, "").strip()
        if value:
            return value
    return None


class BackendGateway:
    """Resolves and caches the backend handle. Use get_gateway()."""

    def __init__(self, startup_timeout: float = DEFAULT_STARTUP_TIMEOUT, configured_url: str | None = None):
        self.startup_timeout = startup_timeout
        self.configured_url = configured_url
        self._lock = threading.Lock()
        self._handle: BackendHandle | None = None
        self._process: subprocess.Popen | None = None
        self._teardown_registered = False

    @property
    def handle(self) -> BackendHandle | None:
        return self._handle

    def resolve_handle(self) -> BackendHandle:
        with self._lock:
            if self._handle is None:
                self._handle = self._resolve()
            return self._handle

    def _resolve(self) -> BackendHandle:
        candidate = env_url() or self.configured_url
        if candidate:
            if probe(candidate):
                logger.debug("using OpenCode server from environment: %s", candidate)
                return BackendHandle(candidate.rstrip('/'))
            logger.warning(
                "Failed to connect to OpenCode server at %s. Falling back to local server.",
                candidate,
            )

        if probe(DEFAULT_URL):
            logger.debug("using running OpenCode server at %s", DEFAULT_URL)
            return BackendHandle(DEFAULT_URL)

        base_url = self._spawn()
        if not check_auth(base_url):
            self._teardown()
            raise BackendAuthError()
        return BackendHandle(base_url, spawned=True)

    def _spawn(self) -> str:
        executable = shutil.which("opencode")
        if not executable:
            raise BackendNotInstalledError()

        cmd = [executable, "serve", f"--hostname={SPAWN_HOST}", f"--port={SPAWN_PORT}"]
        logger.debug("spawning %s", " ".join(cmd))
        try:
            # Own session: the terminal's Ctrl-C must not reach the server
            # before our sessions are closed.
            self._process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding='utf-8',
                errors='replace',
                start_new_session=True,
            )
        except OSError as e:
            raise BackendUnavailableError(f"Failed to start OpenCode server: {e}") from e

        self._register_teardown()
        try:
            return self._wait_for_listening(self._process)
        except BackendUnavailableError:
            self._teardown()
            raise

    def _wait_for_listening(self, process: subprocess.Popen) -> str:
        lines: queue.Queue = queue.Queue()

        def reader():
            for line in process.stdout:
                lines.put(line)
            lines.put(None)

        threading.Thread(target=reader, daemon=True).start()

        output = []
        deadline = time.monotonic() + self.startup_timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise BackendUnavailableError(
                    f"Timeout waiting for OpenCode server to start after {self.startup_timeout:g}s"
                )
            try:
                line = lines.get(timeout=remaining)
            except queue.Empty:
                continue
            if line is None:
                detail = "".join(output).strip()
                raise BackendUnavailableError(
                    f"OpenCode server exited with code {process.poll()}"
                    + (f"\n{detail}" if detail else "")
                )
            output.append(line)
            match = _LISTENING.search(line)
            if match:
                url = match.group(1).rstrip('/')
                logger.debug("OpenCode server listening on %s", url)
                return url

    def _register_teardown(self) -> None:
        if self._teardown_registered:
            return
        self._teardown_registered = True
        atexit.register(self._teardown)
        try:
            signal.signal(signal.SIGTERM, _exit_on_signal)
        except ValueError:
            # Not on the main thread; atexit still covers normal exit
            logger.debug("could not install SIGTERM handler")

    def _teardown(self) -> None:
        process, self._process = self._process, None
        if process is None or process.poll() is not None:
            return
        logger.debug("stopping OpenCode server (pid %s)", process.pid)
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def reset(self) -> None:
        """Stop any spawned server and forget the cached handle."""
        with self._lock:
            self._teardown()
            self._handle = None


def _exit_on_signal(signum, frame):
    # SystemExit unwinds open sessions, then atexit stops the server
    raise SystemExit(128 + signum)


_gateway: BackendGateway | None = None
_gateway_lock = threading.Lock()


def get_gateway() -> BackendGateway:
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            _gateway = BackendGateway()
        return _gateway


def resolve_handle() -> BackendHandle:
    return get_gateway().resolve_handle()


def cleanup() -> None:
    """Stop a spawned server now (idempotent)."""
    with _gateway_lock:
        gateway = _gateway
    if gateway is not None:
        gateway.reset()
