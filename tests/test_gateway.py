"""
Tests for backend resolution, attachments and shared LLM helpers.
"""

import logging
import threading
from pathlib import Path

import pytest

from ocmt.llm import gateway as gateway_module
from ocmt.llm.attachments import attachment_files, sanitize_filename, unique_names
from ocmt.llm.base import (
    Attachment, BackendAuthError, BackendNotInstalledError, BackendUnavailableError, ErrorKind,
    ModelRef, OperationTimeoutError, extract_summary, normalize_response,
)
from ocmt.llm.gateway import BackendGateway, BackendHandle, DEFAULT_URL


@pytest.fixture
def probes(monkeypatch):
    """Make probe() answer from a dict of reachable URLs and record calls."""
    reachable = {}
    calls = []

    def fake_probe(url, timeout=None):
        calls.append(url)
        return reachable.get(url, False)

    monkeypatch.setattr(gateway_module, "probe", fake_probe)
    for var in gateway_module.ENV_URL_VARS:
        monkeypatch.delenv(var, raising=False)
    return reachable, calls


def _silent_output():
    threading.Event().wait(1)
    yield from ()


class FakeProcess:
    pid = 4242

    def __init__(self, lines, exit_code=None):
        self.stdout = iter(lines)
        self.exit_code = exit_code
        self.terminated = False

    def poll(self):
        return self.exit_code

    def terminate(self):
        self.terminated = True
        self.exit_code = -15

    def wait(self, timeout=None):
        return self.exit_code

    def kill(self):
        self.exit_code = -9


# ---------------------------------------------------------------------------
# Gateway resolution
# ---------------------------------------------------------------------------

class TestGatewayResolution:

    def test_env_url_first(self, probes, monkeypatch):
        reachable, calls = probes
        reachable["http://remote:9000/"] = True
        reachable[DEFAULT_URL] = True
        monkeypatch.setenv("OPENCODE_SERVER_URL", "http://remote:9000/")

        handle = BackendGateway().resolve_handle()
        assert handle == BackendHandle("http://remote:9000")
        assert calls == ["http://remote:9000/"]

    def test_secondary_env_var(self, probes, monkeypatch):
        reachable, _ = probes
        reachable["http://other:1"] = True
        monkeypatch.setenv("OPENCODE_URL", "http://other:1")
        assert BackendGateway().resolve_handle().base_url == "http://other:1"

    def test_unreachable_env_falls_back_to_local(self, probes, monkeypatch, caplog):
        reachable, calls = probes
        reachable[DEFAULT_URL] = True
        monkeypatch.setenv("OPENCODE_SERVER_URL", "http://gone:1")

        with caplog.at_level(logging.WARNING, logger="ocmt.llm.gateway"):
            handle = BackendGateway().resolve_handle()
        assert handle == BackendHandle(DEFAULT_URL)
        assert calls == ["http://gone:1", DEFAULT_URL]
        assert "Falling back to local server" in caplog.text

    def test_configured_url_used_without_env(self, probes):
        reachable, _ = probes
        reachable["http://configured:5"] = True
        gateway = BackendGateway(configured_url="http://configured:5")
        assert gateway.resolve_handle().base_url == "http://configured:5"

    def test_spawn_when_nothing_is_running(self, probes, monkeypatch):
        gateway = BackendGateway()
        monkeypatch.setattr(gateway, "_spawn", lambda: "http://127.0.0.1:4096")
        monkeypatch.setattr(gateway_module, "check_auth", lambda url: True)

        handle = gateway.resolve_handle()
        assert handle == BackendHandle("http://127.0.0.1:4096", spawned=True)

    def test_spawned_without_auth(self, probes, monkeypatch):
        gateway = BackendGateway()
        torn_down = []
        monkeypatch.setattr(gateway, "_spawn", lambda: "http://127.0.0.1:4096")
        monkeypatch.setattr(gateway, "_teardown", lambda: torn_down.append(True))
        monkeypatch.setattr(gateway_module, "check_auth", lambda url: False)

        with pytest.raises(BackendAuthError, match="opencode auth login"):
            gateway.resolve_handle()
        assert torn_down == [True]

    def test_not_installed(self, probes, monkeypatch):
        monkeypatch.setattr(gateway_module.shutil, "which", lambda name: None)
        with pytest.raises(BackendNotInstalledError) as exc:
            BackendGateway().resolve_handle()
        assert exc.value.kind is ErrorKind.ENVIRONMENT

    def test_handle_is_cached(self, probes):
        reachable, calls = probes
        reachable[DEFAULT_URL] = True
        gateway = BackendGateway()
        first = gateway.resolve_handle()
        second = gateway.resolve_handle()
        assert first is second
        assert calls == [DEFAULT_URL]

    def test_reset_forgets_handle(self, probes):
        reachable, calls = probes
        reachable[DEFAULT_URL] = True
        gateway = BackendGateway()
        gateway.resolve_handle()
        gateway.reset()
        assert gateway.handle is None
        gateway.resolve_handle()
        assert calls == [DEFAULT_URL, DEFAULT_URL]


class TestSpawnedServer:

    def test_listening_line_gives_url(self):
        process = FakeProcess([
            "loading config\n",
            "opencode server listening on http://127.0.0.1:4096/\n",
        ])
        assert BackendGateway()._wait_for_listening(process) == "http://127.0.0.1:4096"

    def test_exit_before_listening(self):
        process = FakeProcess(["error: port in use\n"], exit_code=1)
        with pytest.raises(BackendUnavailableError, match="exited with code 1") as exc:
            BackendGateway()._wait_for_listening(process)
        assert "port in use" in str(exc.value)

    def test_startup_timeout(self):
        class SilentProcess(FakeProcess):
            def __init__(self):
                super().__init__([])
                self.stdout = _silent_output()

        with pytest.raises(BackendUnavailableError, match="Timeout waiting"):
            BackendGateway(startup_timeout=0.05)._wait_for_listening(SilentProcess())

    def test_teardown_terminates_once(self):
        gateway = BackendGateway()
        process = FakeProcess([])
        gateway._process = process
        gateway._teardown()
        gateway._teardown()
        assert process.terminated
        assert gateway._process is None


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------

class TestAttachments:

    @pytest.mark.parametrize("name, expected", [
        ("staged.diff", "staged.diff"),
        ("../../etc/passwd", "passwd"),
        ("my file (1).md", "my-file--1-.md"),
        ("", "fallback.txt"),
        ("..", "fallback.txt"),
        (".", "fallback.txt"),
        ("notes/..", "fallback.txt"),
    ])
    def test_sanitize(self, name, expected):
        assert sanitize_filename(name, "fallback.txt") == expected

    def test_duplicate_names_made_unique(self):
        names = unique_names([Attachment("a.diff", ""), Attachment("a.diff", ""), Attachment("notes", "")])
        assert names == ["a.diff", "a-2.diff", "notes"]

    def test_renamed_duplicate_skips_taken_names(self):
        names = unique_names([Attachment("x-3.txt", ""), Attachment("x.txt", ""), Attachment("x.txt", "")])
        assert names == ["x-3.txt", "x.txt", "x-4.txt"]
        assert len(set(names)) == 3

    def test_every_file_written(self):
        attachments = [Attachment("x-3.txt", "one"), Attachment("x.txt", "two"), Attachment("x.txt", "three")]
        with attachment_files(attachments) as parts:
            contents = sorted(
                Path(part["url"].removeprefix("file://")).read_text(encoding='utf-8') for part in parts
            )
        assert contents == ["one", "three", "two"]

    def test_files_written_then_removed(self):
        with attachment_files([Attachment("staged.diff", "+added line\n")]) as parts:
            path = Path(parts[0]["url"].removeprefix("file://"))
            assert path.read_text(encoding='utf-8') == "+added line\n"
            assert path.parent.name.startswith("ocmt-opencode-")
        assert not path.parent.exists()

    def test_removed_on_error(self):
        with pytest.raises(RuntimeError):
            with attachment_files([Attachment("x.txt", "x")]) as parts:
                path = Path(parts[0]["url"].removeprefix("file://"))
                raise RuntimeError("boom")
        assert not path.parent.exists()

    def test_no_attachments(self):
        with attachment_files(None) as parts:
            assert parts == []


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

class TestModelRef:

    def test_parse(self):
        assert ModelRef.parse("anthropic/claude-sonnet-4-5") == ModelRef("anthropic", "claude-sonnet-4-5")

    def test_model_may_contain_slash(self):
        ref = ModelRef.parse("openrouter/meta/llama-3")
        assert ref.provider_id == "openrouter"
        assert ref.model_id == "meta/llama-3"

    def test_bare_name_uses_default_provider(self):
        assert str(ModelRef.parse("gpt-5-nano")) == "opencode/gpt-5-nano"

    @pytest.mark.parametrize("value", ["", "  ", "/model", "provider/", None])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            ModelRef.parse(value)


class TestNormalize:

    @pytest.mark.parametrize("raw, expected", [
        ("feat: add x", "feat: add x"),
        ("  feat: add x \n", "feat: add x"),
        ("```\nfeat: add x\n```", "feat: add x"),
        ("```text\nfix: y\n\nbody\n```\n", "fix: y\n\nbody"),
        ("", ""),
    ])
    def test_normalize_response(self, raw, expected):
        assert normalize_response(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        ("Edited files.\nSUMMARY: Removed comments.", "Removed comments."),
        ("summary: lower case works", "lower case works"),
        ("No label here", "No label here"),
        ("SUMMARY:   ", None),
        ("   ", None),
    ])
    def test_extract_summary(self, raw, expected):
        assert extract_summary(raw) == expected

    def test_timeout_message_names_setting(self):
        assert "OC_TIMEOUT" in str(OperationTimeoutError(120))
