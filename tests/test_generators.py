"""
Tests for the per-artifact generators, run against the scripted backend.
"""

import pytest

from ocmt.config import Config
from ocmt.llm import generators
from ocmt.llm.base import EmptyResponseError
from ocmt.llm.generators import (
    DESLOP_FALLBACK_SUMMARY, generate_branch_name, generate_commit_message, generate_pr_content,
    run_deslop_edits,
)
from ocmt.prompts import Commit, PromptContext

from fakes import FakeBackend


@pytest.fixture(autouse=True)
def guidelines(monkeypatch):
    """Keep generators away from ~/.oc."""
    monkeypatch.setattr(generators, "get_guideline", lambda name: f"# {name} rules")


@pytest.fixture
def answering(ev, make_orchestrator):
    """Return (backend, orchestrator) that answer every prompt with ``text``."""
    def _make(text):
        backend = FakeBackend(feeds=[[ev.part(text), ev.message()]])
        return backend, make_orchestrator(backend)
    return _make


class TestCommitMessage:

    def test_message_and_model(self, answering):
        backend, orchestrator = answering("```\nfix(auth): refresh expired tokens\n```")
        config = Config()
        config.commit.model = "anthropic/claude-haiku-4-5"

        message = generate_commit_message("+token.refresh()", config=config, orchestrator=orchestrator)

        assert message == "fix(auth): refresh expired tokens"
        assert backend.created == ["oc-commit"]
        body = backend.prompts[0][1]
        assert body["model"] == {"providerID": "anthropic", "modelID": "claude-haiku-4-5"}
        assert "# commit rules" in body["parts"][0]["text"]
        assert body["parts"][1]["type"] == "file"

    def test_hint_reaches_prompt(self, answering):
        backend, orchestrator = answering("fix: login")
        generate_commit_message(
            "+x", context=PromptContext(hint="fixing the login bug"), config=Config(), orchestrator=orchestrator,
        )
        assert "fixing the login bug" in backend.prompts[0][1]["parts"][0]["text"]


class TestBranchName:

    def test_uses_branch_model(self, answering):
        backend, orchestrator = answering("feat/csv-export")
        config = Config()
        config.commit.branch_model = "opencode/big-pickle"

        assert generate_branch_name("+export()", config=config, orchestrator=orchestrator) == "feat/csv-export"
        assert backend.prompts[0][1]["model"]["modelID"] == "big-pickle"


class TestPRContent:

    def test_title_and_body(self, answering):
        _, orchestrator = answering("TITLE: Add CSV export\nBODY:\n## Summary\n- writes CSV")
        content = generate_pr_content(
            "+x", [Commit("abc1234", "feat: export")], "feat/export", "main",
            config=Config(), orchestrator=orchestrator,
        )
        assert content.title == "Add CSV export"
        assert content.body == "## Summary\n- writes CSV"

    def test_blank_title_is_empty_response(self, answering):
        _, orchestrator = answering('TITLE: ""\nBODY:\nsomething')
        with pytest.raises(EmptyResponseError):
            generate_pr_content("+x", [], "feat/x", "main", config=Config(), orchestrator=orchestrator)


class TestDeslopEdits:

    def test_runs_build_agent_in_cwd(self, answering, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        backend, orchestrator = answering("Edited app.py.\nSUMMARY: Removed redundant comments.")

        summary = run_deslop_edits("+# obvious comment", config=Config(), orchestrator=orchestrator)

        assert summary == "Removed redundant comments."
        assert backend.created == ["oc-deslop"]
        _, body, directory = backend.prompts[0]
        assert body["agent"] == "build"
        assert directory == str(tmp_path)

    def test_silent_run_gets_stock_summary(self, ev, make_orchestrator):
        backend = FakeBackend(feeds=[[ev.part("", part_id="tool", type="tool"), ev.message()]])
        summary = run_deslop_edits("+x", config=Config(), orchestrator=make_orchestrator(backend))
        assert summary == DESLOP_FALLBACK_SUMMARY
