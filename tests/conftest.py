"""Shared fixtures."""

import re

import pytest

from ocmt.llm.base import ModelRef
from ocmt.llm.orchestrator import PromptOrchestrator

from fakes import Events, FakeGateway

ANSI_RE = re.compile(r'\033\[[0-9;]*m')


@pytest.fixture
def ev():
    return Events


@pytest.fixture
def model():
    return ModelRef("opencode", "gpt-5-nano")


@pytest.fixture
def make_orchestrator():
    """Return a factory wiring a PromptOrchestrator to a FakeBackend."""
    def _make(backend, prompter=None, timeout=5.0, permission_timeout=5.0, interactive=True, auto_approve=False):
        return PromptOrchestrator(
            timeout=timeout,
            permission_timeout=permission_timeout,
            interactive=interactive,
            auto_approve=auto_approve,
            gateway=FakeGateway(),
            transport_factory=lambda base_url: backend,
            prompter=prompter,
        )
    return _make


@pytest.fixture
def strip_ansi():
    """Return a function that removes ANSI escape codes."""
    def _strip(text: str) -> str:
        return ANSI_RE.sub('', text)
    return _strip
