"""LLM Base Classes and Shared Code"""

import re
from dataclasses import dataclass
from enum import Enum


DEFAULT_PROVIDER = "opencode"
DEFAULT_COMMIT_MODEL = "opencode/gpt-5-nano"
DEFAULT_CHANGELOG_MODEL = "opencode/claude-sonnet-4-5"


class ErrorKind(Enum):
    """Coarse category of a backend failure."""
    ENVIRONMENT = "environment"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    TIMEOUT = "timeout"


class LLMError(Exception):
    """Raised when LLM operations fail."""
    kind: ErrorKind = ErrorKind.PROTOCOL


# Environment: the backend cannot be reached or used at all

class BackendNotInstalledError(LLMError):
    kind = ErrorKind.ENVIRONMENT

    def __init__(self, message: str | None = None):
        super().__init__(message or (
            "OpenCode CLI is not installed. Install it with:\n"
            "  npm install -g opencode-ai\n"
            "  brew install sst/tap/opencode"
        ))


class BackendAuthError(LLMError):
    kind = ErrorKind.ENVIRONMENT

    def __init__(self, message: str | None = None):
        super().__init__(message or "Not authenticated with OpenCode. Run: opencode auth login")


class BackendUnavailableError(LLMError):
    kind = ErrorKind.ENVIRONMENT


# Transport

class StreamSubscribeError(LLMError):
    kind = ErrorKind.TRANSPORT


class StreamDisconnectedError(LLMError):
    kind = ErrorKind.TRANSPORT


class StreamInterruptedError(LLMError):
    """The event feed dropped mid-stream. Handled by the stream consumer."""
    kind = ErrorKind.TRANSPORT


class RequestError(LLMError):
    kind = ErrorKind.TRANSPORT


# Protocol

class SessionFailedError(LLMError):
    kind = ErrorKind.PROTOCOL

    def __init__(self, name: str, message: str):
        self.name = name
        self.message = message
        super().__init__(f"{name}: {message}" if message else name)


class EmptyResponseError(LLMError):
    kind = ErrorKind.PROTOCOL


class IncompleteResponseError(LLMError):
    kind = ErrorKind.PROTOCOL


# Timeout

class OperationTimeoutError(LLMError):
    kind = ErrorKind.TIMEOUT

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request timed out after {timeout:g}s. Increase backend.timeout "
            f"in .oc/config.json or set OC_TIMEOUT."
        )


class GenerationError(LLMError):
    """Wraps any failure of one orchestration call, naming the model."""

    def __init__(self, model: str, cause: LLMError):
        self.model = model
        self.cause = cause
        self.kind = cause.kind
        super().__init__(f"Model request failed ({model}): {cause}")


@dataclass(frozen=True)
class ModelRef:
    """A model addressed as provider/model."""
    provider_id: str
    model_id: str

    @classmethod
    def parse(cls, value: str) -> 'ModelRef':
        """Parse 'provider/model'. A bare name uses the opencode provider."""
        text = (value or "").strip()
        if not text:
            raise ValueError("Invalid model string: expected 'provider/model' with non-empty parts")

        if '/' not in text:
            return cls(DEFAULT_PROVIDER, text)

        provider, model = (s.strip() for s in text.split('/', 1))
        if not provider or not model:
            raise ValueError("Invalid model string: expected 'provider/model' with non-empty parts")
        return cls(provider, model)

    def to_dict(self) -> dict:
        return {"providerID": self.provider_id, "modelID": self.model_id}

    def __str__(self) -> str:
        return f"{self.provider_id}/{self.model_id}"


@dataclass
class StreamResult:
    """Final assistant output of one session."""
    text: str
    message_id: str


@dataclass
class Attachment:
    """A text file handed to the backend alongside a prompt."""
    filename: str
    content: str


_LEADING_FENCE = re.compile(r'^```[^\n]*\n')
_TRAILING_FENCE = re.compile(r'\n?```\s*$')


def normalize_response(text: str) -> str:
    """Strip a wrapping fenced code block from model output."""
    text = text.strip()
    text = _LEADING_FENCE.sub('', text, count=1)
    text = _TRAILING_FENCE.sub('', text, count=1)
    return text.strip()


_SUMMARY = re.compile(r'SUMMARY:\s*(.*)$', re.IGNORECASE | re.DOTALL)


def extract_summary(text: str) -> str | None:
    """Return the text after 'SUMMARY:', or the whole text if unlabeled."""
    match = _SUMMARY.search(text)
    if match:
        return match.group(1).strip() or None
    return text.strip() or None
