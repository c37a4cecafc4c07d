"""LLM Client Package - prompts run through an OpenCode backend."""

from ocmt.llm.base import (
    ErrorKind,
    LLMError,
    BackendNotInstalledError,
    BackendAuthError,
    BackendUnavailableError,
    StreamSubscribeError,
    StreamDisconnectedError,
    StreamInterruptedError,
    RequestError,
    SessionFailedError,
    EmptyResponseError,
    IncompleteResponseError,
    OperationTimeoutError,
    GenerationError,
    ModelRef,
    Attachment,
    StreamResult,
    DEFAULT_PROVIDER,
    DEFAULT_COMMIT_MODEL,
    DEFAULT_CHANGELOG_MODEL,
)
from ocmt.llm.client import BackendTransport, OpencodeClient
from ocmt.llm.gateway import BackendGateway, BackendHandle, get_gateway, resolve_handle, cleanup
from ocmt.llm.orchestrator import PromptOrchestrator, run_prompt

__all__ = [
    "ErrorKind",
    "LLMError",
    "BackendNotInstalledError",
    "BackendAuthError",
    "BackendUnavailableError",
    "StreamSubscribeError",
    "StreamDisconnectedError",
    "StreamInterruptedError",
    "RequestError",
    "SessionFailedError",
    "EmptyResponseError",
    "IncompleteResponseError",
    "OperationTimeoutError",
    "GenerationError",
    "ModelRef",
    "Attachment",
    "StreamResult",
    "DEFAULT_PROVIDER",
    "DEFAULT_COMMIT_MODEL",
    "DEFAULT_CHANGELOG_MODEL",
    "BackendTransport",
    "OpencodeClient",
    "BackendGateway",
    "BackendHandle",
    "get_gateway",
    "resolve_handle",
    "cleanup",
    "PromptOrchestrator",
    "run_prompt",
]
