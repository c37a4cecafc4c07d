"""Prompt Orchestrator - one prompt in, one normalized answer out."""

import asyncio
import logging
from typing import Callable

from ocmt.llm.attachments import attachment_files
from ocmt.llm.base import (
    LLMError, GenerationError, EmptyResponseError, ModelRef, Attachment, StreamResult,
    normalize_response, extract_summary,
)
from ocmt.llm.client import BackendTransport, OpencodeClient
from ocmt.llm.gateway import BackendGateway, get_gateway
from ocmt.llm.permissions import PermissionNegotiator, DEFAULT_PERMISSION_TIMEOUT
from ocmt.llm.session import SessionLifecycle
from ocmt.llm.stream import EventStreamConsumer, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


class PromptOrchestrator:
    """Drives open -> submit -> consume -> close for each call.

    Every call gets its own session and its own HTTP client; only the
    gateway's resolved handle is shared.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        permission_timeout: float = DEFAULT_PERMISSION_TIMEOUT,
        interactive: bool | None = None,
        auto_approve: bool = False,
        gateway: BackendGateway | None = None,
        transport_factory: Callable[[str], BackendTransport] | None = None,
        prompter=None,
    ):
        self.timeout = timeout
        self.permission_timeout = permission_timeout
        self.interactive = interactive
        self.auto_approve = auto_approve
        self.gateway = gateway or get_gateway()
        self.transport_factory = transport_factory or OpencodeClient
        self.prompter = prompter

    @classmethod
    def from_config(cls, config, interactive: bool | None = None) -> 'PromptOrchestrator':
        backend = config.backend
        gateway = get_gateway()
        gateway.startup_timeout = backend.startup_timeout
        gateway.configured_url = backend.url
        return cls(
            timeout=backend.timeout,
            permission_timeout=backend.permission_timeout,
            interactive=interactive,
            auto_approve=backend.auto_approve,
            gateway=gateway,
        )

    async def generate(
        self,
        title: str,
        prompt: str,
        model: ModelRef,
        agent: str | None = None,
        directory: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> StreamResult:
        """Run one session and return its raw result."""
        handle = await asyncio.to_thread(self.gateway.resolve_handle)
        transport = self.transport_factory(handle.base_url)
        try:
            async with SessionLifecycle(transport) as lifecycle:
                try:
                    session = await lifecycle.open(title)
                    with attachment_files(attachments) as file_parts:
                        body = {
                            "model": model.to_dict(),
                            "parts": [{"type": "text", "text": prompt}, *file_parts],
                        }
                        if agent:
                            body["agent"] = agent

                        async def submit():
                            await transport.prompt_async(session.id, body, directory)

                        negotiator = PermissionNegotiator(
                            transport,
                            prompter=self.prompter,
                            timeout=self.permission_timeout,
                            interactive=self.interactive,
                            auto_approve=self.auto_approve,
                        )
                        consumer = EventStreamConsumer(transport, timeout=self.timeout)
                        return await consumer.consume(session.id, negotiator.negotiate, on_subscribed=submit)
                except LLMError as e:
                    raise GenerationError(str(model), e) from e
        finally:
            await transport.aclose()

    async def run(
        self,
        title: str,
        prompt: str,
        model: ModelRef | str,
        agent: str | None = None,
        directory: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> str:
        if not isinstance(model, ModelRef):
            model = ModelRef.parse(model)
        result = await self.generate(title, prompt, model, agent, directory, attachments)
        text = normalize_response(result.text)
        if not text:
            raise EmptyResponseError(f"No response generated by {model}")
        logger.debug("%s: %d chars from %s (message %s)", title, len(text), model, result.message_id)
        return text

    async def run_with_summary(self, title: str, prompt: str, model: ModelRef | str, **kwargs) -> str | None:
        """Run a prompt whose answer ends with a 'SUMMARY:' section."""
        return extract_summary(await self.run(title, prompt, model, **kwargs))

    def run_sync(self, *args, **kwargs) -> str:
        return asyncio.run(self.run(*args, **kwargs))

    def run_with_summary_sync(self, *args, **kwargs) -> str | None:
        return asyncio.run(self.run_with_summary(*args, **kwargs))


def run_prompt(title: str, prompt: str, model: ModelRef | str, **kwargs) -> str:
    """Run one prompt with default settings and return the answer."""
    return PromptOrchestrator().run_sync(title, prompt, model, **kwargs)
