"""Generators - one function per artifact the CLI asks the model for.

Each call runs its own session through a PromptOrchestrator. Guidelines and
models come from configuration unless the caller passes them in.
"""

import asyncio
import os
import re
from dataclasses import dataclass

from ocmt.config import Config, load_config, get_guideline
from ocmt.llm.base import EmptyResponseError, ModelRef, extract_summary, normalize_response
from ocmt.llm.orchestrator import PromptOrchestrator
from ocmt.prompts import PromptBuilder, PromptContext, Commit

DESLOP_FALLBACK_SUMMARY = "Deslop completed with minor cleanup adjustments."

_TITLE = re.compile(r'^\s*TITLE:\s*(.+)$', re.IGNORECASE | re.MULTILINE)
_BODY = re.compile(r'^\s*BODY:\s*\n?', re.IGNORECASE | re.MULTILINE)

_builder = PromptBuilder()


@dataclass
class PRContent:
    title: str
    body: str


def _orchestrator(orchestrator: PromptOrchestrator | None, config: Config) -> PromptOrchestrator:
    return orchestrator or PromptOrchestrator.from_config(config)


def generate_commit_message(
    diff: str,
    context: PromptContext | None = None,
    config: Config | None = None,
    orchestrator: PromptOrchestrator | None = None,
) -> str:
    config = config or load_config()
    prompt = _builder.commit_message(diff, get_guideline("commit"), context)
    return _orchestrator(orchestrator, config).run_sync(
        "oc-commit", prompt.text, config.commit.model, attachments=prompt.attachments,
    )


def generate_branch_name(
    diff: str,
    context: PromptContext | None = None,
    config: Config | None = None,
    orchestrator: PromptOrchestrator | None = None,
) -> str:
    config = config or load_config()
    prompt = _builder.branch_name(diff, get_guideline("branch"), context)
    return _orchestrator(orchestrator, config).run_sync(
        "oc-branch", prompt.text, config.branch_model, attachments=prompt.attachments,
    )


def generate_changelog(
    commits: list[Commit],
    from_ref: str,
    to_ref: str,
    version: str | None = None,
    config: Config | None = None,
    orchestrator: PromptOrchestrator | None = None,
) -> str:
    config = config or load_config()
    prompt = _builder.changelog(commits, from_ref, to_ref, get_guideline("changelog"), version=version)
    return _orchestrator(orchestrator, config).run_sync(
        "oc-changelog", prompt.text, config.changelog.model,
    )


def update_changelog_file(
    existing: str,
    new_entry: str,
    config: Config | None = None,
    orchestrator: PromptOrchestrator | None = None,
) -> str:
    """Merge a new entry into existing changelog content. Returns the whole file."""
    config = config or load_config()
    prompt = _builder.changelog_merge(existing, new_entry)
    return _orchestrator(orchestrator, config).run_sync(
        "oc-changelog-update", prompt.text, config.changelog.model, attachments=prompt.attachments,
    )


def parse_pr_content(text: str) -> PRContent:
    """Split a 'TITLE: ... BODY: ...' answer.

    Without the labels the first line is the title and the rest the body.
    """
    title_match = _TITLE.search(text)
    body_match = _BODY.search(text)

    if title_match:
        title = title_match.group(1).strip()
        if body_match and body_match.start() > title_match.start():
            body = text[body_match.end():]
        else:
            body = text[title_match.end():]
    else:
        first, _, rest = text.strip().partition('\n')
        title, body = first, rest
        if body_match:
            body = text[body_match.end():]

    title = title.strip().strip('"\'').lstrip('#').strip()
    return PRContent(title=title, body=normalize_response(body))


def generate_pr_content(
    diff: str,
    commits: list[Commit],
    source_branch: str,
    target_branch: str,
    context: PromptContext | None = None,
    config: Config | None = None,
    orchestrator: PromptOrchestrator | None = None,
) -> PRContent:
    config = config or load_config()
    prompt = _builder.pull_request(diff, commits, source_branch, target_branch, get_guideline("pr"), context)
    text = _orchestrator(orchestrator, config).run_sync(
        "oc-pr", prompt.text, config.pr.model, attachments=prompt.attachments,
    )
    content = parse_pr_content(text)
    if not content.title:
        raise EmptyResponseError(f"No PR title generated by {config.pr.model}")
    return content


async def _deslop(orchestrator: PromptOrchestrator, prompt, model: str, directory: str) -> str | None:
    result = await orchestrator.generate(
        "oc-deslop", prompt.text, ModelRef.parse(model),
        agent="build", directory=directory, attachments=prompt.attachments,
    )
    return extract_summary(normalize_response(result.text))


def run_deslop_edits(
    staged_diff: str,
    base_diff: str = "",
    base_ref: str = "main",
    extra: str | None = None,
    staged_files: list[str] | None = None,
    not_staged_files: list[str] | None = None,
    config: Config | None = None,
    orchestrator: PromptOrchestrator | None = None,
) -> str:
    """Let the model edit staged files in place. Returns its summary.

    The agent works in the current directory. An edit run that ends with no
    text still counts; it gets a stock summary.
    """
    config = config or load_config()
    prompt = _builder.deslop(
        staged_diff, base_diff, base_ref, extra,
        staged_files=staged_files, not_staged_files=not_staged_files,
    )
    summary = asyncio.run(_deslop(_orchestrator(orchestrator, config), prompt, config.deslop_model, os.getcwd()))
    return summary or DESLOP_FALLBACK_SUMMARY
