"""Changelog file persistence."""

import logging
import re
from pathlib import Path

from ocmt.llm.base import LLMError

logger = logging.getLogger(__name__)

CHANGELOG_HEADER = """# Changelog

All notable changes to this project will be documented in this file.

The format is based on [Keep a Changelog](https://keepachangelog.com/en/1.0.0/),
and this project adheres to [Semantic Versioning](https://semver.org/spec/v2.0.0.html)."""

_TITLE_LINE = re.compile(r'^#\s+Changelog\s*\n', re.IGNORECASE)
_OPEN_FENCE = re.compile(r'^```(?:markdown|md)?[ \t]*\n?', re.IGNORECASE)
_CLOSE_FENCE = re.compile(r'\n?```\s*$')


def strip_fences(content: str) -> str:
    content = content.strip()
    content = _OPEN_FENCE.sub('', content)
    return _CLOSE_FENCE.sub('', content).strip()


def insert_entry(existing: str, entry: str) -> str:
    """New entry after a '# Changelog' title, or at the very top without one."""
    match = _TITLE_LINE.match(existing)
    if match:
        return f"{existing[:match.end()]}\n{entry}\n{existing[match.end():]}"
    return f"{entry}\n\n{existing}"


def new_changelog(entry: str) -> str:
    return f"{CHANGELOG_HEADER}\n\n{entry}\n"


def save_changelog(path: Path, content: str, merge=None) -> Path:
    """Write an entry to the changelog at path.

    merge(existing, entry) -> full file text, when given, is tried first for
    existing files; if it fails the entry is inserted by hand.
    """
    entry = strip_fences(content)

    if not path.exists():
        path.write_text(new_changelog(entry), encoding='utf-8')
        return path

    existing = path.read_text(encoding='utf-8')
    if merge is not None:
        try:
            merged = strip_fences(merge(existing, entry))
        except LLMError as e:
            logger.warning("changelog merge failed, inserting entry instead: %s", e)
        else:
            if merged:
                path.write_text(merged + "\n", encoding='utf-8')
                return path

    path.write_text(insert_entry(existing, entry), encoding='utf-8')
    return path
