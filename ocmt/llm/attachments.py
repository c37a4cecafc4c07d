"""Attachment files - diffs and other large inputs passed as file parts."""

import logging
import os
import re
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path

from ocmt.llm.base import Attachment

logger = logging.getLogger(__name__)

TEMP_PREFIX = "ocmt-opencode-"

_UNSAFE = re.compile(r'[^a-zA-Z0-9._-]')


def sanitize_filename(name: str, fallback: str) -> str:
    base = _UNSAFE.sub('-', os.path.basename(name or "").strip())
    return fallback if base in ("", ".", "..") else base


def _numbered(name: str, n: int) -> str:
    stem, dot, ext = name.rpartition('.')
    return f"{stem}-{n}.{ext}" if dot and stem else f"{name}-{n}"


def unique_names(attachments: list[Attachment]) -> list[str]:
    """Sanitized, collision-free file names in attachment order."""
    used: set[str] = set()
    names = []
    for index, attachment in enumerate(attachments, 1):
        name = sanitize_filename(attachment.filename, f"attachment-{index}.txt")
        n = index
        candidate = name
        while candidate in used:
            candidate = _numbered(name, n)
            n += 1
        used.add(candidate)
        names.append(candidate)
    return names


def file_part(path: Path) -> dict:
    return {
        "type": "file",
        "mime": "text/plain",
        "url": path.resolve().as_uri(),
        "filename": path.name,
    }


@contextmanager
def attachment_files(attachments: list[Attachment] | None):
    """Write attachments to a temp dir and yield their file parts.

    The directory is removed when the block exits, however it exits.
    """
    if not attachments:
        yield []
        return

    temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_PREFIX))
    try:
        parts = []
        for attachment, name in zip(attachments, unique_names(attachments)):
            path = temp_dir / name
            path.write_text(attachment.content, encoding='utf-8')
            parts.append(file_part(path))
        logger.debug("wrote %d attachment(s) to %s", len(parts), temp_dir)
        yield parts
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)
