"""Per-repository history files under ``<repo>/.oc/``.

``changelog.history.json`` remembers where the last changelog stopped so the
next one can start there. ``ai.edits.json`` remembers how the user rewrote
generated text; recent edits go back into prompts as style hints.
"""

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path

from ocmt.config import CONFIG_DIR
from ocmt.git import GitAnalyzer, GitError

logger = logging.getLogger(__name__)

CHANGELOG_HISTORY_FILE = "changelog.history.json"
AI_EDITS_FILE = "ai.edits.json"
MAX_ENTRIES = 50
MAX_SESSION_ENTRIES = 25

EDIT_KINDS = ("branch-name", "commit-message", "pr-title", "pr-body")

PURPOSE_KINDS = {
    "branch": ("branch-name",),
    "commit": ("branch-name", "commit-message"),
    "pr": ("commit-message", "pr-title", "pr-body"),
}

EDIT_HISTORY_HEADER = "User edit history (use this to match the user's preferences):"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _load_entries(path: Path) -> list[dict]:
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
    except (json.JSONDecodeError, OSError) as e:
        logger.debug("ignoring unreadable history %s: %s", path, e)
        return []
    entries = data.get("entries") if isinstance(data, dict) else None
    return [e for e in entries if isinstance(e, dict)] if isinstance(entries, list) else []


def _save_entries(path: Path, entries: list[dict]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"entries": entries}, indent=2), encoding='utf-8')


# ---------------------------------------------------------------------------
# Changelog history
# ---------------------------------------------------------------------------

@dataclass
class ChangelogEntry:
    timestamp: str
    fromRef: str
    toRef: str
    toCommitHash: str
    commitsIncluded: int

    @classmethod
    def from_dict(cls, data: dict) -> 'ChangelogEntry | None':
        try:
            return cls(
                timestamp=str(data["timestamp"]),
                fromRef=str(data["fromRef"]),
                toRef=str(data["toRef"]),
                toCommitHash=str(data["toCommitHash"]),
                commitsIncluded=int(data["commitsIncluded"]),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def describe(self) -> str:
        try:
            when = datetime.fromisoformat(self.timestamp).astimezone().strftime("%b %d, %Y %H:%M")
        except ValueError:
            when = self.timestamp
        return f"{when} ({self.commitsIncluded} commits, {self.fromRef}..{self.toRef})"


class ChangelogHistory:
    """Most recent entry first."""

    def __init__(self, git: GitAnalyzer, root: Path | None = None):
        self.git = git
        self.path = (root or git.repo_root()) / CONFIG_DIR / CHANGELOG_HISTORY_FILE

    def entries(self) -> list[ChangelogEntry]:
        parsed = (ChangelogEntry.from_dict(e) for e in _load_entries(self.path))
        return [e for e in parsed if e is not None]

    def last_entry(self) -> ChangelogEntry | None:
        entries = self.entries()
        return entries[0] if entries else None

    def add(self, from_ref: str, to_ref: str, commits_included: int) -> ChangelogEntry:
        entry = ChangelogEntry(
            timestamp=_now(),
            fromRef=from_ref,
            toRef=to_ref,
            toCommitHash=self.git.commit_hash(to_ref),
            commitsIncluded=commits_included,
        )
        entries = [entry, *self.entries()][:MAX_ENTRIES]
        _save_entries(self.path, [asdict(e) for e in entries])
        return entry

    def commits_since_last(self) -> tuple[ChangelogEntry | None, int]:
        """Last entry and the number of commits made since it.

        (None, 0) when there is no history or its commit is gone.
        """
        last = self.last_entry()
        if last is None:
            return None, 0
        try:
            self.git.commit_hash(last.toCommitHash)
            return last, self.git.commit_count(last.toCommitHash, 'HEAD')
        except (GitError, ValueError):
            return None, 0


# ---------------------------------------------------------------------------
# AI edit history
# ---------------------------------------------------------------------------

def _clip(value: str, max_chars: int) -> str:
    value = value.strip()
    if len(value) <= max_chars:
        return value
    return f"{value[:max_chars]}\n… (truncated)"


def format_edit(entry: dict) -> str:
    max_chars = 800 if entry["kind"] == "pr-body" else 180
    generated = json.dumps(_clip(entry["generated"], max_chars), ensure_ascii=False)
    edited = json.dumps(_clip(entry["edited"], max_chars), ensure_ascii=False)
    return f"- {entry['kind']}: user edited an AI output\n  - AI: {generated}\n  - User: {edited}"


def _same_edit(a: dict, b: dict) -> bool:
    return (a.get("kind"), a.get("generated"), a.get("edited")) == (b.get("kind"), b.get("generated"), b.get("edited"))


class AIEditHistory:
    """Edits persist in the repository file; this process also keeps its own."""

    def __init__(self, path: Path):
        self.path = path
        self.session: list[dict] = []

    @classmethod
    def for_repo(cls, git: GitAnalyzer) -> 'AIEditHistory':
        return cls(git.repo_root() / CONFIG_DIR / AI_EDITS_FILE)

    def record(self, kind: str, generated: str, edited: str) -> None:
        """Remember an edit. Persistence failures never interrupt the caller."""
        if kind not in EDIT_KINDS:
            raise ValueError(f"Unknown edit kind: {kind}")
        generated, edited = generated.strip(), edited.strip()
        if not generated or not edited or generated == edited:
            return

        entry = {"timestamp": _now(), "kind": kind, "generated": generated, "edited": edited}

        if not (self.session and _same_edit(self.session[0], entry)):
            self.session.insert(0, entry)
            del self.session[MAX_SESSION_ENTRIES:]

        try:
            stored = _load_entries(self.path)
            if stored and _same_edit(stored[0], entry):
                return
            _save_entries(self.path, [entry, *stored][:MAX_ENTRIES])
        except OSError as e:
            logger.warning("could not save edit history: %s", e)

    def context(self, purpose: str) -> str | None:
        """Prompt section with recent relevant edits, or None."""
        kinds = PURPOSE_KINDS[purpose]
        relevant: list[dict] = []
        for entry in [*self.session, *_load_entries(self.path)]:
            if entry.get("kind") not in kinds:
                continue
            if not isinstance(entry.get("generated"), str) or not isinstance(entry.get("edited"), str):
                continue
            if any(_same_edit(entry, seen) for seen in relevant):
                continue
            relevant.append(entry)

        if not relevant:
            return None
        limit = 3 if purpose == "pr" else 5
        return "\n".join([EDIT_HISTORY_HEADER, *(format_edit(e) for e in relevant[:limit])])
