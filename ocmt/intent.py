"""Conventional-commit intent in commit messages, PR titles and branch names."""

import re

from ocmt import COMMIT_TYPES, INTENT_TYPES

COMMIT_INTENT = re.compile(r'^(\w+!?)(\([^)]*\))?:\s*')
BRANCH_INTENT = re.compile(r'^(\w+!?)/')

INTENT_HINTS = {
    **COMMIT_TYPES,
    "feat!": "Breaking feature",
    "fix!": "Breaking fix",
}


def detect_commit_intent(message: str) -> str | None:
    """'fix(auth): bug' -> 'fix'"""
    match = COMMIT_INTENT.match(message)
    return match.group(1) if match else None


def replace_commit_intent(message: str, intent: str) -> str:
    """Swap the type of a commit message, keeping any scope. Prepends if absent."""
    match = COMMIT_INTENT.match(message)
    if match:
        scope = match.group(2) or ""
        return f"{intent}{scope}: {message[match.end():]}"
    return f"{intent}: {message}"


def detect_branch_intent(branch: str) -> str | None:
    """'feat/add-login' -> 'feat'"""
    match = BRANCH_INTENT.match(branch)
    return match.group(1) if match else None


def replace_branch_intent(branch: str, intent: str) -> str:
    match = BRANCH_INTENT.match(branch)
    if match:
        return f"{intent}/{branch[match.end():]}"
    return f"{intent}/{branch}"


def default_intent(current: str | None) -> str:
    return current if current in INTENT_TYPES else "feat"
