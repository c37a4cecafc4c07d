"""
ocmt - OpenCode commit tool

AI-generated commit messages, branch names, changelogs and pull requests,
produced through short-lived sessions on an OpenCode backend.
"""

__version__ = "1.0.0"

# Centralized commit types - single source of truth
# Used by: prompts/defaults.py, intent.py, cli (intent picker)
COMMIT_TYPES = {
    'feat': 'A new feature',
    'fix': 'A bug fix',
    'docs': 'Documentation only',
    'style': 'Code style (no logic change)',
    'refactor': 'Code restructuring',
    'perf': 'Performance improvement',
    'test': 'Adding/fixing tests',
    'chore': 'Build/tooling changes',
}

COMMIT_TYPE_NAMES = list(COMMIT_TYPES.keys())

# Intents offered when re-labelling a generated commit/PR title/branch.
# Breaking variants use "!" (feat!: ...)
INTENT_TYPES = COMMIT_TYPE_NAMES + ['feat!', 'fix!']
