"""Built-in guideline texts.

Written to ~/.oc/<name>.md on first use; users edit those copies (or add a
project-level .oc/<name>.md) to change how prompts read.
"""

from ocmt import COMMIT_TYPES

_TYPE_LINES = "\n".join(f"- `{name}`: {desc}" for name, desc in COMMIT_TYPES.items())

COMMIT_GUIDELINE = f"""# Commit Message Guidelines

Generate commit messages following the Conventional Commits specification.

## Format

```
<type>: <description>

[optional body]
```

## Types

{_TYPE_LINES}

## Rules

1. Use lowercase for the type
2. No scope (use `feat:` not `feat(api):`)
3. Use imperative mood in the description ("add" not "added")
4. Keep the first line under 72 characters
5. Do not end the description with a period
6. Only return the commit message, no explanations or markdown formatting
"""

BRANCH_GUIDELINE = """# Branch Name Guidelines

Generate a concise git branch name for the provided diff.

## Rules

1. Use lowercase letters
2. Use hyphens to separate words
3. Use a prefix like "feat/", "fix/", "docs/", "refactor/", or "chore/"
4. No spaces, quotes, or markdown
5. Keep it under 40 characters
6. Be specific but very concise
7. Return ONLY the branch name, no explanations and no markdown formatting
"""

CHANGELOG_GUIDELINE = """# Changelog Guidelines

Generate a changelog from the provided commits.

## Format

Use the "Keep a Changelog" format (https://keepachangelog.com/).

```markdown
## [Version] - YYYY-MM-DD

### Added
- New features

### Changed
- Changes in existing functionality

### Deprecated
- Soon-to-be removed features

### Removed
- Removed features

### Fixed
- Bug fixes

### Security
- Vulnerability fixes
```

## Rules

1. Group commits by type (feat -> Added, fix -> Fixed, etc.)
2. Write in past tense ("Added" not "Add")
3. Include the short commit hash in parentheses at the end of each entry
4. Keep descriptions concise but informative
5. Skip empty sections
6. Only return the changelog content, no explanations
"""

PR_GUIDELINE = """# Pull Request Guidelines

Generate a pull request title and description from the provided diff and commits.

## Format

Return the response in exactly this format:

TITLE: <concise PR title>

BODY:
<PR description in markdown>

## Title Rules

1. Use imperative mood ("Add feature" not "Added feature")
2. Keep under 72 characters
3. Be specific but concise
4. No period at the end

## Body Structure

```markdown
## Summary

Brief description of what this PR does.

## Changes

- Bullet points of key changes

## Testing

How to test the changes (if applicable)
```
"""

DEFAULT_GUIDELINES = {
    "commit": COMMIT_GUIDELINE,
    "branch": BRANCH_GUIDELINE,
    "changelog": CHANGELOG_GUIDELINE,
    "pr": PR_GUIDELINE,
}
