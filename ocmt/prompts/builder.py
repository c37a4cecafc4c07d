"""Prompt Builder - Construct prompts for each generated artifact.

Large inputs (diffs, existing changelogs) travel as attached files rather
than inline text; the prompt refers to them by file name.
"""

from dataclasses import dataclass, field
from datetime import date

from ocmt.llm.base import Attachment

STAGED_DIFF_FILE = "staged.diff"
BASE_DIFF_FILE = "base.diff"
BRANCH_DIFF_FILE = "branch.diff"
EXISTING_CHANGELOG_FILE = "CHANGELOG.md"
NEW_ENTRY_FILE = "new-entry.md"


@dataclass
class Prompt:
    """Prompt text plus the files it refers to."""
    text: str
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class PromptContext:
    """Optional context that shapes a prompt."""
    hint: str | None = None
    edit_history: str | None = None


@dataclass
class Commit:
    hash: str
    message: str


class PromptBuilder:
    """Constructs prompts for commit messages, branches, changelogs, PRs and deslop."""

    def commit_message(self, diff: str, guideline: str, context: PromptContext | None = None) -> Prompt:
        context = context or PromptContext()
        sections = [
            guideline.strip(),
            "---",
            f"Generate a commit message for the staged changes in the attached file `{STAGED_DIFF_FILE}`.",
            self._build_history_section(context),
            self._build_hint_section(context),
        ]
        return Prompt(
            text="\n\n".join(filter(None, sections)),
            attachments=[Attachment(STAGED_DIFF_FILE, diff)],
        )

    def branch_name(self, diff: str, guideline: str, context: PromptContext | None = None) -> Prompt:
        context = context or PromptContext()
        sections = [
            guideline.strip(),
            "---",
            f"Generate a git branch name for the changes in the attached file `{STAGED_DIFF_FILE}`.\n"
            "Return only the branch name.",
            self._build_history_section(context),
            self._build_hint_section(context),
        ]
        return Prompt(
            text="\n\n".join(filter(None, sections)),
            attachments=[Attachment(STAGED_DIFF_FILE, diff)],
        )

    def changelog(
        self,
        commits: list[Commit],
        from_ref: str,
        to_ref: str,
        guideline: str,
        version: str | None = None,
        today: date | None = None,
    ) -> Prompt:
        commits_list = "\n".join(f"- {c.hash}: {c.message}" for c in commits)
        sections = [
            guideline.strip(),
            "---",
            f"Generate a changelog for the following commits (from {from_ref} to {to_ref}).",
            self._build_version_section(version, today or date.today()),
            commits_list,
        ]
        return Prompt(text="\n\n".join(filter(None, sections)))

    def _build_version_section(self, version: str | None, today: date) -> str:
        if version:
            return (
                f'IMPORTANT: A version bump to {version} was detected. Use "[{version}]" as the '
                f"version header with today's date ({today.isoformat()}), NOT \"[Unreleased]\"."
            )
        return 'Use "[Unreleased]" as the version header since no version bump was detected.'

    def changelog_merge(self, existing: str, new_entry: str) -> Prompt:
        text = f"""You are updating a changelog file. Merge the new entry in `{NEW_ENTRY_FILE}` into the existing file `{EXISTING_CHANGELOG_FILE}`.

Rules:
1. Preserve the existing file structure and header
2. Put the new entry in the correct position (newest entries at the top, after the header)
3. Do not duplicate entries; if similar entries exist, keep the most detailed version
4. Match the formatting of the existing file
5. Keep the "Keep a Changelog" format if the file uses it
6. If there is an existing [Unreleased] section, merge into it or replace it with the new content
7. Return ONLY the complete updated file content, no explanations"""
        return Prompt(
            text=text,
            attachments=[
                Attachment(EXISTING_CHANGELOG_FILE, existing),
                Attachment(NEW_ENTRY_FILE, new_entry),
            ],
        )

    def pull_request(
        self,
        diff: str,
        commits: list[Commit],
        source_branch: str,
        target_branch: str,
        guideline: str,
        context: PromptContext | None = None,
    ) -> Prompt:
        context = context or PromptContext()
        commits_list = "\n".join(f"- {c.hash}: {c.message}" for c in commits) or "(no commits)"
        sections = [
            guideline.strip(),
            "---",
            f"Generate a pull request title and body for merging `{source_branch}` into `{target_branch}`.\n"
            f"The full diff is in the attached file `{BRANCH_DIFF_FILE}`.",
            f"Commits:\n{commits_list}",
            self._build_history_section(context),
            self._build_hint_section(context),
            "Respond with TITLE: and BODY: exactly as described above.",
        ]
        return Prompt(
            text="\n\n".join(filter(None, sections)),
            attachments=[Attachment(BRANCH_DIFF_FILE, diff)],
        )

    def deslop(
        self,
        staged_diff: str,
        base_diff: str = "",
        base_ref: str = "main",
        extra: str | None = None,
        staged_files: list[str] | None = None,
        not_staged_files: list[str] | None = None,
    ) -> Prompt:
        sections = [
            self._build_deslop_rules(),
            self._build_file_list("Staged files", staged_files),
            self._build_file_list("Not staged files", not_staged_files),
            f"The diff against {base_ref} is in `{BASE_DIFF_FILE}`. "
            f"The staged diff to clean up is in `{STAGED_DIFF_FILE}`.",
        ]
        if extra and extra.strip():
            sections.append(f"Additional constraints from the user:\n{extra.strip()}")
        return Prompt(
            text="\n\n".join(filter(None, sections)),
            attachments=[
                Attachment(BASE_DIFF_FILE, base_diff),
                Attachment(STAGED_DIFF_FILE, staged_diff),
            ],
        )

    def _build_deslop_rules(self) -> str:
        return """# Remove AI code slop

Edit files directly using the available tools. Do not output a patch. Apply changes in place.

Rules:
- Only edit files listed under "Staged files"
- Do not edit files listed under "Not staged files"
- Do not edit any file that is not staged
- Do not create new files
- Remove AI-generated slop (unnecessary comments, excessive defensive code, inconsistent style)
- Keep changes minimal and consistent with the codebase

Respond with:
SUMMARY: <1-3 sentences>

If no changes are needed, do not edit any files and respond with:
SUMMARY: No changes required."""

    def _build_file_list(self, title: str, files: list[str] | None) -> str:
        if not files:
            return ""
        return f"{title}:\n" + "\n".join(f"- {f}" for f in files)

    def _build_history_section(self, context: PromptContext) -> str:
        return context.edit_history or ""

    def _build_hint_section(self, context: PromptContext) -> str:
        if not context.hint:
            return ""
        return f"Additional context: {context.hint}"
