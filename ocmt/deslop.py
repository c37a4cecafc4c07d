"""Deslop - let the model clean up staged changes, then keep or revert them.

Before the model touches anything the worktree and index are recorded with
``git stash create``. That snapshot is what a rejected (or failed) cleanup
is restored from.
"""

import logging

from ocmt.cli.utils import ask_text, confirm, select
from ocmt.config import Config
from ocmt.git import GitAnalyzer, GitError
from ocmt.llm.base import LLMError
from ocmt.llm.generators import run_deslop_edits, DESLOP_FALLBACK_SUMMARY
from ocmt.output import Spinner, dim, print_info, print_step, print_success, print_warning

logger = logging.getLogger(__name__)

CONTINUE = "continue"
UPDATED = "updated"
ABORT = "abort"


def base_diff(git: GitAnalyzer) -> tuple[str, str]:
    """(ref, diff) of HEAD against main, else master, else nothing."""
    for ref in ('main', 'master'):
        try:
            return ref, git.diff_between(ref, 'HEAD')
        except GitError:
            continue
    return 'main', ''


class DeslopFlow:

    def __init__(self, git: GitAnalyzer, config: Config, generate=run_deslop_edits):
        self.git = git
        self.config = config
        self.generate = generate

    def should_run(self, yes: bool, force: bool = False) -> bool | None:
        if force:
            return True
        if yes:
            return self.config.commit.auto_deslop
        return confirm("Deslop staged changes?", default=self.config.commit.auto_deslop)

    def run(self, staged_diff: str | None = None, yes: bool = False, extra: str | None = None,
            force: bool = False) -> str:
        decision = self.should_run(yes, force)
        if decision is None:
            return ABORT
        if not decision:
            return CONTINUE

        staged_diff = staged_diff if staged_diff is not None else self.git.get_staged_diff()
        if not staged_diff:
            print_info(dim("No staged diff to deslop"))
            return CONTINUE

        extra = (extra or "").strip() or None
        if not yes and extra is None:
            answer = ask_text("Extra deslop instructions or exclusions (Enter to skip):")
            if answer is None:
                return ABORT
            extra = answer.strip() or None

        status = self.git.get_status()
        staged = list(status.staged)
        not_staged = list(dict.fromkeys(
            [f for f in status.unstaged if f not in staged] + status.untracked
        ))
        base_ref, base = base_diff(self.git)

        snapshot = self.git.take_snapshot()
        logger.debug("deslop snapshot %s", snapshot)
        try:
            with Spinner("Deslopping staged changes"):
                summary = self.generate(
                    staged_diff, base, base_ref, extra,
                    staged_files=staged, not_staged_files=not_staged, config=self.config,
                )
                self.git.stage_files(staged)
                updated_diff = self.git.get_staged_diff()
        except (LLMError, GitError, KeyboardInterrupt):
            # Partial edits may be on disk
            self.git.restore_snapshot(snapshot)
            raise

        if updated_diff == staged_diff:
            print_success("No deslop changes needed")
            print_step("Deslop", summary or "No deslop changes were required.")
            return CONTINUE

        print_success("Deslop applied")
        if yes:
            print_step("Deslop", summary or DESLOP_FALLBACK_SUMMARY)
            return UPDATED

        if not self.git.difftool(snapshot):
            print_warning("git difftool failed. Review manually if needed.")

        action = select("Keep deslop changes?", [
            ("accept", "Accept and keep changes"),
            ("reject", "Reject and revert deslop changes"),
        ])
        if action is None:
            self.git.restore_snapshot(snapshot)
            return ABORT
        if action == "reject":
            self.git.restore_snapshot(snapshot)
            print_info(dim("Deslop changes reverted"))
            return CONTINUE

        print_step("Deslop", summary or DESLOP_FALLBACK_SUMMARY)
        return UPDATED
