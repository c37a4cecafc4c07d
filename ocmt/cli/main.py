"""CLI Main Entry Point"""

import logging
import sys

from ocmt.branch import BranchFlow, ABORT as BRANCH_ABORT, select_intent
from ocmt.config import ConfigError, load_config
from ocmt.deslop import DeslopFlow, ABORT as DESLOP_ABORT, UPDATED
from ocmt.git import GitAnalyzer, GitError
from ocmt.history import AIEditHistory
from ocmt.intent import detect_commit_intent, replace_commit_intent
from ocmt.llm import LLMError, cleanup
from ocmt.llm.generators import generate_commit_message
from ocmt.output import Spinner, dim, print_error, print_info, print_rule_block, print_success, colorize_commit_type
from ocmt.pr import PRFlow
from ocmt.prompts import PromptContext

from ocmt.cli.args import parse_args
from ocmt.cli.commands import (
    display_config, run_install_completion, run_changelog, run_release, run_pr, run_deslop, run_branch,
    ensure_staged, push_branch,
)
from ocmt.cli.utils import confirm, edit_message, select

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='ocmt: %(levelname)s %(message)s',
        stream=sys.stderr,
        force=True,
    )
    # Request lines from httpx are noise even in verbose mode
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)


def _display_message(message):
    """Display commit message between rules with a colored type."""
    print_rule_block(colorize_commit_type(message))


def _generate_message(diff, config, edits, hint, message="Generating commit message"):
    context = PromptContext(hint=hint, edit_history=edits.context("commit"))
    with Spinner(message):
        return generate_commit_message(diff, context=context, config=config)


def _review_message(message, diff, config, edits, hint):
    """Commit / intent / edit / regenerate loop. Returns the final message or None."""
    generated = message
    while True:
        _display_message(message)
        action = select("What would you like to do?", [
            ("commit", "Commit with this message"),
            ("intent", "Change intent"),
            ("edit", "Edit message"),
            ("regenerate", "Regenerate message"),
            ("cancel", "Cancel"),
        ], default="commit")
        if action in (None, "cancel"):
            return None
        if action == "commit":
            edits.record("commit-message", generated, message)
            return message
        if action == "intent":
            intent = select_intent(detect_commit_intent(message))
            if intent:
                message = replace_commit_intent(message, intent)
        elif action == "edit":
            edited = edit_message(message)
            if edited:
                message = edited
        elif action == "regenerate":
            generated = message = _generate_message(diff, config, edits, hint, "Regenerating commit message")


def _generate_commit_flow(args, config):
    """Main commit flow: stage, deslop, branch, message, commit, push.

    Returns:
        int: Exit code
    """
    git = GitAnalyzer()
    yes = args.yes
    edits = AIEditHistory.for_repo(git)

    if ensure_staged(git, yes, stage_all=args.all or config.commit.auto_stage_all) is None:
        return 0

    diff = git.get_staged_diff()
    if not diff:
        print_info("No staged changes. Run 'git add' first.")
        return 0

    if not args.no_deslop:
        result = DeslopFlow(git, config).run(diff, yes=yes)
        if result == DESLOP_ABORT:
            print_info("Aborted")
            return 0
        if result == UPDATED:
            diff = git.get_staged_diff()
            if not diff:
                print_info("Nothing left to commit after deslop")
                return 0

    print_info(dim(f"Diff: {len(diff.splitlines())} lines"))

    branch_flow = BranchFlow(git, config, edits=edits)
    if branch_flow.run(diff, yes=yes, branch_name=args.branch, skip=args.no_branch) == BRANCH_ABORT:
        print_info("Aborted")
        return 0

    message = args.message or _generate_message(diff, config, edits, args.hint)
    if yes:
        _display_message(message)
    else:
        message = _review_message(message, diff, config, edits, args.hint)
        if message is None:
            print_info("Aborted")
            return 0

    with Spinner("Committing"):
        output = git.commit(message)
    print_success("Committed successfully!")
    if output:
        print(dim(output))

    if args.push:
        should_push = True
    elif yes:
        should_push = config.commit.auto_push
    else:
        should_push = bool(confirm("Push to remote?", default=config.commit.auto_push))
    if should_push and push_branch(git):
        PRFlow(git, config, edits=edits).run_after_commit(yes=yes)

    return 0


COMMANDS = {
    'commit': _generate_commit_flow,
    'changelog': run_changelog,
    'release': run_release,
    'pr': run_pr,
    'deslop': run_deslop,
    'branch': run_branch,
    'config': lambda args, config: display_config(config),
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    if args.install_completion:
        return run_install_completion()

    _configure_logging(getattr(args, 'verbose', False))
    try:
        config = load_config()
        if config.general.verbose:
            _configure_logging(True)
        return COMMANDS[args.command or 'commit'](args, config)
    except (LLMError, GitError, ConfigError) as e:
        print_error(str(e))
        return 1
    except KeyboardInterrupt:
        print()
        print_info("Aborted")
        return 0
    finally:
        cleanup()


def run() -> None:
    sys.exit(main())
