"""CLI Commands"""

import os
import re
import sys

from ocmt.branch import BranchFlow, ABORT as BRANCH_ABORT
from ocmt.changelog import save_changelog
from ocmt.config import Config, get_config_sources, get_env_overrides, get_manager
from ocmt.deslop import DeslopFlow, ABORT as DESLOP_ABORT, UPDATED
from ocmt.git import GitAnalyzer, GitStatus, GitError
from ocmt.history import AIEditHistory, ChangelogHistory
from ocmt.llm.generators import generate_changelog, generate_commit_message, update_changelog_file
from ocmt.output import (
    Spinner, bold, dim, info, success, warning, print_info, print_step, print_success, print_warning,
    print_error,
)
from ocmt.pr import PRFlow, CREATED, BROWSER, SKIPPED
from ocmt.cli.utils import ask_text, confirm, copy_to_clipboard, select

_SEMVER = re.compile(r'^\d+\.\d+\.\d+')
MAX_LISTED = 5


def display_config(config: Config) -> int:
    """Display current configuration and where it came from."""
    manager = get_manager()
    print(f"\n{bold('Current Configuration')}\n")

    sources = get_config_sources()
    if sources:
        for path in sources:
            print(f"  {dim('Loaded from:')} {path}")
    else:
        print(f"  {dim('Loaded from:')} defaults")

    overrides = get_env_overrides()
    if overrides:
        print(f"  {dim('Environment overrides:')}")
        for name, value in overrides.items():
            print(f"    {name}={value}")

    for section, values in config.to_dict().items():
        print(f"\n  {bold(section + ':')}")
        for key, value in values.items():
            shown = 'default' if value is None else str(value).lower() if isinstance(value, bool) else str(value)
            print(f"    {key + ':':<36}{info(shown)}")

    print(f"\n  {dim('Config locations:')}")
    print(f"    Global:  {manager.global_dir}")
    project = manager.project_dir
    print(f"    Project: {project if project else dim('(not in a git repository)')}")
    print(f"\n  {dim('Guidelines: commit.md, branch.md, changelog.md, pr.md in either location')}\n")
    return 0


def run_install_completion() -> int:
    """Install shell tab completion."""
    shell = os.environ.get('SHELL', '')

    print(f"\n{bold('Tab Completion Setup')}\n")

    if 'zsh' in shell or 'bash' in shell:
        rc_file = os.path.expanduser('~/.zshrc' if 'zsh' in shell else '~/.bashrc')
        print(f"Add this line to {dim(rc_file)}:\n")
        print('  eval "$(register-python-argcomplete oc)"\n')
        print(f"Then run: {dim('source ' + rc_file)}")
    elif sys.platform == 'win32':
        print("For PowerShell, run:\n")
        print("  register-python-argcomplete --shell powershell oc | Out-String | Invoke-Expression\n")
        print("To make it permanent, add to your $PROFILE:\n")
        print("  register-python-argcomplete --shell powershell oc | Out-String | Invoke-Expression")
    else:
        print("Run one of these based on your shell:\n")
        print(f"  {dim('# Bash/Zsh')}")
        print('  eval "$(register-python-argcomplete oc)"\n')
        print(f"  {dim('# PowerShell')}")
        print("  register-python-argcomplete --shell powershell oc | Out-String | Invoke-Expression\n")
        print(f"  {dim('# Fish')}")
        print("  register-python-argcomplete --shell fish oc | source")

    print(f"\n{dim('After setup, press TAB to autocomplete commands and flags.')}")
    return 0


def _list_files(title: str, files: list[str], marker: str) -> None:
    shown = files[:MAX_LISTED]
    lines = [f"  {marker} {f}" for f in shown]
    if len(files) > len(shown):
        lines.append(dim(f"  ...and {len(files) - len(shown)} more"))
    print(f"{bold(title)}\n" + "\n".join(lines))


def ensure_staged(git: GitAnalyzer, yes: bool, stage_all: bool = False) -> GitStatus | None:
    """Stage per flags or by asking. None means stop (nothing to do or user declined)."""
    status = git.get_status()
    if stage_all and status.has_changes:
        with Spinner("Staging all changes"):
            git.stage_all()
        status = git.get_status()

    if not status.staged:
        if not status.unstaged and not status.untracked:
            print_info(warning("Nothing to commit, working tree clean"))
            return None
        print_warning("No staged changes found")
        _list_files("Unstaged/Untracked files:", status.unstaged + status.untracked, dim('-'))
        if not yes and not confirm("Stage all changes?", default=True):
            print_info("Aborted. Stage changes with `git add` first.")
            return None
        with Spinner("Staging all changes"):
            git.stage_all()
        status = git.get_status()

    _list_files("Staged changes:", status.staged, success('+'))
    return status


def push_branch(git: GitAnalyzer) -> bool:
    try:
        with Spinner("Pushing to remote"):
            git.push(set_upstream=not git.has_upstream())
    except GitError as e:
        print_warning(f"Push failed: {e}")
        return False
    print_success("Pushed to remote")
    return True


# ---------------------------------------------------------------------------
# changelog
# ---------------------------------------------------------------------------

def _choose_starting_point(git: GitAnalyzer, history: ChangelogHistory) -> str | None:
    options = []
    last, count = history.commits_since_last()
    if last and count:
        options.append((last.toCommitHash, f"Since last changelog {dim(last.describe())}"))
    for tag in git.releases()[:10]:
        options.append((tag, f"{tag} {dim('(release)')}"))
    for c in git.log(limit=20):
        options.append((c.hash, f"{warning(c.hash)} {c.message}"))

    if not options:
        print_warning("No releases or commits found")
        return None
    return select("Select starting point for changelog:", options)


def _changelog_path(git: GitAnalyzer, config: Config):
    return git.repo_root() / config.changelog.output_file


def _save(git: GitAnalyzer, config: Config, content: str, merge: bool = True):
    path = _changelog_path(git, config)
    merger = (lambda existing, entry: update_changelog_file(existing, entry, config=config)) if merge else None
    verb = "Updating" if path.exists() else "Creating"
    with Spinner(f"{verb} {path.name}"):
        save_changelog(path, content, merge=merger)
    print_success(f"Saved {path}")
    return path


def run_changelog(args, config: Config) -> int:
    git = GitAnalyzer()
    history = ChangelogHistory(git)
    from_ref = args.from_ref or _choose_starting_point(git, history)
    if not from_ref:
        return 0
    to_ref = args.to_ref

    commits = git.commits_between(from_ref, to_ref)
    if not commits:
        print_warning("No commits found in the specified range")
        return 0
    print(f"{bold(f'Commits to include ({len(commits)}):')}")
    for c in commits:
        print(dim(f"  {c.hash} {c.message}"))

    bump = git.detect_version_bump(from_ref, to_ref)
    if bump:
        print_info(f"Version bump detected: {info(bump.new_version)} ({bump.file})")

    with Spinner("Generating changelog"):
        changelog = generate_changelog(
            commits, from_ref, to_ref, version=bump.new_version if bump else None, config=config,
        )
    print_step("Generated Changelog:", changelog)

    if args.copy:
        _copy(changelog)
    action = "save" if args.save or config.changelog.auto_save else None
    if action is None and not args.copy:
        label = "Update" if _changelog_path(git, config).exists() else "Create"
        action = select("What would you like to do?", [
            ("save", f"{label} {config.changelog.output_file}"),
            ("copy", "Copy to clipboard"),
            ("done", "Done"),
        ], default="save")
    if action == "copy":
        _copy(changelog)
    elif action == "save":
        _save(git, config, changelog)
        history.add(from_ref, to_ref, len(commits))
    return 0


def _copy(text: str) -> None:
    copied, reason = copy_to_clipboard(text)
    if copied:
        print_success("Copied to clipboard!")
    else:
        print_warning(f"Could not copy to clipboard{': ' + reason if reason else ''}")


# ---------------------------------------------------------------------------
# release
# ---------------------------------------------------------------------------

def _release_commit(git: GitAnalyzer, config: Config, yes: bool) -> bool | None:
    """Step 1. True if committed, False if nothing to commit, None to stop."""
    if not git.get_status().has_changes:
        print_info(dim("No changes to commit"))
        return False
    if ensure_staged(git, yes) is None:
        return None
    diff = git.get_staged_diff()
    if not diff:
        return False
    with Spinner("Generating commit message"):
        message = generate_commit_message(diff, config=config)
    print_step("Commit message:", info(f'"{message}"'))
    if not yes and not confirm("Commit with this message?", default=True):
        return None
    git.commit(message)
    print_success("Changes committed")
    return True


def _release_start(git: GitAnalyzer) -> str:
    releases = git.releases()
    if releases:
        print_info(f"Using latest tag {info(releases[0])} as starting point")
        return releases[0]
    print_warning("No tags found, using first commit")
    return git.first_commit()


def _validate_version(value: str) -> str | None:
    if not value.strip():
        return "Version is required"
    if not _SEMVER.match(value):
        return "Invalid semver format (X.Y.Z)"
    return None


def _release_version(git: GitAnalyzer, from_ref: str, yes: bool) -> str | None:
    bump = git.detect_version_bump(from_ref, 'HEAD')
    if bump:
        print_success(f"Version detected: {info(bump.new_version)}")
        return bump.new_version
    current = git.current_version()
    if yes:
        return current
    return ask_text("Enter version for this release:", initial=current or "", validate=_validate_version)


def run_release(args, config: Config) -> int:
    git = GitAnalyzer()
    yes = args.yes

    print(f"\n{bold('Step 1: Commit changes')}")
    if _release_commit(git, config, yes) is None:
        print_info("Aborted")
        return 0

    print(f"\n{bold('Step 2: Generate changelog')}")
    try:
        from_ref = args.from_ref or _release_start(git)
    except GitError:
        print_error("Could not determine starting point. Use --from to specify.")
        return 1

    commits = git.commits_between(from_ref, 'HEAD')
    if not commits:
        print_info(dim("No commits since last release"))
        return 0
    print_info(f"Found {len(commits)} commits since {info(from_ref)}")

    version = args.release_version or _release_version(git, from_ref, yes)
    if not version:
        print_error("Version is required for release")
        return 1
    prefix = config.release.tag_prefix
    tag = version if version.startswith(prefix) else f"{prefix}{version}"
    print_step("Release version:", info(version))

    with Spinner("Generating changelog"):
        changelog = generate_changelog(commits, from_ref, 'HEAD', version=version, config=config)
    preview = changelog[:500] + ("..." if len(changelog) > 500 else "")
    print_step("Changelog preview:", dim(preview))

    path = _save(git, config, changelog)
    git.stage_files([str(path)])
    git.commit(f"chore(release): {tag}")
    print_success(f"Committed changelog for {tag}")
    ChangelogHistory(git).add(from_ref, 'HEAD', len(commits))

    print(f"\n{bold('Step 3: Create tag')}")
    should_tag = _decide(args.tag, config.release.auto_tag, yes, f"Create tag {tag}?")
    if not should_tag:
        print_info(f"Create tag when ready: {info('git tag ' + tag)}")
        return 0
    try:
        git.create_tag(tag)
    except GitError as e:
        print_error(f"Tag failed: {e}")
        print_info(f"Create manually: {info('git tag ' + tag)}")
        return 0
    print_success(f"Created tag {info(tag)}")

    print(f"\n{bold('Step 4: Push to remote')}")
    push_hint = info('git push origin HEAD --tags')
    if _decide(args.push, config.release.auto_push, yes, "Push to remote with tags?"):
        try:
            with Spinner("Pushing to remote"):
                git.push_with_tags()
            print_success("Pushed to remote with tags")
        except GitError as e:
            print_warning(f"Push failed: {e}")
            print_info(f"Push manually: {push_hint}")
    else:
        print_info(f"Push when ready: {push_hint}")

    print_success("Release complete!")
    return 0


def _decide(flag: bool | None, configured: bool, yes: bool, question: str) -> bool:
    """Explicit flag wins, then --yes takes the configured value, then ask."""
    if flag is not None:
        return flag
    if yes:
        return configured
    return bool(confirm(question, default=True))


# ---------------------------------------------------------------------------
# pr / deslop / branch
# ---------------------------------------------------------------------------

def run_pr(args, config: Config) -> int:
    git = GitAnalyzer()
    current = git.current_branch()
    if not current:
        print_error("Not on a branch")
        return 1
    print_info(f"Current branch: {info(current)}")

    flow = PRFlow(git, config, edits=AIEditHistory.for_repo(git))
    result = flow.run(
        yes=args.yes, target=args.base, title=args.title, body=args.body,
        browser=args.browser, open_after=args.open,
    )
    if result in (CREATED, BROWSER):
        print_success("Done!")
    elif result == SKIPPED:
        print_info(warning("PR creation skipped"))
    else:
        print_info("Aborted")
    return 0


def run_deslop(args, config: Config) -> int:
    git = GitAnalyzer()
    diff = git.get_staged_diff()
    if not diff:
        print_warning("No staged changes to deslop")
        return 0

    result = DeslopFlow(git, config).run(diff, yes=args.yes, extra=args.instruction, force=True)
    if result == UPDATED:
        print_success("Changes deslopped successfully!")
    elif result == DESLOP_ABORT:
        print_info("Aborted")
    else:
        print_info(dim("No changes needed"))
    return 0


def run_branch(args, config: Config) -> int:
    git = GitAnalyzer()
    diff = git.get_staged_diff()
    if not diff and not args.name:
        print_warning("No staged changes to name a branch after. Run 'git add' first.")
        return 0

    flow = BranchFlow(git, config, edits=AIEditHistory.for_repo(git))
    if flow.run(diff, yes=args.yes, branch_name=args.name, force=True) == BRANCH_ABORT:
        print_info("Aborted")
    return 0
