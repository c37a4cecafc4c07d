"""Git Analyzer - the version-control operations the tool needs."""

import json
import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from ocmt.prompts.builder import Commit

logger = logging.getLogger(__name__)

RELEASE_TAG = re.compile(r'^v?\d+\.\d+\.\d+')
_PYPROJECT_VERSION = re.compile(r'^version\s*=\s*["\']([^"\']+)["\']', re.MULTILINE)


@dataclass
class GitStatus:
    """Files by state, from 'git status --porcelain'."""
    staged: list[str] = field(default_factory=list)
    unstaged: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.staged or self.unstaged or self.untracked)


@dataclass
class VersionBump:
    old_version: str | None
    new_version: str
    file: str


class GitError(Exception):
    """Raised when git operations fail."""
    pass


class SnapshotRestoreError(GitError):
    """Restoring a deslop snapshot failed. The snapshot ref is kept for manual recovery."""

    def __init__(self, ref: str, cause: GitError):
        self.ref = ref
        super().__init__(
            f"Could not restore snapshot {ref}: {cause}\n"
            f"Recover manually with: git stash apply {ref}"
        )


def parse_status(output: str) -> GitStatus:
    status = GitStatus()
    for line in output.split('\n'):
        if len(line) < 4:
            continue
        index, worktree, path = line[0], line[1], line[3:]
        if ' -> ' in path:
            path = path.split(' -> ', 1)[1]
        if index == '?':
            status.untracked.append(path)
            continue
        if index != ' ':
            status.staged.append(path)
        if worktree not in (' ', '?'):
            status.unstaged.append(path)
    return status


def parse_oneline_log(output: str) -> list[Commit]:
    commits = []
    for line in output.strip().split('\n'):
        if not line.strip():
            continue
        hash_, _, message = line.partition(' ')
        commits.append(Commit(hash=hash_, message=message))
    return commits


def _version_from(filename: str, content: str) -> str | None:
    if filename == "package.json":
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            return None
        version = data.get("version") if isinstance(data, dict) else None
        return version if isinstance(version, str) and version else None
    match = _PYPROJECT_VERSION.search(content)
    return match.group(1) if match else None


class GitAnalyzer:
    """Runs git in the current repository."""

    VERSION_FILES = ("package.json", "pyproject.toml")

    def __init__(self):
        self._verify_git_available()
        self._verify_in_repo()

    def _run_git(self, *args: str, strip: bool = True) -> str:
        """Run a git command and return stdout."""
        logger.debug("git %s", " ".join(args))
        try:
            result = subprocess.run(
                ['git', *args],
                capture_output=True,
                text=True,
                check=True,
                encoding='utf-8',
                errors='replace'
            )
            return result.stdout.strip() if strip else result.stdout
        except subprocess.CalledProcessError as e:
            raise GitError(f"Git command failed: git {' '.join(args)}\n{(e.stderr or '').strip()}")
        except FileNotFoundError:
            raise GitError("Git is not installed or not in PATH")

    def _succeeds(self, *args: str) -> bool:
        try:
            self._run_git(*args)
            return True
        except GitError:
            return False

    def _verify_git_available(self) -> None:
        """Fail fast if git isn't available."""
        try:
            self._run_git('--version')
        except GitError:
            raise GitError("Git is not installed or not in PATH")

    def _verify_in_repo(self) -> None:
        """Fail fast if we're not in a git repository."""
        try:
            self._run_git('rev-parse', '--is-inside-work-tree')
        except GitError:
            raise GitError("Not a git repository")

    # --- working tree ----------------------------------------------------

    def repo_root(self) -> Path:
        return Path(self._run_git('rev-parse', '--show-toplevel'))

    def get_status(self) -> GitStatus:
        # Leading spaces carry the index state
        return parse_status(self._run_git('status', '--porcelain', strip=False))

    def get_staged_diff(self) -> str:
        return self._run_git('diff', '--cached')

    def stage_all(self) -> None:
        self._run_git('add', '-A')

    def _at_root(self, *args: str) -> str:
        # Porcelain paths are relative to the top level, not the cwd
        return self._run_git('-C', str(self.repo_root()), *args)

    def stage_files(self, files: list[str]) -> None:
        """Stage paths given relative to the repository root, or absolute."""
        if files:
            self._at_root('add', '--', *files)

    def commit(self, message: str) -> str:
        return self._run_git('commit', '-m', message)

    # --- branches --------------------------------------------------------

    def current_branch(self) -> str | None:
        try:
            branch = self._run_git('rev-parse', '--abbrev-ref', 'HEAD')
        except GitError:
            return None
        return branch if branch and branch != 'HEAD' else None

    def branch_exists(self, branch: str) -> bool:
        return self._succeeds('show-ref', '--verify', '--quiet', f'refs/heads/{branch}')

    def default_branch(self) -> str | None:
        try:
            ref = self._run_git('symbolic-ref', 'refs/remotes/origin/HEAD')
            return ref.rsplit('/', 1)[-1] or None
        except GitError:
            for candidate in ('main', 'master'):
                if self.branch_exists(candidate):
                    return candidate
            return None

    def create_branch(self, name: str) -> None:
        self._run_git('checkout', '-b', name)

    def remote_branches(self) -> list[str]:
        try:
            output = self._run_git('branch', '-r', '--format=%(refname:short)')
        except GitError:
            return []
        branches = []
        for line in output.split('\n'):
            line = line.strip()
            if not line or line.endswith('/HEAD') or '/' not in line:
                continue
            name = line.split('/', 1)[1]
            if name not in branches:
                branches.append(name)
        return branches

    def has_upstream(self) -> bool:
        return self._succeeds('rev-parse', '--abbrev-ref', '--symbolic-full-name', '@{upstream}')

    def push(self, set_upstream: bool = False) -> str:
        if set_upstream:
            return self._run_git('push', '-u', 'origin', 'HEAD')
        return self._run_git('push')

    def push_with_tags(self) -> str:
        return self._run_git('push', 'origin', 'HEAD', '--tags')

    # --- history ---------------------------------------------------------

    def tags(self) -> list[str]:
        try:
            output = self._run_git('tag', '--sort=-creatordate')
        except GitError:
            return []
        return [t for t in output.split('\n') if t]

    def releases(self) -> list[str]:
        """Version-like tags, newest first."""
        return [t for t in self.tags() if RELEASE_TAG.match(t)]

    def create_tag(self, tag: str, message: str | None = None) -> None:
        if message:
            self._run_git('tag', '-a', tag, '-m', message)
        else:
            self._run_git('tag', tag)

    def log(self, limit: int | None = None, from_ref: str | None = None, to_ref: str = 'HEAD') -> list[Commit]:
        args = ['log', '--oneline']
        if limit:
            args.append(f'-n{limit}')
        if from_ref:
            args.append(f'{from_ref}..{to_ref}')
        return parse_oneline_log(self._run_git(*args))

    def commits_between(self, from_ref: str, to_ref: str = 'HEAD') -> list[Commit]:
        return parse_oneline_log(self._run_git('log', '--oneline', f'{from_ref}..{to_ref}'))

    def diff_between(self, from_ref: str, to_ref: str = 'HEAD') -> str:
        return self._run_git('diff', f'{from_ref}..{to_ref}')

    def commit_hash(self, ref: str) -> str:
        return self._run_git('rev-parse', ref)

    def commit_count(self, from_ref: str, to_ref: str = 'HEAD') -> int:
        return int(self._run_git('rev-list', '--count', f'{from_ref}..{to_ref}') or 0)

    def first_commit(self) -> str:
        return self._run_git('rev-list', '--max-parents=0', 'HEAD').split('\n')[0]

    def _branch_base(self, target: str) -> str:
        remote = f'origin/{target}'
        return remote if self._succeeds('rev-parse', '--verify', '--quiet', remote) else target

    def diff_from_branch(self, target: str) -> str:
        return self._run_git('diff', f'{self._branch_base(target)}...HEAD')

    def commits_from_branch(self, target: str) -> list[Commit]:
        return self.commits_between(self._branch_base(target), 'HEAD')

    # --- versions --------------------------------------------------------

    def detect_version_bump(self, from_ref: str, to_ref: str = 'HEAD') -> VersionBump | None:
        """Version change in a root package.json/pyproject.toml between refs."""
        try:
            changed = set(self._run_git('diff', '--name-only', f'{from_ref}..{to_ref}').split('\n'))
        except GitError:
            return None

        for filename in self.VERSION_FILES:
            if filename not in changed:
                continue
            old = self._version_at(from_ref, filename)
            new = self._version_at(to_ref, filename)
            if new and new != old:
                return VersionBump(old_version=old, new_version=new, file=filename)
        return None

    def _version_at(self, ref: str, filename: str) -> str | None:
        try:
            return _version_from(filename, self._run_git('show', f'{ref}:{filename}'))
        except GitError:
            return None

    def current_version(self) -> str | None:
        root = self.repo_root()
        for filename in self.VERSION_FILES:
            path = root / filename
            if path.exists():
                version = _version_from(filename, path.read_text(encoding='utf-8'))
                if version:
                    return version
        return None

    # --- snapshots -------------------------------------------------------

    def take_snapshot(self) -> str:
        """Record worktree and index as a dangling stash commit. Changes nothing."""
        ref = self._run_git('stash', 'create')
        if not ref:
            raise GitError("Failed to create git snapshot (no local changes to record)")
        return ref

    def restore_snapshot(self, ref: str) -> None:
        """Put worktree and index back to a snapshot from take_snapshot()."""
        try:
            self._at_root('restore', '--source', ref, '--worktree', '--', '.')
            try:
                # Second parent of a stash commit holds the index
                self._at_root('restore', '--source', f'{ref}^2', '--staged', '--', '.')
            except GitError:
                self._at_root('restore', '--source', ref, '--staged', '--', '.')
        except GitError as e:
            raise SnapshotRestoreError(ref, e) from e

    def difftool(self, ref: str) -> bool:
        """Open the user's difftool against a ref. Returns False on failure."""
        try:
            return subprocess.run(['git', 'difftool', ref]).returncode == 0
        except OSError:
            return False
