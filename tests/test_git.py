"""
Tests for GitAnalyzer.

Parsing helpers are tested on canned output; everything else runs against
a throwaway repository created with the real git binary.
"""

import shutil
import subprocess

import pytest

from ocmt import deslop as deslop_module
from ocmt.config import Config
from ocmt.deslop import CONTINUE, DeslopFlow
from ocmt.git import GitAnalyzer, GitError, GitStatus, SnapshotRestoreError, parse_oneline_log, parse_status
from ocmt.git.analyzer import _version_from

needs_git = pytest.mark.skipif(shutil.which('git') is None, reason="git not installed")


@pytest.fixture
def repo(tmp_path, monkeypatch):
    """A repository on 'main' with one commit of app.py. Returns (path, git)."""
    def git(*args):
        return subprocess.run(
            ['git', *args], cwd=tmp_path, check=True, capture_output=True, text=True,
        ).stdout.strip()

    git('init', '-q')
    git('checkout', '-q', '-b', 'main')
    git('config', 'user.email', 'dev@example.com')
    git('config', 'user.name', 'Dev')
    git('config', 'commit.gpgsign', 'false')
    git('config', 'tag.gpgsign', 'false')
    (tmp_path / 'app.py').write_text("print('hi')\n", encoding='utf-8')
    git('add', '.')
    git('commit', '-q', '-m', 'chore: init')
    monkeypatch.chdir(tmp_path)
    return tmp_path, git


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParseStatus:

    def test_states(self):
        status = parse_status(
            "M  staged.py\n"
            " M unstaged.py\n"
            "MM both.py\n"
            "?? new.py\n"
            "R  old.py -> renamed.py\n"
            "A  added.py\n"
        )
        assert status.staged == ["staged.py", "both.py", "renamed.py", "added.py"]
        assert status.unstaged == ["unstaged.py", "both.py"]
        assert status.untracked == ["new.py"]
        assert status.has_changes

    def test_empty(self):
        assert not parse_status("").has_changes
        assert parse_status("\n") == GitStatus()


class TestParseLog:

    def test_oneline(self):
        commits = parse_oneline_log("abc1234 feat: add export\ndef5678 fix: null check\n\n")
        assert [(c.hash, c.message) for c in commits] == [
            ("abc1234", "feat: add export"),
            ("def5678", "fix: null check"),
        ]

    def test_empty(self):
        assert parse_oneline_log("") == []


class TestVersionFiles:

    def test_package_json(self):
        assert _version_from("package.json", '{"name": "x", "version": "2.1.0"}') == "2.1.0"
        assert _version_from("package.json", '{"name": "x"}') is None
        assert _version_from("package.json", "{broken") is None

    def test_pyproject(self):
        assert _version_from("pyproject.toml", '[project]\nname = "x"\nversion = "0.4.2"\n') == "0.4.2"
        assert _version_from("pyproject.toml", '[project]\nname = "x"\n') is None


def test_restore_error_names_recovery_command():
    error = SnapshotRestoreError("abc123", GitError("restore failed"))
    assert error.ref == "abc123"
    assert "git stash apply abc123" in str(error)
    assert isinstance(error, GitError)


# ---------------------------------------------------------------------------
# Repository operations
# ---------------------------------------------------------------------------

@needs_git
class TestGitAnalyzer:

    def test_outside_repository(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
        with pytest.raises(GitError, match="Not a git repository"):
            GitAnalyzer()

    def test_branches(self, repo):
        analyzer = GitAnalyzer()
        assert analyzer.current_branch() == "main"
        assert analyzer.default_branch() == "main"
        analyzer.create_branch("feat/export")
        assert analyzer.current_branch() == "feat/export"
        assert analyzer.branch_exists("feat/export")
        assert not analyzer.branch_exists("feat/other")

    def test_status_and_commit(self, repo):
        path, _ = repo
        analyzer = GitAnalyzer()
        (path / 'app.py').write_text("print('hello')\n", encoding='utf-8')
        (path / 'new.py').write_text("x = 1\n", encoding='utf-8')
        status = analyzer.get_status()
        assert status.unstaged == ["app.py"]
        assert status.untracked == ["new.py"]

        analyzer.stage_files(["app.py"])
        assert "+print('hello')" in analyzer.get_staged_diff()

        analyzer.commit("fix: greet properly")
        assert analyzer.log(limit=1)[0].message == "fix: greet properly"
        assert analyzer.commit_count(analyzer.first_commit()) == 1

    def test_releases_and_commits_between(self, repo):
        path, git = repo
        analyzer = GitAnalyzer()
        analyzer.create_tag("v1.0.0")
        git('tag', 'nightly')
        (path / 'app.py').write_text("print('v2')\n", encoding='utf-8')
        git('commit', '-q', '-am', 'feat: v2')

        assert analyzer.releases() == ["v1.0.0"]
        commits = analyzer.commits_between("v1.0.0")
        assert [c.message for c in commits] == ["feat: v2"]
        assert "+print('v2')" in analyzer.diff_between("v1.0.0")

    def test_version_bump(self, repo):
        path, git = repo
        (path / 'pyproject.toml').write_text('[project]\nversion = "1.0.0"\n', encoding='utf-8')
        git('add', '.')
        git('commit', '-q', '-m', 'chore: add pyproject')
        git('tag', 'v1.0.0')
        (path / 'pyproject.toml').write_text('[project]\nversion = "1.1.0"\n', encoding='utf-8')
        git('commit', '-q', '-am', 'chore: bump')

        analyzer = GitAnalyzer()
        bump = analyzer.detect_version_bump("v1.0.0")
        assert (bump.old_version, bump.new_version, bump.file) == ("1.0.0", "1.1.0", "pyproject.toml")
        assert analyzer.current_version() == "1.1.0"
        assert analyzer.detect_version_bump("HEAD") is None

    def test_snapshot_needs_changes(self, repo):
        with pytest.raises(GitError):
            GitAnalyzer().take_snapshot()

    def test_snapshot_restores_index_and_worktree(self, repo):
        path, git = repo
        analyzer = GitAnalyzer()
        app = path / 'app.py'

        app.write_text("# staged\nprint('hi')\n", encoding='utf-8')
        analyzer.stage_files(["app.py"])
        app.write_text("# staged\nprint('hi')\n# not staged\n", encoding='utf-8')
        staged_before = analyzer.get_staged_diff()

        ref = analyzer.take_snapshot()
        assert analyzer.get_staged_diff() == staged_before

        # What a cleanup pass would do
        app.write_text("print('hi')\n", encoding='utf-8')
        analyzer.stage_files(["app.py"])

        analyzer.restore_snapshot(ref)
        assert app.read_text(encoding='utf-8') == "# staged\nprint('hi')\n# not staged\n"
        assert analyzer.get_staged_diff() == staged_before
        assert git('show', ':app.py') == "# staged\nprint('hi')"

    def test_restore_unknown_ref(self, repo):
        with pytest.raises(SnapshotRestoreError) as exc:
            GitAnalyzer().restore_snapshot("0" * 40)
        assert "git stash apply" in str(exc.value)


@needs_git
class TestFromSubdirectory:
    """Porcelain paths are root-relative; commands must not depend on the cwd."""

    @pytest.fixture
    def in_subdir(self, repo, monkeypatch):
        path, git = repo
        (path / 'sub').mkdir()
        (path / 'sub' / 'mod.py').write_text("x = 1\n", encoding='utf-8')
        git('add', '.')
        git('commit', '-q', '-m', 'chore: add sub')
        monkeypatch.chdir(path / 'sub')
        return path, git

    def test_stage_root_relative_paths(self, in_subdir):
        path, _ = in_subdir
        (path / 'app.py').write_text("print('edited')\n", encoding='utf-8')
        analyzer = GitAnalyzer()
        analyzer.stage_files(analyzer.get_status().unstaged)
        assert analyzer.get_status().staged == ["app.py"]

    def test_restore_covers_whole_tree(self, in_subdir):
        path, git = in_subdir
        analyzer = GitAnalyzer()
        (path / 'app.py').write_text("# slop\nprint('hi')\n", encoding='utf-8')
        (path / 'sub' / 'mod.py').write_text("# slop\nx = 1\n", encoding='utf-8')
        analyzer.stage_files(["app.py", "sub/mod.py"])

        ref = analyzer.take_snapshot()
        (path / 'app.py').write_text("print('hi')\n", encoding='utf-8')
        (path / 'sub' / 'mod.py').write_text("x = 1\n", encoding='utf-8')
        analyzer.stage_files(["app.py", "sub/mod.py"])

        analyzer.restore_snapshot(ref)
        assert (path / 'app.py').read_text(encoding='utf-8') == "# slop\nprint('hi')\n"
        assert (path / 'sub' / 'mod.py').read_text(encoding='utf-8') == "# slop\nx = 1\n"
        assert git('show', ':app.py') == "# slop\nprint('hi')"

    def test_rejected_deslop_reverts_root_files(self, in_subdir, monkeypatch):
        path, git = in_subdir
        app = path / 'app.py'
        app.write_text("# a very obvious comment\nprint('hi')\n", encoding='utf-8')
        git('add', 'app.py')

        def edit_at_root(*args, **kwargs):
            app.write_text("print('slop removed')\n", encoding='utf-8')
            return "Removed an obvious comment."

        monkeypatch.setattr(deslop_module, "confirm", lambda *a, **k: True)
        monkeypatch.setattr(deslop_module, "select", lambda *a, **k: "reject")
        analyzer = GitAnalyzer()
        monkeypatch.setattr(analyzer, "difftool", lambda ref: True)

        flow = DeslopFlow(analyzer, Config(), generate=edit_at_root)
        assert flow.run(yes=False, extra="keep the logs") == CONTINUE
        assert app.read_text(encoding='utf-8') == "# a very obvious comment\nprint('hi')\n"
        assert git('show', ':app.py') == "# a very obvious comment\nprint('hi')"
