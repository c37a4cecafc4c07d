"""Pull requests through the GitHub CLI (gh)."""

import json
import logging
import re
import subprocess
from dataclasses import dataclass

from ocmt.branch import select_intent
from ocmt.cli.utils import ask_text, confirm, edit_message, not_blank, open_in_browser, select
from ocmt.config import Config
from ocmt.git import GitAnalyzer, GitError
from ocmt.history import AIEditHistory
from ocmt.intent import detect_commit_intent, replace_commit_intent
from ocmt.llm.generators import PRContent, generate_pr_content
from ocmt.output import (
    Spinner, dim, highlight, info, print_error, print_info, print_step, print_success, print_warning,
)
from ocmt.prompts import PromptContext

logger = logging.getLogger(__name__)

CREATED = "created"
BROWSER = "browser"
SKIPPED = "skipped"
ABORT = "abort"

_PR_URL = re.compile(r'https://github\.com/\S+')


class GhError(Exception):
    """Raised when a gh command fails."""
    pass


@dataclass
class PRInfo:
    url: str
    number: int
    title: str
    state: str


@dataclass
class RepoInfo:
    owner: str
    name: str
    is_fork: bool = False


def compare_url(owner: str, repo: str, source: str, target: str) -> str:
    return f"https://github.com/{owner}/{repo}/compare/{target}...{source}?expand=1"


class GitHubCLI:
    """Thin wrapper over gh."""

    def _run_gh(self, *args: str) -> str:
        logger.debug("gh %s", " ".join(args))
        try:
            result = subprocess.run(
                ['gh', *args],
                capture_output=True,
                text=True,
                check=True,
                encoding='utf-8',
                errors='replace'
            )
            return result.stdout.strip()
        except subprocess.CalledProcessError as e:
            raise GhError(f"gh {args[0]} failed: {(e.stderr or '').strip()}")
        except FileNotFoundError:
            raise GhError("GitHub CLI (gh) is not installed")

    def installed(self) -> bool:
        try:
            self._run_gh('--version')
            return True
        except GhError:
            return False

    def authenticated(self) -> bool:
        try:
            self._run_gh('auth', 'status')
            return True
        except GhError:
            return False

    def existing_pr(self) -> PRInfo | None:
        try:
            data = json.loads(self._run_gh('pr', 'view', '--json', 'url,number,title,state'))
            return PRInfo(url=data['url'], number=data['number'], title=data['title'], state=data['state'])
        except (GhError, json.JSONDecodeError, KeyError, TypeError):
            return None

    def repo_info(self) -> RepoInfo | None:
        try:
            data = json.loads(self._run_gh('repo', 'view', '--json', 'owner,name,isFork,parent'))
            return RepoInfo(owner=data['owner']['login'], name=data['name'], is_fork=bool(data.get('isFork')))
        except (GhError, json.JSONDecodeError, KeyError, TypeError):
            return None

    def create_pr(self, title: str, body: str, base: str) -> str:
        output = self._run_gh('pr', 'create', '--title', title, '--body', body, '--base', base)
        match = _PR_URL.search(output)
        return match.group(0) if match else output


class PRFlow:

    def __init__(self, git: GitAnalyzer, config: Config, edits: AIEditHistory | None = None,
                 gh: GitHubCLI | None = None, generate=generate_pr_content):
        self.git = git
        self.config = config
        self.edits = edits
        self.gh = gh or GitHubCLI()
        self.generate = generate

    def _show(self, content: PRContent) -> None:
        print_step("Proposed PR title:", highlight(f'"{content.title}"'))
        print_step("Proposed PR body:", dim(content.body))

    def _generate(self, diff, commits, source, target, message) -> PRContent:
        context = PromptContext(edit_history=self.edits.context("pr") if self.edits else None)
        with Spinner(message):
            return self.generate(diff, commits, source, target, context=context, config=self.config)

    def _record(self, generated: PRContent, final: PRContent) -> None:
        if self.edits:
            self.edits.record("pr-title", generated.title, final.title)
            self.edits.record("pr-body", generated.body, final.body)

    def resolve_target(self, yes: bool) -> str | None:
        default = self.git.default_branch() or 'main'
        if yes:
            return default

        action = select("Which branch would you like to target?", [
            ("default", f"Default branch ({default})"),
            ("specific", "Choose a specific branch"),
        ], default="default")
        if action is None:
            return None
        if action == "default":
            return default

        current = self.git.current_branch()
        available = [b for b in self.git.remote_branches() if b != current]
        if not available:
            print_warning("No other branches found. Using default branch.")
            return default
        return select("Select target branch:", [(b, b) for b in available[:20]])

    def resolve_content(self, diff, commits, source, target, yes) -> PRContent | None:
        generated = content = self._generate(diff, commits, source, target, "Generating PR title and description")
        if yes:
            return content

        self._show(content)
        while True:
            action = select("What would you like to do?", [
                ("create", "Create PR with this content"),
                ("intent", "Change intent"),
                ("edit", "Edit content"),
                ("regenerate", "Regenerate content"),
                ("cancel", "Cancel"),
            ], default="create")
            if action in (None, "cancel"):
                return None
            if action == "create":
                self._record(generated, content)
                return content
            if action == "intent":
                intent = select_intent(detect_commit_intent(content.title))
                if intent:
                    content = PRContent(replace_commit_intent(content.title, intent), content.body)
                print_step("Proposed PR title:", highlight(f'"{content.title}"'))
            elif action == "edit":
                title = ask_text("Enter PR title:", initial=content.title, validate=not_blank("PR title"))
                if title is None:
                    return None
                body = edit_message(content.body, suffix='.md')
                content = PRContent(title, body if body is not None else content.body)
                self._show(content)
            elif action == "regenerate":
                generated = content = self._generate(diff, commits, source, target, "Regenerating PR content")
                self._show(content)

    def ensure_pushed(self) -> bool:
        if self.git.has_upstream():
            return True
        try:
            with Spinner("Pushing branch to remote"):
                self.git.push(set_upstream=True)
        except GitError as e:
            print_error(str(e))
            return False
        print_success("Branch pushed to remote")
        return True

    def preflight(self) -> str | None:
        """The branch to open a PR from, or None if a PR can't or needn't be made."""
        current = self.git.current_branch()
        if not current:
            print_warning("Not on a branch, skipping PR creation")
            return None
        default = self.git.default_branch()
        if current == default:
            print_warning(f"Cannot create PR from default branch ({default})")
            return None
        if not self.gh.installed():
            print_warning("GitHub CLI (gh) is not installed")
            print_info(f"Install it with: {info('brew install gh')} or visit {info('https://cli.github.com/')}")
            return None
        if not self.gh.authenticated():
            print_warning("GitHub CLI is not authenticated")
            print_info(f"Run {info('gh auth login')} to authenticate")
            return None
        existing = self.gh.existing_pr()
        if existing:
            print_info(f"PR already exists: {info(existing.url)} ({existing.state})")
            return None
        return current

    def run(self, yes: bool = False, target: str | None = None, title: str | None = None,
            body: str | None = None, browser: bool = False, open_after: bool | None = None) -> str:
        source = self.preflight()
        if source is None:
            return SKIPPED

        if browser:
            return self.open_compare(source)

        if not yes:
            action = select("Would you like to create a pull request?", [
                ("auto", "Create automatically"),
                ("browser", "Create in browser"),
                ("skip", "Skip"),
            ], default="auto")
            if action in (None, "skip"):
                return SKIPPED
            if action == "browser":
                return self.open_compare(source)

        return self.create(source, yes, target, title, body, open_after)

    def run_after_commit(self, yes: bool = False) -> str:
        current = self.git.current_branch()
        if not current or current == self.git.default_branch():
            return SKIPPED
        if yes and not self.config.pr.auto_create:
            return SKIPPED
        return self.run(yes=yes)

    def open_compare(self, source: str) -> str:
        if not self.ensure_pushed():
            return ABORT
        repo = self.gh.repo_info()
        if repo is None:
            print_error("Could not get repository information")
            return ABORT
        url = compare_url(repo.owner, repo.name, source, self.git.default_branch() or 'main')
        if open_in_browser(url):
            print_success(f"Create your PR at: {info(url)}")
        else:
            print_info(f"Open this URL manually: {info(url)}")
        return BROWSER

    def create(self, source: str, yes: bool, target: str | None, title: str | None,
               body: str | None, open_after: bool | None) -> str:
        target = target or self.resolve_target(yes)
        if not target:
            return ABORT

        diff = self.git.diff_from_branch(target)
        commits = self.git.commits_from_branch(target)
        if not diff and not commits:
            print_warning("No changes found between branches")
            return SKIPPED

        if title and body:
            content = PRContent(title, body)
        elif title or body:
            generated = self._generate(diff, commits, source, target, "Generating PR content")
            content = PRContent(title or generated.title, body or generated.body)
        else:
            content = self.resolve_content(diff, commits, source, target, yes)
        if content is None:
            return ABORT

        if not self.ensure_pushed():
            return ABORT

        try:
            with Spinner("Creating pull request"):
                url = self.gh.create_pr(content.title, content.body, target)
        except GhError as e:
            print_error(str(e))
            return ABORT
        print_success(f"PR created: {info(url)}")

        if open_after is None:
            open_after = self.config.pr.auto_open_in_browser if yes else confirm("Open PR in browser?", default=True)
        if open_after and not open_in_browser(url):
            print_info(f"Open this URL: {info(url)}")
        return CREATED
