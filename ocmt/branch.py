"""Branch creation before a commit."""

import re

from ocmt.cli.utils import ask_text, confirm, select
from ocmt.config import Config
from ocmt.git import GitAnalyzer
from ocmt.history import AIEditHistory
from ocmt.intent import detect_branch_intent, replace_branch_intent, default_intent, INTENT_HINTS
from ocmt.llm.generators import generate_branch_name
from ocmt.output import Spinner, highlight, print_error, print_step, print_success, print_warning
from ocmt.prompts import PromptContext

CONTINUE = "continue"
ABORT = "abort"


def normalize_branch_name(name: str) -> str:
    """'"Feat/Add Login!"' -> 'feat/add-login'"""
    name = re.sub(r'^["\']|["\']$', '', name.strip())
    name = re.sub(r'\s+', '-', name)
    name = re.sub(r'[^a-zA-Z0-9._/-]+', '-', name)
    name = re.sub(r'-+', '-', name)
    name = re.sub(r'^[-/]+|[-/]+$', '', name)
    return name.lower()


def validate_branch_name(value: str) -> str | None:
    if not value.strip():
        return "Branch name cannot be empty"
    if re.search(r'\s', value):
        return "Branch name cannot contain spaces"
    return None


def select_intent(current: str | None) -> str | None:
    options = [(name, f"{name:<10} {hint}") for name, hint in INTENT_HINTS.items()]
    return select("Select intent:", options, default=default_intent(current))


class BranchFlow:

    def __init__(self, git: GitAnalyzer, config: Config, edits: AIEditHistory | None = None,
                 generate=generate_branch_name):
        self.git = git
        self.config = config
        self.edits = edits
        self.generate = generate

    def _generate(self, diff: str, message: str) -> str:
        context = PromptContext(edit_history=self.edits.context("branch") if self.edits else None)
        with Spinner(message):
            return normalize_branch_name(self.generate(diff, context=context, config=self.config))

    def _record(self, generated: str, edited: str) -> None:
        if self.edits:
            self.edits.record("branch-name", generated, edited)

    def should_create(self, yes: bool, provided: str | None) -> bool | None:
        current = self.git.current_branch()
        if current is None:
            return False
        on_default = current == self.git.default_branch()
        commit = self.config.commit

        if provided:
            return True
        if on_default and commit.force_new_branch_on_default:
            return True
        wanted = commit.auto_create_branch_on_default if on_default else commit.auto_create_branch_on_non_default
        if yes:
            return wanted
        if on_default:
            message = f'You\'re on default branch "{current}". Create a new branch for this commit?'
        else:
            message = "Create a new branch for this commit?"
        return confirm(message, default=wanted)

    def resolve_name(self, diff: str, yes: bool) -> str | None:
        """Generate a name and let the user accept, edit or regenerate it."""
        generated = name = self._generate(diff, "Generating branch name")
        if yes:
            return name

        while True:
            print_step("Proposed branch name:", highlight(f'"{name}"'))
            action = select("What would you like to do?", [
                ("create", "Create branch with this name"),
                ("intent", "Change intent"),
                ("edit", "Edit name"),
                ("regenerate", "Regenerate name"),
                ("cancel", "Cancel"),
            ], default="create")
            if action in (None, "cancel"):
                return None
            if action == "create":
                self._record(generated, name)
                return name
            if action == "intent":
                intent = select_intent(detect_branch_intent(name))
                if intent:
                    name = replace_branch_intent(name, intent)
            elif action == "edit":
                edited = ask_text("Enter branch name:", initial=name, validate=validate_branch_name)
                if edited is None:
                    return None
                name = normalize_branch_name(edited)
                self._record(generated, name)
                return name
            elif action == "regenerate":
                generated = name = self._generate(diff, "Regenerating branch name")

    def ensure_unique(self, name: str, yes: bool) -> str | None:
        while self.git.branch_exists(name):
            if yes:
                print_error(f'Branch "{name}" already exists')
                return None
            print_warning(f'Branch "{name}" already exists')
            edited = ask_text("Enter a different branch name:", initial=name, validate=validate_branch_name)
            if edited is None:
                return None
            name = normalize_branch_name(edited)
        return name

    def run(self, diff: str, yes: bool = False, branch_name: str | None = None, skip: bool = False,
            force: bool = False) -> str:
        if skip:
            return CONTINUE

        decision = True if force else self.should_create(yes, branch_name)
        if decision is None:
            return ABORT
        if not decision:
            return CONTINUE

        name = normalize_branch_name(branch_name) if branch_name else self.resolve_name(diff, yes)
        if not name:
            return ABORT
        name = self.ensure_unique(name, yes)
        if not name:
            return ABORT

        self.git.create_branch(name)
        print_success(f'Switched to "{name}"')
        return CONTINUE
