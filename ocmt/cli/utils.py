"""CLI Utility Functions

Prompts return None when the user quits or input runs out (EOF);
Ctrl-C is left to propagate to main().
"""

import os
import subprocess
import sys
import tempfile
import webbrowser
from typing import Callable

from ocmt.output import bold, dim, info, warning


def copy_to_clipboard(text: str) -> tuple[bool, str]:
    """Copy text to clipboard. Returns (success, failure_reason)."""
    try:
        if sys.platform == 'win32':
            subprocess.run(['clip'], input=text.encode('utf-8'), check=True)
        elif sys.platform == 'darwin':
            subprocess.run(['pbcopy'], input=text.encode('utf-8'), check=True)
        else:
            try:
                subprocess.run(['xclip', '-selection', 'clipboard'], input=text.encode('utf-8'), check=True)
            except FileNotFoundError:
                subprocess.run(['xsel', '--clipboard', '--input'], input=text.encode('utf-8'), check=True)
        return True, ""
    except FileNotFoundError:
        if sys.platform == 'linux':
            return False, "Install xclip or xsel: sudo apt install xclip"
        return False, "No clipboard tool found"
    except (subprocess.CalledProcessError, OSError) as e:
        return False, f"Clipboard command failed: {e}"


def open_in_browser(url: str) -> bool:
    """Open a URL with the platform opener."""
    if sys.platform == 'darwin':
        command = ['open', url]
    elif sys.platform == 'win32':
        command = ['cmd', '/c', 'start', '', url]
    else:
        command = ['xdg-open', url]
    try:
        subprocess.run(command, check=True, capture_output=True)
        return True
    except (subprocess.CalledProcessError, OSError):
        return webbrowser.open(url)


def edit_message(message: str, suffix: str = '.gitcommit') -> str | None:
    """Open message in user's editor. Returns edited text or None on failure."""
    editor = os.environ.get('VISUAL') or os.environ.get('EDITOR')
    if not editor:
        editor = 'notepad' if sys.platform == 'win32' else 'vi'

    tmp = tempfile.NamedTemporaryFile(mode='w', suffix=suffix, delete=False, encoding='utf-8')
    try:
        tmp.write(message)
        tmp.close()
        subprocess.run([*editor.split(), tmp.name], check=True)
        with open(tmp.name, 'r', encoding='utf-8') as f:
            edited = f.read().strip()
        return edited if edited else None
    except (subprocess.CalledProcessError, OSError):
        return None
    finally:
        try:
            os.unlink(tmp.name)
        except OSError as e:
            # Log to stderr so temp files don't silently accumulate
            print(f"Warning: Could not delete temp file {tmp.name}: {e}", file=sys.stderr)


def _input(prompt: str) -> str | None:
    try:
        return input(prompt)
    except EOFError:
        return None


def confirm(message: str, default: bool = True) -> bool | None:
    """Yes/no question. None if input is closed."""
    hint = '[Y/n]' if default else '[y/N]'
    while True:
        answer = _input(f"{message} {dim(hint)} ")
        if answer is None:
            return None
        answer = answer.strip().lower()
        if not answer:
            return default
        if answer in ('y', 'yes'):
            return True
        if answer in ('n', 'no'):
            return False
        print(dim("  Enter y or n"))


def select(message: str, options: list[tuple[str, str]], default: str | None = None) -> str | None:
    """Numbered menu of (value, label) pairs. Returns the chosen value, None on quit."""
    print(f"\n{bold(message)}")
    default_idx = None
    for i, (value, label) in enumerate(options, 1):
        marker = dim(' (default)') if value == default else ''
        if value == default:
            default_idx = i - 1
        print(f"  {info(f'[{i}]')} {label}{marker}")

    while True:
        choice = _input(f"Select [1-{len(options)}] or (q)uit: ")
        if choice is None:
            return None
        choice = choice.strip().lower()
        if choice == 'q':
            return None
        if not choice and default_idx is not None:
            return options[default_idx][0]
        try:
            idx = int(choice) - 1
            if 0 <= idx < len(options):
                return options[idx][0]
        except ValueError:
            pass
        print(f"Enter 1-{len(options)} or q")


def ask_text(message: str, initial: str = "", validate: Callable[[str], str | None] | None = None) -> str | None:
    """Free-text answer; Enter keeps the initial value. validate returns an error or None."""
    shown = f" {dim(f'[{initial}]')}" if initial else ""
    while True:
        answer = _input(f"{message}{shown} ")
        if answer is None:
            return None
        answer = answer.strip() or initial
        problem = validate(answer) if validate else None
        if problem is None:
            return answer
        print(warning(f"  {problem}"))


def not_blank(label: str) -> Callable[[str], str | None]:
    def check(value: str) -> str | None:
        return f"{label} cannot be empty" if not value.strip() else None
    return check
