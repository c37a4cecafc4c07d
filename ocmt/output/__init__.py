"""Terminal output: colors, status lines and the spinner.

User-facing text goes through these helpers. Diagnostics go to logging.
"""

import os
import re
import sys
import threading
from contextlib import contextmanager


class Colors:
    """ANSI escape codes for terminal colors."""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    CYAN = '\033[36m'
    MAGENTA = '\033[35m'


def _color_wanted(stream) -> bool:
    if os.environ.get('NO_COLOR'):
        return False
    if os.environ.get('FORCE_COLOR'):
        return True
    if os.environ.get('TERM') == 'dumb':
        return False
    if not getattr(stream, 'isatty', None) or not stream.isatty():
        return False
    if sys.platform != 'win32':
        return True
    # Windows consoles need VT processing switched on first
    try:
        import ctypes
        kernel32 = ctypes.windll.kernel32
        return bool(kernel32.SetConsoleMode(kernel32.GetStdHandle(-11), 7))
    except (AttributeError, OSError):
        return False


def _can_encode(sample: str, stream) -> bool:
    try:
        sample.encode(getattr(stream, 'encoding', None) or 'utf-8')
    except (UnicodeEncodeError, LookupError):
        return False
    return True


COLORS_ENABLED = _color_wanted(sys.stdout)
UNICODE_ENABLED = _can_encode('✓✗•⚠─⠋', sys.stdout)


def _symbol(fancy: str, plain: str) -> str:
    return fancy if UNICODE_ENABLED else plain


CHECK = _symbol('✓', '[OK]')
CROSS = _symbol('✗', '[X]')
BULLET = _symbol('•', '*')
WARN = _symbol('⚠', '[!]')
RULE = _symbol('─', '-')


def _colorize(text: str, *codes: str) -> str:
    if not COLORS_ENABLED:
        return text
    return f"{''.join(codes)}{text}{Colors.RESET}"


def _style(*codes: str):
    def apply(text: str) -> str:
        return _colorize(text, *codes)
    return apply


success = _style(Colors.GREEN)
error = _style(Colors.RED)
warning = _style(Colors.YELLOW)
info = _style(Colors.CYAN)
dim = _style(Colors.DIM)
bold = _style(Colors.BOLD)
highlight = _style(Colors.MAGENTA)


def print_success(message: str) -> None:
    print(f"{success(CHECK)} {message}")


def print_error(message: str) -> None:
    print(f"{error(CROSS)} {error(message)}", file=sys.stderr)


def print_warning(message: str) -> None:
    print(f"{warning(WARN)} {warning(message)}")


def print_info(message: str) -> None:
    print(f"{info(BULLET)} {message}")


def print_step(title: str, body: str) -> None:
    """Print a labelled block: bold title, indented body."""
    print(f"\n{bold(title)}")
    for line in body.split('\n'):
        print(f"  {line}")


def print_rule_block(text: str) -> None:
    """Print text between two horizontal rules sized to the longest line."""
    lines = text.split('\n')
    width = max((len(line) for line in lines), default=40)
    width = min(width, 100)
    print(f"\n{dim(RULE * width)}")
    print(bold(lines[0]))
    for line in lines[1:]:
        print(line)
    print(dim(RULE * width))


COMMIT_TYPE_COLORS = {
    'feat': Colors.GREEN,
    'fix': Colors.RED,
    'refactor': Colors.YELLOW,
    'docs': Colors.CYAN,
    'test': Colors.MAGENTA,
    'perf': Colors.GREEN,
    'chore': Colors.DIM,
    'style': Colors.DIM,
}


def colorize_commit_type(message: str) -> str:
    """Color the commit type prefix on the first line of a commit message."""
    if not COLORS_ENABLED:
        return message
    lines = message.split('\n')
    match = re.match(r'^(\w+)(\([^)]*\))?(!?:)', lines[0])
    if match:
        color = COMMIT_TYPE_COLORS.get(match.group(1))
        if color:
            prefix = match.group(0)
            lines[0] = _colorize(prefix, Colors.BOLD, color) + lines[0][len(prefix):]
    return '\n'.join(lines)


# The spinner currently on screen, if any. Interactive prompts raised from
# deep inside a generation (permission requests) pause it through
# suspend_spinner().
_active_spinner = None
_active_lock = threading.Lock()


class Spinner:
    """Animated spinner for long operations. Use as context manager.

    pause()/resume() clear the line and stop drawing without ending the
    operation, so a prompt can take over the terminal.
    """
    FRAMES_UNICODE = ['⠋', '⠙', '⠹', '⠸', '⠼', '⠴', '⠦', '⠧', '⠇', '⠏']
    FRAMES_ASCII = ['-', '\\', '|', '/']

    def __init__(self, message: str = ""):
        self.message = message
        self._thread = None
        self._stop_event = threading.Event()
        self._paused = threading.Event()
        # Held while a frame is drawn, so pause() can't be overdrawn
        self._draw_lock = threading.Lock()
        self._frames = self.FRAMES_UNICODE if UNICODE_ENABLED else self.FRAMES_ASCII
        self._enabled = sys.stdout.isatty()

    def _draw(self, frame: str) -> bool:
        with self._draw_lock:
            if self._paused.is_set() or self._stop_event.is_set():
                return False
            print(f'\r\033[K{frame} {self.message}', end='', flush=True)
            return True

    def _spin(self):
        idx = 0
        while not self._stop_event.is_set():
            if self._draw(self._frames[idx % len(self._frames)]):
                idx += 1
            self._stop_event.wait(0.08)

    def _clear(self):
        if self._enabled:
            print('\r\033[K', end='', flush=True)

    def pause(self) -> None:
        with self._draw_lock:
            self._paused.set()
            self._clear()

    def resume(self) -> None:
        self._paused.clear()

    def __enter__(self):
        global _active_spinner
        if self._enabled:
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._spin, daemon=True)
            self._thread.start()
        with _active_lock:
            _active_spinner = self
        return self

    def __exit__(self, *args):
        global _active_spinner
        with _active_lock:
            if _active_spinner is self:
                _active_spinner = None
        self._stop_event.set()
        if self._thread:
            self._thread.join()
        self._clear()


@contextmanager
def suspend_spinner():
    """Pause the active spinner (if any) for the duration of the block."""
    with _active_lock:
        spinner = _active_spinner
    if spinner is None:
        yield
        return
    spinner.pause()
    try:
        yield
    finally:
        spinner.resume()


__all__ = [
    "Colors", "COLORS_ENABLED", "UNICODE_ENABLED",
    "CHECK", "CROSS", "BULLET", "WARN", "RULE",
    "success", "error", "warning", "info", "dim", "bold", "highlight",
    "print_success", "print_error", "print_warning", "print_info",
    "print_step", "print_rule_block",
    "colorize_commit_type", "Spinner", "suspend_spinner", "COMMIT_TYPE_COLORS",
]
