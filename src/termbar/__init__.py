# -*- coding: utf-8 -*-
"""
Termbar – A live-updating terminal progress bar for Python.
Copyright (c) 2025 Igor Iatsenko
Licensed under the MIT License.
"""

import os
import re
import sys
import math
import shutil
import threading
import weakref
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import (
        Optional,
        Tuple,
        List,
        Callable,
        Iterable,
        Iterator,
        TextIO,
)
import logging

__all__ = [
    'progress',
    'render_line',
    'format_duration',
    'ProgressBarConfig',
    'ProgressBarState',
    'ProgressBar',
    'ActiveBars',
    'active_bars',
    'DEFAULT_PROGRESS_BAR',
    'Style',
    'Theme',
    'Colors',
    'strip_ansi',
    'visible_length',
    'terminal_width',
]

logger = logging.getLogger('termbar')


# ============================================================================
# Terminal utilities
# ============================================================================

class TerminalCapability(Enum):
    """Terminal capability levels"""
    MINIMAL = 1  # No ANSI support
    COLOR = 2    # ANSI colors


_ANSI_ESCAPE = re.compile(r'\x1b\[[0-9;?]*[ -/]*[@-~]')

_HIDE_CURSOR = '\033[?25l'
_SHOW_CURSOR = '\033[?25h'
_CLEAR_LINE = '\r\033[K'


def strip_ansi(text: str) -> str:
    """Remove ANSI control sequences from text"""
    return _ANSI_ESCAPE.sub('', text)


def visible_length(text: str) -> int:
    """Number of character cells text occupies once control sequences are removed"""
    return len(strip_ansi(text))


def _get_terminal_size(default: Optional[os.terminal_size] = None) -> Tuple[int, int]:
    """Return the size of the terminal in columns and lines, with a safe fallback."""
    if default is None:
        default = os.terminal_size((80, 24))
    try:
        return os.get_terminal_size()
    except OSError:
        # Some environments (cron, IDEs, CI, redirected stdout) have no TTY
        pass
    try:
        return shutil.get_terminal_size(fallback=default)
    except Exception:
        pass
    return default


def terminal_width() -> int:
    """Current terminal width in columns"""
    columns = _get_terminal_size()[0]
    return columns if columns > 0 else 80


def _detect_terminal_capability(stream: Optional[TextIO] = None) -> TerminalCapability:
    """Detect what the terminal behind stream (stderr by default) can display"""
    if stream is None:
        stream = sys.stderr

    # Redirected output gets no control sequences
    if not _is_tty(stream):
        return TerminalCapability.MINIMAL

    term = os.environ.get('TERM', '')
    colorterm = os.environ.get('COLORTERM', '')

    if 'truecolor' in colorterm or '24bit' in colorterm:
        return TerminalCapability.COLOR
    if term and term != 'dumb':
        return TerminalCapability.COLOR

    return TerminalCapability.MINIMAL


def _is_tty(stream) -> bool:
    isatty = getattr(stream, 'isatty', None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        # Closed stream
        return False


def hide_cursor(stream: TextIO):
    if _is_tty(stream):
        stream.write(_HIDE_CURSOR)
        _flush(stream)


def show_cursor(stream: TextIO):
    if _is_tty(stream):
        stream.write(_SHOW_CURSOR)
        _flush(stream)


def clear_line(stream: TextIO):
    """Move to the start of the current line and erase it"""
    stream.write(_CLEAR_LINE)
    _flush(stream)


def _flush(stream):
    flush = getattr(stream, 'flush', None)
    if flush is not None:
        flush()


# ============================================================================
# Colors and styles
# ============================================================================

class Colors:
    """ANSI color codes and utilities"""
    # Reset
    RESET = '\033[0m'

    # Basic colors (3/4 bit)
    RED = '\033[31m'
    GREEN = '\033[32m'
    CYAN = '\033[36m'

    # Bright colors
    BRIGHT_BLACK = '\033[90m'
    BRIGHT_GREEN = '\033[92m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_CYAN = '\033[96m'
    BRIGHT_WHITE = '\033[97m'

    # Styles
    BOLD = '\033[1m'

    @staticmethod
    def rgb(r: int, g: int, b: int) -> str:
        """Create 24-bit RGB color"""
        return f'\033[38;2;{r};{g};{b}m'

    @staticmethod
    def gradient(progress: float, start_color: Tuple[int, int, int], end_color: Tuple[int, int, int]) -> str:
        """Generate gradient color based on progress (0.0 to 1.0)"""
        progress = min(1.0, max(0.0, progress))
        r = int(start_color[0] + (end_color[0] - start_color[0]) * progress)
        g = int(start_color[1] + (end_color[1] - start_color[1]) * progress)
        b = int(start_color[2] + (end_color[2] - start_color[2]) * progress)
        return Colors.rgb(r, g, b)


class Style:
    """A sequence of ANSI codes applied around a piece of text"""

    def __init__(self, *codes: str):
        self.codes = tuple(code for code in codes if code)

    def apply(self, text: str) -> str:
        if not self.codes or not text:
            return text
        return ''.join(self.codes) + text + Colors.RESET

    def __bool__(self):
        return bool(self.codes)

    def __eq__(self, other):
        return isinstance(other, Style) and self.codes == other.codes

    def __hash__(self):
        return hash(self.codes)

    def __repr__(self):
        return f'{type(self).__name__}{self.codes!r}'


class Theme:
    """Color theme for progress bars"""

    def __init__(self,
                 title_style: Optional[Style] = None,
                 bar_style: Optional[Style] = None,
                 filler_style: Optional[Style] = None,
                 bracket_style: Optional[Style] = None,
                 count_style: Optional[Style] = None,
                 percentage_style: Optional[Style] = None,
                 use_gradient: bool = True,
                 gradient_start: Tuple[int, int, int] = (255, 0, 0),  # Red
                 gradient_end: Tuple[int, int, int] = (0, 255, 0)):    # Green
        self.title_style = title_style if title_style is not None else Style(Colors.BRIGHT_CYAN)
        self.bar_style = bar_style if bar_style is not None else Style(Colors.CYAN)
        self.filler_style = filler_style if filler_style is not None else Style(Colors.BRIGHT_BLACK)
        self.bracket_style = bracket_style if bracket_style is not None else Style(Colors.BRIGHT_BLACK)
        self.count_style = count_style if count_style is not None else Style(Colors.BRIGHT_WHITE)
        self.percentage_style = percentage_style if percentage_style is not None else Style()
        self.use_gradient = use_gradient
        self.gradient_start = gradient_start
        self.gradient_end = gradient_end

    def percentage_color(self, fraction: float) -> Style:
        """Style used for the percentage at the given progress fraction"""
        if self.use_gradient:
            return Style(Colors.gradient(fraction, self.gradient_start, self.gradient_end))
        return self.percentage_style

    @staticmethod
    def default():
        """Default color theme"""
        return Theme()

    @staticmethod
    def minimal():
        """Theme for minimal terminals (no colors)"""
        return Theme(
            title_style=Style(),
            bar_style=Style(),
            filler_style=Style(),
            bracket_style=Style(),
            count_style=Style(),
            percentage_style=Style(),
            use_gradient=False
        )

    @staticmethod
    def matrix():
        """Matrix green theme"""
        return Theme(
            title_style=Style(Colors.BRIGHT_GREEN),
            bar_style=Style(Colors.GREEN),
            count_style=Style(Colors.BRIGHT_GREEN),
            percentage_style=Style(Colors.BRIGHT_GREEN),
            use_gradient=False
        )

    @staticmethod
    def fire():
        """Fire/heat theme with gradient"""
        return Theme(
            title_style=Style(Colors.BRIGHT_YELLOW),
            bar_style=Style(Colors.RED),
            count_style=Style(Colors.BRIGHT_YELLOW),
            gradient_start=(255, 100, 0),   # Orange
            gradient_end=(255, 50, 50)      # Red
        )


def _default_theme(stream: Optional[TextIO] = None) -> Theme:
    if _detect_terminal_capability(stream) == TerminalCapability.MINIMAL:
        return Theme.minimal()
    return Theme.default()


# ============================================================================
# Numeric helpers
# ============================================================================

def _percentage(total: int, current: int) -> int:
    """Percentage of current in total, rounded half away from zero"""
    if total == 0:
        return 0
    return int(math.floor(current / total * 100 + 0.5))


def _round_duration(elapsed: timedelta, granularity: timedelta) -> timedelta:
    """Round elapsed to a multiple of granularity, halfway values away from zero"""
    if granularity <= timedelta(0):
        return elapsed
    step = granularity // timedelta(microseconds=1)
    value = elapsed // timedelta(microseconds=1)
    quotient, remainder = divmod(abs(value), step)
    if remainder * 2 >= step:
        quotient += 1
    rounded = quotient * step
    return timedelta(microseconds=rounded if value >= 0 else -rounded)


def _trim_decimal(value: int, scale: int) -> str:
    """Render value / scale with trailing zeros of the fraction removed"""
    whole, fraction = divmod(value, scale)
    if not fraction:
        return str(whole)
    digits = len(str(scale)) - 1
    return f'{whole}.{fraction:0{digits}d}'.rstrip('0')


def format_duration(duration: timedelta) -> str:
    """
    Format a duration compactly, e.g. ``0s``, ``250ms``, ``1.5s``, ``1m5s``, ``2h0m3s``.

    Sub-second durations use ``ms`` or ``µs``. Larger ones always spell out the
    smaller units after the largest one present.
    """
    micros = duration // timedelta(microseconds=1)
    if micros == 0:
        return '0s'

    sign = '-' if micros < 0 else ''
    micros = abs(micros)

    if micros < 1000:
        return f'{sign}{micros}µs'
    if micros < 1000000:
        return f'{sign}{_trim_decimal(micros, 1000)}ms'

    hours, micros = divmod(micros, 3600 * 1000000)
    minutes, micros = divmod(micros, 60 * 1000000)
    seconds = _trim_decimal(micros, 1000000)

    if hours:
        return f'{sign}{hours}h{minutes}m{seconds}s'
    if minutes:
        return f'{sign}{minutes}m{seconds}s'
    return f'{sign}{seconds}s'


# ============================================================================
# Active Bar Registry
# ============================================================================

class ActiveBars:
    """Thread-safe collection of the progress bars that are currently running"""

    def __init__(self):
        self._lock = threading.Lock()
        self._refs: List[weakref.ReferenceType] = []

    def register(self, bar: 'ProgressBar'):
        with self._lock:
            self._prune_internal()
            if not any(ref() is bar for ref in self._refs):
                self._refs.append(weakref.ref(bar))

    def unregister(self, bar: 'ProgressBar'):
        with self._lock:
            self._refs = [ref for ref in self._refs if ref() is not None and ref() is not bar]

    def bars(self) -> List['ProgressBar']:
        """Running bars, in the order they were started"""
        with self._lock:
            self._prune_internal()
            return [bar for bar in (ref() for ref in self._refs) if bar is not None]

    def any_active(self) -> bool:
        return any(bar.is_active for bar in self.bars())

    def _prune_internal(self):
        self._refs = [ref for ref in self._refs if ref() is not None]

    def __contains__(self, bar) -> bool:
        return any(existing is bar for existing in self.bars())

    def __len__(self) -> int:
        return len(self.bars())

    def __iter__(self) -> Iterator['ProgressBar']:
        return iter(self.bars())

    def __repr__(self):
        return f'{type(self).__name__}({self.bars()!r})'


active_bars = ActiveBars()


# ============================================================================
# Configuration
# ============================================================================

@dataclass(frozen=True)
class ProgressBarConfig:
    """
    Immutable template for a progress bar.

    Every ``with_*`` method returns a modified copy; ``start()`` turns the
    template into a live :class:`ProgressBar`. The template itself is never
    active, so one template can be started any number of times.
    """
    title: str = ''
    total: int = 100
    current: int = 0
    bar_character: str = '█'
    last_character: str = '█'
    bar_filler: str = '█'
    max_width: int = 80
    show_title: bool = True
    show_count: bool = True
    show_percentage: bool = True
    show_elapsed_time: bool = True
    remove_when_done: bool = False
    elapsed_time_rounding: timedelta = timedelta(seconds=1)
    title_style: Optional[Style] = None
    bar_style: Optional[Style] = None
    theme: Optional[Theme] = field(default=None, compare=False)
    writer: Optional[TextIO] = field(default=None, compare=False, repr=False)
    started_at: Optional[datetime] = None
    registry: Optional[ActiveBars] = field(default=None, compare=False, repr=False)
    refresh_interval: float = 1.0

    def __post_init__(self):
        # Validation
        if self.total < 0:
            raise ValueError("total must be non-negative")
        if self.current < 0:
            raise ValueError("current must be non-negative")
        if self.refresh_interval <= 0:
            raise ValueError("refresh_interval must be positive")

    def with_title(self, title: str) -> 'ProgressBarConfig':
        return replace(self, title=title)

    def with_total(self, total: int) -> 'ProgressBarConfig':
        return replace(self, total=total)

    def with_current(self, current: int) -> 'ProgressBarConfig':
        return replace(self, current=current)

    def with_bar_character(self, char: str) -> 'ProgressBarConfig':
        return replace(self, bar_character=char)

    def with_last_character(self, char: str) -> 'ProgressBarConfig':
        return replace(self, last_character=char)

    def with_bar_filler(self, char: str) -> 'ProgressBarConfig':
        return replace(self, bar_filler=char)

    def with_max_width(self, max_width: int) -> 'ProgressBarConfig':
        """
        Limit the rendered width. The terminal width is used instead when it
        is smaller, or when max_width is zero or below.
        """
        return replace(self, max_width=max_width)

    def with_show_title(self, show: bool = True) -> 'ProgressBarConfig':
        return replace(self, show_title=show)

    def with_show_count(self, show: bool = True) -> 'ProgressBarConfig':
        return replace(self, show_count=show)

    def with_show_percentage(self, show: bool = True) -> 'ProgressBarConfig':
        return replace(self, show_percentage=show)

    def with_show_elapsed_time(self, show: bool = True) -> 'ProgressBarConfig':
        return replace(self, show_elapsed_time=show)

    def with_remove_when_done(self, remove: bool = True) -> 'ProgressBarConfig':
        return replace(self, remove_when_done=remove)

    def with_elapsed_time_rounding(self, granularity: timedelta) -> 'ProgressBarConfig':
        return replace(self, elapsed_time_rounding=granularity)

    def with_title_style(self, style: Optional[Style]) -> 'ProgressBarConfig':
        return replace(self, title_style=style)

    def with_bar_style(self, style: Optional[Style]) -> 'ProgressBarConfig':
        return replace(self, bar_style=style)

    def with_theme(self, theme: Optional[Theme]) -> 'ProgressBarConfig':
        return replace(self, theme=theme)

    def with_writer(self, writer: Optional[TextIO]) -> 'ProgressBarConfig':
        return replace(self, writer=writer)

    def with_started_at(self, started_at: Optional[datetime]) -> 'ProgressBarConfig':
        return replace(self, started_at=started_at)

    def with_registry(self, registry: Optional[ActiveBars]) -> 'ProgressBarConfig':
        return replace(self, registry=registry)

    def with_refresh_interval(self, seconds: float) -> 'ProgressBarConfig':
        return replace(self, refresh_interval=seconds)

    def start(self, title: Optional[str] = None) -> 'ProgressBar':
        """Start a new live progress bar from this template"""
        bar = ProgressBar(self if title is None else self.with_title(title))
        bar._start()
        return bar


DEFAULT_PROGRESS_BAR = ProgressBarConfig()


@dataclass
class ProgressBarState:
    """Mutable state of one live progress bar"""
    current: int = 0
    total: int = 0
    title: str = ''
    is_active: bool = False
    started_at: Optional[datetime] = None


# ============================================================================
# Layout
# ============================================================================

def render_line(state: ProgressBarState,
                config: ProgressBarConfig,
                width: Optional[int] = None,
                now: Optional[datetime] = None,
                stream: Optional[TextIO] = None) -> str:
    """
    Render one frame of a progress bar.

    Args:
        state: Snapshot of the bar's mutable state
        config: Options the bar was started with
        width: Terminal width (sampled from the terminal when omitted)
        now: Reference time for the elapsed time display
        stream: Output the line is meant for, used to pick a theme when the
            config has none (the config writer, or stdout, when omitted)
    """
    if not state.is_active or state.total == 0:
        return ''

    total = state.total
    current = min(max(state.current, 0), total)

    if width is None:
        width = terminal_width()
    if 0 < config.max_width < width:
        width = config.max_width

    theme = config.theme
    if theme is None:
        if stream is None:
            stream = config.writer if config.writer is not None else sys.stdout
        theme = _default_theme(stream)
    title_style = config.title_style if config.title_style is not None else theme.title_style
    bar_style = config.bar_style if config.bar_style is not None else theme.bar_style

    before = ''
    if config.show_title:
        before += title_style.apply(state.title) + ' '
    if config.show_count:
        padding = len(str(total))
        before += (theme.bracket_style.apply('[')
                   + theme.count_style.apply(f'{current:0{padding}d}')
                   + theme.bracket_style.apply('/')
                   + theme.count_style.apply(str(total))
                   + theme.bracket_style.apply(']')
                   + ' ')

    after = ' '
    if config.show_percentage:
        percentage = min(_percentage(total, current), 100)
        after += theme.percentage_color(current / total).apply(f'{percentage:3d}%') + ' '
    if config.show_elapsed_time:
        if now is None:
            now = datetime.now()
        started_at = state.started_at if state.started_at is not None else now
        elapsed = _round_duration(now - started_at, config.elapsed_time_rounding)
        after += '| ' + format_duration(elapsed)

    bar_max_length = max(0, width - visible_length(before) - visible_length(after) - 1)
    bar_current_length = current * bar_max_length // total

    bar = ''
    if bar_current_length > 0:
        bar = bar_style.apply(config.bar_character * bar_current_length + config.last_character)
    if bar_max_length - bar_current_length > 0:
        bar += theme.filler_style.apply(config.bar_filler * (bar_max_length - bar_current_length))

    return before + bar + after


# ============================================================================
# Background re-render
# ============================================================================

class _RerenderTask:
    """Calls a function every interval seconds on a daemon thread until cancelled"""

    def __init__(self, interval: float, callback: Callable[[], bool], name: str = 'termbar-rerender'):
        self._interval = interval
        self._callback = callback
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> '_RerenderTask':
        self._thread.start()
        return self

    def is_active(self) -> bool:
        return self._thread.is_alive() and not self._cancelled.is_set()

    def cancel(self):
        """Stop the task; returns once no further call can happen"""
        self._cancelled.set()
        if self._thread is not threading.current_thread() and self._thread.is_alive():
            self._thread.join()

    def _run(self):
        error_count = 0
        max_errors = 10

        while not self._cancelled.wait(self._interval):
            try:
                if not self._callback():
                    break
                error_count = 0  # Reset on success
            except Exception:
                error_count += 1
                if error_count <= max_errors:
                    logger.exception('Progress bar re-render failed (error %d/%d)', error_count, max_errors)
                elif error_count == max_errors + 1:
                    logger.error('Progress bar re-render: suppressing further errors')


# ============================================================================
# Progress Bar
# ============================================================================

class ProgressBar:
    """A running progress bar, created by :meth:`ProgressBarConfig.start`"""

    def __init__(self, config: ProgressBarConfig):
        self.config = config
        self._lock = threading.RLock()
        self._state = ProgressBarState(current=config.current,
                                       total=config.total,
                                       title=config.title)
        self._writer = config.writer
        self._registry = config.registry if config.registry is not None else active_bars
        self._rerender_task: Optional[_RerenderTask] = None

    def __enter__(self):
        """Enter context manager"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager"""
        self.stop()
        return False

    def __repr__(self):
        return (f'{type(self).__name__}(title={self.title!r}, current={self.current}, '
                f'total={self.total}, is_active={self.is_active})')

    @property
    def current(self) -> int:
        return self._state.current

    @property
    def total(self) -> int:
        return self._state.total

    @property
    def title(self) -> str:
        return self._state.title

    @property
    def is_active(self) -> bool:
        return self._state.is_active

    @property
    def started_at(self) -> Optional[datetime]:
        return self._state.started_at

    @property
    def writer(self) -> TextIO:
        return self._writer if self._writer is not None else sys.stdout

    def set_writer(self, writer: Optional[TextIO]):
        with self._lock:
            self._writer = writer

    def set_started_at(self, started_at: datetime):
        with self._lock:
            self._state.started_at = started_at

    def reset_timer(self):
        """Restart the elapsed time display from now"""
        with self._lock:
            self._state.started_at = datetime.now()

    def get_elapsed_time(self) -> timedelta:
        """Time passed since the bar was started"""
        started_at = self._state.started_at
        if started_at is None:
            return timedelta(0)
        return datetime.now() - started_at

    def snapshot(self) -> ProgressBarState:
        with self._lock:
            return replace(self._state)

    def render(self, width: Optional[int] = None) -> str:
        """Render the current frame without writing it"""
        with self._lock:
            return render_line(self._state, self.config, width=width, stream=self.writer)

    def _start(self):
        with self._lock:
            self._state.started_at = self.config.started_at or datetime.now()
            self._state.is_active = True
            self._registry.register(self)
            hide_cursor(self.writer)
            self._update_internal()

            if self.config.show_elapsed_time:
                self._rerender_task = _RerenderTask(self.config.refresh_interval, self._tick).start()

        logger.debug('Progress bar %r started', self._state.title)

    def _tick(self) -> bool:
        with self._lock:
            if not self._state.is_active:
                return False
            self._update_internal()
            return True

    def _update_internal(self):
        """Write the current frame over the current line"""
        writer = self.writer
        line = render_line(self._state, self.config, stream=writer)
        if not line:
            return
        writer.write(_CLEAR_LINE + line)
        _flush(writer)

    def update_title(self, title: str) -> 'ProgressBar':
        """Change the title and redraw, leaving the progress untouched"""
        with self._lock:
            self._state.title = title
            self._update_internal()
        return self

    def add(self, count: int) -> Optional['ProgressBar']:
        """
        Advance the bar by count.

        Returns None without drawing anything when the bar has no total.
        Reaching the total draws the full bar and stops it.
        """
        if count < 0:
            raise ValueError("count must be non-negative")

        with self._lock:
            if self._state.total == 0:
                return None

            self._state.current += count
            self._update_internal()

            done = self._state.current >= self._state.total
            if done:
                self._state.total = self._state.current
                self._update_internal()

        if done:
            self.stop()
        return self

    def increment(self) -> Optional['ProgressBar']:
        """Advance the bar by one"""
        return self.add(1)

    def stop(self) -> 'ProgressBar':
        """
        Stop the bar.

        Finishes the line with a newline, or clears it when the bar was
        configured with remove_when_done. Calling stop again does nothing.
        """
        task = self._rerender_task
        if task is not None and task.is_active():
            task.cancel()

        with self._lock:
            if not self._state.is_active:
                return self

            writer = self.writer
            show_cursor(writer)

            self._state.is_active = False
            self._rerender_task = None
            self._registry.unregister(self)

            if self.config.remove_when_done:
                clear_line(writer)
            else:
                writer.write('\n')
                _flush(writer)

        logger.debug('Progress bar %r stopped at %d/%d', self._state.title, self._state.current, self._state.total)
        return self


# ============================================================================
# Convenience Functions
# ============================================================================

def progress(iterable: Iterable,
             total: Optional[int] = None,
             title: Optional[str] = None,
             config: Optional[ProgressBarConfig] = None) -> Iterator:
    """
    Wrap an iterable to display progress automatically.

    Example:
        for item in progress([1, 2, 3, 4, 5], title="Processing"):
            process(item)

    Args:
        iterable: The iterable to wrap
        total: Total items (auto-detected if possible)
        title: Progress bar title
        config: Template for the bar (DEFAULT_PROGRESS_BAR if omitted)
    """
    if config is None:
        config = DEFAULT_PROGRESS_BAR

    if total is None:
        try:
            total = len(iterable)  # type: ignore[arg-type]
        except TypeError:
            total = 0

    bar = config.with_total(total).start(title)
    try:
        for item in iterable:
            yield item
            bar.increment()
    finally:
        bar.stop()
