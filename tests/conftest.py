import io

import pytest

import termbar
from termbar import ActiveBars, ProgressBarConfig, Theme


@pytest.fixture
def terminal(monkeypatch):
    """Pin the terminal width to 120 columns"""
    monkeypatch.setattr(termbar, 'terminal_width', lambda: 120)
    return 120


@pytest.fixture
def sink():
    return io.StringIO()


@pytest.fixture
def registry():
    return ActiveBars()


@pytest.fixture
def config(terminal, sink, registry):
    return (ProgressBarConfig()
            .with_theme(Theme.minimal())
            .with_writer(sink)
            .with_registry(registry)
            .with_show_elapsed_time(False))


class TtyStringIO(io.StringIO):
    """In-memory sink that reports itself as a terminal"""

    def isatty(self):
        return True


@pytest.fixture
def tty_sink():
    return TtyStringIO()
