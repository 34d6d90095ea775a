import io
import threading
import time
from datetime import datetime, timedelta

import pytest

import termbar
from termbar import ProgressBarConfig, ProgressBarState, render_line


def frames(output):
    return [frame for frame in output.split('\r\x1b[K') if frame]


def test_start_renders_first_frame(config, sink, registry):
    bar = config.with_total(10).start('Job')

    assert bar.is_active
    assert bar in registry
    assert sink.getvalue().startswith('\r\x1b[KJob [00/10] ')
    assert config.title == ''

    bar.stop()


def test_add_without_total_is_silent(config, sink):
    bar = config.with_total(0).start()

    assert bar.add(1) is None
    assert bar.increment() is None
    assert bar.current == 0
    assert sink.getvalue() == ''

    bar.stop()
    assert sink.getvalue() == '\n'


def test_add_rejects_negative_count(config):
    bar = config.start()
    with pytest.raises(ValueError):
        bar.add(-1)
    bar.stop()


def test_invalid_configuration():
    with pytest.raises(ValueError):
        ProgressBarConfig().with_total(-1)
    with pytest.raises(ValueError):
        ProgressBarConfig().with_current(-5)
    with pytest.raises(ValueError):
        ProgressBarConfig().with_refresh_interval(0)


def test_completion_draws_full_bar_then_stops_once(config, sink, registry):
    bar = config.with_total(5).start('Copy')

    for _ in range(5):
        bar.increment()

    output = sink.getvalue()
    assert output.count('\n') == 1
    assert output.endswith('\n')

    drawn = frames(output.rstrip('\n'))
    # first frame, one per increment, plus the repeated final frame
    assert len(drawn) == 7
    assert drawn[-1] == drawn[-2]
    assert drawn[-1].startswith('Copy [5/5] ')
    assert '100%' in drawn[-1]

    assert not bar.is_active
    assert bar.current == bar.total == 5
    assert bar not in registry


def test_overshoot_clamps_total(config, sink):
    bar = config.with_total(5).start()

    assert bar.add(8) is bar
    assert bar.current == 8
    assert bar.total == 8
    assert not bar.is_active
    assert sink.getvalue().count('\n') == 1


def test_add_after_stop_draws_nothing(config, sink):
    bar = config.with_total(3).start()
    bar.add(3)
    output = sink.getvalue()

    bar.increment()

    assert sink.getvalue() == output


def test_stop_is_idempotent(config, sink):
    bar = config.start()

    assert bar.stop() is bar
    output = sink.getvalue()
    assert bar.stop() is bar

    assert sink.getvalue() == output
    assert output.count('\n') == 1


def test_remove_when_done_clears_line(config, sink):
    bar = config.with_total(2).with_remove_when_done().start()
    bar.add(2)

    output = sink.getvalue()
    assert output.endswith('\r\x1b[K')
    assert '\n' not in output


def test_update_title_keeps_progress(config, sink):
    bar = config.start('Old')
    bar.add(3)

    bar.update_title('New')

    assert bar.title == 'New'
    assert bar.current == 3
    assert bar.total == 100
    assert frames(sink.getvalue())[-1].startswith('New [003/100] ')
    bar.stop()


def test_shorter_title_clears_previous_frame(config, sink):
    bar = config.with_max_width(10).start('A-very-long-title')
    bar.update_title('X')

    assert sink.getvalue() == ('\r\x1b[KA-very-long-title [000/100]    0% '
                               '\r\x1b[KX [000/100]    0% ')
    bar.stop()


def test_start_copies_the_template(config, registry):
    template = config.with_total(4)

    first = template.start('first')
    second = template.start('second')
    first.add(2)

    assert first is not second
    assert second.current == 0
    assert template.current == 0
    assert template.title == ''
    assert registry.bars() == [first, second]

    first.stop()
    second.stop()
    assert len(registry) == 0


def test_concurrent_increments_stop_exactly_once(config, sink):
    count = 32
    bar = config.with_total(count).start()
    barrier = threading.Barrier(count)

    def worker():
        barrier.wait()
        bar.add(1)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert bar.current == count
    assert bar.total == count
    assert not bar.is_active
    assert sink.getvalue().count('\n') == 1


def test_elapsed_time_rerenders_until_stopped(config, sink):
    bar = config.with_show_elapsed_time().with_refresh_interval(0.01).start()

    deadline = time.monotonic() + 5
    while len(frames(sink.getvalue())) < 4 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert len(frames(sink.getvalue())) >= 4

    bar.stop()
    output = sink.getvalue()
    time.sleep(0.05)

    assert sink.getvalue() == output
    assert output.endswith('\n')


def test_no_rerender_without_elapsed_time(config, sink):
    bar = config.with_refresh_interval(0.01).start()
    time.sleep(0.05)

    assert len(frames(sink.getvalue())) == 1
    bar.stop()


def test_timer(config):
    started_at = datetime.now() - timedelta(hours=1)
    bar = config.with_started_at(started_at).start()

    assert bar.started_at == started_at
    assert bar.get_elapsed_time() >= timedelta(hours=1)

    bar.reset_timer()
    assert bar.get_elapsed_time() < timedelta(minutes=1)

    bar.set_started_at(started_at)
    assert bar.get_elapsed_time() >= timedelta(hours=1)
    bar.stop()


def test_render_matches_layout(config):
    bar = config.with_total(8).start('Render')
    bar.add(2)

    expected = render_line(ProgressBarState(current=2, total=8, title='Render', is_active=True),
                           bar.config, width=120)
    assert bar.render() == expected
    assert bar.snapshot().current == 2
    bar.stop()


def test_set_writer_redirects_output(config, sink):
    other = io.StringIO()
    bar = config.start()
    bar.set_writer(other)
    bar.increment()
    bar.stop()

    assert frames(sink.getvalue()) and '\n' not in sink.getvalue()
    assert other.getvalue().endswith('\n')


def test_context_manager_stops(config, sink):
    with config.with_total(20).start() as bar:
        bar.add(5)
        assert bar.is_active

    assert not bar.is_active
    assert sink.getvalue().endswith('\n')


def test_default_registry(terminal, sink):
    config = ProgressBarConfig().with_writer(sink).with_show_elapsed_time(False)
    bar = config.start()

    assert bar in termbar.active_bars
    assert termbar.active_bars.any_active()

    bar.stop()
    assert bar not in termbar.active_bars
