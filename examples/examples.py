"""Examples demonstrating the progress bar, its options and themes"""

import sys
import time
import random
import threading
from datetime import timedelta

from termbar import (
    progress,
    active_bars,
    DEFAULT_PROGRESS_BAR,
    Colors,
    Style,
    Theme,
)


def example_1():
    print("=== Example 1: Basic usage ===")
    bar = DEFAULT_PROGRESS_BAR.with_total(50).start("Downloading")
    for _ in range(50):
        time.sleep(0.05)
        bar.increment()


def example_2():
    print("=== Example 2: Iterable wrapper ===")
    for _ in progress(range(40), title="Processing"):
        time.sleep(0.05)


def example_3():
    print("=== Example 3: Changing the title while running ===")
    files = [f"file_{i:02d}.txt" for i in range(1, 21)]
    bar = DEFAULT_PROGRESS_BAR.with_total(len(files)).start()
    for name in files:
        bar.update_title(f"Copying {name}")
        time.sleep(random.uniform(0.05, 0.2))
        bar.increment()


def example_4():
    print("=== Example 4: Custom characters and themes ===")
    config = (DEFAULT_PROGRESS_BAR
              .with_bar_character("=")
              .with_last_character(">")
              .with_bar_filler(" ")
              .with_max_width(60))
    for name, theme in [("matrix", Theme.matrix()), ("fire", Theme.fire()), ("minimal", Theme.minimal())]:
        for _ in progress(range(30), title=f"Theme {name:<8}", config=config.with_theme(theme)):
            time.sleep(0.03)

    bold = config.with_title_style(Style(Colors.BOLD, Colors.BRIGHT_YELLOW))
    for _ in progress(range(30), title="Bold title", config=bold):
        time.sleep(0.03)


def example_5():
    print("=== Example 5: Remove when done ===")
    config = DEFAULT_PROGRESS_BAR.with_remove_when_done()
    for _ in progress(range(30), title="This line disappears", config=config):
        time.sleep(0.05)
    print("Done, the bar has been removed.")


def example_6():
    print("=== Example 6: Slow work with live elapsed time ===")
    config = DEFAULT_PROGRESS_BAR.with_elapsed_time_rounding(timedelta(milliseconds=100)).with_refresh_interval(0.1)
    with config.with_total(3).start("Waiting on slow steps") as bar:
        for _ in range(3):
            time.sleep(1.5)
            bar.increment()


def example_7():
    print("=== Example 7: Workers sharing one bar ===")
    bar = DEFAULT_PROGRESS_BAR.with_total(100).start("Workers")

    def worker():
        for _ in range(25):
            time.sleep(random.uniform(0.01, 0.05))
            bar.increment()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()

    while active_bars.any_active():
        time.sleep(0.1)

    for thread in threads:
        thread.join()


def example_8():
    print("=== Example 8: Writing to stderr ===")
    config = DEFAULT_PROGRESS_BAR.with_writer(sys.stderr)
    for _ in progress(range(30), title="On stderr", config=config):
        time.sleep(0.03)


if __name__ == "__main__":
    examples = [example_1, example_2, example_3, example_4, example_5, example_6, example_7, example_8]

    if len(sys.argv) > 1:
        selected = [examples[int(arg) - 1] for arg in sys.argv[1:]]
    else:
        selected = examples

    for example in selected:
        example()
        print()
