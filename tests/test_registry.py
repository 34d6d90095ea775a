import gc

from termbar import ActiveBars


def test_register_and_unregister(config, registry):
    bar = config.start()
    assert registry.bars() == [bar]
    assert registry.any_active()

    registry.register(bar)
    assert len(registry) == 1

    bar.stop()
    assert not registry.any_active()
    assert list(registry) == []


def test_unregister_unknown_bar_is_noop(config):
    other = ActiveBars()
    bar = config.start()

    other.unregister(bar)

    assert len(other) == 0
    bar.stop()


def test_dropped_bars_are_forgotten(config, registry):
    bar = config.start()
    assert len(registry) == 1

    del bar
    gc.collect()

    assert len(registry) == 0


def test_registries_are_independent(config, registry):
    other = ActiveBars()
    first = config.start()
    second = config.with_registry(other).start()

    assert first in registry and first not in other
    assert second in other and second not in registry

    first.stop()
    second.stop()
