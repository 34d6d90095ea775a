from termbar import progress


def test_progress_wrapper_yields_items(config, sink):
    items = list(range(5))
    seen = []
    for item in progress(items, title="Test", config=config):
        seen.append(item)
    assert seen == items
    assert sink.getvalue().count('\n') == 1
    assert '[5/5]' in sink.getvalue()


def test_progress_wrapper_stops_on_break(config, sink, registry):
    gen = progress(range(10), title="Early", config=config)
    for _ in gen:
        break
    gen.close()

    assert len(registry) == 0
    assert sink.getvalue().endswith('\n')
    assert '[00/10]' in sink.getvalue()


def test_progress_wrapper_without_length(config, sink):
    items = (i for i in range(3))
    assert list(progress(items, config=config)) == [0, 1, 2]
    assert sink.getvalue() == '\n'


def test_progress_wrapper_explicit_total(config, sink):
    items = (i for i in range(4))
    assert list(progress(items, total=4, config=config)) == [0, 1, 2, 3]
    assert '100%' in sink.getvalue()
