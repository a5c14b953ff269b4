import queue
import random
import threading
import time

import numpy as np
import pytest

from multibrot import renderer as renderer_module
from multibrot.compute import render_row
from multibrot.config import RenderConfig
from multibrot.errors import ReassemblyError, RenderCancelled, RenderError
from multibrot.image_sink import ArrayImageSink
from multibrot.renderer import (
    MultibrotRenderer,
    RowFailure,
    RowReassemblyWriter,
    RowResult,
    render_image,
)

from conftest import RecordingSink


def fake_row(row, size=6):
    return np.full(size, row % 256, dtype=np.uint8)


def feed(writer, order):
    for row in order:
        writer.accept(RowResult(row, fake_row(row)))


# Row reassembly

@pytest.mark.parametrize("order", [
    list(range(10)),
    list(reversed(range(10))),
    random.Random(7).sample(range(10), 10),
    random.Random(42).sample(range(10), 10),
])
def test_writer_emits_rows_in_ascending_order(order):
    sink = RecordingSink()
    writer = RowReassemblyWriter(sink, 10)
    feed(writer, order)
    assert writer.done
    assert [row[0] for row in sink.rows] == list(range(10))
    assert sink.count('row') == 10


def test_writer_holds_rows_until_gap_is_filled():
    sink = RecordingSink()
    writer = RowReassemblyWriter(sink, 4)
    feed(writer, [2, 3])
    assert sink.rows == []
    assert writer.buffered == 2
    feed(writer, [0])
    assert len(sink.rows) == 1
    feed(writer, [1])
    assert len(sink.rows) == 4
    assert writer.buffered == 0
    assert writer.peak_buffered == 3


def test_writer_reverse_order_peaks_at_full_height():
    writer = RowReassemblyWriter(RecordingSink(), 8)
    feed(writer, reversed(range(8)))
    assert writer.peak_buffered == 8


def test_writer_rejects_duplicate_pending_row():
    writer = RowReassemblyWriter(RecordingSink(), 5)
    feed(writer, [3])
    with pytest.raises(ReassemblyError) as info:
        feed(writer, [3])
    assert info.value.row == 3


def test_writer_rejects_row_already_written():
    writer = RowReassemblyWriter(RecordingSink(), 5)
    feed(writer, [0, 1])
    with pytest.raises(ReassemblyError):
        feed(writer, [0])


@pytest.mark.parametrize("row", [-1, 5, 100])
def test_writer_rejects_out_of_range_row(row):
    writer = RowReassemblyWriter(RecordingSink(), 5)
    with pytest.raises(ReassemblyError):
        feed(writer, [row])


def test_writer_reports_sink_failure_with_row():
    writer = RowReassemblyWriter(RecordingSink(fail_on_row=2), 5)
    with pytest.raises(RenderError) as info:
        feed(writer, [0, 1, 2])
    assert info.value.stage == "sink"
    assert info.value.row == 2


def test_writer_run_drains_queue_in_any_order():
    sink = RecordingSink()
    results = queue.Queue()
    for row in random.Random(3).sample(range(20), 20):
        results.put(RowResult(row, fake_row(row)))
    writer = RowReassemblyWriter(sink, 20)
    writer.run(results, threading.Event())
    assert [row[0] for row in sink.rows] == list(range(20))


def test_writer_run_raises_worker_failure():
    results = queue.Queue()
    results.put(RowResult(0, fake_row(0)))
    results.put(RowFailure(1, MemoryError("no buffer")))
    writer = RowReassemblyWriter(RecordingSink(), 3)
    with pytest.raises(RenderError) as info:
        writer.run(results, threading.Event())
    assert info.value.stage == "worker"
    assert info.value.row == 1
    assert isinstance(info.value.__cause__, MemoryError)


def test_writer_run_stops_on_cancel():
    cancel = threading.Event()
    cancel.set()
    writer = RowReassemblyWriter(RecordingSink(), 3)
    with pytest.raises(RenderCancelled):
        writer.run(queue.Queue(), cancel)


# Full pipeline

def test_end_to_end_rows_in_order():
    config = RenderConfig(width=200, height=150, scale=0.02, center_r=-0.5, center_i=0.0,
                          power_r=2.0, power_i=0.0, workers=4, bit_depth=16, depth=100)
    sink = RecordingSink()
    stats = render_image(config, sink)

    assert sink.calls[0] == ('begin', 200, 150, 16, 3)
    assert sink.calls[-1] == ('finalize',)
    assert sink.count('begin') == 1
    assert sink.count('finalize') == 1
    assert sink.count('abort') == 0
    assert [call[1] for call in sink.calls if call[0] == 'row'] == list(range(150))
    assert all(len(row) == 200 * 6 for row in sink.rows)
    for y in (0, 75, 149):
        assert sink.rows[y] == render_row(y, config).tobytes()
    assert stats.rows == 150
    assert stats.workers == 4
    assert 1 <= stats.peak_buffered <= 150


@pytest.mark.parametrize("bit_depth", [8, 16])
def test_output_independent_of_worker_count(small_config, bit_depth):
    images = []
    for workers in (1, 8):
        sink = ArrayImageSink()
        render_image(small_config.with_changes(workers=workers, bit_depth=bit_depth), sink)
        images.append(sink.image)
    assert np.array_equal(images[0], images[1])


def test_output_independent_of_completion_order(small_config, monkeypatch):
    expected = ArrayImageSink()
    render_image(small_config.with_changes(workers=1), expected)

    # Make early rows slow so later rows finish first
    def slow_top_rows(row, config):
        if row < 5:
            time.sleep(0.02)
        return render_row(row, config)

    monkeypatch.setattr(renderer_module, "render_row", slow_top_rows)
    sink = ArrayImageSink()
    stats = render_image(small_config.with_changes(workers=6), sink)
    assert np.array_equal(sink.image, expected.image)
    assert stats.peak_buffered > 1


def test_origin_branch_cut_renders(small_config):
    sink = RecordingSink()
    render_image(small_config.with_changes(branch_cut='origin', power_i=0.3), sink)
    assert sink.count('row') == small_config.height
    assert sink.count('finalize') == 1


def test_worker_failure_aborts_render(small_config, monkeypatch):
    def broken(row, config):
        if row == 37:
            raise MemoryError("row buffer")
        return render_row(row, config)

    monkeypatch.setattr(renderer_module, "render_row", broken)
    sink = RecordingSink()
    with pytest.raises(RenderError) as info:
        render_image(small_config, sink)
    assert info.value.stage == "worker"
    assert info.value.row == 37
    assert sink.count('abort') == 1
    assert sink.count('finalize') == 0
    assert len(sink.rows) <= 37


def test_sink_failure_aborts_render(small_config):
    sink = RecordingSink(fail_on_row=10)
    with pytest.raises(RenderError) as info:
        render_image(small_config, sink)
    assert info.value.stage == "sink"
    assert info.value.row == 10
    assert sink.count('abort') == 1
    assert sink.count('finalize') == 0


def test_cancel_before_start_writes_nothing(small_config):
    cancel = threading.Event()
    cancel.set()
    sink = RecordingSink()
    with pytest.raises(RenderCancelled):
        render_image(small_config, sink, cancel=cancel)
    assert sink.rows == []
    assert sink.count('abort') == 1
    assert sink.count('finalize') == 0


def test_cancel_during_render(small_config, monkeypatch):
    cancel = threading.Event()

    def cancelling(row, config):
        if row == 20:
            cancel.set()
        return render_row(row, config)

    monkeypatch.setattr(renderer_module, "render_row", cancelling)
    sink = RecordingSink()
    renderer = MultibrotRenderer(small_config.with_changes(workers=2), cancel_event=cancel)
    with pytest.raises(RenderCancelled):
        renderer.render(sink)
    assert len(sink.rows) < small_config.height
    assert all(len(row) == small_config.row_bytes for row in sink.rows)
    assert sink.count('finalize') == 0
    assert sink.count('abort') == 1


def test_job_queue_failure_aborts_sink(small_config, monkeypatch):
    def broken_fill(self):
        raise TypeError("bad row count")

    monkeypatch.setattr(MultibrotRenderer, "_fill_jobs", broken_fill)
    sink = RecordingSink()
    with pytest.raises(RenderError) as info:
        render_image(small_config, sink)
    assert info.value.stage == "pool"
    assert sink.count('begin') == 1
    assert sink.count('abort') == 1
    assert sink.rows == []


def test_renderer_can_render_again_after_failure(small_config, monkeypatch):
    def broken(row, config):
        if row == 5:
            raise MemoryError("row buffer")
        return render_row(row, config)

    renderer = MultibrotRenderer(small_config)
    monkeypatch.setattr(renderer_module, "render_row", broken)
    with pytest.raises(RenderError):
        renderer.render(RecordingSink())
    assert renderer.cancel_event.is_set()

    monkeypatch.setattr(renderer_module, "render_row", render_row)
    sink = RecordingSink()
    stats = renderer.render(sink)
    assert stats.rows == small_config.height
    assert sink.count('finalize') == 1
    assert sink.count('abort') == 0


def test_caller_cancel_stays_set_between_renders(small_config):
    cancel = threading.Event()
    renderer = MultibrotRenderer(small_config, cancel_event=cancel)
    renderer.cancel()
    for _ in range(2):
        with pytest.raises(RenderCancelled):
            renderer.render(RecordingSink())
    assert cancel.is_set()
