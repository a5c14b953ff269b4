"""
Threaded Multibrot renderer with ordered row reassembly.

The pipeline has three parts:
- A job queue pre-filled with every row index plus one stop marker per worker
- A fixed pool of worker threads that render rows in any order
- A single writer thread that buffers finished rows and hands them to the
  image sink strictly top to bottom, dropping each row once written

The numba kernels release the GIL, so the workers really do run in parallel.
Any failure stops the pool, aborts the sink and is re-raised to the caller
as a RenderError; a half-written image is never finalized.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from .compute import render_row, warmup_jit
from .errors import ReassemblyError, RenderCancelled, RenderError

logger = logging.getLogger(__name__)

# Seconds the writer waits on the result queue before re-checking for cancellation
POLL_INTERVAL = 0.05

# Job queue entry telling a worker to stop
STOP = None


class RowResult(NamedTuple):
    """A finished row: its index and width * bytes_per_pixel color bytes."""
    row: int
    pixels: np.ndarray


class RowFailure(NamedTuple):
    """A row that could not be rendered."""
    row: int
    error: BaseException


@dataclass(frozen=True)
class RenderStats:
    """Summary of a completed render."""
    rows: int
    workers: int
    elapsed: float
    peak_buffered: int


class RowReassemblyWriter:
    """
    Reorders finished rows and writes them to an image sink.

    Rows may arrive in any order. Each one is parked in a slot indexed by
    row number; whenever the slot at the cursor is filled, that row and any
    rows directly after it are written and their slots cleared.

    Usage:
        writer = RowReassemblyWriter(sink, height)
        writer.accept(RowResult(2, pixels2))   # held
        writer.accept(RowResult(0, pixels0))   # row 0 written
        writer.accept(RowResult(1, pixels1))   # rows 1 and 2 written

    Attributes:
        next_row: Index of the next row to be written
        peak_buffered: Most rows held at once waiting for earlier rows
    """

    def __init__(self, sink, height):
        self.sink = sink
        self.height = height
        self.next_row = 0
        self.buffered = 0
        self.peak_buffered = 0
        self._rows = [None] * height

    @property
    def done(self):
        return self.next_row == self.height

    def accept(self, result):
        """Store one finished row and flush everything now contiguous."""
        row = result.row
        if not 0 <= row < self.height:
            raise ReassemblyError(
                f"Row index out of range [0, {self.height})", stage="writer", row=row
            )
        if row < self.next_row:
            raise ReassemblyError("Row delivered after it was written", stage="writer", row=row)
        if self._rows[row] is not None:
            raise ReassemblyError("Row delivered twice", stage="writer", row=row)

        self._rows[row] = result.pixels
        self.buffered += 1
        self.peak_buffered = max(self.peak_buffered, self.buffered)
        self._flush()

    def _flush(self):
        while self.next_row < self.height and self._rows[self.next_row] is not None:
            pixels = self._rows[self.next_row]
            try:
                self.sink.write_row(pixels)
            except Exception as exc:
                raise RenderError(
                    f"Image sink rejected row: {exc}", stage="sink", row=self.next_row
                ) from exc
            self._rows[self.next_row] = None
            self.buffered -= 1
            self.next_row += 1

    def run(self, results, cancel):
        """
        Drain `results` until every row has been written.

        Raises:
            RenderCancelled: `cancel` was set before the image was complete
            RenderError: a worker reported a failed row
        """
        while not self.done:
            if cancel.is_set():
                raise RenderCancelled("Render cancelled", stage="writer", row=self.next_row)
            try:
                item = results.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            if isinstance(item, RowFailure):
                raise RenderError(
                    f"Worker failed: {item.error!r}", stage="worker", row=item.row
                ) from item.error
            self.accept(item)


class MultibrotRenderer:
    """
    Renders a RenderConfig into an image sink with a pool of threads.

    Usage:
        renderer = MultibrotRenderer(config)
        stats = renderer.render(sink)

        # From another thread, to stop early:
        renderer.cancel()

    An instance may render again after a failure; each render starts with
    empty queues.

    Attributes:
        config: The RenderConfig being rendered
        cancel_event: Set to stop workers and writer; also set on failure
    """

    def __init__(self, config, cancel_event=None):
        self.config = config
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.jobs = queue.Queue()
        self.results = queue.Queue()
        self.writer = None
        self._lock = threading.Lock()
        self._error = None
        self._failure_set_cancel = False

    def cancel(self):
        """Ask the workers and writer to stop."""
        self.cancel_event.set()

    def _reset(self):
        # Fresh queues per render. The event is cleared only when our own
        # failure set it; a caller's cancel stays in force.
        if self._failure_set_cancel:
            self.cancel_event.clear()
        self.jobs = queue.Queue()
        self.results = queue.Queue()
        self.writer = None
        self._error = None
        self._failure_set_cancel = False

    def _fail(self, error):
        # Keep only the first failure; later ones are consequences of it.
        with self._lock:
            if self._error is None:
                self._error = error
                if not self.cancel_event.is_set():
                    self._failure_set_cancel = True
        self.cancel_event.set()

    def _fill_jobs(self):
        for row in range(self.config.height):
            self.jobs.put(row)
        for _ in range(self.config.workers):
            self.jobs.put(STOP)

    def _worker_thread(self, worker_id):
        """Render rows from the job queue until a stop marker arrives."""
        logger.debug("worker %d started", worker_id)
        rendered = 0
        while not self.cancel_event.is_set():
            row = self.jobs.get()
            if row is STOP:
                break
            try:
                pixels = render_row(row, self.config)
            except Exception as exc:
                logger.error("worker %d failed on row %d: %r", worker_id, row, exc)
                self.results.put(RowFailure(row, exc))
                break
            self.results.put(RowResult(row, pixels))
            rendered += 1
        logger.debug("worker %d stopped after %d rows", worker_id, rendered)

    def _writer_thread(self):
        """Write rows to the sink in order."""
        try:
            self.writer.run(self.results, self.cancel_event)
        except RenderError as exc:
            self._fail(exc)
        except Exception as exc:
            self._fail(RenderError(f"Writer failed: {exc!r}", stage="writer",
                                   row=self.writer.next_row))

    def _start_threads(self, started):
        """Create and start the writer and workers, appending each to `started`."""
        threads = [threading.Thread(
            target=self._writer_thread, name="multibrot-writer", daemon=True
        )]
        for worker_id in range(self.config.workers):
            threads.append(threading.Thread(
                target=self._worker_thread, args=(worker_id,),
                name=f"multibrot-worker-{worker_id}", daemon=True
            ))
        try:
            for thread in threads:
                thread.start()
                started.append(thread)
        except RuntimeError as exc:
            raise RenderError(f"Could not start thread pool: {exc}", stage="pool") from exc

    def render(self, sink):
        """
        Render the whole image into `sink`.

        The sink receives begin(), then exactly `height` rows in ascending
        order, then finalize(). On any failure it receives abort() instead
        of finalize() and the error is raised.

        Returns:
            RenderStats for the completed image
        """
        config = self.config
        start = time.perf_counter()
        self._reset()
        warmup_jit()

        try:
            sink.begin(config.width, config.height, config.bit_depth, 3)
        except Exception as exc:
            sink.abort()
            raise RenderError(f"Could not open image sink: {exc}", stage="sink") from exc

        try:
            self.writer = RowReassemblyWriter(sink, config.height)
            self._fill_jobs()
        except Exception as exc:
            sink.abort()
            raise RenderError(f"Could not queue rows: {exc}", stage="pool") from exc
        logger.info(
            "rendering %dx%d with %d workers (exponent %g%+gi, depth %d)",
            config.width, config.height, config.workers,
            config.power_r, config.power_i, config.depth
        )

        threads = []
        try:
            self._start_threads(threads)
            for thread in threads:
                thread.join()
        except BaseException:
            self.cancel_event.set()
            for thread in threads:
                thread.join()
            sink.abort()
            raise

        error = self._error
        if error is None and not self.writer.done:
            # Workers stopped on an external cancel before the writer noticed
            error = RenderCancelled("Render cancelled", stage="writer", row=self.writer.next_row)
        if error is not None:
            logger.error("render failed: %s", error)
            sink.abort()
            raise error

        try:
            sink.finalize()
        except Exception as exc:
            sink.abort()
            raise RenderError(f"Could not finalize image: {exc}", stage="sink") from exc

        elapsed = time.perf_counter() - start
        logger.info("rendered %d rows in %.2f seconds", config.height, elapsed)
        return RenderStats(
            rows=self.writer.next_row,
            workers=config.workers,
            elapsed=elapsed,
            peak_buffered=self.writer.peak_buffered,
        )


def render_image(config, sink, cancel=None):
    """
    Render `config` into `sink`; the single entry point for callers.

    Args:
        config: A validated RenderConfig
        sink: Object with begin/write_row/finalize/abort methods
        cancel: Optional event another thread may set to stop the render

    Returns:
        RenderStats on success

    Raises:
        RenderError (or RenderCancelled) if the image could not be completed
    """
    return MultibrotRenderer(config, cancel_event=cancel).render(sink)
