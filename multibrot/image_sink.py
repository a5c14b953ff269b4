"""
Image sinks that receive rendered rows in order.

A sink is told the image header once (begin), then gets exactly `height`
rows top to bottom (write_row), then either finalize() on success or
abort() on failure. Row bytes are RGB, 1 byte per channel at 8-bit depth
and 2 big-endian bytes per channel at 16-bit depth.

- ArrayImageSink keeps the image in memory as a numpy array
- PngImageSink writes a PNG file; the file only appears once complete
"""

import logging
import os
import zlib

import numpy as np
import png

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
import pygame  # noqa: E402

from .colormaps import bytes_per_pixel
from .errors import SinkError

logger = logging.getLogger(__name__)


class ImageSink:
    """
    Base sink: validates the row protocol and hands each row to a subclass.

    Subclasses override _open() to prepare storage once the header is
    known, _store_row() to take one validated row, _save() to do something
    with the finished image and _discard() to clean up after an abort.

    Attributes:
        width, height, bit_depth: Header passed to begin()
        rows_written: Number of rows received so far
    """

    def __init__(self):
        self.width = None
        self.height = None
        self.bit_depth = None
        self.rows_written = 0
        self.finalized = False
        self.aborted = False

    def begin(self, width, height, bit_depth, channels=3):
        """Accept the image header. Must be called once, before any row."""
        if self.width is not None:
            raise SinkError("Image header already written")
        if bit_depth not in (8, 16):
            raise SinkError(f"Unsupported bit depth: {bit_depth}")
        if channels != 3:
            raise SinkError(f"Only RGB images are supported, got {channels} channels")
        self.width = width
        self.height = height
        self.bit_depth = bit_depth
        self._open()

    @property
    def row_bytes(self):
        return self.width * bytes_per_pixel(self.bit_depth)

    def write_row(self, pixels):
        """Accept the next row of color bytes."""
        if self.width is None:
            raise SinkError("Row written before image header")
        if self.finalized or self.aborted:
            raise SinkError("Row written after the image was closed")
        if self.rows_written >= self.height:
            raise SinkError(f"Image already has all {self.height} rows")
        data = np.frombuffer(pixels, dtype=np.uint8)
        if data.size != self.row_bytes:
            raise SinkError(
                f"Row {self.rows_written} has {data.size} bytes, expected {self.row_bytes}"
            )
        self._store_row(self.rows_written, data)
        self.rows_written += 1

    def finalize(self):
        """Finish the image once every row has arrived."""
        if self.width is None:
            raise SinkError("Finalize called before image header")
        if self.finalized:
            raise SinkError("Image already finalized")
        if self.rows_written != self.height:
            raise SinkError(
                f"Image incomplete: {self.rows_written} of {self.height} rows written"
            )
        self._save()
        self.finalized = True

    def abort(self):
        """Discard the image. Safe to call at any point, more than once."""
        if self.finalized:
            return
        self.aborted = True
        self._discard()

    def _open(self):
        pass

    def _store_row(self, index, data):
        pass

    def _save(self):
        pass

    def _discard(self):
        pass


class ArrayImageSink(ImageSink):
    """
    Keeps the finished image in memory.

    Attributes:
        image: (height, width, 3) array of uint8 or uint16 pixels
    """

    def __init__(self):
        super().__init__()
        self.image = None

    def _open(self):
        dtype = np.uint8 if self.bit_depth == 8 else np.uint16
        self.image = np.zeros((self.height, self.width, 3), dtype=dtype)

    def _store_row(self, index, data):
        if self.bit_depth == 16:
            data = data.view('>u2')
        self.image[index] = data.reshape(self.width, 3)

    def _discard(self):
        self.image = None


class PngImageSink(ImageSink):
    """
    Writes the image as an RGB PNG file.

    The image is encoded to a hidden temporary file next to `path` and
    renamed into place, so an aborted or failed render never leaves a
    partial PNG behind.

    16-bit images are streamed: each row is compressed into the temporary
    file with pypng as it arrives, so only the zlib window is held in
    memory. 8-bit images are collected and saved with pygame, whose
    surfaces need the whole image at once.

    Usage:
        sink = PngImageSink("Output/multibrot.png")
        render_image(config, sink)
    """

    def __init__(self, path, chunk_limit=2 ** 20):
        super().__init__()
        self.path = os.fspath(path)
        self.chunk_limit = chunk_limit
        directory, name = os.path.split(self.path)
        stem, ext = os.path.splitext(name)
        self.partial_path = os.path.join(directory, f".{stem}.partial{ext or '.png'}")
        self.image = None
        self._file = None
        self._compressor = None
        self._pending = bytearray()

    def _open(self):
        if self.bit_depth == 8:
            self.image = np.zeros((self.height, self.width, 3), dtype=np.uint8)
            return
        writer = png.Writer(
            width=self.width, height=self.height, greyscale=False, bitdepth=16
        )
        try:
            self._file = open(self.partial_path, 'wb')
            writer.write_preamble(self._file)
        except (OSError, png.Error) as exc:
            self._discard()
            raise SinkError(f"Could not start {self.path}: {exc}") from exc
        self._compressor = zlib.compressobj()

    def _store_row(self, index, data):
        if self.bit_depth == 8:
            self.image[index] = data.reshape(self.width, 3)
            return
        # Filter type 0; the row bytes are already big-endian samples
        self._pending.append(0)
        self._pending.extend(data.tobytes())
        if len(self._pending) > self.chunk_limit:
            # Sync flush so the compressed rows reach the file now
            compressed = self._compressor.compress(bytes(self._pending))
            compressed += self._compressor.flush(zlib.Z_SYNC_FLUSH)
            self._pending = bytearray()
            self._write_idat(compressed)

    def _write_idat(self, compressed):
        if not compressed:
            return
        try:
            png.write_chunk(self._file, b'IDAT', compressed)
            self._file.flush()
        except OSError as exc:
            self._discard()
            raise SinkError(f"Could not write {self.path}: {exc}") from exc

    def _save(self):
        try:
            if self.bit_depth == 8:
                surface = pygame.surfarray.make_surface(self.image.swapaxes(0, 1))
                pygame.image.save(surface, self.partial_path)
            else:
                tail = self._compressor.compress(bytes(self._pending))
                self._pending = bytearray()
                self._write_idat(tail + self._compressor.flush())
                png.write_chunk(self._file, b'IEND')
                self._file.close()
                self._file = None
            os.replace(self.partial_path, self.path)
        except (OSError, pygame.error, png.Error) as exc:
            self._discard()
            raise SinkError(f"Could not write {self.path}: {exc}") from exc
        logger.info("wrote %s", self.path)

    def _discard(self):
        self.image = None
        self._compressor = None
        self._pending = bytearray()
        if self._file is not None:
            self._file.close()
            self._file = None
        try:
            os.remove(self.partial_path)
        except FileNotFoundError:
            pass
