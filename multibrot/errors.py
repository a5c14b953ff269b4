"""
Exception types raised by the Multibrot renderer.

Configuration problems are reported before any thread starts. Anything that
goes wrong while rows are in flight is fatal for the whole image and surfaces
as a RenderError naming the stage (and row, when known) that failed.
"""


class MultibrotError(Exception):
    """Base class for all renderer errors."""


class ConfigError(MultibrotError, ValueError):
    """Invalid render configuration."""


class SinkError(MultibrotError):
    """Image sink misuse or encoding failure."""


class RenderError(MultibrotError):
    """
    Fatal failure while rendering an image.

    Attributes:
        stage: Pipeline stage that failed ("worker", "writer", "sink", "pool")
        row: Row index being processed, or None if not row-specific
    """

    def __init__(self, message, stage=None, row=None):
        self.stage = stage
        self.row = row
        parts = []
        if stage is not None:
            parts.append(f"stage={stage}")
        if row is not None:
            parts.append(f"row={row}")
        if parts:
            message = f"{message} ({', '.join(parts)})"
        super().__init__(message)


class RenderCancelled(RenderError):
    """The render was cancelled before every row was written."""


class ReassemblyError(RenderError):
    """A row was delivered twice, out of range, or after it was flushed."""
