"""
Multibrot Renderer Package

Renders the generalized Mandelbrot set Z -> Z^(a+bi) + c to a PNG image
using a pool of threads running Numba JIT-compiled kernels, writing rows
strictly top to bottom as they complete.

Quick Start:
    from multibrot import RenderConfig, PngImageSink, render_image
    config = RenderConfig(width=800, height=600, scale=0.004)
    render_image(config, PngImageSink("multibrot.png"))

Or from command line:
    multibrot -w 800 -h 600 -s 0.004 -a 3
    python -m multibrot --help

Package Structure:
    - config.py: RenderConfig and settings.json defaults
    - compute.py: JIT-compiled escape-time and row functions
    - colormaps.py: Escape value to RGB bytes (8 or 16 bit)
    - renderer.py: Worker pool and ordered row writer
    - image_sink.py: PNG and in-memory image sinks
    - app.py: Command-line application
    - benchmark.py: Timed exponent sweeps
"""

from .config import RenderConfig, load_settings
from .errors import (
    ConfigError,
    MultibrotError,
    ReassemblyError,
    RenderCancelled,
    RenderError,
    SinkError,
)
from .image_sink import ArrayImageSink, ImageSink, PngImageSink
from .renderer import (
    MultibrotRenderer,
    RenderStats,
    RowReassemblyWriter,
    RowResult,
    render_image,
)

__version__ = "1.0.0"
__all__ = [
    "RenderConfig",
    "load_settings",
    "ConfigError",
    "MultibrotError",
    "ReassemblyError",
    "RenderCancelled",
    "RenderError",
    "SinkError",
    "ArrayImageSink",
    "ImageSink",
    "PngImageSink",
    "MultibrotRenderer",
    "RenderStats",
    "RowReassemblyWriter",
    "RowResult",
    "render_image",
]
