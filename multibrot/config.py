"""
Render configuration for the Multibrot renderer.

A RenderConfig is built once per render and shared read-only by every
worker. Defaults come from the packaged settings.json; anything missing
there falls back to the built-in values below.
"""

import copy
import json
import logging
import math
import numbers
import os
from dataclasses import dataclass, field, replace

from .colormaps import bytes_per_pixel
from .compute import BRANCH_EXPONENT, BRANCH_ORIGIN, pixel_to_complex
from .errors import ConfigError

logger = logging.getLogger(__name__)

SETTINGS_PATH = os.path.join(os.path.dirname(__file__), 'settings.json')

DEFAULT_SETTINGS = {
    'image': {
        'width': 1920,
        'height': 1080,
        'scale': 0.002,
        'center_r': -0.5,
        'center_i': 0.0,
        'power_r': 2.0,
        'power_i': 0.0,
        'workers': 4,
        'bit_depth': 16,
        'branch_cut': 'exponent',
    },
    'algorithm': {
        'depth': 2000,
        'escape': 49.0,
        'min_r': 1e-7,
        'shaping': 0.2,
    },
    'min_dim': 100,
    'output_dir': './Output',
}

BRANCH_CUTS = {
    'exponent': BRANCH_EXPONENT,
    'origin': BRANCH_ORIGIN,
}

BIT_DEPTHS = (8, 16)

INTEGER_FIELDS = ("width", "height", "workers", "bit_depth", "depth", "min_dim")

FINITE_FIELDS = ("scale", "center_r", "center_i", "power_r", "power_i",
                 "escape", "min_r", "shaping")


def _merge(base, overrides):
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(path=None):
    """
    Load settings from a settings.json file.

    Values in the file override DEFAULT_SETTINGS key by key, so a partial
    file is fine. A missing or malformed file logs a warning and yields
    the defaults.
    """
    settings_path = path or SETTINGS_PATH
    try:
        with open(settings_path, 'r') as f:
            loaded = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError) as e:
        logger.warning("Could not load %s: %s", settings_path, e)
        return copy.deepcopy(DEFAULT_SETTINGS)
    if not isinstance(loaded, dict):
        logger.warning("Ignoring %s: top level is not an object", settings_path)
        return copy.deepcopy(DEFAULT_SETTINGS)
    return _merge(DEFAULT_SETTINGS, loaded)


SETTINGS = load_settings()

MIN_DIM = int(SETTINGS['min_dim'])


@dataclass(frozen=True)
class RenderConfig:
    """
    Parameters describing a single Multibrot render.

    Attributes:
        width, height: Image dimensions in pixels (each >= MIN_DIM)
        scale: Complex-plane units per pixel
        center_r, center_i: Point at the center of the image
        power_r, power_i: Exponent a + bi of the recursion Z -> Z^(a+bi) + c
        workers: Number of worker threads
        bit_depth: Bits per color channel (8 or 16)
        branch_cut: "exponent" keeps theta in (-b - pi, pi - b];
            "origin" keeps it within pi of the point's initial argument
        depth: Maximum iteration count
        escape: Squared modulus at which an orbit counts as escaped
        min_r: Squared modulus below which an orbit counts as degenerate
        shaping: Power applied to the normalized escape value
    """

    width: int
    height: int
    scale: float
    center_r: float = -0.5
    center_i: float = 0.0
    power_r: float = 2.0
    power_i: float = 0.0
    workers: int = 4
    bit_depth: int = 16
    branch_cut: str = 'exponent'
    depth: int = 2000
    escape: float = 49.0
    min_r: float = 1e-7
    shaping: float = 0.2
    min_dim: int = field(default=MIN_DIM, repr=False)

    def __post_init__(self):
        for name in INTEGER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        for name in FINITE_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, numbers.Real) or not math.isfinite(value):
                raise ConfigError(f"{name} must be a finite number, got {value!r}")
        if self.width < self.min_dim or self.height < self.min_dim:
            raise ConfigError(
                f"Dimensions are too small: {self.width} x {self.height} "
                f"(min: {self.min_dim})"
            )
        if not self.scale > 0:
            raise ConfigError(f"Scale must be a positive number, got {self.scale}")
        if self.workers < 1:
            raise ConfigError(f"Need at least one worker, got {self.workers}")
        if self.bit_depth not in BIT_DEPTHS:
            raise ConfigError(f"Bit depth must be 8 or 16, got {self.bit_depth}")
        if self.branch_cut not in BRANCH_CUTS:
            raise ConfigError(
                f"Unknown branch cut {self.branch_cut!r}; "
                f"choose one of {', '.join(sorted(BRANCH_CUTS))}"
            )
        if self.depth < 1:
            raise ConfigError(f"Depth must be at least 1, got {self.depth}")
        if not self.escape > 1.0:
            raise ConfigError(f"Escape threshold must exceed 1.0, got {self.escape}")
        if not 0.0 < self.min_r < self.escape:
            raise ConfigError(
                f"min_r must lie between 0 and the escape threshold, got {self.min_r}"
            )
        if not self.shaping > 0.0:
            raise ConfigError(f"Shaping exponent must be positive, got {self.shaping}")
        modulus_sq = self.power_r * self.power_r + self.power_i * self.power_i
        # Smoothing divides by log(a^2 + b^2)
        if modulus_sq == 0.0 or modulus_sq == 1.0:
            raise ConfigError(
                f"Exponent {self.power_r}{self.power_i:+}i has modulus "
                f"{math.sqrt(modulus_sq)}; it must differ from 0 and 1"
            )

    @classmethod
    def from_settings(cls, settings=None, **overrides):
        """
        Build a config from settings.json defaults.

        Keyword overrides whose value is None are ignored, so parsed
        command-line options can be passed straight through.
        """
        settings = settings if settings is not None else SETTINGS
        values = dict(settings['image'])
        values.update(settings['algorithm'])
        values['min_dim'] = settings['min_dim']
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def with_changes(self, **changes):
        """Return a validated copy with some fields replaced."""
        return replace(self, **changes)

    @property
    def corner_r(self):
        """Real part of the top-left pixel."""
        return self.center_r - self.scale * self.width / 2.0

    @property
    def corner_i(self):
        """Imaginary part of the top-left pixel."""
        return self.center_i + self.scale * self.height / 2.0

    @property
    def branch_mode(self):
        return BRANCH_CUTS[self.branch_cut]

    @property
    def bytes_per_pixel(self):
        return bytes_per_pixel(self.bit_depth)

    @property
    def row_bytes(self):
        return self.width * self.bytes_per_pixel

    def pixel_to_complex(self, x, y):
        """Map pixel (x, y) to its point in the complex plane."""
        return pixel_to_complex(x, y, self.corner_r, self.corner_i, self.scale)
