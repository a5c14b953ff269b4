"""
Color mapping for Multibrot images.

A normalized escape value v in [0, 1] becomes one RGB pixel. Each output
byte is base - int(v * coef), which fades from a pale cyan-white at v = 0
to dark blue as v approaches 1. Points inside the set (v >= 1) are black.

At 16 bits per channel every channel has a high and a low byte, stored
high byte first, each with its own base and coefficient.
"""

import numpy as np
from numba import jit


# Per-byte (base, coefficient) tables, in output byte order
BASE_8 = np.array([0xDD, 0xFF, 0xFF], dtype=np.int64)
COEF_8 = np.array([0xAA, 0xFF, 0x77], dtype=np.int64)

BASE_16 = np.array([0xDD, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF], dtype=np.int64)
COEF_16 = np.array([0xAA, 0xFF, 0xFF, 0xFF, 0x77, 0xFF], dtype=np.int64)


@jit(nopython=True, nogil=True, cache=True)
def bytes_per_pixel(bit_depth):
    """Number of bytes one RGB pixel occupies at the given bit depth."""
    return 3 * (bit_depth // 8)


@jit(nopython=True, nogil=True, cache=True)
def color_pixel(v, bit_depth, out, offset):
    """
    Write the color for escape value v into out[offset:offset + bpp].

    Args:
        v: Normalized escape value; v >= 1.0 means inside the set
        bit_depth: 8 or 16
        out: uint8 row buffer (modified in place)
        offset: Index of the pixel's first byte
    """
    if bit_depth == 8:
        base = BASE_8
        coef = COEF_8
    else:
        base = BASE_16
        coef = COEF_16
    n = base.shape[0]
    if v >= 1.0:
        for k in range(n):
            out[offset + k] = 0
        return
    for k in range(n):
        out[offset + k] = np.uint8(base[k] - int(v * coef[k]))


def color_bytes(v, bit_depth):
    """Return the pixel bytes for a single escape value."""
    out = np.zeros(bytes_per_pixel(bit_depth), dtype=np.uint8)
    color_pixel(v, bit_depth, out, 0)
    return out.tobytes()
