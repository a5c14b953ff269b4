"""
Multibrot escape-time computation using Numba JIT compilation.

This module contains the performance-critical per-pixel code. The
functions are compiled with nogil=True so the renderer's worker threads
can evaluate rows in parallel. It handles:
- Mapping pixels to points in the complex plane
- Iterating Z -> Z^(a+bi) + c in polar form with a selectable branch cut
- Smooth (fractional) escape counts normalized to [0, 1]
- Rendering a full scanline of color bytes

Branch cut policies:
- 0: exponent-relative, theta kept in (-b - pi, pi - b]
- 1: origin-relative, theta kept within pi of the point's initial argument
"""

import math

import numpy as np
from numba import jit

from .colormaps import bytes_per_pixel, color_pixel


# Branch cut IDs
BRANCH_EXPONENT = 0     # (-b - pi, pi - b]
BRANCH_ORIGIN = 1       # (br - pi, br + pi]

# Value returned for points inside the set and for degenerate orbits
INSIDE = 1.0

TWO_PI = 2.0 * math.pi


@jit(nopython=True, nogil=True, cache=True)
def pixel_to_complex(x, y, corner_r, corner_i, scale):
    """Map pixel column x, row y to (re, im) given the top-left corner."""
    return corner_r + scale * x, corner_i - scale * y


@jit(nopython=True, nogil=True, cache=True)
def wrap_angle(theta, upper):
    """Shift theta by whole turns into the window (upper - 2*pi, upper]."""
    if theta > upper:
        theta -= TWO_PI * math.ceil((theta - upper) / TWO_PI)
    elif theta <= upper - TWO_PI:
        theta += TWO_PI * math.floor((upper - theta) / TWO_PI)
    return theta


@jit(nopython=True, nogil=True, cache=True)
def calculate_escape(re_c, im_c, power_r, power_i, depth, escape, min_r,
                     shaping, branch_mode):
    """
    Evaluate the orbit of c = re_c + i*im_c under Z -> Z^(a+bi) + c.

    The orbit is carried in polar form as the squared modulus rsq and the
    argument theta, so no square root is taken per step:

        coe = rsq^(a/2) * e^(-b*theta)
        ang = a*theta + b*ln(rsq)/2
        Z'  = coe * (cos(ang) + i*sin(ang)) + c

    Args:
        re_c, im_c: The point c (also Z(0))
        power_r, power_i: Exponent a + bi; a^2 + b^2 must not be 0 or 1
        depth: Maximum iteration count
        escape: Squared modulus at which the orbit has escaped
        min_r: Squared modulus below which the orbit is degenerate
        shaping: Power applied to the normalized escape value
        branch_mode: BRANCH_EXPONENT or BRANCH_ORIGIN

    Returns:
        Smoothed escape value in [0, 1] for escaping points. INSIDE (1.0)
        when the depth is exhausted or the modulus collapses below min_r.
    """
    re = re_c
    im = im_c
    rsq = re * re + im * im
    # log(rsq) below is undefined at the origin
    if rsq < min_r:
        return INSIDE

    theta = math.atan2(im, re)
    upper = math.pi - power_i
    if branch_mode == BRANCH_ORIGIN:
        upper = wrap_angle(theta, upper) + math.pi

    log_power = math.log(power_r * power_r + power_i * power_i)

    for i in range(depth):
        theta = wrap_angle(theta, upper)

        coe = math.pow(rsq, power_r / 2.0) * math.exp(-power_i * theta)
        ang = power_r * theta + 0.5 * power_i * math.log(rsq)

        re = coe * math.cos(ang) + re_c
        im = coe * math.sin(ang) + im_c

        rsq = re * re + im * im
        theta = math.atan2(im, re)

        if rsq < min_r:
            return INSIDE

        if rsq >= escape:
            r = i + 1.0 - 2.0 * math.log(0.5 * math.log(rsq)) / log_power
            r = r / depth
            if r < 0.0:
                r = 0.0
            elif r > 1.0:
                r = 1.0
            return math.pow(r, shaping)

    return INSIDE


@jit(nopython=True, nogil=True, cache=True)
def compute_row(row, width, corner_r, corner_i, scale, power_r, power_i,
                depth, escape, min_r, shaping, branch_mode, bit_depth, out):
    """
    Render one scanline into a preallocated byte buffer.

    Args:
        row: Row index (0 is the top of the image)
        width: Number of pixels in the row
        corner_r, corner_i: Complex coordinate of the top-left pixel
        scale: Complex-plane units per pixel
        power_r ... branch_mode: Passed to calculate_escape
        bit_depth: 8 or 16 bits per channel
        out: uint8 array of width * 3 * bit_depth/8 bytes (modified in place)
    """
    bpp = bytes_per_pixel(bit_depth)
    for x in range(width):
        re_c, im_c = pixel_to_complex(x, row, corner_r, corner_i, scale)
        v = calculate_escape(re_c, im_c, power_r, power_i, depth, escape,
                             min_r, shaping, branch_mode)
        color_pixel(v, bit_depth, out, x * bpp)


def render_row(row, config):
    """
    Render row `row` of the image described by `config`.

    Returns:
        A freshly allocated uint8 array of config.row_bytes bytes.
    """
    out = np.empty(config.row_bytes, dtype=np.uint8)
    compute_row(
        row, config.width, config.corner_r, config.corner_i, config.scale,
        config.power_r, config.power_i, config.depth, config.escape,
        config.min_r, config.shaping, config.branch_mode, config.bit_depth,
        out
    )
    return out


def warmup_jit():
    """
    Warm up JIT compilation with a tiny dummy row.

    Call this once before starting worker threads so the first rows do
    not all wait on the compiler.
    """
    for bit_depth in (8, 16):
        out = np.empty(2 * bytes_per_pixel(bit_depth), dtype=np.uint8)
        compute_row(0, 2, -0.5, 0.5, 0.5, 2.0, 0.0, 4, 49.0, 1e-7, 0.2,
                    BRANCH_EXPONENT, bit_depth, out)
