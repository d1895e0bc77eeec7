"""Per-pixel maths: plane mapping, smoothed escape time, colouring.

Everything here is pure. The same functions run in the calling thread for
the sequential strategy and in pool threads for the parallel ones, so the
output is bit-identical whichever strategy produced it.
"""

from __future__ import annotations

import math
import threading

import numpy as np

from mandelpool.errors import MandelbrotError
from mandelpool.models import Viewport, WorkResult, WorkUnit

LN2 = math.log(2)
BLACK = 0x000000


class UnitCancelled(MandelbrotError):
    """Raised inside a worker when the pool asked in-flight units to stop."""


def _ln(x: float) -> float:
    # IEEE semantics: -inf at zero, nan for negatives and nan
    if x > 0:
        return math.log(x)
    if x == 0:
        return -math.inf
    return math.nan


def pixel_to_complex(viewport: Viewport, px: int, py: int) -> tuple[float, float]:
    """Map a pixel to its sample point in the complex plane."""
    cx = viewport.x_min + (viewport.x_max - viewport.x_min) * px / viewport.width
    cy = viewport.y_min + (viewport.y_max - viewport.y_min) * py / viewport.height
    return cx, cy


def iterate(cx: float, cy: float, max_iterations: int) -> float:
    """Smoothed escape-time count for c = cx + i*cy.

    Returns exactly ``max_iterations`` for points presumed inside the set.
    Escaping points get the normalized count ``n + 1 - nu``, which can be
    non-finite for degenerate inputs; it is returned as is.
    """
    zx = zy = 0.0
    iterations = 0

    while zx * zx + zy * zy < 4.0 and iterations < max_iterations:
        temp = zx * zx - zy * zy + cx
        zy = 2.0 * zx * zy + cy
        zx = temp
        iterations += 1

    if iterations < max_iterations:
        log_zn = _ln(zx * zx + zy * zy) / 2.0
        nu = _ln(log_zn / LN2) / LN2
        return iterations + 1 - nu

    return float(iterations)


def _channel(value: float) -> int:
    # Truncates toward zero, like an integer cast
    if not math.isfinite(value):
        return 0
    return int(value * 255)


def hsv_to_rgb(h: float, s: float, v: float) -> int:
    """Convert HSV (h in degrees, s and v nominally 0-1) to packed 0xRRGGBB.

    Channels are not clamped: a value above 1.0 yields a channel above 255,
    which is packed without masking.
    """
    c = v * s
    x = c * (1 - abs((h / 60.0) % 2 - 1))
    m = v - c

    if h < 60:
        r, g, b = c, x, 0.0
    elif h < 120:
        r, g, b = x, c, 0.0
    elif h < 180:
        r, g, b = 0.0, c, x
    elif h < 240:
        r, g, b = 0.0, x, c
    elif h < 300:
        r, g, b = x, 0.0, c
    else:
        r, g, b = c, 0.0, x

    return (_channel(r + m) << 16) | (_channel(g + m) << 8) | _channel(b + m)


def unpack_rgb(color: int) -> tuple[int, int, int]:
    """Split a packed colour into 8-bit channels."""
    return (color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF


def color_of(iterations: float, max_iterations: int) -> int:
    """Map a smoothed iteration count to a colour.

    Low counts fall in a dark-to-medium blue band; counts near the bound
    (the set's boundary) go yellow to red and brighten towards white.
    Points in the set are black.
    """
    if iterations >= max_iterations:
        return BLACK

    # Logarithmic normalization spreads the colours more evenly
    t = _ln(iterations + 1) / math.log(max_iterations + 1)

    if t < 0.5:
        hue = 220.0
        saturation = 1.0 - t * 0.4
        value = 0.2 + t * 0.6
    else:
        t2 = (t - 0.5) * 2.0
        hue = 60 - t2 * 60
        saturation = 1.0 - t2 * 0.8
        value = 0.6 + t2 * 0.4 + t2 ** 2 * 0.3

    return hsv_to_rgb(hue, saturation, value)


def pixel_color(viewport: Viewport, px: int, py: int, max_iterations: int) -> int:
    cx, cy = pixel_to_complex(viewport, px, py)
    return color_of(iterate(cx, cy, max_iterations), max_iterations)


def compute_unit(
    unit: WorkUnit,
    viewport: Viewport,
    max_iterations: int,
    cancel: threading.Event | None = None,
) -> WorkResult:
    """Compute every pixel of one unit.

    The cancel event is checked once per scanline so a shutdown can
    interrupt a long tile without waiting for all of it.
    """
    start_x, start_y, end_x, end_y = unit.bounds(viewport.width)
    pixels = np.empty((end_x - start_x) * (end_y - start_y), dtype=np.uint32)

    i = 0
    for py in range(start_y, end_y):
        if cancel is not None and cancel.is_set():
            raise UnitCancelled(f"{unit} cancelled")
        for px in range(start_x, end_x):
            pixels[i] = pixel_color(viewport, px, py, max_iterations)
            i += 1

    return WorkResult(unit=unit, pixels=pixels)
