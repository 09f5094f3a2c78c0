"""Recursive moving-average filter and the multi-pass blur built on it.

The horizontal filter computes the first output of each row by summing the
clamped kernel window, then derives every following output from the previous
one by adding the sample entering the window and subtracting the one leaving
it. The cost per row is O(width) whatever the kernel size, so wide blurs cost
the same as narrow ones.

Only the horizontal direction is implemented. The vertical direction is
blurred by transposing the buffer, running the same horizontal passes and
transposing back, which keeps every pass walking contiguous memory.

Repeating a box filter converges towards a Gaussian, so ``box_blur`` applies
the filter ``passes`` times along each axis.
"""
from __future__ import annotations

import logging
import math

import numpy as np

from .buffer import BufferPair, PixelBuffer, transpose

LOGGER = logging.getLogger("fastblur")


def validate_kernel_size(kernel_size: int) -> int:
    """Return ``kernel_size`` when it is a positive odd integer, else raise ``ValueError``."""

    if isinstance(kernel_size, bool) or int(kernel_size) != kernel_size:
        raise ValueError(f"kernel size must be an integer, got {kernel_size!r}")
    kernel_size = int(kernel_size)
    if kernel_size < 1 or kernel_size % 2 == 0:
        raise ValueError(f"kernel size must be a positive odd integer, got {kernel_size}")
    return kernel_size


def validate_passes(passes: int) -> int:
    if isinstance(passes, bool) or int(passes) != passes or passes < 1:
        raise ValueError(f"pass count must be a positive integer, got {passes!r}")
    return int(passes)


def moving_average_h(source: PixelBuffer, destination: PixelBuffer, kernel_size: int) -> PixelBuffer:
    """Apply one horizontal box-filter pass from ``source`` into ``destination``.

    Edges are clamped: samples outside the row repeat the nearest edge sample.
    All rows are advanced together; the recurrence along each row is carried
    by a running sum.

    Args:
        source: Buffer to read. Never modified.
        destination: Buffer to write, resized to match ``source``.
        kernel_size: Odd window width in pixels.

    Returns:
        ``destination``.
    """
    n = validate_kernel_size(kernel_size)
    if destination is source or destination.shares_storage_with(source):
        raise ValueError("Filter source and destination must not share storage")

    src = source.pixels
    destination.ensure_size(source.width, source.height)
    dst = destination.pixels

    if n == 1:
        dst[...] = src
        return destination

    width = source.width
    a = np.float32(1.0 / n)
    p = (n - 1) // 2
    q = p + 1

    # Left half of the first window is q copies of the edge sample; indices
    # 1..q-1 past the row end repeat the last sample.
    first = dst[:, 0, :]
    np.multiply(src[:, 0, :], np.float32(q) * a, out=first)
    stop = min(q, width)
    head = src[:, 1:stop, :].sum(axis=1, dtype=np.float32)
    if q > stop:
        head += np.float32(q - stop) * src[:, width - 1, :]
    head *= a
    first += head

    if width > 1:
        # steps[x - 1] = src[min(x + p, W - 1)] - src[max(x - q, 0)], built in place.
        steps = dst[:, 1:, :]
        inside = max(width - 1 - p, 0)
        if inside:
            steps[:, :inside, :] = src[:, 1 + p:width, :]
        steps[:, inside:, :] = src[:, width - 1:width, :]
        clamped = min(q, width - 1)
        steps[:, :clamped, :] -= src[:, 0:1, :]
        if width - 1 > q:
            steps[:, clamped:, :] -= src[:, 1:width - q, :]
        steps *= a
        np.cumsum(steps, axis=1, out=steps)
        steps += first.copy()[:, None, :]
    return destination


def box_blur(buffer: PixelBuffer, kernel_size: int, passes: int) -> PixelBuffer:
    """Blur both axes with ``passes`` box-filter passes per axis.

    Horizontal passes run first, then the image is transposed so the same
    horizontal routine filters the original columns, and transposed back.

    ``buffer`` is used as one of the two ping-pong buffers when it owns its
    storage, so its contents are not preserved. A crop view is copied first
    and left untouched.

    Returns:
        The buffer holding the blurred image: ``buffer`` itself for owning
        inputs, since the ping-pong pair is swapped an even number of times.
    """
    kernel_size = validate_kernel_size(kernel_size)
    passes = validate_passes(passes)
    if not buffer.owns:
        buffer = buffer.copy()

    LOGGER.debug(
        "Box blur %sx%s kernel=%s passes=%s", buffer.width, buffer.height, kernel_size, passes
    )
    pair = BufferPair(buffer)
    for _ in range(passes):
        moving_average_h(pair.front, pair.back, kernel_size)
        pair.swap()

    transpose(pair.front, pair.back)
    pair.swap()

    for _ in range(passes):
        moving_average_h(pair.front, pair.back, kernel_size)
        pair.swap()

    transpose(pair.front, pair.back)
    pair.swap()
    return pair.front


def effective_sigma(kernel_size: int, passes: int) -> float:
    """Standard deviation of ``passes`` chained box filters of width ``kernel_size``."""

    n = validate_kernel_size(kernel_size)
    return math.sqrt(validate_passes(passes) * (n * n - 1) / 12.0)


def kernel_size_for_sigma(sigma: float, passes: int) -> int:
    """Odd box width whose ``passes`` repetitions best approximate a Gaussian of ``sigma``."""

    if sigma < 0:
        raise ValueError(f"sigma must be non-negative, got {sigma}")
    ideal = math.sqrt(12.0 * sigma * sigma / validate_passes(passes) + 1.0)
    lower = int(math.floor(ideal))
    if lower % 2 == 0:
        lower -= 1
    lower = max(lower, 1)
    upper = lower + 2
    return lower if ideal - lower <= upper - ideal else upper


__all__ = [
    "box_blur",
    "effective_sigma",
    "kernel_size_for_sigma",
    "moving_average_h",
    "validate_kernel_size",
    "validate_passes",
]
