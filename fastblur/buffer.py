"""Linear-light pixel buffers with explicit stride.

A :class:`PixelBuffer` stores 3-channel (R, G, B) float32 samples row-major in
a flat array. Rows are ``stride`` floats apart, which lets a crop share the
storage of its source without copying.

Key Components
--------------

PixelBuffer
    Owning buffer (allocated, grows on demand) or non-owning view (crop).

BufferPair
    Two buffer slots with an O(1) swap for ping-pong filter passes.

Functions
---------

crop
    Create a non-owning view into a rectangle of a source buffer.

transpose
    Copy a buffer into another with rows and columns exchanged.
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np

LOGGER = logging.getLogger("fastblur")

CHANNELS = 3
_ITEMSIZE = np.dtype(np.float32).itemsize


class StaleViewError(RuntimeError):
    """Raised when a crop view is used after its source storage went away."""


class PixelBuffer:
    """Float32 RGB image buffer in linear color space.

    Attributes:
        width: Pixels per row.
        height: Number of rows.
        stride: Floats between the starts of consecutive rows (>= 3 * width).
        owns: ``True`` for allocated buffers, ``False`` for crop views.
    """

    def __init__(self, width: int = 0, height: int = 0) -> None:
        self.width = 0
        self.height = 0
        self.stride = 0
        self.owns = True
        self._storage = np.empty(0, dtype=np.float32)
        self._offset = 0
        self._generation = 0
        self._source: Optional[PixelBuffer] = None
        if width or height:
            self.ensure_size(width, height)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Create an owning buffer holding a copy of an ``(H, W, 3)`` array."""

        data = np.asarray(array, dtype=np.float32)
        if data.ndim != 3 or data.shape[2] != CHANNELS:
            raise ValueError(f"Expected an (H, W, 3) array, got shape {data.shape}")
        height, width = data.shape[:2]
        buffer = cls(width, height)
        buffer.pixels[...] = data
        return buffer

    @property
    def capacity(self) -> int:
        """Number of floats available in the underlying storage."""

        return int(self._storage.size)

    @property
    def generation(self) -> int:
        return self._generation

    def ensure_size(self, width: int, height: int) -> "PixelBuffer":
        """Resize to ``width`` x ``height``, reallocating only when capacity is short.

        The stride becomes ``3 * width``. Pixel contents are unspecified after
        a resize that changes the stride.
        """

        if not self.owns:
            raise ValueError("Cannot resize a non-owning view")
        if width <= 0 or height <= 0:
            raise ValueError(f"Buffer dimensions must be positive, got {width}x{height}")

        required = CHANNELS * width * height
        if required > self.capacity:
            LOGGER.debug(
                "Growing pixel buffer from %s to %s floats", self.capacity, required
            )
            self._storage = np.empty(required, dtype=np.float32)
            self._generation += 1
        elif CHANNELS * width != self.stride:
            # Same storage, new row layout; views taken before are meaningless now.
            self._generation += 1

        self.width = width
        self.height = height
        self.stride = CHANNELS * width
        return self

    resize = ensure_size

    def release(self) -> None:
        """Free the storage of an owning buffer."""

        if not self.owns:
            raise ValueError("Cannot release a non-owning view")
        self._storage = np.empty(0, dtype=np.float32)
        self._generation += 1
        self.width = self.height = self.stride = 0

    def _check_alive(self) -> None:
        source = self._source
        if source is not None and source.generation != self._generation:
            raise StaleViewError("Crop view used after its source buffer was resized or released")

    @property
    def pixels(self) -> np.ndarray:
        """Return an ``(height, width, 3)`` float32 view over the buffer samples."""

        self._check_alive()
        if self.width == 0 or self.height == 0:
            return np.empty((0, 0, CHANNELS), dtype=np.float32)
        return np.ndarray(
            shape=(self.height, self.width, CHANNELS),
            dtype=np.float32,
            buffer=self._storage,
            offset=self._offset * _ITEMSIZE,
            strides=(self.stride * _ITEMSIZE, CHANNELS * _ITEMSIZE, _ITEMSIZE),
        )

    def to_array(self) -> np.ndarray:
        """Return a contiguous ``(H, W, 3)`` copy of the buffer."""

        return np.ascontiguousarray(self.pixels)

    def copy(self) -> "PixelBuffer":
        """Return an owning deep copy (views become owning buffers)."""

        return PixelBuffer.from_array(self.pixels)

    def shares_storage_with(self, other: "PixelBuffer") -> bool:
        return self._storage is other._storage and self.capacity > 0

    def __repr__(self) -> str:
        kind = "owning" if self.owns else "view"
        return f"PixelBuffer({self.width}x{self.height}, stride={self.stride}, {kind})"


def crop(source: PixelBuffer, width: int, height: int, x: int, y: int) -> PixelBuffer:
    """Return a non-owning view of a ``width`` x ``height`` rectangle at ``(x, y)``.

    The view shares storage and stride with ``source``. It must not be used
    after ``source`` is resized or released; doing so raises
    :class:`StaleViewError`.

    Raises:
        ValueError: If the rectangle is empty or falls outside ``source``.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Crop dimensions must be positive, got {width}x{height}")
    if x < 0 or y < 0 or x + width > source.width or y + height > source.height:
        raise ValueError(
            f"Crop {width}x{height}+{x}+{y} exceeds source bounds "
            f"{source.width}x{source.height}"
        )
    source._check_alive()  # pylint: disable=protected-access

    owner = source._source or source  # pylint: disable=protected-access
    view = PixelBuffer()
    view.owns = False
    view.width = width
    view.height = height
    view.stride = source.stride
    view._storage = source._storage  # pylint: disable=protected-access
    view._offset = source._offset + y * source.stride + CHANNELS * x  # pylint: disable=protected-access
    view._source = owner  # pylint: disable=protected-access
    view._generation = owner.generation  # pylint: disable=protected-access
    return view


def transpose(source: PixelBuffer, destination: Optional[PixelBuffer] = None) -> PixelBuffer:
    """Copy ``source`` into ``destination`` with rows and columns exchanged.

    ``destination`` is resized to ``source.height`` x ``source.width`` and must
    not share storage with ``source``. A new owning buffer is allocated when
    no destination is given.
    """
    if destination is None:
        destination = PixelBuffer()
    if destination is source or destination.shares_storage_with(source):
        raise ValueError("Transpose source and destination must not share storage")

    src = source.pixels
    destination.ensure_size(source.height, source.width)
    destination.pixels[...] = src.transpose(1, 0, 2)
    return destination


class BufferPair:
    """Front/back buffer slots for ping-pong passes."""

    def __init__(self, front: PixelBuffer, back: Optional[PixelBuffer] = None) -> None:
        self.front = front
        self.back = back if back is not None else PixelBuffer()

    def swap(self) -> None:
        self.front, self.back = self.back, self.front


__all__ = [
    "CHANNELS",
    "BufferPair",
    "PixelBuffer",
    "StaleViewError",
    "crop",
    "transpose",
]
