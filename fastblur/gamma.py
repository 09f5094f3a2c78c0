"""Gamma transfer between 8-bit encoded samples and linear light.

Two modes are available:

- **exact**: gamma 2.2. Decoding goes through a 256-entry lookup table that is
  built once per :class:`GammaTransfer` instance and frozen afterwards;
  encoding evaluates the inverse power function.
- **fast**: gamma 2.0 stand-in. Decoding squares the normalised sample and
  encoding takes a square root, trading a little accuracy for speed.

A run picks one mode and uses the same instance for both directions, so a
decode/encode round trip never mixes the two curves.

Example Usage
-------------

    from fastblur.gamma import GammaTransfer

    gamma = GammaTransfer.for_mode(fast=False)
    linear = gamma.decode(bitmap)          # uint8 (H, W, 3) -> float32
    encoded = gamma.encode(linear)         # float32 -> uint8
"""
from __future__ import annotations

import functools
import logging
from typing import Optional, Union

import numpy as np

LOGGER = logging.getLogger("fastblur")

GAMMA = 2.2

_SCALE = np.float32(1.0 / 255.0)

ArrayLike = Union[int, float, np.ndarray]


def build_decode_table(gamma: float = GAMMA) -> np.ndarray:
    """Return the read-only 256-entry table mapping encoded bytes to linear floats."""

    samples = np.arange(256, dtype=np.float32) * _SCALE
    table = np.power(samples, np.float32(gamma)).astype(np.float32)
    table.setflags(write=False)
    return table


class GammaTransfer:
    """Converts between 8-bit encoded samples and linear float values.

    Instances are read-only once built, because :meth:`for_mode` shares one
    instance per mode across the whole process.

    Attributes:
        fast: ``True`` for the gamma 2.0 approximation, ``False`` for exact 2.2.
        table: Decode lookup table in exact mode, ``None`` in fast mode.
    """

    __slots__ = ("_fast", "_table", "_inverse")

    def __init__(self, fast: bool = False) -> None:
        self._fast = bool(fast)
        self._table = None if self._fast else build_decode_table(GAMMA)
        self._inverse = np.float32(1.0 / GAMMA)

    @property
    def fast(self) -> bool:
        return self._fast

    @property
    def table(self) -> Optional[np.ndarray]:
        return self._table

    @classmethod
    @functools.lru_cache(maxsize=2)
    def for_mode(cls, fast: bool) -> "GammaTransfer":
        """Return a shared immutable transfer for the requested mode."""

        LOGGER.debug("Building %s gamma transfer", "fast" if fast else "exact")
        return cls(fast=fast)

    @property
    def mode(self) -> str:
        return "fast" if self.fast else "exact"

    def decode(self, encoded: ArrayLike) -> np.ndarray:
        """Map encoded 8-bit samples to linear light in [0, 1]."""

        values = np.asarray(encoded, dtype=np.uint8)
        if self.fast:
            normalised = values.astype(np.float32) * _SCALE
            return normalised * normalised
        return self.table[values]

    def encode(self, linear: ArrayLike) -> np.ndarray:
        """Map linear light values back to 8-bit encoded samples.

        Inputs are expected in [0, 1]; anything outside saturates to the
        nearest bound before the transfer curve is applied.
        """

        values = np.clip(np.asarray(linear, dtype=np.float32), 0.0, 1.0)
        if self.fast:
            curved = np.sqrt(values)
        else:
            curved = np.power(values, self._inverse)
        return np.floor(curved * np.float32(255.0) + np.float32(0.5)).astype(np.uint8)

    def __repr__(self) -> str:
        return f"GammaTransfer(fast={self.fast})"


__all__ = [
    "GAMMA",
    "GammaTransfer",
    "build_decode_table",
]
