"""Raw interleaved pixel streams: layout descriptors and decoding.

A raw stream has no header, so its layout comes from a descriptor such as
``bgra:640x480``. The layout names the byte order inside each pixel; an
alpha byte may lead (``argb``, ``abgr``) or trail (``rgba``, ``bgra``) and is
skipped when extracting colour.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from typing import Tuple

import numpy as np

LOGGER = logging.getLogger("fastblur")

RAW_LAYOUTS = ("rgb", "rgba", "argb", "bgr", "bgra", "abgr")

_DESCRIPTOR_PATTERN = re.compile(
    r"^\s*(?P<layout>[A-Za-z]+)\s*:\s*(?P<width>\d+)\s*[xX]\s*(?P<height>\d+)\s*$"
)


class RawFormatError(ValueError):
    """Raised when a raw layout descriptor cannot be understood."""


@dataclasses.dataclass(frozen=True)
class RawImageFormat:
    """Layout of a headerless interleaved 8-bit pixel stream.

    Attributes:
        layout: One of :data:`RAW_LAYOUTS`.
        width: Pixels per row.
        height: Number of rows.
    """

    layout: str
    width: int
    height: int

    def __post_init__(self) -> None:
        layout = self.layout.lower()
        if layout not in RAW_LAYOUTS:
            raise RawFormatError(
                f"Unknown raw layout {self.layout!r}; choose from {', '.join(RAW_LAYOUTS)}"
            )
        object.__setattr__(self, "layout", layout)
        if self.width <= 0 or self.height <= 0:
            raise RawFormatError(f"Raw size must be positive, got {self.width}x{self.height}")

    @classmethod
    def parse(cls, text: str) -> "RawImageFormat":
        """Parse a ``LAYOUT:WIDTHxHEIGHT`` descriptor.

        Raises:
            RawFormatError: If the descriptor is malformed or names an unknown layout.
        """
        match = _DESCRIPTOR_PATTERN.match(text or "")
        if match is None:
            raise RawFormatError(
                f"Invalid raw format {text!r}; expected LAYOUT:WIDTHxHEIGHT, e.g. rgba:640x480"
            )
        return cls(match.group("layout"), int(match.group("width")), int(match.group("height")))

    @property
    def alpha_first(self) -> bool:
        return self.layout.startswith("a")

    @property
    def alpha_last(self) -> bool:
        return len(self.layout) == 4 and self.layout.endswith("a")

    @property
    def channels(self) -> int:
        return len(self.layout)

    @property
    def offsets(self) -> Tuple[int, int, int]:
        """Byte offsets of the red, green and blue samples within one pixel."""

        color = self.layout[1:] if self.alpha_first else self.layout[:3]
        shift = 1 if self.alpha_first else 0
        return tuple(color.index(name) + shift for name in "rgb")  # type: ignore[return-value]

    @property
    def frame_size(self) -> int:
        return self.width * self.height * self.channels

    def __str__(self) -> str:
        return f"{self.layout}:{self.width}x{self.height}"


class TruncatedRawStreamError(RuntimeError):
    """Raised when a raw stream holds fewer bytes than its format requires."""

    def __init__(self, expected: int, actual: int, source: str = "raw stream") -> None:
        super().__init__(
            f"{source} is truncated: expected {expected} bytes, found {actual}"
        )
        self.expected = expected
        self.actual = actual
        self.source = source


def decode_raw(data: bytes, fmt: RawImageFormat, *, source: str = "raw stream") -> np.ndarray:
    """Extract a packed ``(H, W, 3)`` uint8 RGB bitmap from raw bytes.

    Raises:
        TruncatedRawStreamError: If ``data`` is shorter than ``fmt.frame_size``.
    """
    expected = fmt.frame_size
    if len(data) < expected:
        raise TruncatedRawStreamError(expected, len(data), source)
    if len(data) > expected:
        LOGGER.warning(
            "Ignoring %s trailing byte(s) in %s (%s)", len(data) - expected, source, fmt
        )

    interleaved = np.frombuffer(data, dtype=np.uint8, count=expected)
    interleaved = interleaved.reshape(fmt.height, fmt.width, fmt.channels)
    return np.ascontiguousarray(interleaved[:, :, list(fmt.offsets)])


__all__ = [
    "RAW_LAYOUTS",
    "RawFormatError",
    "RawImageFormat",
    "TruncatedRawStreamError",
    "decode_raw",
]
