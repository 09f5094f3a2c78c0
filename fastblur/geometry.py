"""Fill-resize geometry: target parsing, crop rectangles and nearest-neighbour scaling.

A fill resize first crops the source to the target aspect ratio, keeping as
much area as possible, then scales the crop to the exact target size. The
``anchor`` picks where inside the excess the crop window sits: 0 keeps the
top/left edge, 1 the bottom/right edge, 0.5 centres it.
"""
from __future__ import annotations

import dataclasses
import logging
import math
import re
from typing import NamedTuple, Optional

import numpy as np

from .buffer import PixelBuffer, crop

LOGGER = logging.getLogger("fastblur")

DEFAULT_ANCHOR = 0.5

_GEOMETRY_PATTERN = re.compile(
    r"^\s*(?P<width>\d+)\s*[xX]\s*(?P<height>\d+)\s*(?:@\s*(?P<anchor>[0-9]*\.?[0-9]+)\s*)?$"
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclasses.dataclass(frozen=True)
class Geometry:
    """Target size for a fill resize.

    Attributes:
        width: Target width in pixels.
        height: Target height in pixels.
        anchor: Crop position along the trimmed axis, in [0, 1].
    """

    width: int
    height: int
    anchor: float = DEFAULT_ANCHOR

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"geometry size must be positive, got {self.width}x{self.height}")
        if not 0.0 <= self.anchor <= 1.0:
            raise ValueError(f"anchor must be between 0 and 1, got {self.anchor}")

    @classmethod
    def parse(cls, text: str, anchor: Optional[float] = None) -> "Geometry":
        """Parse ``WIDTHxHEIGHT`` or ``WIDTHxHEIGHT@ANCHOR``.

        An explicit ``anchor`` argument takes precedence over one embedded in
        ``text``.

        Raises:
            ValueError: If ``text`` is malformed or describes an invalid geometry.
        """
        match = _GEOMETRY_PATTERN.match(text or "")
        if match is None:
            raise ValueError(f"Invalid geometry {text!r}; expected WIDTHxHEIGHT or WIDTHxHEIGHT@ANCHOR")
        if anchor is None:
            anchor = float(match.group("anchor")) if match.group("anchor") else DEFAULT_ANCHOR
        return cls(int(match.group("width")), int(match.group("height")), float(anchor))

    def __str__(self) -> str:
        return f"{self.width}x{self.height}@{self.anchor:g}"


class CropRect(NamedTuple):
    width: int
    height: int
    x: int
    y: int


def compute_fill_crop(
    image_width: int, image_height: int, target_width: int, target_height: int, anchor: float
) -> CropRect:
    """Return the largest crop of the image having the target aspect ratio.

    Args:
        image_width: Source width in pixels.
        image_height: Source height in pixels.
        target_width: Requested output width.
        target_height: Requested output height.
        anchor: Position of the crop inside the excess, in [0, 1].

    Returns:
        CropRect lying inside the image.
    """
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"image size must be positive, got {image_width}x{image_height}")
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"target size must be positive, got {target_width}x{target_height}")
    if not 0.0 <= anchor <= 1.0:
        raise ValueError(f"anchor must be between 0 and 1, got {anchor}")

    target_aspect = target_width / target_height
    image_aspect = image_width / image_height

    if target_aspect > image_aspect:
        crop_height = min(max(_round_half_up(image_width / target_aspect), 1), image_height)
        crop_y = _round_half_up(anchor * (image_height - crop_height))
        return CropRect(image_width, crop_height, 0, crop_y)

    crop_width = min(max(_round_half_up(image_height * target_aspect), 1), image_width)
    crop_x = _round_half_up(anchor * (image_width - crop_width))
    return CropRect(crop_width, image_height, crop_x, 0)


def resample_nearest(
    source: PixelBuffer,
    target_width: int,
    target_height: int,
    destination: Optional[PixelBuffer] = None,
) -> PixelBuffer:
    """Scale ``source`` to the target size by nearest-neighbour sampling.

    Output pixel ``(x, y)`` copies source pixel
    ``(floor(x * sw / tw + 0.5), floor(y * sh / th + 0.5))``, clamped to the
    last column and row.
    """
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"target size must be positive, got {target_width}x{target_height}")
    if destination is None:
        destination = PixelBuffer()
    if destination is source or destination.shares_storage_with(source):
        raise ValueError("Resample source and destination must not share storage")

    src = source.pixels
    xs = np.floor(np.arange(target_width) * (source.width / target_width) + 0.5).astype(np.intp)
    ys = np.floor(np.arange(target_height) * (source.height / target_height) + 0.5).astype(np.intp)
    np.minimum(xs, source.width - 1, out=xs)
    np.minimum(ys, source.height - 1, out=ys)

    destination.ensure_size(target_width, target_height)
    destination.pixels[...] = src[ys[:, None], xs[None, :]]
    return destination


def fill_resize(buffer: PixelBuffer, geometry: Geometry) -> PixelBuffer:
    """Crop ``buffer`` to the geometry's aspect ratio and scale it to its size."""

    rect = compute_fill_crop(
        buffer.width, buffer.height, geometry.width, geometry.height, geometry.anchor
    )
    LOGGER.debug(
        "Fill resize %sx%s -> %s via crop %sx%s+%s+%s",
        buffer.width,
        buffer.height,
        geometry,
        rect.width,
        rect.height,
        rect.x,
        rect.y,
    )
    view = crop(buffer, rect.width, rect.height, rect.x, rect.y)
    return resample_nearest(view, geometry.width, geometry.height)


__all__ = [
    "CropRect",
    "DEFAULT_ANCHOR",
    "Geometry",
    "compute_fill_crop",
    "fill_resize",
    "resample_nearest",
]
