"""Image codec and file I/O for the blur pipeline.

Decoding always yields a packed ``(H, W, 3)`` uint8 RGB bitmap; encoding
always writes a 3-channel PNG. Raw headerless streams are supported through
:mod:`fastblur.raw_format`.

Key Components
--------------

ProcessingContext
    Context manager for atomic file operations with staged writes.

Functions
---------

load_bitmap
    Decode any Pillow-readable file into packed RGB bytes.

load_raw_bitmap
    Read a raw interleaved stream described by a :class:`RawImageFormat`.

save_png
    Encode packed RGB bytes as PNG.
"""
from __future__ import annotations

import contextlib
import dataclasses
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from .raw_format import RawImageFormat, decode_raw

LOGGER = logging.getLogger("fastblur")

DEFAULT_COMPRESS_LEVEL = 6


class FastBlurError(RuntimeError):
    """Base class for codec failures that abort a blur run."""


class ImageDecodeError(FastBlurError):
    """Raised when an input file cannot be decoded as an image."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Unable to decode image {path}: {reason}")
        self.path = path


class OutputPathError(FastBlurError):
    """Raised when an output path cannot receive a blurred image."""


@dataclasses.dataclass
class ProcessingContext:
    """Context manager for atomic file writes using staged temporary files.

    Writes to a temporary file in the same directory as the destination, then
    atomically moves it to the final location on success. Cleans up temporary
    files on failure.

    Attributes:
        destination: Final output file path.
        suffix: Temporary file suffix (default: ".tmp").
    """

    destination: Path
    suffix: str = ".tmp"

    def __post_init__(self) -> None:
        self._staged_path: Optional[Path] = None

    def _temp_path(self) -> Path:
        unique = uuid.uuid4().hex
        name = f".{self.destination.name}{self.suffix}-{unique}"
        return self.destination.parent / name

    def __enter__(self) -> Path:
        self.destination.parent.mkdir(parents=True, exist_ok=True)
        self._staged_path = self._temp_path()
        return self._staged_path

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._staged_path is None:
            return False

        staged = self._staged_path
        self._staged_path = None

        if exc_type is None:
            try:
                os.replace(staged, self.destination)
            except Exception:
                with contextlib.suppress(Exception):
                    staged.unlink()
                raise
        else:
            with contextlib.suppress(FileNotFoundError):
                staged.unlink()
        return False


def image_to_bitmap(image: Image.Image) -> np.ndarray:
    """Convert a Pillow image to a packed ``(H, W, 3)`` uint8 RGB array.

    Alpha is dropped and palette, grayscale or high bit-depth modes are
    converted by Pillow.
    """
    if image.mode != "RGB":
        image = image.convert("RGB")
    return np.ascontiguousarray(np.asarray(image, dtype=np.uint8))


def load_bitmap(path: Path) -> np.ndarray:
    """Decode ``path`` into a packed RGB bitmap.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ImageDecodeError: If Pillow cannot decode the file.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Input image not found: {path}")
    try:
        with Image.open(path) as image:
            image.load()
            bitmap = image_to_bitmap(image)
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ImageDecodeError(path, str(exc)) from exc
    LOGGER.debug("Decoded %s (%sx%s)", path, bitmap.shape[1], bitmap.shape[0])
    return bitmap


def load_raw_bitmap(path: Path, fmt: RawImageFormat) -> np.ndarray:
    """Read a raw interleaved stream from ``path``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        TruncatedRawStreamError: If the file is shorter than ``fmt`` requires.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Input image not found: {path}")
    data = path.read_bytes()
    bitmap = decode_raw(data, fmt, source=str(path))
    LOGGER.debug("Read raw %s from %s", fmt, path)
    return bitmap


def save_png(destination: Path, bitmap: np.ndarray, compress_level: int = DEFAULT_COMPRESS_LEVEL) -> None:
    """Encode a packed ``(H, W, 3)`` uint8 bitmap as PNG at ``destination``."""

    arr = np.ascontiguousarray(bitmap, dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) bitmap, got shape {arr.shape}")
    image = Image.fromarray(arr)
    image.save(os.fspath(destination), format="PNG", compress_level=compress_level)


__all__ = [
    "DEFAULT_COMPRESS_LEVEL",
    "FastBlurError",
    "ImageDecodeError",
    "OutputPathError",
    "ProcessingContext",
    "image_to_bitmap",
    "load_bitmap",
    "load_raw_bitmap",
    "save_png",
]
