"""Blur settings, presets and the per-image processing pipeline.

The pipeline runs decode -> gamma decode -> optional fill resize ->
horizontal passes -> transpose -> horizontal passes -> transpose back ->
gamma encode -> PNG encode.
"""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import numpy as np

from .box_filter import box_blur, validate_kernel_size, validate_passes
from .buffer import PixelBuffer
from .gamma import GammaTransfer
from .geometry import Geometry, fill_resize
from .io_utils import OutputPathError, ProcessingContext, load_bitmap, load_raw_bitmap, save_png
from .profiles import DEFAULT_PROFILE_NAME, PROCESSING_PROFILES, ProcessingProfile
from .raw_format import RawImageFormat

try:  # Optional progress bar for batch runs
    from tqdm import tqdm as _tqdm  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    _tqdm = None

LOGGER = logging.getLogger("fastblur")
WORKER_LOGGER = LOGGER.getChild("worker")

DEFAULT_KERNEL_SIZE = 31
DEFAULT_PASSES = 4

IMAGE_PATTERNS = ("*.png", "*.jpg", "*.jpeg", "*.bmp", "*.gif", "*.tga", "*.ppm", "*.tif", "*.tiff")
RAW_PATTERNS = ("*.raw", "*.rgb", "*.bin")


@dataclasses.dataclass
class BlurSettings:
    """Holds the blur parameters for a processing run."""

    kernel_size: int = DEFAULT_KERNEL_SIZE
    passes: int = DEFAULT_PASSES
    fast_gamma: bool = False
    geometry: Optional[Geometry] = None

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        validate_kernel_size(self.kernel_size)
        validate_passes(self.passes)
        if self.geometry is not None and not isinstance(self.geometry, Geometry):
            raise ValueError(f"geometry must be a Geometry, got {type(self.geometry).__name__}")


BLUR_PRESETS = {
    "subtle": BlurSettings(kernel_size=11, passes=3),
    "standard": BlurSettings(kernel_size=DEFAULT_KERNEL_SIZE, passes=DEFAULT_PASSES),
    "heavy": BlurSettings(kernel_size=51, passes=4),
}

DEFAULT_PRESET_NAME = "standard"


def _ensure_profile(profile: ProcessingProfile | None) -> ProcessingProfile:
    if profile is None:
        return PROCESSING_PROFILES[DEFAULT_PROFILE_NAME]
    return profile


def blur_linear(buffer: PixelBuffer, settings: BlurSettings) -> PixelBuffer:
    """Fill-resize (when requested) and blur a linear-light buffer."""

    if settings.geometry is not None:
        buffer = fill_resize(buffer, settings.geometry)
    return box_blur(buffer, settings.kernel_size, settings.passes)


def blur_bitmap(
    bitmap: np.ndarray,
    settings: BlurSettings,
    *,
    gamma: Optional[GammaTransfer] = None,
) -> np.ndarray:
    """Blur a packed ``(H, W, 3)`` uint8 bitmap and return the encoded result.

    Args:
        bitmap: Gamma-encoded source pixels.
        settings: Kernel size, pass count, gamma mode and optional geometry.
        gamma: Transfer to use; defaults to the shared one for ``settings.fast_gamma``.

    Returns:
        Gamma-encoded uint8 bitmap, resized when ``settings.geometry`` is set.
    """
    if gamma is None:
        gamma = GammaTransfer.for_mode(settings.fast_gamma)
    arr = np.asarray(bitmap, dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) bitmap, got shape {arr.shape}")

    LOGGER.debug("Gamma decoding %sx%s with %s curve", arr.shape[1], arr.shape[0], gamma.mode)
    buffer = PixelBuffer.from_array(gamma.decode(arr))
    blurred = blur_linear(buffer, settings)
    return gamma.encode(np.clip(blurred.pixels, 0.0, 1.0))


def collect_images(folder: Path, recursive: bool, *, raw: bool = False) -> Iterator[Path]:
    patterns: List[str] = list(RAW_PATTERNS if raw else IMAGE_PATTERNS)
    patterns += [pattern.upper() for pattern in patterns]
    seen = set()
    for pattern in patterns:
        matches = folder.rglob(pattern) if recursive else folder.glob(pattern)
        for path in matches:
            # Case-insensitive filesystems report the same file for both spellings.
            if path not in seen and path.is_file():
                seen.add(path)
                yield path


def ensure_output_path(
    input_root: Path,
    output_root: Path,
    source: Path,
    suffix: str,
    recursive: bool,
    *,
    create: bool = True,
) -> Path:
    relative = source.relative_to(input_root) if recursive else Path(source.name)
    destination = output_root / relative
    if create:
        destination.parent.mkdir(parents=True, exist_ok=True)
    return destination.with_name(destination.stem + suffix + ".png")


def _tqdm_progress(
    iterable: Iterable[object], *, total: Optional[int], description: Optional[str]
) -> Iterable[object]:
    """Wrap *iterable* with :mod:`tqdm` if available."""

    if _tqdm is None:  # pragma: no cover - defensive fallback
        return iterable
    return _tqdm(iterable, total=total, desc=description, unit="image")


_PROGRESS_WRAPPER = _tqdm_progress if _tqdm is not None else None


def _wrap_with_progress(
    iterable: Iterable[Path],
    *,
    total: Optional[int],
    description: str,
    enabled: bool,
) -> Iterable[Path]:
    """Return an iterable wrapped with a progress helper when available."""

    if not enabled:
        return iterable

    helper = _PROGRESS_WRAPPER
    if helper is None:
        LOGGER.debug("Progress helper not available; install tqdm for progress reporting.")
        return iterable
    return helper(iterable, total=total, description=description)


def _process_image_worker(
    source: Path,
    destination: Path,
    settings: BlurSettings,
    *,
    raw_format: Optional[RawImageFormat] = None,
    profile: ProcessingProfile,
    dry_run: bool = False,
) -> bool:
    """Core implementation for processing a single image.

    Returns ``True`` when an output file was written. This helper is isolated so it
    can be safely used with :class:`concurrent.futures.ProcessPoolExecutor`.
    """

    WORKER_LOGGER.info("Processing %s -> %s", source, destination)
    if destination.exists() and not dry_run and not destination.is_file():
        path_type = "directory" if destination.is_dir() else "non-file"
        raise OutputPathError(f"Destination path exists but is a {path_type}: {destination}")

    if raw_format is not None:
        bitmap = load_raw_bitmap(source, raw_format)
    else:
        bitmap = load_bitmap(source)

    effective = dataclasses.replace(
        settings, fast_gamma=profile.resolve_fast_gamma(settings.fast_gamma)
    )
    blurred = blur_bitmap(bitmap, effective)

    if dry_run:
        WORKER_LOGGER.info("Dry run enabled, skipping save for %s", destination)
        return False
    with ProcessingContext(destination) as staged_path:
        save_png(staged_path, blurred, profile.resolve_compress_level())
    return True


def process_single_image(
    source: Path,
    destination: Path,
    settings: Optional[BlurSettings] = None,
    *,
    raw_format: Optional[RawImageFormat] = None,
    profile: ProcessingProfile | None = None,
    dry_run: bool = False,
) -> bool:
    """Blur ``source`` and write the PNG result to ``destination``.

    Returns ``True`` when an output file was written.
    """

    return _process_image_worker(
        Path(source),
        Path(destination),
        settings if settings is not None else BlurSettings(),
        raw_format=raw_format,
        profile=_ensure_profile(profile),
        dry_run=dry_run,
    )


__all__ = [
    "BLUR_PRESETS",
    "BlurSettings",
    "DEFAULT_KERNEL_SIZE",
    "DEFAULT_PASSES",
    "DEFAULT_PRESET_NAME",
    "blur_bitmap",
    "blur_linear",
    "collect_images",
    "ensure_output_path",
    "process_single_image",
]
