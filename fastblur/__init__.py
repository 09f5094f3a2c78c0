"""Fast Gaussian-like blur for raster images in linear light.

Images are decoded to 8-bit RGB, converted to linear light through a gamma
transfer, optionally fill-resized to a target geometry, blurred with repeated
recursive box filters along both axes, and encoded back to PNG.

Module Organization
-------------------

gamma
    Exact (gamma 2.2 lookup table) and fast (gamma 2.0) transfer functions.

buffer
    Strided float32 pixel buffers, crop views, transpose and ping-pong pairs.

box_filter
    The O(width) recursive moving average and the multi-pass two-axis blur.

geometry
    Fill-crop rectangles, anchor placement and nearest-neighbour resampling.

raw_format
    Layout descriptors and decoding for headerless interleaved pixel streams.

io_utils
    Pillow-backed decoding, PNG encoding and atomic staged writes.

pipeline
    Blur settings, presets and per-image orchestration.

profiles
    Processing profiles balancing accuracy and speed.

cli
    Command-line interface for single files and folders.

Example Usage
-------------

    from fastblur import BlurSettings, Geometry, process_single_image

    process_single_image(
        source=Path("input.jpg"),
        destination=Path("out.png"),
        settings=BlurSettings(kernel_size=31, passes=4, geometry=Geometry(800, 600)),
    )
"""
from __future__ import annotations

import logging

from .box_filter import (
    box_blur,
    effective_sigma,
    kernel_size_for_sigma,
    moving_average_h,
)
from .buffer import BufferPair, PixelBuffer, StaleViewError, crop, transpose
from .cli import build_settings, default_output_path, main, parse_args, run_pipeline
from .gamma import GAMMA, GammaTransfer
from .geometry import CropRect, Geometry, compute_fill_crop, fill_resize, resample_nearest
from .io_utils import (
    FastBlurError,
    ImageDecodeError,
    OutputPathError,
    ProcessingContext,
    load_bitmap,
    load_raw_bitmap,
    save_png,
)
from .pipeline import (
    BLUR_PRESETS,
    BlurSettings,
    blur_bitmap,
    blur_linear,
    collect_images,
    ensure_output_path,
    process_single_image,
)
from .profiles import DEFAULT_PROFILE_NAME, PROCESSING_PROFILES, ProcessingProfile
from .raw_format import RawFormatError, RawImageFormat, TruncatedRawStreamError, decode_raw

LOGGER = logging.getLogger("fastblur")

__all__ = [
    "BLUR_PRESETS",
    "BlurSettings",
    "BufferPair",
    "CropRect",
    "DEFAULT_PROFILE_NAME",
    "FastBlurError",
    "GAMMA",
    "GammaTransfer",
    "Geometry",
    "ImageDecodeError",
    "OutputPathError",
    "PROCESSING_PROFILES",
    "PixelBuffer",
    "ProcessingContext",
    "ProcessingProfile",
    "RawFormatError",
    "RawImageFormat",
    "StaleViewError",
    "TruncatedRawStreamError",
    "blur_bitmap",
    "blur_linear",
    "box_blur",
    "build_settings",
    "collect_images",
    "compute_fill_crop",
    "crop",
    "decode_raw",
    "default_output_path",
    "effective_sigma",
    "ensure_output_path",
    "fill_resize",
    "kernel_size_for_sigma",
    "load_bitmap",
    "load_raw_bitmap",
    "main",
    "moving_average_h",
    "parse_args",
    "process_single_image",
    "resample_nearest",
    "run_pipeline",
    "save_png",
    "transpose",
]
