"""Command-line interface wiring for fastblur."""
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import uuid
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

try:  # pragma: no cover - optional dependency
    import yaml
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    yaml = None

from .box_filter import validate_kernel_size, validate_passes
from .geometry import Geometry
from .io_utils import FastBlurError, OutputPathError
from .pipeline import (
    BLUR_PRESETS,
    DEFAULT_PRESET_NAME,
    BlurSettings,
    _process_image_worker,
    _wrap_with_progress,
    collect_images,
    ensure_output_path,
    process_single_image,
)
from .profiles import DEFAULT_PROFILE_NAME, PROCESSING_PROFILES
from .raw_format import RawImageFormat, TruncatedRawStreamError

LOGGER = logging.getLogger("fastblur")

DEFAULT_SUFFIX = "_blur"


def _load_config_data(path: Path) -> Mapping[str, Any]:
    """Load configuration from JSON or YAML file.

    Args:
        path: Path to configuration file (.json, .yaml, or .yml).

    Returns:
        Dictionary mapping configuration keys to values.

    Raises:
        FileNotFoundError: If configuration file doesn't exist.
        RuntimeError: If YAML file requested but pyyaml not installed.
        ValueError: If file content is not a valid mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"} and yaml is None:
        raise RuntimeError("YAML configuration files require the optional 'pyyaml' dependency")
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(path.read_text())  # type: ignore[union-attr]
        else:
            data = json.loads(path.read_text())
    except Exception as exc:  # pragma: no cover - exact exception varies by backend
        raise ValueError(f"Unable to parse configuration file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration file {path} must contain a mapping of option names to values")
    return data


def _normalise_config_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    normalised: dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            raise ValueError("Configuration keys must be strings")
        normalised[key.replace("-", "_")] = value
    return normalised


def _build_parser_aliases(parser: argparse.ArgumentParser) -> tuple[dict[str, argparse.Action], dict[str, str]]:
    """Map every option spelling (dest or flag, underscored) to its parser action."""

    dest_to_action: dict[str, argparse.Action] = {}
    alias_to_dest: dict[str, str] = {}
    actions = list(parser._get_positional_actions()) + list(parser._get_optional_actions())
    for action in actions:
        if action.dest in {argparse.SUPPRESS, "help", "config"}:
            continue
        dest_to_action[action.dest] = action
        alias_to_dest[action.dest.replace("-", "_")] = action.dest
        for option_string in action.option_strings:
            alias = option_string.lstrip("-").replace("-", "_")
            alias_to_dest[alias] = action.dest
    return dest_to_action, alias_to_dest


def _coerce_config_value(action: argparse.Action, value: Any, *, source: Path, key: str) -> Any:
    """Convert configuration values so they match argparse expectations."""

    if value is None:
        return None

    if isinstance(action, argparse._StoreTrueAction):  # type: ignore[attr-defined]
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"1", "true", "yes", "on"}:
                return True
            if lowered in {"0", "false", "no", "off"}:
                return False
        raise ValueError(
            f"Invalid boolean for '{key}' in {source}: expected true/false value, got {value!r}"
        )

    if action.type is not None:
        try:
            converted = action.type(value if isinstance(value, str) else str(value))
        except (TypeError, ValueError, argparse.ArgumentTypeError) as exc:
            raise ValueError(f"Invalid value for '{key}' in {source}: {exc}") from exc
    else:
        converted = value

    if action.choices is not None and converted not in action.choices:
        raise ValueError(
            f"Invalid value for '{key}' in {source}: {converted!r} (choose from {sorted(action.choices)})"
        )

    return converted


def _kernel_size_arg(text: str) -> int:
    try:
        return validate_kernel_size(int(text))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _passes_arg(text: str) -> int:
    try:
        return validate_passes(int(text))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _anchor_arg(text: str) -> float:
    try:
        anchor = float(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"anchor must be a number, got {text!r}") from exc
    if not 0.0 <= anchor <= 1.0:
        raise argparse.ArgumentTypeError(f"anchor must be between 0 and 1, got {anchor}")
    return anchor


def _geometry_arg(text: str) -> Geometry:
    try:
        return Geometry.parse(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _raw_format_arg(text: str) -> RawImageFormat:
    try:
        return RawImageFormat.parse(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def default_output_path(input_path: Path, suffix: str = DEFAULT_SUFFIX) -> Path:
    """Return the default output for an input file or folder.

    Files map to ``<stem><suffix>.png`` beside them; folders map to a sibling
    ``<name><suffix>`` folder.
    """

    if input_path.is_dir():
        if input_path.name:
            return input_path.parent / f"{input_path.name}{suffix}"
        return input_path / "blurred_output"
    return input_path.with_name(f"{input_path.stem}{suffix}.png")


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Blur images with repeated recursive box filters in linear light.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional configuration file (JSON by default, YAML when 'pyyaml' is installed)",
    )
    parser.add_argument("input", type=Path, help="Image file or folder of images to blur")
    parser.add_argument(
        "output",
        type=Path,
        nargs="?",
        default=None,
        help="Output PNG file or folder. Defaults to '<input>_blur' beside the input.",
    )
    parser.add_argument(
        "--preset",
        default=DEFAULT_PRESET_NAME,
        choices=sorted(BLUR_PRESETS.keys()),
        help="Blur preset that provides kernel size and pass count",
    )
    parser.add_argument(
        "--profile",
        default=DEFAULT_PROFILE_NAME,
        choices=sorted(PROCESSING_PROFILES.keys()),
        help="Processing profile balancing accuracy and speed",
    )
    parser.add_argument(
        "-k",
        "--kernel-size",
        type=_kernel_size_arg,
        default=None,
        dest="kernel_size",
        help="Box filter width in pixels (positive odd integer)",
    )
    parser.add_argument(
        "-p",
        "--passes",
        type=_passes_arg,
        default=None,
        help="Box filter passes per axis",
    )
    parser.add_argument(
        "--fast-gamma",
        action="store_true",
        help="Approximate the gamma 2.2 curve with gamma 2.0 for speed",
    )
    parser.add_argument(
        "--resize",
        type=_geometry_arg,
        default=None,
        help="Fill-resize to WIDTHxHEIGHT (optionally WIDTHxHEIGHT@ANCHOR) before blurring",
    )
    parser.add_argument(
        "--anchor",
        type=_anchor_arg,
        default=None,
        help="Crop anchor for --resize: 0 keeps the top/left, 1 the bottom/right",
    )
    parser.add_argument(
        "--raw-format",
        type=_raw_format_arg,
        default=None,
        dest="raw_format",
        help="Treat inputs as headerless raw streams, e.g. 'rgba:640x480'",
    )
    parser.add_argument(
        "--recursive",
        action="store_true",
        help="Process folders recursively and mirror the directory tree in the output",
    )
    parser.add_argument(
        "--suffix",
        default=DEFAULT_SUFFIX,
        help="Filename suffix appended to processed files",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Allow overwriting existing files in the destination",
    )
    parser.add_argument("--dry-run", action="store_true", help="Preview the work without writing any files")
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress reporting (useful for minimal or non-interactive environments)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes when blurring a folder",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )

    argv_list = list(argv) if argv is not None else None

    config_probe, _ = parser.parse_known_args(argv_list)
    if config_probe.config is not None:
        try:
            raw_config = _load_config_data(config_probe.config)
            normalised_config = _normalise_config_keys(raw_config)
            dest_to_action, alias_to_dest = _build_parser_aliases(parser)

            converted_defaults: dict[str, Any] = {}
            for key, value in normalised_config.items():
                dest = alias_to_dest.get(key)
                if dest is None:
                    raise ValueError(f"Unknown configuration option '{key}' in {config_probe.config}")
                action = dest_to_action[dest]
                converted_defaults[dest] = _coerce_config_value(
                    action, value, source=config_probe.config, key=key
                )

            parser.set_defaults(**converted_defaults)
        except (OSError, ValueError, RuntimeError) as exc:
            parser.error(str(exc))

    args = parser.parse_args(argv_list)
    if args.workers < 1:
        parser.error("--workers must be a positive integer")
    if args.anchor is not None and args.resize is None:
        parser.error("--anchor requires --resize")
    if args.output is None:
        args.output = default_output_path(args.input, args.suffix)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s: %(message)s")
    return args


def build_settings(args: argparse.Namespace) -> BlurSettings:
    """Construct blur settings from the preset and CLI overrides.

    Args:
        args: Parsed command-line arguments.

    Returns:
        BlurSettings with preset values overridden by CLI arguments.
    """
    base = dataclasses.replace(BLUR_PRESETS[args.preset])
    for name in ("kernel_size", "passes"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(base, name, value)
    if getattr(args, "fast_gamma", False):
        base.fast_gamma = True

    geometry = getattr(args, "resize", None)
    anchor = getattr(args, "anchor", None)
    if geometry is not None and anchor is not None:
        geometry = dataclasses.replace(geometry, anchor=anchor)
    base.geometry = geometry
    base._validate()
    LOGGER.debug("Using blur settings: %s", base)
    return base


def _ensure_non_overlapping(input_root: Path, output_root: Path) -> None:
    def _contains(parent: Path, child: Path) -> bool:
        try:
            child.relative_to(parent)
        except ValueError:
            return False
        return True

    if input_root == output_root:
        raise SystemExit("Output folder must be different from the input folder to avoid self-overwrites.")
    if _contains(input_root, output_root):
        raise SystemExit(
            "Output folder cannot be located inside the input folder; choose a sibling or separate directory."
        )
    if _contains(output_root, input_root):
        raise SystemExit(
            "Input folder cannot be located inside the output folder; choose non-overlapping directories."
        )


def _plan_outputs(
    args: argparse.Namespace, input_root: Path, output_root: Path, images: list[Path]
) -> dict[Path, Path]:
    """Map every source image to its destination, rejecting shared destinations.

    Outputs are always ``.png``, so ``photo.jpg`` and ``photo.png`` in the same
    folder would otherwise be written to one file.
    """

    destinations: dict[Path, Path] = {}
    claimed: dict[Path, Path] = {}
    for image_path in images:
        destination = ensure_output_path(
            input_root,
            output_root,
            image_path,
            args.suffix,
            args.recursive,
            create=not args.dry_run,
        )
        previous = claimed.get(destination)
        if previous is not None:
            raise OutputPathError(
                f"{previous} and {image_path} would both be written to {destination}; "
                "rename one of them or use a different suffix"
            )
        claimed[destination] = image_path
        destinations[image_path] = destination
    return destinations


def _run_single_file(args: argparse.Namespace, settings: BlurSettings, source: Path) -> int:
    destination = args.output.resolve()
    if destination.is_dir():
        destination = destination / f"{source.stem}{args.suffix}.png"
    if destination == source:
        raise SystemExit("Output file must be different from the input file.")
    if destination.exists() and not args.overwrite and not args.dry_run:
        LOGGER.warning("Skipping %s (exists, use --overwrite to replace)", destination)
        return 0
    if args.dry_run:
        LOGGER.info("Dry run: would process %s -> %s", source, destination)
    wrote = process_single_image(
        source,
        destination,
        settings,
        raw_format=args.raw_format,
        profile=PROCESSING_PROFILES[args.profile],
        dry_run=args.dry_run,
    )
    return 1 if wrote else 0


def run_pipeline(args: argparse.Namespace) -> int:
    """Run fastblur with the provided arguments and return the number of files written."""

    run_id = uuid.uuid4().hex
    settings = build_settings(args)
    profile = PROCESSING_PROFILES[args.profile]
    input_root = args.input.resolve()

    if not input_root.exists():
        raise FileNotFoundError(f"Input not found: {input_root}")

    LOGGER.info(
        "Starting blur run %s for %s (kernel %s, %s passes, '%s' profile)",
        run_id,
        input_root,
        settings.kernel_size,
        settings.passes,
        profile.name,
    )
    if input_root.is_file():
        processed = _run_single_file(args, settings, input_root)
        LOGGER.info("Finished blur run %s; processed %s image(s)", run_id, processed)
        return processed

    output_root = args.output.resolve()
    _ensure_non_overlapping(input_root, output_root)

    raw = args.raw_format is not None
    images = sorted(collect_images(input_root, args.recursive, raw=raw))
    if not images:
        LOGGER.warning("No images found in %s (run %s)", input_root, run_id)
        return 0

    destinations = _plan_outputs(args, input_root, output_root, images)
    if not args.dry_run:
        output_root.mkdir(parents=True, exist_ok=True)

    LOGGER.info("Found %s image(s) to process", len(images))
    processed = 0
    workers = getattr(args, "workers", 1)

    if workers <= 1:
        progress_iterable = _wrap_with_progress(
            images,
            total=len(images),
            description="Blurring images",
            enabled=not getattr(args, "no_progress", False),
        )

        for image_path in progress_iterable:
            destination = destinations[image_path]
            if destination.exists() and not args.overwrite and not args.dry_run:
                LOGGER.warning("Skipping %s (exists, use --overwrite to replace)", destination)
                continue
            if args.dry_run:
                LOGGER.info("Dry run: would process %s -> %s", image_path, destination)
            if process_single_image(
                image_path,
                destination,
                settings,
                raw_format=args.raw_format,
                profile=profile,
                dry_run=args.dry_run,
            ):
                processed += 1
    else:
        progress_range = _wrap_with_progress(
            range(len(images)),
            total=len(images),
            description="Blurring images",
            enabled=not getattr(args, "no_progress", False),
        )
        progress_iterator = iter(progress_range)

        def advance_progress() -> None:
            try:
                next(progress_iterator)
            except StopIteration:
                pass

        futures = []
        with ProcessPoolExecutor(max_workers=workers) as executor:
            for image_path, destination in destinations.items():
                if destination.exists() and not args.overwrite and not args.dry_run:
                    LOGGER.warning("Skipping %s (exists, use --overwrite to replace)", destination)
                    advance_progress()
                    continue
                if args.dry_run:
                    LOGGER.info("Dry run: would process %s -> %s", image_path, destination)
                futures.append(
                    executor.submit(
                        _process_image_worker,
                        image_path,
                        destination,
                        settings,
                        raw_format=args.raw_format,
                        profile=profile,
                        dry_run=args.dry_run,
                    )
                )

            for future in as_completed(futures):
                try:
                    wrote_output = future.result()
                except Exception:
                    advance_progress()
                    raise
                if wrote_output:
                    processed += 1
                advance_progress()

    LOGGER.info("Finished blur run %s; processed %s image(s)", run_id, processed)
    return processed


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    try:
        run_pipeline(args)
    except (OSError, FastBlurError, TruncatedRawStreamError) as exc:
        LOGGER.error("%s", exc)
        return 1
    return 0


__all__ = [
    "build_settings",
    "default_output_path",
    "main",
    "parse_args",
    "run_pipeline",
]
