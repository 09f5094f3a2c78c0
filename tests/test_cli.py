from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

try:
    from .documentation import documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents

np = pytest.importorskip("numpy")
pytest.importorskip("PIL.Image")
from PIL import Image  # noqa: E402  # pylint: disable=wrong-import-position

import fastblur  # noqa: E402  # pylint: disable=wrong-import-position
from fastblur import pipeline  # noqa: E402  # pylint: disable=wrong-import-position


def _create_sample_image(path: Path, color=(32, 64, 96)) -> None:
    Image.new("RGB", (4, 3), color=color).save(path)


def test_main_exposed_in_dunder_all():
    exported = getattr(fastblur, "__all__", ())
    assert "main" in exported
    assert "run_pipeline" in exported


def test_module_still_invokable_with_help():
    result = subprocess.run(
        [sys.executable, "-m", "fastblur", "--help"],
        capture_output=True,
        text=True,
        check=False,
        cwd=ROOT,
    )

    assert result.returncode == 0
    assert "recursive box filters" in result.stdout


def test_parse_args_defaults_match_standard_preset(tmp_path: Path):
    source = tmp_path / "photo.jpg"

    args = fastblur.parse_args([str(source)])
    settings = fastblur.build_settings(args)

    assert settings.kernel_size == 31
    assert settings.passes == 4
    assert settings.fast_gamma is False
    assert settings.geometry is None
    assert args.profile == "quality"
    assert args.workers == 1


def test_parse_args_sets_default_output_for_files_and_folders(tmp_path: Path):
    folder = tmp_path / "Stills"
    folder.mkdir()

    file_args = fastblur.parse_args([str(tmp_path / "photo.jpg")])
    folder_args = fastblur.parse_args([str(folder)])

    assert file_args.output == tmp_path / "photo_blur.png"
    assert folder_args.output == tmp_path / "Stills_blur"


@documents("Explicit flags override preset values without dropping the rest")
def test_build_settings_applies_overrides(tmp_path: Path):
    args = fastblur.parse_args(
        [
            str(tmp_path / "photo.jpg"),
            "--preset",
            "heavy",
            "-p",
            "2",
            "--fast-gamma",
            "--resize",
            "40x30@0.25",
        ]
    )

    settings = fastblur.build_settings(args)

    assert settings.kernel_size == fastblur.BLUR_PRESETS["heavy"].kernel_size
    assert settings.passes == 2
    assert settings.fast_gamma is True
    assert settings.geometry == fastblur.Geometry(40, 30, 0.25)
    # The shared preset is left untouched.
    assert fastblur.BLUR_PRESETS["heavy"].passes == 4


def test_anchor_flag_overrides_embedded_anchor(tmp_path: Path):
    args = fastblur.parse_args([str(tmp_path / "a.png"), "--resize", "10x10@0.25", "--anchor", "1"])

    assert fastblur.build_settings(args).geometry == fastblur.Geometry(10, 10, 1.0)


@documents("Configuration errors stop the run before any processing")
@pytest.mark.parametrize(
    "extra",
    [
        ["--kernel-size", "4"],
        ["--kernel-size", "0"],
        ["--kernel-size", "abc"],
        ["--passes", "0"],
        ["--resize", "40by40"],
        ["--resize", "40x40@3"],
        ["--raw-format", "argba:2x2"],
        ["--raw-format", "rgb"],
        ["--anchor", "0.5"],
        ["--resize", "4x4", "--anchor", "1.5"],
        ["--workers", "0"],
    ],
)
def test_parse_args_rejects_invalid_configuration(tmp_path: Path, extra: list[str]):
    with pytest.raises(SystemExit) as excinfo:
        fastblur.parse_args([str(tmp_path / "photo.jpg"), *extra])

    assert excinfo.value.code == 2


def test_config_file_supplies_defaults(tmp_path: Path):
    config = tmp_path / "blur.json"
    config.write_text(
        json.dumps({"kernel-size": 21, "passes": 3, "fast_gamma": "yes", "resize": "64x48", "profile": "balanced"})
    )

    args = fastblur.parse_args(["--config", str(config), str(tmp_path / "photo.jpg")])
    settings = fastblur.build_settings(args)

    assert settings.kernel_size == 21
    assert settings.passes == 3
    assert settings.fast_gamma is True
    assert settings.geometry == fastblur.Geometry(64, 48)
    assert args.profile == "balanced"


def test_command_line_beats_config_file(tmp_path: Path):
    config = tmp_path / "blur.json"
    config.write_text(json.dumps({"kernel_size": 21}))

    args = fastblur.parse_args(["--config", str(config), str(tmp_path / "photo.jpg"), "-k", "7"])

    assert fastblur.build_settings(args).kernel_size == 7


def test_yaml_config_file(tmp_path: Path):
    pytest.importorskip("yaml")
    config = tmp_path / "blur.yaml"
    config.write_text("kernel_size: 9\nraw-format: bgra:8x4\n")

    args = fastblur.parse_args(["--config", str(config), str(tmp_path / "frame.raw")])

    assert args.kernel_size == 9
    assert args.raw_format == fastblur.RawImageFormat("bgra", 8, 4)


@pytest.mark.parametrize(
    "payload",
    [
        {"unknown_option": 1},
        {"kernel_size": 8},
        {"passes": 0},
        {"fast_gamma": "sometimes"},
        {"preset": "extreme"},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_config_file_is_a_configuration_error(tmp_path: Path, payload: Any):
    config = tmp_path / "blur.json"
    config.write_text(json.dumps(payload))

    with pytest.raises(SystemExit) as excinfo:
        fastblur.parse_args(["--config", str(config), str(tmp_path / "photo.jpg")])

    assert excinfo.value.code == 2


def test_missing_config_file_is_a_configuration_error(tmp_path: Path):
    with pytest.raises(SystemExit):
        fastblur.parse_args(["--config", str(tmp_path / "nope.json"), str(tmp_path / "photo.jpg")])


def test_run_pipeline_single_file(tmp_path: Path):
    source = tmp_path / "photo.png"
    _create_sample_image(source)

    args = fastblur.parse_args([str(source), "-k", "3", "-p", "1", "--resize", "2x2"])
    processed = fastblur.run_pipeline(args)

    assert processed == 1
    with Image.open(tmp_path / "photo_blur.png") as result:
        assert result.size == (2, 2)
        assert np.max(np.abs(np.array(result).astype(int) - [32, 64, 96])) <= 1


def test_run_pipeline_single_file_into_existing_folder(tmp_path: Path):
    source = tmp_path / "photo.png"
    _create_sample_image(source)
    output = tmp_path / "renders"
    output.mkdir()

    fastblur.run_pipeline(fastblur.parse_args([str(source), str(output), "-k", "3"]))

    assert (output / "photo_blur.png").is_file()


def test_run_pipeline_skips_existing_output_without_overwrite(tmp_path: Path):
    source = tmp_path / "photo.png"
    _create_sample_image(source)
    destination = tmp_path / "photo_blur.png"
    destination.write_bytes(b"keep me")

    processed = fastblur.run_pipeline(fastblur.parse_args([str(source), "-k", "3"]))
    assert processed == 0
    assert destination.read_bytes() == b"keep me"

    processed = fastblur.run_pipeline(fastblur.parse_args([str(source), "-k", "3", "--overwrite"]))
    assert processed == 1
    assert destination.read_bytes() != b"keep me"


def test_run_pipeline_rejects_writing_over_input(tmp_path: Path):
    source = tmp_path / "photo.png"
    _create_sample_image(source)

    with pytest.raises(SystemExit):
        fastblur.run_pipeline(fastblur.parse_args([str(source), str(source), "--overwrite"]))


def test_run_pipeline_missing_input(tmp_path: Path):
    args = fastblur.parse_args([str(tmp_path / "missing.png")])

    with pytest.raises(FileNotFoundError):
        fastblur.run_pipeline(args)


def test_run_pipeline_folder_recursive(tmp_path: Path):
    input_dir = tmp_path / "input"
    nested = input_dir / "nested"
    nested.mkdir(parents=True)
    _create_sample_image(input_dir / "top.png")
    _create_sample_image(nested / "inner.jpg")
    output_dir = tmp_path / "output"

    processed = fastblur.run_pipeline(
        fastblur.parse_args([str(input_dir), str(output_dir), "--recursive", "-k", "3", "--no-progress"])
    )

    assert processed == 2
    assert (output_dir / "top_blur.png").is_file()
    assert (output_dir / "nested" / "inner_blur.png").is_file()


def test_run_pipeline_folder_of_raw_streams(tmp_path: Path):
    input_dir = tmp_path / "raw"
    input_dir.mkdir()
    (input_dir / "frame.raw").write_bytes(bytes([1, 2, 3]) * 4)
    (input_dir / "ignored.png").write_bytes(b"not raw")
    output_dir = tmp_path / "out"

    processed = fastblur.run_pipeline(
        fastblur.parse_args([str(input_dir), str(output_dir), "--raw-format", "rgb:2x2", "-k", "3"])
    )

    assert processed == 1
    assert sorted(p.name for p in output_dir.iterdir()) == ["frame_blur.png"]


def test_run_pipeline_parallel_execution(tmp_path: Path):
    input_dir = tmp_path / "input"
    output_dir = tmp_path / "output"
    input_dir.mkdir()
    for index in range(3):
        _create_sample_image(input_dir / f"frame_{index}.png")

    args = fastblur.parse_args([str(input_dir), str(output_dir), "--workers", "2", "-k", "3"])
    processed = fastblur.run_pipeline(args)

    outputs = sorted(p.name for p in output_dir.glob("*.png"))
    assert processed == 3
    assert outputs == [f"frame_{i}_blur.png" for i in range(3)]


@documents("Dry runs plan the work without writing files")
def test_run_pipeline_dry_run_creates_no_outputs(tmp_path: Path):
    input_dir = tmp_path / "in"
    output_dir = tmp_path / "out"
    input_dir.mkdir()
    _create_sample_image(input_dir / "sample.png")

    processed = fastblur.run_pipeline(fastblur.parse_args([str(input_dir), str(output_dir), "--dry-run"]))

    assert processed == 0
    assert not output_dir.exists()


def test_run_pipeline_invokes_progress_wrapper(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    input_dir = tmp_path / "input"
    output_dir = tmp_path / "output"
    input_dir.mkdir()
    sample = input_dir / "frame.png"
    _create_sample_image(sample)

    calls: Dict[str, Any] = {"called": False, "items": []}

    def stub_progress(iterable, *, total=None, description=None):
        calls["called"] = True
        calls["total"] = total
        calls["description"] = description
        for item in iterable:
            calls["items"].append(item)
            yield item

    monkeypatch.setattr(pipeline, "_PROGRESS_WRAPPER", stub_progress)

    fastblur.run_pipeline(fastblur.parse_args([str(input_dir), str(output_dir), "--dry-run"]))

    assert calls["called"] is True
    assert calls["total"] == 1
    assert calls["items"] == [sample.resolve()]
    assert "Blurring" in (calls["description"] or "")


def test_run_pipeline_no_progress_flag(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    _create_sample_image(input_dir / "frame.png")

    calls = {"called": False}

    def stub_progress(iterable, *, total=None, description=None):
        calls["called"] = True
        yield from iterable

    monkeypatch.setattr(pipeline, "_PROGRESS_WRAPPER", stub_progress)

    fastblur.run_pipeline(
        fastblur.parse_args([str(input_dir), str(tmp_path / "output"), "--dry-run", "--no-progress"])
    )

    assert calls["called"] is False


def test_run_pipeline_empty_folder(tmp_path: Path):
    input_dir = tmp_path / "empty"
    input_dir.mkdir()

    assert fastblur.run_pipeline(fastblur.parse_args([str(input_dir)])) == 0


def test_run_pipeline_rejects_nested_output(tmp_path: Path):
    input_dir = tmp_path / "input"
    nested_output = input_dir / "blurred"
    nested_output.mkdir(parents=True)

    with pytest.raises(SystemExit) as excinfo:
        fastblur.run_pipeline(fastblur.parse_args([str(input_dir), str(nested_output)]))

    assert "Output folder cannot be located inside the input folder" in str(excinfo.value)


def test_run_pipeline_rejects_input_nested_in_output(tmp_path: Path):
    output_dir = tmp_path / "output"
    input_dir = output_dir / "input"
    input_dir.mkdir(parents=True)

    with pytest.raises(SystemExit) as excinfo:
        fastblur.run_pipeline(fastblur.parse_args([str(input_dir), str(output_dir)]))

    assert "Input folder cannot be located inside the output folder" in str(excinfo.value)


@documents("I/O failures abort with a descriptive message and non-zero status")
def test_main_reports_io_errors(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    truncated = tmp_path / "short.raw"
    truncated.write_bytes(bytes(5))

    assert fastblur.main([str(tmp_path / "missing.png")]) == 1
    assert "missing.png" in caplog.text

    assert fastblur.main([str(truncated), "--raw-format", "rgb:2x2"]) == 1
    assert "truncated" in caplog.text


def test_main_reports_directory_in_place_of_output_file(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    input_dir = tmp_path / "in"
    output_dir = tmp_path / "out"
    input_dir.mkdir()
    _create_sample_image(input_dir / "a.png")
    (output_dir / "a_blur.png").mkdir(parents=True)

    status = fastblur.main([str(input_dir), str(output_dir), "--overwrite", "-k", "3", "--no-progress"])

    assert status == 1
    assert "is a directory" in caplog.text


@documents("Inputs that would share an output file abort the run before writing")
@pytest.mark.parametrize("workers", ["1", "2"])
def test_run_pipeline_rejects_sources_sharing_a_destination(tmp_path: Path, workers: str):
    input_dir = tmp_path / "in"
    output_dir = tmp_path / "out"
    input_dir.mkdir()
    _create_sample_image(input_dir / "photo.png")
    Image.new("RGB", (4, 3), color=(200, 10, 10)).save(input_dir / "photo.jpg")

    args = fastblur.parse_args(
        [str(input_dir), str(output_dir), "--overwrite", "--workers", workers, "-k", "3"]
    )
    with pytest.raises(fastblur.OutputPathError) as excinfo:
        fastblur.run_pipeline(args)

    assert "photo_blur.png" in str(excinfo.value)
    assert not (output_dir / "photo_blur.png").exists()


def test_main_returns_one_for_sources_sharing_a_destination(tmp_path: Path):
    input_dir = tmp_path / "in"
    input_dir.mkdir()
    _create_sample_image(input_dir / "photo.png")
    _create_sample_image(input_dir / "photo.jpg")

    assert fastblur.main([str(input_dir), str(tmp_path / "out"), "--dry-run"]) == 1


def test_recursive_run_keeps_same_stems_in_different_folders(tmp_path: Path):
    input_dir = tmp_path / "in"
    nested = input_dir / "nested"
    nested.mkdir(parents=True)
    _create_sample_image(input_dir / "photo.png")
    _create_sample_image(nested / "photo.jpg")
    output_dir = tmp_path / "out"

    processed = fastblur.run_pipeline(
        fastblur.parse_args([str(input_dir), str(output_dir), "--recursive", "-k", "3"])
    )

    assert processed == 2
    assert (output_dir / "photo_blur.png").is_file()
    assert (output_dir / "nested" / "photo_blur.png").is_file()


def test_main_returns_zero_on_success(tmp_path: Path):
    source = tmp_path / "photo.png"
    _create_sample_image(source)

    assert fastblur.main([str(source), "-k", "3", "-p", "1"]) == 0
    assert (tmp_path / "photo_blur.png").is_file()
