import json
from pathlib import Path

from forge_toolchain.core.config import (
    CONFIG_FILENAME,
    OUTPUT_DIR_ENV,
    ToolchainSettings,
    load_config,
)


def test_load_config_missing_file_is_empty(tmp_path: Path) -> None:
    assert load_config(tmp_path) == {}


def test_load_config_invalid_json_warns_and_returns_empty(tmp_path: Path, capsys) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("{not json")

    assert load_config(tmp_path) == {}
    assert "Failed to load config file" in capsys.readouterr().err


def test_settings_defaults_are_project_relative(tmp_path: Path) -> None:
    settings = ToolchainSettings.from_config({}, project_dir=tmp_path, environ={}, platform="linux")
    root = tmp_path.resolve()

    assert settings.is_windows is False
    assert settings.output_dir == str(root / "outputs")
    assert settings.third_parties.m4 == str(root / "third_party" / "m4")
    assert settings.third_parties.emscripten == str(root / "third_party" / "emscripten")
    assert settings.bin_directories.llvm == str(root / "third_party" / "llvm" / "build" / "bin")


def test_settings_load_reads_config_file(tmp_path: Path) -> None:
    vendored = tmp_path / "vendor" / "emsdk"
    (tmp_path / CONFIG_FILENAME).write_text(
        json.dumps(
            {
                "output_dir": "build/out",
                "third_parties": {"emscripten": str(vendored)},
                "bin_directories": {"csmith": "tools/csmith/bin"},
            }
        )
    )

    settings = ToolchainSettings.load(tmp_path, environ={}, platform="win32")
    root = tmp_path.resolve()

    assert settings.is_windows is True
    assert settings.output_dir == str(root / "build" / "out")
    assert settings.third_parties.emscripten == str(vendored)
    assert settings.bin_directories.csmith == str(root / "tools" / "csmith" / "bin")
    assert settings.bin_directories.spec == str(root / "third_party" / "spec" / "interpreter")


def test_output_dir_environment_override(tmp_path: Path) -> None:
    target = tmp_path / "elsewhere"
    settings = ToolchainSettings.from_config(
        {"output_dir": "ignored"},
        project_dir=tmp_path,
        environ={OUTPUT_DIR_ENV: str(target)},
        platform="darwin",
    )

    assert settings.output_dir == str(target)
    assert settings.environ == {OUTPUT_DIR_ENV: str(target)}
