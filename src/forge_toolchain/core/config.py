import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from forge_toolchain.core.presentation.logging import console

CONFIG_FILENAME = "forge-toolchain.config.json"
OUTPUT_DIR_ENV = "FORGE_TOOLCHAIN_OUTPUT_DIR"


def load_config(project_dir) -> Dict[str, Any]:
    config_path = os.path.join(project_dir, CONFIG_FILENAME)
    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            console.print(
                f"[yellow]Warning: Failed to load config file: {e}[/yellow]"
            )
    return {}


@dataclass(frozen=True)
class ThirdParties:
    """Vendored tool roots shipped with (or built by) the project."""

    m4: str
    emscripten: str


@dataclass(frozen=True)
class BinDirectories:
    """Build output folders used as fallback search paths."""

    spec: str
    csmith: str
    llvm: str


@dataclass(frozen=True)
class ToolchainSettings:
    is_windows: bool
    output_dir: str
    third_parties: ThirdParties
    bin_directories: BinDirectories
    environ: Mapping[str, str] = field(default_factory=dict, compare=False)

    @classmethod
    def from_config(
        cls,
        config: Optional[Mapping[str, Any]] = None,
        project_dir=".",
        environ: Optional[Mapping[str, str]] = None,
        platform: Optional[str] = None,
    ) -> "ToolchainSettings":
        """Build settings from a parsed config file, falling back to project defaults.

        Relative paths in the config are resolved against ``project_dir``.
        """
        config = config or {}
        environ = dict(os.environ if environ is None else environ)
        platform = platform or sys.platform
        root = Path(project_dir).resolve()

        def _path(value, default):
            return str(root / (value or default))

        third = config.get("third_parties") or {}
        bins = config.get("bin_directories") or {}
        output_dir = environ.get(OUTPUT_DIR_ENV) or config.get("output_dir")

        return cls(
            is_windows=platform.startswith("win"),
            output_dir=_path(output_dir, "outputs"),
            third_parties=ThirdParties(
                m4=_path(third.get("m4"), "third_party/m4"),
                emscripten=_path(third.get("emscripten"), "third_party/emscripten"),
            ),
            bin_directories=BinDirectories(
                spec=_path(bins.get("spec"), "third_party/spec/interpreter"),
                csmith=_path(bins.get("csmith"), "third_party/csmith/build/src"),
                llvm=_path(bins.get("llvm"), "third_party/llvm/build/bin"),
            ),
            environ=environ,
        )

    @classmethod
    def load(cls, project_dir=".", **kwargs) -> "ToolchainSettings":
        return cls.from_config(load_config(project_dir), project_dir=project_dir, **kwargs)
