import os
import shutil
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from forge_toolchain.core.domain.models import (
    NOT_FOUND,
    BareLookup,
    Candidate,
    ConstructedPath,
    Found,
    LookupFailed,
    ProbeOutcome,
    VendoredFile,
)

WhichFn = Callable[..., Optional[str]]

MODERN_MSBUILD_VERSION = "15.0"
LEGACY_MSBUILD_VERSIONS = ("14.0", "12.0", "10.0")
VS_EDITIONS = ("2017", "Preview")
BIN_FOLDERS = ("bin", "bin/x86", "bin/amd64")


class ToolResolver:
    """Handles discovery of external tools and executables.

    Every probe returns a tagged outcome instead of raising, so callers can
    walk an ordered candidate list and stop at the first ``Found``.
    """

    def __init__(self, which: WhichFn = shutil.which, environ: Optional[Mapping[str, str]] = None):
        self.which = which
        self.environ = os.environ if environ is None else environ

    def find_executable(self, name: str, search_path: Optional[Sequence[str]] = None) -> ProbeOutcome:
        """Find an executable on PATH, or on ``search_path`` instead of it."""
        if search_path is None:
            path = self.environ.get("PATH", os.defpath)
        else:
            path = os.pathsep.join(search_path)
        try:
            exe_path = self.which(name, path=path)
        except OSError as e:
            return LookupFailed(e)
        if exe_path:
            return Found(os.path.abspath(exe_path))
        return NOT_FOUND

    @staticmethod
    def find_file(path: Path) -> ProbeOutcome:
        try:
            if path.is_file():
                return Found(str(path.resolve()))
        except OSError as e:
            return LookupFailed(e)
        return NOT_FOUND

    def probe(self, candidate: Candidate) -> ProbeOutcome:
        if isinstance(candidate, BareLookup):
            return self.find_executable(candidate.executable, candidate.search_path)
        if isinstance(candidate, ConstructedPath):
            return self.find_file(Path(candidate.root, *candidate.segments))
        if isinstance(candidate, VendoredFile):
            return self.find_file(Path(candidate.root) / candidate.filename)
        raise TypeError(f"Unknown candidate strategy: {candidate!r}")


def _list_subdirectories(folder: str, listdir) -> List[str]:
    try:
        return sorted(listdir(folder))
    except OSError:
        # unreadable or absent install roots are simply skipped
        return []


def _dedupe(paths: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for p in paths:
        if p not in seen:
            seen.add(p)
            ordered.append(p)
    return ordered


def msbuild_search_path(environ: Mapping[str, str], listdir=os.listdir) -> List[str]:
    """Candidate MSBuild bin folders, newest layout first.

    Visual Studio 2017+ installs MSBuild under
    ``<ProgramFiles>/Microsoft Visual Studio/<edition>/<sku>/MSBuild/15.0``;
    older standalone installs live in ``<ProgramFiles>/MSBuild/<version>``.
    """
    program_files = environ.get("ProgramFiles")
    program_files_x86 = environ.get("ProgramFiles(x86)")

    paths = []
    for root in (program_files, program_files_x86):
        if not root:
            continue
        vs_root = os.path.join(root, "Microsoft Visual Studio")
        for edition in VS_EDITIONS:
            folder = os.path.join(vs_root, edition)
            for sku in _list_subdirectories(folder, listdir):
                for bin_folder in BIN_FOLDERS:
                    paths.append(
                        os.path.normpath(
                            os.path.join(folder, sku, "MSBuild", MODERN_MSBUILD_VERSION, bin_folder)
                        )
                    )

    for version in LEGACY_MSBUILD_VERSIONS:
        if program_files:
            paths.append(os.path.normpath(os.path.join(program_files, "MSBuild", version, "bin/x86")))
        if program_files_x86:
            paths.append(os.path.normpath(os.path.join(program_files_x86, "MSBuild", version, "bin")))
            paths.append(os.path.normpath(os.path.join(program_files_x86, "MSBuild", version, "bin/amd64")))

    return _dedupe(paths)
