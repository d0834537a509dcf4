from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from forge_toolchain.repository.process import start_process


class ToolName(str, Enum):
    """Closed set of external tools the build pipeline can ask for."""

    MSBUILD = "msbuild"
    CMAKE = "cmake"
    M4 = "m4"
    MAKE = "make"
    PYTHON = "python"
    CLANG = "clang"
    CSMITH = "csmith"
    WASM = "wasm"
    EMCC = "emcc"
    EMPP = "em++"


# ---------------------------------------------------------------------------
# Candidate strategies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BareLookup:
    """Search PATH (or ``search_path`` instead of it) for ``executable``."""

    executable: str
    search_path: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class ConstructedPath:
    """Join an environment-derived root with fixed segments."""

    root: str
    segments: Tuple[str, ...]


@dataclass(frozen=True)
class VendoredFile:
    """A file shipped inside a known third-party root."""

    root: str
    filename: str


Candidate = BareLookup | ConstructedPath | VendoredFile
Validator = Callable[[str], Awaitable[bool]]


@dataclass(frozen=True)
class ToolSearchSpec:
    tool: ToolName
    candidates: Tuple[Candidate, ...]
    mandatory: bool = False
    missing_message: Optional[str] = None
    validator: Optional[Validator] = None

    @property
    def failure_message(self) -> str:
        return self.missing_message or f"{self.tool.value} is missing"


# ---------------------------------------------------------------------------
# Probe outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Found:
    path: str


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class LookupFailed:
    cause: BaseException


ProbeOutcome = Found | NotFound | LookupFailed

NOT_FOUND = NotFound()


# ---------------------------------------------------------------------------
# Bundles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolchainBundle:
    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CsmithToolchain(ToolchainBundle):
    msbuild: Optional[str]
    cmake: str
    m4: str


@dataclass(frozen=True)
class LlvmToolchain(ToolchainBundle):
    msbuild: Optional[str]
    cmake: str
    make: Optional[str]


@dataclass(frozen=True)
class SpecInterpreterToolchain(ToolchainBundle):
    cmd: Optional[str] = None
    make: Optional[str] = None


@dataclass(frozen=True)
class EmscriptenToolchain(ToolchainBundle):
    """Python interpreter plus the vendored emcc/em++ entry points.

    ``run_emcc`` and ``run_empp`` start the entry point under ``python`` with
    ``HOME``/``USERPROFILE`` pointed at ``home_dir`` so emscripten reads the
    build's own ``.emscripten`` file instead of the user's.
    """

    python: str
    emcc: str
    empp: str
    home_dir: str = field(repr=False)
    base_env: Tuple[Tuple[str, str], ...] = field(default=(), repr=False, compare=False)

    def as_dict(self) -> Dict[str, Any]:
        return {"python": self.python, "emcc": self.emcc, "empp": self.empp}

    def environment(self) -> Dict[str, str]:
        env = dict(self.base_env)
        env["HOME"] = self.home_dir
        env["USERPROFILE"] = self.home_dir
        return env

    async def run_emcc(self, args=(), **options):
        return await self._run(self.emcc, args, options)

    async def run_empp(self, args=(), **options):
        return await self._run(self.empp, args, options)

    async def _run(self, entry_point, args, options):
        options = {"env": self.environment(), **options}
        return await start_process([self.python, entry_point, *args], **options)


@dataclass(frozen=True)
class GenerateToolchain(ToolchainBundle):
    wasm: Optional[str]
    csmith: Optional[str]
    clang: Optional[str]
    emscripten: EmscriptenToolchain

    @property
    def python(self) -> str:
        return self.emscripten.python

    @property
    def emcc(self) -> str:
        return self.emscripten.emcc

    @property
    def empp(self) -> str:
        return self.emscripten.empp

    @property
    def run_emcc(self):
        return self.emscripten.run_emcc

    @property
    def run_empp(self):
        return self.emscripten.run_empp

    def as_dict(self) -> Dict[str, Any]:
        return {
            "wasm": self.wasm,
            "csmith": self.csmith,
            "clang": self.clang,
            **self.emscripten.as_dict(),
        }
