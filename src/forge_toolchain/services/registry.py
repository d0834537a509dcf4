import asyncio
import os
import re
import shutil
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Sequence

import logfire

from forge_toolchain.core.config import ToolchainSettings
from forge_toolchain.core.domain.errors import MandatoryToolMissing, UnexpectedLookupError
from forge_toolchain.core.domain.models import (
    BareLookup,
    CsmithToolchain,
    EmscriptenToolchain,
    Found,
    GenerateToolchain,
    LlvmToolchain,
    LookupFailed,
    SpecInterpreterToolchain,
    ToolName,
    ToolSearchSpec,
    VendoredFile,
)
from forge_toolchain.core.presentation.logging import ToolchainFormatter, console
from forge_toolchain.repository.discovery import ToolResolver, msbuild_search_path

PYTHON_VERSION_TIMEOUT = 30
PYTHON_VERSION_RE = re.compile(r"python (\d+)\.(\d+)", re.IGNORECASE)
PYTHON_MIN_VERSION = (2, 7)
PYTHON_MAX_VERSION = (3, 0)
PYTHON_WINDOWS_HOME = "C:\\Python27"

# Tools whose discovery is reported on the console.
DISCOVERY_LABELS = {ToolName.MSBUILD: "MsBuild", ToolName.PYTHON: "Python"}


def parse_python_version(text: str):
    """Return ``(major, minor)`` from ``python --version`` output, or None."""
    match = PYTHON_VERSION_RE.search(text or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def is_supported_python(version) -> bool:
    return version is not None and PYTHON_MIN_VERSION <= version < PYTHON_MAX_VERSION


class ToolchainRegistry:
    """
    Process-wide owner of toolchain discovery state.

    One registry is created per run (the DI container provides it as a
    singleton) and handed to every caller that needs a tool. Successful
    lookups are memoized for the lifetime of the registry; failures are
    never cached, so the next call probes again.
    """

    def __init__(
        self,
        settings: ToolchainSettings,
        which: Callable[..., Optional[str]] = shutil.which,
        listdir=os.listdir,
    ):
        self.settings = settings
        self.resolver = ToolResolver(which=which, environ=settings.environ)
        self._listdir = listdir
        self._cache: Dict[Hashable, Any] = {}
        self._inflight: Dict[Hashable, asyncio.Future] = {}

    @property
    def is_windows(self) -> bool:
        return self.settings.is_windows

    async def _memoize(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for ``key`` or compute it once.

        Concurrent callers for the same key share the in-flight computation,
        and cancelling one caller leaves it running for the others. A failed
        computation, or one that produced None, is not cached.
        """
        if key in self._cache:
            return self._cache[key]
        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(factory())
            self._inflight[key] = pending
            pending.add_done_callback(lambda task: self._settle(key, task))
        return await asyncio.shield(pending)

    def _settle(self, key: Hashable, task: asyncio.Future) -> None:
        self._inflight.pop(key, None)
        if task.cancelled() or task.exception() is not None:
            return
        value = task.result()
        if value is not None:
            self._cache[key] = value

    # ------------------------------------------------------------------
    # Bare lookups
    # ------------------------------------------------------------------

    def resolve_bare_tool(self, name: str, search_path: Optional[Sequence[str]] = None) -> Optional[str]:
        """PATH lookup for ``name``; ``search_path`` replaces PATH when given."""
        if search_path is not None:
            search_path = tuple(search_path)
        outcome = self.resolver.find_executable(name, search_path)
        if isinstance(outcome, LookupFailed):
            raise UnexpectedLookupError(name, outcome.cause) from outcome.cause
        if isinstance(outcome, Found):
            return outcome.path
        return None

    def require_bare_tool(self, tool: ToolName, search_path: Optional[Sequence[str]] = None) -> str:
        path = self.resolve_bare_tool(tool.value, search_path)
        if path is None:
            raise MandatoryToolMissing(tool.value)
        return path

    # ------------------------------------------------------------------
    # Search specs
    # ------------------------------------------------------------------

    def search_spec(self, tool: ToolName) -> ToolSearchSpec:
        """Ordered candidate strategies for ``tool`` on the current platform."""
        third = self.settings.third_parties
        bins = self.settings.bin_directories

        if tool is ToolName.MSBUILD:
            constructed = msbuild_search_path(self.settings.environ, self._listdir)
            return ToolSearchSpec(
                tool,
                (BareLookup("msbuild.exe"), BareLookup("msbuild.exe", tuple(constructed))),
                mandatory=True,
                missing_message="MsBuild is missing",
            )
        if tool is ToolName.PYTHON:
            locations = [None]
            if self.settings.environ.get("PYTHON"):
                locations.append((self.settings.environ["PYTHON"],))
            if self.is_windows:
                locations.append((PYTHON_WINDOWS_HOME,))
            candidates = tuple(
                BareLookup(name, location)
                for location in locations
                for name in ("python", "python2")
            )
            return ToolSearchSpec(
                tool,
                candidates,
                mandatory=True,
                missing_message="Python 2 is missing",
                validator=self.validate_python,
            )
        if tool is ToolName.M4 and self.is_windows:
            return ToolSearchSpec(tool, (VendoredFile(third.m4, "m4.exe"),), mandatory=True)
        if tool in (ToolName.CMAKE, ToolName.M4, ToolName.MAKE):
            return ToolSearchSpec(tool, (BareLookup(tool.value),), mandatory=True)
        if tool is ToolName.EMCC:
            return ToolSearchSpec(tool, (VendoredFile(third.emscripten, "emcc.py"),), mandatory=True)
        if tool is ToolName.EMPP:
            return ToolSearchSpec(tool, (VendoredFile(third.emscripten, "em++.py"),), mandatory=True)

        vendored = {
            ToolName.WASM: bins.spec,
            ToolName.CSMITH: bins.csmith,
            ToolName.CLANG: bins.llvm,
        }[tool]
        return ToolSearchSpec(
            tool,
            (BareLookup(tool.value), BareLookup(tool.value, (vendored,))),
        )

    async def _search(self, spec: ToolSearchSpec) -> Optional[str]:
        for candidate in spec.candidates:
            outcome = self.resolver.probe(candidate)
            if isinstance(outcome, LookupFailed):
                raise UnexpectedLookupError(spec.tool.value, outcome.cause) from outcome.cause
            if not isinstance(outcome, Found):
                continue
            if spec.validator is not None and not await spec.validator(outcome.path):
                continue
            return outcome.path
        if spec.mandatory:
            raise MandatoryToolMissing(spec.tool.value, spec.failure_message)
        return None

    async def resolve_tool(self, tool: ToolName) -> Optional[str]:
        """Resolve ``tool`` from its search spec, memoizing a successful result.

        Optional tools that are absent resolve to None and are probed again
        on the next call.
        """

        async def _resolve():
            path = await self._search(self.search_spec(tool))
            if path is not None and tool in DISCOVERY_LABELS:
                console.print(ToolchainFormatter.format_discovered(DISCOVERY_LABELS[tool], path))
            return path

        return await self._memoize(tool, _resolve)

    # ------------------------------------------------------------------
    # Individual tools
    # ------------------------------------------------------------------

    async def validate_python(self, python: str) -> bool:
        """Accept ``python`` only if ``--version`` reports 2.7 <= version < 3.0."""
        try:
            proc = await asyncio.create_subprocess_exec(
                python,
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                stdout, stderr = await asyncio.wait_for(
                    proc.communicate(), timeout=PYTHON_VERSION_TIMEOUT
                )
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
                raise
        except (OSError, asyncio.TimeoutError) as e:
            console.print(
                ToolchainFormatter.format_candidate_rejected(python, str(e) or "timed out")
            )
            return False

        # Python 2 prints its version on stderr, Python 3 on stdout.
        text = stdout.decode(errors="replace") + stderr.decode(errors="replace")
        return is_supported_python(parse_python_version(text))

    async def resolve_msbuild(self) -> Optional[str]:
        """MSBuild path on Windows; None on every other platform."""
        if not self.is_windows:
            return None
        return await self.resolve_tool(ToolName.MSBUILD)

    async def resolve_python(self) -> str:
        return await self.resolve_tool(ToolName.PYTHON)

    # ------------------------------------------------------------------
    # Bundles
    # ------------------------------------------------------------------

    async def resolve_emscripten(self) -> EmscriptenToolchain:
        return await self._memoize("emscripten", self._resolve_emscripten)

    @logfire.instrument("Resolve Emscripten toolchain")
    async def _resolve_emscripten(self) -> EmscriptenToolchain:
        python = await self.resolve_python()
        return EmscriptenToolchain(
            python=python,
            emcc=await self.resolve_tool(ToolName.EMCC),
            empp=await self.resolve_tool(ToolName.EMPP),
            home_dir=self.settings.output_dir,
            base_env=tuple(self.settings.environ.items()),
        )

    async def resolve_spec_interpreter(self) -> SpecInterpreterToolchain:
        return await self._memoize("spec", self._resolve_spec_interpreter)

    async def _resolve_spec_interpreter(self) -> SpecInterpreterToolchain:
        # TODO: also require ocaml once the interpreter build stops assuming it is installed
        if self.is_windows:
            return SpecInterpreterToolchain(cmd="cmd")
        return SpecInterpreterToolchain(make=await self.resolve_tool(ToolName.MAKE))

    async def resolve_generate_toolchain(self) -> GenerateToolchain:
        return await self._memoize("generate", self._resolve_generate_toolchain)

    @logfire.instrument("Resolve generate toolchain")
    async def _resolve_generate_toolchain(self) -> GenerateToolchain:
        return GenerateToolchain(
            wasm=await self.resolve_tool(ToolName.WASM),
            csmith=await self.resolve_tool(ToolName.CSMITH),
            clang=await self.resolve_tool(ToolName.CLANG),
            emscripten=await self.resolve_emscripten(),
        )

    @logfire.instrument("Resolve csmith toolchain")
    async def resolve_csmith_toolchain(self) -> CsmithToolchain:
        # Sequential: the first missing mandatory tool aborts the rest.
        msbuild = await self.resolve_msbuild()
        cmake = await self.resolve_tool(ToolName.CMAKE)
        m4 = await self.resolve_tool(ToolName.M4)
        return CsmithToolchain(msbuild=msbuild, cmake=cmake, m4=m4)

    @logfire.instrument("Resolve LLVM toolchain")
    async def resolve_llvm_toolchain(self) -> LlvmToolchain:
        msbuild = await self.resolve_msbuild()
        cmake = await self.resolve_tool(ToolName.CMAKE)
        make = None if self.is_windows else await self.resolve_tool(ToolName.MAKE)
        return LlvmToolchain(msbuild=msbuild, cmake=cmake, make=make)
