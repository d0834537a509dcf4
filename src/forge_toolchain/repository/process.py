import asyncio
import codecs
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from forge_toolchain.core.domain.errors import NonZeroExitError, SpawnError

CHUNK_SIZE = 4096
STREAM_LIMIT = 2**16
# How long readers may keep draining after the exit event.
DRAIN_TIMEOUT = 0.5


@dataclass
class CapturedOutput:
    """Accumulator the waiter appends decoded stdout/stderr chunks to."""

    stdout: str = ""
    stderr: str = ""


class ProcessHandle(Protocol):
    args: Sequence[str]
    stdout: Optional[asyncio.StreamReader]
    stderr: Optional[asyncio.StreamReader]

    async def wait(self) -> int:
        """Return the exit code once the process has exited."""


class _ExitProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that also exposes the exit event as a future.

    ``Process.wait()`` only completes once every pipe is closed, which a
    grandchild inheriting the pipes can postpone indefinitely.
    """

    def __init__(self, limit, loop):
        super().__init__(limit=limit, loop=loop)
        self.exited = loop.create_future()

    def process_exited(self):
        code = self._transport.get_returncode()
        super().process_exited()
        if not self.exited.done():
            self.exited.set_result(code)


@dataclass
class ToolProcess:
    """A started child process together with the argument vector that started it."""

    process: asyncio.subprocess.Process
    args: List[str] = field(default_factory=list)
    exited: Optional[asyncio.Future] = field(default=None, repr=False)

    @property
    def stdout(self) -> Optional[asyncio.StreamReader]:
        return self.process.stdout

    @property
    def stderr(self) -> Optional[asyncio.StreamReader]:
        return self.process.stderr

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    async def wait(self) -> int:
        if self.exited is None:
            return await self.process.wait()
        return await asyncio.shield(self.exited)


async def start_process(
    args: Sequence[str],
    cwd=None,
    env=None,
    stdin=None,
    stdout=None,
    stderr=None,
) -> ToolProcess:
    """Start ``args`` as a child process; streams are inherited unless overridden."""
    args = [str(a) for a in args]
    loop = asyncio.get_running_loop()
    try:
        transport, protocol = await loop.subprocess_exec(
            lambda: _ExitProtocol(limit=STREAM_LIMIT, loop=loop),
            *args,
            cwd=cwd,
            env=env,
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
        )
    except OSError as e:
        raise SpawnError(e, args) from e
    proc = asyncio.subprocess.Process(transport, protocol, loop)
    return ToolProcess(process=proc, args=args, exited=protocol.exited)


async def _pump(stream: asyncio.StreamReader, output: Optional[CapturedOutput], attr: str) -> None:
    # Pipes are always drained so a chatty child cannot block on a full pipe.
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            if not chunk:
                break
            if output is not None:
                setattr(output, attr, getattr(output, attr) + decoder.decode(chunk))
    finally:
        if output is not None:
            tail = decoder.decode(b"", final=True)
            if tail:
                setattr(output, attr, getattr(output, attr) + tail)


async def wait_until_done(process: ProcessHandle, output: Optional[CapturedOutput] = None) -> None:
    """Wait for ``process`` to exit.

    The exit event is terminal: once it arrives, readers get a short bounded
    drain and are then cancelled, so a grandchild still holding the pipes
    cannot keep the wait pending. Returns on exit code 0 and raises
    :class:`NonZeroExitError` for any other code, including negative codes
    for processes killed by a signal. An ``OSError`` raised while waiting is
    reported as :class:`SpawnError` right away.

    When ``output`` is given, every stdout/stderr chunk is decoded and
    appended to it as it arrives, so callers can inspect partial output
    before the wait completes. ``output`` requires at least one piped stream.
    """
    invocation = list(process.args)
    streams = [
        (attr, stream)
        for attr, stream in (("stdout", process.stdout), ("stderr", process.stderr))
        if stream is not None
    ]
    if output is not None and not streams:
        raise ValueError(
            "Output capture requested but neither stdout nor stderr is piped: "
            + " ".join(invocation)
        )

    pumps = [asyncio.ensure_future(_pump(stream, output, attr)) for attr, stream in streams]
    waiter = asyncio.ensure_future(process.wait())
    tasks = [*pumps, waiter]

    try:
        while not waiter.done():
            running = [task for task in tasks if not task.done()]
            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        if pumps:
            done, _ = await asyncio.wait(pumps, timeout=DRAIN_TIMEOUT)
            for task in done:
                task.result()
    except OSError as e:
        raise SpawnError(e, invocation) from e
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    code = waiter.result()
    if code != 0:
        raise NonZeroExitError(code, invocation)
