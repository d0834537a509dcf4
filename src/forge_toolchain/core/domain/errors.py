from typing import Optional, Sequence


class ToolchainError(Exception):
    """Base class for every error surfaced by toolchain discovery or execution."""


class MandatoryToolMissing(ToolchainError):
    """Every candidate for a required tool was exhausted."""

    def __init__(self, tool: str, message: Optional[str] = None):
        super().__init__(message or f"{tool} is missing")
        self.tool = tool


class UnexpectedLookupError(ToolchainError):
    """A lookup failed for a reason other than the tool being absent."""

    def __init__(self, tool: str, cause: BaseException):
        super().__init__(f"Lookup for '{tool}' failed: {cause}")
        self.tool = tool
        self.cause = cause


class ProcessError(ToolchainError):
    def __init__(self, message: str, invocation: Sequence[str] = ()):
        super().__init__(message)
        self.invocation = list(invocation)


class NonZeroExitError(ProcessError):
    def __init__(self, code: int, invocation: Sequence[str]):
        super().__init__(
            f"Command terminated with exit code {code}\n{' '.join(invocation)}",
            invocation,
        )
        self.code = code


class SpawnError(ProcessError):
    def __init__(self, cause: BaseException, invocation: Sequence[str] = ()):
        super().__init__(f"Failed to start process: {cause}", invocation)
        self.cause = cause
