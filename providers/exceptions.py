"""Errors raised by the signal-cli provider."""


class SignalCLIError(Exception):
    """Base error for signal-cli invocations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CommandTimeoutError(SignalCLIError):
    """signal-cli did not finish within the configured budget."""

    def __init__(self, timeout_ms: int):
        super().__init__(f"signal-cli command timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class CommandFailedError(SignalCLIError):
    """signal-cli exited non-zero or could not be started."""

    def __init__(self, message: str, exit_code: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr

    @classmethod
    def from_exit(cls, exit_code: int, stderr: str) -> "CommandFailedError":
        detail = stderr.strip() or "no diagnostic output"
        return cls(
            f"signal-cli error (exit code {exit_code}): {detail}",
            exit_code=exit_code,
            stderr=stderr,
        )
