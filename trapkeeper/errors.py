"""Error types for Trapkeeper."""


class TrapkeeperError(Exception):
    """Base class for all errors surfaced to the operator."""


class MissingDependency(TrapkeeperError):
    """A required external tool is not installed."""

    def __init__(self, tool: str, hint: str = "") -> None:
        self.tool = tool
        message = f"Required tool not found: {tool}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)


class MissingCredential(TrapkeeperError):
    """No usable private key could be found without prompting."""


class InvalidCredentialFormat(TrapkeeperError):
    """A private key is not 64 hex characters after normalization."""


class InvalidAddressFormat(TrapkeeperError):
    """An address is not 0x followed by 40 hex characters."""


class ConfigFileNotFound(TrapkeeperError):
    """The configuration file to patch does not exist."""

    def __init__(self, path) -> None:
        self.path = path
        super().__init__(f"Config file not found: {path}")


class WriteFailed(TrapkeeperError):
    """A config file could not be replaced atomically."""

    def __init__(self, path, reason: str) -> None:
        self.path = path
        super().__init__(f"Failed to write {path}: {reason}")


class SubprocessFailed(TrapkeeperError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: str, returncode: int, log_path=None) -> None:
        self.command = command
        self.returncode = returncode
        self.log_path = log_path
        message = f"Command failed with exit code {returncode}: {command}"
        if log_path:
            message = f"{message}. See {log_path}"
        super().__init__(message)
