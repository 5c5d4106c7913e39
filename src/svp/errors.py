"""Exception hierarchy for svp.

Text editors never raise; actions and services raise these so the CLI
can print a one-line message followed by the external command output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from svp.connector.ssh import CommandResult


class SVPError(Exception):
    """Base class for all svp errors."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.output = output


class VhostNotFoundError(SVPError, FileNotFoundError):
    """The vhost file for a domain does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"nginx vhost not found: {path}")
        self.path = path


class MalformedConfigError(SVPError):
    """An expected anchor line is missing or braces do not balance."""


class ValidationFailedError(SVPError):
    """`nginx -t` rejected the configuration."""


class ReloadFailedError(SVPError):
    """The service manager refused to reload nginx."""


class CommandError(SVPError):
    """An external command exited non-zero."""

    def __init__(
        self,
        message: str,
        command: str = "",
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 1,
    ) -> None:
        super().__init__(message, output=(stderr or stdout).strip())
        self.command = command
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code

    @classmethod
    def from_result(cls, message: str, result: CommandResult) -> CommandError:
        """Build an error from a failed CommandResult."""
        return cls(
            message,
            command=result.command,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
        )
