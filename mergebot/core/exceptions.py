"""
mergebot.core.exceptions
========================

Every error the merge-and-build run can surface.  None of them is
retried; they travel up to the CLI unchanged.
"""

from __future__ import annotations

import json
from pathlib import Path


def _quote(value) -> str:
    """Double-quoted, with embedded quotes, backslashes and control characters escaped."""
    return json.dumps(str(value), ensure_ascii=False)


class MergebotError(Exception):
    """Base class for all mergebot failures."""


class ConfigError(MergebotError):
    """The settings file could not be read or contains unknown keys."""


class LoggingError(MergebotError):
    """A log file could not be created, written or renamed."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ExecutionError(MergebotError):
    """
    An external program failed to start or exited non-zero.

    The message points at both log files and repeats the first line the
    program printed, so an operator rarely needs to open the logs to know
    what went wrong.
    """

    def __init__(
        self,
        command_line: str,
        cause: str,
        invocation_log: Path,
        output_log: Path,
        first_line: str,
        returncode: int | None = None,
    ) -> None:
        self.command_line   = command_line
        self.cause          = cause
        self.invocation_log = Path(invocation_log)
        self.output_log     = Path(output_log)
        self.first_line     = first_line
        self.returncode     = returncode
        super().__init__(self._format())

    def _format(self) -> str:
        return (
            f"Running {_quote(self.command_line)}: {self.cause}\n"
            f"See {_quote(self.invocation_log)} for invocation details.\n"
            f"See {_quote(self.output_log)} for full stdout/stderr.\n"
            f"First stdout/stderr line: {_quote(self.first_line)}\n"
        )

    @classmethod
    def from_error(cls, other: "ExecutionError") -> "ExecutionError":
        return cls(
            other.command_line,
            other.cause,
            other.invocation_log,
            other.output_log,
            other.first_line,
            other.returncode,
        )


class PatchApplicationError(ExecutionError):
    """`patch` could not apply at least one hunk."""


class UnsupportedSCM(MergebotError):
    def __init__(self, url: str, scm: str) -> None:
        super().__init__(
            f'mergebot only supports git currently, but "{url}" is using the SCM "{scm}"'
        )
        self.url = url
        self.scm = scm


class RepositoryResolutionError(MergebotError):
    """debcheckout printed something other than <scm>\\t<url>."""


class ProtocolError(MergebotError):
    """The bug tracker answered with something we cannot parse."""


class MultipleMessagesError(ProtocolError):
    def __init__(self, count: int) -> None:
        super().__init__(f"expected exactly one message in the bug log, found {count}")
        self.count = count
