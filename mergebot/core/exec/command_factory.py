"""
CommandFactory
==============

Immutable bundle of the context every LoggedCommand of one pipeline
stage-group shares: log directory, logger, working directory, child
environment and the invocation counter.

A pipeline narrows its context by deriving new factories:

    root      = CommandFactory()
    temp      = root.derive(log_dir=tmp).with_passthrough_env()
    checkout  = temp.derive(workdir=tmp / "repo")

`derive()` never touches the factory it is called on, so code that kept
a reference to `temp` still gets commands running in the caller's
directory after `checkout` exists.  All derived factories share the
parent's counter, keeping log file indices unique within one run.

Layer: core.exec
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .logged_command import DEFAULT_LOG_FORMAT, InvocationCounter, LoggedCommand

log = logging.getLogger(__name__)

# commit attribution + ssh/gpg agents; nothing else reaches the children
PASSTHROUGH_ENV: tuple[str, ...] = (
    "DEBFULLNAME",
    "DEBEMAIL",
    "SSH_AGENT_PID",
    "GPG_AGENT_INFO",
    "SSH_AUTH_SOCK",
)

_UNSET = object()


@dataclass(frozen=True)
class CommandFactory:
    log_dir:    Optional[Path]           = None
    logger:     logging.Logger           = field(default_factory=lambda: log)
    workdir:    Optional[Path]           = None
    env:        Optional[Mapping[str, str]] = None      # None -> inherit os.environ
    log_format: str                      = DEFAULT_LOG_FORMAT
    counter:    InvocationCounter        = field(default_factory=InvocationCounter)

    # ------------------------------------------------------------------ build
    def __call__(self, name: str, *args: str) -> LoggedCommand:
        return LoggedCommand(
            name,
            *args,
            workdir=self.workdir,
            env=dict(self.env) if self.env is not None else None,
            logger=self.logger,
            log_dir=self.log_dir,
            log_format=self.log_format,
            counter=self.counter,
        )

    # ------------------------------------------------------------------ derive
    def derive(
        self,
        *,
        log_dir=_UNSET,
        logger=_UNSET,
        workdir=_UNSET,
        extra_env: Optional[Mapping[str, str]] = None,
    ) -> "CommandFactory":
        """
        New factory with the given overrides on top of this one.

        `extra_env` is merged into the current environment; starting from
        an inherited (None) environment it becomes the only content, so
        the child still sees nothing outside what was explicitly bound.
        """
        changes: dict = {}
        if log_dir is not _UNSET:
            changes["log_dir"] = Path(log_dir) if log_dir is not None else None
        if logger is not _UNSET:
            changes["logger"] = logger
        if workdir is not _UNSET:
            changes["workdir"] = Path(workdir) if workdir is not None else None
        if extra_env is not None:
            merged = dict(self.env or {})
            merged.update(extra_env)
            changes["env"] = merged
        return dataclasses.replace(self, **changes)

    def with_passthrough_env(
        self, environ: Optional[Mapping[str, str]] = None
    ) -> "CommandFactory":
        """Bind an explicit child environment holding only the allow-listed variables."""
        environ = os.environ if environ is None else environ
        forwarded = {k: environ[k] for k in PASSTHROUGH_ENV if k in environ}
        log.debug("Forwarding %s to child processes", ", ".join(forwarded) or "nothing")
        merged = dict(self.env or {})
        merged.update(forwarded)
        return dataclasses.replace(self, env=merged)
