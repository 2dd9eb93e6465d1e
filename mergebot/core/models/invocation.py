from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence


@dataclass(slots=True)
class Invocation:
    """
    One execution of an external program.

    Owned by the LoggedCommand that started it; `finished` stays None
    while the child is still running.
    """
    index:    int
    args:     Sequence[str]
    workdir:  Path
    env:      Optional[Sequence[str]]          # None -> inherited
    started:  datetime = field(default_factory=lambda: datetime.now().astimezone())
    finished: Optional[datetime] = None
    duration: Optional[float]    = None        # seconds, monotonic clock

    @property
    def program(self) -> str:
        return os.path.basename(self.args[0])

    @property
    def command_line(self) -> str:
        return " ".join(self.args)

    # ---------------------------------------------------------- log text
    def render(self) -> str:
        """Invocation log body without the trailing state line."""
        def _quoted(items: Sequence[str]) -> str:
            return "\n\t".join(f'"{it}"' for it in items)

        text = (
            f"Execution started: {self.started.isoformat()}\n"
            f'Working directory: "{self.workdir}"\n'
            f"Command ({len(self.args)} elements):\n\t{_quoted(self.args)}\n"
        )
        if self.env is None:
            text += "Environment: inherited from parent process\n"
        else:
            text += f"Environment ({len(self.env)} elements):\n\t{_quoted(self.env)}\n"
        return text

    def render_provisional(self) -> str:
        return self.render() + "(Still running…)"

    def render_final(self) -> str:
        return (
            self.render()
            + f"Execution finished: {self.finished.isoformat()} "
              f"(duration: {self.duration:.6f}s)\n"
        )
