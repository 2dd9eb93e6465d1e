from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .enums import Stage
from .patch import Patch
from .repository import Repository


@dataclass(slots=True)
class RunState:
    """Everything one merge-and-build run produced so far.  Never cleaned up."""
    temp_dir:     Path
    stage:        Stage                = Stage.INIT
    patch:        Optional[Patch]      = None
    repository:   Optional[Repository] = None
    checkout_dir: Optional[Path]       = None
    changelog_before: Optional[str]    = None
    changelog_after:  Optional[str]    = None
    history: list[Stage] = field(default_factory=list)

    @property
    def patch_path(self) -> Path:
        return self.temp_dir / "latest.patch"

    @property
    def export_dir(self) -> Path:
        return self.temp_dir / "export"

    @property
    def changelog_changed(self) -> bool:
        return (
            self.changelog_before is not None
            and self.changelog_after is not None
            and self.changelog_before != self.changelog_after
        )

    def enter(self, stage: Stage) -> None:
        self.stage = stage
        self.history.append(stage)
