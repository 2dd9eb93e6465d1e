"""
MergePipeline
=============

Merges the patch attached to a Debian bug into the package's packaging
repository and builds the result:

    Init → FetchPatch → ResolveRepository → Checkout → Fingerprint(pre)
         → ApplyPatch → Commit → Fingerprint(post) → ReleaseChangelog
         → Build → Done

Every external program runs through a CommandFactory, which is narrowed
twice: after Init it logs into the temp directory and forwards only the
allow-listed environment, after Checkout it also runs inside the
checkout.

The first failing stage aborts the run.  The temp directory is never
removed, on success or failure, so the operator can inspect the result
and push/upload by hand; `pipeline.state` tells where the run stopped.

Layout of the temp directory:

    latest.patch          patch as fetched from the BTS
    repo/                 the packaging checkout
    export/               build results
    NNN-<prog>.*.log      two log files per external command

Layer: core.services
"""

from __future__ import annotations

import logging
import os
import shlex
import sys
import tempfile
from pathlib import Path
from typing import Callable, Mapping, Optional

from mergebot.core.config.settings      import Settings
from mergebot.core.exceptions           import ExecutionError, PatchApplicationError, UnsupportedSCM
from mergebot.core.exec.command_factory import CommandFactory
from mergebot.core.models               import Patch, Repository, RunState, Stage
from mergebot.core.services.patch_source        import get_most_recent_patch
from mergebot.core.services.repository_resolver import repository_for
from mergebot.core.utils.fingerprint    import fingerprint

log = logging.getLogger(__name__)
command_log = logging.getLogger("mergebot.commands")

PATCH_FILE_NAME = "latest.patch"
CHECKOUT_DIR    = "repo"
EXPORT_DIR      = "export"
SUPPORTED_SCM   = "git"

PatchFetcher       = Callable[[str, str], Patch]
RepositoryResolver = Callable[[str, CommandFactory], Repository]


def default_editor_command() -> str:
    """$VISUAL value that re-enters mergebot in changelog-filter mode."""
    return f"{shlex.quote(sys.executable)} -m mergebot.cli.app -filter_changelog"


def commit_message(subject: str, bug: str) -> str:
    return f'Fix for "{subject}" (Closes: #{bug})'


class MergePipeline:
    """
    One merge-and-build run.  Not reusable: create a new instance per bug.
    """

    def __init__(
        self,
        source_package: str,
        bug: str,
        *,
        settings: Optional[Settings] = None,
        fetch_patch: PatchFetcher = get_most_recent_patch,
        resolve_repository: RepositoryResolver = repository_for,
        factory: Optional[CommandFactory] = None,
        editor_command: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.source_package     = source_package
        self.bug                = bug.lstrip("#")
        self.settings           = settings or Settings()
        self.fetch_patch        = fetch_patch
        self.resolve_repository = resolve_repository
        self.new_command        = factory or CommandFactory()
        self.editor_command     = editor_command or default_editor_command()
        self.environ            = os.environ if environ is None else environ
        self.state: Optional[RunState] = None

    # ════════════════════════════════════════════════════════════════════
    #                              PUBLIC API
    # ════════════════════════════════════════════════════════════════════
    def run(self) -> Path:
        """Execute every stage; returns the temp directory."""
        if self.state is not None:
            raise RuntimeError("MergePipeline instances run only once")

        log.info('will work on package "%s", bug "%s"', self.source_package, self.bug)
        self._init()
        self._fetch_patch()
        self._resolve_repository()
        self._checkout()
        self.state.changelog_before = self._fingerprint_changelog(Stage.FINGERPRINT_PRE)
        self._apply_patch()
        self._commit()
        self.state.changelog_after = self._fingerprint_changelog(Stage.FINGERPRINT_POST)
        if self.state.changelog_changed:
            log.info('"%s" changed', self.changelog_path)
        self._release_changelog()
        self._build()

        self.state.enter(Stage.DONE)
        return self.state.temp_dir

    @property
    def temp_dir(self) -> Optional[Path]:
        return self.state.temp_dir if self.state else None

    @property
    def changelog_path(self) -> Path:
        return self.state.checkout_dir / "debian" / "changelog"

    # ════════════════════════════════════════════════════════════════════
    #                                STAGES
    # ════════════════════════════════════════════════════════════════════
    def _init(self) -> None:
        root = self.settings.temp_root
        temp_dir = Path(tempfile.mkdtemp(
            prefix=self.settings.temp_prefix,
            dir=str(root) if root else None,
        ))
        self.state = RunState(temp_dir=temp_dir)
        self.state.enter(Stage.INIT)
        log.info("Working in %s", temp_dir)

        self.new_command = (
            self.new_command
            .derive(log_dir=temp_dir, logger=command_log, workdir=temp_dir)
            .with_passthrough_env(self.environ)
        )

    def _fetch_patch(self) -> None:
        self.state.enter(Stage.FETCH_PATCH)
        patch = self.fetch_patch(self.settings.soap_url, self.bug)
        self.state.patch = patch

        fd = os.open(self.state.patch_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fp:
            fp.write(patch.data)
        log.info("Saved patch %s to %s", patch, self.state.patch_path)

    def _resolve_repository(self) -> None:
        self.state.enter(Stage.RESOLVE_REPOSITORY)
        repo = self.resolve_repository(self.source_package, self.new_command)
        if repo.scm != SUPPORTED_SCM:
            raise UnsupportedSCM(repo.url, repo.scm)
        self.state.repository = repo

    def _checkout(self) -> None:
        self.state.enter(Stage.CHECKOUT)
        checkout_dir = self.state.temp_dir / CHECKOUT_DIR
        self.new_command(
            "gbp", "clone", "--pristine-tar", self.state.repository.url, str(checkout_dir)
        ).run()
        self.state.checkout_dir = checkout_dir

        # every command runs inside the checkout from here on
        self.new_command = self.new_command.derive(workdir=checkout_dir)

        config_args = [
            # push all (matching) branches at once
            ["push.default", "matching"],
            # push tags automatically
            ["--add", "remote.origin.push", "+refs/heads/*:refs/heads/*"],
            ["--add", "remote.origin.push", "+refs/tags/*:refs/tags/*"],
        ]
        if name := self.environ.get("DEBFULLNAME"):
            config_args.append(["user.name", name])
        if email := self.environ.get("DEBEMAIL"):
            config_args.append(["user.email", email])

        for args in config_args:
            self.new_command("git", "config", *args).run()

    def _fingerprint_changelog(self, stage: Stage) -> str:
        self.state.enter(stage)
        value = fingerprint(self.changelog_path)
        log.debug("%s fingerprint of %s: %s", stage.name, self.changelog_path, value)
        return value

    def _apply_patch(self) -> None:
        self.state.enter(Stage.APPLY_PATCH)
        # TODO: use git am for git format-patch input to keep the author's commit metadata
        try:
            self.new_command("patch", "-p1", "-i", os.path.join("..", PATCH_FILE_NAME)).run()
        except ExecutionError as exc:
            raise PatchApplicationError.from_error(exc) from exc

    def _commit(self) -> None:
        self.state.enter(Stage.COMMIT)
        patch = self.state.patch
        self.new_command("git", "add", ".").run()
        self.new_command(
            "git", "commit", "-a",
            "--author", patch.author,
            "--message", commit_message(patch.subject, self.bug),
        ).run()

    def _release_changelog(self) -> None:
        self.state.enter(Stage.RELEASE_CHANGELOG)
        # gbp dch has no flag for the editor and leaves an empty section
        # behind; route $VISUAL through our changelog filter instead.
        with_editor = self.new_command.derive(extra_env={"VISUAL": self.editor_command})
        with_editor("gbp", "dch", "--release", "--git-author", "--commit").run()

    def _build(self) -> None:
        self.state.enter(Stage.BUILD)
        self.new_command(
            "gbp", "buildpackage",
            # tag debian/%(version)s after building successfully
            "--git-tag",
            # keep the checkout clean
            f"--git-export-dir=../{EXPORT_DIR}",
            f"--git-builder={self.settings.builder}",
        ).run()

    def __repr__(self) -> str:
        return f"<MergePipeline {self.source_package} #{self.bug}>"
