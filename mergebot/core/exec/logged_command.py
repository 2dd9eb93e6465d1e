"""
LoggedCommand
=============

subprocess wrapper that makes every external program run diagnosable
after the fact:

• the command line goes to a `logging.Logger` for humans watching the run
• working directory, argv, environment and timing go to
  <log_dir>/<NNN>-<program>.invocation.log
• the merged stdout/stderr goes to <log_dir>/<NNN>-<program>.stdoutstderr.log
• a failure raises ExecutionError pointing at both files and quoting the
  first line the program printed

The invocation log is written twice.  A provisional copy ending in
"(Still running…)" is fsync'ed before the child starts; the final copy is
written to a temp file in the same directory and renamed over it, so a
crash at any point leaves a readable record behind.

Layer: core.exec
"""

from __future__ import annotations

import io
import logging
import os
import shutil
import subprocess
import tempfile
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Mapping, Optional

from mergebot.core.exceptions   import ExecutionError, LoggingError
from mergebot.core.models       import Invocation, LogKind

log = logging.getLogger(__name__)

_CHUNK = 64 * 1024
DEFAULT_LOG_FORMAT = "{index:03d}-"


# ════════════════════════════════════════════════════════════════════════
#                           INVOCATION COUNTER
# ════════════════════════════════════════════════════════════════════════
class InvocationCounter:
    """Hands out 0, 1, 2, … to whoever asks, from any thread."""

    def __init__(self, start: int = 0) -> None:
        self._next = start
        self._lock = threading.Lock()

    def take(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def reset(self, start: int = 0) -> None:
        with self._lock:
            self._next = start

    def __repr__(self) -> str:
        return f"<InvocationCounter next={self._next}>"


# shared by commands that are not created through a CommandFactory
default_counter = InvocationCounter()


# ════════════════════════════════════════════════════════════════════════
#                              OUTPUT SINKS
# ════════════════════════════════════════════════════════════════════════
class _FirstLineCapture:
    """Keeps output until the first newline has been seen."""

    def __init__(self) -> None:
        self.data = bytearray()
        self.newline_seen = False

    def write(self, chunk: bytes) -> None:
        if self.newline_seen:
            return
        self.data += chunk
        self.newline_seen = b"\n" in chunk

    def first_line(self) -> str:
        line = bytes(self.data).split(b"\n", 1)[0]
        return line.decode("utf-8", errors="replace")


class _LogSink:
    """Output log file + first-line capture; safe to share between two pump threads."""

    def __init__(self, fp: BinaryIO, capture: _FirstLineCapture) -> None:
        self._fp = fp
        self._capture = capture
        self._lock = threading.Lock()

    def write(self, chunk: bytes) -> None:
        with self._lock:
            self._fp.write(chunk)
            self._fp.flush()
            self._capture.write(chunk)


def _pump(stream: BinaryIO, targets: list) -> None:
    for chunk in iter(lambda: stream.read1(_CHUNK), b""):
        for target in targets:
            target.write(chunk)
    stream.close()


# ════════════════════════════════════════════════════════════════════════
#                             LOGGED COMMAND
# ════════════════════════════════════════════════════════════════════════
class LoggedCommand:
    """
    One external program plus everything needed to log its execution.

    Parameters
    ----------
    name, *args
        Program and arguments.  Only the base name of `name` ends up in
        log file names; arguments may contain private data.
    workdir
        Directory the child runs in.  Defaults to the current directory.
    env
        Complete child environment.  None inherits os.environ.
    stdout, stderr
        Optional binary sinks.  Output is copied there *and* to the log
        file.  Passing the same object (or nothing) for both merges the
        streams through a single pipe, preserving their interleaving.
    logger
        Receives the command line before the child starts.
    log_dir
        Where the two log files go.  Defaults to the system temp dir.
    log_format
        Prefix for log file names; formatted with `index=`.
    counter
        Source of invocation indices.
    """

    def __init__(
        self,
        name: str,
        *args: str,
        workdir: Optional[os.PathLike | str] = None,
        env: Optional[Mapping[str, str]] = None,
        stdout: Optional[BinaryIO] = None,
        stderr: Optional[BinaryIO] = None,
        logger: Optional[logging.Logger] = None,
        log_dir: Optional[os.PathLike | str] = None,
        log_format: str = DEFAULT_LOG_FORMAT,
        counter: Optional[InvocationCounter] = None,
    ) -> None:
        self.args       = [name, *args]
        self.workdir    = workdir
        self.env        = dict(env) if env is not None else None
        self.stdout     = stdout
        self.stderr     = stderr
        self.logger     = logger or log
        self.log_dir    = log_dir
        self.log_format = log_format
        self.counter    = counter or default_counter
        self.invocation: Optional[Invocation] = None

    # ---------------------------------------------------------------- public
    @property
    def command_line(self) -> str:
        return " ".join(self.args)

    def log_path(self, index: int, kind: LogKind) -> Path:
        log_dir = Path(self.log_dir or tempfile.gettempdir()).absolute()
        prefix  = self.log_format.format(index=index) + os.path.basename(self.args[0])
        return log_dir / f"{prefix}.{kind.value}.log"

    def run(self) -> Invocation:
        """
        Execute the program and block until it exits.

        Returns the finished Invocation.  Raises LoggingError when a log
        file cannot be written (before the child starts if it is the
        provisional invocation log) and ExecutionError when the program
        cannot be started or exits non-zero.
        """
        self.logger.info("%s", self.command_line)

        index          = self.counter.take()
        invocation_log = self.log_path(index, LogKind.INVOCATION)
        output_log     = self.log_path(index, LogKind.STDOUTSTDERR)

        workdir = Path(self.workdir) if self.workdir else Path.cwd()
        env_list = (
            [f"{k}={v}" for k, v in self.env.items()] if self.env is not None else None
        )
        inv = Invocation(index=index, args=list(self.args), workdir=workdir, env=env_list)
        self.invocation = inv

        _write_durably(invocation_log, inv.render_provisional())

        capture = _FirstLineCapture()
        try:
            fd = os.open(output_log, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        except OSError as exc:
            raise LoggingError(f"could not create {output_log}: {exc}", output_log) from exc

        with os.fdopen(fd, "wb") as fp:
            started = time.monotonic()
            cause, returncode = self._execute(_LogSink(fp, capture), workdir)
            inv.duration = time.monotonic() - started
            inv.finished = datetime.now().astimezone()

        _replace_atomically(invocation_log, inv.render_final())

        if cause is None:
            return inv

        raise ExecutionError(
            self.command_line,
            cause,
            invocation_log,
            output_log,
            capture.first_line(),
            returncode,
        )

    def output(self) -> bytes:
        """Like run(), but also returns what the program wrote to stdout."""
        if self.stdout is not None:
            raise ValueError("stdout already set")
        buf = io.BytesIO()
        self.stdout = buf
        try:
            self.run()
        finally:
            self.stdout = None
        return buf.getvalue()

    # ---------------------------------------------------------------- internals
    def _resolve(self) -> Optional[str]:
        name = self.args[0]
        if os.sep in name:
            return name
        return shutil.which(name)

    def _execute(self, sink: _LogSink, workdir: Path) -> tuple[Optional[str], Optional[int]]:
        """Run the child; returns (failure cause or None, returncode)."""
        executable = self._resolve()
        if executable is None:
            cause = f'exec: "{self.args[0]}": executable file not found in $PATH'
            sink.write(f"{cause}\n".encode())
            return cause, None

        merged = self.stdout is self.stderr
        try:
            proc = subprocess.Popen(
                self.args,
                executable=executable,
                cwd=workdir,
                env=self.env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merged else subprocess.PIPE,
            )
        except OSError as exc:
            sink.write(f"{exc}\n".encode())
            return str(exc), None

        if merged:
            targets = [sink] + ([self.stdout] if self.stdout is not None else [])
            _pump(proc.stdout, targets)
        else:
            pumps = [
                threading.Thread(
                    target=_pump,
                    args=(stream, [sink] + ([user] if user is not None else [])),
                    daemon=True,
                )
                for stream, user in ((proc.stdout, self.stdout), (proc.stderr, self.stderr))
            ]
            for t in pumps:
                t.start()
            for t in pumps:
                t.join()

        returncode = proc.wait()
        if returncode == 0:
            return None, 0
        if returncode < 0:
            return f"killed by signal {-returncode}", returncode
        return f"exit status {returncode}", returncode

    def __repr__(self) -> str:
        return f"<LoggedCommand {self.command_line!r}>"


# ════════════════════════════════════════════════════════════════════════
#                           LOG FILE HELPERS
# ════════════════════════════════════════════════════════════════════════
def _write_durably(path: Path, text: str) -> None:
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            fp.write(text)
            fp.flush()
            os.fsync(fp.fileno())
    except OSError as exc:
        raise LoggingError(f"could not write {path}: {exc}", path) from exc


def _replace_atomically(path: Path, text: str) -> None:
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".invocation-log-")
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            fp.write(text)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise LoggingError(f"could not update {path}: {exc}", path) from exc
