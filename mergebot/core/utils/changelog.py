"""
Clean-up pass for debian/changelog after `gbp dch --release`.

gbp dch leaves an empty "[ Maintainer ]" section and double blank lines
in the entry it generates, and has no flag to skip the editor.  mergebot
points $VISUAL at itself in filter mode, which runs `filter_changelog()`
on the file gbp hands to the editor.

Rules, applied up to and including the first " -- " trailer line:

• "  [ Name ]" section headers are held back until the first "  * "
  bullet below them; a header without bullets disappears
• runs of blank lines collapse to one

Everything after that trailer (the older, released entries) is copied
verbatim.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List

log = logging.getLogger(__name__)

SECTION_PREFIX = "  [ "
BULLET_PREFIX  = "  * "
TRAILER_PREFIX = " -- "
ENCODING_ERRORS = "surrogateescape"


def filter_changelog_lines(lines: Iterable[str]) -> List[str]:
    out: list[str] = []
    pending_section: str | None = None
    copy_only  = False
    last_empty = False

    for line in lines:
        if copy_only:
            out.append(line)
            continue

        if line.startswith(SECTION_PREFIX):
            pending_section = line
            continue

        if line.startswith(BULLET_PREFIX) and pending_section is not None:
            out.append(pending_section)
            pending_section = None
            last_empty = False

        if line.startswith(TRAILER_PREFIX):
            copy_only = True

        empty = line == ""
        if not (empty and last_empty):
            out.append(line)
        last_empty = empty

    if pending_section is not None:
        log.debug("Dropping empty changelog section %r", pending_section.strip())
    return out


def split_lines(text: str) -> List[str]:
    """Split on LF only, like a line scanner; a trailing CR is dropped from each line."""
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def filter_changelog_text(text: str) -> str:
    lines = filter_changelog_lines(split_lines(text))
    return "\n".join(lines) + "\n" if lines else ""


def filter_changelog(path: Path | str) -> None:
    """Filter the changelog at `path` in place (temp file + rename)."""
    path = Path(path)
    # older entries may not be UTF-8; undecodable bytes round-trip unchanged
    with open(path, "r", encoding="utf-8", errors=ENCODING_ERRORS, newline="") as fp:
        text = fp.read()
    filtered = filter_changelog_text(text)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".mergebot-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors=ENCODING_ERRORS, newline="") as fp:
            fp.write(filtered)
        os.chmod(tmp_name, path.stat().st_mode & 0o7777)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
    log.info("Filtered %s", path)
