"""
RepositoryResolver
==================

Asks `debcheckout --print <source package>` where the packaging
repository lives and turns anonymous read-only alioth (anonscm) URLs into
their push-capable form.

Layer: core.services
"""

from __future__ import annotations

import logging

from mergebot.core.exceptions        import RepositoryResolutionError
from mergebot.core.exec.command_factory import CommandFactory
from mergebot.core.models            import Repository

log = logging.getLogger(__name__)

ANONYMOUS_HOST = "anonscm.debian.org"

# applied in order, first occurrence only
_PUSH_REWRITES = (
    ("git", "git+ssh"),
    (ANONYMOUS_HOST, "git.debian.org"),
    ("debian.org", "debian.org/git"),
)


def push_url(url: str) -> str:
    """git://anonscm.debian.org/pkg.git  →  git+ssh://git.debian.org/git/pkg.git"""
    if ANONYMOUS_HOST not in url:
        return url
    for old, new in _PUSH_REWRITES:
        url = url.replace(old, new, 1)
    return url


def repository_for(source_package: str, new_command: CommandFactory) -> Repository:
    cmd = new_command("debcheckout", "--print", source_package)
    output = cmd.output().decode("utf-8", errors="replace")

    parts = output.strip().split("\t")
    if len(parts) != 2:
        raise RepositoryResolutionError(
            f"Unexpected command output: {cmd.args} returned {output!r} "
            f"(split into {parts}), expected 2 parts"
        )

    scm, url = parts
    rewritten = push_url(url)
    if rewritten != url:
        log.info("Rewrote %s to %s", url, rewritten)
    return Repository(scm=scm, url=rewritten)
