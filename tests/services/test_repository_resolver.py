import pytest

from mergebot.core.exceptions                   import ExecutionError, RepositoryResolutionError
from mergebot.core.services.repository_resolver import push_url, repository_for


def test_anonscm_url_rewritten_for_push():
    assert push_url("git://anonscm.debian.org/pkg.git") == "git+ssh://git.debian.org/git/pkg.git"


def test_other_hosts_untouched():
    url = "https://salsa.debian.org/debian/wit.git"
    assert push_url(url) == url


def test_repository_for_parses_debcheckout(fake_bin, new_command):
    fake_bin("debcheckout", "#!/bin/sh\nprintf 'git\\tgit://anonscm.debian.org/collab-maint/wit.git\\n'\n")
    repo = repository_for("wit", new_command)
    assert repo.scm == "git"
    assert repo.url == "git+ssh://git.debian.org/git/collab-maint/wit.git"


def test_repository_for_passes_package_name(fake_bin, new_command):
    fake_bin("debcheckout", '#!/bin/sh\nprintf "svn\\tsvn://svn.debian.org/%s\\n" "$2"\n')
    repo = repository_for("wit", new_command)
    assert (repo.scm, repo.url) == ("svn", "svn://svn.debian.org/wit")


def test_repository_for_rejects_unexpected_output(fake_bin, new_command):
    fake_bin("debcheckout", "#!/bin/sh\necho 'no tabs here'\n")
    with pytest.raises(RepositoryResolutionError, match="expected 2 parts"):
        repository_for("wit", new_command)


def test_repository_for_propagates_failure(fake_bin, new_command):
    fake_bin("debcheckout", "#!/bin/sh\necho 'unknown package' >&2\nexit 1\n")
    with pytest.raises(ExecutionError) as exc_info:
        repository_for("wit", new_command)
    assert exc_info.value.first_line == "unknown package"
