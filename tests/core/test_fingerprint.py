import hashlib

import pytest

from mergebot.core.utils.fingerprint import fingerprint


def test_fingerprint_is_truncated_sha256(tmp_path):
    path = tmp_path / "changelog"
    path.write_bytes(b"pkg (1.0) unstable; urgency=medium\n")
    expected = hashlib.sha256(path.read_bytes()).hexdigest()[:32]
    assert fingerprint(path) == expected


def test_fingerprint_changes_with_content(tmp_path):
    path = tmp_path / "changelog"
    path.write_text("a\n")
    before = fingerprint(path)
    path.write_text("b\n")
    assert fingerprint(path) != before


def test_missing_file_is_an_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        fingerprint(tmp_path / "debian" / "changelog")
