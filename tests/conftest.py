"""
Global test fixtures.

• Points MERGEBOT_CONFIG at a file that does not exist so a developer's
  own settings never leak into a test run.
• Builders for Debbugs SOAP responses and for small shell scripts that
  stand in for Debian tooling.
"""
import base64
import os
import stat
from pathlib import Path
from xml.sax.saxutils import escape

import pytest

from mergebot.core.exec.command_factory import CommandFactory
from mergebot.core.exec.logged_command  import InvocationCounter

BOUNDARY = "_----------=_146851316918670990"
SOAP_CONTENT_TYPE = (
    f'multipart/related; type="text/xml"; start="<main_envelope>"; boundary="{BOUNDARY}"'
)


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("MERGEBOT_CONFIG", str(tmp_path / "no-such-config.yaml"))
    yield


@pytest.fixture
def new_command(tmp_path):
    """Factory logging into <tmp>/logs with a fresh counter and a minimal env."""
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return CommandFactory(log_dir=log_dir, env={"LANG": "C"}, counter=InvocationCounter())


# ───────────────────────────────────────────────────── SOAP
def mail_parts(author: str, subject: str, patch: bytes, *,
               disposition: str = "attachment", encoding: str = "base64"):
    """(header, body) of one bug-log message carrying `patch`."""
    header = (
        f"From: {author}\n"
        f"Subject: {subject}\n"
        "MIME-Version: 1.0\n"
        f'Content-Type: multipart/mixed; boundary="{BOUNDARY}"\n'
        "\n"
    )
    payload = base64.b64encode(patch).decode() if encoding == "base64" else patch.decode()
    body = (
        f"--{BOUNDARY}\n"
        "Content-Type: text/plain; charset=utf-8\n"
        "Content-Disposition: inline\n"
        "\n"
        "Please find a patch attached.\n"
        f"--{BOUNDARY}\n"
        'Content-Type: text/x-diff; name="fix.patch"\n'
        f'Content-Disposition: {disposition}; filename="fix.patch"\n'
        f"Content-Transfer-Encoding: {encoding}\n"
        "\n"
        f"{payload}\n"
        f"--{BOUNDARY}--\n"
    )
    return header, body


def soap_envelope(*messages) -> bytes:
    items = "".join(
        "<item>"
        f"<header>{escape(header)}</header>"
        f"<msg_num>{num}</msg_num>"
        f"<body>{escape(body)}</body>"
        "</item>"
        for num, (header, body) in enumerate(messages, 5)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"'
        ' xmlns:soapenc="http://schemas.xmlsoap.org/soap/encoding/">'
        "<soap:Body>"
        '<get_bug_logResponse xmlns="Debbugs/SOAP">'
        f"<soapenc:Array>{items}</soapenc:Array>"
        "</get_bug_logResponse>"
        "</soap:Body>"
        "</soap:Envelope>"
    ).encode("utf-8")


@pytest.fixture
def bug_log():
    """bug_log(author, subject, patch, copies=1, **kw) -> SOAP response bytes."""
    def _build(author: str, subject: str, patch: bytes, *, copies: int = 1, **kw) -> bytes:
        return soap_envelope(*[mail_parts(author, subject, patch, **kw)] * copies)
    return _build


# ───────────────────────────────────────────────────── fake tools
@pytest.fixture
def fake_bin(tmp_path, monkeypatch):
    """write(name, script) puts an executable script first on PATH."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def _write(name: str, script: str) -> Path:
        path = bin_dir / name
        path.write_text(script)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path
    return _write
