"""
PatchSource
===========

Fetches the patch attached to a Debian bug through the Debbugs SOAP
interface (`get_bug_log`).

The service answers with a multipart/related envelope whose boundary
also delimits the MIME parts inside the single bug-log message.  The
first part with `Content-Disposition: attachment` is the patch; author
and subject come from the mail headers of that message.

Layer: core.services
"""

from __future__ import annotations

import base64
import binascii
import email
import logging
import re
import xml.etree.ElementTree as ET
from email.message import Message
from typing import List, Optional
from xml.sax.saxutils import escape

import httpx

from mergebot.core.exceptions import MultipleMessagesError, ProtocolError
from mergebot.core.models     import Patch

log = logging.getLogger(__name__)

SOAP_NAMESPACE = "Debbugs/SOAP"
REQUEST_TIMEOUT = 60.0

_ENVELOPE = """<?xml version="1.0" encoding="UTF-8"?>
<SOAP-ENV:Envelope
  SOAP-ENV:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/"
  xmlns:SOAP-ENC="http://schemas.xmlsoap.org/soap/encoding/"
  xmlns:xsi="http://www.w3.org/1999/XMLSchema-instance"
  xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/"
  xmlns:xsd="http://www.w3.org/1999/XMLSchema"
>
<SOAP-ENV:Body>
<ns1:get_bug_log xmlns:ns1="{namespace}" SOAP-ENC:root="1">
<v1 xsi:type="xsd:int">{bug}</v1>
</ns1:get_bug_log>
</SOAP-ENV:Body>
</SOAP-ENV:Envelope>
"""

_ITEM_PATH = ("Body", "get_bug_logResponse", "Array", "item")


# ════════════════════════════════════════════════════════════════════════
#                               PUBLIC API
# ════════════════════════════════════════════════════════════════════════
def get_most_recent_patch(
    url: str, bug: str, *, client: Optional[httpx.Client] = None
) -> Patch:
    """
    Return the patch attached to `bug`.

    Raises ProtocolError for anything the service returns that does not
    look like a single bug-log message with a base64 attachment, and
    MultipleMessagesError when the log holds more than one message.
    """
    request = _ENVELOPE.format(namespace=SOAP_NAMESPACE, bug=escape(bug))
    log.info("Fetching bug log of #%s from %s", bug, url)

    if client is None:
        with httpx.Client(timeout=REQUEST_TIMEOUT) as own_client:
            resp = _post(own_client, url, request)
    else:
        resp = _post(client, url, request)

    if resp.status_code != httpx.codes.OK:
        raise ProtocolError(
            f"Unexpected HTTP status code: got {resp.status_code}, want {httpx.codes.OK}"
        )

    content_type = resp.headers.get("Content-Type", "")
    media = _parse_media_type(content_type)
    if media.get_content_maintype() != "multipart":
        raise ProtocolError(
            f'Unexpected Content-Type: got "{content_type}", want multipart/*'
        )
    boundary = media.get_param("boundary")
    if not boundary:
        raise ProtocolError(f'Content-Type "{content_type}" carries no boundary')

    items = _bug_log_items(resp.content)
    if not items:
        raise ProtocolError("no message in bug log")
    if len(items) > 1:
        raise MultipleMessagesError(len(items))

    header = _child_text(items[0], "header")
    body   = _child_text(items[0], "body")
    return _extract_patch(header, body, boundary)


# ════════════════════════════════════════════════════════════════════════
#                                HELPERS
# ════════════════════════════════════════════════════════════════════════
def _post(client: httpx.Client, url: str, request: str) -> httpx.Response:
    return client.post(
        url,
        content=request.encode("utf-8"),
        headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": f'"{SOAP_NAMESPACE}#get_bug_log"'},
    )


def _parse_media_type(value: str) -> Message:
    msg = Message()
    msg["Content-Type"] = value
    return msg


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _bug_log_items(xml_bytes: bytes) -> List[ET.Element]:
    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError as exc:
        raise ProtocolError(f"Could not parse SOAP response: {exc}") from exc

    if _local(root.tag) != "Envelope":
        raise ProtocolError(f"Unexpected SOAP root element {root.tag}")

    nodes = [root]
    for name in _ITEM_PATH:
        nodes = [child for node in nodes for child in node if _local(child.tag) == name]
    return nodes


def _child_text(item: ET.Element, name: str) -> str:
    for child in item:
        if _local(child.tag) == name:
            return child.text or ""
    return ""


def _unfold(value: Optional[str]) -> str:
    return re.sub(r"\r?\n[ \t]+", " ", value or "").strip()


def _extract_patch(header: str, body: str, boundary: str) -> Patch:
    multipart = email.message_from_string(
        f'Content-Type: multipart/mixed; boundary="{boundary}"\n\n{body}'
    )
    parts = multipart.get_payload() if multipart.is_multipart() else []

    for part in parts:
        disposition = part.get_content_disposition()
        if disposition is None:
            log.warning("Skipping MIME part with invalid Content-Disposition header (%r)",
                        part.get("Content-Disposition"))
            continue
        if disposition != "attachment":
            log.warning('Skipping MIME part with unexpected Content-Disposition: got "%s", want "attachment"',
                        disposition)
            continue

        encoding = part.get("Content-Transfer-Encoding", "")
        if encoding.strip().lower() != "base64":
            raise ProtocolError(f'unsupported Content-Transfer-Encoding: "{encoding}"')

        message = email.message_from_string(header + body)
        try:
            data = base64.b64decode("".join(part.get_payload().split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ProtocolError(f"Could not decode base64 attachment: {exc}") from exc

        return Patch(
            author=_unfold(message.get("From")),
            subject=_unfold(message.get("Subject")),
            data=data,
        )

    raise ProtocolError("No MIME part with Content-Disposition == attachment found")
