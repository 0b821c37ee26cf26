"""
Message Normalizer

Turns provider-native payloads (raw RFC 822 bytes from IMAP, Gmail API
message resources) into CanonicalMessage records and reply envelopes.
"""

import base64
import binascii
from email import message_from_bytes, policy
from email.errors import MessageError
from email.message import EmailMessage
from typing import Dict, List, Optional, Tuple

from .errors import ParseFailure
from .interface import CanonicalMessage, ReplyEnvelope

BODY_PREVIEW_LENGTH = 1000
SNIPPET_LENGTH = 150


def header_map(headers: List[dict]) -> Dict[str, str]:
    """Gmail header list -> {lowercased name: value}."""
    return {h.get("name", "").lower(): h.get("value", "") for h in headers or []}


def _parse_bytes(raw: bytes) -> EmailMessage:
    if not isinstance(raw, (bytes, bytearray)) or not raw:
        raise ParseFailure("Empty or non-binary message payload")
    try:
        return message_from_bytes(bytes(raw), policy=policy.default)
    except (MessageError, ValueError, TypeError) as e:
        raise ParseFailure(f"Malformed message: {e}")


def _header(msg: EmailMessage, name: str) -> str:
    try:
        value = msg.get(name)
    except (MessageError, ValueError, IndexError) as e:
        raise ParseFailure(f"Malformed {name} header: {e}")
    return str(value) if value is not None else ""


def _decode_part(part) -> str:
    try:
        content = part.get_content()
    except (LookupError, KeyError, ValueError, AssertionError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return content


def _rfc822_bodies(msg: EmailMessage) -> Tuple[str, str]:
    """Return (text, html) bodies, skipping attachments."""
    text_body = ""
    html_body = ""
    for part in msg.walk():
        if part.is_multipart() or part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain" and not text_body:
            text_body = _decode_part(part)
        elif content_type == "text/html" and not html_body:
            html_body = _decode_part(part)
    return text_body, html_body


def preview_body(text_body: str, html_body: str) -> str:
    """Plain text wins; HTML is the fallback. Capped at the preview length."""
    body = text_body or html_body or ""
    return body[:BODY_PREVIEW_LENGTH]


def normalize_rfc822(raw: bytes, seqno: str, is_unread: bool) -> CanonicalMessage:
    """
    Normalize a raw message fetched over IMAP.

    Args:
        raw: Full RFC 822 message bytes
        seqno: Mailbox sequence number; becomes the (volatile) message id
        is_unread: Whether the server reported the message without \\Seen

    Raises:
        ParseFailure: The payload cannot be parsed
    """
    msg = _parse_bytes(raw)
    text_body, html_body = _rfc822_bodies(msg)
    body = preview_body(text_body, html_body)

    return CanonicalMessage(
        id=str(seqno),
        thread_id=_header(msg, "Message-ID") or str(seqno),
        sender=_header(msg, "From"),
        to=_header(msg, "To"),
        subject=_header(msg, "Subject"),
        date=_header(msg, "Date"),
        snippet=body[:SNIPPET_LENGTH],
        body=body,
        is_unread=is_unread,
    )


def _split_references(value: str) -> List[str]:
    return [ref for ref in (value or "").split() if ref]


def rfc822_reply_envelope(raw: bytes) -> ReplyEnvelope:
    """Extract reply headers from a raw message."""
    msg = _parse_bytes(raw)
    return ReplyEnvelope(
        sender=_header(msg, "From"),
        to=_header(msg, "To"),
        cc=_header(msg, "Cc"),
        subject=_header(msg, "Subject"),
        message_id=_header(msg, "Message-ID"),
        references=_split_references(_header(msg, "References")),
    )


def _b64decode(data: str) -> str:
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        raise ParseFailure(f"Undecodable message body: {e}")


def gmail_body(payload: dict) -> str:
    """
    Pick the body of a Gmail payload.

    A single-part body wins. Otherwise the first text/plain part anywhere in
    the tree, then the first text/html part.
    """
    data = payload.get("body", {}).get("data")
    if data:
        return _b64decode(data)

    found: Dict[str, Optional[str]] = {"text/plain": None, "text/html": None}

    def walk(part: dict):
        mime_type = part.get("mimeType", "")
        part_data = part.get("body", {}).get("data")
        if mime_type in found and found[mime_type] is None and part_data:
            found[mime_type] = _b64decode(part_data)
        for child in part.get("parts", []) or []:
            walk(child)

    for part in payload.get("parts", []) or []:
        walk(part)

    return found["text/plain"] or found["text/html"] or ""


def normalize_gmail(msg_data: dict) -> CanonicalMessage:
    """
    Normalize a Gmail API message resource (format=full).

    Raises:
        ParseFailure: The resource has no headers
    """
    payload = msg_data.get("payload") or {}
    if not payload.get("headers"):
        raise ParseFailure(f"Message {msg_data.get('id', '?')} has no headers")

    headers = header_map(payload["headers"])
    body = gmail_body(payload)
    if len(body) > BODY_PREVIEW_LENGTH:
        body = body[:BODY_PREVIEW_LENGTH] + "..."

    return CanonicalMessage(
        id=msg_data["id"],
        thread_id=msg_data.get("threadId", ""),
        sender=headers.get("from", ""),
        to=headers.get("to", ""),
        subject=headers.get("subject", ""),
        date=headers.get("date", ""),
        snippet=msg_data.get("snippet", ""),
        body=body,
        is_unread="UNREAD" in (msg_data.get("labelIds") or []),
    )


def gmail_reply_envelope(msg_data: dict) -> ReplyEnvelope:
    """Extract reply headers from a Gmail API message resource."""
    payload = msg_data.get("payload") or {}
    if not payload.get("headers"):
        raise ParseFailure("Could not find original message headers")

    headers = header_map(payload["headers"])
    return ReplyEnvelope(
        sender=headers.get("from", ""),
        to=headers.get("to", ""),
        cc=headers.get("cc", ""),
        subject=headers.get("subject", ""),
        message_id=headers.get("message-id", ""),
        references=_split_references(headers.get("references", "")),
        thread_id=msg_data.get("threadId"),
    )
