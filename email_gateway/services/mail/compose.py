"""
Outgoing message composition.

Builds the minimal RFC 822 message both adapters submit: addressing,
subject, threading headers, one text or HTML body and optional attachments.
"""

import base64
import mimetypes
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from pathlib import Path

from .errors import InvalidRequest
from .interface import OutgoingAttachment, OutgoingMessage


def _attach(msg: EmailMessage, attachment: OutgoingAttachment) -> None:
    mime_type, _ = mimetypes.guess_type(attachment.filename)
    maintype, subtype = (mime_type or "application/octet-stream").split("/", 1)

    if attachment.path:
        try:
            data = Path(attachment.path).read_bytes()
        except OSError as e:
            raise InvalidRequest(f"Cannot read attachment {attachment.path}: {e}")
    else:
        data = (attachment.content or "").encode("utf-8")

    msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=attachment.filename)


def build_message(message: OutgoingMessage, sender: str = "") -> EmailMessage:
    """
    Compose an EmailMessage with a fresh Message-ID.

    Args:
        message: What to send
        sender: From address; omitted from the headers when empty
    """
    msg = EmailMessage()
    msg["To"] = message.to
    if sender:
        msg["From"] = sender
    msg["Subject"] = message.subject
    msg["Date"] = formatdate(localtime=True)

    domain = sender.rsplit("@", 1)[1].strip(">") if "@" in sender else None
    msg["Message-ID"] = make_msgid(domain=domain)

    if message.in_reply_to:
        msg["In-Reply-To"] = message.in_reply_to
    if message.references:
        msg["References"] = " ".join(message.references)

    msg.set_content(message.body, subtype="html" if message.html else "plain", charset="utf-8")

    for attachment in message.attachments:
        if attachment.path or attachment.content:
            _attach(msg, attachment)

    return msg


def encode_raw(msg: EmailMessage) -> str:
    """base64url form used by the Gmail send endpoint."""
    return base64.urlsafe_b64encode(msg.as_bytes()).decode()
