"""Map Gmail messages to MailMessage, and stored Message rows to the parser's thread view."""

import base64
import binascii
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr, parsedate_to_datetime

from meetwatch.mail_provider.gmail_models import GmailMessage, MessagePart
from meetwatch.models.email import MailMessage, ThreadMessage
from meetwatch.utils.body_sanitizer import sanitize_email_body


class MessageMappingError(ValueError):
    """Provider message is missing something we cannot store without (thread id, sender)."""


def _decode_body(data: str | None) -> str:
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return ""


def _find_bodies(part: MessagePart, found: dict[str, str]) -> None:
    """Depth-first: first text/plain and first text/html that are not attachments."""
    mime = (part.mime_type or "").lower()
    if not part.filename and mime in ("text/plain", "text/html") and mime not in found:
        text = _decode_body(part.body.data)
        if text:
            found[mime] = text
    for child in part.parts:
        _find_bodies(child, found)


def _headers(msg: GmailMessage) -> dict[str, str]:
    return {h.name.lower(): h.value for h in msg.payload.headers}


def _received_at(msg: GmailMessage, headers: dict[str, str]) -> datetime:
    if msg.internal_date:
        return datetime.fromtimestamp(int(msg.internal_date) / 1000, tz=timezone.utc)
    if headers.get("date"):
        try:
            parsed = parsedate_to_datetime(headers["date"])
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
        except (TypeError, ValueError):
            pass
    return datetime.now(timezone.utc)


def gmail_message_to_mail_message(msg: GmailMessage) -> MailMessage:
    """Convert a full-format Gmail message to MailMessage.

    The stored text body prefers text/plain and falls back to the HTML part rendered to text.
    """
    if not msg.thread_id:
        raise MessageMappingError(f"Message {msg.id} has no thread id")
    headers = _headers(msg)
    sender_name, sender = parseaddr(headers.get("from", ""))
    if not sender:
        raise MessageMappingError(f"Message {msg.id} has no sender")

    recipients = [
        addr.lower()
        for _, addr in getaddresses([headers.get("to", ""), headers.get("cc", "")])
        if addr
    ]

    bodies: dict[str, str] = {}
    _find_bodies(msg.payload, bodies)
    body_html = bodies.get("text/html")
    if "text/plain" in bodies:
        body_text = sanitize_email_body(bodies["text/plain"])
    elif body_html:
        body_text = sanitize_email_body(body_html, content_type="html")
    else:
        body_text = msg.snippet or None

    return MailMessage(
        message_id=msg.id,
        thread_id=msg.thread_id,
        sender=sender.lower(),
        sender_name=sender_name or None,
        recipients=recipients,
        subject=headers.get("subject") or None,
        body_text=body_text or None,
        body_html=body_html,
        received_at=_received_at(msg, headers),
        history_id=msg.history_id,
        label_ids=list(msg.label_ids),
    )


def stored_messages_to_thread(rows) -> list[ThreadMessage]:
    """Convert stored Message rows (oldest first) to ThreadMessage."""
    return [
        ThreadMessage(
            direction=row.direction,
            sender=row.sender,
            subject=row.subject,
            body_text=row.body_text,
            received_at=row.received_at,
            message_id=row.message_id,
        )
        for row in rows
    ]
