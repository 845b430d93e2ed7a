"""Message repository: idempotent message upsert, conversation aggregate, outbound send links."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError

from meetwatch.db import get_session
from meetwatch.db.models.message import Conversation, Message, OutboundSend
from meetwatch.models.email import MailMessage


@dataclass(frozen=True)
class UpsertOutcome:
    """created is True only for a genuinely new row; backfilled when a send link was added."""

    created: bool
    backfilled: bool = False


def record_send(
    mailbox_id: int,
    provider_message_id: str,
    thread_id: Optional[str] = None,
    recipient: Optional[str] = None,
    subject: Optional[str] = None,
    sent_at: Optional[datetime] = None,
) -> OutboundSend:
    """Register an email sent by the system. Idempotent on provider_message_id."""
    with get_session() as session:
        row = session.scalars(
            select(OutboundSend).where(OutboundSend.provider_message_id == provider_message_id)
        ).first()
        if row is None:
            row = OutboundSend(
                mailbox_id=mailbox_id,
                provider_message_id=provider_message_id,
                thread_id=thread_id,
                recipient=recipient,
                subject=subject,
                sent_at=sent_at,
            )
            session.add(row)
        elif thread_id and not row.thread_id:
            row.thread_id = thread_id
        session.flush()
        session.refresh(row)
        session.expunge(row)
        return row


def find_send_record_id(provider_message_id: str) -> Optional[int]:
    with get_session() as session:
        return session.scalars(
            select(OutboundSend.id).where(OutboundSend.provider_message_id == provider_message_id)
        ).first()


def upsert_message(
    mailbox_id: int,
    message: MailMessage,
    direction: str,
    send_record_id: Optional[int] = None,
) -> UpsertOutcome:
    """Insert the message if unseen and bump its conversation; otherwise only backfill the send link."""
    try:
        with get_session() as session:
            existing = session.scalars(
                select(Message)
                .where(Message.mailbox_id == mailbox_id)
                .where(Message.message_id == message.message_id)
            ).first()
            if existing is not None:
                if existing.send_record_id is None and send_record_id is not None:
                    existing.send_record_id = send_record_id
                    return UpsertOutcome(created=False, backfilled=True)
                return UpsertOutcome(created=False)

            session.add(
                Message(
                    mailbox_id=mailbox_id,
                    message_id=message.message_id,
                    thread_id=message.thread_id,
                    direction=direction,
                    sender=message.sender,
                    recipient_list=list(message.recipients),
                    subject=message.subject,
                    body_text=message.body_text,
                    body_html=message.body_html,
                    received_at=message.received_at,
                    send_record_id=send_record_id,
                )
            )
            conversation = session.scalars(
                select(Conversation)
                .where(Conversation.mailbox_id == mailbox_id)
                .where(Conversation.thread_id == message.thread_id)
            ).first()
            if conversation is None:
                session.add(
                    Conversation(
                        mailbox_id=mailbox_id,
                        thread_id=message.thread_id,
                        subject=message.subject,
                        last_message_at=message.received_at,
                        message_count=1,
                    )
                )
            else:
                conversation.message_count += 1
                if message.received_at > conversation.last_message_at:
                    conversation.last_message_at = message.received_at
                if message.subject:
                    conversation.subject = message.subject
            session.flush()
    except IntegrityError:
        # Lost an insert race on the unique (mailbox_id, message_id); the other writer counted it
        return UpsertOutcome(created=False)
    return UpsertOutcome(created=True)


def get_message(mailbox_id: int, message_id: str) -> Optional[Message]:
    with get_session() as session:
        row = session.scalars(
            select(Message).where(Message.mailbox_id == mailbox_id).where(Message.message_id == message_id)
        ).first()
        if row is not None:
            session.expunge(row)
        return row


def get_thread_messages(mailbox_id: int, thread_id: str) -> list[Message]:
    """All stored messages of a thread, oldest first."""
    with get_session() as session:
        rows = list(
            session.scalars(
                select(Message)
                .where(Message.mailbox_id == mailbox_id)
                .where(Message.thread_id == thread_id)
                .order_by(Message.received_at, Message.id)
            ).all()
        )
        for row in rows:
            session.expunge(row)
        return rows


def get_conversation(mailbox_id: int, thread_id: str) -> Optional[Conversation]:
    with get_session() as session:
        row = session.scalars(
            select(Conversation)
            .where(Conversation.mailbox_id == mailbox_id)
            .where(Conversation.thread_id == thread_id)
        ).first()
        if row is not None:
            session.expunge(row)
        return row


def count_messages(mailbox_id: int) -> int:
    with get_session() as session:
        return len(session.scalars(select(Message.id).where(Message.mailbox_id == mailbox_id)).all())


def is_system_thread(mailbox_id: int, thread_id: str) -> bool:
    """True if the system sent into this thread (an outbound send record or a linked SENT message)."""
    with get_session() as session:
        sent = session.scalar(
            select(
                exists()
                .where(OutboundSend.mailbox_id == mailbox_id)
                .where(OutboundSend.thread_id == thread_id)
            )
        )
        if sent:
            return True
        return bool(
            session.scalar(
                select(
                    exists()
                    .where(Message.mailbox_id == mailbox_id)
                    .where(Message.thread_id == thread_id)
                    .where(Message.send_record_id.is_not(None))
                )
            )
        )
