"""Mailbox repository: connect mailboxes and resolve push notification addresses to an owner."""

from typing import Optional

from sqlalchemy import func, select

from meetwatch.db import get_session
from meetwatch.db.models.mailbox import Mailbox, SyncState


def _normalize(address: str) -> str:
    return (address or "").strip().lower()


def ensure_mailbox(
    email_address: str,
    display_name: Optional[str] = None,
    timezone: Optional[str] = None,
) -> Mailbox:
    """Return the mailbox for this address, creating it (and its empty sync state) if missing."""
    address = _normalize(email_address)
    if not address:
        raise ValueError("email_address is required")
    with get_session() as session:
        row = session.scalars(select(Mailbox).where(Mailbox.email_address == address)).first()
        if row is None:
            row = Mailbox(email_address=address, display_name=display_name, timezone=timezone)
            session.add(row)
            session.flush()
        state = session.scalars(select(SyncState).where(SyncState.mailbox_id == row.id)).first()
        if state is None:
            session.add(SyncState(mailbox_id=row.id, email_address=address))
        session.flush()
        session.refresh(row)
        session.expunge(row)
        return row


def get_mailbox(mailbox_id: int) -> Optional[Mailbox]:
    with get_session() as session:
        row = session.get(Mailbox, mailbox_id)
        if row is not None:
            session.expunge(row)
        return row


def list_mailboxes() -> list[Mailbox]:
    with get_session() as session:
        rows = list(session.scalars(select(Mailbox).order_by(Mailbox.id)).all())
        for row in rows:
            session.expunge(row)
        return rows


def find_by_address(email_address: str) -> Optional[Mailbox]:
    """Resolve a notification address: mailboxes table first, then the sync-state address."""
    address = _normalize(email_address)
    if not address:
        return None
    with get_session() as session:
        row = session.scalars(select(Mailbox).where(Mailbox.email_address == address)).first()
        if row is None:
            row = session.scalars(
                select(Mailbox)
                .join(SyncState, SyncState.mailbox_id == Mailbox.id)
                .where(func.lower(SyncState.email_address) == address)
            ).first()
        if row is not None:
            session.expunge(row)
        return row
