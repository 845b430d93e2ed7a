"""Sync cursor store: monotonic history cursor and watch lease per mailbox."""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select

from meetwatch.db import get_session
from meetwatch.db.base import utcnow
from meetwatch.db.models.mailbox import SyncState


def is_cursor_newer(candidate: Optional[str], current: Optional[str]) -> bool:
    """True when candidate is strictly ahead of current.

    Gmail history ids are decimal strings and compare numerically; other tokens are
    opaque, so any different value counts as newer.
    """
    if not candidate:
        return False
    if not current:
        return True
    if candidate.isdigit() and current.isdigit():
        return int(candidate) > int(current)
    return candidate != current


def get_sync_state(mailbox_id: int) -> Optional[SyncState]:
    with get_session() as session:
        row = session.scalars(select(SyncState).where(SyncState.mailbox_id == mailbox_id)).first()
        if row is not None:
            session.expunge(row)
        return row


def get_cursor(mailbox_id: int) -> Optional[str]:
    state = get_sync_state(mailbox_id)
    return state.cursor_token if state else None


def advance_cursor(mailbox_id: int, cursor_token: str) -> bool:
    """Move the cursor forward. Returns False (and writes nothing) if the token would not advance it."""
    with get_session() as session:
        state = session.scalars(
            select(SyncState).where(SyncState.mailbox_id == mailbox_id).with_for_update()
        ).first()
        if state is None:
            raise LookupError(f"No sync state for mailbox {mailbox_id}")
        if not is_cursor_newer(cursor_token, state.cursor_token):
            return False
        state.cursor_token = cursor_token
        return True


def mark_synced(mailbox_id: int, at: Optional[datetime] = None) -> None:
    with get_session() as session:
        state = session.scalars(select(SyncState).where(SyncState.mailbox_id == mailbox_id)).first()
        if state is not None:
            state.last_synced_at = at or utcnow()


def list_due_leases(before: datetime) -> list[SyncState]:
    """Sync states whose lease is missing or expires before the given instant."""
    with get_session() as session:
        q = (
            select(SyncState)
            .where(or_(SyncState.lease_expires_at.is_(None), SyncState.lease_expires_at <= before))
            .order_by(SyncState.mailbox_id)
        )
        rows = list(session.scalars(q).all())
        for row in rows:
            session.expunge(row)
        return rows


def apply_lease(mailbox_id: int, lease_expires_at: datetime, cursor_token: Optional[str]) -> bool:
    """Record a renewed lease and seed the cursor if none exists, in one transaction.

    Returns False when the new expiry does not extend the current one.
    """
    with get_session() as session:
        state = session.scalars(
            select(SyncState).where(SyncState.mailbox_id == mailbox_id).with_for_update()
        ).first()
        if state is None:
            raise LookupError(f"No sync state for mailbox {mailbox_id}")
        if state.lease_expires_at is not None and lease_expires_at <= state.lease_expires_at:
            return False
        state.lease_expires_at = lease_expires_at
        if not state.cursor_token and cursor_token:
            state.cursor_token = cursor_token
        return True
