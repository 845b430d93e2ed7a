"""Meeting suggestion repository: one suggestion per thread, guarded PENDING -> terminal transitions."""

from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from meetwatch.db import get_session
from meetwatch.db.base import utcnow
from meetwatch.db.models.meeting_suggestion import MeetingSuggestion
from meetwatch.models.meeting import ExtractedMeetingData

STATUS_PENDING = "PENDING"
STATUS_ACCEPTED = "ACCEPTED"
STATUS_DISMISSED = "DISMISSED"
TERMINAL_STATUSES = (STATUS_ACCEPTED, STATUS_DISMISSED)


class SuggestionNotFoundError(LookupError):
    pass


class SuggestionStateError(Exception):
    """Raised when a transition is attempted from a non-PENDING status."""

    def __init__(self, suggestion_id: int, status: str):
        super().__init__(f"Suggestion {suggestion_id} already {status.lower()}")
        self.suggestion_id = suggestion_id
        self.status = status


def _detached(session, row: MeetingSuggestion) -> MeetingSuggestion:
    session.flush()
    session.refresh(row)
    session.expunge(row)
    return row


def get_for_thread(mailbox_id: int, thread_id: str) -> Optional[MeetingSuggestion]:
    with get_session() as session:
        row = session.scalars(
            select(MeetingSuggestion)
            .where(MeetingSuggestion.mailbox_id == mailbox_id)
            .where(MeetingSuggestion.thread_id == thread_id)
        ).first()
        if row is not None:
            session.expunge(row)
        return row


def create_if_absent(
    mailbox_id: int,
    thread_id: str,
    message_id: str,
    data: ExtractedMeetingData,
) -> tuple[MeetingSuggestion, bool]:
    """Create a PENDING suggestion unless the thread already has one (in any status).

    Returns (row, created). A concurrent insert that loses on the unique constraint
    returns the winner's row with created=False.
    """
    try:
        with get_session() as session:
            existing = session.scalars(
                select(MeetingSuggestion)
                .where(MeetingSuggestion.mailbox_id == mailbox_id)
                .where(MeetingSuggestion.thread_id == thread_id)
            ).first()
            if existing is not None:
                session.expunge(existing)
                return existing, False
            row = MeetingSuggestion(
                mailbox_id=mailbox_id,
                thread_id=thread_id,
                message_id=message_id,
                status=STATUS_PENDING,
                extracted_data=data.model_dump(mode="json"),
                confidence=data.confidence,
            )
            session.add(row)
            return _detached(session, row), True
    except IntegrityError:
        existing = get_for_thread(mailbox_id, thread_id)
        if existing is None:
            raise
        return existing, False


def get_suggestion(suggestion_id: int) -> Optional[MeetingSuggestion]:
    with get_session() as session:
        row = session.get(MeetingSuggestion, suggestion_id)
        if row is not None:
            session.expunge(row)
        return row


def list_suggestions(mailbox_id: Optional[int] = None, status: Optional[str] = None) -> list[MeetingSuggestion]:
    """Newest first, optionally filtered by mailbox and status."""
    with get_session() as session:
        q = select(MeetingSuggestion).order_by(MeetingSuggestion.created_at.desc(), MeetingSuggestion.id.desc())
        if mailbox_id is not None:
            q = q.where(MeetingSuggestion.mailbox_id == mailbox_id)
        if status is not None:
            q = q.where(MeetingSuggestion.status == status)
        rows = list(session.scalars(q).all())
        for row in rows:
            session.expunge(row)
        return rows


def count_pending(mailbox_id: int) -> int:
    with get_session() as session:
        return session.scalar(
            select(func.count(MeetingSuggestion.id))
            .where(MeetingSuggestion.mailbox_id == mailbox_id)
            .where(MeetingSuggestion.status == STATUS_PENDING)
        ) or 0


def transition(
    suggestion_id: int,
    target: str,
    calendar_event_id: Optional[str] = None,
) -> MeetingSuggestion:
    """Move a PENDING suggestion to ACCEPTED or DISMISSED.

    The status check and write are one UPDATE ... WHERE status = 'PENDING', so two
    racing callers cannot both succeed.
    """
    if target not in TERMINAL_STATUSES:
        raise ValueError(f"Invalid target status: {target!r}")
    with get_session() as session:
        values = {"status": target, "updated_at": utcnow()}
        if calendar_event_id is not None:
            values["calendar_event_id"] = calendar_event_id
        result = session.execute(
            update(MeetingSuggestion)
            .where(MeetingSuggestion.id == suggestion_id)
            .where(MeetingSuggestion.status == STATUS_PENDING)
            .values(**values)
        )
        row = session.get(MeetingSuggestion, suggestion_id)
        if row is None:
            raise SuggestionNotFoundError(f"Suggestion {suggestion_id} not found")
        if not result.rowcount:
            raise SuggestionStateError(suggestion_id, row.status)
        session.refresh(row)
        session.expunge(row)
        return row
