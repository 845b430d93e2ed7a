"""DB repositories: sync functions over get_session(), returning detached ORM rows."""

from meetwatch.db.repositories import (
    mailbox_repo,
    message_repo,
    notification_repo,
    suggestion_repo,
    sync_state_repo,
)

__all__ = [
    "mailbox_repo",
    "message_repo",
    "notification_repo",
    "suggestion_repo",
    "sync_state_repo",
]
