"""Re-export all ORM models so Base.metadata has all tables."""

from meetwatch.db.models.mailbox import Mailbox, SyncState
from meetwatch.db.models.meeting_suggestion import MeetingSuggestion
from meetwatch.db.models.message import Conversation, Message, OutboundSend
from meetwatch.db.models.notification import NotificationRecord

__all__ = [
    "Mailbox",
    "SyncState",
    "NotificationRecord",
    "Message",
    "Conversation",
    "OutboundSend",
    "MeetingSuggestion",
]
