"""Mail provider: Gmail-shaped protocol, httpx implementation and in-memory mock."""

from meetwatch.mail_provider.errors import CursorExpiredError, MailProviderError
from meetwatch.mail_provider.factory import (
    EnvTokenSource,
    TokenSource,
    GmailProviderFactory,
    static_provider_factory,
)
from meetwatch.mail_provider.gmail_mock import MockMailProvider, build_gmail_message
from meetwatch.mail_provider.gmail_models import ChangePage, GmailMessage, MessagePage, WatchLease
from meetwatch.mail_provider.gmail_real import GmailProvider
from meetwatch.mail_provider.mapping import (
    MessageMappingError,
    gmail_message_to_mail_message,
    stored_messages_to_thread,
)
from meetwatch.mail_provider.protocol import MailProvider, ProviderFactory

__all__ = [
    "ChangePage",
    "CursorExpiredError",
    "EnvTokenSource",
    "GmailMessage",
    "GmailProvider",
    "GmailProviderFactory",
    "MailProvider",
    "MailProviderError",
    "MessageMappingError",
    "MessagePage",
    "MockMailProvider",
    "ProviderFactory",
    "TokenSource",
    "WatchLease",
    "build_gmail_message",
    "gmail_message_to_mail_message",
    "static_provider_factory",
    "stored_messages_to_thread",
]
