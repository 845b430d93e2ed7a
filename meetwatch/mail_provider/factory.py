"""Per-mailbox provider construction: token sources and provider factories."""

import os
from typing import Protocol

import httpx

from meetwatch.config import GMAIL_ACCESS_TOKEN, GMAIL_HTTP_TIMEOUT_SECONDS
from meetwatch.db.models.mailbox import Mailbox
from meetwatch.mail_provider.errors import MailProviderError
from meetwatch.mail_provider.gmail_real import GmailProvider
from meetwatch.mail_provider.protocol import MailProvider, ProviderFactory


class TokenSource(Protocol):
    async def get_access_token(self, mailbox: Mailbox) -> str:
        ...


class EnvTokenSource:
    """Access tokens from the environment.

    GMAIL_ACCESS_TOKEN__<ADDRESS> (with @ and . as _) wins over the shared GMAIL_ACCESS_TOKEN.
    """

    async def get_access_token(self, mailbox: Mailbox) -> str:
        key = "GMAIL_ACCESS_TOKEN__" + mailbox.email_address.replace("@", "_").replace(".", "_").upper()
        token = os.getenv(key) or GMAIL_ACCESS_TOKEN
        if not token:
            raise MailProviderError(f"No access token for {mailbox.email_address}", status_code=401)
        return token


class GmailProviderFactory:
    """Builds a GmailProvider per call (tokens may rotate) over one shared httpx client."""

    def __init__(self, token_source: TokenSource | None = None):
        self.token_source = token_source or EnvTokenSource()
        self._client: httpx.AsyncClient | None = None

    async def __call__(self, mailbox: Mailbox) -> MailProvider:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(GMAIL_HTTP_TIMEOUT_SECONDS),
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            )
        token = await self.token_source.get_access_token(mailbox)
        return GmailProvider(access_token=token, client=self._client)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def static_provider_factory(provider: MailProvider) -> ProviderFactory:
    """Factory returning the same provider for every mailbox (mock mode and tests)."""

    async def factory(mailbox: Mailbox) -> MailProvider:
        return provider

    return factory
