"""Mail provider exceptions."""


class MailProviderError(Exception):
    """Error returned by (or while reaching) the mail provider API.

    Attributes:
        status_code: HTTP status code, or None for network-level failures.
        error_code: Provider error code/reason when available.
    """

    def __init__(self, message: str, status_code: int | None = None, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code

    @property
    def transient(self) -> bool:
        """Network failures, rate limits and 5xx are worth retrying on a later trigger."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


class CursorExpiredError(MailProviderError):
    """The history cursor is too old for an incremental sync (Gmail answers 404, sometimes 410)."""
