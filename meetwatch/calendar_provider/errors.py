class CalendarProviderError(Exception):
    """Calendar event could not be created."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
