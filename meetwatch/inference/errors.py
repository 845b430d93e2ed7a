"""Inference error taxonomy. retryable decides whether InferenceClient backs off and tries again."""


class InferenceError(Exception):
    def __init__(self, message: str, retryable: bool = False, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.status_code = status_code


class InferenceTimeoutError(InferenceError):
    def __init__(self, message: str = "Inference request timed out"):
        super().__init__(message, retryable=True)


class InferenceRateLimitError(InferenceError):
    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message, retryable=True, status_code=429)


class InferenceApiError(InferenceError):
    """Provider error. 5xx and connection failures (status_code None) are retryable, other 4xx are not."""

    def __init__(self, message: str, status_code: int | None = None):
        retryable = status_code is None or status_code >= 500 or status_code == 429
        super().__init__(message, retryable=retryable, status_code=status_code)


class InferenceParseError(InferenceError):
    """Model output was not valid JSON for the expected shape. Never retried."""

    def __init__(self, raw_text: str, message: str = "Failed to parse model output"):
        super().__init__(message, retryable=False)
        self.raw_text = raw_text
