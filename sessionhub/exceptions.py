"""Domain exceptions for SessionHub services"""


class SessionHubError(Exception):
    """Base class for SessionHub domain errors"""


class InvalidAmount(SessionHubError, ValueError):
    """Raised when a monetary base amount is not a positive integer"""

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Invalid base amount: {amount!r} (must be a positive integer of minor units)")


class AlreadyInProgress(SessionHubError):
    """Raised when a request with the same key is already being processed"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Request already in progress for {key}")


class DeliveryError(SessionHubError):
    """Raised when an event could not be delivered after exhausting retries"""

    def __init__(self, message: str, status: int | None = None, body: str | None = None, attempts: int = 0):
        self.status = status
        self.body = body
        self.attempts = attempts
        super().__init__(message)
