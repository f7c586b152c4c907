"""
Error taxonomy for the signal copier.

Propagation policy:
- ValidationError / AuthenticityError are handled at the boundary and
  never reach the store layer.
- StoreError is the only failure that surfaces as a 5xx.
- TransportError is best-effort: logged, never rolls back a committed write.
"""


class CopierError(Exception):
    """Base class for all copier errors."""

    pass


class ValidationError(CopierError):
    """Missing or out-of-range input (bad subscriber id, risk outside bounds)."""

    pass


class AuthenticityError(CopierError):
    """Signal failed signature verification or could not be parsed."""

    pass


class NotSubscribedError(CopierError):
    """Operation requires an existing subscription."""

    def __init__(self, subscriber_id: str):
        super().__init__(f"Subscriber {subscriber_id} is not subscribed")
        self.subscriber_id = subscriber_id


class StoreError(CopierError):
    """Durable store I/O failure."""

    pass


class TransportError(CopierError):
    """Outbound chat message could not be delivered."""

    pass


class RateLimitExceeded(CopierError):
    """Subscriber exceeded the request budget for the current window."""

    def __init__(self, subscriber_id: str, retry_after: float):
        super().__init__("Rate limit exceeded. Try again later.")
        self.subscriber_id = subscriber_id
        self.retry_after = retry_after
