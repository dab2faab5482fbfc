from __future__ import annotations


class BusinessValidationError(Exception):
    """Raised when a domain/business rule is violated."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConflictError(BusinessValidationError):
    """Raised when a request conflicts with the current state of a record (HTTP 409)."""


class NoActiveSubscriptionError(Exception):
    """Raised when a quota is checked for a user without a subscription plan."""

    def __init__(self, message: str = "No active subscription found"):
        super().__init__(message)
        self.message = message


class QuotaExceededError(Exception):
    """Raised when a requested usage increment would exceed the plan limit."""

    def __init__(self, *, usage_type: str, limit: int, current: int, requested: int):
        message = (
            f"Quota exceeded for {usage_type}. "
            f"Used: {current}, Limit: {limit}, Requested: {requested}"
        )
        super().__init__(message)
        self.message = message
        self.usage_type = usage_type
        self.limit = limit
        self.current = current
        self.requested = requested
