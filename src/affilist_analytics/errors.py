"""
Exception types raised by the analytics engine and its stores.
"""


class AnalyticsError(Exception):
    """Base class for analytics errors."""
    pass


class ValidationError(AnalyticsError, ValueError):
    """Raised when query parameters are malformed or out of range.

    Args:
        fields: Mapping of offending parameter name to a human readable reason
    """

    def __init__(self, fields: dict[str, str]):
        self.fields = dict(fields)
        summary = "; ".join(f"{name}: {reason}" for name, reason in self.fields.items())
        super().__init__(f"Invalid query parameters ({summary})")


class NotFoundError(AnalyticsError, LookupError):
    """Raised when a referenced link does not exist."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class StoreUnavailableError(AnalyticsError):
    """Raised when the click or link store cannot be reached or a read fails."""
    pass
