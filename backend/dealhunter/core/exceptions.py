"""Custom exception classes for the application."""


class DealHunterException(Exception):
    """Base exception for all DealHunter errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(DealHunterException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class ConflictError(DealHunterException):
    """Raised when an operation conflicts with the current state of a resource."""


class ValidationError(DealHunterException):
    """Raised when input fails validation before reaching business logic."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class UpstreamFetchError(DealHunterException):
    """Raised when an external source cannot be fetched."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"Fetch failed for {source}: {message}")


class RateLimitError(DealHunterException):
    """Raised when an external API rate limit is hit."""

    def __init__(self, platform: str):
        super().__init__(f"Rate limit exceeded for {platform}")
