"""Error taxonomy shared by the shard runtime."""

# Directory error codes that mean the member can be forgotten:
# unknown member, unknown user, invalid form body (malformed snowflake).
UNKNOWN_MEMBER = 10007
UNKNOWN_USER = 10013
INVALID_FORM_BODY = 50035
DELETE_CODES = frozenset({UNKNOWN_MEMBER, UNKNOWN_USER, INVALID_FORM_BODY})


class FeedRelayError(Exception):
    """Base class for all feedrelay errors."""


class InvalidIdentifierError(FeedRelayError, ValueError):
    """Raised when an identifier is not a well-formed numeric id."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Invalid identifier: {identifier!r}")


class DirectoryError(FeedRelayError):
    """Raised by the identity directory with a platform error code."""

    def __init__(self, code: int | None, message: str = "") -> None:
        self.code = code
        super().__init__(message or f"Directory error (code {code})")

    @property
    def is_not_found(self) -> bool:
        return self.code in DELETE_CODES


class NotFoundError(DirectoryError):
    """Directory miss: the member, user or id does not exist."""


class TransientIOError(FeedRelayError):
    """A store or directory hiccup that is expected to clear on retry."""


class FatalTransportError(FeedRelayError):
    """Unrecoverable loss of the chat socket or the store."""


class RateLimitedError(FeedRelayError):
    """Raised when a channel has no article budget left in this window."""

    def __init__(self, channel_id: str, limit: int) -> None:
        self.channel_id = channel_id
        self.limit = limit
        super().__init__(f"Rate limited article for channel {channel_id} (limit {limit})")
