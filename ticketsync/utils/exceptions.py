from typing import Optional


class TicketSyncError(Exception):
    """Base exception for sync core errors with category for retry decisions."""

    def __init__(self, message: str, category: str = "unknown", retryable: bool = True):
        super().__init__(message)
        self.category = category  # fetch, write, partial, closed, not_found, permission
        self.retryable = retryable


class FetchError(TicketSyncError):
    """Listing tickets or messages failed. Nothing was applied to the store."""

    def __init__(self, message: str = "Failed to load"):
        super().__init__(message, category="fetch", retryable=True)


class WriteError(TicketSyncError):
    """A single write was rejected or did not reach the database."""

    def __init__(self, message: str):
        super().__init__(message, category="write", retryable=True)


class PartialCreateError(TicketSyncError):
    """Ticket row was created but its first message was not."""

    def __init__(self, ticket_id: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Ticket {ticket_id} was created but its first message failed: {cause}",
            category="partial",
            retryable=False,
        )
        self.ticket_id = ticket_id
        self.cause = cause


class TicketClosedError(TicketSyncError):
    """Customers cannot post to a closed ticket."""

    def __init__(self, ticket_id: str):
        super().__init__(f"Ticket {ticket_id} is closed", category="closed", retryable=False)
        self.ticket_id = ticket_id


class TicketNotFoundError(TicketSyncError):
    """Ticket does not exist or the viewer may not read it."""

    def __init__(self, ticket_id: str):
        super().__init__(f"Ticket {ticket_id} not found", category="not_found", retryable=False)
        self.ticket_id = ticket_id


class PermissionDeniedError(TicketSyncError):
    """Staff-only operation attempted by a customer."""

    def __init__(self, message: str):
        super().__init__(message, category="permission", retryable=False)
