class NotFoundError(LookupError):
    """Raised when a referenced book, user or borrow request does not exist."""


class ConflictError(ValueError):
    """Raised when a write collides with existing state (duplicate request, email, ISBN)."""
