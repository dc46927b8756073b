class NotFoundError(LookupError):
    """A requested record does not exist."""


class ValidationError(ValueError):
    """Caller supplied input that violates a business rule."""
