"""Request-level errors shared by services and routes."""


class QueryValidationError(ValueError):
    """A request was rejected before any upstream call was made."""
