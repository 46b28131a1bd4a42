class BaseGsendError(Exception):
    pass


class ValidationError(BaseGsendError):
    """Raised when something does not pass a validation check."""


class ParseError(BaseGsendError):
    """Raised when a wire payload cannot be decoded into a message."""
