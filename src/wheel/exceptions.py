"""Custom exceptions for wheel journal projection."""


class WheelError(Exception):
    """Base exception for wheel operations."""

    pass


class MalformedEventError(WheelError):
    """Journal record is missing fields required for its kind."""

    pass


class UnknownEventKindError(WheelError):
    """Journal record has a kind the projection does not understand."""

    pass


class SymbolNotFoundError(WheelError):
    """Symbol id on a trade record could not be resolved to a ticker."""

    pass


class ConfigurationError(WheelError):
    """Exception raised for configuration errors."""

    pass
