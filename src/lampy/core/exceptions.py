"""Custom exceptions for lampy."""

from lampy.core import config

logger = config.get_logger()


class LoggedException(Exception):
    """Base class that automatically logs messages."""

    def __init__(self, message: str) -> None:
        """Initialize a new instance of the LoggedException class.

        Args:
            message: The message to display.
        """
        logger.exception(message)
        super().__init__(message)


class MalformedTimestampError(LoggedException):
    """A date and time pair did not match the day-month-year convention."""

    pass


class InconsistentColumnCountError(LoggedException):
    """Rows of the monitor export have different numbers of activity columns."""

    pass


class EmptyInputError(LoggedException):
    """The input contained no data rows."""

    pass


class UnsortedTimestampsError(LoggedException):
    """Record timestamps decrease in input order."""

    pass


class InsufficientDataError(LoggedException):
    """A subject series cannot support a periodogram."""

    pass


class MissingColumnError(LoggedException):
    """A tidy table lacks a required column."""

    pass


class InvalidFileTypeError(LoggedException):
    """Lampy did not expect this file extension."""

    pass
