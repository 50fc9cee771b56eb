"""Exceptions raised by restop components."""


class RestopError(Exception):
    """Base class for restop errors."""


class SourceUnavailable(RestopError):
    """The collector cannot produce any snapshot at all."""


class PartialRecordLoss(RestopError):
    """A single record became unreadable while a snapshot was taken."""


class InvalidConfiguration(RestopError, ValueError):
    """An unsupported sort key or out-of-range interval was requested."""


class RenderOverflow(RestopError):
    """The viewport cannot hold the summary header."""
