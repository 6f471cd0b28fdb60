# errors.py
from __future__ import annotations


class TimeTrackingError(Exception):
    """Base class for errors raised by the time tracking engine."""


class ValidationError(TimeTrackingError):
    """Input that the engine refuses to compute with (bad time range, bad holiday string, ...)."""


class SessionConflictError(TimeTrackingError):
    """A work session is already open for this user."""


class NoActiveSessionError(TimeTrackingError):
    """The operation needs an open work session and there is none."""


class SessionStateError(TimeTrackingError):
    """The open session is in the wrong status for the requested action."""


class EntryNotFoundError(TimeTrackingError):
    pass
