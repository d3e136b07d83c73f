from __future__ import annotations


class QuizClientError(Exception):
    """Base class for faults raised by the session core."""


class MalformedMessage(QuizClientError, ValueError):
    """Raised when an inbound line or its payload cannot be understood.

    This is fatal to the session: the connection is torn down and the error
    is re-raised to whoever runs the session.
    """


class UnknownPlayer(QuizClientError, LookupError):
    """Raised when a host action names a player that is not in the roster."""
