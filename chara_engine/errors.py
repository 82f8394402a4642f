"""Errors raised to the host.

Noisy model output never raises; these only signal misuse of the API.
"""


class UsageError(ValueError):
    """The caller asked for something the engine cannot answer as posed."""


class HistoryIndexError(UsageError, IndexError):
    """Requested history index is outside ``[0, len(history) - 1]``."""
