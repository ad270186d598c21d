"""
Exception taxonomy for rudiment-coach.

None of these are fatal to the process. Storage reads never raise (they
degrade to empty defaults); storage writes raise StorageUnavailable so the
caller can report and retry.
"""

from __future__ import annotations


class RudimentCoachError(Exception):
    """Base class for all rudiment-coach errors."""


class StorageUnavailable(RudimentCoachError):
    """Reading from or writing to the practice database failed."""


class MediaUnavailable(RudimentCoachError):
    """Audio output, recording or haptics are not available."""


class InvalidInput(RudimentCoachError, ValueError):
    """A caller supplied a value outside the accepted range."""


class InvalidTransition(RudimentCoachError):
    """A drill action was requested in a state that does not allow it."""

    def __init__(self, action: str, state: str):
        super().__init__(f"Cannot {action} while {state}")
        self.action = action
        self.state = state


class UnknownRudiment(RudimentCoachError, KeyError):
    """A rudiment id is not present in the catalog."""

    def __str__(self) -> str:
        return f"Unknown rudiment: {self.args[0]}"


class CatalogError(RudimentCoachError, ValueError):
    """A catalog file is malformed."""
