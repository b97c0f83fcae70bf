"""Turn failure taxonomy.

TransportError and ParseError end a turn without touching GameState; the
session shows a message and the player may reroll. PortraitError never leaves
the portrait resolver. StorageError is raised only when a session snapshot
cannot be written even after pruning.
"""

from __future__ import annotations

from typing import Literal

ParseReason = Literal["no_payload", "malformed_structure", "decode_failure", "invalid_payload"]


class TurnError(RuntimeError):
    """Base class for failures that abort a turn."""

    user_message = "Something went wrong. Please try again."


class TransportError(TurnError):
    """The narrative stream failed before it completed."""

    user_message = (
        "An unexpected error occurred while contacting the narrator. "
        "Please check your connection or try again."
    )


class ParseError(TurnError):
    """The accumulated response could not be read as a turn payload."""

    user_message = (
        "There was a problem generating the next part of the story. "
        "Please try rerolling or rephrasing your action."
    )

    def __init__(self, reason: ParseReason, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason


class PortraitError(RuntimeError):
    """Raised by a portrait generator when no image could be produced."""


class StorageError(RuntimeError):
    """Raised when a session snapshot cannot be written."""
