from __future__ import annotations

from typing import Any

from .constants import MAX_INPUT_LENGTH, MIN_INPUT_LENGTH


class InputValidationError(ValueError):
    """Raised for ingredient text the user has to correct before submitting."""

    def __init__(self, message: str, *, reason: str) -> None:
        super().__init__(message)
        self.user_message = message
        # "missing" | "too_short" | "too_long"
        self.reason = reason


def validate_input(raw: Any) -> str:
    """Return the trimmed ingredient text or raise InputValidationError.

    Pure: no I/O, same answer for the same input.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InputValidationError("Please enter ingredient text", reason="missing")
    text = raw.strip()
    if len(text) < MIN_INPUT_LENGTH:
        raise InputValidationError(
            f"Please enter a complete ingredient list (at least {MIN_INPUT_LENGTH} characters)",
            reason="too_short",
        )
    if len(text) > MAX_INPUT_LENGTH:
        raise InputValidationError(
            f"Ingredient list is too long. Please limit to {MAX_INPUT_LENGTH} characters.",
            reason="too_long",
        )
    return text
