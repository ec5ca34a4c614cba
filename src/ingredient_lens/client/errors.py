"""User-facing failures of the client workflow.

Every exception carries a message safe to show as-is; transport details are
only logged.
"""

from __future__ import annotations

from typing import Optional

from ..analysis.validation import InputValidationError


class AnalysisError(Exception):
    default_message = "Unable to analyze ingredients. Please check your connection and try again."

    def __init__(self, message: Optional[str] = None) -> None:
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class SessionError(AnalysisError):
    """Session lookup itself failed; re-authenticating recovers."""

    default_message = "Session error. Please sign in again."


class NotSignedInError(AnalysisError):
    default_message = "You must be signed in to analyze ingredients. Please sign in and try again."


class SessionExpiredError(AnalysisError):
    default_message = "Session expired. Please sign in again."


class ServiceUnreachableError(AnalysisError):
    """Connectivity-class failure: the only class that triggers the offline fallback."""

    default_message = "Unable to reach the analysis service. Please check your connection and try again."


class ServiceUnavailableError(ServiceUnreachableError):
    default_message = "Analysis service temporarily unavailable. Please try again."


class ServiceError(AnalysisError):
    default_message = "Analysis service error. Please try again in a moment."


class BadRequestError(AnalysisError):
    default_message = "Invalid request to analysis service."


class IncompleteResponseError(AnalysisError):
    default_message = "Incomplete analysis response. Please try again."


class AnalysisTimeoutError(AnalysisError):
    default_message = "Analysis is taking too long. Please try again with a shorter ingredient list."


class HistoryError(AnalysisError):
    default_message = "Unable to update history. Please try again."


class BarcodeLookupError(AnalysisError):
    default_message = "Failed to lookup product. Please check your internet connection and try again."


class ProductNotFoundError(BarcodeLookupError):
    default_message = "Product not found. Try a different product or enter ingredients manually."


class NoIngredientsError(BarcodeLookupError):
    default_message = "Product found but no ingredients listed in the database. Try entering ingredients manually."


__all__ = [
    "AnalysisError",
    "AnalysisTimeoutError",
    "BadRequestError",
    "BarcodeLookupError",
    "HistoryError",
    "IncompleteResponseError",
    "InputValidationError",
    "NoIngredientsError",
    "NotSignedInError",
    "ProductNotFoundError",
    "ServiceError",
    "ServiceUnavailableError",
    "ServiceUnreachableError",
    "SessionError",
    "SessionExpiredError",
]
