"""Exception hierarchy for request validation and per-profile analysis failures."""

from __future__ import annotations

from enum import Enum


class FailureReason(str, Enum):
    """Stable reason codes reported for a failed profile."""
    NOT_FOUND = "NotFound"
    RATE_LIMITED = "RateLimited"
    MALFORMED = "Malformed"
    PROVIDER_ERROR = "ProviderError"
    INVALID_IDENTIFIER = "InvalidIdentifier"
    SCORING_ERROR = "ScoringError"
    PERSISTENCE_ERROR = "PersistenceError"
    UNEXPECTED = "UnexpectedError"


class AnalysisError(Exception):
    """Base class for every error raised by the analysis service."""

    status_code: int = 500


# ---------------------------------------------------------------------------
# Request-level errors (reject the whole request before any side effect)
# ---------------------------------------------------------------------------

class BulkRequestError(AnalysisError):
    """Bad request shape: empty/oversized profile list, unsupported mode, missing refs."""

    status_code = 400


class UserValidationError(AnalysisError):
    """Unknown user or business profile."""

    status_code = 400


class InsufficientCreditsError(AnalysisError):
    status_code = 402

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits. Need {required}, have {available}")


# ---------------------------------------------------------------------------
# Per-profile errors (recorded as a failure, the batch continues)
# ---------------------------------------------------------------------------

class ProfileError(AnalysisError):
    """An error contained to a single profile."""

    reason: FailureReason = FailureReason.UNEXPECTED


class FetchError(ProfileError):
    status_code = 400
    reason = FailureReason.PROVIDER_ERROR


class ProfileNotFoundError(FetchError):
    status_code = 404
    reason = FailureReason.NOT_FOUND


class RateLimitedError(FetchError):
    reason = FailureReason.RATE_LIMITED


class MalformedProfileError(FetchError):
    reason = FailureReason.MALFORMED


class ProviderError(FetchError):
    """Transient network or upstream failure while fetching profile data."""

    reason = FailureReason.PROVIDER_ERROR


class InvalidIdentifierError(FetchError):
    status_code = 400
    reason = FailureReason.INVALID_IDENTIFIER


class ScoringError(ProfileError):
    reason = FailureReason.SCORING_ERROR


class ModelError(ScoringError):
    """The LLM call itself failed (timeout, API error, no provider)."""


class ParseError(ScoringError):
    """Neither strict nor lenient decoding produced a score."""


class PersistenceError(ProfileError):
    reason = FailureReason.PERSISTENCE_ERROR


# ---------------------------------------------------------------------------
# Best-effort bookkeeping errors (logged, never alter the response)
# ---------------------------------------------------------------------------

class LedgerError(AnalysisError):
    pass


class AnalyticsError(AnalysisError):
    pass
