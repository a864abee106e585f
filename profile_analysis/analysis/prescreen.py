"""Heuristic pre-screen that rejects obviously unsuitable profiles before any paid AI call."""

from __future__ import annotations

from profile_analysis.models import PreScreenResult, ProfileData

PRIVATE_FOLLOWER_FLOOR = 1000
SUSPICIOUS_RATIO = 0.1
SUSPICIOUS_FOLLOWER_FLOOR = 1000

# Ratio used when the account follows nobody
_NO_FOLLOWING_RATIO = 999.0


def pre_screen_profile(profile: ProfileData) -> PreScreenResult:
    """Return a rejection with an early score, or ``should_process=True``.

    Rules are evaluated in order; the first that fires wins.
    """
    if profile.is_private and profile.followers_count < PRIVATE_FOLLOWER_FLOOR:
        return PreScreenResult(
            should_process=False,
            early_score=15,
            reason="Private account with low followers - no analysis possible",
        )

    if profile.followers_count == 0:
        return PreScreenResult(
            should_process=False,
            early_score=0,
            reason="Account has no followers",
        )

    follow_ratio = (
        profile.followers_count / profile.following_count
        if profile.following_count > 0 else _NO_FOLLOWING_RATIO
    )
    if follow_ratio < SUSPICIOUS_RATIO and profile.followers_count > SUSPICIOUS_FOLLOWER_FLOOR:
        return PreScreenResult(
            should_process=False,
            early_score=20,
            reason="Suspicious follow ratio indicates bot/spam account",
        )

    return PreScreenResult(should_process=True)
