"""Async Instagram profile client backed by the Apify profile scraper actor."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from profile_analysis.errors import (
    MalformedProfileError,
    ProfileNotFoundError,
    ProviderError,
    RateLimitedError,
)
from profile_analysis.models import EngagementData, PostData, ProfileData

logger = logging.getLogger(__name__)

APIFY_BASE_URL = "https://api.apify.com/v2"

# Posts considered when computing engagement
ENGAGEMENT_POST_WINDOW = 12

_NOT_FOUND_MARKERS = ("not found", "does not exist", "not_found", "no such user")


class InstagramScraper:
    """Fetch and normalize Instagram profiles via Apify's run-sync endpoint."""

    scraper_name = "apify_instagram_profile"

    def __init__(
        self,
        api_token: str,
        actor_id: str = "apify~instagram-profile-scraper",
        timeout: int = 60,
        max_retries: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_token = api_token
        self.actor_id = actor_id
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=APIFY_BASE_URL,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch(self, username: str, analysis_type: str = "light") -> ProfileData:
        """Return the normalized profile for ``username``.

        Raises ProfileNotFoundError, RateLimitedError, MalformedProfileError
        or ProviderError.
        """
        items = await self._run_actor(username)
        if not items:
            raise ProfileNotFoundError(f"Profile @{username} not found")

        item = items[0]
        if not isinstance(item, dict):
            raise MalformedProfileError(f"Unexpected scraper payload for @{username}")

        error_text = str(item.get("error") or item.get("errorDescription") or "")
        if error_text:
            if any(m in error_text.lower() for m in _NOT_FOUND_MARKERS):
                raise ProfileNotFoundError(f"Profile @{username} does not exist")
            raise ProviderError(f"Scraper error for @{username}: {error_text[:200]}")

        profile = normalize_profile(item, scraper_used=self.scraper_name)
        logger.debug(
            "Fetched @%s (%d followers, %d posts, quality=%s, type=%s)",
            profile.username, profile.followers_count, len(profile.latest_posts),
            profile.data_quality, analysis_type,
        )
        return profile

    async def _run_actor(self, username: str) -> list[Any]:
        client = await self._get_client()
        endpoint = f"/acts/{self.actor_id}/run-sync-get-dataset-items"
        payload = {"usernames": [username], "resultsLimit": ENGAGEMENT_POST_WINDOW}
        last_error = ""

        for attempt in range(self.max_retries + 1):
            try:
                r = await client.post(endpoint, params={"token": self.api_token}, json=payload)
            except httpx.TimeoutException:
                last_error = "timeout"
            except httpx.HTTPError as e:
                last_error = str(e)[:100] or e.__class__.__name__
            else:
                if r.status_code == 404:
                    raise ProfileNotFoundError(f"Profile @{username} not found")
                if r.status_code == 429:
                    raise RateLimitedError(f"Scraper rate limited while fetching @{username}")
                if r.status_code >= 500:
                    last_error = f"HTTP {r.status_code}"
                elif r.status_code >= 400:
                    raise ProviderError(f"Scraper HTTP {r.status_code} for @{username}")
                else:
                    try:
                        data = r.json()
                    except ValueError as e:
                        raise MalformedProfileError(
                            f"Scraper returned invalid JSON for @{username}"
                        ) from e
                    if not isinstance(data, list):
                        raise MalformedProfileError(
                            f"Scraper returned {type(data).__name__}, expected list"
                        )
                    return data

            if attempt < self.max_retries:
                logger.warning("Scraper %s for @%s (retrying)", last_error, username)
                await asyncio.sleep(2 * (attempt + 1))

        raise ProviderError(f"Scraper failed for @{username}: {last_error}")


def normalize_profile(item: dict, scraper_used: str = "unknown") -> ProfileData:
    """Map a raw Apify profile item to ProfileData, defaulting every optional field."""
    username = item.get("username")
    if not username or not isinstance(username, str):
        raise MalformedProfileError("Scraper payload has no username")

    raw_posts = item.get("latestPosts") or []
    try:
        posts = []
        for p in raw_posts if isinstance(raw_posts, list) else []:
            if not isinstance(p, dict):
                continue
            posts.append(PostData(
                id=p.get("id"),
                short_code=p.get("shortCode"),
                caption=p.get("caption"),
                likes_count=p.get("likesCount"),
                comments_count=p.get("commentsCount"),
                timestamp=p.get("timestamp"),
                url=p.get("url"),
                type=p.get("type"),
                hashtags=p.get("hashtags") or [],
                mentions=p.get("mentions") or [],
                view_count=p.get("videoViewCount"),
                is_video=p.get("type") == "Video",
            ))

        profile = ProfileData(
            username=username.lower(),
            display_name=item.get("fullName"),
            bio=item.get("biography"),
            followers_count=item.get("followersCount"),
            following_count=item.get("followsCount"),
            posts_count=item.get("postsCount"),
            is_verified=item.get("verified"),
            is_private=item.get("private"),
            is_business_account=item.get("isBusinessAccount"),
            profile_pic_url=item.get("profilePicUrlHD") or item.get("profilePicUrl"),
            external_url=item.get("externalUrl"),
            latest_posts=posts,
            scraper_used=scraper_used,
        )
    except ValueError as e:
        raise MalformedProfileError(f"Invalid profile fields for @{username}: {e}") from e

    profile.engagement = compute_engagement(profile)
    profile.data_quality = _data_quality(profile)
    return profile


def compute_engagement(profile: ProfileData) -> EngagementData | None:
    posts = profile.latest_posts[:ENGAGEMENT_POST_WINDOW]
    if not posts:
        return None

    total_likes = sum(p.likes_count for p in posts)
    total_comments = sum(p.comments_count for p in posts)
    avg_likes = total_likes / len(posts)
    avg_comments = total_comments / len(posts)
    rate = 0.0
    if profile.followers_count > 0:
        rate = (avg_likes + avg_comments) / profile.followers_count * 100

    return EngagementData(
        avg_likes=round(avg_likes, 1),
        avg_comments=round(avg_comments, 1),
        engagement_rate=round(rate, 2),
        total_engagement=total_likes + total_comments,
        posts_analyzed=len(posts),
    )


def _data_quality(profile: ProfileData) -> str:
    has_posts = bool(profile.latest_posts)
    has_bio = bool(profile.bio.strip())
    if has_posts and has_bio:
        return "high"
    if has_posts or has_bio:
        return "medium"
    return "low"
