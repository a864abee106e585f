"""Async Supabase (PostgREST) repository: users, businesses, analyses, credit ledger, usage."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from profile_analysis.errors import (
    AnalyticsError,
    LedgerError,
    PersistenceError,
    UserValidationError,
)
from profile_analysis.models import (
    BusinessProfile,
    CostDetails,
    ProfileData,
    SavedAnalysis,
    ScoredAnalysis,
    UserCredits,
)

logger = logging.getLogger(__name__)

ANALYSIS_VERSION = "3.1"


class SupabaseRepository:
    """Thin async wrapper over the Supabase REST API using the service role key."""

    def __init__(
        self,
        url: str,
        service_role: str,
        timeout: int = 20,
        ledger_max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.service_role = service_role
        self.timeout = timeout
        self.ledger_max_retries = ledger_max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=f"{self.url}/rest/v1",
                headers={
                    "apikey": self.service_role,
                    "Authorization": f"Bearer {self.service_role}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: type[Exception],
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Perform a request and return decoded JSON (None for empty bodies).

        Raises ``error_cls`` on transport errors and non-2xx responses.
        """
        client = await self._get_client()
        headers = {"Prefer": prefer} if prefer else None
        try:
            r = await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise error_cls(f"{method} {path} failed: {e}") from e
        if r.status_code >= 400:
            raise error_cls(f"{method} {path} returned HTTP {r.status_code}: {r.text[:200]}")
        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise error_cls(f"{method} {path} returned invalid JSON") from e

    # --- Users and businesses ---

    async def fetch_user_and_credits(self, user_id: str) -> UserCredits:
        """Raises UserValidationError for unknown users."""
        users = await self._request(
            "GET", "/users", UserValidationError,
            params={"select": "id", "id": f"eq.{user_id}", "limit": "1"},
        )
        if not users:
            raise UserValidationError("User not found")

        subs = await self._request(
            "GET", "/subscriptions", UserValidationError,
            params={
                "select": "id,credits_remaining,plan_type",
                "user_id": f"eq.{user_id}",
                "status": "eq.active",
                "limit": "1",
            },
        )
        if not subs:
            logger.info("No active subscription for user %s — 0 credits", user_id)
            return UserCredits(user_id=user_id, credits=0)

        sub = subs[0]
        return UserCredits(
            user_id=user_id,
            credits=int(sub.get("credits_remaining") or 0),
            plan_type=sub.get("plan_type") or "free",
            subscription_id=sub.get("id"),
        )

    async def fetch_business_profile(self, business_id: str, user_id: str) -> BusinessProfile:
        """Raises UserValidationError if the business does not belong to the user."""
        rows = await self._request(
            "GET", "/business_profiles", UserValidationError,
            params={
                "select": "*",
                "id": f"eq.{business_id}",
                "user_id": f"eq.{user_id}",
                "limit": "1",
            },
        )
        if not rows:
            raise UserValidationError("Business profile not found")
        return BusinessProfile.model_validate(rows[0])

    # --- Analyses ---

    async def save_complete_analysis(
        self,
        user_id: str,
        business_id: str,
        profile: ProfileData,
        scored: ScoredAnalysis,
        analysis_type: str,
        profile_url: str = "",
    ) -> SavedAnalysis:
        """Upsert the lead, insert run and payload rows. Raises PersistenceError."""
        now = datetime.now(timezone.utc).isoformat()
        lead_rows = await self._request(
            "POST", "/leads", PersistenceError,
            params={"on_conflict": "user_id,business_id,username"},
            json={
                "user_id": user_id,
                "business_id": business_id,
                "username": profile.username,
                "display_name": profile.display_name or None,
                "bio_text": profile.bio or None,
                "profile_picture_url": profile.profile_pic_url or None,
                "external_website_url": profile.external_url or None,
                "follower_count": profile.followers_count,
                "following_count": profile.following_count,
                "post_count": profile.posts_count,
                "is_verified_account": profile.is_verified,
                "is_private_account": profile.is_private,
                "is_business_account": profile.is_business_account,
                "platform_type": "instagram",
                "profile_url": profile_url or f"https://instagram.com/{profile.username}",
                "last_updated_at": now,
            },
            prefer="resolution=merge-duplicates,return=representation",
        )
        if not lead_rows or "lead_id" not in lead_rows[0]:
            raise PersistenceError(f"Lead upsert for @{profile.username} returned no lead_id")
        lead_id = lead_rows[0]["lead_id"]

        run_rows = await self._request(
            "POST", "/runs", PersistenceError,
            json={
                "lead_id": lead_id,
                "user_id": user_id,
                "business_id": business_id,
                "analysis_type": analysis_type,
                "analysis_version": ANALYSIS_VERSION,
                "overall_score": scored.result.overall_score,
                "summary_text": scored.result.summary_text,
                "run_status": "completed",
                "ai_model_used": scored.cost.model_used,
                "analysis_completed_at": now,
            },
            prefer="return=representation",
        )
        if not run_rows or "run_id" not in run_rows[0]:
            raise PersistenceError(f"Run insert for @{profile.username} returned no run_id")
        run_id = run_rows[0]["run_id"]

        await self._request(
            "POST", "/payloads", PersistenceError,
            json={
                "run_id": run_id,
                "lead_id": lead_id,
                "user_id": user_id,
                "business_id": business_id,
                "analysis_type": analysis_type,
                "analysis_data": {
                    **scored.result.model_dump(),
                    "pre_screened": scored.pre_screened,
                    "decode_notes": scored.decode_notes,
                },
            },
            prefer="return=minimal",
        )
        return SavedAnalysis(run_id=run_id, lead_id=lead_id)

    # --- Credit ledger ---

    async def debit_credits(
        self,
        user_id: str,
        amount: int,
        description: str,
        run_id: str,
        cost: CostDetails | None = None,
        run_ids: list[str] | None = None,
    ) -> int:
        """Debit the active subscription and record a ``use`` transaction.

        The balance update is a compare-and-swap on the value just read, so
        concurrent debits never overwrite each other. Returns the new balance.
        Raises LedgerError.
        """
        cost = cost or CostDetails()
        new_balance = None
        for attempt in range(self.ledger_max_retries):
            subs = await self._request(
                "GET", "/subscriptions", LedgerError,
                params={
                    "select": "id,credits_remaining",
                    "user_id": f"eq.{user_id}",
                    "status": "eq.active",
                    "limit": "1",
                },
            )
            if not subs:
                raise LedgerError(f"No active subscription for user {user_id}")
            current = int(subs[0].get("credits_remaining") or 0)
            updated = await self._request(
                "PATCH", "/subscriptions", LedgerError,
                params={"id": f"eq.{subs[0]['id']}", "credits_remaining": f"eq.{current}"},
                json={
                    "credits_remaining": current - amount,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
                prefer="return=representation",
            )
            if updated:
                new_balance = current - amount
                break
            logger.info(
                "Credit balance for %s changed during debit (attempt %d/%d) — retrying",
                user_id, attempt + 1, self.ledger_max_retries,
            )

        if new_balance is None:
            raise LedgerError(
                f"Could not debit {amount} credits for {user_id}: balance kept changing"
            )
        if new_balance < 0:
            logger.warning("User %s overdrawn: balance now %d", user_id, new_balance)

        # Balance is committed at this point; a failed transaction insert is logged, not raised.
        try:
            await self._request(
                "POST", "/credit_transactions", LedgerError,
                json={
                    "user_id": user_id,
                    "amount": amount,
                    "type": "use",
                    "description": description,
                    "run_id": run_id,
                    "actual_cost": cost.actual_cost,
                    "tokens_in": cost.tokens_in,
                    "tokens_out": cost.tokens_out,
                    "model_used": cost.model_used,
                    "metadata": {"block_type": cost.block_type, "run_ids": run_ids or [run_id]},
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
                prefer="return=minimal",
            )
        except LedgerError as e:
            logger.error(
                "Ledger anomaly: debited %d credits from %s (run %s) but the transaction "
                "row was not recorded: %s",
                amount, user_id, run_id, e,
            )
        return new_balance

    # --- Usage analytics ---

    async def increment_usage(
        self,
        user_id: str,
        business_id: str,
        month: str,
        analysis_type: str,
        credit_cost: int,
        lead_score: int,
        analysis_method: str = "bulk",
    ) -> None:
        """Raises AnalyticsError."""
        await self._request(
            "POST", "/rpc/increment_usage_tracking", AnalyticsError,
            json={
                "p_user_id": user_id,
                "p_business_id": business_id,
                "p_month": month,
                "p_analysis_type": analysis_type,
                "p_credit_cost": credit_cost,
                "p_lead_score": lead_score,
                "p_analysis_method": analysis_method,
            },
        )
