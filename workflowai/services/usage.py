"""
Subscription tiers and usage metering.

Usage is metered from ``user_analytics`` rows: every successful generation
appends a ``workflow_generated`` event, and the count since the start of the
current UTC month is compared to the tier's limit.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from ..models import SubscriptionTier, UsageResponse

logger = logging.getLogger(__name__)

GENERATION_EVENT = "workflow_generated"

# None means unlimited
TIER_LIMITS: Dict[SubscriptionTier, Dict[str, Optional[int]]] = {
    SubscriptionTier.FREE: {"generations": 10, "connections": 1},
    SubscriptionTier.PRO: {"generations": 200, "connections": 5},
    SubscriptionTier.ENTERPRISE: {"generations": None, "connections": None},
}


class QuotaExceededError(Exception):
    """Raised when an action would go over the user's plan limits."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def coerce_tier(value: Any, user_id: str = "") -> SubscriptionTier:
    """Stored tier as a SubscriptionTier; missing or unknown values read as free."""
    try:
        return SubscriptionTier(value or SubscriptionTier.FREE.value)
    except ValueError:
        logger.warning(f"Unknown subscription tier '{value}' for user {user_id}, using free")
        return SubscriptionTier.FREE


def period_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the current calendar month, UTC."""
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class UsageService:
    def __init__(self, db):
        self.db = db

    async def get_tier(self, user_id: str) -> SubscriptionTier:
        profile = await self.db.select_one("profiles", {"id": user_id})
        return coerce_tier((profile or {}).get("subscription_tier"), user_id)

    async def generations_used(self, user_id: str) -> int:
        return await self.db.count(
            "user_analytics",
            {"user_id": user_id, "action_type": GENERATION_EVENT},
            gte={"created_at": period_start().isoformat()}
        )

    async def get_usage(self, user_id: str) -> UsageResponse:
        tier = await self.get_tier(user_id)
        limits = TIER_LIMITS[tier]
        return UsageResponse(
            tier=tier,
            generations_used=await self.generations_used(user_id),
            generations_limit=limits["generations"],
            connections_used=await self.db.count("n8n_connections", {"user_id": user_id}),
            connections_limit=limits["connections"],
            period_start=period_start(),
        )

    async def check_generation_quota(self, user_id: str) -> None:
        """
        Raises:
            QuotaExceededError: The monthly generation limit is reached
        """
        tier = await self.get_tier(user_id)
        limit = TIER_LIMITS[tier]["generations"]
        if limit is None:
            return
        if await self.generations_used(user_id) >= limit:
            raise QuotaExceededError(
                f"Monthly generation limit reached for the {tier.value} plan ({limit} workflows)"
            )

    async def check_connection_quota(self, user_id: str) -> None:
        """
        Raises:
            QuotaExceededError: Saving one more connection would exceed the plan
        """
        tier = await self.get_tier(user_id)
        limit = TIER_LIMITS[tier]["connections"]
        if limit is None:
            return
        if await self.db.count("n8n_connections", {"user_id": user_id}) >= limit:
            raise QuotaExceededError(
                f"The {tier.value} plan allows {limit} n8n connection(s); delete one before adding another"
            )

    async def record_generation(self, analytics, user_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        await analytics.track_event(user_id, GENERATION_EVENT, "workflow", metadata=metadata)
