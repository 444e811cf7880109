"""Profile and user settings, upserted on save."""
import logging
from typing import Dict, Any

from ..models import ProfileData, ProfileResponse, UserSettings
from .usage import coerce_tier

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, db):
        self.db = db

    async def get_profile(self, user: Dict[str, Any]) -> ProfileResponse:
        """Load profile and settings; missing rows read back as defaults."""
        profile = await self.db.select_one("profiles", {"id": user["id"]}) or {}
        settings_row = await self.db.select_one("user_settings", {"user_id": user["id"]}) or {}

        profile_fields = {k: profile.get(k) or "" for k in ProfileData.model_fields}
        if not profile_fields["full_name"]:
            profile_fields["full_name"] = (user.get("user_metadata") or {}).get("full_name") or ""
        settings_fields = {k: settings_row[k] for k in UserSettings.model_fields if settings_row.get(k) is not None}

        return ProfileResponse(
            id=user["id"],
            email=profile.get("email") or user.get("email") or "",
            subscription_tier=coerce_tier(profile.get("subscription_tier"), user["id"]),
            profile=ProfileData(**profile_fields),
            settings=UserSettings(**settings_fields),
        )

    async def save_profile(
        self,
        user: Dict[str, Any],
        profile: ProfileData,
        settings: UserSettings
    ) -> ProfileResponse:
        await self.db.upsert("profiles", {
            "id": user["id"],
            "email": user.get("email") or "",
            **profile.model_dump(),
        }, on_conflict="id")
        await self.db.upsert("user_settings", {
            "user_id": user["id"],
            **settings.model_dump(),
        }, on_conflict="user_id")
        logger.info(f"💾 Profile saved for user {user['id']}")
        return await self.get_profile(user)
