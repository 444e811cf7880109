"""
Analytics, activity feed and system log service.

Writes are fire-and-forget: a failed insert is logged and never reaches the
caller. Reads back rows newest first for the dashboard and the admin console.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from ..models import ActivityItem, AdminOverviewResponse, SystemLogItem, SystemStats, UserStats
from ..supabase_client import SupabaseError

logger = logging.getLogger(__name__)


def _stamp(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {"timestamp": datetime.now(timezone.utc).isoformat(), **(metadata or {})}


class AnalyticsService:
    def __init__(self, db):
        self.db = db

    async def track_event(
        self,
        user_id: Optional[str],
        action_type: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Append a ``user_analytics`` row. Anonymous calls are ignored."""
        if not user_id:
            return
        try:
            await self.db.insert("user_analytics", {
                "user_id": user_id,
                "action_type": action_type,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "metadata": _stamp(metadata),
            })
        except SupabaseError as e:
            logger.error(f"Failed to track analytics event {action_type}: {e.message}")

    async def track_activity(
        self,
        user_id: Optional[str],
        activity_type: str,
        title: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Append an ``activity_feed`` row. Anonymous calls are ignored."""
        if not user_id:
            return
        try:
            await self.db.insert("activity_feed", {
                "user_id": user_id,
                "activity_type": activity_type,
                "title": title,
                "description": description,
                "metadata": _stamp(metadata),
            })
        except SupabaseError as e:
            logger.error(f"Failed to track activity {activity_type}: {e.message}")

    async def log_to_system(
        self,
        level: str,
        component: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Append a ``system_logs`` row, read back by the admin console."""
        try:
            await self.db.insert("system_logs", {
                "log_level": level,
                "component": component,
                "message": message,
                "metadata": metadata or {},
            })
        except SupabaseError as e:
            logger.error(f"Failed to log to system: {e.message}")

    async def recent_activity(self, user_id: str, limit: int = 20) -> List[ActivityItem]:
        rows = await self.db.select(
            "activity_feed",
            {"user_id": user_id},
            order="created_at",
            limit=limit
        )
        return [ActivityItem(**row) for row in rows]

    async def system_logs(self, level: Optional[str] = None, limit: int = 100) -> List[SystemLogItem]:
        filters = {"log_level": level} if level else None
        rows = await self.db.select("system_logs", filters, order="created_at", limit=limit)
        return [SystemLogItem(**row) for row in rows]

    async def overview(self) -> AdminOverviewResponse:
        """
        Per-user and system-wide counters for the admin console.

        Workflow counts come from ``workflow_deployed`` analytics events, since
        workflow definitions themselves live in the users' n8n instances.
        """
        profiles = await self.db.select("profiles", order="created_at")
        connections = await self.db.select("n8n_connections", columns="id,user_id,is_active")
        deployments = await self.db.select(
            "user_analytics",
            {"action_type": "workflow_deployed"},
            columns="user_id"
        )

        connections_by_user: Dict[str, int] = {}
        for connection in connections:
            connections_by_user[connection["user_id"]] = connections_by_user.get(connection["user_id"], 0) + 1
        deployments_by_user: Dict[str, int] = {}
        for event in deployments:
            deployments_by_user[event["user_id"]] = deployments_by_user.get(event["user_id"], 0) + 1

        users = [
            UserStats(
                id=profile["id"],
                email=profile.get("email"),
                full_name=profile.get("full_name"),
                created_at=profile.get("created_at"),
                workflow_count=deployments_by_user.get(profile["id"], 0),
                connection_count=connections_by_user.get(profile["id"], 0),
                last_active=profile.get("updated_at"),
            )
            for profile in profiles
        ]

        system = SystemStats(
            total_users=len(profiles),
            total_workflows=len(deployments),
            total_connections=len(connections),
            active_connections=sum(1 for c in connections if c.get("is_active")),
        )
        return AdminOverviewResponse(users=users, system=system)
