"""
Auth Analytics Service
======================

Aggregates authentication activity.

In-process counters are updated for every logged event; the query
methods read the audit log so results survive restarts.
"""

import threading
from collections import Counter, defaultdict
from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, List, Optional

from watchpost.core.enums import EventType
from watchpost.core.logging import get_logger
from watchpost.db.store import EventStore
from watchpost.schemas.events import SecurityEventInput

logger = get_logger(__name__)

AUDIT_LOG_TABLE = "auth_audit_log"

LOGIN_FAILURE_TYPES = (EventType.LOGIN_FAILURE.value, EventType.LOGIN_FAILED.value)
LOGIN_EVENT_TYPES = (EventType.LOGIN_SUCCESS.value, *LOGIN_FAILURE_TYPES)
SUSPICIOUS_IP_THRESHOLD = 3


class AuthAnalyticsService:
    """Login statistics and suspicious-activity detection over the audit log."""

    def __init__(self, store: EventStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._counts: Counter = Counter()
        self._lock = threading.Lock()

    def track_security_event(self, event: SecurityEventInput) -> None:
        """Count an event by type."""
        with self._lock:
            self._counts[event.event_type.value] += 1

    def get_event_counts(self) -> Dict[str, int]:
        """Events seen by this process, keyed by type."""
        with self._lock:
            return dict(self._counts)

    async def get_login_stats(self, hours: int = 24) -> Dict[str, Any]:
        """
        Summarise login activity over the trailing window.

        Returns:
            total_attempts, successful_logins, failed_logins, success_rate,
            unique_users and the three busiest hours of day
        """
        since = self._clock() - timedelta(hours=hours)
        rows = await self.store.query(
            AUDIT_LOG_TABLE,
            {"event_type__in": list(LOGIN_EVENT_TYPES), "created_at__gte": since},
        )

        successful = sum(1 for row in rows if row["event_type"] == EventType.LOGIN_SUCCESS.value)
        failed = len(rows) - successful
        users = {row["user_id"] for row in rows if row.get("user_id")}
        by_hour = Counter(row["created_at"].hour for row in rows)

        return {
            "total_attempts": len(rows),
            "successful_logins": successful,
            "failed_logins": failed,
            "success_rate": round(successful / len(rows) * 100, 2) if rows else 100.0,
            "unique_users": len(users),
            "peak_hours": [
                {"hour": hour, "count": count}
                for hour, count in by_hour.most_common(3)
            ],
            "period_hours": hours,
        }

    async def get_failed_login_attempts(self, user_id: str, hours: int = 24) -> int:
        since = self._clock() - timedelta(hours=hours)
        return await self.store.count(
            AUDIT_LOG_TABLE,
            {"user_id": user_id, "event_type__in": list(LOGIN_FAILURE_TYPES), "created_at__gte": since},
        )

    async def get_suspicious_activity(self, user_id: Optional[str] = None, hours: int = 24) -> List[Dict[str, Any]]:
        """
        IP addresses with repeated login failures.

        Args:
            user_id: Restrict to one user; all users when None
            hours: Trailing window

        Returns:
            One entry per IP with at least three failures, busiest first
        """
        since = self._clock() - timedelta(hours=hours)
        filters: Dict[str, Any] = {
            "event_type__in": list(LOGIN_FAILURE_TYPES),
            "created_at__gte": since,
        }
        if user_id:
            filters["user_id"] = user_id
        rows = await self.store.query(AUDIT_LOG_TABLE, filters)

        by_ip: Dict[str, List[datetime]] = defaultdict(list)
        for row in rows:
            if row.get("ip_address"):
                by_ip[row["ip_address"]].append(row["created_at"])

        suspicious = [
            {
                "ip_address": ip,
                "failed_attempts": len(times),
                "last_attempt": max(times),
            }
            for ip, times in by_ip.items()
            if len(times) >= SUSPICIOUS_IP_THRESHOLD
        ]
        suspicious.sort(key=lambda item: item["failed_attempts"], reverse=True)
        if suspicious:
            logger.info("suspicious_ips_detected", count=len(suspicious), user_id=user_id)
        return suspicious
