"""Daily usage metering for the free/pro tier policy."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, date
from pathlib import Path
from typing import Optional, Callable, Dict, Any

logger = logging.getLogger(__name__)

TIER_FREE = "free"
TIER_PRO = "pro"


@dataclass
class UsageStatus:
    """Outcome of a quota check."""
    allowed: bool
    remaining_quota: Optional[int]  # None means unlimited
    reason: str
    tier: str = TIER_FREE


class UsageMeter(ABC):
    """Decides whether a new session may start and counts sessions that did."""

    @abstractmethod
    def can_proceed(self) -> UsageStatus:
        pass

    @abstractmethod
    def record_usage(self) -> int:
        """Count one session; returns today's count."""
        pass


class UnlimitedUsageMeter(UsageMeter):
    """Meter that never denies; used when metering is disabled."""

    def can_proceed(self) -> UsageStatus:
        return UsageStatus(allowed=True, remaining_quota=None, reason="Unlimited", tier=TIER_PRO)

    def record_usage(self) -> int:
        return 0


class DailyUsageMeter(UsageMeter):
    """Free tier gets a fixed number of sessions per day; pro is unlimited until expiry.

    State lives in ``usage.json`` under the data directory and looks like::

        {"subscription": {"tier": "pro", "expires_at": 1767225600.0},
         "daily_usage": {"date": "2026-10-19", "count": 3},
         "stats": {"total_sessions": 42, "first_use": "..."}}
    """

    def __init__(self, data_dir: str, free_daily_limit: int = 5,
                 clock: Callable[[], datetime] = datetime.now):
        """Initialize usage meter.

        Args:
            data_dir: Directory holding usage.json
            free_daily_limit: Sessions per day allowed on the free tier
            clock: Source of the current time
        """
        self.state_file = Path(data_dir) / "usage.json"
        self.free_daily_limit = free_daily_limit
        self.clock = clock
        self.state = self._load()
        self._check_daily_reset()

    def _default_state(self) -> Dict[str, Any]:
        return {
            "subscription": {"tier": TIER_FREE, "expires_at": None},
            "daily_usage": {"date": self._today().isoformat(), "count": 0},
            "stats": {"total_sessions": 0, "first_use": self.clock().isoformat()},
        }

    def _load(self) -> Dict[str, Any]:
        state = self._default_state()
        if not self.state_file.exists():
            return state
        try:
            with open(self.state_file, 'r', encoding='utf-8') as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable usage state {self.state_file}, starting fresh: {e}")
            return state

        for section in state:
            if isinstance(stored.get(section), dict):
                state[section].update(stored[section])
        return state

    def _save(self) -> None:
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_file, 'w', encoding='utf-8') as f:
            json.dump(self.state, f, indent=2)

    def _today(self) -> date:
        return self.clock().date()

    def _check_daily_reset(self) -> None:
        today = self._today().isoformat()
        if self.state["daily_usage"].get("date") != today:
            logger.info(f"New day ({today}), resetting daily usage")
            self.state["daily_usage"] = {"date": today, "count": 0}

    @property
    def tier(self) -> str:
        """Effective tier; an expired pro subscription falls back to free."""
        subscription = self.state["subscription"]
        if subscription.get("tier") != TIER_PRO:
            return TIER_FREE
        expires_at = subscription.get("expires_at")
        if expires_at is not None and self.clock().timestamp() > expires_at:
            logger.info("Pro subscription expired, reverting to free tier")
            subscription["tier"] = TIER_FREE
            return TIER_FREE
        return TIER_PRO

    def set_subscription(self, tier: str, expires_at: Optional[float] = None) -> None:
        """Record the locally known subscription (e.g. after activation)."""
        if tier not in (TIER_FREE, TIER_PRO):
            raise ValueError(f"Unknown tier: {tier}")
        self.state["subscription"] = {"tier": tier, "expires_at": expires_at}
        self._save()
        logger.info(f"Subscription set to {tier} (expires_at={expires_at})")

    def can_proceed(self) -> UsageStatus:
        if self.tier == TIER_PRO:
            return UsageStatus(allowed=True, remaining_quota=None,
                               reason="Pro subscription active", tier=TIER_PRO)

        self._check_daily_reset()
        count = self.state["daily_usage"]["count"]
        if count >= self.free_daily_limit:
            return UsageStatus(
                allowed=False,
                remaining_quota=0,
                reason=f"Daily limit reached ({self.free_daily_limit} transcriptions).",
            )
        return UsageStatus(allowed=True, remaining_quota=self.free_daily_limit - count, reason="Free tier")

    def record_usage(self) -> int:
        self._check_daily_reset()
        self.state["daily_usage"]["count"] += 1
        self.state["stats"]["total_sessions"] += 1
        self._save()
        count = self.state["daily_usage"]["count"]
        logger.debug(f"Usage recorded: {count} session(s) today")
        return count

    def get_status(self) -> Dict[str, Any]:
        status = self.can_proceed()
        return {
            "tier": status.tier,
            "daily_usage": self.state["daily_usage"]["count"],
            "daily_limit": None if status.tier == TIER_PRO else self.free_daily_limit,
            "remaining_quota": status.remaining_quota,
            "total_sessions": self.state["stats"]["total_sessions"],
        }
