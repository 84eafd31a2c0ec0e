import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from blogapi.core.config import Settings
from blogapi.models.attempt import Attempt
from blogapi.utils.timeutil import Clock, as_utc, utcnow


logger = logging.getLogger("blog.ratelimit")


def get_client_ip(request: Request, trust_proxy_headers: bool = False) -> Optional[str]:
    """
    Client IP used as the throttling key.

    X-Forwarded-For is only honoured behind a trusted proxy; otherwise any
    client could pick its own key. Returns None when no peer address exists.
    """
    if trust_proxy_headers:
        xff = (request.headers.get("x-forwarded-for") or "").strip()
        if xff:
            # XFF may contain a chain: client, proxy1, proxy2
            first = xff.split(",")[0].strip()
            if first:
                return first
    if request.client is None or not request.client.host:
        return None
    return request.client.host


@dataclass(frozen=True)
class RateLimitConfig:
    limit: int = 5
    window_seconds: float = 10.0
    enabled: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimitConfig":
        return cls(
            limit=settings.auth_rate_limit_attempts,
            window_seconds=settings.auth_rate_limit_window_seconds,
            enabled=settings.auth_rate_limit_enabled,
        )


@dataclass(frozen=True)
class LimitResult:
    allowed: bool
    count: int
    retry_after_seconds: int


class AttemptThrottle:
    """
    Sliding-window request counter per (ip, url), persisted as Attempt rows.

    The count is always taken over [now - window, now], never over fixed
    buckets, so the limit holds continuously.
    """

    def __init__(self, db: Session, config: RateLimitConfig, clock: Clock = utcnow) -> None:
        self.db = db
        self.config = config
        self.clock = clock

    def record_attempt(self, ip: str, url: str) -> None:
        self.db.add(Attempt(ip=ip, url=url, timestamp=as_utc(self.clock())))
        self.db.commit()

    def count_recent(self, ip: str, url: str, window_seconds: float) -> int:
        since = as_utc(self.clock()) - timedelta(seconds=window_seconds)
        return int(
            self.db.execute(
                select(func.count(Attempt.id)).where(
                    Attempt.ip == ip,
                    Attempt.url == url,
                    Attempt.timestamp >= since,
                )
            ).scalar_one()
        )

    def reset(self) -> None:
        self.db.execute(delete(Attempt))
        self.db.commit()

    def hit(self, ip: str, url: str) -> LimitResult:
        """
        Record this request, then count it together with the recent ones.

        The request that crosses the limit is itself counted and rejected.
        """
        self.record_attempt(ip, url)
        count = self.count_recent(ip, url, self.config.window_seconds)
        if count <= self.config.limit:
            return LimitResult(allowed=True, count=count, retry_after_seconds=0)

        retry_after = self._retry_after(ip, url, count)
        logger.warning("rate_limited ip=%s url=%s count=%s limit=%s", ip, url, count, self.config.limit)
        return LimitResult(allowed=False, count=count, retry_after_seconds=retry_after)

    def _retry_after(self, ip: str, url: str, count: int) -> int:
        # The next request fits once all but (limit - 1) of the attempts now in
        # the window have aged out.
        now = as_utc(self.clock())
        window = timedelta(seconds=self.config.window_seconds)
        oldest = self.db.execute(
            select(Attempt.timestamp)
            .where(Attempt.ip == ip, Attempt.url == url, Attempt.timestamp >= now - window)
            .order_by(Attempt.timestamp.asc())
            .offset(count - self.config.limit)
            .limit(1)
        ).scalar_one_or_none()
        if oldest is None:
            return int(math.floor(self.config.window_seconds)) + 1
        # An attempt stays in the window up to and including its window_seconds mark
        remaining = (as_utc(oldest) + window - now).total_seconds()
        return max(1, int(math.floor(remaining)) + 1)
