"""
Sliding-window admission control for account registration, keyed by client IP.

Window arithmetic is done by pure functions over a list of epoch-millisecond
timestamps; persistence goes through a RateWindowStore.

The load/decide/append sequence is not atomic. Concurrent requests from one
IP can all observe a count under the limit and all be admitted, so the limit
is a best-effort bound under bursts.
"""

import calendar
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from .errors import InvalidRateLimiterConfig, RateLimited
from .schema import RateWindowRecord
from util.logging import logger

WINDOW_UNITS = ("second", "minute", "hour", "day", "week", "month", "year", "decade", "century")
RETENTION_MARGIN = 15

_FIXED_UNITS = {
    "second": timedelta(seconds=1),
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}
_MONTH_UNITS = {"month": 1, "year": 12, "decade": 120, "century": 1200}


@dataclass
class RateLimitDecision:
    admitted: bool
    reason: str
    current_uses: int = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _shift_months(moment: datetime, months: int) -> datetime:
    index = moment.year * 12 + (moment.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    if year < 1:
        return moment.replace(year=1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def is_valid_window(allowed_uses, window_size, window_unit) -> bool:
    """Positive integer counts and a known unit."""
    for count in (allowed_uses, window_size):
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            return False
    return window_unit in WINDOW_UNITS


def window_start(now: datetime, window_size: int, window_unit: str) -> datetime:
    """``now`` minus ``window_size`` units; months and longer follow the calendar."""
    if window_unit in _FIXED_UNITS:
        return now - _FIXED_UNITS[window_unit] * window_size
    if window_unit in _MONTH_UNITS:
        return _shift_months(now, -_MONTH_UNITS[window_unit] * window_size)
    raise ValueError(f"Unknown window unit: {window_unit}")


def count_recent(uses: List[int], since_ms: int) -> int:
    """Uses strictly newer than ``since_ms``; unsorted input is fine."""
    return sum(
        1 for use in uses or []
        if isinstance(use, (int, float)) and not isinstance(use, bool) and use > since_ms
    )


def under_time_limit(uses: Optional[List[int]], allowed_uses, window_size, window_unit,
                     now: Optional[datetime] = None) -> bool:
    """True when fewer than ``allowed_uses`` fall inside the trailing window.

    A malformed window never admits.
    """
    if not is_valid_window(allowed_uses, window_size, window_unit):
        return False
    now = now or utc_now()
    since_ms = to_millis(window_start(now, window_size, window_unit))
    return count_recent(uses or [], since_ms) < allowed_uses


def append_use(uses: Optional[List[int]], now_ms: int, allowed_uses: int) -> List[int]:
    """New list with ``now_ms`` appended, keeping the latest ``allowed_uses + 15``."""
    kept = list(uses or [])
    kept.append(now_ms)
    limit = allowed_uses + RETENTION_MARGIN
    if len(kept) > limit:
        kept = kept[len(kept) - limit:]
    return kept


class RateWindowStore(ABC):
    """Keyed storage of registration windows."""

    @abstractmethod
    def get(self, key: str) -> Optional[RateWindowRecord]:
        pass

    @abstractmethod
    def put(self, record: RateWindowRecord) -> None:
        pass


class InMemoryRateWindowStore(RateWindowStore):
    def __init__(self):
        self._records: Dict[str, RateWindowRecord] = {}

    def get(self, key):
        record = self._records.get(key)
        if record is None:
            return None
        return RateWindowRecord(key=record.key, uses=list(record.uses))

    def put(self, record):
        self._records[record.key] = RateWindowRecord(key=record.key, uses=list(record.uses))


class SqliteRateWindowStore(RateWindowStore):
    """Windows persisted in the ``ips`` table."""

    def get(self, key):
        from .dao import get_ip_record
        return get_ip_record(key)

    def put(self, record):
        from .dao import put_ip_record
        put_ip_record(record)


def admit(store: RateWindowStore, key: str, allowed_uses, window_size, window_unit,
          now: Optional[datetime] = None) -> RateLimitDecision:
    """Decide whether ``key`` may register now. Never records a use."""
    if not is_valid_window(allowed_uses, window_size, window_unit):
        logger.error(
            f"Rate limiter misconfigured: allowed_uses={allowed_uses!r} "
            f"window_size={window_size!r} window_unit={window_unit!r}"
        )
        return RateLimitDecision(admitted=False, reason="invalid_config")

    record = store.get(key)
    if record is None or not record.uses:
        return RateLimitDecision(admitted=True, reason="no_prior_uses")

    now = now or utc_now()
    since_ms = to_millis(window_start(now, window_size, window_unit))
    current = count_recent(record.uses, since_ms)
    if current < allowed_uses:
        return RateLimitDecision(admitted=True, reason="under_limit", current_uses=current)
    return RateLimitDecision(admitted=False, reason="limit_reached", current_uses=current)


class RegistrationRateLimiter:
    """Registration throttle bound to one store and one window."""

    def __init__(self, store: RateWindowStore, allowed_uses, window_size, window_unit,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.allowed_uses = allowed_uses
        self.window_size = window_size
        self.window_unit = window_unit
        self.clock = clock

    @property
    def window_label(self) -> str:
        if self.window_size == 1:
            return str(self.window_unit)
        return f"{self.window_size} {self.window_unit}s"

    def admit(self, key: str, now: Optional[datetime] = None) -> RateLimitDecision:
        decision = admit(self.store, key, self.allowed_uses, self.window_size, self.window_unit,
                         now=now or self.clock())
        logger.log_rate_limit_decision(key, decision.admitted, decision.current_uses, decision.reason)
        return decision

    def enforce(self, key: str, now: Optional[datetime] = None) -> RateLimitDecision:
        """Admit or raise RateLimited / InvalidRateLimiterConfig."""
        decision = self.admit(key, now=now)
        if decision.admitted:
            return decision
        if decision.reason == "invalid_config":
            raise InvalidRateLimiterConfig("Registration is unavailable: rate limiter misconfigured")
        raise RateLimited(
            f"This IP Address has already been used {self.allowed_uses} times this {self.window_label}"
        )

    def record_use(self, key: str, now: Optional[datetime] = None) -> RateWindowRecord:
        """Append a successful use for ``key``; call only after the registration succeeded."""
        now = now or self.clock()
        record = self.store.get(key) or RateWindowRecord(key=key, uses=[])
        allowed = self.allowed_uses if isinstance(self.allowed_uses, int) else 0
        record.uses = append_use(record.uses, to_millis(now), allowed)
        self.store.put(record)
        return record


def admit_registration(ip: str, store: Optional[RateWindowStore] = None,
                       now: Optional[datetime] = None) -> RateLimitDecision:
    """Admission decision for ``ip`` under the configured registration window."""
    from .config import get_registration_limits

    allowed_uses, window_size, window_unit = get_registration_limits()
    limiter = RegistrationRateLimiter(store or SqliteRateWindowStore(), allowed_uses, window_size, window_unit)
    return limiter.admit(ip, now=now)
