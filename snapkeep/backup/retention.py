"""
Retention policy engine.

Decides which archives survive a run under a tiered daily/weekly/monthly
policy. Every tier resolves a series of target dates to "the newest archive
on or before the target", and the kept set is the union of all tiers.

The computation is a pure function of (catalog, policy, now): it holds no
state between calls and is recomputed on every run.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple

from snapkeep.errors import SnapkeepError
from .catalog import Archive, Catalog


logger = logging.getLogger(__name__)

SUNDAY = 6  # date.weekday()


class RetentionError(SnapkeepError):
    """Raised for a malformed policy or an unusable reference time."""
    pass


@dataclass(frozen=True)
class RetentionPolicy:
    """
    Number of period buckets whose representative archive must survive.

    A count of 0 disables that tier.
    """

    daily_keep: int = 0
    weekly_keep: int = 0
    monthly_keep: int = 0

    def __post_init__(self):
        for field_name in ('daily_keep', 'weekly_keep', 'monthly_keep'):
            value = getattr(self, field_name)
            # bool is an int subclass but never a meaningful count
            if isinstance(value, bool) or not isinstance(value, int):
                raise RetentionError(f"{field_name} must be an integer, got {value!r}")
            if value < 0:
                raise RetentionError(f"{field_name} must be >= 0, got {value}")

    @property
    def max_kept(self) -> int:
        return self.daily_keep + self.weekly_keep + self.monthly_keep


def _as_date(now) -> date:
    if isinstance(now, datetime):
        return now.date()
    if isinstance(now, date):
        return now
    raise RetentionError(f"Cannot interpret reference time: {now!r}")


def month_start(day: date, months_back: int) -> date:
    """
    First day of the month lying months_back calendar months before day.

    This is the single month-arithmetic routine used by the engine; the year
    rolls over as needed (January minus one month is December of the
    previous year).
    """
    index = day.year * 12 + (day.month - 1) - months_back
    return date(index // 12, index % 12 + 1, 1)


def last_sunday(day: date) -> date:
    """Most recent Sunday on or before day (day itself if it is a Sunday)."""
    return day - timedelta(days=(day.weekday() - SUNDAY) % 7)


def _daily_slots(catalog: Catalog, today: date, count: int) -> Iterator[Tuple[str, Optional[Archive]]]:
    for i in range(count):
        target = today - timedelta(days=i)
        yield f"daily[{i}]", catalog.newest_on_or_before(target)


def _weekly_slots(catalog: Catalog, today: date, count: int) -> Iterator[Tuple[str, Optional[Archive]]]:
    anchor = last_sunday(today)
    for w in range(count):
        target = anchor - timedelta(weeks=w)
        yield f"weekly[{w}]", catalog.newest_on_or_before(target)


def _monthly_slots(catalog: Catalog, today: date, count: int) -> Iterator[Tuple[str, Optional[Archive]]]:
    for m in range(count):
        first = month_start(today, m)
        archive = catalog.newest_in_month(first.year, first.month)
        if archive is None:
            # Nothing taken during the month: keep what was current when it began
            archive = catalog.newest_on_or_before(first)
        yield f"monthly[{m}]", archive


def explain_keep_set(catalog, policy: RetentionPolicy, now) -> Dict[str, List[str]]:
    """
    Compute the kept archives together with the slots that selected them.

    Args:
        catalog: Catalog (or iterable of Archive) to choose from
        policy: Retention counts
        now: Reference time (datetime or date)

    Returns:
        Mapping of archive name to slot labels such as 'daily[0]' or
        'monthly[2]'. Slots with no eligible archive contribute nothing.

    Raises:
        RetentionError: If the policy or reference time is malformed
    """
    if not isinstance(policy, RetentionPolicy):
        raise RetentionError(f"Expected RetentionPolicy, got {type(policy).__name__}")
    today = _as_date(now)
    if not isinstance(catalog, Catalog):
        catalog = Catalog(catalog)

    reasons: Dict[str, List[str]] = {}
    tiers = (
        _daily_slots(catalog, today, policy.daily_keep),
        _weekly_slots(catalog, today, policy.weekly_keep),
        _monthly_slots(catalog, today, policy.monthly_keep),
    )
    for tier in tiers:
        for slot, archive in tier:
            if archive is not None:
                reasons.setdefault(archive.name, []).append(slot)

    return reasons


def compute_keep_set(catalog, policy: RetentionPolicy, now) -> FrozenSet[str]:
    """
    Compute the names of the archives a policy retains.

    1. Daily: for each of the last daily_keep days (today included), the
       newest archive dated on or before that day.
    2. Weekly: anchored on the most recent Sunday on or before today, the
       newest archive on or before each of the last weekly_keep Sundays.
    3. Monthly: for each of the last monthly_keep calendar months (the
       current one included), the newest archive inside that month, or
       failing that the newest archive on or before its first day.

    An archive picked by several slots is kept once, so the result never
    holds more than daily_keep + weekly_keep + monthly_keep names.

    Args:
        catalog: Catalog (or iterable of Archive) to choose from
        policy: Retention counts
        now: Reference time (datetime or date)

    Returns:
        Frozen set of archive names to keep

    Raises:
        RetentionError: If the policy or reference time is malformed
    """
    keep = frozenset(explain_keep_set(catalog, policy, now))
    logger.debug(f"Keep-set computed: {len(keep)} of at most {policy.max_kept} slots filled")
    return keep
