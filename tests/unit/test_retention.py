"""
Unit tests for the retention policy engine (snapkeep/backup/retention.py).

Tests tier selection, tie-breaking, month arithmetic and policy validation.
"""

import random
from datetime import date, datetime, timedelta

import pytest

from snapkeep.backup.catalog import Catalog
from snapkeep.backup.retention import (
    RetentionPolicy,
    RetentionError,
    compute_keep_set,
    explain_keep_set,
    last_sunday,
    month_start,
)


def _daily_catalog(archive_record, first: datetime, days: int) -> Catalog:
    return Catalog(archive_record(first + timedelta(days=i)) for i in range(days))


def _name(archive_record, *args) -> str:
    return archive_record(datetime(*args)).name


class TestRetentionPolicy:
    """Test RetentionPolicy validation."""

    def test_policy_defaults_disable_all_tiers(self):
        """Test that a default policy keeps nothing."""
        policy = RetentionPolicy()

        assert policy.daily_keep == 0
        assert policy.weekly_keep == 0
        assert policy.monthly_keep == 0
        assert policy.max_kept == 0

    @pytest.mark.parametrize("kwargs", [
        {'daily_keep': -1},
        {'weekly_keep': -3},
        {'monthly_keep': -1},
    ])
    def test_policy_rejects_negative_counts(self, kwargs):
        """Test that negative counts are a retention error."""
        with pytest.raises(RetentionError, match="must be >= 0"):
            RetentionPolicy(**kwargs)

    @pytest.mark.parametrize("value", ['7', 7.0, None, True])
    def test_policy_rejects_non_integer_counts(self, value):
        """Test that only real integers are accepted."""
        with pytest.raises(RetentionError, match="must be an integer"):
            RetentionPolicy(daily_keep=value)


class TestCalendarHelpers:
    """Test date arithmetic helpers."""

    @pytest.mark.parametrize("day,expected", [
        (date(2024, 1, 14), date(2024, 1, 14)),  # Sunday itself
        (date(2024, 1, 15), date(2024, 1, 14)),  # Monday
        (date(2024, 1, 20), date(2024, 1, 14)),  # Saturday
        (date(2024, 3, 1), date(2024, 2, 25)),   # across a month
    ])
    def test_last_sunday(self, day, expected):
        """Test the weekly anchor is the most recent Sunday on or before the day."""
        assert last_sunday(day) == expected

    @pytest.mark.parametrize("day,months_back,expected", [
        (date(2024, 4, 18), 0, date(2024, 4, 1)),
        (date(2024, 4, 18), 3, date(2024, 1, 1)),
        (date(2024, 1, 15), 1, date(2023, 12, 1)),
        (date(2024, 3, 31), 13, date(2023, 2, 1)),
        (date(2024, 12, 31), 24, date(2022, 12, 1)),
    ])
    def test_month_start_rolls_over_years(self, day, months_back, expected):
        """Test calendar month arithmetic."""
        assert month_start(day, months_back) == expected


class TestDailyTier:
    """Test daily retention slots."""

    def test_keeps_most_recent_days(self, archive_record):
        """One archive per day for 10 days, keep 7 -> the 7 newest survive."""
        catalog = _daily_catalog(archive_record, datetime(2024, 1, 6, 2, 0), 10)
        policy = RetentionPolicy(daily_keep=7)

        keep = compute_keep_set(catalog, policy, datetime(2024, 1, 15, 12, 0))

        expected = {_name(archive_record, 2024, 1, d, 2, 0) for d in range(9, 16)}
        assert keep == expected

    def test_same_day_latest_timestamp_wins(self, archive_record):
        """Test that only the latest archive of a day represents it."""
        catalog = Catalog([
            archive_record(datetime(2024, 1, 15, 1, 0)),
            archive_record(datetime(2024, 1, 15, 23, 59)),
            archive_record(datetime(2024, 1, 15, 12, 0)),
        ])

        keep = compute_keep_set(catalog, RetentionPolicy(daily_keep=1), datetime(2024, 1, 15, 23, 59))

        assert keep == {_name(archive_record, 2024, 1, 15, 23, 59)}

    def test_never_selects_archive_after_target(self, archive_record):
        """Test that archives dated after the reference day are ignored."""
        catalog = Catalog([
            archive_record(datetime(2024, 1, 8, 2, 0)),
            archive_record(datetime(2024, 1, 12, 2, 0)),
        ])

        keep = compute_keep_set(catalog, RetentionPolicy(daily_keep=1), datetime(2024, 1, 10, 9, 0))

        assert keep == {_name(archive_record, 2024, 1, 8, 2, 0)}

    def test_sparse_history_falls_back_to_earlier_archive(self, archive_record):
        """Test that missing days reuse the most recent earlier archive."""
        catalog = Catalog([archive_record(datetime(2024, 1, 1, 2, 0))])

        keep = compute_keep_set(catalog, RetentionPolicy(daily_keep=5), datetime(2024, 1, 15))

        assert keep == {_name(archive_record, 2024, 1, 1, 2, 0)}

    def test_gap_days_contribute_nothing_new(self, archive_record):
        """Test archives on alternate days with a 4-day window."""
        catalog = Catalog([
            archive_record(datetime(2024, 1, 15, 2, 0)),
            archive_record(datetime(2024, 1, 13, 2, 0)),
            archive_record(datetime(2024, 1, 11, 2, 0)),
            archive_record(datetime(2024, 1, 9, 2, 0)),
        ])

        keep = compute_keep_set(catalog, RetentionPolicy(daily_keep=4), datetime(2024, 1, 15, 3, 0))

        # Days 15, 14, 13, 12 -> archives of the 15th, 13th, 13th, 11th
        assert keep == {
            _name(archive_record, 2024, 1, 15, 2, 0),
            _name(archive_record, 2024, 1, 13, 2, 0),
            _name(archive_record, 2024, 1, 11, 2, 0),
        }


class TestWeeklyTier:
    """Test weekly retention slots."""

    def test_weekly_anchors_on_last_sunday(self, archive_record):
        """Test that weekly slots pick the archive of each previous Sunday."""
        catalog = _daily_catalog(archive_record, datetime(2023, 12, 20, 2, 0), 29)
        now = datetime(2024, 1, 17, 10, 0)  # Wednesday

        keep = compute_keep_set(catalog, RetentionPolicy(weekly_keep=3), now)

        assert keep == {
            _name(archive_record, 2024, 1, 14, 2, 0),
            _name(archive_record, 2024, 1, 7, 2, 0),
            _name(archive_record, 2023, 12, 31, 2, 0),
        }

    def test_sunday_now_is_week_zero_anchor(self, archive_record):
        """Test that a Sunday reference day anchors week 0 on itself."""
        catalog = _daily_catalog(archive_record, datetime(2024, 1, 1, 2, 0), 14)
        now = datetime(2024, 1, 14, 20, 0)  # Sunday

        keep = compute_keep_set(catalog, RetentionPolicy(weekly_keep=2), now)

        assert keep == {
            _name(archive_record, 2024, 1, 14, 2, 0),
            _name(archive_record, 2024, 1, 7, 2, 0),
        }

    def test_weekly_skips_archives_after_anchor(self, archive_record):
        """Test that mid-week archives after the anchor Sunday are not used for week 0."""
        catalog = Catalog([
            archive_record(datetime(2024, 1, 10, 2, 0)),  # Wednesday
            archive_record(datetime(2024, 1, 16, 2, 0)),  # Tuesday after anchor
        ])
        now = datetime(2024, 1, 17)

        keep = compute_keep_set(catalog, RetentionPolicy(weekly_keep=1), now)

        assert keep == {_name(archive_record, 2024, 1, 10, 2, 0)}


class TestMonthlyTier:
    """Test monthly retention slots."""

    def test_sparse_months_use_fallback(self, archive_record):
        """Archives on Jan 1 and Mar 15, now Apr 1, keep 3 months -> {Jan 1, Mar 15}."""
        catalog = Catalog([
            archive_record(datetime(2024, 1, 1, 0, 0)),
            archive_record(datetime(2024, 3, 15, 0, 0)),
        ])

        keep = compute_keep_set(catalog, RetentionPolicy(monthly_keep=3), datetime(2024, 4, 1))

        assert keep == {
            _name(archive_record, 2024, 1, 1, 0, 0),
            _name(archive_record, 2024, 3, 15, 0, 0),
        }

    def test_prefers_newest_archive_within_month(self, archive_record):
        """Test that the newest in-month archive represents the month."""
        catalog = Catalog([
            archive_record(datetime(2024, 3, 3, 2, 0)),
            archive_record(datetime(2024, 3, 20, 2, 0)),
            archive_record(datetime(2024, 2, 10, 2, 0)),
            archive_record(datetime(2024, 2, 1, 2, 0)),
        ])

        keep = compute_keep_set(catalog, RetentionPolicy(monthly_keep=2), datetime(2024, 3, 25))

        assert keep == {
            _name(archive_record, 2024, 3, 20, 2, 0),
            _name(archive_record, 2024, 2, 10, 2, 0),
        }

    def test_archives_in_later_months_are_ignored(self, archive_record):
        """Test that month 0 never reaches into the following month."""
        catalog = Catalog([
            archive_record(datetime(2024, 3, 5, 2, 0)),
            archive_record(datetime(2024, 4, 2, 2, 0)),
        ])

        keep = compute_keep_set(catalog, RetentionPolicy(monthly_keep=1), datetime(2024, 3, 31))

        assert keep == {_name(archive_record, 2024, 3, 5, 2, 0)}

    def test_months_roll_over_year_boundary(self, archive_record):
        """Test monthly slots crossing into the previous year."""
        catalog = Catalog([
            archive_record(datetime(2023, 12, 5, 2, 0)),
            archive_record(datetime(2023, 11, 20, 2, 0)),
        ])

        keep = compute_keep_set(catalog, RetentionPolicy(monthly_keep=3), datetime(2024, 1, 10))

        assert keep == {
            _name(archive_record, 2023, 12, 5, 2, 0),
            _name(archive_record, 2023, 11, 20, 2, 0),
        }

    def test_month_without_any_earlier_archive(self, archive_record):
        """Test that months before the first archive contribute nothing."""
        catalog = Catalog([archive_record(datetime(2024, 3, 10, 2, 0))])

        keep = compute_keep_set(catalog, RetentionPolicy(monthly_keep=6), datetime(2024, 3, 31))

        assert keep == {_name(archive_record, 2024, 3, 10, 2, 0)}


class TestKeepSetUnion:
    """Test combination of tiers."""

    def test_tiers_are_deduplicated(self, archive_record):
        """A year of daily archives under 7/4/6 keeps 14 distinct archives."""
        catalog = _daily_catalog(archive_record, datetime(2023, 3, 1, 2, 0), 400)
        now = datetime(2024, 4, 3, 12, 0)  # Wednesday

        keep = compute_keep_set(catalog, RetentionPolicy(7, 4, 6), now)

        # daily: Apr 3 .. Mar 28; weekly adds Mar 24, 17, 10 (Mar 31 already kept);
        # monthly adds Feb 29, Jan 31, Dec 31, Nov 30 (Apr 3 and Mar 31 already kept)
        assert len(keep) == 14
        assert _name(archive_record, 2024, 3, 10, 2, 0) in keep
        assert _name(archive_record, 2024, 2, 29, 2, 0) in keep
        assert _name(archive_record, 2023, 11, 30, 2, 0) in keep

    def test_empty_catalog_keeps_nothing(self):
        """Test that an empty catalog always yields an empty keep-set."""
        keep = compute_keep_set(Catalog(), RetentionPolicy(7, 4, 6), datetime(2024, 1, 15))

        assert keep == frozenset()

    def test_zero_policy_keeps_nothing(self, archive_record):
        """Test that disabling every tier keeps nothing."""
        catalog = _daily_catalog(archive_record, datetime(2024, 1, 1, 2, 0), 10)

        keep = compute_keep_set(catalog, RetentionPolicy(0, 0, 0), datetime(2024, 1, 15))

        assert keep == frozenset()

    def test_compute_is_idempotent(self, archive_record):
        """Test that repeated calls with the same inputs agree."""
        catalog = _daily_catalog(archive_record, datetime(2023, 10, 1, 2, 0), 120)
        policy = RetentionPolicy(7, 4, 6)
        now = datetime(2024, 1, 28, 8, 0)

        first = compute_keep_set(catalog, policy, now)
        second = compute_keep_set(catalog, policy, now)

        assert first == second
        assert len(catalog) == 120

    def test_accepts_plain_date_and_archive_list(self, archive_record):
        """Test that a date reference and a plain list of archives are accepted."""
        archives = [archive_record(datetime(2024, 1, d, 2, 0)) for d in range(1, 11)]

        keep = compute_keep_set(archives, RetentionPolicy(daily_keep=2), date(2024, 1, 10))

        assert keep == {
            _name(archive_record, 2024, 1, 10, 2, 0),
            _name(archive_record, 2024, 1, 9, 2, 0),
        }

    @pytest.mark.parametrize("now", ['2024-01-15', None, 1705312800])
    def test_rejects_uninterpretable_now(self, now):
        """Test that a non-date reference time is a retention error."""
        with pytest.raises(RetentionError, match="Cannot interpret reference time"):
            compute_keep_set(Catalog(), RetentionPolicy(daily_keep=1), now)

    def test_rejects_non_policy(self):
        """Test that a raw tuple is not accepted as a policy."""
        with pytest.raises(RetentionError):
            compute_keep_set(Catalog(), (7, 4, 6), datetime(2024, 1, 15))

    def test_random_catalogs_respect_bounds(self, archive_record):
        """Test size bound and no-future selection over irregular catalogs."""
        rng = random.Random(1234)
        start = datetime(2022, 1, 1)

        for _ in range(50):
            timestamps = {
                start + timedelta(days=rng.randrange(900), hours=rng.randrange(24), minutes=rng.randrange(60))
                for _ in range(rng.randrange(0, 60))
            }
            catalog = Catalog(archive_record(ts) for ts in timestamps)
            policy = RetentionPolicy(rng.randrange(10), rng.randrange(8), rng.randrange(14))
            now = start + timedelta(days=rng.randrange(900))

            keep = compute_keep_set(catalog, policy, now)

            assert len(keep) <= policy.max_kept
            assert keep <= set(catalog.names)
            # Month 0 may use a later archive of the current month, never beyond it
            next_month = month_start(now.date(), -1)
            for name in keep:
                assert catalog.get(name).date < next_month


class TestExplainKeepSet:
    """Test slot attribution used for logging."""

    def test_explain_lists_every_selecting_slot(self, archive_record):
        """Test that an archive chosen by several slots lists them all."""
        catalog = Catalog([
            archive_record(datetime(2024, 1, 1, 0, 0)),
            archive_record(datetime(2024, 3, 15, 0, 0)),
        ])

        reasons = explain_keep_set(catalog, RetentionPolicy(monthly_keep=3), datetime(2024, 4, 1))

        assert reasons == {
            _name(archive_record, 2024, 3, 15, 0, 0): ['monthly[0]', 'monthly[1]'],
            _name(archive_record, 2024, 1, 1, 0, 0): ['monthly[2]'],
        }

    def test_explain_matches_keep_set(self, archive_record):
        """Test that explain and compute agree on membership."""
        catalog = _daily_catalog(archive_record, datetime(2023, 12, 1, 2, 0), 56)
        policy = RetentionPolicy(3, 2, 2)
        now = datetime(2024, 1, 25)

        reasons = explain_keep_set(catalog, policy, now)

        assert set(reasons) == compute_keep_set(catalog, policy, now)
        assert reasons[_name(archive_record, 2024, 1, 25, 2, 0)] == ['daily[0]', 'monthly[0]']
