"""Streak state machine and local-day boundaries."""

from datetime import date, datetime, timezone

from pglms.gamification.streaks import advance_streak, effective_streak, get_zone, local_day


class TestAdvanceStreak:
    def test_first_activity_starts_streak(self):
        t = advance_streak(None, 0, date(2026, 10, 1))
        assert t.streak_days == 1
        assert t.last_active_day == date(2026, 10, 1)
        assert t.changed

    def test_consecutive_days_increment(self):
        t1 = advance_streak(None, 0, date(2026, 10, 1))
        t2 = advance_streak(t1.last_active_day, t1.streak_days, date(2026, 10, 2))
        t3 = advance_streak(t2.last_active_day, t2.streak_days, date(2026, 10, 3))
        assert t3.streak_days == 3

    def test_same_day_is_unchanged(self):
        t = advance_streak(date(2026, 10, 3), 3, date(2026, 10, 3))
        assert t.streak_days == 3
        assert not t.changed

    def test_gap_resets_to_one(self):
        t = advance_streak(date(2026, 10, 3), 3, date(2026, 10, 5))
        assert t.streak_days == 1
        assert t.last_active_day == date(2026, 10, 5)
        assert t.reset

    def test_backdated_activity_ignored(self):
        t = advance_streak(date(2026, 10, 5), 4, date(2026, 10, 2))
        assert t.streak_days == 4
        assert t.last_active_day == date(2026, 10, 5)
        assert not t.changed

    def test_capped_at_max(self):
        t = advance_streak(date(2026, 10, 5), 365, date(2026, 10, 6))
        assert t.streak_days == 365
        assert t.last_active_day == date(2026, 10, 6)

    def test_custom_cap(self):
        t = advance_streak(date(2026, 10, 5), 7, date(2026, 10, 6), max_streak_days=7)
        assert t.streak_days == 7

    def test_month_boundary_is_consecutive(self):
        t = advance_streak(date(2026, 10, 31), 9, date(2026, 11, 1))
        assert t.streak_days == 10


class TestEffectiveStreak:
    def test_active_today(self):
        assert effective_streak(date(2026, 10, 18), 5, date(2026, 10, 18)) == 5

    def test_active_yesterday_still_alive(self):
        assert effective_streak(date(2026, 10, 17), 5, date(2026, 10, 18)) == 5

    def test_lapsed_streak_reads_zero(self):
        assert effective_streak(date(2026, 10, 16), 5, date(2026, 10, 18)) == 0

    def test_never_active(self):
        assert effective_streak(None, 0, date(2026, 10, 18)) == 0


class TestLocalDay:
    def test_utc_day(self):
        moment = datetime(2026, 10, 14, 23, 30, tzinfo=timezone.utc)
        assert local_day(moment, "UTC") == date(2026, 10, 14)

    def test_east_of_utc_rolls_forward(self):
        moment = datetime(2026, 10, 14, 16, 0, tzinfo=timezone.utc)
        assert local_day(moment, "Asia/Tokyo") == date(2026, 10, 15)

    def test_west_of_utc_rolls_back(self):
        moment = datetime(2026, 10, 15, 3, 0, tzinfo=timezone.utc)
        assert local_day(moment, "America/New_York") == date(2026, 10, 14)

    def test_naive_taken_as_utc(self):
        assert local_day(datetime(2026, 10, 14, 23, 59), None) == date(2026, 10, 14)

    def test_unknown_zone_falls_back_to_default(self):
        assert get_zone("Not/AZone").key == "UTC"
