"""Unit tests for round id computation."""

from datetime import date, datetime, timedelta, timezone

import pytest

from pointsbook.ledger.errors import InvalidInput
from pointsbook.rounds.clock import PeriodClock

IST = timezone(timedelta(hours=5, minutes=30))


def local(y, m, d, hh=0, mm=0, ss=0, us=0) -> datetime:
    return datetime(y, m, d, hh, mm, ss, us, tzinfo=IST)


@pytest.fixture
def clock() -> PeriodClock:
    return PeriodClock(window_seconds=30, utc_offset=timedelta(hours=5, minutes=30))


class TestRoundIdAt:
    """Instant to round id."""

    def test_45_seconds_after_local_midnight_is_window_2(self, clock):
        now = local(2024, 1, 1, 0, 0, 45)
        assert clock.current_round_id(now) == "20240101-0002"

    def test_same_instant_given_in_utc(self, clock):
        # 2024-01-01 00:00:45 +05:30 == 2023-12-31 18:30:45 UTC
        now = datetime(2023, 12, 31, 18, 30, 45, tzinfo=timezone.utc)
        assert clock.current_round_id(now) == "20240101-0002"

    def test_local_midnight_is_window_1(self, clock):
        assert clock.round_id_at(local(2024, 1, 1)) == "20240101-0001"

    def test_window_boundary_starts_next_window(self, clock):
        assert clock.round_id_at(local(2024, 1, 1, 0, 0, 29, 999999)) == "20240101-0001"
        assert clock.round_id_at(local(2024, 1, 1, 0, 0, 30)) == "20240101-0002"

    def test_last_window_of_day(self, clock):
        assert clock.windows_per_day == 2880
        assert clock.round_id_at(local(2024, 1, 1, 23, 59, 59)) == "20240101-2880"

    def test_index_resets_at_local_midnight_not_utc(self, clock):
        # 00:00 UTC is 05:30 local, well into the local day
        now = datetime(2024, 1, 2, 0, 0, 0, tzinfo=timezone.utc)
        assert clock.round_id_at(now) == "20240102-0661"

    def test_naive_instant_rejected(self, clock):
        with pytest.raises(InvalidInput):
            clock.round_id_at(datetime(2024, 1, 1, 0, 0, 45))

    def test_fresh_clock_recomputes_same_id(self, clock):
        now = local(2024, 3, 5, 13, 7, 12)
        restarted = PeriodClock(window_seconds=30, utc_offset=timedelta(minutes=330))
        assert restarted.round_id_at(now) == clock.round_id_at(now)

    def test_defaults_without_now_use_wall_clock(self, clock):
        round_id = clock.current_round_id()
        assert clock.parse_round_id(round_id)[1] >= 1


class TestRoundArithmetic:
    """Offsets and ranges across day boundaries."""

    def test_offset_forward_and_back(self, clock):
        now = local(2024, 1, 1, 0, 0, 45)
        assert clock.round_id_at_offset(1, now) == "20240101-0003"
        assert clock.round_id_at_offset(-1, now) == "20240101-0001"
        assert clock.last_closed_round_id(now) == "20240101-0001"

    def test_shift_carries_across_days(self, clock):
        assert clock.shift("20240101-2880", 1) == "20240102-0001"
        assert clock.shift("20240102-0001", -1) == "20240101-2880"
        assert clock.shift("20231231-2880", 2) == "20240101-0002"

    def test_distance(self, clock):
        assert clock.distance("20240101-2879", "20240102-0002") == 3
        assert clock.distance("20240102-0002", "20240101-2879") == -3

    def test_round_ids_between(self, clock):
        assert clock.round_ids_between("20240101-2879", "20240102-0001") == [
            "20240101-2879",
            "20240101-2880",
            "20240102-0001",
        ]

    def test_round_ids_between_rejects_reversed_range(self, clock):
        with pytest.raises(InvalidInput):
            clock.round_ids_between("20240102-0001", "20240101-0001")

    def test_round_ids_between_is_bounded(self, clock):
        with pytest.raises(InvalidInput):
            clock.round_ids_between("20240101-0001", "20240110-0001", limit=100)


class TestRoundBounds:
    """Round id back to instants."""

    def test_bounds_of_window_2(self, clock):
        start, end = clock.round_bounds("20240101-0002")
        assert start == local(2024, 1, 1, 0, 0, 30)
        assert end == local(2024, 1, 1, 0, 1, 0)
        assert start.tzinfo == timezone.utc

    def test_bounds_round_trip(self, clock):
        start, end = clock.round_bounds("20240615-1234")
        assert clock.round_id_at(start) == "20240615-1234"
        assert clock.round_id_at(end - timedelta(microseconds=1)) == "20240615-1234"
        assert clock.round_id_at(end) == "20240615-1235"

    def test_is_closed(self, clock):
        _, end = clock.round_bounds("20240101-0002")
        assert not clock.is_closed("20240101-0002", end - timedelta(seconds=1))
        assert clock.is_closed("20240101-0002", end)

    def test_seconds_remaining(self, clock):
        assert clock.seconds_remaining(local(2024, 1, 1, 0, 0, 45)) == 15

    def test_last_window_is_short_when_width_does_not_divide_day(self):
        clock = PeriodClock(window_seconds=50_000, utc_offset=timedelta(0))
        assert clock.windows_per_day == 2
        start, end = clock.round_bounds("20240101-0002")
        assert (end - start).total_seconds() == 86_400 - 50_000
        assert clock.round_id_at(datetime(2024, 1, 2, tzinfo=timezone.utc)) == "20240102-0001"


class TestParseRoundId:
    """Round id validation."""

    def test_parse(self, clock):
        assert clock.parse_round_id("20240101-0002") == (date(2024, 1, 1), 2)

    @pytest.mark.parametrize(
        "round_id",
        ["", "2024-01-01", "20240101-1", "20240101-0000", "20240101-2881", "20241301-0001", "x20240101-0001"],
    )
    def test_malformed_ids_rejected(self, clock, round_id):
        with pytest.raises(InvalidInput):
            clock.parse_round_id(round_id)


class TestClockConfiguration:
    """Window width limits."""

    @pytest.mark.parametrize("width", [0, -30])
    def test_non_positive_width_rejected(self, width):
        with pytest.raises(ValueError):
            PeriodClock(window_seconds=width)

    def test_width_with_too_many_windows_rejected(self):
        with pytest.raises(ValueError):
            PeriodClock(window_seconds=8)

    def test_from_settings_uses_configured_width_and_offset(self):
        clock = PeriodClock.from_settings()
        assert clock.window_seconds == 30
        assert clock.tz.utcoffset(None) == timedelta(minutes=330)
