"""Period clock: round identifiers derived purely from wall-clock time.

A day in a fixed civil time zone is cut into windows of ``window_seconds``.
Round ids look like ``20240101-0001``: the local date plus the 1-based window
index. Indices restart at 1 at local midnight and never exceed the number of
windows in a day, so a process that was down simply recomputes the id a
live process would have reached. No counter is stored anywhere.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timedelta, timezone

from pointsbook.config import Settings, get_settings
from pointsbook.ledger.errors import InvalidInput

SECONDS_PER_DAY = 86_400
MAX_WINDOWS_PER_DAY = 9_999  # index is rendered with four digits

_ROUND_ID_RE = re.compile(r"^(\d{8})-(\d{4})$")


class PeriodClock:
    """Maps instants to round ids and back for one window width and zone."""

    def __init__(self, window_seconds: int = 30, utc_offset: timedelta = timedelta(hours=5, minutes=30)) -> None:
        if window_seconds <= 0:
            msg = "Window width must be positive"
            raise ValueError(msg)
        windows = math.ceil(SECONDS_PER_DAY / window_seconds)
        if windows > MAX_WINDOWS_PER_DAY:
            msg = f"Window width {window_seconds}s gives {windows} windows per day (max {MAX_WINDOWS_PER_DAY})"
            raise ValueError(msg)
        self.window_seconds = window_seconds
        self.windows_per_day = windows
        self.tz = timezone(utc_offset)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> PeriodClock:
        settings = settings or get_settings()
        return cls(
            window_seconds=settings.round_window_seconds,
            utc_offset=timedelta(minutes=settings.round_utc_offset_minutes),
        )

    # -- formatting -------------------------------------------------------

    def format_round_id(self, day: date, index: int) -> str:
        return f"{day:%Y%m%d}-{index:04d}"

    def parse_round_id(self, round_id: str) -> tuple[date, int]:
        """Split a round id into (local date, window index). Raises InvalidInput."""
        match = _ROUND_ID_RE.match(round_id or "")
        if match is None:
            msg = f"Malformed round id: {round_id!r}"
            raise InvalidInput(msg, round_id=round_id)
        try:
            day = datetime.strptime(match.group(1), "%Y%m%d").date()
        except ValueError:
            msg = f"Malformed round id date: {round_id!r}"
            raise InvalidInput(msg, round_id=round_id) from None
        index = int(match.group(2))
        if not 1 <= index <= self.windows_per_day:
            msg = f"Window index {index} outside 1..{self.windows_per_day}"
            raise InvalidInput(msg, round_id=round_id, max_index=self.windows_per_day)
        return day, index

    # -- instant -> round -------------------------------------------------

    def _to_local(self, now: datetime | None) -> datetime:
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            msg = "Clock instants must be timezone-aware"
            raise InvalidInput(msg, now=now.isoformat())
        return now.astimezone(self.tz)

    def round_id_at(self, now: datetime | None = None) -> str:
        """Round id of the window containing ``now`` (defaults to the current instant)."""
        local = self._to_local(now)
        midnight = datetime.combine(local.date(), time.min, tzinfo=self.tz)
        elapsed = (local - midnight).total_seconds()
        index = int(elapsed // self.window_seconds) + 1
        return self.format_round_id(local.date(), index)

    def current_round_id(self, now: datetime | None = None) -> str:
        return self.round_id_at(now)

    def round_id_at_offset(self, n: int, now: datetime | None = None) -> str:
        """Round id ``n`` windows after (or before, when negative) the current one."""
        return self.shift(self.round_id_at(now), n)

    def last_closed_round_id(self, now: datetime | None = None) -> str:
        return self.round_id_at_offset(-1, now)

    # -- round arithmetic -------------------------------------------------

    def _ordinal(self, round_id: str) -> int:
        day, index = self.parse_round_id(round_id)
        return day.toordinal() * self.windows_per_day + (index - 1)

    def _from_ordinal(self, ordinal: int) -> str:
        day_ordinal, offset = divmod(ordinal, self.windows_per_day)
        return self.format_round_id(date.fromordinal(day_ordinal), offset + 1)

    def shift(self, round_id: str, n: int) -> str:
        """Move ``n`` windows from ``round_id``, carrying across local days."""
        return self._from_ordinal(self._ordinal(round_id) + n)

    def distance(self, first: str, last: str) -> int:
        """Number of windows from ``first`` to ``last`` (negative if last is earlier)."""
        return self._ordinal(last) - self._ordinal(first)

    def round_ids_between(self, first: str, last: str, limit: int = 10_000) -> list[str]:
        """All round ids from ``first`` to ``last`` inclusive."""
        start, end = self._ordinal(first), self._ordinal(last)
        if start > end:
            msg = "Range start must not be after range end"
            raise InvalidInput(msg, first=first, last=last)
        if end - start + 1 > limit:
            msg = f"Range spans more than {limit} rounds"
            raise InvalidInput(msg, first=first, last=last, limit=limit)
        return [self._from_ordinal(o) for o in range(start, end + 1)]

    # -- round -> instants ------------------------------------------------

    def round_bounds(self, round_id: str) -> tuple[datetime, datetime]:
        """(start, end) of the round window as UTC instants. The day's last window may be short."""
        day, index = self.parse_round_id(round_id)
        midnight = datetime.combine(day, time.min, tzinfo=self.tz)
        start = midnight + timedelta(seconds=(index - 1) * self.window_seconds)
        end = min(start + timedelta(seconds=self.window_seconds), midnight + timedelta(days=1))
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def is_closed(self, round_id: str, now: datetime | None = None) -> bool:
        """True once the round's window has fully elapsed."""
        local = self._to_local(now)
        _, end = self.round_bounds(round_id)
        return local >= end

    def seconds_remaining(self, now: datetime | None = None) -> float:
        """Seconds until the current window closes."""
        local = self._to_local(now)
        _, end = self.round_bounds(self.round_id_at(local))
        return (end - local).total_seconds()


def get_clock() -> PeriodClock:
    """Clock configured from application settings."""
    return PeriodClock.from_settings()
