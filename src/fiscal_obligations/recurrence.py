"""Recurrence rule evaluation: templates to concrete due dates.

Anchor days past the end of a month are clamped to the month's last day,
so a day-31 template falls on Feb 28/29, Apr 30, and so on.
"""

import calendar
from collections.abc import Iterator
from datetime import date, datetime
from zoneinfo import ZoneInfo

from fiscal_obligations.config import get_settings
from fiscal_obligations.models import Frequency, GenerationWindow, RecurrenceTemplate

# Due month (3rd month) of each calendar quarter
QUARTER_DUE_MONTHS = (3, 6, 9, 12)


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping the day to the month's length."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(1, day), last_day))


def quarter_of(day: date) -> int:
    return (day.month - 1) // 3 + 1


def _months_in(window: GenerationWindow) -> Iterator[tuple[int, int]]:
    year, month = window.start.year, window.start.month
    while (year, month) <= (window.end.year, window.end.month):
        yield year, month
        month += 1
        if month > 12:
            month = 1
            year += 1


class DueDateSequence:
    """Lazy, finite, restartable sequence of due dates for one template.

    Each iteration recomputes the dates from the template and window, so the
    sequence can be consumed any number of times.
    """

    def __init__(self, template: RecurrenceTemplate, window: GenerationWindow):
        self._template = template
        self._window = window

    def __iter__(self) -> Iterator[date]:
        template = self._template
        if not template.is_well_formed:
            return
        assert template.day is not None

        if template.frequency is Frequency.MONTHLY:
            candidates = (
                clamp_day(year, month, template.day)
                for year, month in _months_in(self._window)
            )
        elif template.frequency is Frequency.QUARTERLY:
            candidates = (
                clamp_day(year, month, template.day)
                for year, month in _months_in(self._window)
                if month in QUARTER_DUE_MONTHS
            )
        else:
            assert template.month is not None
            candidates = (
                clamp_day(year, template.month, template.day)
                for year in range(self._window.start.year, self._window.end.year + 1)
            )

        for due_date in candidates:
            if due_date in self._window:
                yield due_date

    def __repr__(self) -> str:
        return (
            f"DueDateSequence(template={self._template.id!r}, "
            f"window={self._window.start}..{self._window.end})"
        )


def evaluate(template: RecurrenceTemplate, window: GenerationWindow) -> DueDateSequence:
    """Return the due dates the template implies within the window.

    Malformed templates (no anchor day, or no anchor month for annual ones)
    produce an empty sequence rather than an error.
    """
    return DueDateSequence(template, window)


def local_today(tz_name: str | None = None) -> date:
    """Today's date in the configured timezone."""
    tz = ZoneInfo(tz_name or get_settings().timezone)
    return datetime.now(tz).date()


def rolling_window(today: date, forward_months: int | None = None) -> GenerationWindow:
    """Window used by event-driven and periodic runs.

    Args:
        today: Current day in the engine timezone.
        forward_months: Months covered starting with the current one.
            Defaults to ``GENERATION_FORWARD_MONTHS``.

    Returns:
        January 1st of this year through the last day of the month
        ``forward_months - 1`` months after the current one.
    """
    months = forward_months or get_settings().forward_months
    index = today.month - 1 + months - 1
    end_year = today.year + index // 12
    end_month = index % 12 + 1
    end = date(end_year, end_month, calendar.monthrange(end_year, end_month)[1])
    return GenerationWindow(start=date(today.year, 1, 1), end=end)


def year_window(year: int) -> GenerationWindow:
    """Calendar-year window used for fixed-year generation."""
    return GenerationWindow(start=date(year, 1, 1), end=date(year, 12, 31))
