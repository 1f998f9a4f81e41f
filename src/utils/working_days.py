"""Working-day calendar helpers.

A working day is any calendar day that is neither a Sunday nor listed in the
holiday set (see LedgerSettings.holidays). The calendar functions are pure;
the only state they read is the configured holiday list. The process
schedule helpers also draw random gaps; pass an rng to make them repeatable.

Usage:
    from src.utils.working_days import is_working_day, next_working_day

    if not is_working_day(day):
        day = next_working_day(day)
"""

import random
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Optional, Tuple, Union

from .config import get_ledger_settings
from .constants import (
    CALENDARING_BEFORE_GREEN_BELT,
    COMPOUND_BEFORE_CALENDARING,
    COMPOUND_LEAD_WORKING_DAYS,
    CURING_BEFORE_INSPECTION,
    DATE_FORMAT,
    GREEN_BELT_BEFORE_CURING,
    INSPECTION_BEFORE_PDI,
    PACKAGING_BEFORE_DISPATCH,
    PDI_BEFORE_DISPATCH,
)

DateLike = Union[date, datetime, str]

SUNDAY = 6  # date.weekday()


def parse_date(value: DateLike) -> date:
    """
    Coerce a date-like value to a calendar day.

    Args:
        value: date, datetime (time part dropped) or 'YYYY-MM-DD' string

    Returns:
        date

    Raises:
        ValueError: If the string is not a valid YYYY-MM-DD date
        TypeError: If the value is not date-like
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    raise TypeError(f"Expected date or 'YYYY-MM-DD' string, got {type(value).__name__}")


def format_date(value: Optional[date]) -> Optional[str]:
    """Format a date as YYYY-MM-DD (None passes through)."""
    if value is None:
        return None
    return value.strftime(DATE_FORMAT)


def _holidays(holidays: Optional[Iterable[date]]) -> Iterable[date]:
    if holidays is None:
        return get_ledger_settings().holidays
    return holidays


def is_sunday(day: date) -> bool:
    return day.weekday() == SUNDAY


def is_holiday(day: date, holidays: Optional[Iterable[date]] = None) -> bool:
    return day in _holidays(holidays)


def is_working_day(day: DateLike, holidays: Optional[Iterable[date]] = None) -> bool:
    """
    Check whether a day is a working day.

    Args:
        day: Day to check
        holidays: Optional holiday set (defaults to configured holidays)

    Returns:
        False for Sundays and holidays, True otherwise
    """
    day = parse_date(day)
    return not (is_sunday(day) or is_holiday(day, holidays))


def next_working_day(day: DateLike, holidays: Optional[Iterable[date]] = None) -> date:
    """Return the first working day strictly after `day`."""
    holidays = _holidays(holidays)
    result = parse_date(day) + timedelta(days=1)
    while not is_working_day(result, holidays):
        result += timedelta(days=1)
    return result


def previous_working_day(day: DateLike, holidays: Optional[Iterable[date]] = None) -> date:
    """Return the last working day strictly before `day`."""
    holidays = _holidays(holidays)
    result = parse_date(day) - timedelta(days=1)
    while not is_working_day(result, holidays):
        result -= timedelta(days=1)
    return result


def snap_to_working_day(day: DateLike, holidays: Optional[Iterable[date]] = None) -> date:
    """
    Snap a day onto the calendar of working days.

    Working days are returned unchanged; Sundays and holidays move forward to
    the next working day.
    """
    day = parse_date(day)
    if is_working_day(day, holidays):
        return day
    return next_working_day(day, holidays)


def add_working_days(day: DateLike, days: int, holidays: Optional[Iterable[date]] = None) -> date:
    """
    Step a signed number of working days away from `day`.

    Args:
        day: Starting day (need not be a working day itself)
        days: Working days to add; negative steps backward
        holidays: Optional holiday set

    Returns:
        Resulting working day (or `day` itself when days == 0)
    """
    holidays = _holidays(holidays)
    result = parse_date(day)
    step = 1 if days > 0 else -1
    remaining = abs(days)
    while remaining > 0:
        result += timedelta(days=step)
        if is_working_day(result, holidays):
            remaining -= 1
    return result


def count_working_days(
    start: DateLike, end: DateLike, holidays: Optional[Iterable[date]] = None
) -> int:
    """
    Count the working days strictly between two days.

    Both endpoints are excluded; direction does not matter.
    """
    holidays = _holidays(holidays)
    start = parse_date(start)
    end = parse_date(end)
    if start == end:
        return 0
    step = timedelta(days=1 if end > start else -1)
    count = 0
    current = start + step
    while current != end:
        if is_working_day(current, holidays):
            count += 1
        current += step
    return count


def compound_date_from_calendaring(
    calendaring_date: DateLike, holidays: Optional[Iterable[date]] = None
) -> date:
    """Compound production day for a belt: seven working days before calendaring."""
    return add_working_days(calendaring_date, -COMPOUND_LEAD_WORKING_DAYS, holidays)


# =============================================================================
# Process schedule
# =============================================================================


@dataclass(frozen=True)
class ProcessDates:
    """One belt's process schedule, latest step first."""

    dispatch_date: date
    packaging_date: date
    pdi_date: date
    internal_inspection_date: date
    curing_date: date
    green_belt_date: date
    calendaring_date: date
    cover_compound_date: date
    skim_compound_date: date

    def to_dict(self) -> Dict[str, str]:
        return {name: format_date(value) for name, value in asdict(self).items()}


PROCESS_DATE_FIELDS = tuple(f.name for f in fields(ProcessDates))

# Steps linked by random working-day gaps, dispatch down to calendaring.
# _CHAIN_GAPS[i] separates _CHAIN[i] from the earlier _CHAIN[i + 1].
_CHAIN = (
    "dispatch_date",
    "pdi_date",
    "internal_inspection_date",
    "curing_date",
    "green_belt_date",
    "calendaring_date",
)
_CHAIN_GAPS = (
    PDI_BEFORE_DISPATCH,
    INSPECTION_BEFORE_PDI,
    CURING_BEFORE_INSPECTION,
    GREEN_BELT_BEFORE_CURING,
    CALENDARING_BEFORE_GREEN_BELT,
)


def _draw(rng, span: Tuple[int, int]) -> int:
    return rng.randint(*span)


def _fill_chain(
    dates: Dict[str, date], anchor: str, rng, holidays: Iterable[date]
) -> None:
    start = _CHAIN.index(anchor)
    for i in range(start - 1, -1, -1):
        dates[_CHAIN[i]] = add_working_days(
            dates[_CHAIN[i + 1]], _draw(rng, _CHAIN_GAPS[i]), holidays
        )
    for i in range(start + 1, len(_CHAIN)):
        dates[_CHAIN[i]] = add_working_days(
            dates[_CHAIN[i - 1]], -_draw(rng, _CHAIN_GAPS[i - 1]), holidays
        )


def process_dates_from_any_date(
    field_name: str,
    value: DateLike,
    rng: Optional[random.Random] = None,
    holidays: Optional[Iterable[date]] = None,
) -> ProcessDates:
    """
    Build a belt's process schedule around one known step.

    Steps after the known one are walked forward and steps before it
    backward, each by a working-day gap drawn from its range:

        dispatch
        packaging            dispatch - 1
        PDI                  dispatch - 4..5
        internal inspection  PDI - 4..10
        curing               inspection - 2
        green belt           curing - 1
        calendaring          green belt - 0..1
        cover / skim         calendaring - 7..10, never on the same day

    Args:
        field_name: The known step, one of PROCESS_DATE_FIELDS
        value: Its date (kept as given even if it is not a working day)
        rng: Optional random source for the gaps
        holidays: Optional holiday set (defaults to configured holidays)

    Returns:
        ProcessDates

    Raises:
        ValueError: If field_name is not a process step or the date is invalid
    """
    if field_name not in PROCESS_DATE_FIELDS:
        raise ValueError(f"Unknown process date field: {field_name}")
    rng = rng or random
    holidays = _holidays(holidays)
    day = parse_date(value)
    dates = {field_name: day}

    if field_name == "packaging_date":
        dates["dispatch_date"] = add_working_days(day, PACKAGING_BEFORE_DISPATCH, holidays)
        anchor = "dispatch_date"
    elif field_name == "cover_compound_date":
        dates["calendaring_date"] = add_working_days(
            day, _draw(rng, COMPOUND_BEFORE_CALENDARING), holidays
        )
        anchor = "calendaring_date"
    elif field_name == "skim_compound_date":
        calendaring = add_working_days(day, _draw(rng, COMPOUND_BEFORE_CALENDARING), holidays)
        cover = add_working_days(calendaring, -_draw(rng, COMPOUND_BEFORE_CALENDARING), holidays)
        if cover == day:
            cover = previous_working_day(day, holidays)
            calendaring = add_working_days(
                cover, _draw(rng, COMPOUND_BEFORE_CALENDARING), holidays
            )
        dates["calendaring_date"] = calendaring
        dates["cover_compound_date"] = cover
        anchor = "calendaring_date"
    else:
        anchor = field_name

    _fill_chain(dates, anchor, rng, holidays)

    if "packaging_date" not in dates:
        dates["packaging_date"] = add_working_days(
            dates["dispatch_date"], -PACKAGING_BEFORE_DISPATCH, holidays
        )
    calendaring = dates["calendaring_date"]
    if "cover_compound_date" not in dates:
        dates["cover_compound_date"] = add_working_days(
            calendaring, -_draw(rng, COMPOUND_BEFORE_CALENDARING), holidays
        )
    if "skim_compound_date" not in dates:
        skim = add_working_days(calendaring, -_draw(rng, COMPOUND_BEFORE_CALENDARING), holidays)
        if skim == dates["cover_compound_date"]:
            skim = previous_working_day(skim, holidays)
        dates["skim_compound_date"] = skim

    return ProcessDates(**dates)


def process_dates_from_dispatch(
    dispatch_date: DateLike,
    rng: Optional[random.Random] = None,
    holidays: Optional[Iterable[date]] = None,
) -> ProcessDates:
    """Work a belt's process schedule backward from its dispatch date."""
    return process_dates_from_any_date("dispatch_date", dispatch_date, rng, holidays)
