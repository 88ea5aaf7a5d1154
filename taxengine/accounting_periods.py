"""
Accounting Period Generation & Lifecycle

When a client is created with a known year-end, three accounting periods are
generated relative to today: the upcoming year-end and the two most recently
completed ones. Each period runs from the day after the previous year-end up
to and including the year-end.

Year-end days that do not exist in a given year (29 February outside leap
years, the 31st of a 30-day month) are clamped to the last day of the month.
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from taxengine.models import PeriodStatus, period_status_index
from taxengine.utils import new_uuid, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_COUNT_PAST = 2
MAX_PERIOD_DAYS = 366


def year_end_date(year: int, month: int, day: int) -> date:
    """The year-end for a given year, clamped to the last valid day of the month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def most_recent_past_year_end_year(month: int, day: int, today: date) -> int:
    """
    The calendar year of the latest year-end on or before today.
    A year-end falling on today counts as passed.
    """
    if today < year_end_date(today.year, month, day):
        return today.year - 1
    return today.year


def period_for_year_end(end_year: int, month: int, day: int) -> Tuple[date, date]:
    """(start, end) of the 12-month period ending in end_year."""
    end = year_end_date(end_year, month, day)
    start = year_end_date(end_year - 1, month, day) + timedelta(days=1)
    return start, end


def generate_default_periods(
    year_end_month: Optional[int],
    year_end_day: Optional[int],
    today: Optional[date] = None,
) -> List[Tuple[date, date]]:
    """
    Compute the default periods for a company year-end.

    Returns [future, most recent past, prior past]. An empty list is returned
    when either year-end component is missing.
    """
    if not year_end_month or not year_end_day:
        return []

    today = today or date.today()
    anchor = most_recent_past_year_end_year(year_end_month, year_end_day, today)

    periods = [period_for_year_end(anchor + 1, year_end_month, year_end_day)]
    for i in range(DEFAULT_PERIOD_COUNT_PAST):
        periods.append(period_for_year_end(anchor - i, year_end_month, year_end_day))
    return periods


def build_period_row(
    company: Dict[str, Any],
    start: date,
    end: date,
    now_iso: Optional[str] = None,
) -> Dict[str, Any]:
    """Insert payload for one period, referencing the company by id and uuid."""
    now_iso = now_iso or utc_now_iso()
    return {
        "uuid": new_uuid(),
        "clientCompanyId": company["id"],
        "clientCompanyUuid": company["uuid"],
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "status": PeriodStatus.NOT_STARTED.value,
        "createdAt": now_iso,
        "updatedAt": now_iso,
    }


def build_period_rows(
    company: Dict[str, Any],
    periods: List[Tuple[date, date]],
    now_iso: Optional[str] = None,
) -> List[Dict[str, Any]]:
    now_iso = now_iso or utc_now_iso()
    return [build_period_row(company, start, end, now_iso) for start, end in periods]


def parse_period_date(value: Any) -> date:
    """
    Accept YYYY-MM-DD or a full ISO timestamp.
    Raises ValueError for anything else.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    text = str(value).strip()
    if "T" in text:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    return date.fromisoformat(text)


def period_length_days(start: date, end: date) -> int:
    return (end - start).days + 1


# =============================================================================
# STATUS LIFECYCLE
# =============================================================================

def can_transition(current: Optional[str], target: str) -> bool:
    """Period status only moves forward; skipping ahead is allowed."""
    current_status = PeriodStatus(current) if current else PeriodStatus.NOT_STARTED
    return period_status_index(PeriodStatus(target)) > period_status_index(current_status)


def advance_status(current: Optional[str], target: PeriodStatus) -> Optional[PeriodStatus]:
    """
    The status to write when a workflow event wants the period at `target`.
    Returns None when the period is already there or beyond.
    """
    if can_transition(current, target.value):
        return target
    return None


def move_period_forward(periods_repo, period_uuid: Optional[str], target: PeriodStatus) -> Optional[Dict[str, Any]]:
    """
    Bring a period up to `target` if it is not already there or beyond.
    Returns the updated row, or None when nothing was written.
    """
    if not period_uuid:
        return None
    period = periods_repo.get_by_uuid(period_uuid)
    if not period:
        logger.warning(f"Accounting period {period_uuid} not found, status left unchanged")
        return None
    new_status = advance_status(period.get("status"), target)
    if new_status is None:
        return None
    return periods_repo.update_status(period_uuid, new_status.value)
