"""
Deadline calculation - turns a message age into a Gmail `before:` query
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from cull_gmail.errors import InvalidComputedDate
from cull_gmail.retention import MessageAge, Period


logger = logging.getLogger(__name__)

QUERY_PREFIX = 'before: '
DATE_FORMAT = '%Y-%m-%d'


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _with_year_month(today: datetime, year: int, month: int) -> datetime:
    """Move to (year, month) keeping the day of month; never rolls over"""
    try:
        return today.replace(year=year, month=month)
    except ValueError:
        raise InvalidComputedDate(year, month, today.day) from None


def calculate(age: MessageAge, today: datetime) -> datetime:
    """
    Local midnight of the day before which messages are past `age`.

    Days and weeks are wall-clock subtraction. Months and years keep the
    current day of month and raise InvalidComputedDate when that day does
    not exist in the target month (e.g. 30 February).
    """
    if age.period is Period.DAYS:
        deadline = today - timedelta(days=age.count)
    elif age.period is Period.WEEKS:
        deadline = today - timedelta(weeks=age.count)
    elif age.period is Period.MONTHS:
        years, months = divmod(age.count, 12)
        new_month = today.month - months
        if new_month < 1:
            years += 1
            new_month += 12
        deadline = _with_year_month(today, today.year - years, new_month)
    else:
        deadline = _with_year_month(today, today.year - age.count, today.month)

    logger.debug(f"Deadline for {age} from {today:%Y-%m-%d}: {deadline:%Y-%m-%d}")
    return _midnight(deadline)


def format_query(deadline: datetime) -> str:
    return f"{QUERY_PREFIX}{deadline.strftime(DATE_FORMAT)}"


def eol_query(retention: str, today: Optional[datetime] = None) -> Optional[str]:
    """Query for a stored retention string, None when it does not parse"""
    age = MessageAge.parse(retention)
    if age is None:
        logger.debug(f"Retention `{retention}` is not a valid message age")
        return None
    return format_query(calculate(age, today or datetime.now()))
