"""
Date and DHIS2 period helpers
"""

from datetime import date, datetime
from typing import List, Optional
from models.base import PeriodType

DATE_FORMAT = "%Y-%m-%d"


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string, rejecting other layouts and impossible dates"""
    if not isinstance(value, str) or len(value) != 10:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    return datetime.strptime(value, DATE_FORMAT).date()


def to_period_type(value: Optional[str]) -> Optional[PeriodType]:
    """Map a DHIS2 periodType (e.g. "Monthly") to a PeriodType"""
    if not value:
        return None
    try:
        return PeriodType(value.lower())
    except ValueError:
        return None


def periods_between(start: date, end: date, period_type: PeriodType) -> List[str]:
    """
    List DHIS2 period ids whose span intersects [start, end].

    Monthly periods are YYYYMM, quarterly periods YYYYQn.
    """
    if start > end:
        return []

    if period_type == PeriodType.MONTHLY:
        periods = []
        year, month = start.year, start.month
        while (year, month) <= (end.year, end.month):
            periods.append(f"{year}{month:02d}")
            month += 1
            if month > 12:
                year, month = year + 1, 1
        return periods

    if period_type == PeriodType.QUARTERLY:
        periods = []
        year, quarter = start.year, (start.month - 1) // 3 + 1
        end_quarter = (end.year, (end.month - 1) // 3 + 1)
        while (year, quarter) <= end_quarter:
            periods.append(f"{year}Q{quarter}")
            quarter += 1
            if quarter > 4:
                year, quarter = year + 1, 1
        return periods

    raise ValueError(f"Unsupported period type: {period_type}")
