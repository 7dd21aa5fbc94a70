"""
Unit tests for date and period helpers
"""

import pytest
from datetime import date
from transfer.periods import parse_date, periods_between, to_period_type
from models.base import PeriodType


class TestParseDate:

    def test_valid_date(self):
        assert parse_date("2024-02-29") == date(2024, 2, 29)

    @pytest.mark.parametrize("value", ["2024-13-01", "2023-02-29", "2024-1-01", "01-01-2024", "", None, "2024-01-01T00"])
    def test_invalid_dates(self, value):
        with pytest.raises(ValueError):
            parse_date(value)


class TestPeriodsBetween:

    def test_monthly_across_year_boundary(self):
        assert periods_between(date(2023, 11, 15), date(2024, 2, 1), PeriodType.MONTHLY) == [
            "202311", "202312", "202401", "202402",
        ]

    def test_quarterly(self):
        assert periods_between(date(2023, 8, 1), date(2024, 4, 30), PeriodType.QUARTERLY) == [
            "2023Q3", "2023Q4", "2024Q1", "2024Q2",
        ]

    def test_single_day_range(self):
        assert periods_between(date(2024, 5, 5), date(2024, 5, 5), PeriodType.MONTHLY) == ["202405"]

    def test_reversed_range_is_empty(self):
        assert periods_between(date(2024, 5, 1), date(2024, 1, 1), PeriodType.QUARTERLY) == []


@pytest.mark.parametrize("raw,expected", [
    ("Monthly", PeriodType.MONTHLY),
    ("QUARTERLY", PeriodType.QUARTERLY),
    ("Weekly", None),
    (None, None),
])
def test_to_period_type(raw, expected):
    assert to_period_type(raw) == expected
