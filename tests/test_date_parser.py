"""Tests for date parsing utilities."""

from datetime import date, timedelta

import pytest
from dateutil.relativedelta import relativedelta

from tallybook.utils.date_parser import parse_date


def test_parse_absolute_dates():
    """Test parsing absolute date formats."""
    assert parse_date("2024-01-15") == date(2024, 1, 15)
    assert parse_date("January 15, 2024") == date(2024, 1, 15)


def test_parse_relative_dates():
    """Test parsing relative dates."""
    today = date.today()
    assert parse_date("today") == today
    assert parse_date("Yesterday") == today - timedelta(days=1)
    assert parse_date("this month") == today.replace(day=1)
    assert parse_date("last month") == (today - relativedelta(months=1)).replace(day=1)
    assert parse_date("last week").weekday() == 0


def test_parse_invalid_date():
    """Test invalid dates raise ValueError."""
    with pytest.raises(ValueError):
        parse_date("banana")
