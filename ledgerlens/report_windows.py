from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

TIMEFRAMES = {"1D", "7D", "1M", "6M", "1Y"}


@dataclass(frozen=True)
class ReportWindow:
    start: date
    end: date
    granularity: str


def normalize_timeframe(value: str) -> str:
    normalized = value.strip().upper()
    if normalized not in TIMEFRAMES:
        raise ValueError("Invalid timeframe. Use 1D, 7D, 1M, 6M, or 1Y.")
    return normalized


def timeframe_window(timeframe: str, today: date) -> ReportWindow:
    """Window ending with ``today`` (inclusive) for a dashboard timeframe.

    ``end`` is exclusive, so it is always the day after ``today``.
    """
    normalized = normalize_timeframe(timeframe)
    end = today + timedelta(days=1)
    if normalized == "1D":
        return ReportWindow(start=today, end=end, granularity="calendar_day")
    if normalized == "7D":
        return ReportWindow(start=today - timedelta(days=6), end=end, granularity="calendar_day")
    if normalized == "1M":
        return ReportWindow(start=today - timedelta(days=29), end=end, granularity="calendar_day")
    if normalized == "6M":
        return ReportWindow(start=shift_month(month_start(today), -5), end=end, granularity="month")
    return ReportWindow(start=shift_month(month_start(today), -11), end=end, granularity="month")


def month_window(today: date) -> ReportWindow:
    return ReportWindow(start=month_start(today), end=today + timedelta(days=1), granularity="calendar_day")


def month_start(value: date) -> date:
    return value.replace(day=1)


def shift_month(value: date, months: int) -> date:
    month_index = (value.year * 12 + value.month - 1) + months
    year = month_index // 12
    month = month_index % 12 + 1
    return date(year, month, 1)
