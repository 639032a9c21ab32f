from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List, Optional

from ledgerlens.ledger_aggregator import TRANSACTION_TYPES, Transaction

ALL = "all"
DATE_RANGES = {"all", "today", "week", "month", "custom"}


def filter_transactions(
    transactions: Iterable[Transaction],
    search: str = "",
    category: str = ALL,
    type_filter: str = ALL,
    date_range: str = ALL,
    today: Optional[date] = None,
    custom_start: Optional[date] = None,
    custom_end: Optional[date] = None,
) -> List[Transaction]:
    """Filter the ledger list, newest first.

    Pending and failed rows are kept: the list shows every status.
    """
    needle = search.strip().lower()
    normalized_type = _normalize_type_filter(type_filter)
    start, end = date_range_bounds(
        date_range, today or date.today(), custom_start, custom_end
    )

    matches = []
    for txn in transactions:
        if needle and needle not in (txn.description or "").lower():
            continue
        if category != ALL and txn.category != category:
            continue
        if normalized_type != ALL and txn.type != normalized_type:
            continue
        if start is not None and txn.date < start:
            continue
        if end is not None and txn.date > end:
            continue
        matches.append(txn)
    return sort_newest_first(matches)


def date_range_bounds(
    date_range: str,
    today: date,
    custom_start: Optional[date] = None,
    custom_end: Optional[date] = None,
) -> tuple[Optional[date], Optional[date]]:
    """Inclusive ``(start, end)`` bounds for a preset; ``None`` means open."""
    normalized = date_range.strip().lower()
    if normalized not in DATE_RANGES:
        raise ValueError("Invalid date range.")
    if normalized == "today":
        return today, today
    if normalized == "week":
        return today - timedelta(days=6), today
    if normalized == "month":
        return today.replace(day=1), today
    if normalized == "custom":
        if custom_start and custom_end and custom_start > custom_end:
            raise ValueError("Start date must be on or before end date.")
        return custom_start, custom_end
    return None, None


def sort_newest_first(transactions: Iterable[Transaction]) -> List[Transaction]:
    return sorted(transactions, key=lambda txn: (txn.date, txn.id), reverse=True)


def _normalize_type_filter(value: str) -> str:
    normalized = value.strip().lower()
    if normalized != ALL and normalized not in TRANSACTION_TYPES:
        raise ValueError("Invalid transaction type.")
    return normalized
