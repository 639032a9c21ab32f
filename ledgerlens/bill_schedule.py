from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List

ZERO = Decimal("0")


@dataclass(frozen=True)
class Bill:
    id: str
    name: str
    amount: Decimal
    due_date: date


@dataclass(frozen=True)
class UpcomingBill:
    bill: Bill
    days_until_due: int
    is_overdue: bool


def validate_bill(bill: Bill) -> Bill:
    name = bill.name.strip()
    if not name:
        raise ValueError("Bill name required.")
    amount = _coerce_amount(bill.amount)
    if amount <= ZERO:
        raise ValueError("Bill amount must be greater than zero.")
    return Bill(id=bill.id, name=name, amount=amount, due_date=bill.due_date)


def upcoming_bills(
    bills: Iterable[Bill],
    today: date,
    horizon_days: int = 30,
    include_overdue: bool = True,
) -> List[UpcomingBill]:
    if horizon_days < 0:
        raise ValueError("horizon_days must be zero or greater.")
    horizon_end = today + timedelta(days=horizon_days)
    upcoming: List[UpcomingBill] = []
    for bill in bills:
        if bill.due_date > horizon_end:
            continue
        days_until_due = (bill.due_date - today).days
        is_overdue = days_until_due < 0
        if is_overdue and not include_overdue:
            continue
        upcoming.append(
            UpcomingBill(bill=bill, days_until_due=days_until_due, is_overdue=is_overdue)
        )
    upcoming.sort(key=lambda item: (item.bill.due_date, item.bill.name))
    return upcoming


def total_due(bills: Iterable[Bill], start: date, end: date) -> Decimal:
    if start > end:
        raise ValueError("start must be on or before end.")
    total = ZERO
    for bill in bills:
        if start <= bill.due_date <= end:
            total += _coerce_amount(bill.amount)
    return total


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
