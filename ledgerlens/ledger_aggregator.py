"""
Ledger aggregation.

Turns a snapshot of ledger transactions into category totals, zero-filled
period buckets and window totals. Every function here is pure: inputs are
never mutated and identical inputs give identical outputs.

Records that cannot be read (bad date, bad amount, unknown type or status)
are skipped and reported as diagnostics instead of failing the aggregation.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEFAULT_CATEGORY = "Other"

TRANSACTION_TYPES = {"deposit", "withdrawal", "payment"}
TRANSACTION_STATUSES = {"success", "pending", "failed"}
SUCCESS = "success"

DIRECTION_TYPES = {
    "income": {"deposit"},
    "expense": {"withdrawal", "payment"},
}

GRANULARITIES = {"day_of_week", "calendar_day", "week", "month"}
# Sunday first, matching the ledger views.
WEEKDAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
_TIME_SUFFIX = re.compile(
    r"^[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?\s*(Z|[+-]\d{2}(:?\d{2})?)?$"
)


@dataclass(frozen=True)
class Transaction:
    id: str
    amount: Decimal
    type: str
    date: date
    category: str = DEFAULT_CATEGORY
    status: str = SUCCESS
    description: Optional[str] = None
    payment_method: Optional[str] = None


@dataclass(frozen=True)
class FinancialProfile:
    monthly_salary: Decimal = ZERO
    total_savings: Decimal = ZERO
    monthly_expenditure: Decimal = ZERO


@dataclass(frozen=True)
class RecordCheck:
    ok: bool
    value: Optional[Transaction] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class Diagnostic:
    index: int
    record_id: Optional[str]
    reason: str


@dataclass(frozen=True)
class PeriodBucket:
    label: str
    start: date
    total: Decimal


@dataclass(frozen=True)
class AggregationResult:
    direction: str
    granularity: str
    start: date
    end: date
    by_category: Dict[str, Decimal]
    by_period: List[PeriodBucket]
    total_for_window: Decimal
    diagnostics: Tuple[Diagnostic, ...] = ()


RawRecord = Union[Transaction, Mapping[str, Any]]


def check_record(record: RawRecord) -> RecordCheck:
    """Validate one raw ledger record.

    Accepts a mapping (store row or JSON payload) or an existing
    ``Transaction``. Returns a failed check with a reason instead of raising.
    """
    if isinstance(record, Transaction):
        record = vars(record)
    if not isinstance(record, Mapping):
        return RecordCheck(ok=False, reason=f"not a ledger record: {type(record).__name__}")

    record_id = record.get("id")
    parsed_date = _parse_date(record.get("date"))
    if parsed_date is None:
        return RecordCheck(ok=False, reason=f"unparseable date: {record.get('date')!r}")

    amount = _parse_amount(record.get("amount"))
    if amount is None:
        return RecordCheck(ok=False, reason=f"invalid amount: {record.get('amount')!r}")
    if amount < ZERO:
        return RecordCheck(ok=False, reason=f"negative amount: {amount}")

    txn_type = _normalize_label(record.get("type"))
    if txn_type not in TRANSACTION_TYPES:
        return RecordCheck(ok=False, reason=f"unknown type: {record.get('type')!r}")

    raw_status = record.get("status")
    status = SUCCESS if raw_status is None else _normalize_label(raw_status)
    if status not in TRANSACTION_STATUSES:
        return RecordCheck(ok=False, reason=f"unknown status: {raw_status!r}")

    return RecordCheck(
        ok=True,
        value=Transaction(
            id=str(record_id) if record_id is not None else "",
            amount=amount,
            type=txn_type,
            date=parsed_date,
            category=_normalize_category(record.get("category")),
            status=status,
            description=record.get("description"),
            payment_method=record.get("payment_method"),
        ),
    )


def normalize_transactions(
    records: Iterable[RawRecord],
) -> Tuple[List[Transaction], List[Diagnostic]]:
    transactions: List[Transaction] = []
    diagnostics: List[Diagnostic] = []
    for index, record in enumerate(records):
        check = check_record(record)
        if check.ok:
            transactions.append(check.value)
            continue
        record_id = _record_id(record)
        logger.warning(
            "Skipping malformed ledger record",
            extra={"record_index": index, "record_id": record_id, "reason": check.reason},
        )
        diagnostics.append(Diagnostic(index=index, record_id=record_id, reason=check.reason))
    return transactions, diagnostics


def filter_by_window(
    transactions: Iterable[Transaction],
    start: date,
    end: date,
    include_non_successful: bool = False,
) -> List[Transaction]:
    """Return transactions dated in ``[start, end)``.

    Pending and failed transactions are dropped unless
    ``include_non_successful`` is set. The sum functions ignore them either
    way, so the flag only matters for display.
    """
    _validate_window(start, end)
    return [
        txn
        for txn in transactions
        if start <= txn.date < end
        and (include_non_successful or txn.status == SUCCESS)
    ]


def sum_by_category(
    transactions: Iterable[Transaction], direction: str
) -> Dict[str, Decimal]:
    txn_types = _direction_types(direction)
    totals: Dict[str, Decimal] = {}
    for txn in transactions:
        if txn.status != SUCCESS or txn.type not in txn_types:
            continue
        category = txn.category or DEFAULT_CATEGORY
        totals[category] = totals.get(category, ZERO) + txn.amount
    return totals


def sum_by_period(
    transactions: Iterable[Transaction],
    granularity: str,
    direction: str,
    start: date,
    end: date,
) -> List[PeriodBucket]:
    """Bucket successful transactions in ``[start, end)`` by period.

    Every period in the window gets a bucket, including empty ones.
    ``day_of_week`` always yields seven buckets, Sunday through Saturday.
    """
    normalized = normalize_granularity(granularity)
    txn_types = _direction_types(direction)
    _validate_window(start, end)

    buckets = _empty_buckets(normalized, start, end)
    if normalized == "day_of_week":
        positions = {offset: offset for offset in range(len(WEEKDAY_LABELS))}
    else:
        positions = {bucket_start: position for position, (_, bucket_start) in enumerate(buckets)}
    totals = [ZERO] * len(buckets)
    for txn in transactions:
        if txn.status != SUCCESS or txn.type not in txn_types:
            continue
        if not start <= txn.date < end:
            continue
        totals[positions[_bucket_key(txn.date, normalized)]] += txn.amount

    return [
        PeriodBucket(label=label, start=bucket_start, total=total)
        for (label, bucket_start), total in zip(buckets, totals)
    ]


def compute_rate(numerator: Decimal, denominator: Decimal) -> Decimal:
    numerator = _coerce_amount(numerator)
    denominator = _coerce_amount(denominator)
    if not numerator.is_finite() or not denominator.is_finite():
        return ZERO
    if denominator == ZERO:
        return ZERO
    return numerator / denominator * HUNDRED


def aggregate(
    records: Iterable[RawRecord],
    start: date,
    end: date,
    direction: str,
    granularity: str,
) -> AggregationResult:
    normalized_direction = normalize_direction(direction)
    normalized_granularity = normalize_granularity(granularity)
    transactions, diagnostics = normalize_transactions(records)
    in_window = filter_by_window(transactions, start, end)

    by_category = sum_by_category(in_window, normalized_direction)
    by_period = sum_by_period(
        in_window, normalized_granularity, normalized_direction, start, end
    )
    total = sum(by_category.values(), ZERO)
    return AggregationResult(
        direction=normalized_direction,
        granularity=normalized_granularity,
        start=start,
        end=end,
        by_category=by_category,
        by_period=by_period,
        total_for_window=total,
        diagnostics=tuple(diagnostics),
    )


def signed_amount(txn: Transaction) -> Decimal:
    if txn.type == "deposit":
        return txn.amount
    return -txn.amount


def net_flow(transactions: Iterable[Transaction]) -> Decimal:
    return sum(
        (signed_amount(txn) for txn in transactions if txn.status == SUCCESS),
        ZERO,
    )


def percentage_change(current: Decimal, previous: Decimal) -> Optional[Decimal]:
    current = _coerce_amount(current)
    previous = _coerce_amount(previous)
    if previous == ZERO:
        return None
    return (current - previous) / abs(previous) * HUNDRED


def apply_transaction_to_profile(
    profile: FinancialProfile, txn: Transaction
) -> FinancialProfile:
    """Return the profile after one transaction's side effect.

    Deposits add to savings, withdrawals and payments add to the month's
    expenditure. Pending and failed transactions change nothing.
    """
    if txn.status != SUCCESS:
        return profile
    if txn.type in DIRECTION_TYPES["income"]:
        return replace(profile, total_savings=profile.total_savings + txn.amount)
    return replace(
        profile, monthly_expenditure=profile.monthly_expenditure + txn.amount
    )


def sync_monthly_expenditure(
    profile: FinancialProfile,
    transactions: Iterable[Transaction],
    today: date,
) -> FinancialProfile:
    month_start = today.replace(day=1)
    in_month = filter_by_window(transactions, month_start, today + timedelta(days=1))
    spent = sum(sum_by_category(in_month, "expense").values(), ZERO)
    if spent == profile.monthly_expenditure:
        return profile
    return replace(profile, monthly_expenditure=spent)


def normalize_direction(direction: str) -> str:
    normalized = _normalize_label(direction)
    if normalized not in DIRECTION_TYPES:
        raise ValueError("Direction must be 'income' or 'expense'.")
    return normalized


def normalize_granularity(granularity: str) -> str:
    normalized = _normalize_label(granularity).replace("-", "_")
    if normalized not in GRANULARITIES:
        raise ValueError(
            "Granularity must be day_of_week, calendar_day, week, or month."
        )
    return normalized


def _direction_types(direction: str) -> set:
    return DIRECTION_TYPES[normalize_direction(direction)]


def _validate_window(start: date, end: date) -> None:
    if start > end:
        raise ValueError("start must be on or before end.")


def _empty_buckets(granularity: str, start: date, end: date) -> List[Tuple[str, date]]:
    if granularity == "day_of_week":
        # start is the first date on or after the window start with that weekday.
        return [
            (label, start + timedelta(days=(offset - _sunday_offset(start)) % 7))
            for offset, label in enumerate(WEEKDAY_LABELS)
        ]

    buckets: List[Tuple[str, date]] = []
    if start == end:
        return buckets
    cursor = _bucket_key(start, granularity)
    while cursor < end:
        buckets.append((_bucket_label(cursor, granularity), cursor))
        cursor = _next_bucket(cursor, granularity)
    return buckets


def _bucket_key(value: date, granularity: str) -> Union[date, int]:
    if granularity == "day_of_week":
        return _sunday_offset(value)
    if granularity == "week":
        return _week_start(value)
    if granularity == "month":
        return value.replace(day=1)
    return value


def _bucket_label(value: date, granularity: str) -> str:
    if granularity == "month":
        return value.strftime("%Y-%m")
    return value.isoformat()


def _next_bucket(value: date, granularity: str) -> date:
    if granularity == "week":
        return value + timedelta(days=7)
    if granularity == "month":
        if value.month == 12:
            return date(value.year + 1, 1, 1)
        return date(value.year, value.month + 1, 1)
    return value + timedelta(days=1)


def _sunday_offset(value: date) -> int:
    return (value.weekday() + 1) % 7


def _week_start(value: date) -> date:
    return value - timedelta(days=_sunday_offset(value))


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    # Timestamps fromisoformat rejects (e.g. nanoseconds) keep their date only
    # when the rest is still a time of day.
    if len(text) > 10 and not _TIME_SUFFIX.match(text[10:]):
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = _coerce_amount(value)
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _normalize_label(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def _normalize_category(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return DEFAULT_CATEGORY


def _record_id(record: RawRecord) -> Optional[str]:
    if isinstance(record, Transaction):
        return record.id
    if isinstance(record, Mapping) and record.get("id") is not None:
        return str(record.get("id"))
    return None


def _coerce_amount(amount: Any) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
