import logging
import os
from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ledgerlens.bill_schedule import Bill, upcoming_bills, validate_bill
from ledgerlens.insight_rules import DEFAULT_RULES, TOP_CATEGORY_RULE, evaluate_insights
from ledgerlens.ledger_aggregator import (
    DEFAULT_CATEGORY,
    TRANSACTION_STATUSES,
    TRANSACTION_TYPES,
    AggregationResult,
    FinancialProfile,
    aggregate,
    normalize_transactions,
    sync_monthly_expenditure,
)
from ledgerlens.logging_config import setup_logging
from ledgerlens.report_windows import month_window, timeframe_window
from ledgerlens.store import (
    create_store_engine,
    delete_bill,
    delete_transaction,
    fetch_bills,
    fetch_financial_profile,
    fetch_transactions,
    insert_bill,
    insert_transaction,
    metadata,
    upsert_financial_profile,
)
from ledgerlens.transaction_filters import filter_transactions

setup_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

database_url = os.getenv("DATABASE_URL", "sqlite:///./ledgerlens.db")
engine = create_store_engine(database_url)

DASHBOARD_RULES = DEFAULT_RULES + (TOP_CATEGORY_RULE,)
UNREADABLE_RECORDS_HEADER = "x-unreadable-records"


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


class TransactionPayload(BaseModel):
    amount: Decimal
    type: str
    status: str = "success"
    category: str | None = None
    date: date
    description: str | None = None
    payment_method: str | None = None

    @classmethod
    def validate_payload(cls, payload: "TransactionPayload") -> "TransactionPayload":
        payload.type = payload.type.strip().lower()
        if payload.type not in TRANSACTION_TYPES:
            raise ValueError("Invalid transaction type.")
        payload.status = payload.status.strip().lower()
        if payload.status not in TRANSACTION_STATUSES:
            raise ValueError("Invalid transaction status.")
        if payload.amount < 0:
            raise ValueError("Amount must not be negative.")
        payload.category = (payload.category or "").strip() or DEFAULT_CATEGORY
        payload.description = payload.description.strip() if payload.description else None
        payload.payment_method = payload.payment_method.strip() if payload.payment_method else None
        return payload


class TransactionResponse(BaseModel):
    id: str
    amount: Decimal
    type: str
    status: str
    category: str
    date: date | None
    description: str | None = None
    payment_method: str | None = None


class FinancialDataPayload(BaseModel):
    monthly_salary: Decimal | None = None
    total_savings: Decimal | None = None
    monthly_expenditure: Decimal | None = None

    @classmethod
    def validate_payload(cls, payload: "FinancialDataPayload") -> "FinancialDataPayload":
        for field in ("monthly_salary", "total_savings", "monthly_expenditure"):
            value = getattr(payload, field)
            if value is not None and value < 0:
                raise ValueError(f"{field} must not be negative.")
        return payload


class FinancialDataResponse(BaseModel):
    monthly_salary: Decimal
    total_savings: Decimal
    monthly_expenditure: Decimal


class PeriodBucketResponse(BaseModel):
    label: str
    start: date
    total: Decimal


class DiagnosticResponse(BaseModel):
    index: int
    record_id: str | None = None
    reason: str


class AggregationResponse(BaseModel):
    direction: str
    granularity: str
    start_date: date
    end_date: date
    by_category: dict[str, Decimal]
    by_period: list[PeriodBucketResponse]
    total_for_window: Decimal
    diagnostics: list[DiagnosticResponse]


class AggregatePayload(BaseModel):
    records: list[dict[str, Any]]
    start_date: date
    end_date: date
    direction: str = "expense"
    granularity: str = "calendar_day"


class InsightResponse(BaseModel):
    kind: str
    title: str
    message: str


class BillPayload(BaseModel):
    name: str
    amount: Decimal
    due_date: date


class UpcomingBillResponse(BaseModel):
    id: str
    name: str
    amount: Decimal
    due_date: date
    days_until_due: int
    is_overdue: bool


def get_user_id(x_user_id: str | None) -> str:
    # Identity comes from the hosted auth provider; only its presence is checked here.
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity.")
    return x_user_id.strip()


def to_transaction_response(row: dict) -> TransactionResponse:
    return TransactionResponse(
        id=row["id"],
        amount=row["amount"],
        type=row["type"],
        status=row["status"],
        category=row["category"] or DEFAULT_CATEGORY,
        date=row["date"],
        description=row["description"],
        payment_method=row["payment_method"],
    )


def to_aggregation_response(result: AggregationResult) -> AggregationResponse:
    return AggregationResponse(
        direction=result.direction,
        granularity=result.granularity,
        start_date=result.start,
        end_date=result.end,
        by_category=result.by_category,
        by_period=[
            PeriodBucketResponse(label=bucket.label, start=bucket.start, total=bucket.total)
            for bucket in result.by_period
        ],
        total_for_window=result.total_for_window,
        diagnostics=[
            DiagnosticResponse(index=item.index, record_id=item.record_id, reason=item.reason)
            for item in result.diagnostics
        ],
    )


def to_financial_data_response(profile: FinancialProfile) -> FinancialDataResponse:
    return FinancialDataResponse(
        monthly_salary=profile.monthly_salary,
        total_savings=profile.total_savings,
        monthly_expenditure=profile.monthly_expenditure,
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    response: Response,
    search: str = Query(""),
    category: str = Query("all"),
    type_filter: str = Query("all", alias="type"),
    date_range: str = Query("all"),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[TransactionResponse]:
    """List the caller's ledger, newest first.

    Filters only see rows the aggregator can read, so an unfiltered listing
    may return rows a filtered one never matches. The count of such rows is
    sent in the ``x-unreadable-records`` header either way.
    """
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        rows = fetch_transactions(conn, user_id)

    rows_by_id = {row["id"]: row for row in rows}
    ledger, diagnostics = normalize_transactions(rows)
    response.headers[UNREADABLE_RECORDS_HEADER] = str(len(diagnostics))
    if diagnostics:
        logger.info(
            "Ledger has unreadable rows",
            extra={"user_id": user_id, "unreadable": len(diagnostics)},
        )
    try:
        matches = filter_transactions(
            ledger,
            search=search,
            category=category,
            type_filter=type_filter,
            date_range=date_range,
            today=date.today(),
            custom_start=start_date,
            custom_end=end_date,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if search or category != "all" or type_filter != "all" or date_range != "all":
        return [to_transaction_response(rows_by_id[txn.id]) for txn in matches]
    return [to_transaction_response(row) for row in rows]


@app.post("/transactions", response_model=TransactionResponse)
def create_transaction(
    payload: TransactionPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> TransactionResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = TransactionPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        row = insert_transaction(conn, user_id, payload.model_dump())
    return to_transaction_response(row)


@app.delete("/transactions/{transaction_id}")
def remove_transaction(
    transaction_id: str, x_user_id: str | None = Header(None, alias="x-user-id")
) -> dict:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        if not delete_transaction(conn, user_id, transaction_id):
            raise HTTPException(status_code=404, detail="Transaction not found.")
    return {"status": "deleted"}


@app.get("/financial-data", response_model=FinancialDataResponse)
def get_financial_data(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> FinancialDataResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        profile = fetch_financial_profile(conn, user_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="Financial data not found.")
        ledger, _ = normalize_transactions(fetch_transactions(conn, user_id))
        synced = sync_monthly_expenditure(profile, ledger, date.today())
        if synced != profile:
            upsert_financial_profile(conn, user_id, synced)
            logger.info(
                "Monthly expenditure reconciled",
                extra={
                    "user_id": user_id,
                    "previous": str(profile.monthly_expenditure),
                    "current": str(synced.monthly_expenditure),
                },
            )
    return to_financial_data_response(synced)


@app.put("/financial-data", response_model=FinancialDataResponse)
def update_financial_data(
    payload: FinancialDataPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> FinancialDataResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = FinancialDataPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        current = fetch_financial_profile(conn, user_id) or FinancialProfile()
        updated = FinancialProfile(
            monthly_salary=_pick(payload.monthly_salary, current.monthly_salary),
            total_savings=_pick(payload.total_savings, current.total_savings),
            monthly_expenditure=_pick(payload.monthly_expenditure, current.monthly_expenditure),
        )
        upsert_financial_profile(conn, user_id, updated)
    return to_financial_data_response(updated)


@app.get("/analytics/summary", response_model=AggregationResponse)
def analytics_summary(
    timeframe: str = Query("7D"),
    direction: str = Query("expense"),
    granularity: str | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> AggregationResponse:
    user_id = get_user_id(x_user_id)
    try:
        window = timeframe_window(timeframe, date.today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        rows = fetch_transactions(conn, user_id)

    try:
        result = aggregate(
            rows,
            window.start,
            window.end,
            direction,
            granularity or window.granularity,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return to_aggregation_response(result)


@app.post("/analytics/aggregate", response_model=AggregationResponse)
def aggregate_snapshot(payload: AggregatePayload) -> AggregationResponse:
    try:
        result = aggregate(
            payload.records,
            payload.start_date,
            payload.end_date,
            payload.direction,
            payload.granularity,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return to_aggregation_response(result)


@app.get("/analytics/insights", response_model=list[InsightResponse])
def analytics_insights(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[InsightResponse]:
    user_id = get_user_id(x_user_id)
    window = month_window(date.today())
    with engine.begin() as conn:
        profile = fetch_financial_profile(conn, user_id) or FinancialProfile()
        rows = fetch_transactions(conn, user_id)

    result = aggregate(rows, window.start, window.end, "expense", window.granularity)
    return [
        InsightResponse(kind=record.kind, title=record.title, message=record.message)
        for record in evaluate_insights(profile, result, DASHBOARD_RULES)
    ]


@app.get("/bills", response_model=list[UpcomingBillResponse])
def list_bills(
    horizon_days: int = Query(30),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[UpcomingBillResponse]:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        stored = fetch_bills(conn, user_id)
    try:
        upcoming = upcoming_bills(stored, date.today(), horizon_days=horizon_days)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [
        UpcomingBillResponse(
            id=item.bill.id,
            name=item.bill.name,
            amount=item.bill.amount,
            due_date=item.bill.due_date,
            days_until_due=item.days_until_due,
            is_overdue=item.is_overdue,
        )
        for item in upcoming
    ]


@app.post("/bills", response_model=UpcomingBillResponse)
def create_bill(
    payload: BillPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> UpcomingBillResponse:
    user_id = get_user_id(x_user_id)
    try:
        bill = validate_bill(
            Bill(id="", name=payload.name, amount=payload.amount, due_date=payload.due_date)
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        stored = insert_bill(conn, user_id, bill)
    days_until_due = (stored.due_date - date.today()).days
    return UpcomingBillResponse(
        id=stored.id,
        name=stored.name,
        amount=stored.amount,
        due_date=stored.due_date,
        days_until_due=days_until_due,
        is_overdue=days_until_due < 0,
    )


@app.delete("/bills/{bill_id}")
def remove_bill(bill_id: str, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        if not delete_bill(conn, user_id, bill_id):
            raise HTTPException(status_code=404, detail="Bill not found.")
    return {"status": "deleted"}


def _pick(value: Decimal | None, fallback: Decimal) -> Decimal:
    return fallback if value is None else value
