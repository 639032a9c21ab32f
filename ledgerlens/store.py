"""
Hosted relational store access.

SQLAlchemy Core tables for the ledger, the per-user financial profile and
bills, plus the handful of queries the dashboard needs. Every function takes
an open connection; callers own the transaction boundary.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine

from ledgerlens.bill_schedule import Bill
from ledgerlens.ledger_aggregator import ZERO, FinancialProfile

logger = logging.getLogger(__name__)

metadata = MetaData()

transactions = Table(
    "transactions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("type", String(20), nullable=False),
    Column("status", String(20), nullable=False, server_default="success"),
    Column("category", String(255)),
    Column("date", Date),
    Column("description", String(500)),
    Column("payment_method", String(50)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

financial_data = Table(
    "financial_data",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), unique=True, nullable=False),
    Column("monthly_salary", Numeric(12, 2), nullable=False, server_default="0"),
    Column("total_savings", Numeric(12, 2), nullable=False, server_default="0"),
    Column("monthly_expenditure", Numeric(12, 2), nullable=False, server_default="0"),
    Column("updated_at", DateTime),
)

bills = Table(
    "bills",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("due_date", Date, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

TRANSACTION_FIELDS = ("amount", "type", "status", "category", "date", "description", "payment_method")


def create_store_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, connect_args=connect_args)


def fetch_transactions(conn: Connection, user_id: str) -> List[Dict[str, Any]]:
    rows = conn.execute(
        select(transactions)
        .where(transactions.c.user_id == user_id)
        .order_by(transactions.c.date.desc(), transactions.c.id.desc())
    ).mappings().all()
    return [dict(row) for row in rows]


def insert_transaction(conn: Connection, user_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
    txn_id = str(uuid.uuid4())
    conn.execute(
        insert(transactions).values(
            id=txn_id,
            user_id=user_id,
            **{
                field: values[field]
                for field in TRANSACTION_FIELDS
                if values.get(field) is not None
            },
        )
    )
    row = conn.execute(
        select(transactions).where(transactions.c.id == txn_id)
    ).mappings().one()
    logger.info("Transaction stored", extra={"user_id": user_id, "transaction_id": txn_id})
    return dict(row)


def delete_transaction(conn: Connection, user_id: str, txn_id: str) -> bool:
    result = conn.execute(
        delete(transactions).where(
            transactions.c.id == txn_id,
            transactions.c.user_id == user_id,
        )
    )
    return result.rowcount > 0


def fetch_financial_profile(conn: Connection, user_id: str) -> Optional[FinancialProfile]:
    row = conn.execute(
        select(financial_data).where(financial_data.c.user_id == user_id)
    ).mappings().first()
    if row is None:
        return None
    return FinancialProfile(
        monthly_salary=_coerce_amount(row["monthly_salary"]),
        total_savings=_coerce_amount(row["total_savings"]),
        monthly_expenditure=_coerce_amount(row["monthly_expenditure"]),
    )


def upsert_financial_profile(
    conn: Connection, user_id: str, profile: FinancialProfile
) -> FinancialProfile:
    values = {
        "monthly_salary": profile.monthly_salary,
        "total_savings": profile.total_savings,
        "monthly_expenditure": profile.monthly_expenditure,
        "updated_at": datetime.now(timezone.utc).replace(tzinfo=None),
    }
    result = conn.execute(
        update(financial_data)
        .where(financial_data.c.user_id == user_id)
        .values(**values)
    )
    if result.rowcount == 0:
        conn.execute(insert(financial_data).values(user_id=user_id, **values))
    return profile


def fetch_bills(conn: Connection, user_id: str) -> List[Bill]:
    rows = conn.execute(
        select(bills)
        .where(bills.c.user_id == user_id)
        .order_by(bills.c.due_date.asc(), bills.c.name.asc())
    ).mappings().all()
    return [
        Bill(
            id=row["id"],
            name=row["name"],
            amount=_coerce_amount(row["amount"]),
            due_date=row["due_date"],
        )
        for row in rows
    ]


def insert_bill(conn: Connection, user_id: str, bill: Bill) -> Bill:
    bill_id = bill.id or str(uuid.uuid4())
    conn.execute(
        insert(bills).values(
            id=bill_id,
            user_id=user_id,
            name=bill.name,
            amount=bill.amount,
            due_date=bill.due_date,
        )
    )
    return Bill(id=bill_id, name=bill.name, amount=bill.amount, due_date=bill.due_date)


def delete_bill(conn: Connection, user_id: str, bill_id: str) -> bool:
    result = conn.execute(
        delete(bills).where(bills.c.id == bill_id, bills.c.user_id == user_id)
    )
    return result.rowcount > 0


def _coerce_amount(amount: Any) -> Decimal:
    if amount is None:
        return ZERO
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
