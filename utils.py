"""
utils.py
Validation, dates, formatting, exports.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable

import pandas as pd

from models import Visit

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

VISIT_COLUMNS = [
    "id", "subject_name", "service_date", "billing_mode", "plan_name",
    "amount", "payment_status", "payment_date", "notes",
]


def today_iso() -> str:
    return date.today().isoformat()


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def month_of(d: date | str) -> str:
    if isinstance(d, str):
        d = parse_iso(d)
    return f"{d.year:04d}-{d.month:02d}"


def month_label(month: str) -> str:
    """'2024-03' -> 'March 2024'."""
    try:
        year, mon = month.split("-")
        return f"{MONTH_NAMES[int(mon) - 1]} {int(year)}"
    except (ValueError, IndexError):
        return month


def format_currency(value: float) -> str:
    return f"R$ {value:,.2f}"


def validate_visit_inputs(
    subject_name: str,
    amount,
    service_date: str,
    billing_mode: str = "private",
    plan_name: str | None = None,
    payment_status: str = "pending",
    payment_date: str | None = None,
) -> list[str]:
    errors: list[str] = []
    if not subject_name.strip():
        errors.append("Patient name is required.")
    try:
        if float(amount) < 0:
            errors.append("Amount cannot be negative.")
    except (TypeError, ValueError):
        errors.append("Amount must be numeric.")
    try:
        parse_iso(service_date)
    except (TypeError, ValueError):
        errors.append("Visit date must be a valid ISO date (YYYY-MM-DD).")
    if billing_mode not in ("plan", "private"):
        errors.append("Billing must be 'plan' or 'private'.")
    elif billing_mode == "plan" and plan_name is not None and not plan_name.strip():
        errors.append("Plan name cannot be blank for plan visits.")
    if payment_status == "paid" and payment_date:
        try:
            parse_iso(payment_date)
        except ValueError:
            errors.append("Payment date must be a valid ISO date (YYYY-MM-DD).")
    return errors


def visits_to_dataframe(visits: Iterable[Visit]) -> pd.DataFrame:
    rows = [
        {
            "id": v.id,
            "subject_name": v.subject_name,
            "service_date": v.service_date,
            "billing_mode": v.billing_mode,
            "plan_name": v.plan_name,
            "amount": v.amount,
            "payment_status": v.payment_status,
            "payment_date": v.payment_date,
            "notes": v.notes,
        }
        for v in visits
    ]
    return pd.DataFrame(rows, columns=VISIT_COLUMNS)


def visits_to_csv_bytes(visits: Iterable[Visit]) -> bytes:
    return visits_to_dataframe(visits).to_csv(index=False).encode("utf-8")


def revenue_summary_by_month(visits: Iterable[Visit]) -> pd.DataFrame:
    """Paid amount grouped by payment month, newest month first."""
    df = visits_to_dataframe(visits)
    df = df[(df["payment_status"] == "paid") & df["payment_date"].notna()]
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue", "visits"])
    df = df.assign(month=df["payment_date"].str.slice(0, 7))
    summary = (
        df.groupby("month")
        .agg(revenue=("amount", "sum"), visits=("id", "count"))
        .reset_index()
        .sort_values("month", ascending=False)
        .reset_index(drop=True)
    )
    return summary
