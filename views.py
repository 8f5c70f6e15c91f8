"""
views.py
Derived views over the visit collection: filters, totals and the one batch
mutation (bulk "mark plan paid"). Nothing here is cached or persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Sequence

from models import BILLING_MODES, PAYMENT_STATUSES, Visit

DATE_BASES = ("service", "payment")


@dataclass(frozen=True)
class FilterCriteria:
    """Unset fields (empty / None) do not filter. Active predicates are ANDed."""

    search: str = ""
    month: str | None = None  # YYYY-MM
    date_basis: str = "service"
    status: str | None = None
    billing_mode: str | None = None

    def __post_init__(self) -> None:
        if self.date_basis not in DATE_BASES:
            raise ValueError(f"date_basis must be one of {DATE_BASES}")
        if self.status is not None and self.status not in PAYMENT_STATUSES:
            raise ValueError(f"status must be one of {PAYMENT_STATUSES}")
        if self.billing_mode is not None and self.billing_mode not in BILLING_MODES:
            raise ValueError(f"billing_mode must be one of {BILLING_MODES}")


@dataclass(frozen=True)
class Summary:
    count: int
    total_amount: float
    paid_amount: float
    pending_amount: float


def _date_for(visit: Visit, basis: str) -> str:
    # visits without a payment date are matched on their service date
    if basis == "payment" and visit.payment_date:
        return visit.payment_date
    return visit.service_date


def matches(visit: Visit, criteria: FilterCriteria) -> bool:
    term = criteria.search.strip().casefold()
    if term and term not in visit.subject_name.casefold():
        return False
    if criteria.month and not _date_for(visit, criteria.date_basis).startswith(criteria.month):
        return False
    if criteria.status and visit.payment_status != criteria.status:
        return False
    if criteria.billing_mode and visit.billing_mode != criteria.billing_mode:
        return False
    return True


def filter_visits(visits: Iterable[Visit], criteria: FilterCriteria) -> list[Visit]:
    return [v for v in visits if matches(v, criteria)]


def aggregate(visits: Iterable[Visit]) -> Summary:
    count = 0
    total = paid = pending = 0.0
    for v in visits:
        count += 1
        total += v.amount
        if v.payment_status == "paid":
            paid += v.amount
        else:
            pending += v.amount
    return Summary(count=count, total_amount=total, paid_amount=paid, pending_amount=pending)


def _bulk_target(visit: Visit, plan_name: str, month: str) -> bool:
    return (
        visit.plan_name == plan_name
        and visit.service_date.startswith(month)
        and visit.payment_status == "pending"
    )


def bulk_mark_paid(
    visits: Sequence[Visit], plan_name: str, month: str, today: date | None = None
) -> list[Visit]:
    """Mark every pending visit of ``plan_name`` served in ``month`` as paid today."""
    paid_on = (today or date.today()).isoformat()
    return [
        v.with_payment_status("paid", paid_on) if _bulk_target(v, plan_name, month) else v
        for v in visits
    ]


def pending_count_for_plan(visits: Iterable[Visit], plan_name: str, month: str) -> int:
    return sum(1 for v in visits if _bulk_target(v, plan_name, month))


def received_in_month(visits: Iterable[Visit], month: str | None = None) -> float:
    """Amount actually received: paid visits whose payment date is in ``month`` (all paid if None)."""
    return sum(
        v.amount
        for v in visits
        if v.payment_status == "paid" and (month is None or (v.payment_date or "").startswith(month))
    )


def available_months(visits: Iterable[Visit], date_basis: str = "service") -> list[str]:
    months = set()
    for v in visits:
        if date_basis == "payment":
            if v.payment_date:
                months.add(v.payment_date[:7])
        else:
            months.add(v.service_date[:7])
    return sorted(months, reverse=True)


def sort_by_service_date(visits: Iterable[Visit]) -> list[Visit]:
    return sorted(visits, key=lambda v: v.service_date, reverse=True)


def subject_names(visits: Iterable[Visit]) -> list[str]:
    return sorted({v.subject_name for v in visits})


def plan_names(visits: Iterable[Visit]) -> list[str]:
    return sorted({v.plan_name for v in visits if v.billing_mode == "plan" and v.plan_name})


def name_suggestions(visits: Iterable[Visit], term: str) -> list[str]:
    term = term.strip().casefold()
    if not term:
        return []
    return [name for name in subject_names(visits) if term in name.casefold()]


def latest_visit_for(visits: Iterable[Visit], name: str) -> Visit | None:
    """Most recent visit of a subject, used to pre-fill the visit form."""
    key = name.strip().casefold()
    same = [v for v in visits if v.subject_name.strip().casefold() == key]
    if not same:
        return None
    return max(same, key=lambda v: v.service_date)
