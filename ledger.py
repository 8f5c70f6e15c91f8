"""
ledger.py
Pure operations on a visit collection. Every function returns a new list and
leaves its input untouched.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Iterable, Sequence

from models import TemplateVisit, Visit


def _same_subject(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


def _propagate_plan(visits: Iterable[Visit], source: Visit) -> list[Visit]:
    # A plan name given for one visit applies to every plan-billed visit of that subject
    if source.billing_mode != "plan" or not source.plan_name:
        return list(visits)
    out = []
    for v in visits:
        if v.id != source.id and v.billing_mode == "plan" and _same_subject(v.subject_name, source.subject_name):
            v = replace(v, plan_name=source.plan_name)
        out.append(v)
    return out


def add_visit(visits: Sequence[Visit], visit: Visit) -> list[Visit]:
    if any(v.id == visit.id for v in visits):
        raise ValueError(f"visit id {visit.id!r} already exists")
    return _propagate_plan(visits, visit) + [visit]


def edit_visit(visits: Sequence[Visit], visit: Visit) -> list[Visit]:
    if not any(v.id == visit.id for v in visits):
        return list(visits)
    replaced = [visit if v.id == visit.id else v for v in visits]
    return _propagate_plan(replaced, visit)


def delete_visit(visits: Sequence[Visit], visit_id: str) -> list[Visit]:
    return [v for v in visits if v.id != visit_id]


def toggle_payment(visits: Sequence[Visit], visit_id: str, today: date | None = None) -> list[Visit]:
    paid_on = (today or date.today()).isoformat()
    out = []
    for v in visits:
        if v.id == visit_id:
            if v.payment_status == "paid":
                v = v.with_payment_status("pending")
            else:
                v = v.with_payment_status("paid", paid_on)
        out.append(v)
    return out


def clear_month(visits: Sequence[Visit], month: str) -> list[Visit]:
    """Drop every visit whose service date falls in ``month`` (YYYY-MM)."""
    return [v for v in visits if not v.service_date.startswith(month)]


def materialize_day(entries: Iterable[TemplateVisit], day: date) -> list[Visit]:
    return [entry.materialize(day) for entry in entries]
