"""
templates.py
Weekly appointment templates: a day-of-week (0 = Sunday) keyed list of
recurring visits, materialized into real visits on that day.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date

from applier import OptimisticApplier
from models import TemplateVisit, new_id
from storage import PersistenceGateway, WeeklyTemplates

DAYS_OF_WEEK = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]


def day_index(day: date) -> int:
    # date.weekday() counts from Monday
    return (day.weekday() + 1) % 7


def _check_day(day: int) -> None:
    if not 0 <= day <= 6:
        raise ValueError("day must be between 0 (Sunday) and 6 (Saturday)")


class TemplateBook:
    """Same optimistic policy as visits: a failed remote save is flagged, never reverted."""

    def __init__(
        self,
        user_id: str,
        gateway: PersistenceGateway,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.user_id = user_id
        self.gateway = gateway
        self._state = OptimisticApplier(
            {},
            lambda templates: gateway.save_templates(user_id, templates),
            executor=executor,
            label=f"templates of {user_id}",
        )

    def load(self) -> WeeklyTemplates:
        templates = self.gateway.load_templates(self.user_id)
        self._state.replace(templates)
        return self.templates

    @property
    def templates(self) -> WeeklyTemplates:
        return {day: list(entries) for day, entries in self._state.value.items()}

    @property
    def sync_failed(self) -> bool:
        return self._state.sync_failed

    def entries_for(self, day: int) -> list[TemplateVisit]:
        _check_day(day)
        return list(self._state.value.get(day, []))

    def entries_for_date(self, day: date) -> list[TemplateVisit]:
        return self.entries_for(day_index(day))

    def add(
        self,
        day: int,
        subject_name: str,
        billing_mode: str,
        amount: float,
        plan_name: str | None = None,
        notes: str | None = None,
    ) -> TemplateVisit:
        _check_day(day)
        if not subject_name.strip():
            raise ValueError("subject_name is required")
        if amount is None or amount < 0:
            raise ValueError("amount must be non-negative")
        entry = TemplateVisit(
            id=new_id(),
            subject_name=subject_name.strip(),
            billing_mode=billing_mode,
            amount=float(amount),
            plan_name=(plan_name or "").strip() or None,
            notes=(notes or "").strip() or None,
        )
        templates = self.templates
        templates[day] = templates.get(day, []) + [entry]
        self._state.apply(templates)
        return entry

    def remove(self, day: int, entry_id: str) -> bool:
        _check_day(day)
        current = self._state.value.get(day, [])
        kept = [e for e in current if e.id != entry_id]
        if len(kept) == len(current):
            return False
        templates = self.templates
        templates[day] = kept
        self._state.apply(templates)
        return True

    def flush(self, timeout: float | None = None) -> None:
        self._state.flush(timeout)

    def close(self) -> None:
        self._state.shutdown()
