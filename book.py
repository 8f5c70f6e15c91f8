"""
book.py
VisitBook: the session-scoped owner of one user's visits, wiring the pure
ledger operations through the history log and the optimistic applier.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import ledger
import views
from applier import OptimisticApplier
from history import HistoryEntry, HistoryLog
from models import TemplateVisit, Visit
from storage import PersistenceGateway, VisitLoad
from utils import month_label

logger = logging.getLogger(__name__)


class VisitBook:
    def __init__(
        self,
        user_id: str,
        gateway: PersistenceGateway,
        history_limit: int = 50,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.user_id = user_id
        self.gateway = gateway
        self._state = OptimisticApplier(
            [],
            lambda visits: gateway.save_visits(user_id, visits),
            executor=executor,
            label=f"visits of {user_id}",
        )
        self.history = HistoryLog(self._state.apply, limit=history_limit)

    # ---------- state ----------

    def load(self) -> VisitLoad:
        result = self.gateway.load_visits(self.user_id)
        self._state.replace(list(result.visits))
        self.history.clear()
        return result

    @property
    def visits(self) -> list[Visit]:
        return list(self._state.value)

    def get(self, visit_id: str) -> Visit | None:
        for v in self._state.value:
            if v.id == visit_id:
                return v
        return None

    @property
    def sync_failed(self) -> bool:
        return self._state.sync_failed

    def _commit(self, kind: str, after: list[Visit], description: str) -> HistoryEntry | None:
        before = self._state.value
        if list(after) == list(before):
            return None
        entry = self.history.record(kind, before, after, description)
        self._state.apply(after)
        logger.debug("%s (%s)", description, kind)
        return entry

    # ---------- mutations ----------

    def add(self, visit: Visit) -> HistoryEntry | None:
        after = ledger.add_visit(self._state.value, visit)
        return self._commit("add", after, f"Visit for {visit.subject_name} added")

    def edit(self, visit: Visit) -> HistoryEntry | None:
        after = ledger.edit_visit(self._state.value, visit)
        return self._commit("edit", after, f"Visit for {visit.subject_name} edited")

    def delete(self, visit_id: str) -> HistoryEntry | None:
        visit = self.get(visit_id)
        if visit is None:
            return None
        after = ledger.delete_visit(self._state.value, visit_id)
        return self._commit("delete", after, f"Visit for {visit.subject_name} removed")

    def toggle_payment(self, visit_id: str, today: date | None = None) -> HistoryEntry | None:
        visit = self.get(visit_id)
        if visit is None:
            return None
        after = ledger.toggle_payment(self._state.value, visit_id, today)
        new_status = "pending" if visit.payment_status == "paid" else "paid"
        return self._commit("edit", after, f"Status of {visit.subject_name} changed to {new_status}")

    def clear_month(self, month: str) -> HistoryEntry | None:
        before = self._state.value
        after = ledger.clear_month(before, month)
        removed = len(before) - len(after)
        return self._commit("clear", after, f"{removed} visit(s) from {month_label(month)} removed")

    def mark_plan_paid(self, plan_name: str, month: str, today: date | None = None) -> HistoryEntry | None:
        """One history entry for the whole batch."""
        count = views.pending_count_for_plan(self._state.value, plan_name, month)
        after = views.bulk_mark_paid(self._state.value, plan_name, month, today)
        return self._commit("edit", after, f"{count} visit(s) of plan {plan_name} marked as paid")

    def add_day_appointments(self, entries: list[TemplateVisit], day: date | None = None) -> list[Visit]:
        day = day or date.today()
        created = ledger.materialize_day(entries, day)
        if not created:
            return []
        after = list(self._state.value) + created
        self._commit("add", after, f"{len(created)} appointment(s) for {day.isoformat()} added")
        return created

    # ---------- history ----------

    def undo(self) -> HistoryEntry | None:
        return self.history.undo()

    def redo(self) -> HistoryEntry | None:
        return self.history.redo()

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def flush(self, timeout: float | None = None) -> None:
        self._state.flush(timeout)

    def close(self) -> None:
        self._state.shutdown()
