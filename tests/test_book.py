"""VisitBook: operations, one history entry per action, undo/redo, persistence."""

from __future__ import annotations

from datetime import date

from book import VisitBook
from models import TemplateVisit


class TestOperations:
    def test_add_records_and_persists(self, book: VisitBook, gateway, make_visit) -> None:
        v = make_visit()
        entry = book.add(v)
        assert entry.kind == "add"
        assert book.visits == [v]
        book.flush()
        assert gateway.load_visits("u1").visits == [v]

    def test_add_propagates_plan_name_to_same_subject(self, book: VisitBook, make_visit) -> None:
        old = make_visit("Ana", "2024-02-01", plan_name="Old")
        private = make_visit("ana", "2024-02-02", billing_mode="private", plan_name=None)
        book.add(old)
        book.add(private)
        book.add(make_visit("ANA", "2024-03-01", plan_name="New"))
        by_date = {v.service_date: v for v in book.visits}
        assert by_date["2024-02-01"].plan_name == "New"
        assert by_date["2024-02-02"].plan_name is None

    def test_edit_replaces_by_id(self, book: VisitBook, make_visit) -> None:
        v = make_visit()
        book.add(v)
        book.edit(v.with_billing_mode("private"))
        assert book.get(v.id).billing_mode == "private"
        assert book.get(v.id).plan_name is None

    def test_delete(self, book: VisitBook, make_visit) -> None:
        v = make_visit()
        book.add(v)
        entry = book.delete(v.id)
        assert entry.kind == "delete"
        assert book.visits == []

    def test_toggle_payment(self, book: VisitBook, make_visit) -> None:
        v = make_visit()
        book.add(v)
        book.toggle_payment(v.id, today=date(2024, 3, 9))
        assert book.get(v.id).payment_status == "paid"
        assert book.get(v.id).payment_date == "2024-03-09"
        book.toggle_payment(v.id)
        assert book.get(v.id).payment_status == "pending"
        assert book.get(v.id).payment_date is None

    def test_clear_month(self, book: VisitBook, make_visit) -> None:
        book.add(make_visit(service_date="2024-03-01"))
        book.add(make_visit(service_date="2024-03-31"))
        keep = make_visit(service_date="2024-04-01")
        book.add(keep)
        entry = book.clear_month("2024-03")
        assert entry.kind == "clear"
        assert "2 visit(s)" in entry.description
        assert book.visits == [keep]

    def test_unknown_ids_are_noops(self, book: VisitBook) -> None:
        assert book.delete("missing") is None
        assert book.toggle_payment("missing") is None
        assert len(book.history) == 0

    def test_add_day_appointments(self, book: VisitBook) -> None:
        entries = [
            TemplateVisit(id="t1", subject_name="Ana", billing_mode="plan", amount=90.0, plan_name="PlanA"),
            TemplateVisit(id="t2", subject_name="Bia", billing_mode="private", amount=120.0),
        ]
        created = book.add_day_appointments(entries, date(2024, 3, 4))
        assert len(created) == 2
        assert len(book.history) == 1
        assert all(v.service_date == "2024-03-04" and v.payment_status == "pending" for v in book.visits)

    def test_add_day_appointments_with_no_entries(self, book: VisitBook) -> None:
        assert book.add_day_appointments([], date(2024, 3, 4)) == []
        assert len(book.history) == 0


class TestBulkPayment:
    def test_single_history_entry_for_batch(self, book: VisitBook, make_visit) -> None:
        for i in range(3):
            book.add(make_visit(f"P{i}", f"2024-03-0{i + 1}"))
        for i in range(2):
            book.add(make_visit(f"Q{i}", "2024-03-10", payment_status="paid", payment_date="2024-03-11"))
        before = book.visits
        entries_before = len(book.history)

        entry = book.mark_plan_paid("PlanA", "2024-03", today=date(2024, 3, 31))

        assert len(book.history) == entries_before + 1
        assert entry.description.startswith("3 visit(s)")
        changed = [a for a, b in zip(book.visits, before) if a != b]
        assert len(changed) == 3
        assert book.visits[3:] == before[3:]

    def test_nothing_to_mark_records_nothing(self, book: VisitBook) -> None:
        assert book.mark_plan_paid("PlanA", "2024-03") is None
        assert len(book.history) == 0


class TestUndoRedo:
    def _run_ops(self, book: VisitBook, make_visit) -> None:
        a = make_visit("Ana", "2024-03-01")
        b = make_visit("Bia", "2024-03-02", billing_mode="private", plan_name=None)
        book.add(a)
        book.add(b)
        book.toggle_payment(a.id)
        book.edit(b.with_billing_mode("plan", "PlanZ"))
        book.delete(a.id)
        book.clear_month("2024-03")

    def test_full_undo_restores_initial_state(self, book: VisitBook, make_visit) -> None:
        seed = make_visit("Seed", "2024-01-01")
        book.add(seed)
        initial = book.visits
        self._run_ops(book, make_visit)
        n = len(book.history) - 1
        for _ in range(n):
            book.undo()
        assert book.visits == initial

    def test_redo_restores_state_before_undos(self, book: VisitBook, make_visit) -> None:
        self._run_ops(book, make_visit)
        final = book.visits
        for _ in range(4):
            book.undo()
        for _ in range(4):
            book.redo()
        assert book.visits == final

    def test_new_action_after_undo_drops_redo(self, book: VisitBook, make_visit) -> None:
        self._run_ops(book, make_visit)
        book.undo()
        book.undo()
        book.add(make_visit("Caio"))
        state = book.visits
        assert book.redo() is None
        assert book.visits == state

    def test_undo_is_persisted(self, book: VisitBook, gateway, make_visit) -> None:
        book.add(make_visit())
        book.undo()
        book.flush()
        assert gateway.load_visits("u1").visits == []

    def test_history_capped_at_limit(self, gateway, make_visit) -> None:
        book = VisitBook("u2", gateway, history_limit=50)
        for i in range(51):
            book.add(make_visit(f"P{i}"))
        assert len(book.history) == 50
        assert book.history.entries[0].description == "Visit for P1 added"
        book.close()


class TestPersistenceFailure:
    def test_remote_outage_keeps_state_and_flags(self, book: VisitBook, remote, cache, make_visit) -> None:
        remote.fail = True
        v = make_visit()
        book.add(v)
        book.flush()
        assert book.visits == [v]
        assert book.sync_failed
        assert cache.get("patients-u1.json") is not None

    def test_reload_after_outage_reads_local_copy(self, book: VisitBook, gateway, remote, make_visit) -> None:
        remote.fail = True
        v = make_visit()
        book.add(v)
        book.flush()
        fresh = VisitBook("u1", gateway)
        result = fresh.load()
        assert result.source == "cache"
        assert fresh.visits == [v]
        fresh.close()
