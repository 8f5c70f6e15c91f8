"""Visit / template / user dataclasses and their stored shapes."""

from __future__ import annotations

from datetime import date

import pytest

from models import TemplateVisit, User, Visit, parse_template_visit, parse_visit


class TestVisitInvariants:
    def test_private_billing_clears_plan_name(self) -> None:
        v = Visit(id="1", subject_name="Ana", service_date="2024-03-01", billing_mode="private",
                  amount=50.0, plan_name="PlanA")
        assert v.plan_name is None

    def test_pending_clears_payment_date(self) -> None:
        v = Visit(id="1", subject_name="Ana", service_date="2024-03-01", billing_mode="private",
                  amount=50.0, payment_status="pending", payment_date="2024-03-02")
        assert v.payment_date is None

    def test_plan_to_private_clears_plan_name(self, make_visit) -> None:
        v = make_visit(plan_name="PlanA").with_billing_mode("private")
        assert v.billing_mode == "private"
        assert v.plan_name is None

    def test_private_to_plan_leaves_plan_name_unset(self, make_visit) -> None:
        v = make_visit(billing_mode="private", plan_name=None).with_billing_mode("plan")
        assert v.billing_mode == "plan"
        assert v.plan_name is None

    def test_private_to_plan_with_explicit_name(self, make_visit) -> None:
        v = make_visit(billing_mode="private", plan_name=None).with_billing_mode("plan", "PlanB")
        assert v.plan_name == "PlanB"

    def test_mark_paid_then_pending_clears_date(self, make_visit) -> None:
        paid = make_visit().with_payment_status("paid", "2024-03-10")
        assert paid.payment_date == "2024-03-10"
        assert paid.with_payment_status("pending").payment_date is None

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            Visit.create("Ana", "2024-03-01", "private", -1)

    def test_unknown_billing_mode_rejected(self) -> None:
        with pytest.raises(ValueError, match="billing_mode"):
            Visit.create("Ana", "2024-03-01", "insurance", 10)

    def test_create_assigns_unique_ids(self) -> None:
        a = Visit.create("Ana", "2024-03-01", "private", 10)
        b = Visit.create("Ana", "2024-03-01", "private", 10)
        assert a.id != b.id


class TestVisitWireFormat:
    def test_to_dict_omits_unset_optionals(self, make_visit) -> None:
        data = make_visit(billing_mode="private", plan_name=None).to_dict()
        assert "planName" not in data
        assert "paymentDate" not in data
        assert "notes" not in data
        assert data["billingMode"] == "private"
        assert data["paymentStatus"] == "pending"

    def test_from_dict_reads_wire_names(self) -> None:
        v = Visit.from_dict({
            "id": "x", "subjectName": "Ana", "serviceDate": "2024-03-01", "billingMode": "plan",
            "planName": "PlanA", "amount": 80, "paymentStatus": "paid", "paymentDate": "2024-03-02",
        })
        assert v.plan_name == "PlanA"
        assert v.payment_date == "2024-03-02"
        assert v.amount == 80.0

    def test_legacy_portuguese_record_is_translated(self) -> None:
        v = parse_visit({
            "id": "1757953550135", "nome": "Maria", "dataAtendimento": "2024-02-10",
            "tipoAtendimento": "plano", "nomePlano": "Unimed", "valor": 120,
            "statusPagamento": "pago", "dataPagamento": "2024-02-15", "observacoes": "ok",
        })
        assert v is not None
        assert v.subject_name == "Maria"
        assert v.billing_mode == "plan"
        assert v.plan_name == "Unimed"
        assert v.payment_status == "paid"
        assert v.notes == "ok"


class TestParseVisit:
    def test_missing_amount_is_rejected(self) -> None:
        assert parse_visit({"id": "1", "subjectName": "Ana", "serviceDate": "2024-03-01"}) is None

    def test_boolean_amount_is_rejected(self) -> None:
        raw = {"id": "1", "subjectName": "Ana", "serviceDate": "2024-03-01", "amount": True}
        assert parse_visit(raw) is None

    def test_non_string_id_is_rejected(self) -> None:
        raw = {"id": 1, "subjectName": "Ana", "serviceDate": "2024-03-01", "amount": 10}
        assert parse_visit(raw) is None

    def test_bad_date_is_rejected(self) -> None:
        raw = {"id": "1", "subjectName": "Ana", "serviceDate": "March 1st", "amount": 10}
        assert parse_visit(raw) is None

    def test_defaults_for_minimal_record(self) -> None:
        v = parse_visit({"id": "1", "subjectName": "Ana", "serviceDate": "2024-03-01", "amount": 10})
        assert v is not None
        assert v.billing_mode == "private"
        assert v.payment_status == "pending"

    def test_non_dict_is_rejected(self) -> None:
        assert parse_visit(["not", "a", "record"]) is None


class TestTemplateVisit:
    def test_materialize_creates_pending_visit_on_day(self) -> None:
        entry = TemplateVisit(id="t1", subject_name="Ana", billing_mode="plan", amount=90.0, plan_name="PlanA")
        visit = entry.materialize(date(2024, 3, 4))
        assert visit.service_date == "2024-03-04"
        assert visit.payment_status == "pending"
        assert visit.plan_name == "PlanA"
        assert visit.id != entry.id

    def test_parse_template_visit_drops_invalid(self) -> None:
        assert parse_template_visit({"id": "t1", "subjectName": "Ana"}) is None
        assert parse_template_visit({"id": "t1", "subjectName": "Ana", "amount": 10}) is not None


class TestUser:
    def test_round_trip_keeps_hash_and_flag(self) -> None:
        user = User(id="1", name="A", email="a@b.com", password_hash="$2b$x", must_change_password=True)
        again = User.from_dict(user.to_dict())
        assert again.password_hash == "$2b$x"
        assert again.must_change_password is True

    def test_plaintext_password_is_never_written_back(self) -> None:
        user = User.from_dict({"id": "1", "name": "A", "email": "A@B.com", "password": "secret"})
        assert user.email == "a@b.com"
        assert user.legacy_password == "secret"
        assert "password" not in user.to_dict()
