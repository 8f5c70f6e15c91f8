"""
models.py
Domain dataclasses (visits, weekly template entries, users) and their JSON shapes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any

BILLING_MODES = ("plan", "private")
PAYMENT_STATUSES = ("paid", "pending")

# Documents written by the first (Portuguese) client use these keys/values
LEGACY_KEYS = {
    "nome": "subjectName",
    "dataAtendimento": "serviceDate",
    "tipoAtendimento": "billingMode",
    "nomePlano": "planName",
    "valor": "amount",
    "statusPagamento": "paymentStatus",
    "dataPagamento": "paymentDate",
    "observacoes": "notes",
}
LEGACY_VALUES = {
    "billingMode": {"plano": "plan", "particular": "private"},
    "paymentStatus": {"pago": "paid", "pendente": "pending"},
}


def new_id() -> str:
    return uuid.uuid4().hex


def _translate_legacy(raw: dict[str, Any]) -> dict[str, Any]:
    out = {key: value for key, value in raw.items() if key not in LEGACY_KEYS}
    for old, new in LEGACY_KEYS.items():
        # modern keys win when a record carries both
        if old in raw and new not in out:
            out[new] = raw[old]
    for key, mapping in LEGACY_VALUES.items():
        value = out.get(key)
        if isinstance(value, str):
            out[key] = mapping.get(value, value)
    return out


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _check_billing(billing_mode: str, amount: float) -> None:
    if billing_mode not in BILLING_MODES:
        raise ValueError(f"billing_mode must be one of {BILLING_MODES}, got {billing_mode!r}")
    if amount < 0:
        raise ValueError("amount must be non-negative")


@dataclass(frozen=True)
class Visit:
    """
    One patient visit.

    plan_name only survives when billing_mode is "plan", payment_date only
    when payment_status is "paid"; both are cleared on construction otherwise.
    """

    id: str
    subject_name: str
    service_date: str
    billing_mode: str
    amount: float
    payment_status: str = "pending"
    plan_name: str | None = None
    payment_date: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        _check_billing(self.billing_mode, self.amount)
        if self.payment_status not in PAYMENT_STATUSES:
            raise ValueError(
                f"payment_status must be one of {PAYMENT_STATUSES}, got {self.payment_status!r}"
            )
        date.fromisoformat(self.service_date)
        if self.billing_mode != "plan":
            object.__setattr__(self, "plan_name", None)
        if self.payment_status != "paid":
            object.__setattr__(self, "payment_date", None)

    @classmethod
    def create(
        cls,
        subject_name: str,
        service_date: str,
        billing_mode: str,
        amount: float,
        payment_status: str = "pending",
        plan_name: str | None = None,
        payment_date: str | None = None,
        notes: str | None = None,
    ) -> "Visit":
        if payment_status == "paid" and not payment_date:
            payment_date = date.today().isoformat()
        return cls(
            id=new_id(),
            subject_name=subject_name.strip(),
            service_date=service_date,
            billing_mode=billing_mode,
            amount=float(amount),
            payment_status=payment_status,
            plan_name=_optional_str(plan_name),
            payment_date=payment_date,
            notes=_optional_str(notes),
        )

    def with_billing_mode(self, billing_mode: str, plan_name: str | None = None) -> "Visit":
        # plan -> private drops the plan name; private -> plan starts without one
        if billing_mode == "plan":
            keep = self.plan_name if self.billing_mode == "plan" else None
            return replace(self, billing_mode="plan", plan_name=_optional_str(plan_name) or keep)
        return replace(self, billing_mode=billing_mode, plan_name=None)

    def with_payment_status(self, payment_status: str, payment_date: str | None = None) -> "Visit":
        if payment_status == "paid":
            return replace(
                self,
                payment_status="paid",
                payment_date=payment_date or date.today().isoformat(),
            )
        return replace(self, payment_status=payment_status, payment_date=None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "subjectName": self.subject_name,
            "serviceDate": self.service_date,
            "billingMode": self.billing_mode,
            "amount": self.amount,
            "paymentStatus": self.payment_status,
        }
        if self.plan_name is not None:
            data["planName"] = self.plan_name
        if self.payment_date is not None:
            data["paymentDate"] = self.payment_date
        if self.notes is not None:
            data["notes"] = self.notes
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Visit":
        data = _translate_legacy(raw)
        plan_name = _optional_str(data.get("planName"))
        billing_mode = data.get("billingMode") or ("plan" if plan_name else "private")
        return cls(
            id=data["id"],
            subject_name=data["subjectName"],
            service_date=data["serviceDate"],
            billing_mode=billing_mode,
            amount=float(data["amount"]),
            payment_status=data.get("paymentStatus") or "pending",
            plan_name=plan_name,
            payment_date=_optional_str(data.get("paymentDate")),
            notes=_optional_str(data.get("notes")),
        )


def parse_visit(raw: Any) -> Visit | None:
    """Shape-check one stored record; returns None instead of raising."""
    if not isinstance(raw, dict):
        return None
    data = _translate_legacy(raw)
    if not (
        isinstance(data.get("id"), str)
        and isinstance(data.get("subjectName"), str)
        and isinstance(data.get("serviceDate"), str)
        and _is_number(data.get("amount"))
    ):
        return None
    try:
        return Visit.from_dict(data)
    except (ValueError, TypeError):
        return None


@dataclass(frozen=True)
class TemplateVisit:
    """A recurring appointment stored against a day of the week."""

    id: str
    subject_name: str
    billing_mode: str
    amount: float
    plan_name: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        _check_billing(self.billing_mode, self.amount)
        if self.billing_mode != "plan":
            object.__setattr__(self, "plan_name", None)

    def materialize(self, day: date) -> Visit:
        return Visit(
            id=new_id(),
            subject_name=self.subject_name,
            service_date=day.isoformat(),
            billing_mode=self.billing_mode,
            amount=self.amount,
            payment_status="pending",
            plan_name=self.plan_name,
            notes=self.notes,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "subjectName": self.subject_name,
            "billingMode": self.billing_mode,
            "amount": self.amount,
        }
        if self.plan_name is not None:
            data["planName"] = self.plan_name
        if self.notes is not None:
            data["notes"] = self.notes
        return data


def parse_template_visit(raw: Any) -> TemplateVisit | None:
    if not isinstance(raw, dict):
        return None
    data = _translate_legacy(raw)
    if not (
        isinstance(data.get("id"), str)
        and isinstance(data.get("subjectName"), str)
        and _is_number(data.get("amount"))
    ):
        return None
    try:
        return TemplateVisit(
            id=data["id"],
            subject_name=data["subjectName"],
            billing_mode=data.get("billingMode") or "private",
            amount=float(data["amount"]),
            plan_name=_optional_str(data.get("planName")),
            notes=_optional_str(data.get("notes")),
        )
    except (ValueError, TypeError):
        return None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    password_hash: str | None
    created_at: str = field(default_factory=utc_now_iso)
    must_change_password: bool = False
    # plaintext from old user tables; only kept until the first successful login
    legacy_password: str | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "passwordHash": self.password_hash,
            "createdAt": self.created_at,
        }
        if self.must_change_password:
            data["mustChangePassword"] = True
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "User":
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or ""),
            email=str(raw["email"]).strip().lower(),
            password_hash=raw.get("passwordHash"),
            created_at=raw.get("createdAt") or utc_now_iso(),
            must_change_password=bool(raw.get("mustChangePassword", False)),
            legacy_password=raw.get("password"),
        )
