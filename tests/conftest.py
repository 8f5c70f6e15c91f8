"""Shared fixtures: a throwaway SQLite cache, an in-memory blob store and the gateway over both."""

from __future__ import annotations

import pytest

from blobstore import MemoryBlobStore
from book import VisitBook
from db import LocalCache
from models import Visit
from storage import PersistenceGateway


@pytest.fixture
def cache(tmp_path) -> LocalCache:
    return LocalCache(tmp_path / "cache.db")


@pytest.fixture
def remote() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def gateway(cache: LocalCache, remote: MemoryBlobStore):
    gw = PersistenceGateway(cache, remote, timeout=2.0)
    yield gw
    gw.close()


@pytest.fixture
def book(gateway: PersistenceGateway):
    b = VisitBook("u1", gateway)
    b.load()
    yield b
    b.close()


def _make_visit(
    name: str = "Ana",
    service_date: str = "2024-03-05",
    billing_mode: str = "plan",
    amount: float = 100.0,
    payment_status: str = "pending",
    plan_name: str | None = "PlanA",
    payment_date: str | None = None,
) -> Visit:
    return Visit.create(
        subject_name=name,
        service_date=service_date,
        billing_mode=billing_mode,
        amount=amount,
        payment_status=payment_status,
        plan_name=plan_name,
        payment_date=payment_date,
    )


@pytest.fixture
def make_visit():
    return _make_visit
