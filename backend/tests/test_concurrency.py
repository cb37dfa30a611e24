# Overview: Threaded write tests against a file-backed SQLite database.

"""
Concurrency Tests

In-memory SQLite shares one connection, so these tests build their own app on
a database file where every thread gets its own connection. Conflicting
writers are serialized by the version_id check plus retries; the final
balances must be exact and every chain must replay cleanly.

The retry helper itself is exercised directly with simulated conflicts.
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ledger import create_app
from ledger.config import TestingConfig
from ledger.errors import ConcurrencyConflict, InsufficientCredit, InsufficientFunds, SessionAlreadyOpen
from ledger.extensions import db
from ledger.models import CashAccount, CashAccountMovement, CashRegisterSession, Customer, Location, Tenant
from ledger.services import account_service, ledger_service, register_service
from ledger.services.account_kinds import CASH_KIND, CUSTOMER_KIND
from ledger.services.concurrency import run_in_transaction


@pytest.fixture
def file_app(tmp_path):
    config = type("FileConfig", (TestingConfig,), {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
        "LEDGER_RETRY_ATTEMPTS": 200,
        "LEDGER_RETRY_BACKOFF": 0.001,
    })
    app = create_app(config)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _run_threads(app, count, work):
    """Run work(index) in `count` threads, each inside its own app context."""
    errors = []
    outcomes = []
    lock = threading.Lock()
    barrier = threading.Barrier(count)

    def runner(index):
        with app.app_context():
            barrier.wait()
            try:
                result = work(index)
                with lock:
                    outcomes.append(result)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=runner, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=120)
    return outcomes, errors


def test_parallel_receipts_keep_exact_total(file_app):
    with file_app.app_context():
        tenant = Tenant(name="Concurrent", code="CONC", is_active=True)
        db.session.add(tenant)
        db.session.flush()
        account = CashAccount(tenant_id=tenant.id, name="Drawer float")
        db.session.add(account)
        db.session.commit()
        tenant_id, account_id = tenant.id, account.id

    threads, posts_per_thread = 4, 10

    def work(index):
        for n in range(posts_per_thread):
            account_service.record_cash_movement(
                tenant_id, account_id, "RECEIVED", "1.25",
                actor_id=index + 1, concept=f"Receipt {index}-{n}",
            )
        return index

    outcomes, errors = _run_threads(file_app, threads, work)
    assert errors == []
    assert len(outcomes) == threads

    with file_app.app_context():
        account = ledger_service.get_account(CASH_KIND, tenant_id, account_id)
        assert account.balance == Decimal("1.25") * threads * posts_per_thread
        assert account.movement_count == threads * posts_per_thread

        report = ledger_service.verify_chain(CASH_KIND, tenant_id, account_id)
        assert report.ok
        sequences = [m.sequence for m in ledger_service.list_movements(CASH_KIND, tenant_id, account_id)]
        assert sequences == list(range(1, threads * posts_per_thread + 1))


def test_parallel_charges_respect_credit_limit(file_app):
    with file_app.app_context():
        tenant = Tenant(name="Credit", code="CRED", is_active=True)
        db.session.add(tenant)
        db.session.flush()
        customer = Customer(tenant_id=tenant.id, name="Busy Buyer")
        db.session.add(customer)
        db.session.commit()
        account = account_service.ensure_customer_account(tenant.id, customer.id)
        account_service.update_customer_account_settings(tenant.id, account.id, credit_limit="100")
        tenant_id, customer_id, account_id = tenant.id, customer.id, account.id

    def work(index):
        return account_service.charge_customer(
            tenant_id, customer_id, "20", actor_id=index + 1, concept=f"Charge {index}",
        ).id

    outcomes, errors = _run_threads(file_app, 10, work)

    assert len(outcomes) == 5
    assert len(errors) == 5
    assert all(isinstance(e, InsufficientCredit) for e in errors)

    with file_app.app_context():
        account = ledger_service.get_account(CUSTOMER_KIND, tenant_id, account_id)
        assert account.balance == Decimal("-100.00")
        assert ledger_service.verify_chain(CUSTOMER_KIND, tenant_id, account_id).ok


def test_parallel_open_allows_one_session(file_app):
    with file_app.app_context():
        tenant = Tenant(name="Shift", code="SHIFT", is_active=True)
        db.session.add(tenant)
        db.session.flush()
        location = Location(tenant_id=tenant.id, name="Front counter")
        db.session.add(location)
        db.session.commit()
        tenant_id, location_id = tenant.id, location.id

    def work(index):
        return register_service.open_session(tenant_id, location_id, index + 1, "100").id

    outcomes, errors = _run_threads(file_app, 6, work)

    assert len(outcomes) == 1
    assert len(errors) == 5
    assert all(isinstance(e, SessionAlreadyOpen) for e in errors)

    with file_app.app_context():
        assert db.session.query(CashRegisterSession).filter_by(tenant_id=tenant_id).count() == 1
        session = register_service.get_open_session(tenant_id, location_id=location_id)
        assert session.id == outcomes[0]
        assert session.balance == Decimal("100.00")


def _post_receipt(tenant_id, account_id):
    return ledger_service._post_locked(
        tenant_id=tenant_id,
        kind=CASH_KIND,
        account_id=account_id,
        amount="10",
        movement_type="RECEIVED",
        concept="Receipt",
        actor_id=1,
    )


@pytest.mark.parametrize("conflict", [
    StaleDataError("version mismatch"),
    OperationalError("UPDATE cash_accounts", {}, Exception("database is locked")),
])
def test_retry_budget_exhausted_raises_conflict(db_session, tenant_a, treasury_a, conflict):
    calls = []

    def op():
        calls.append(1)
        _post_receipt(tenant_a.id, treasury_a.id)
        raise conflict

    with pytest.raises(ConcurrencyConflict) as exc:
        run_in_transaction(op, attempts=2, backoff_base=0)

    assert len(calls) == 2
    assert exc.value.details["attempts"] == 2
    db_session.expire_all()
    assert ledger_service.get_account(CASH_KIND, tenant_a.id, treasury_a.id).balance == Decimal("0.00")
    assert db_session.query(CashAccountMovement).count() == 0


def test_conflict_then_success_commits_once(db_session, tenant_a, treasury_a):
    calls = []

    def op():
        calls.append(1)
        movement = _post_receipt(tenant_a.id, treasury_a.id)
        if len(calls) == 1:
            raise StaleDataError("version mismatch")
        return movement

    movement = run_in_transaction(op, attempts=3, backoff_base=0)

    assert len(calls) == 2
    assert movement.sequence == 1
    db_session.expire_all()
    assert ledger_service.get_account(CASH_KIND, tenant_a.id, treasury_a.id).balance == Decimal("10.00")
    assert db_session.query(CashAccountMovement).count() == 1


def test_other_errors_are_not_retried(db_session, tenant_a, treasury_a):
    calls = []

    def op():
        calls.append(1)
        _post_receipt(tenant_a.id, treasury_a.id)
        raise InsufficientFunds("declined")

    with pytest.raises(InsufficientFunds):
        run_in_transaction(op, attempts=5, backoff_base=0)

    assert len(calls) == 1
    db_session.expire_all()
    assert db_session.query(CashAccountMovement).count() == 0
