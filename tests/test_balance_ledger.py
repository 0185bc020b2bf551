import pytest
from decimal import Decimal

from sqlalchemy import text

from pto_service.core.exceptions import ImmutableRecordError, InsufficientBalance, NotFound, ValidationError
from pto_service.models.pto_balance import PtoBalance
from pto_service.models.pto_policy import PtoPolicy
from pto_service.models.pto_transaction import PtoTransaction, TransactionType
from pto_service.services.balance_ledger import BalanceLedger
from pto_service.services.base import run_atomic

YEAR = 2030


def _figures(snapshot):
    return snapshot.balance, snapshot.pending, snapshot.used, snapshot.available


@pytest.fixture
def ledger(db_session, clock):
    return BalanceLedger(db_session, clock)


def test_reserve_moves_days_to_pending(ledger, db_session, employee, vacation, vacation_balance):
    snapshot = run_atomic(db_session, ledger.reserve, employee.id, vacation.id, YEAR, "3")
    assert _figures(snapshot) == (Decimal("10"), Decimal("3"), Decimal("0"), Decimal("7"))


def test_reserve_beyond_available_fails_and_leaves_ledger_untouched(ledger, db_session, employee, vacation,
                                                                    vacation_balance):
    run_atomic(db_session, ledger.reserve, employee.id, vacation.id, YEAR, "8")
    with pytest.raises(InsufficientBalance) as exc_info:
        run_atomic(db_session, ledger.reserve, employee.id, vacation.id, YEAR, "2.5")

    assert exc_info.value.details["available"] == 2.0
    assert exc_info.value.details["requested"] == 2.5
    db_session.refresh(vacation_balance)
    assert vacation_balance.pending_balance == Decimal("8")
    assert db_session.query(PtoTransaction).count() == 1


def test_negative_balance_allowed_down_to_policy_floor(ledger, db_session, employee, make_type, give_balance):
    sick = make_type("SICK", negative_allowed=True)
    give_balance(employee, sick, "2", max_negative_balance=Decimal("3"))

    snapshot = run_atomic(db_session, ledger.reserve, employee.id, sick.id, YEAR, "5")
    assert snapshot.available == Decimal("-3")

    with pytest.raises(InsufficientBalance):
        run_atomic(db_session, ledger.reserve, employee.id, sick.id, YEAR, "0.5")


def test_amounts_must_be_half_days(ledger, db_session, employee, vacation, vacation_balance):
    with pytest.raises(ValidationError):
        run_atomic(db_session, ledger.reserve, employee.id, vacation.id, YEAR, "1.25")


def test_release_is_clamped_at_zero(ledger, db_session, employee, vacation, vacation_balance):
    run_atomic(db_session, ledger.reserve, employee.id, vacation.id, YEAR, "2")
    snapshot = run_atomic(db_session, ledger.release, employee.id, vacation.id, YEAR, "5")
    assert snapshot.pending == Decimal("0")
    assert snapshot.balance == Decimal("10")


def test_consume_then_restore(ledger, db_session, employee, vacation, vacation_balance):
    run_atomic(db_session, ledger.reserve, employee.id, vacation.id, YEAR, "3")
    consumed = run_atomic(db_session, ledger.consume, employee.id, vacation.id, YEAR, "3", "approved")
    assert _figures(consumed) == (Decimal("7"), Decimal("0"), Decimal("3"), Decimal("7"))

    restored = run_atomic(db_session, ledger.restore, employee.id, vacation.id, YEAR, "3", "cancelled")
    assert _figures(restored) == (Decimal("10"), Decimal("0"), Decimal("0"), Decimal("10"))


def test_adjust_requires_reason_and_respects_available(ledger, db_session, employee, vacation, vacation_balance):
    with pytest.raises(ValidationError):
        run_atomic(db_session, ledger.adjust, employee.id, vacation.id, YEAR, "1", "")
    with pytest.raises(InsufficientBalance):
        run_atomic(db_session, ledger.adjust, employee.id, vacation.id, YEAR, "-10.5", "correction")

    snapshot = run_atomic(db_session, ledger.adjust, employee.id, vacation.id, YEAR, "-1.5", "correction")
    assert snapshot.balance == Decimal("8.5")


def test_get_balance_opens_zero_row_when_policy_exists(ledger, db_session, employee, make_type):
    personal = make_type("PER")
    db_session.add(PtoPolicy(user_id=employee.id, pto_type_id=personal.id, initial_days=0, annual_accrual_amount=0))
    db_session.commit()

    snapshot = run_atomic(db_session, ledger.get_balance, employee.id, personal.id, YEAR)
    assert _figures(snapshot) == (Decimal("0"), Decimal("0"), Decimal("0"), Decimal("0"))
    assert db_session.query(PtoBalance).filter(PtoBalance.pto_type_id == personal.id).count() == 1


def test_balance_opened_concurrently_is_reused(ledger, db_session, monkeypatch, employee, vacation,
                                               vacation_balance):
    real_locked = ledger._locked
    lookups = []

    def racing_locked(user_id, pto_type_id, year):
        lookups.append(year)
        if len(lookups) == 1:
            # Another writer opens next year's row right after our first lookup
            db_session.execute(
                text(
                    "INSERT INTO pto_balances (user_id, pto_type_id, year, balance, pending_balance, "
                    "used_balance, version) VALUES (:user_id, :pto_type_id, :year, 5, 0, 0, 1)"
                ),
                {"user_id": user_id, "pto_type_id": pto_type_id, "year": year},
            )
            return None
        return real_locked(user_id, pto_type_id, year)

    monkeypatch.setattr(ledger, "_locked", racing_locked)

    snapshot = run_atomic(db_session, ledger.reserve, employee.id, vacation.id, YEAR + 1, "1")

    assert _figures(snapshot) == (Decimal("5"), Decimal("1"), Decimal("0"), Decimal("4"))
    assert db_session.query(PtoBalance).filter(PtoBalance.year == YEAR + 1).count() == 1
    assert len(lookups) == 2


def test_get_balance_without_policy_is_not_found(ledger, db_session, employee, make_type):
    unassigned = make_type("UNA")
    with pytest.raises(NotFound):
        run_atomic(db_session, ledger.get_balance, employee.id, unassigned.id, YEAR)


def test_open_balance_twice_is_rejected(ledger, db_session, employee, vacation, vacation_balance):
    with pytest.raises(ValidationError):
        run_atomic(db_session, ledger.open_balance, employee.id, vacation.id, YEAR, "5", "again")


def test_every_mutation_is_journaled(ledger, db_session, employee, vacation, vacation_balance):
    run_atomic(db_session, ledger.reserve, employee.id, vacation.id, YEAR, "2")
    run_atomic(db_session, ledger.release, employee.id, vacation.id, YEAR, "2")
    run_atomic(db_session, ledger.adjust, employee.id, vacation.id, YEAR, "1", "bonus day")

    history = ledger.history(employee.id, vacation.id, YEAR)
    assert [t.type for t in history] == [
        TransactionType.RESERVATION.value,
        TransactionType.RELEASE.value,
        TransactionType.ADJUSTMENT.value,
    ]
    assert history[-1].balance_before == Decimal("10")
    assert history[-1].balance_after == Decimal("11")
    assert all(t.transaction_number.startswith(f"TXN-{YEAR}-") for t in history)


def test_transactions_are_append_only(ledger, db_session, employee, vacation, vacation_balance):
    run_atomic(db_session, ledger.reserve, employee.id, vacation.id, YEAR, "1")
    txn = db_session.query(PtoTransaction).one()

    txn.amount = Decimal("5")
    with pytest.raises(ImmutableRecordError):
        db_session.flush()
    db_session.rollback()

    txn = db_session.query(PtoTransaction).one()
    db_session.delete(txn)
    with pytest.raises(ImmutableRecordError):
        db_session.flush()
    db_session.rollback()


def test_reconcile_pending_corrects_drift(ledger, db_session, employee, vacation, vacation_balance):
    vacation_balance.pending_balance = Decimal("4")
    db_session.commit()

    result = run_atomic(db_session, ledger.reconcile_pending, employee.id, vacation.id, YEAR)
    assert result["corrected"] is True
    assert result["drift"] == Decimal("-4")
    db_session.refresh(vacation_balance)
    assert vacation_balance.pending_balance == Decimal("0")
    assert ledger.history(employee.id, vacation.id, YEAR)[-1].type == TransactionType.RECONCILIATION.value
