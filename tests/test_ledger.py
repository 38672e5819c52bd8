from datetime import datetime, timezone

import pytest
from sqlmodel import select

from trust_ledger.errors import (AlreadyVerified, IndexOutOfRange,
                                 InvalidCiphertext, InvalidLoanTerms)
from trust_ledger.events import LoanCreated, RepaymentVerified
from trust_ledger.models import UINT64_MAX, LedgerEventRow, LoanRecord


def test_create_loan_starts_sealed(service, make_loan):
    record = make_loan("alice", 800, 1000)

    assert record.borrower == "alice"
    assert record.position == 0
    assert record.loan_amount == 1000
    assert record.is_repaid is False
    assert record.is_verified is False
    assert record.clear_repayment is None


def test_create_loan_appends_in_order(service, make_loan):
    make_loan("alice", 1, 10)
    make_loan("bob", 2, 20)
    make_loan("alice", 3, 30)

    loans = service.ledger.get_loans("alice")
    assert [r.position for r in loans] == [0, 1]
    assert [r.loan_amount for r in loans] == [10, 30]
    assert service.ledger.borrowers() == ["alice", "bob"]


def test_create_loan_grants_disclosure(service, make_loan):
    record = make_loan("alice", 800, 1000)
    handle = record.encrypted_repayment

    assert service.grants.is_disclosable(handle)
    assert service.state.principal in service.grants.principals(handle)


def test_create_loan_emits_event(service, make_loan):
    record = make_loan("alice", 800, 1000)
    (event,) = service.events.read()

    assert isinstance(event, LoanCreated)
    assert event.seq == 1
    assert event.borrower == "alice"
    assert event.index == 0
    assert event.handle == record.encrypted_repayment
    assert event.loan_amount == 1000


def test_due_date_is_stored_as_utc(service, fhe):
    ct, proof = fhe.encrypt_input(5)
    due = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    record = service.create_loan("alice", ct, proof, 50, due)
    assert record.due_date == datetime(2026, 3, 1, 9, 0)


def test_tampered_input_is_rejected_before_any_write(service, fhe, session):
    ct, proof = fhe.encrypt_input(800)
    tampered = bytes([ct[0] ^ 0xFF]) + ct[1:]

    with pytest.raises(InvalidCiphertext):
        service.create_loan("alice", tampered, proof, 1000, datetime(2026, 1, 1))
    with pytest.raises(InvalidCiphertext):
        service.create_loan("alice", ct[:-1], proof, 1000, datetime(2026, 1, 1))

    assert session.exec(select(LoanRecord)).all() == []
    assert session.exec(select(LedgerEventRow)).all() == []


@pytest.mark.parametrize("amount", [-1, 1.5, True, 2**64])
def test_invalid_loan_amount(service, fhe, amount):
    ct, proof = fhe.encrypt_input(1)
    with pytest.raises(InvalidLoanTerms):
        service.create_loan("alice", ct, proof, amount, datetime(2026, 1, 1))


def test_zero_loan_amount_is_accepted(make_loan):
    assert make_loan("alice", 0, 0).loan_amount == 0


def test_get_loans_unknown_borrower(service):
    assert service.ledger.get_loans("nobody") == []


def test_mark_verified_sets_flags_once(service, make_loan):
    make_loan("alice", 800, 1000)

    record = service.ledger.mark_verified("alice", 0, 800)
    assert (record.is_repaid, record.is_verified, record.clear_repayment) == (True, True, 800)

    with pytest.raises(AlreadyVerified):
        service.ledger.mark_verified("alice", 0, 1)
    assert service.ledger.get_loan("alice", 0).clear_repayment == 800

    kinds = [type(e) for e in service.events.read()]
    assert kinds == [LoanCreated, RepaymentVerified]


@pytest.mark.parametrize("index", [1, 5, -1])
def test_mark_verified_index_out_of_range(service, make_loan, index):
    make_loan("alice", 800, 1000)
    with pytest.raises(IndexOutOfRange) as err:
        service.ledger.mark_verified("alice", index, 1)
    assert err.value.length == 1


@pytest.mark.parametrize("amount", [2**63, UINT64_MAX])
def test_uint64_loan_amount_is_stored_exactly(service, make_loan, session, amount):
    make_loan("alice", 1, amount)
    session.expire_all()
    stored = session.exec(select(LoanRecord)).one()
    assert stored.loan_amount == amount
