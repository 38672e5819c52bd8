"""End-to-end flows through the service facade."""
import pytest

from trust_ledger.errors import UnverifiedRepayments
from trust_ledger.events import (LoanCreated, RepaymentVerified, ScoreComputed,
                                 ScoreVerified)

pytestmark = pytest.mark.anyio


async def test_loan_to_verified_score(service, make_loan):
    make_loan("alice", 800, 1000)

    assert await service.verify_repayment("alice", 0) == 800
    loan = service.loans("alice")[0]
    assert (loan.is_repaid, loan.is_verified, loan.clear_repayment) == (True, True, 800)

    score = service.compute_score("alice")
    assert score.is_verified is False

    assert await service.verify_score("alice") == 80
    assert service.score("alice").clear_score == 80

    kinds = [type(e) for e in service.events_after()]
    assert kinds == [LoanCreated, RepaymentVerified, ScoreComputed, ScoreVerified]


async def test_verify_twice_is_a_no_op(service, make_loan):
    make_loan("alice", 800, 1000)
    assert await service.verify_repayment("alice", 0) == 800
    assert await service.verify_repayment("alice", 0) == 800
    assert len(service.events_after()) == 2


async def test_compute_score_requires_all_verified(service, make_loan):
    make_loan("alice", 800, 1000)
    make_loan("alice", 500, 1000)
    await service.verify_repayment("alice", 0)

    with pytest.raises(UnverifiedRepayments):
        service.compute_score("alice")

    await service.verify_repayment("alice", 1)
    service.compute_score("alice")
    assert await service.verify_score("alice") == 65


async def test_events_after_cursor(service, make_loan):
    make_loan("alice", 1, 10)
    make_loan("bob", 2, 20)
    make_loan("carol", 3, 30)

    first = service.events_after(0, limit=2)
    assert [e.seq for e in first] == [1, 2]
    rest = service.events_after(first[-1].seq)
    assert [e.borrower for e in rest] == ["carol"]


async def test_stats_and_analysis(service, make_loan):
    make_loan("alice", 800, 1000)
    make_loan("bob", 100, 1000)
    await service.verify_repayment("alice", 0)
    await service.verify_repayment("bob", 0)
    service.compute_score("alice")
    service.compute_score("bob")
    await service.verify_score("bob")

    stats = service.stats()
    assert stats == {
        "total_loans": 2,
        "verified_loans": 2,
        "average_loan_amount": 1000.0,
        "high_risk_users": 1,
    }

    # alice's score is not disclosed yet, so the neutral score is used
    assert service.analysis("alice")["creditworthiness"] == 60
    assert service.analysis("bob")["creditworthiness"] == 12


@pytest.mark.parametrize("repayment", [2**63, 2**64 - 1])
async def test_verify_uint64_repayment(service, make_loan, session, repayment):
    make_loan("alice", repayment, 2**62)

    assert await service.verify_repayment("alice", 0) == repayment
    session.expire_all()
    assert service.loans("alice")[0].clear_repayment == repayment
