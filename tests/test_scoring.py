import pytest

from trust_ledger.errors import (NoLoanRecords, ScoreNotFound,
                                 UnverifiedRepayments, ZeroLoanAmount)
from trust_ledger.events import ScoreComputed


def _verified_loans(service, make_loan, borrower, pairs):
    """Create loans from (repayment, amount) pairs and mark them verified."""
    for repayment, amount in pairs:
        record = make_loan(borrower, repayment, amount)
        service.ledger.mark_verified(borrower, record.position, repayment)


def test_no_loans(service):
    with pytest.raises(NoLoanRecords):
        service.aggregator.compute_score("alice")
    assert service.aggregator.get_score("alice") is None


def test_unverified_repayments_names_first_index(service, make_loan):
    _verified_loans(service, make_loan, "alice", [(50, 100)])
    make_loan("alice", 10, 100)
    make_loan("alice", 20, 100)

    with pytest.raises(UnverifiedRepayments) as err:
        service.aggregator.compute_score("alice")
    assert err.value.index == 1
    assert service.aggregator.get_score("alice") is None


def test_single_loan_ratio(service, make_loan, fhe):
    _verified_loans(service, make_loan, "alice", [(800, 1000)])
    score = service.aggregator.compute_score("alice")

    assert fhe.plaintext(score.encrypted_score) == 80
    assert score.loan_count == 1
    assert score.is_verified is False
    assert score.clear_score is None


def test_average_floors_non_exact_division(service, make_loan, fhe):
    # ratios 100, 50, 33 -> 183 // 3 == 61
    _verified_loans(service, make_loan, "alice", [(100, 100), (50, 100), (33, 100)])
    score = service.aggregator.compute_score("alice")
    assert fhe.plaintext(score.encrypted_score) == 61


def test_ratio_truncates_per_loan(service, make_loan, fhe):
    # 1 * 100 // 3 == 33 and 2 * 100 // 3 == 66 -> (33 + 66) // 2 == 49
    _verified_loans(service, make_loan, "alice", [(1, 3), (2, 3)])
    score = service.aggregator.compute_score("alice")
    assert fhe.plaintext(score.encrypted_score) == 49


def test_over_repayment_is_not_clamped(service, make_loan, fhe):
    _verified_loans(service, make_loan, "alice", [(1500, 1000)])
    score = service.aggregator.compute_score("alice")
    assert fhe.plaintext(score.encrypted_score) == 150


def test_zero_loan_amount_is_rejected(service, make_loan):
    _verified_loans(service, make_loan, "alice", [(10, 100), (0, 0)])
    with pytest.raises(ZeroLoanAmount) as err:
        service.aggregator.compute_score("alice")
    assert err.value.index == 1


def test_score_is_granted_and_announced(service, make_loan):
    _verified_loans(service, make_loan, "alice", [(800, 1000)])
    score = service.aggregator.compute_score("alice")

    assert service.grants.is_disclosable(score.encrypted_score)
    event = service.events.read()[-1]
    assert isinstance(event, ScoreComputed)
    assert event.handle == score.encrypted_score
    assert event.loan_count == 1


def test_recompute_replaces_score_and_resets_verification(service, make_loan, fhe):
    _verified_loans(service, make_loan, "alice", [(800, 1000)])
    first = service.aggregator.compute_score("alice")
    first_handle = first.encrypted_score
    service.aggregator.mark_verified("alice", 80)

    _verified_loans(service, make_loan, "alice", [(400, 1000)])
    second = service.aggregator.compute_score("alice")

    assert second.encrypted_score != first_handle
    assert fhe.plaintext(second.encrypted_score) == 60
    assert second.loan_count == 2
    assert second.is_verified is False
    assert second.clear_score is None


def test_later_loans_do_not_touch_existing_score(service, make_loan):
    _verified_loans(service, make_loan, "alice", [(800, 1000)])
    score = service.aggregator.compute_score("alice")
    handle = score.encrypted_score

    make_loan("alice", 1, 1000)
    assert service.aggregator.get_score("alice").encrypted_score == handle


def test_require_score_missing(service):
    with pytest.raises(ScoreNotFound):
        service.aggregator.require_score("ghost")
