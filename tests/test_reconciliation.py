"""
Tests for the reconciliation engine and validation policy.
"""

from itertools import permutations

import pytest
from solders.pubkey import Pubkey

from src.config import ReconciliationSettings
from src.models.reconciliation import (
    AmountSource,
    ExpenseStatus,
    ReadingFlag,
    SkippedRecord,
    SkipReason,
    SpentSource,
)
from src.models.records import U64_MAX, ExpenseRecord
from src.reconciliation import ReconciliationEngine, ValidationPolicy


BUDGET_ADDRESS = Pubkey(bytes([3]) * 32)
MINT = Pubkey(bytes([4]) * 32)


def make_expense(**overrides) -> ExpenseRecord:
    fields = dict(
        budget_address=BUDGET_ADDRESS,
        mint_identifier=MINT,
        expense_type="Travel",
        approved_amount=500_000_000,
        spent_on_record=0,
        variance_pct=10,
        bump=255,
    )
    fields.update(overrides)
    return ExpenseRecord(**fields)


@pytest.fixture
def engine() -> ReconciliationEngine:
    return ReconciliationEngine(ValidationPolicy())


class TestScenarios:
    """The reference reconciliation scenarios."""

    def test_scenario_a_nothing_spent(self, engine):
        """Test full remaining balance means nothing spent."""
        view = engine.reconcile(make_expense(), live_remaining_balance=500_000_000)
        assert view.actual_spent == 0
        assert view.status == ExpenseStatus.NORMAL
        assert view.spent_source == SpentSource.LIVE_BALANCE

    def test_scenario_b_warning(self, engine):
        """Test 400M of 500M spent with 10% variance."""
        view = engine.reconcile(make_expense(), live_remaining_balance=100_000_000)
        assert view.actual_spent == 400_000_000
        assert view.max_allowed == 550_000_000
        assert view.status == ExpenseStatus.WARNING
        assert view.variance_overage == 0

    def test_scenario_b_boundary_is_inclusive(self, engine):
        """Test spend exactly at 80% is a warning and one unit below is not."""
        at_threshold = engine.reconcile(make_expense(), live_remaining_balance=100_000_000)
        below = engine.reconcile(make_expense(), live_remaining_balance=100_000_001)
        assert at_threshold.status == ExpenseStatus.WARNING
        assert below.actual_spent == 399_999_999
        assert below.status == ExpenseStatus.NORMAL

    def test_exclusive_boundary_policy(self):
        """Test an exclusive policy keeps exactly-80% spend normal."""
        engine = ReconciliationEngine(ValidationPolicy(warning_inclusive=False))
        view = engine.reconcile(make_expense(), live_remaining_balance=100_000_000)
        assert view.status == ExpenseStatus.NORMAL

    def test_scenario_c_nothing_approved(self, engine):
        """Test zero approved gives zero spent for any balance."""
        record = make_expense(approved_amount=0, spent_on_record=10)
        for balance in (0, 1, 500_000_000, U64_MAX, None):
            view = engine.reconcile(record, live_remaining_balance=balance)
            assert view.actual_spent == 0
            assert view.status == ExpenseStatus.NORMAL


class TestApprovedAmount:
    """Tests for approved amount precedence."""

    def test_external_amount_wins(self, engine):
        """Test the attribute document overrides the record."""
        view = engine.reconcile(
            make_expense(),
            external_approved_amount=600_000_000,
            live_remaining_balance=600_000_000,
        )
        assert view.approved_amount == 600_000_000
        assert view.amount_source == AmountSource.EXTERNAL
        assert ReadingFlag.AMOUNT_MISMATCH in view.flags

    def test_matching_external_amount_not_flagged(self, engine):
        """Test agreement between sources raises no flag."""
        view = engine.reconcile(
            make_expense(),
            external_approved_amount=500_000_000,
            live_remaining_balance=500_000_000,
        )
        assert view.amount_source == AmountSource.EXTERNAL
        assert view.flags == frozenset()

    def test_record_amount_fallback(self, engine):
        """Test unavailable external amount falls back to the record."""
        view = engine.reconcile(make_expense(), live_remaining_balance=0)
        assert view.amount_source == AmountSource.ON_RECORD
        assert view.actual_spent == 500_000_000

    def test_invalid_external_amounts_ignored(self, engine):
        """Test values outside u64 are treated as unavailable."""
        for bad in (-1, U64_MAX + 1, True):
            view = engine.reconcile(
                make_expense(),
                external_approved_amount=bad,
                live_remaining_balance=500_000_000,
            )
            assert view.amount_source == AmountSource.ON_RECORD


class TestSpentAmount:
    """Tests for spent amount derivation and clamps."""

    def test_balance_above_approved_is_zero_spent(self, engine):
        """Test a balance larger than approved never goes negative."""
        view = engine.reconcile(make_expense(), live_remaining_balance=900_000_000)
        assert view.actual_spent == 0

    def test_stale_balance_uses_record(self, engine):
        """Test an unreadable balance falls back to the on-record counter."""
        view = engine.reconcile(make_expense(spent_on_record=120_000_000))
        assert view.actual_spent == 120_000_000
        assert view.spent_source == SpentSource.ON_RECORD
        assert view.remaining_balance is None
        assert ReadingFlag.STALE_BALANCE in view.flags

    def test_over_budget(self, engine):
        """Test spend past the variance ceiling."""
        view = engine.reconcile(make_expense(spent_on_record=560_000_000))
        assert view.status == ExpenseStatus.OVER_BUDGET
        assert view.is_over_budget is True
        assert view.variance_overage == 60_000_000
        assert view.headroom == 0

    def test_within_variance_is_warning(self, engine):
        """Test spend above approved but within variance is only a warning."""
        view = engine.reconcile(make_expense(spent_on_record=550_000_000))
        assert view.status == ExpenseStatus.WARNING
        assert view.variance_overage == 50_000_000

    def test_suspicious_reading_clamped(self, engine):
        """Test spend above twice approved is reported as 0 and flagged."""
        view = engine.reconcile(make_expense(spent_on_record=1_000_000_001))
        assert view.actual_spent == 0
        assert view.status == ExpenseStatus.NORMAL
        assert view.is_suspicious is True

    def test_exactly_twice_approved_not_suspicious(self, engine):
        """Test the plausibility bound is strict."""
        view = engine.reconcile(make_expense(spent_on_record=1_000_000_000))
        assert view.actual_spent == 1_000_000_000
        assert view.is_suspicious is False
        assert view.status == ExpenseStatus.OVER_BUDGET

    def test_non_negative_and_bounded(self, engine):
        """Test spent is never negative and never above approved from a live balance."""
        record = make_expense()
        for balance in (0, 1, 250_000_000, 499_999_999, 500_000_000, U64_MAX):
            view = engine.reconcile(record, live_remaining_balance=balance)
            assert 0 <= view.actual_spent <= view.approved_amount

    def test_identity_fields_carried(self, engine):
        """Test index, address and name reach the view."""
        view = engine.reconcile(
            make_expense(),
            live_remaining_balance=1,
            index=7,
            address=BUDGET_ADDRESS,
            expense_name="Conference travel",
        )
        assert view.index == 7
        assert view.address == BUDGET_ADDRESS
        assert view.expense_name == "Conference travel"
        assert view.mint_identifier == MINT


class TestAggregate:
    """Tests for budget totals."""

    def _views(self, engine):
        return [
            engine.reconcile(make_expense(), live_remaining_balance=500_000_000, index=0),
            engine.reconcile(make_expense(), live_remaining_balance=100_000_000, index=1),
            engine.reconcile(make_expense(spent_on_record=560_000_000), index=2),
            engine.reconcile(make_expense(spent_on_record=2_000_000_000), index=3),
        ]

    def test_totals(self, engine):
        """Test sums and counts."""
        totals = engine.aggregate(self._views(engine))
        assert totals.total_approved == 2_000_000_000
        assert totals.total_spent == 960_000_000
        assert totals.total_remaining == 600_000_000
        assert totals.reconciled_count == 4
        assert totals.warning_count == 1
        assert totals.over_budget_count == 1
        assert totals.suspicious_count == 1
        assert totals.has_gaps is False

    def test_order_independent(self, engine):
        """Test every ordering of views gives the same totals."""
        views = self._views(engine)
        expected = engine.aggregate(views)
        for ordering in permutations(views):
            assert engine.aggregate(ordering) == expected

    def test_skipped_sorted_by_index(self, engine):
        """Test skipped records are listed by index."""
        skipped = [
            SkippedRecord(index=5, reason=SkipReason.NOT_FOUND),
            SkippedRecord(index=2, reason=SkipReason.DECODE_FAILED),
        ]
        totals = engine.aggregate([], skipped)
        assert [s.index for s in totals.skipped] == [2, 5]
        assert totals.skipped_count == 2
        assert totals.total_spent == 0

    def test_empty(self, engine):
        """Test an empty budget aggregates to zeros."""
        totals = engine.aggregate([])
        assert totals.total_approved == 0
        assert totals.reconciled_count == 0


class TestCanSpend:
    """Tests for the spend pre-check."""

    def test_within_ceiling(self, engine):
        """Test spending up to max_allowed is permitted."""
        view = engine.reconcile(make_expense(), live_remaining_balance=100_000_000)
        assert ReconciliationEngine.can_spend(view, 150_000_000) is True
        assert ReconciliationEngine.can_spend(view, 150_000_001) is False

    def test_negative_amount(self, engine):
        """Test negative amounts are refused."""
        view = engine.reconcile(make_expense(), live_remaining_balance=500_000_000)
        assert ReconciliationEngine.can_spend(view, -1) is False


class TestValidationPolicy:
    """Tests for the threshold object."""

    def test_max_allowed_floors(self):
        """Test the variance ceiling uses integer division."""
        policy = ValidationPolicy()
        assert policy.max_allowed(999, 10) == 1098
        assert policy.max_allowed(500_000_000, 0) == 500_000_000
        assert policy.max_allowed(U64_MAX, 100) == 2 * U64_MAX

    def test_is_implausible_zero_approved(self):
        """Test nothing-approved is never flagged implausible."""
        assert ValidationPolicy().is_implausible(10, 0) is False

    def test_from_settings(self):
        """Test thresholds are read from ReconciliationSettings."""
        settings = ReconciliationSettings(
            warning_threshold_pct=90,
            warning_inclusive=False,
            implausible_multiplier=3,
        )
        policy = ValidationPolicy.from_settings(settings)
        assert policy.warning_threshold_pct == 90
        assert policy.warning_inclusive is False
        assert policy.implausible_multiplier == 3

    def test_custom_threshold(self):
        """Test a 90% threshold moves the warning boundary."""
        engine = ReconciliationEngine(ValidationPolicy(warning_threshold_pct=90))
        view = engine.reconcile(make_expense(), live_remaining_balance=100_000_000)
        assert view.status == ExpenseStatus.NORMAL


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
