"""
Reconciliation Engine

Turns a decoded expense record, its external approved amount and its
live remaining balance into a spent/remaining/status view, and sums
views into budget totals.

DESIGN DECISION: The engine NEVER raises on bad numbers. A reading it
cannot trust degrades to 0 plus an advisory flag, so one corrupt record
cannot make a whole budget look overspent.

Precedence:
- Approved amount: external attribute, else the on-record value.
- Spent amount: approved - live remaining balance, else (balance
  unreadable) the on-record spend counter.
"""

from typing import Iterable, Optional

from solders.pubkey import Pubkey

from src.models.reconciliation import (
    AmountSource,
    BudgetTotals,
    ExpenseStatus,
    ExpenseView,
    ReadingFlag,
    SkippedRecord,
    SpentSource,
)
from src.models.records import U64_MAX, ExpenseRecord
from src.reconciliation.policy import ValidationPolicy


def _valid_amount(value: Optional[int]) -> Optional[int]:
    """Drop anything that is not a u64."""
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        return None
    if not 0 <= value <= U64_MAX:
        return None
    return value


class ReconciliationEngine:
    """
    Pure reconciliation over already-fetched values.

    Args:
        policy: Thresholds; defaults to ReconciliationSettings
    """

    def __init__(self, policy: Optional[ValidationPolicy] = None):
        self._policy = policy or ValidationPolicy.from_settings()

    @property
    def policy(self) -> ValidationPolicy:
        return self._policy

    def reconcile(
        self,
        record: ExpenseRecord,
        external_approved_amount: Optional[int] = None,
        live_remaining_balance: Optional[int] = None,
        *,
        index: Optional[int] = None,
        address: Optional[Pubkey] = None,
        expense_name: Optional[str] = None,
    ) -> ExpenseView:
        """
        Reconcile one expense.

        Args:
            record: Decoded expense record
            external_approved_amount: Approved amount from the attribute
                                      document, None if unavailable
            live_remaining_balance: Current token balance of the expense,
                                    None if it could not be read
            index, address, expense_name: Carried into the view

        Returns:
            ExpenseView with clamped numbers and advisory flags
        """
        flags: set[ReadingFlag] = set()

        # 1. Approved amount
        external = _valid_amount(external_approved_amount)
        if external is not None:
            approved = external
            amount_source = AmountSource.EXTERNAL
            if external != record.approved_amount:
                flags.add(ReadingFlag.AMOUNT_MISMATCH)
        else:
            approved = record.approved_amount
            amount_source = AmountSource.ON_RECORD

        # 2. Actual spent
        remaining = _valid_amount(live_remaining_balance)
        if remaining is None:
            spent_source = SpentSource.ON_RECORD
            flags.add(ReadingFlag.STALE_BALANCE)
            computed = record.spent_on_record if approved > 0 else 0
        else:
            spent_source = SpentSource.LIVE_BALANCE
            if approved == 0 or remaining >= approved:
                computed = 0
            else:
                computed = max(0, approved - remaining)

        # 3. Ceiling with variance
        max_allowed = self._policy.max_allowed(approved, record.variance_pct)

        # 5. Plausibility clamp, applied before classifying the reported value
        actual_spent = computed
        if self._policy.is_implausible(computed, approved):
            actual_spent = 0
            flags.add(ReadingFlag.SUSPICIOUS_READING)

        # 4. Status
        status = self._classify(actual_spent, approved, max_allowed)

        return ExpenseView(
            index=index,
            address=address,
            mint_identifier=record.mint_identifier,
            expense_type=record.expense_type,
            expense_name=expense_name,
            approved_amount=approved,
            amount_source=amount_source,
            actual_spent=actual_spent,
            spent_source=spent_source,
            remaining_balance=remaining,
            variance_pct=record.variance_pct,
            max_allowed=max_allowed,
            variance_overage=max(0, actual_spent - approved),
            status=status,
            flags=frozenset(flags),
        )

    def _classify(self, actual_spent: int, approved: int, max_allowed: int) -> ExpenseStatus:
        if approved == 0:
            return ExpenseStatus.NORMAL
        if actual_spent > max_allowed:
            return ExpenseStatus.OVER_BUDGET
        if self._policy.is_warning(actual_spent, approved):
            return ExpenseStatus.WARNING
        return ExpenseStatus.NORMAL

    def plausible_spent(self, view: ExpenseView) -> int:
        """Spent amount of a view after the non-negative and plausibility clamps."""
        spent = view.actual_spent
        if view.approved_amount == 0 or spent < 0:
            return 0
        if self._policy.is_implausible(spent, view.approved_amount):
            return 0
        return spent

    def aggregate(
        self,
        views: Iterable[ExpenseView],
        skipped: Iterable[SkippedRecord] = (),
    ) -> BudgetTotals:
        """
        Sum views into budget totals.

        Plain integer sums and counts, so the result is the same for any
        ordering of views. Skipped records are sorted by index.
        """
        views = tuple(views)
        total_spent = 0
        suspicious = 0
        for view in views:
            spent = self.plausible_spent(view)
            if view.is_suspicious or spent != view.actual_spent:
                suspicious += 1
            total_spent += spent

        return BudgetTotals(
            total_approved=sum(view.approved_amount for view in views),
            total_spent=total_spent,
            total_remaining=sum(max(0, view.remaining_balance or 0) for view in views),
            reconciled_count=len(views),
            over_budget_count=sum(1 for view in views if view.status == ExpenseStatus.OVER_BUDGET),
            warning_count=sum(1 for view in views if view.status == ExpenseStatus.WARNING),
            suspicious_count=suspicious,
            skipped=tuple(sorted(skipped, key=lambda s: (s.index, s.reason.value))),
        )

    @staticmethod
    def can_spend(view: ExpenseView, amount: int) -> bool:
        """
        Would spending amount more stay within the variance ceiling?

        Mirrors the ledger program's own check: spent + amount <= max_allowed.
        """
        if amount < 0:
            return False
        return view.actual_spent + amount <= view.max_allowed
