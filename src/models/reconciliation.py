"""
Reconciliation Models

The views produced by combining a decoded expense record with its
external approved amount and live remaining balance.

CRITICAL: Every number in these models is already clamped. A consumer
can render them directly; "data unavailable" is carried by the skipped
list and the flags, never by a surprising number.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.models.records import BudgetRecord, Identifier, U64_MAX


# =============================================================================
# ENUMS
# =============================================================================

class AmountSource(str, Enum):
    """Where the approved amount came from."""
    EXTERNAL = "external"    # Attribute document, canonical
    ON_RECORD = "on_record"  # Stored on the expense record


class SpentSource(str, Enum):
    """Where the spent amount came from."""
    LIVE_BALANCE = "live_balance"  # approved - remaining token balance
    ON_RECORD = "on_record"        # Ledger-maintained counter, may be stale


class ExpenseStatus(str, Enum):
    """Spend classification against the approved ceiling."""
    NORMAL = "normal"
    WARNING = "warning"
    OVER_BUDGET = "over_budget"


class ReadingFlag(str, Enum):
    """
    Advisory flags attached to a view.

    Flags never change whether a record is included in totals.
    """
    SUSPICIOUS_READING = "suspicious_reading"
    STALE_BALANCE = "stale_balance"
    AMOUNT_MISMATCH = "amount_mismatch"


class SkipReason(str, Enum):
    """Why an expense was left out of the totals."""
    NOT_FOUND = "not_found"
    DECODE_FAILED = "decode_failed"
    INVALID_RECORD = "invalid_record"
    ATTRIBUTE_FETCH_FAILED = "attribute_fetch_failed"
    LEDGER_ERROR = "ledger_error"
    UNEXPECTED_ERROR = "unexpected_error"


# =============================================================================
# PER-EXPENSE
# =============================================================================

class ExpenseAttributes(BaseModel):
    """
    What the attribute document says about an expense.

    Every field is optional: a missing document, a missing trait and an
    unparseable value all mean "unavailable".
    """
    model_config = ConfigDict(frozen=True)

    approved_amount: Optional[int] = Field(default=None, ge=0, le=U64_MAX)
    name: Optional[str] = None
    uri: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.approved_amount is not None


class ExpenseView(BaseModel):
    """
    Reconciled spent/remaining/status view of one expense.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    index: Optional[int] = Field(
        default=None,
        ge=0,
        description="Derivation index within the budget"
    )
    address: Optional[Identifier] = None
    mint_identifier: Identifier
    expense_type: str
    expense_name: Optional[str] = Field(
        default=None,
        description="Display name from the attribute document, if any"
    )

    approved_amount: int = Field(ge=0, le=U64_MAX)
    amount_source: AmountSource

    actual_spent: int = Field(ge=0)
    spent_source: SpentSource

    remaining_balance: Optional[int] = Field(
        default=None,
        ge=0,
        description="Live token balance; None when it could not be read"
    )
    variance_pct: int = Field(ge=0, le=100)
    max_allowed: int = Field(ge=0)
    variance_overage: int = Field(
        default=0,
        ge=0,
        description="Spend above approved_amount that is eating into the variance"
    )

    status: ExpenseStatus = ExpenseStatus.NORMAL
    flags: frozenset[ReadingFlag] = Field(default_factory=frozenset)

    @property
    def is_over_budget(self) -> bool:
        return self.status == ExpenseStatus.OVER_BUDGET

    @property
    def is_suspicious(self) -> bool:
        return ReadingFlag.SUSPICIOUS_READING in self.flags

    @property
    def spent_pct(self) -> float:
        """Spend as a percentage of the approved amount (0 when nothing approved)."""
        if self.approved_amount == 0:
            return 0.0
        return self.actual_spent * 100 / self.approved_amount

    @property
    def headroom(self) -> int:
        """How much more can be spent before going over budget."""
        return max(0, self.max_allowed - self.actual_spent)


class SkippedRecord(BaseModel):
    """An expense that could not be reconciled."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    address: Optional[str] = None
    reason: SkipReason
    message: str = ""


# =============================================================================
# PER-BUDGET
# =============================================================================

class BudgetTotals(BaseModel):
    """
    Budget-level totals.

    The skipped list lets a consumer tell "zero spend" apart from
    "data unavailable".
    """
    model_config = ConfigDict(frozen=True)

    total_approved: int = Field(default=0, ge=0)
    total_spent: int = Field(default=0, ge=0)
    total_remaining: int = Field(default=0, ge=0)

    reconciled_count: int = Field(default=0, ge=0)
    over_budget_count: int = Field(default=0, ge=0)
    warning_count: int = Field(default=0, ge=0)
    suspicious_count: int = Field(default=0, ge=0)

    skipped: tuple[SkippedRecord, ...] = ()

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def has_gaps(self) -> bool:
        return bool(self.skipped)

    @property
    def utilization_pct(self) -> float:
        if self.total_approved == 0:
            return 0.0
        return self.total_spent * 100 / self.total_approved


class BudgetReport(BaseModel):
    """Everything the dashboard needs for one budget."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    budget_address: Identifier
    budget: BudgetRecord
    expenses: tuple[ExpenseView, ...] = ()
    totals: BudgetTotals
