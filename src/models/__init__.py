"""
Data Models Package

This package contains all Pydantic models used in the Budget Ledger Reconciler.
All data flowing through the system must conform to these schemas.
"""

from src.models.records import (
    BudgetRecord,
    DecodeTier,
    DecodedRecord,
    DerivedAddress,
    ExpenseRecord,
    Identifier,
    LedgerRecord,
    RecordKind,
    TokenMetadataRecord,
)
from src.models.reconciliation import (
    AmountSource,
    BudgetReport,
    BudgetTotals,
    ExpenseAttributes,
    ExpenseStatus,
    ExpenseView,
    ReadingFlag,
    SkippedRecord,
    SkipReason,
    SpentSource,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "BudgetRecord",
    "DecodeTier",
    "DecodedRecord",
    "DerivedAddress",
    "ExpenseRecord",
    "Identifier",
    "LedgerRecord",
    "RecordKind",
    "TokenMetadataRecord",
    # Reconciliation models
    "AmountSource",
    "BudgetReport",
    "BudgetTotals",
    "ExpenseAttributes",
    "ExpenseStatus",
    "ExpenseView",
    "ReadingFlag",
    "SkippedRecord",
    "SkipReason",
    "SpentSource",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
