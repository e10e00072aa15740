"""Reconciliation package."""

from src.reconciliation.engine import ReconciliationEngine
from src.reconciliation.policy import ValidationPolicy

__all__ = ["ReconciliationEngine", "ValidationPolicy"]
