"""
Budget Ledger Reconciler - Source Package

Derives, decodes and reconciles budget and expense records kept on a
distributed ledger, for a spend-vs-approved dashboard.

DESIGN PRINCIPLES:
1. Addresses are recomputed, never looked up
2. Decode in tiers, and say which tier answered
3. A bad reading degrades to zero plus a flag, never to an overspend
4. One broken expense never hides the rest of the budget
5. Every fallback must be auditable
"""

__version__ = "1.0.0"
__author__ = "Budget Ledger Reconciler Team"
