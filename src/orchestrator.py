"""
Main Orchestrator for Budget Ledger Reconciler

This module ties together all the components and defines the
end-to-end flow for one budget:
derive → read → decode → resolve attributes → read balance → reconcile → aggregate

DESIGN DECISION: The orchestrator enforces the boundaries:
- A failure loading the budget itself is fatal to the run
- A failure on any one expense skips that expense, never the batch
- Every fallback and skip is audited

Expense pipelines run concurrently, bounded by a semaphore. Each pipeline
returns its own result (a view or a skip); nothing is shared between
them, so aggregation does not depend on completion order.
"""

import asyncio
from typing import Optional, Union
from uuid import UUID

from solders.pubkey import Pubkey

from src.addressing import AddressDeriver, AddressMismatchError
from src.audit import AuditLogger, configure_logging, create_correlation_id
from src.codec import CodecError, RecordCodec
from src.config import get_settings
from src.models.reconciliation import (
    BudgetReport,
    ExpenseView,
    SkippedRecord,
    SkipReason,
)
from src.models.records import BudgetRecord, DecodeTier, DerivedAddress, ExpenseRecord
from src.reconciliation import ReconciliationEngine
from src.services.ledger import (
    LedgerError,
    LedgerReaderInterface,
    RecordUnavailableError,
    RpcLedgerReader,
)
from src.services.metadata import (
    AttributeFetchError,
    AttributeResolverInterface,
    HttpDocumentFetcher,
    MetadataAttributeResolver,
)
from src.services.storage import AuditStorageInterface


class BudgetNotFoundError(Exception):
    """No budget record exists at the derived address."""

    def __init__(self, address: str, message: Optional[str] = None):
        self.address = address
        super().__init__(message or f"No budget record at {address}")


class UnauthorizedBudgetError(Exception):
    """The budget record belongs to a different authority."""
    pass


PipelineResult = Union[ExpenseView, SkippedRecord]


class BudgetReconciliationFlow:
    """
    Orchestrates reconciliation of one budget.

    Flow:
    1. Derive → budget address from the collection identifier
    2. Load → read and decode the budget, verify bump and collection
    3. Fan out → one pipeline per expense index in [0, expense_count)
    4. Reconcile → each pipeline produces a view or a skip
    5. Aggregate → totals over the views, skips listed alongside
    """

    def __init__(
        self,
        ledger: LedgerReaderInterface,
        resolver: AttributeResolverInterface,
        deriver: Optional[AddressDeriver] = None,
        codec: Optional[RecordCodec] = None,
        engine: Optional[ReconciliationEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_concurrency: Optional[int] = None,
    ):
        self._ledger = ledger
        self._resolver = resolver
        self._deriver = deriver or AddressDeriver()
        self._codec = codec or RecordCodec()
        self._engine = engine or ReconciliationEngine()
        self._audit_logger = audit_logger
        self._max_concurrency = max_concurrency or get_settings().reconciliation.max_concurrency

    async def load_budget(
        self,
        collection_identifier: Pubkey,
        expected_authority: Optional[Pubkey] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[DerivedAddress, BudgetRecord]:
        """
        Read and validate the budget record of a collection.

        Raises:
            BudgetNotFoundError: If nothing is stored at the budget address
            AddressMismatchError: If the stored bump or collection disagree
                                  with the derivation
            UnauthorizedBudgetError: If expected_authority is given and differs
            LedgerError, CodecError: If the read or the decode fails
        """
        correlation_id = correlation_id or create_correlation_id()
        derived = self._deriver.budget_address(collection_identifier)

        try:
            raw = await self._ledger.get_raw_account(derived.address)
        except LedgerError as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="ledger",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise
        if raw is None:
            raise BudgetNotFoundError(str(derived.address))

        decoded = self._codec.decode_budget(raw)
        budget = decoded.record

        if budget.collection_identifier != collection_identifier:
            raise AddressMismatchError(
                f"Budget at {derived.address} belongs to collection "
                f"{budget.collection_identifier}, expected {collection_identifier}"
            )
        self._deriver.verify_bump(budget.bump, derived)

        if expected_authority is not None and budget.authority != expected_authority:
            raise UnauthorizedBudgetError(
                f"Budget at {derived.address} is owned by {budget.authority}, "
                f"not {expected_authority}"
            )

        if self._audit_logger:
            if decoded.tier != DecodeTier.STRUCTURED:
                await self._audit_logger.log_decode_fallback(
                    kind=decoded.kind.value,
                    tier=decoded.tier.value,
                    address=str(derived.address),
                    correlation_id=correlation_id,
                )
            await self._audit_logger.log_budget_loaded(
                address=str(derived.address),
                year=budget.year,
                expense_count=budget.expense_count,
                tier=decoded.tier.value,
                correlation_id=correlation_id,
            )

        return derived, budget

    async def reconcile_budget(
        self,
        collection_identifier: Pubkey,
        expected_authority: Optional[Pubkey] = None,
        correlation_id: Optional[UUID] = None,
    ) -> BudgetReport:
        """
        Reconcile every expense of a budget.

        Returns:
            BudgetReport with views ordered by index and totals that
            list every skipped expense
        """
        correlation_id = correlation_id or create_correlation_id()
        budget_derived, budget = await self.load_budget(
            collection_identifier,
            expected_authority=expected_authority,
            correlation_id=correlation_id,
        )

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(index: int, derived: DerivedAddress) -> PipelineResult:
            async with semaphore:
                try:
                    return await self.reconcile_expense(
                        index,
                        derived,
                        budget_derived.address,
                        correlation_id=correlation_id,
                    )
                except Exception as e:
                    # One bad record must not cancel the rest of the gather
                    return await self._fail(index, derived.address, e, correlation_id)

        results = await asyncio.gather(*(
            bounded(index, derived)
            for index, derived in self._deriver.expense_addresses(
                collection_identifier, budget.expense_count
            )
        ))

        views = sorted(
            (r for r in results if isinstance(r, ExpenseView)),
            key=lambda view: view.index,
        )
        skipped = [r for r in results if isinstance(r, SkippedRecord)]
        totals = self._engine.aggregate(views, skipped)

        if self._audit_logger:
            await self._audit_logger.log_budget_reconciled(
                address=str(budget_derived.address),
                reconciled=totals.reconciled_count,
                skipped=totals.skipped_count,
                correlation_id=correlation_id,
            )

        return BudgetReport(
            budget_address=budget_derived.address,
            budget=budget,
            expenses=tuple(views),
            totals=totals,
        )

    async def reconcile_expense(
        self,
        index: int,
        derived: DerivedAddress,
        budget_address: Pubkey,
        correlation_id: Optional[UUID] = None,
    ) -> PipelineResult:
        """
        Run the pipeline for one expense.

        Never raises for record-level problems; those come back as a
        SkippedRecord.
        """
        address = derived.address

        try:
            raw = await self._ledger.get_raw_account(address)
        except LedgerError as e:
            return await self._skip(index, address, SkipReason.LEDGER_ERROR, str(e), correlation_id)
        if raw is None:
            return await self._skip(
                index, address, SkipReason.NOT_FOUND,
                f"No expense record at {address}", correlation_id,
            )

        try:
            decoded = self._codec.decode_expense(raw)
        except CodecError as e:
            return await self._skip(index, address, SkipReason.DECODE_FAILED, str(e), correlation_id)
        expense: ExpenseRecord = decoded.record

        if self._audit_logger and decoded.tier != DecodeTier.STRUCTURED:
            await self._audit_logger.log_decode_fallback(
                kind=decoded.kind.value,
                tier=decoded.tier.value,
                address=str(address),
                correlation_id=correlation_id,
            )

        if expense.budget_address != budget_address:
            return await self._skip(
                index, address, SkipReason.INVALID_RECORD,
                f"Expense points at budget {expense.budget_address}, expected {budget_address}",
                correlation_id,
            )
        try:
            self._deriver.verify_bump(expense.bump, derived)
        except AddressMismatchError as e:
            return await self._skip(index, address, SkipReason.INVALID_RECORD, str(e), correlation_id)

        try:
            attributes = await self._resolver.resolve(expense)
        except AttributeFetchError as e:
            return await self._skip(
                index, address, SkipReason.ATTRIBUTE_FETCH_FAILED, str(e), correlation_id,
            )
        if self._audit_logger and not attributes.available:
            await self._audit_logger.log_attribute_unavailable(
                index=index,
                mint=str(expense.mint_identifier),
                correlation_id=correlation_id,
            )

        holding = self._deriver.associated_token_address(address, expense.mint_identifier)
        try:
            balance: Optional[int] = await self._ledger.get_token_balance(holding.address)
        except RecordUnavailableError as e:
            balance = None
            if self._audit_logger:
                await self._audit_logger.log_balance_unavailable(
                    index=index,
                    holding_address=str(holding.address),
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
        except LedgerError as e:
            return await self._skip(index, address, SkipReason.LEDGER_ERROR, str(e), correlation_id)

        view = self._engine.reconcile(
            expense,
            external_approved_amount=attributes.approved_amount,
            live_remaining_balance=balance,
            index=index,
            address=address,
            expense_name=attributes.name,
        )

        if self._audit_logger:
            if view.is_suspicious:
                if balance is None:
                    computed = expense.spent_on_record
                else:
                    computed = max(0, view.approved_amount - balance)
                await self._audit_logger.log_suspicious_reading(
                    index=index,
                    address=str(address),
                    computed_spent=computed,
                    approved_amount=view.approved_amount,
                    correlation_id=correlation_id,
                )
            await self._audit_logger.log_expense_reconciled(
                index=index,
                address=str(address),
                status=view.status.value,
                actual_spent=view.actual_spent,
                approved_amount=view.approved_amount,
                correlation_id=correlation_id,
            )

        return view

    async def _skip(
        self,
        index: int,
        address: Pubkey,
        reason: SkipReason,
        message: str,
        correlation_id: Optional[UUID],
    ) -> SkippedRecord:
        if self._audit_logger:
            await self._audit_logger.log_record_skipped(
                index=index,
                address=str(address),
                reason=reason.value,
                message=message,
                correlation_id=correlation_id,
            )
        return SkippedRecord(
            index=index,
            address=str(address),
            reason=reason,
            message=message,
        )

    async def _fail(
        self,
        index: int,
        address: Pubkey,
        error: Exception,
        correlation_id: Optional[UUID],
    ) -> SkippedRecord:
        """Record an error no pipeline stage anticipated, then skip the expense."""
        message = f"{type(error).__name__}: {error}"
        if self._audit_logger:
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                details={"index": index, "address": str(address)},
                correlation_id=correlation_id,
            )
        return await self._skip(index, address, SkipReason.UNEXPECTED_ERROR, message, correlation_id)


def create_app_components(
    audit_storage: Optional[AuditStorageInterface] = None,
) -> tuple[BudgetReconciliationFlow, RpcLedgerReader, HttpDocumentFetcher]:
    """
    Factory function to create all application components.

    Args:
        audit_storage: Where audit events are persisted.
                       If None, events are only logged locally.

    Returns:
        (flow, ledger_reader, document_fetcher). The caller owns the two
        HTTP-backed readers and closes them with aclose().
    """
    configure_logging(get_settings().app.log_level)

    ledger = RpcLedgerReader()
    fetcher = HttpDocumentFetcher()
    deriver = AddressDeriver()
    codec = RecordCodec()
    resolver = MetadataAttributeResolver(ledger, fetcher, deriver=deriver, codec=codec)

    flow = BudgetReconciliationFlow(
        ledger=ledger,
        resolver=resolver,
        deriver=deriver,
        codec=codec,
        audit_logger=AuditLogger(audit_storage),
    )

    return flow, ledger, fetcher
