"""
Abstract Attribute Interfaces

Two seams:
- DocumentFetcherInterface: fetch a JSON document by URI
- AttributeResolverInterface: the authoritative attributes of an expense

"Unavailable" (no document, no trait) is a normal answer and comes back
as None. AttributeFetchError is reserved for a document that exists but
could not be retrieved or parsed; the reconciler skips the record then
rather than silently falling back to a possibly stale on-record value.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from src.models.reconciliation import ExpenseAttributes
from src.models.records import ExpenseRecord


class DocumentFetcherInterface(ABC):
    """Fetches JSON documents from an external content store."""

    @abstractmethod
    async def fetch_document(self, uri: str) -> Optional[dict[str, Any]]:
        """
        Fetch the document at uri.

        Returns:
            The decoded JSON object, or None if there is no document

        Raises:
            AttributeFetchError: If the store failed or the body is not a JSON object
        """
        pass


class AttributeResolverInterface(ABC):
    """Supplies the canonical attributes of an expense."""

    @abstractmethod
    async def resolve(self, expense: ExpenseRecord) -> ExpenseAttributes:
        """
        Resolve attributes for an expense.

        Returns:
            ExpenseAttributes; approved_amount is None when unavailable

        Raises:
            AttributeFetchError: If the document could not be retrieved
        """
        pass

    async def resolve_approved_amount(self, expense: ExpenseRecord) -> Optional[int]:
        """Convenience accessor for the approved amount alone."""
        attributes = await self.resolve(expense)
        return attributes.approved_amount


class AttributeFetchError(Exception):
    """The attribute document exists but could not be fetched or parsed."""

    def __init__(self, uri: str, message: str):
        self.uri = uri
        super().__init__(message)
