"""
Approved Amount Resolution

The approved amount stored on an expense record is written once at
creation. The attribute document attached to the expense mint carries
the same figure as an "Approved Amount" trait and is the canonical
source: the dashboard reads it first and only falls back to the record
when the document has nothing to say.

Resolution path:
1. Derive the token metadata address of the expense mint
2. Read and decode the metadata record to get its uri
3. Fetch the JSON document at the uri
4. Find the trait in attributes[] {trait_type, value}
"""

from typing import Any, Optional

import structlog

from src.addressing import AddressDeriver
from src.codec import CodecError, RecordCodec
from src.config import get_settings
from src.models.reconciliation import ExpenseAttributes
from src.models.records import U64_MAX, ExpenseRecord
from src.services.ledger import LedgerError, LedgerReaderInterface
from src.services.metadata.interface import (
    AttributeFetchError,
    AttributeResolverInterface,
    DocumentFetcherInterface,
)


APPROVED_AMOUNT_TRAIT = "Approved Amount"
U64_MAX_DIGITS = len(str(U64_MAX))


def _parse_amount(value: Any) -> Optional[int]:
    """Accept non-negative integers, integral floats and digit strings."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        amount = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        amount = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text.isascii() or not text.isdigit():
            return None
        # u64 max has 20 digits; longer strings cannot fit and int() refuses huge ones
        digits = text.lstrip("0") or "0"
        if len(digits) > U64_MAX_DIGITS:
            return None
        amount = int(digits)
    else:
        return None
    if not 0 <= amount <= U64_MAX:
        return None
    return amount


def extract_approved_amount(
    document: Optional[dict[str, Any]],
    trait_type: str = APPROVED_AMOUNT_TRAIT,
) -> Optional[int]:
    """
    Read the approved amount trait from an attribute document.

    Returns None when the document, the attributes list or the trait is
    missing, or when the value is not a valid u64.
    """
    if not document:
        return None
    attributes = document.get("attributes")
    if not isinstance(attributes, list):
        return None
    for attribute in attributes:
        if isinstance(attribute, dict) and attribute.get("trait_type") == trait_type:
            return _parse_amount(attribute.get("value"))
    return None


class MetadataAttributeResolver(AttributeResolverInterface):
    """
    Resolves expense attributes from the mint's metadata document.

    Args:
        ledger: Reader for the token metadata record
        fetcher: Fetcher for the JSON document the record points to
        deriver: Address deriver (only the metadata program is used)
        codec: Codec used to decode the metadata record
    """

    def __init__(
        self,
        ledger: LedgerReaderInterface,
        fetcher: DocumentFetcherInterface,
        deriver: Optional[AddressDeriver] = None,
        codec: Optional[RecordCodec] = None,
    ):
        self._ledger = ledger
        self._fetcher = fetcher
        self._deriver = deriver or AddressDeriver()
        self._codec = codec or RecordCodec()
        self._trait = get_settings().metadata.approved_amount_trait
        self._logger = structlog.get_logger(__name__)

    async def resolve(self, expense: ExpenseRecord) -> ExpenseAttributes:
        metadata_address = self._deriver.metadata_address(expense.mint_identifier).address

        try:
            raw = await self._ledger.get_raw_account(metadata_address)
        except LedgerError as e:
            raise AttributeFetchError(
                str(metadata_address),
                f"Reading metadata record {metadata_address} failed: {e}",
            ) from e
        if raw is None:
            return ExpenseAttributes()

        try:
            metadata = self._codec.decode_token_metadata(raw)
        except CodecError as e:
            self._logger.warning(
                "metadata_record_undecodable",
                mint=str(expense.mint_identifier),
                address=str(metadata_address),
                error=str(e),
            )
            return ExpenseAttributes()

        name = metadata.name or None
        if not metadata.uri:
            return ExpenseAttributes(name=name)

        document = await self._fetcher.fetch_document(metadata.uri)
        if document is not None and isinstance(document.get("name"), str):
            name = document["name"] or name

        return ExpenseAttributes(
            approved_amount=extract_approved_amount(document, self._trait),
            name=name,
            uri=metadata.uri,
        )
