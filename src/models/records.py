"""
Ledger Record Models

These models define the strict schemas of the records stored at derived
addresses on the ledger. They are designed to:
1. Enforce the integer widths of the binary layout at construction time
2. Compare by value, so decode(encode(record)) == record is checkable
3. Be immutable once decoded

DESIGN DECISION: Identifiers are solders Pubkey objects rather than raw
bytes or base58 strings. Anything 32 bytes long (or its base58 text) is
accepted and normalised on the way in.
"""

from enum import Enum
from typing import Annotated, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
)
from solders.pubkey import Pubkey


U8_MAX = 2**8 - 1
U16_MAX = 2**16 - 1
U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1

EXPENSE_TYPE_MAX_BYTES = 50


def _coerce_pubkey(value):
    """Accept Pubkey, 32 raw bytes or base58 text."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if len(raw) != 32:
            raise ValueError(f"Identifier must be 32 bytes, got {len(raw)}")
        return Pubkey(raw)
    if isinstance(value, str):
        try:
            return Pubkey.from_string(value)
        except ValueError as e:
            raise ValueError(f"Invalid base58 identifier: {value}") from e
    return value


Identifier = Annotated[Pubkey, BeforeValidator(_coerce_pubkey)]


# =============================================================================
# ENUMS
# =============================================================================

class RecordKind(str, Enum):
    """
    Record kinds stored by the budget program.

    The value is the canonical schema name; it is also the input to the
    8-byte discriminator hash.
    """
    BUDGET = "BudgetPDA"
    EXPENSE = "ExpensePDA"

    @property
    def alias(self) -> str:
        """Alternate casing emitted by older schema versions."""
        return self.value[0].lower() + self.value[1:]


class DecodeTier(str, Enum):
    """Which decode strategy produced a record."""
    STRUCTURED = "structured"
    ALIAS = "alias"
    RAW = "raw"


# =============================================================================
# RECORDS
# =============================================================================

class BudgetRecord(BaseModel):
    """
    One budget per collection.

    expense_count only ever grows: it is the derivation index the next
    expense will take.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    authority: Identifier = Field(
        ...,
        description="Owner identity, immutable"
    )
    collection_identifier: Identifier = Field(
        ...,
        description="Collection the budget belongs to; seed of its address"
    )
    year: int = Field(
        ...,
        ge=0,
        le=U16_MAX,
        description="Fiscal year tag"
    )
    expense_count: int = Field(
        default=0,
        ge=0,
        le=U32_MAX,
        description="Number of expenses created so far"
    )
    bump: int = Field(
        ...,
        ge=0,
        le=U8_MAX,
        description="Derivation nonce stored for verification"
    )

    @property
    def expense_indices(self) -> range:
        """Derivation indices of every expense this budget claims to own."""
        return range(self.expense_count)


class ExpenseRecord(BaseModel):
    """
    One expense per (collection, index) pair.

    CRITICAL: spent_on_record is maintained by the ledger side and can
    lag behind actual token burns. It is a last-resort fallback only.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    budget_address: Identifier = Field(
        ...,
        description="Back-reference to the owning budget record"
    )
    mint_identifier: Identifier = Field(
        ...,
        description="Fungible unit representing remaining spend capacity"
    )
    expense_type: str = Field(
        ...,
        description="Free-form expense category"
    )
    approved_amount: int = Field(
        ...,
        ge=0,
        le=U64_MAX,
        description="Ceiling on spend as stored on the record"
    )
    spent_on_record: int = Field(
        default=0,
        ge=0,
        le=U64_MAX,
        description="Spend counter maintained by the ledger program"
    )
    variance_pct: int = Field(
        default=0,
        ge=0,
        le=100,
        description="Allowed overspend percentage above approved_amount"
    )
    bump: int = Field(
        ...,
        ge=0,
        le=U8_MAX,
        description="Derivation nonce stored for verification"
    )


class TokenMetadataRecord(BaseModel):
    """
    Token metadata record attached to a mint.

    Only the leading fields are modelled; the uri points at the
    attribute document holding the canonical approved amount.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    key: int = Field(ge=0, le=U8_MAX)
    update_authority: Identifier
    mint: Identifier
    name: str = ""
    symbol: str = ""
    uri: str = ""


LedgerRecord = Union[BudgetRecord, ExpenseRecord]


class DerivedAddress(BaseModel):
    """A program-derived address and the bump that produced it."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    address: Identifier
    bump: int = Field(ge=0, le=U8_MAX)

    def __str__(self) -> str:
        return str(self.address)


class DecodedRecord(BaseModel):
    """Result of RecordCodec.decode."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    kind: RecordKind
    record: LedgerRecord
    tier: DecodeTier
    discriminator: bytes = Field(
        ...,
        min_length=8,
        max_length=8,
        description="Leading 8 bytes as found in the buffer"
    )
