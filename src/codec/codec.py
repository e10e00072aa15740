"""
Record Codec

Decodes raw ledger bytes into typed records with a three-tier strategy,
attempted in order, first success wins:

1. STRUCTURED - schema registered under the canonical kind name;
   the discriminator must match before any field is read.
2. ALIAS - the same layout under the alternate casing of the name.
   Older schema versions published the records under that name, which
   changes the discriminator but not the layout.
3. RAW - manual walk of the fixed layout, discriminator ignored.

The codec never mutates its input and holds no per-call state, so one
instance can serve any number of concurrent decodes.
"""

from typing import Optional, Union

import structlog

from src.codec.errors import (
    CodecError,
    InvalidEncodingError,
    UnknownDiscriminatorError,
)
from src.codec.layout import (
    decode_budget_raw,
    decode_expense_raw,
    decode_token_metadata,
)
from src.codec.schema import RecordSchema, SchemaRegistry
from src.models.records import (
    EXPENSE_TYPE_MAX_BYTES,
    BudgetRecord,
    DecodedRecord,
    DecodeTier,
    ExpenseRecord,
    LedgerRecord,
    RecordKind,
    TokenMetadataRecord,
)


_RAW_DECODERS = {
    RecordKind.BUDGET: decode_budget_raw,
    RecordKind.EXPENSE: decode_expense_raw,
}


def kind_of(record: LedgerRecord) -> RecordKind:
    if isinstance(record, BudgetRecord):
        return RecordKind.BUDGET
    if isinstance(record, ExpenseRecord):
        return RecordKind.EXPENSE
    raise TypeError(f"Not a ledger record: {type(record).__name__}")


class RecordCodec:
    """
    Encodes and decodes budget and expense records.

    Args:
        registry: Schemas available to the structured and alias tiers.
                  Defaults to canonical + alias names for both kinds.
    """

    def __init__(self, registry: Optional[SchemaRegistry] = None):
        self._registry = registry if registry is not None else SchemaRegistry.default()
        self._logger = structlog.get_logger(__name__)

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def decode(
        self,
        kind: Union[RecordKind, str],
        raw: bytes,
        allow_raw: bool = True,
    ) -> DecodedRecord:
        """
        Decode raw bytes as a record of the given kind.

        Args:
            kind: Record kind (or its canonical name)
            raw: Full record bytes including the discriminator
            allow_raw: Fall back to the raw layout tier. With False,
                       an unrecognised discriminator is an error.

        Raises:
            TruncatedRecordError, InvalidEncodingError, UnknownDiscriminatorError
        """
        kind = RecordKind(kind)
        data = bytes(raw)
        failures: list[CodecError] = []

        for tier, name in ((DecodeTier.STRUCTURED, kind.value), (DecodeTier.ALIAS, kind.alias)):
            schema = self._registry.get(name)
            if schema is None:
                continue
            try:
                record = schema.decode(data)
            except CodecError as e:
                self._logger.debug(
                    "decode_tier_failed",
                    kind=kind.value,
                    tier=tier.value,
                    schema=name,
                    error=str(e),
                )
                failures.append(e)
                continue
            return DecodedRecord(
                kind=kind,
                record=record,
                tier=tier,
                discriminator=data[:8],
            )

        if not allow_raw:
            # A body error means the discriminator matched; report that over a mismatch
            structural = [e for e in failures if not isinstance(e, UnknownDiscriminatorError)]
            if structural:
                raise structural[0]
            if failures:
                raise failures[-1]
            raise UnknownDiscriminatorError(
                expected=kind.value,
                found=data[:8],
                message=f"No schema registered for {kind.value} or {kind.alias}",
            )

        record = _RAW_DECODERS[kind](data)
        return DecodedRecord(
            kind=kind,
            record=record,
            tier=DecodeTier.RAW,
            discriminator=data[:8],
        )

    def decode_budget(self, raw: bytes, allow_raw: bool = True) -> DecodedRecord:
        return self.decode(RecordKind.BUDGET, raw, allow_raw=allow_raw)

    def decode_expense(self, raw: bytes, allow_raw: bool = True) -> DecodedRecord:
        return self.decode(RecordKind.EXPENSE, raw, allow_raw=allow_raw)

    def decode_token_metadata(self, raw: bytes) -> TokenMetadataRecord:
        return decode_token_metadata(bytes(raw))

    def encode(
        self,
        record: LedgerRecord,
        discriminator_name: Optional[str] = None,
        space: Optional[int] = None,
    ) -> bytes:
        """
        Encode a record with its discriminator.

        Args:
            record: Budget or expense record
            discriminator_name: Name to hash into the discriminator;
                                defaults to the canonical kind name
            space: Allocated record size; output is zero-padded to it

        Raises:
            InvalidEncodingError: If the expense type is too long or the
                                  encoding does not fit in space
        """
        kind = kind_of(record)
        if isinstance(record, ExpenseRecord):
            type_len = len(record.expense_type.encode("utf-8"))
            if type_len > EXPENSE_TYPE_MAX_BYTES:
                raise InvalidEncodingError(
                    f"Expense type is {type_len} bytes; the maximum is {EXPENSE_TYPE_MAX_BYTES}"
                )

        encoded = RecordSchema.for_kind(kind, discriminator_name).encode(record)

        if space is not None:
            if len(encoded) > space:
                raise InvalidEncodingError(
                    f"Encoded {kind.value} is {len(encoded)} bytes; allocated space is {space}"
                )
            encoded = encoded + b"\x00" * (space - len(encoded))
        return encoded
