"""
Fixed Binary Layout

Byte-level primitives and the raw-layout decoders (the last decode tier).

Layout rules:
- Integers are little-endian.
- Identifiers are 32 raw bytes.
- Strings are a u32 byte length followed by UTF-8 bytes.
- 64-bit integers start on an 8-byte boundary relative to the record
  start; after a variable-length string the reader skips forward to the
  next multiple of 8. Narrower integers are not aligned.
- The first 8 bytes are the discriminator, owned by the ledger layer.
"""

import struct
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError
from solders.pubkey import Pubkey

from src.codec.errors import InvalidEncodingError, TruncatedRecordError
from src.models.records import BudgetRecord, ExpenseRecord, TokenMetadataRecord


DISCRIMINATOR_LEN = 8
PUBKEY_LEN = 32
U64_ALIGN = 8

# 8 + 32 + 32 + 2 + 4 + 1
BUDGET_MIN_LEN = 79
# 8 + 32 + 32 + 4 (empty string) -> aligned to 80, + 8 + 8 + 1 + 1
EXPENSE_MIN_LEN = 98
# key + update authority + mint + three empty strings
METADATA_MIN_LEN = 1 + 32 + 32 + 4 * 3

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

ModelT = TypeVar("ModelT", bound=BaseModel)


def align_up(offset: int, boundary: int = U64_ALIGN) -> int:
    """Next multiple of boundary at or after offset."""
    return (offset + boundary - 1) // boundary * boundary


class ByteReader:
    """
    Sequential reader over a caller-owned buffer.

    Every read checks bounds first, so a short buffer always surfaces as
    TruncatedRecordError and never as an IndexError or struct.error.
    """

    def __init__(self, data: bytes, offset: int = 0):
        self._data = data
        self.offset = offset

    def remaining(self) -> int:
        return len(self._data) - self.offset

    def take(self, size: int, field: str) -> bytes:
        end = self.offset + size
        if end > len(self._data):
            raise TruncatedRecordError(
                f"Field '{field}' needs bytes {self.offset}..{end}, "
                f"buffer is {len(self._data)} bytes"
            )
        chunk = self._data[self.offset:end]
        self.offset = end
        return chunk

    def u8(self, field: str) -> int:
        return self.take(1, field)[0]

    def u16(self, field: str) -> int:
        return _U16.unpack(self.take(2, field))[0]

    def u32(self, field: str) -> int:
        return _U32.unpack(self.take(4, field))[0]

    def u64(self, field: str) -> int:
        return _U64.unpack(self.take(8, field))[0]

    def pubkey(self, field: str) -> Pubkey:
        return Pubkey(self.take(PUBKEY_LEN, field))

    def string(self, field: str) -> str:
        length = self.u32(f"{field}.len")
        if self.offset + length > len(self._data):
            raise InvalidEncodingError(
                f"Length prefix of '{field}' ({length} bytes at offset {self.offset}) "
                f"reads past the end of a {len(self._data)}-byte buffer"
            )
        raw = self.take(length, field)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidEncodingError(f"Field '{field}' is not valid UTF-8: {e}") from e

    def align(self, boundary: int = U64_ALIGN) -> None:
        self.offset = align_up(self.offset, boundary)


class ByteWriter:
    """Sequential writer producing the same layout ByteReader consumes."""

    def __init__(self):
        self._buffer = bytearray()

    @property
    def offset(self) -> int:
        return len(self._buffer)

    def raw(self, data: bytes) -> None:
        self._buffer.extend(data)

    def u8(self, value: int) -> None:
        self._buffer.append(value)

    def u16(self, value: int) -> None:
        self._buffer.extend(_U16.pack(value))

    def u32(self, value: int) -> None:
        self._buffer.extend(_U32.pack(value))

    def u64(self, value: int) -> None:
        self._buffer.extend(_U64.pack(value))

    def pubkey(self, value: Pubkey) -> None:
        self._buffer.extend(bytes(value))

    def string(self, value: str) -> None:
        encoded = value.encode("utf-8")
        self.u32(len(encoded))
        self._buffer.extend(encoded)

    def align(self, boundary: int = U64_ALIGN) -> None:
        self._buffer.extend(b"\x00" * (align_up(self.offset, boundary) - self.offset))

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


def build_model(model: Type[ModelT], **fields) -> ModelT:
    """Construct a record model, reporting range violations as encoding errors."""
    try:
        return model(**fields)
    except ValidationError as e:
        raise InvalidEncodingError(
            f"Decoded {model.__name__} violates field constraints: {e}"
        ) from e


# =============================================================================
# RAW LAYOUT DECODERS
# =============================================================================

def decode_budget_raw(data: bytes) -> BudgetRecord:
    """Walk the budget layout by fixed offsets; the discriminator is not checked."""
    if len(data) < BUDGET_MIN_LEN:
        raise TruncatedRecordError(
            f"Budget record needs {BUDGET_MIN_LEN} bytes, got {len(data)}"
        )
    return build_model(
        BudgetRecord,
        authority=Pubkey(data[8:40]),
        collection_identifier=Pubkey(data[40:72]),
        year=_U16.unpack_from(data, 72)[0],
        expense_count=_U32.unpack_from(data, 74)[0],
        bump=data[78],
    )


def decode_expense_raw(data: bytes) -> ExpenseRecord:
    """Walk the expense layout; the discriminator is not checked."""
    if len(data) < EXPENSE_MIN_LEN:
        raise TruncatedRecordError(
            f"Expense record needs at least {EXPENSE_MIN_LEN} bytes, got {len(data)}"
        )
    reader = ByteReader(data, offset=DISCRIMINATOR_LEN)
    budget_address = reader.pubkey("budget")
    mint_identifier = reader.pubkey("mint")
    expense_type = reader.string("expense_type")
    reader.align()
    approved_amount = reader.u64("approved_amount")
    spent_on_record = reader.u64("spent")
    variance_pct = reader.u8("variance_pct")
    bump = reader.u8("bump")
    return build_model(
        ExpenseRecord,
        budget_address=budget_address,
        mint_identifier=mint_identifier,
        expense_type=expense_type,
        approved_amount=approved_amount,
        spent_on_record=spent_on_record,
        variance_pct=variance_pct,
        bump=bump,
    )


def decode_token_metadata(data: bytes) -> TokenMetadataRecord:
    """
    Decode the leading fields of a token metadata record.

    The metadata program pads its strings with NUL bytes to a fixed
    width; those are stripped.
    """
    if len(data) < METADATA_MIN_LEN:
        raise TruncatedRecordError(
            f"Token metadata record needs at least {METADATA_MIN_LEN} bytes, got {len(data)}"
        )
    reader = ByteReader(data)
    key = reader.u8("key")
    update_authority = reader.pubkey("update_authority")
    mint = reader.pubkey("mint")
    name = reader.string("name").rstrip("\x00")
    symbol = reader.string("symbol").rstrip("\x00")
    uri = reader.string("uri").rstrip("\x00")
    return build_model(
        TokenMetadataRecord,
        key=key,
        update_authority=update_authority,
        mint=mint,
        name=name,
        symbol=symbol,
        uri=uri,
    )
