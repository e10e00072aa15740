"""Record codec package."""

from src.codec.codec import RecordCodec, kind_of
from src.codec.errors import (
    CodecError,
    InvalidEncodingError,
    TruncatedRecordError,
    UnknownDiscriminatorError,
)
from src.codec.layout import (
    BUDGET_MIN_LEN,
    EXPENSE_MIN_LEN,
    decode_budget_raw,
    decode_expense_raw,
    decode_token_metadata,
)
from src.codec.schema import (
    RecordSchema,
    SchemaRegistry,
    account_discriminator,
)

__all__ = [
    "BUDGET_MIN_LEN",
    "EXPENSE_MIN_LEN",
    "CodecError",
    "InvalidEncodingError",
    "RecordCodec",
    "RecordSchema",
    "SchemaRegistry",
    "TruncatedRecordError",
    "UnknownDiscriminatorError",
    "account_discriminator",
    "decode_budget_raw",
    "decode_expense_raw",
    "decode_token_metadata",
    "kind_of",
]
