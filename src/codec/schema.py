"""
Record Schemas and the Schema Registry

A schema is the field list of a record kind plus the name it was
published under. The name matters: the 8-byte discriminator is
sha256("account:<name>")[:8], so the same layout published under a
differently-cased name carries a different discriminator.

DESIGN DECISION: The registry is explicit. A codec built without a name
in its registry simply skips that decode tier, so "schema unavailable"
is a configuration fact rather than a runtime guess.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from src.codec.errors import TruncatedRecordError, UnknownDiscriminatorError
from src.codec.layout import (
    BUDGET_MIN_LEN,
    DISCRIMINATOR_LEN,
    EXPENSE_MIN_LEN,
    ByteReader,
    ByteWriter,
    build_model,
)
from src.models.records import BudgetRecord, ExpenseRecord, LedgerRecord, RecordKind


class FieldType(str, Enum):
    PUBKEY = "pubkey"
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    STRING = "string"


@dataclass(frozen=True)
class FieldSpec:
    """One field: its published name, wire type and model attribute."""
    name: str
    type: FieldType
    attr: str


BUDGET_FIELDS = (
    FieldSpec("authority", FieldType.PUBKEY, "authority"),
    FieldSpec("collection_mint", FieldType.PUBKEY, "collection_identifier"),
    FieldSpec("year", FieldType.U16, "year"),
    FieldSpec("expense_count", FieldType.U32, "expense_count"),
    FieldSpec("bump", FieldType.U8, "bump"),
)

EXPENSE_FIELDS = (
    FieldSpec("budget", FieldType.PUBKEY, "budget_address"),
    FieldSpec("mint", FieldType.PUBKEY, "mint_identifier"),
    FieldSpec("expense_type", FieldType.STRING, "expense_type"),
    FieldSpec("approved_amount", FieldType.U64, "approved_amount"),
    FieldSpec("spent", FieldType.U64, "spent_on_record"),
    FieldSpec("variance_pct", FieldType.U8, "variance_pct"),
    FieldSpec("bump", FieldType.U8, "bump"),
)

_FIELDS = {
    RecordKind.BUDGET: BUDGET_FIELDS,
    RecordKind.EXPENSE: EXPENSE_FIELDS,
}

_MODELS = {
    RecordKind.BUDGET: BudgetRecord,
    RecordKind.EXPENSE: ExpenseRecord,
}

_MIN_LENGTHS = {
    RecordKind.BUDGET: BUDGET_MIN_LEN,
    RecordKind.EXPENSE: EXPENSE_MIN_LEN,
}


def account_discriminator(name: str) -> bytes:
    """First 8 bytes of sha256("account:<name>")."""
    return hashlib.sha256(f"account:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_LEN]


def _read(reader: ByteReader, spec: FieldSpec) -> Any:
    if spec.type == FieldType.PUBKEY:
        return reader.pubkey(spec.name)
    if spec.type == FieldType.U8:
        return reader.u8(spec.name)
    if spec.type == FieldType.U16:
        return reader.u16(spec.name)
    if spec.type == FieldType.U32:
        return reader.u32(spec.name)
    if spec.type == FieldType.U64:
        reader.align()
        return reader.u64(spec.name)
    return reader.string(spec.name)


def _write(writer: ByteWriter, spec: FieldSpec, value: Any) -> None:
    if spec.type == FieldType.PUBKEY:
        writer.pubkey(value)
    elif spec.type == FieldType.U8:
        writer.u8(value)
    elif spec.type == FieldType.U16:
        writer.u16(value)
    elif spec.type == FieldType.U32:
        writer.u32(value)
    elif spec.type == FieldType.U64:
        writer.align()
        writer.u64(value)
    else:
        writer.string(value)


@dataclass(frozen=True)
class RecordSchema:
    """Field layout of a record kind, published under a name."""
    name: str
    kind: RecordKind

    @classmethod
    def for_kind(cls, kind: RecordKind, name: Optional[str] = None) -> "RecordSchema":
        return cls(name=name or kind.value, kind=kind)

    @property
    def fields(self) -> tuple[FieldSpec, ...]:
        return _FIELDS[self.kind]

    @property
    def discriminator(self) -> bytes:
        return account_discriminator(self.name)

    @property
    def min_length(self) -> int:
        return _MIN_LENGTHS[self.kind]

    def decode(self, data: bytes) -> LedgerRecord:
        """
        Validate the discriminator, then read every field in order.

        Raises:
            TruncatedRecordError: If the buffer is shorter than the layout
            UnknownDiscriminatorError: If the leading bytes name another schema
            InvalidEncodingError: If a string overruns or a value is out of range
        """
        if len(data) < self.min_length:
            raise TruncatedRecordError(
                f"{self.name} needs at least {self.min_length} bytes, got {len(data)}"
            )
        found = data[:DISCRIMINATOR_LEN]
        if found != self.discriminator:
            raise UnknownDiscriminatorError(
                expected=self.name,
                found=found,
                message=(
                    f"Discriminator {found.hex()} is not {self.name} "
                    f"({self.discriminator.hex()})"
                ),
            )
        reader = ByteReader(data, offset=DISCRIMINATOR_LEN)
        values = {spec.attr: _read(reader, spec) for spec in self.fields}
        return build_model(_MODELS[self.kind], **values)

    def encode(self, record: LedgerRecord) -> bytes:
        writer = ByteWriter()
        writer.raw(self.discriminator)
        for spec in self.fields:
            _write(writer, spec, getattr(record, spec.attr))
        return writer.getvalue()


class SchemaRegistry:
    """Name → schema lookup used by the structured and alias tiers."""

    def __init__(self, schemas: Iterable[RecordSchema] = ()):
        self._schemas: dict[str, RecordSchema] = {}
        for schema in schemas:
            self.register(schema)

    @classmethod
    def default(cls) -> "SchemaRegistry":
        """Canonical and alias names for every record kind."""
        registry = cls()
        for kind in RecordKind:
            registry.register(RecordSchema.for_kind(kind))
            registry.register(RecordSchema.for_kind(kind, kind.alias))
        return registry

    def register(self, schema: RecordSchema) -> None:
        self._schemas[schema.name] = schema

    def get(self, name: str) -> Optional[RecordSchema]:
        return self._schemas.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._schemas

    def names(self) -> list[str]:
        return sorted(self._schemas)
