"""Address derivation package."""

from src.addressing.deriver import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_METADATA_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    AddressDeriver,
    AddressMismatchError,
    DerivationError,
    DerivationExhaustedError,
    InvalidSeedError,
    NamespaceTag,
    derive_address,
    encode_index,
    find_program_address,
)

__all__ = [
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "TOKEN_METADATA_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "AddressDeriver",
    "AddressMismatchError",
    "DerivationError",
    "DerivationExhaustedError",
    "InvalidSeedError",
    "NamespaceTag",
    "derive_address",
    "encode_index",
    "find_program_address",
]
