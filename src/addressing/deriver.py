"""
Record Address Derivation

Budget and expense records live at program-derived addresses: addresses
computed from a namespace tag, seed bytes and a program scope, that no
private key can sign for. Anyone holding the same inputs can recompute
the address without a lookup.

CRITICAL: The expense index seed is a 4-byte little-endian unsigned
integer. The read path and the write path derive addresses
independently, so any other serialization points at a record that does
not exist.

Everything here is pure: no network, no clock, no randomness.
"""

import hashlib
from enum import Enum
from typing import Iterator, Optional, Sequence, Union

from solders.pubkey import Pubkey

from src.config import get_settings
from src.models.records import DerivedAddress, U32_MAX


PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LEN = 32
# The bump byte takes the sixteenth slot
MAX_SEEDS = 15

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")


Seed = Union[bytes, bytearray, Pubkey]


class NamespaceTag(str, Enum):
    """Reserved leading seeds. Nothing else may be used as a tag."""
    BUDGET = "budget"
    EXPENSE = "expense"
    METADATA = "metadata"


class DerivationError(Exception):
    """Base exception for address derivation."""
    pass


class InvalidSeedError(DerivationError):
    """A seed or namespace tag cannot be used for derivation."""
    pass


class DerivationExhaustedError(DerivationError):
    """No bump in 0..255 yields an off-curve address."""
    pass


class AddressMismatchError(DerivationError):
    """A stored record does not match the address it was read from."""
    pass


def encode_index(index: int) -> bytes:
    """Serialize an expense index as a u32 little-endian seed."""
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidSeedError(f"Index must be an integer, got {type(index).__name__}")
    if not 0 <= index <= U32_MAX:
        raise InvalidSeedError(f"Index {index} does not fit in an unsigned 32-bit integer")
    return index.to_bytes(4, "little")


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, Pubkey):
        return bytes(seed)
    if isinstance(seed, (bytes, bytearray)):
        return bytes(seed)
    raise InvalidSeedError(f"Seeds must be bytes, got {type(seed).__name__}")


def _normalize_seeds(seeds: Sequence[Seed]) -> list[bytes]:
    normalized = [_seed_bytes(seed) for seed in seeds]
    if len(normalized) > MAX_SEEDS:
        raise InvalidSeedError(f"At most {MAX_SEEDS} seeds are allowed, got {len(normalized)}")
    for position, seed in enumerate(normalized):
        if not seed:
            raise InvalidSeedError(f"Seed {position} is empty")
        if len(seed) > MAX_SEED_LEN:
            raise InvalidSeedError(
                f"Seed {position} is {len(seed)} bytes; the maximum is {MAX_SEED_LEN}"
            )
    return normalized


def create_program_address(
    seeds: Sequence[bytes],
    bump: int,
    program_id: Pubkey,
) -> Optional[Pubkey]:
    """
    Hash seeds, bump and program id into a candidate address.

    Returns None when the candidate is a valid ed25519 point, i.e. an
    address somebody could hold a key for.
    """
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(bytes([bump]))
    hasher.update(bytes(program_id))
    hasher.update(PDA_MARKER)
    candidate = Pubkey(hasher.digest())
    if candidate.is_on_curve():
        return None
    return candidate


def find_program_address(seeds: Sequence[Seed], program_id: Pubkey) -> DerivedAddress:
    """
    Search bumps from 255 down and return the first off-curve address.

    Raises:
        InvalidSeedError: If any seed is empty or too long
        DerivationExhaustedError: If no bump works
    """
    normalized = _normalize_seeds(seeds)
    for bump in range(255, -1, -1):
        address = create_program_address(normalized, bump, program_id)
        if address is not None:
            return DerivedAddress(address=address, bump=bump)
    raise DerivationExhaustedError(
        f"No valid bump for {len(normalized)} seeds under program {program_id}"
    )


def derive_address(
    namespace_tag: Union[NamespaceTag, str],
    seeds: Sequence[Seed],
    program_id: Pubkey,
) -> DerivedAddress:
    """
    Derive a record address under a reserved namespace tag.

    The tag becomes the first seed. Identical inputs always give the
    identical (address, bump) pair.
    """
    try:
        tag = NamespaceTag(namespace_tag)
    except ValueError:
        raise InvalidSeedError(f"'{namespace_tag}' is not a reserved namespace tag")
    return find_program_address([tag.value.encode("utf-8"), *seeds], program_id)


class AddressDeriver:
    """
    Derives every address the reconciler reads from.

    Bound to one program scope; budget and expense addresses are only
    unique within that scope.
    """

    def __init__(self, program_id: Optional[Pubkey] = None):
        self._program_id = program_id or get_settings().ledger.program_pubkey

    @property
    def program_id(self) -> Pubkey:
        return self._program_id

    def budget_address(self, collection_identifier: Pubkey) -> DerivedAddress:
        """Seeds: ["budget", collection]."""
        return derive_address(
            NamespaceTag.BUDGET,
            [collection_identifier],
            self._program_id,
        )

    def expense_address(self, collection_identifier: Pubkey, index: int) -> DerivedAddress:
        """Seeds: ["expense", collection, u32_le(index)]."""
        return derive_address(
            NamespaceTag.EXPENSE,
            [collection_identifier, encode_index(index)],
            self._program_id,
        )

    def expense_addresses(
        self,
        collection_identifier: Pubkey,
        expense_count: int,
    ) -> Iterator[tuple[int, DerivedAddress]]:
        """Addresses of every expense index in [0, expense_count)."""
        for index in range(expense_count):
            yield index, self.expense_address(collection_identifier, index)

    def metadata_address(self, mint: Pubkey) -> DerivedAddress:
        """Token metadata record of a mint, under the token-metadata program."""
        return derive_address(
            NamespaceTag.METADATA,
            [TOKEN_METADATA_PROGRAM_ID, mint],
            TOKEN_METADATA_PROGRAM_ID,
        )

    def associated_token_address(self, owner: Pubkey, mint: Pubkey) -> DerivedAddress:
        """
        Token holding address of (owner, mint).

        For an expense the owner is the expense record address itself;
        its balance is the remaining spend capacity.
        """
        return find_program_address(
            [owner, TOKEN_PROGRAM_ID, mint],
            ASSOCIATED_TOKEN_PROGRAM_ID,
        )

    @staticmethod
    def verify_bump(stored_bump: int, derived: DerivedAddress) -> None:
        """Stored bump must equal the one derivation produced."""
        if stored_bump != derived.bump:
            raise AddressMismatchError(
                f"Record at {derived.address} stores bump {stored_bump}, "
                f"derivation produced {derived.bump}"
            )
