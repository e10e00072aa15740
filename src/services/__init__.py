"""Services package."""

from src.services.ledger import (
    InMemoryLedgerReader,
    LedgerConnectionError,
    LedgerError,
    LedgerReaderInterface,
    RecordUnavailableError,
    RpcLedgerReader,
)
from src.services.metadata import (
    AttributeFetchError,
    AttributeResolverInterface,
    DocumentFetcherInterface,
    HttpDocumentFetcher,
    MetadataAttributeResolver,
    extract_approved_amount,
)
from src.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    StorageError,
)

__all__ = [
    # Ledger services
    "InMemoryLedgerReader",
    "LedgerConnectionError",
    "LedgerError",
    "LedgerReaderInterface",
    "RecordUnavailableError",
    "RpcLedgerReader",
    # Attribute services
    "AttributeFetchError",
    "AttributeResolverInterface",
    "DocumentFetcherInterface",
    "HttpDocumentFetcher",
    "MetadataAttributeResolver",
    "extract_approved_amount",
    # Audit storage
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "StorageError",
]
