"""
Attribute Services Package

Resolves the canonical approved amount of an expense from the
attribute document referenced by its token metadata.
"""

from src.services.metadata.interface import (
    AttributeFetchError,
    AttributeResolverInterface,
    DocumentFetcherInterface,
)
from src.services.metadata.http_fetcher import HttpDocumentFetcher
from src.services.metadata.resolver import (
    APPROVED_AMOUNT_TRAIT,
    MetadataAttributeResolver,
    extract_approved_amount,
)

__all__ = [
    # Interfaces
    "AttributeResolverInterface",
    "DocumentFetcherInterface",
    # Exceptions
    "AttributeFetchError",
    # Implementations
    "HttpDocumentFetcher",
    "MetadataAttributeResolver",
    # Helpers
    "APPROVED_AMOUNT_TRAIT",
    "extract_approved_amount",
]
