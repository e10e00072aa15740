"""
Tests for attribute resolution and the HTTP-backed collaborators.

No network: the JSON-RPC reader and the document fetcher are driven
through httpx.MockTransport, the resolver through the in-memory ledger.
"""

import base64
import json
import struct
from typing import Any, Optional

import httpx
import pytest
from solders.pubkey import Pubkey

from src.addressing import AddressDeriver
from src.config import get_settings
from src.config.settings import DEFAULT_PROGRAM_ID
from src.models.records import ExpenseRecord
from src.services.ledger import (
    InMemoryLedgerReader,
    LedgerConnectionError,
    RecordUnavailableError,
    RpcLedgerReader,
)
from src.services.metadata import (
    AttributeFetchError,
    DocumentFetcherInterface,
    HttpDocumentFetcher,
    MetadataAttributeResolver,
    extract_approved_amount,
)


PROGRAM_ID = Pubkey.from_string(DEFAULT_PROGRAM_ID)
AUTHORITY = Pubkey(bytes([1]) * 32)
MINT = Pubkey(bytes([4]) * 32)
URI = "https://example.org/expense.json"


def metadata_bytes(name: str = "Travel", uri: str = URI) -> bytes:
    def string(text: str) -> bytes:
        encoded = text.encode("utf-8")
        return struct.pack("<I", len(encoded)) + encoded

    return bytes([4]) + bytes(AUTHORITY) + bytes(MINT) + string(name) + string("EXP") + string(uri)


def make_expense() -> ExpenseRecord:
    return ExpenseRecord(
        budget_address=AUTHORITY,
        mint_identifier=MINT,
        expense_type="Travel",
        approved_amount=500_000_000,
        bump=255,
    )


class FakeDocumentFetcher(DocumentFetcherInterface):
    """Serves documents from a dict and records requested URIs."""

    def __init__(self, documents: Optional[dict[str, Any]] = None, error: Optional[Exception] = None):
        self.documents = documents or {}
        self.error = error
        self.requested: list[str] = []

    async def fetch_document(self, uri: str) -> Optional[dict[str, Any]]:
        self.requested.append(uri)
        if self.error:
            raise self.error
        return self.documents.get(uri)


class TestExtractApprovedAmount:
    """Tests for reading the trait out of a document."""

    def test_integer_value(self):
        """Test integer trait values."""
        document = {"attributes": [{"trait_type": "Approved Amount", "value": 500_000_000}]}
        assert extract_approved_amount(document) == 500_000_000

    def test_string_value(self):
        """Test decimal string trait values."""
        document = {"attributes": [
            {"trait_type": "Category", "value": "Travel"},
            {"trait_type": "Approved Amount", "value": " 750 "},
        ]}
        assert extract_approved_amount(document) == 750

    def test_integral_float(self):
        """Test JSON numbers written with a decimal point."""
        document = {"attributes": [{"trait_type": "Approved Amount", "value": 1000.0}]}
        assert extract_approved_amount(document) == 1000

    def test_unusable_values(self):
        """Test anything else is unavailable."""
        for value in ("12.5", "-3", "abc", 12.5, -1, True, None, 2**64, {"a": 1}):
            document = {"attributes": [{"trait_type": "Approved Amount", "value": value}]}
            assert extract_approved_amount(document) is None

    def test_oversized_digit_strings(self):
        """Test digit strings too long for a u64 are unavailable, not errors."""
        for value in ("9" * 5000, "1" + "0" * 20, "18446744073709551616"):
            document = {"attributes": [{"trait_type": "Approved Amount", "value": value}]}
            assert extract_approved_amount(document) is None

    def test_leading_zeros(self):
        """Test zero padding does not count against the u64 width."""
        for value, expected in (("0" * 30 + "5", 5), ("0" * 5000 + "7", 7), ("000", 0)):
            document = {"attributes": [{"trait_type": "Approved Amount", "value": value}]}
            assert extract_approved_amount(document) == expected
        document = {"attributes": [{"trait_type": "Approved Amount", "value": "18446744073709551615"}]}
        assert extract_approved_amount(document) == 2**64 - 1

    def test_missing_pieces(self):
        """Test missing document, attributes or trait."""
        assert extract_approved_amount(None) is None
        assert extract_approved_amount({}) is None
        assert extract_approved_amount({"attributes": "nope"}) is None
        assert extract_approved_amount({"attributes": [{"trait_type": "Other", "value": 1}]}) is None

    def test_custom_trait(self):
        """Test the trait name is configurable."""
        document = {"attributes": [{"trait_type": "Budget", "value": 9}]}
        assert extract_approved_amount(document, "Budget") == 9


class TestMetadataAttributeResolver:
    """Tests for the metadata → document → trait resolution path."""

    def _resolver(self, ledger, fetcher):
        return MetadataAttributeResolver(ledger, fetcher, deriver=AddressDeriver(PROGRAM_ID))

    def _ledger_with_metadata(self, data: bytes) -> InMemoryLedgerReader:
        ledger = InMemoryLedgerReader()
        ledger.put_account(AddressDeriver(PROGRAM_ID).metadata_address(MINT).address, data)
        return ledger

    @pytest.mark.asyncio
    async def test_resolves_amount_and_name(self):
        """Test the approved amount and name come from the document."""
        fetcher = FakeDocumentFetcher({URI: {
            "name": "Conference travel",
            "attributes": [{"trait_type": "Approved Amount", "value": "600000000"}],
        }})
        resolver = self._resolver(self._ledger_with_metadata(metadata_bytes()), fetcher)

        attributes = await resolver.resolve(make_expense())

        assert attributes.approved_amount == 600_000_000
        assert attributes.name == "Conference travel"
        assert attributes.uri == URI
        assert fetcher.requested == [URI]

    @pytest.mark.asyncio
    async def test_missing_metadata_is_unavailable(self):
        """Test a mint without metadata has no attributes."""
        fetcher = FakeDocumentFetcher()
        resolver = self._resolver(InMemoryLedgerReader(), fetcher)

        attributes = await resolver.resolve(make_expense())

        assert attributes.available is False
        assert fetcher.requested == []

    @pytest.mark.asyncio
    async def test_missing_document_keeps_metadata_name(self):
        """Test the metadata name is used when there is no document."""
        resolver = self._resolver(
            self._ledger_with_metadata(metadata_bytes()),
            FakeDocumentFetcher(),
        )
        attributes = await resolver.resolve(make_expense())
        assert attributes.approved_amount is None
        assert attributes.name == "Travel"

    @pytest.mark.asyncio
    async def test_empty_uri_skips_fetch(self):
        """Test no fetch happens without a uri."""
        fetcher = FakeDocumentFetcher()
        resolver = self._resolver(self._ledger_with_metadata(metadata_bytes(uri="")), fetcher)
        attributes = await resolver.resolve(make_expense())
        assert attributes.available is False
        assert fetcher.requested == []

    @pytest.mark.asyncio
    async def test_undecodable_metadata_is_unavailable(self):
        """Test a corrupt metadata record degrades to unavailable."""
        resolver = self._resolver(self._ledger_with_metadata(bytes(10)), FakeDocumentFetcher())
        attributes = await resolver.resolve(make_expense())
        assert attributes.available is False

    @pytest.mark.asyncio
    async def test_fetch_error_propagates(self):
        """Test a failing document store is an error, not a fallback."""
        fetcher = FakeDocumentFetcher(error=AttributeFetchError(URI, "HTTP 500"))
        resolver = self._resolver(self._ledger_with_metadata(metadata_bytes()), fetcher)
        with pytest.raises(AttributeFetchError):
            await resolver.resolve(make_expense())

    @pytest.mark.asyncio
    async def test_ledger_error_becomes_fetch_error(self):
        """Test a failing metadata read is reported as AttributeFetchError."""
        ledger = InMemoryLedgerReader()
        ledger.fail_on(AddressDeriver(PROGRAM_ID).metadata_address(MINT).address)
        resolver = self._resolver(ledger, FakeDocumentFetcher())
        with pytest.raises(AttributeFetchError):
            await resolver.resolve(make_expense())

    @pytest.mark.asyncio
    async def test_resolve_approved_amount(self):
        """Test the convenience accessor."""
        fetcher = FakeDocumentFetcher({URI: {
            "attributes": [{"trait_type": "Approved Amount", "value": 42}],
        }})
        resolver = self._resolver(self._ledger_with_metadata(metadata_bytes()), fetcher)
        assert await resolver.resolve_approved_amount(make_expense()) == 42


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpDocumentFetcher:
    """Tests for the HTTP document fetcher."""

    def test_ipfs_uri_rewritten(self):
        """Test ipfs:// URIs go through the gateway."""
        gateway = get_settings().metadata.ipfs_gateway
        fetcher = HttpDocumentFetcher(client=mock_client(lambda request: httpx.Response(404)))
        assert fetcher.resolve_uri("ipfs://bafy123/meta.json") == gateway + "bafy123/meta.json"
        assert fetcher.resolve_uri("ipfs://ipfs/bafy123") == gateway + "bafy123"
        assert fetcher.resolve_uri(URI) == URI

    @pytest.mark.asyncio
    async def test_fetches_json_object(self):
        """Test a JSON object body is returned."""
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == URI
            return httpx.Response(200, json={"name": "Travel", "attributes": []})

        fetcher = HttpDocumentFetcher(client=mock_client(handler))
        assert await fetcher.fetch_document(URI) == {"name": "Travel", "attributes": []}

    @pytest.mark.asyncio
    async def test_not_found_is_none(self):
        """Test 404 means no document."""
        fetcher = HttpDocumentFetcher(client=mock_client(lambda request: httpx.Response(404)))
        assert await fetcher.fetch_document(URI) is None

    @pytest.mark.asyncio
    async def test_blank_uri_is_none(self):
        """Test a blank uri is not fetched."""
        fetcher = HttpDocumentFetcher(client=mock_client(lambda request: httpx.Response(500)))
        assert await fetcher.fetch_document("  ") is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        """Test other HTTP errors raise AttributeFetchError."""
        fetcher = HttpDocumentFetcher(client=mock_client(lambda request: httpx.Response(503)))
        with pytest.raises(AttributeFetchError) as exc_info:
            await fetcher.fetch_document(URI)
        assert exc_info.value.uri == URI

    @pytest.mark.asyncio
    async def test_non_json_raises(self):
        """Test a non-JSON body raises AttributeFetchError."""
        fetcher = HttpDocumentFetcher(
            client=mock_client(lambda request: httpx.Response(200, text="<html>"))
        )
        with pytest.raises(AttributeFetchError):
            await fetcher.fetch_document(URI)

    @pytest.mark.asyncio
    async def test_non_object_raises(self):
        """Test a JSON list body raises AttributeFetchError."""
        fetcher = HttpDocumentFetcher(
            client=mock_client(lambda request: httpx.Response(200, json=[1, 2]))
        )
        with pytest.raises(AttributeFetchError):
            await fetcher.fetch_document(URI)


def rpc_handler(results: dict[str, dict]):
    """Answer JSON-RPC calls by method name."""
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        body = {"jsonrpc": "2.0", "id": payload["id"]}
        body.update(results[payload["method"]])
        return httpx.Response(200, json=body)
    return handler


class TestRpcLedgerReader:
    """Tests for the JSON-RPC ledger reader."""

    @pytest.mark.asyncio
    async def test_get_raw_account(self):
        """Test base64 account data is decoded."""
        data = b"\x01\x02\x03budget"
        reader = RpcLedgerReader(client=mock_client(rpc_handler({
            "getAccountInfo": {"result": {"context": {"slot": 1}, "value": {
                "data": [base64.b64encode(data).decode(), "base64"],
                "executable": False,
                "lamports": 1,
                "owner": str(PROGRAM_ID),
            }}},
        })))
        assert await reader.get_raw_account(MINT) == data

    @pytest.mark.asyncio
    async def test_missing_account_is_none(self):
        """Test a null value means nothing stored."""
        reader = RpcLedgerReader(client=mock_client(rpc_handler({
            "getAccountInfo": {"result": {"context": {"slot": 1}, "value": None}},
        })))
        assert await reader.get_raw_account(MINT) is None

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """Test method, address and encoding are sent."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            seen.append(payload)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"],
                                             "result": {"value": None}})

        async with RpcLedgerReader(client=mock_client(handler)) as reader:
            await reader.get_raw_account(MINT)

        assert seen[0]["method"] == "getAccountInfo"
        assert seen[0]["params"][0] == str(MINT)
        assert seen[0]["params"][1]["encoding"] == "base64"

    @pytest.mark.asyncio
    async def test_get_token_balance(self):
        """Test the raw amount string is parsed."""
        reader = RpcLedgerReader(client=mock_client(rpc_handler({
            "getTokenAccountBalance": {"result": {"context": {"slot": 1}, "value": {
                "amount": "100000000", "decimals": 6, "uiAmount": 100.0,
            }}},
        })))
        assert await reader.get_token_balance(MINT) == 100_000_000

    @pytest.mark.asyncio
    async def test_missing_holding_account(self):
        """Test invalid-params errors mean the holding address does not exist."""
        reader = RpcLedgerReader(client=mock_client(rpc_handler({
            "getTokenAccountBalance": {"error": {"code": -32602, "message": "could not find account"}},
        })))
        with pytest.raises(RecordUnavailableError):
            await reader.get_token_balance(MINT)

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        """Test other JSON-RPC errors are connection errors."""
        reader = RpcLedgerReader(client=mock_client(rpc_handler({
            "getAccountInfo": {"error": {"code": -32005, "message": "node is behind"}},
        })))
        with pytest.raises(LedgerConnectionError):
            await reader.get_raw_account(MINT)

    @pytest.mark.asyncio
    async def test_http_error(self):
        """Test HTTP error statuses are connection errors."""
        reader = RpcLedgerReader(client=mock_client(lambda request: httpx.Response(502)))
        with pytest.raises(LedgerConnectionError):
            await reader.get_token_balance(MINT)

    @pytest.mark.asyncio
    async def test_malformed_balance(self):
        """Test a balance payload without an amount."""
        reader = RpcLedgerReader(client=mock_client(rpc_handler({
            "getTokenAccountBalance": {"result": {"value": {}}},
        })))
        with pytest.raises(LedgerConnectionError):
            await reader.get_token_balance(MINT)

    @pytest.mark.asyncio
    async def test_string_error(self):
        """Test a bare string error from a gateway is a connection error."""
        reader = RpcLedgerReader(client=mock_client(rpc_handler({
            "getAccountInfo": {"error": "rate limited"},
            "getTokenAccountBalance": {"error": "rate limited"},
        })))
        with pytest.raises(LedgerConnectionError, match="rate limited"):
            await reader.get_raw_account(MINT)
        with pytest.raises(LedgerConnectionError, match="rate limited"):
            await reader.get_token_balance(MINT)

    @pytest.mark.asyncio
    async def test_non_object_result(self):
        """Test a result that is not an object is a connection error."""
        reader = RpcLedgerReader(client=mock_client(rpc_handler({
            "getAccountInfo": {"result": "oops"},
            "getTokenAccountBalance": {"result": [1, 2]},
        })))
        with pytest.raises(LedgerConnectionError):
            await reader.get_raw_account(MINT)
        with pytest.raises(LedgerConnectionError):
            await reader.get_token_balance(MINT)

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        """Test a JSON body that is not an object is a connection error."""
        reader = RpcLedgerReader(client=mock_client(
            lambda request: httpx.Response(200, json=["not", "an", "object"])
        ))
        with pytest.raises(LedgerConnectionError):
            await reader.get_raw_account(MINT)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
