"""
JSON-RPC Ledger Reader

Reads records and token balances from a ledger node over JSON-RPC.

Methods used:
- getAccountInfo (base64 encoding): raw record bytes, null when absent
- getTokenAccountBalance: balance of a token holding address

TRADEOFFS:
- One HTTP request per read; no batching. Fan-out is bounded by the
  caller, and per-budget expense counts are small.
- Transport errors are retried with backoff. JSON-RPC errors are not,
  since the node answered and asking again gives the same answer.
"""

import base64
import binascii
from typing import Any, Optional

import httpx
from solders.pubkey import Pubkey
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import get_settings
from src.services.ledger.interface import (
    LedgerConnectionError,
    LedgerReaderInterface,
    RecordUnavailableError,
)


# Error code the node returns for params naming a missing account
INVALID_PARAMS = -32602


class RpcLedgerReader(LedgerReaderInterface):
    """
    Ledger reader backed by a JSON-RPC endpoint.

    Args:
        client: Preconfigured httpx client (tests pass one with a mock
                transport). If None, one is created from LedgerSettings.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._settings = get_settings().ledger
        self._client = client
        self._request_id = 0

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout_seconds)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RpcLedgerReader":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _post(self, payload: dict) -> httpx.Response:
        return await self._get_client().post(self._settings.rpc_url, json=payload)

    async def _call(self, method: str, params: list) -> dict[str, Any]:
        """
        Issue one JSON-RPC call and return the full response body.

        Raises:
            LedgerConnectionError: On transport failure, HTTP error status
                                   or a malformed body
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        try:
            response = await self._post(payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise LedgerConnectionError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise LedgerConnectionError(f"{method} returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise LedgerConnectionError(f"{method} returned a non-object body")
        if "error" in body and not isinstance(body["error"], dict):
            # Some gateways answer with a bare string instead of an error object
            body["error"] = {"message": str(body["error"])}
        if "result" in body and body["result"] is not None and not isinstance(body["result"], dict):
            raise LedgerConnectionError(f"{method} returned a non-object result")
        return body

    async def get_raw_account(self, address: Pubkey) -> Optional[bytes]:
        body = await self._call(
            "getAccountInfo",
            [
                str(address),
                {"encoding": "base64", "commitment": self._settings.commitment},
            ],
        )
        if "error" in body:
            error = body["error"]
            raise LedgerConnectionError(
                f"getAccountInfo({address}) error: {error.get('message', error)}"
            )

        value = (body.get("result") or {}).get("value")
        if value is None:
            return None

        try:
            encoded, encoding = value["data"]
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerConnectionError(f"Unexpected account payload for {address}") from e
        if encoding != "base64":
            raise LedgerConnectionError(f"Unexpected account encoding '{encoding}' for {address}")
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise LedgerConnectionError(f"Account data for {address} is not valid base64") from e

    async def get_token_balance(self, holding_address: Pubkey) -> int:
        body = await self._call(
            "getTokenAccountBalance",
            [str(holding_address), {"commitment": self._settings.commitment}],
        )
        if "error" in body:
            error = body["error"]
            if error.get("code") == INVALID_PARAMS:
                raise RecordUnavailableError(
                    str(holding_address),
                    f"Token holding address {holding_address} not found: {error.get('message')}",
                )
            raise LedgerConnectionError(
                f"getTokenAccountBalance({holding_address}) error: {error.get('message', error)}"
            )

        try:
            amount = body["result"]["value"]["amount"]
            return int(amount)
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerConnectionError(
                f"Unexpected balance payload for {holding_address}"
            ) from e
