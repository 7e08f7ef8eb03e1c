"""
reconciler/net/adapter.py
Outbound HTTP adapter.

Every HTTP request the reconciler makes goes through here. JsonRpcLedgerStore
speaks to an EVM node with httpx and answers the LedgerStore reads with
eth_call against the ERC725Y getData/getDataBatch functions. It never sends
transactions. fetch_content() downloads off-chain documents (metadata JSON
behind a gateway URL) with the same error mapping. Uploads go through the
caller-supplied ContentUploader instead.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

from reconciler.codec.values import to_address
from reconciler.config import BlockTag, LedgerConfig, normalize_block_tag
from reconciler.data.ledger_store import LedgerStore
from reconciler.errors import RemoteTimeoutError, TransportError

logger = logging.getLogger(__name__)

GET_DATA = function_signature_to_4byte_selector("getData(bytes32)")
GET_DATA_BATCH = function_signature_to_4byte_selector("getDataBatch(bytes32[])")
OWNER = function_signature_to_4byte_selector("owner()")


class JsonRpcLedgerStore(LedgerStore):
    """
    ERC725Y reads over JSON-RPC.

    Absent keys come back from the contract as empty bytes and are returned
    as such. HTTP failures, JSON-RPC error objects and undecodable results
    raise TransportError; httpx timeouts raise RemoteTimeoutError.
    """

    def __init__(self, config: LedgerConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.client = client or httpx.AsyncClient(timeout=config.request_timeout)
        self._ids = itertools.count(1)

    async def _rpc(self, method: str, params: List[Any], context: Dict[str, Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await self.client.post(self.config.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError(
                f"{method} timed out", details={**context, "method": method, "rpc_url": self.config.rpc_url}
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"[RPC] {method} failed: {e}")
            raise TransportError(
                f"{method} failed: {e}", details={**context, "method": method, "rpc_url": self.config.rpc_url}
            ) from e
        except ValueError as e:
            raise TransportError(
                f"{method} returned invalid JSON", details={**context, "method": method}
            ) from e

        if not isinstance(body, dict):
            raise TransportError(f"{method} returned a non-object response", details={**context, "method": method})
        if body.get("error"):
            error = body["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise TransportError(
                f"{method} error: {message}",
                details={**context, "method": method, "rpc_error": error},
            )
        if "result" not in body:
            raise TransportError(f"{method} response has no result", details={**context, "method": method})
        return body["result"]

    async def _eth_call(self, to: str, data: bytes, block: BlockTag, context: Dict[str, Any]) -> bytes:
        result = await self._rpc(
            "eth_call",
            [{"to": to, "data": "0x" + data.hex()}, normalize_block_tag(block)],
            context,
        )
        return _hex_to_bytes(result, context)

    async def get_data(self, account: str, key: bytes, block: BlockTag = "latest") -> bytes:
        account = to_address(account)
        context = {"account": account, "key": "0x" + key.hex(), "block": block}
        raw = await self._eth_call(account, GET_DATA + encode(["bytes32"], [key]), block, context)
        return _decode_single(["bytes"], raw, context)

    async def get_data_batch(
        self, account: str, keys: Sequence[bytes], block: BlockTag = "latest"
    ) -> List[bytes]:
        account = to_address(account)
        values: List[bytes] = []
        size = self.config.max_batch_size
        for start in range(0, len(keys), size):
            chunk = list(keys[start:start + size])
            context = {"account": account, "keys": ["0x" + k.hex() for k in chunk], "block": block}
            raw = await self._eth_call(account, GET_DATA_BATCH + encode(["bytes32[]"], [chunk]), block, context)
            decoded = list(_decode_single(["bytes[]"], raw, context))
            if len(decoded) != len(chunk):
                raise TransportError(
                    f"getDataBatch returned {len(decoded)} values for {len(chunk)} keys", details=context
                )
            values.extend(decoded)
        return values

    async def get_owner(self, account: str, block: BlockTag = "latest") -> str:
        account = to_address(account)
        context = {"account": account, "block": block}
        raw = await self._eth_call(account, OWNER, block, context)
        return to_address(_decode_single(["address"], raw, context))

    async def get_code(self, address: str, block: BlockTag = "latest") -> bytes:
        address = to_address(address)
        context = {"address": address, "block": block}
        result = await self._rpc("eth_getCode", [address, normalize_block_tag(block)], context)
        return _hex_to_bytes(result, context)

    async def aclose(self) -> None:
        await self.client.aclose()


def _hex_to_bytes(result: Any, context: Dict[str, Any]) -> bytes:
    if not isinstance(result, str) or not result.startswith("0x"):
        raise TransportError(f"Expected hex result, got {result!r}", details=context)
    try:
        return bytes.fromhex(result[2:])
    except ValueError as e:
        raise TransportError(f"Invalid hex result {result!r}", details=context) from e


def _decode_single(types: List[str], raw: bytes, context: Dict[str, Any]) -> Any:
    try:
        return decode(types, raw)[0]
    except (DecodingError, ValueError) as e:
        raise TransportError(f"Could not decode {types[0]} result", details=context) from e


async def fetch_content(url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0) -> bytes:
    """GET `url` and return the body. Uses `client` when given, else a short-lived one."""
    own_client = client is None
    client = client or httpx.AsyncClient(timeout=timeout)
    try:
        response = await client.get(url)
        response.raise_for_status()
        return response.content
    except httpx.TimeoutException as e:
        logger.warning(f"[HTTP] Fetching {url} timed out")
        raise RemoteTimeoutError(f"Fetching {url} timed out", details={"url": url}) from e
    except httpx.HTTPError as e:
        logger.warning(f"[HTTP] Fetching {url} failed: {e}")
        raise TransportError(f"Fetching {url} failed: {e}", details={"url": url}) from e
    finally:
        if own_client:
            await client.aclose()
