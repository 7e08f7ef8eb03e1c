"""
tests/unit/test_rpc_adapter.py
JsonRpcLedgerStore against a mocked JSON-RPC endpoint (httpx.MockTransport).
"""
import json

import httpx
import pytest
from eth_abi import decode, encode

from reconciler.codec.keys import permissions_key
from reconciler.codec.values import to_address
from reconciler.config import LedgerConfig
from reconciler.errors import RemoteTimeoutError, TransportError
from reconciler.net.adapter import GET_DATA, GET_DATA_BATCH, OWNER, JsonRpcLedgerStore, fetch_content

PROFILE = "0x" + "a1" * 20
OWNER_ADDRESS = "0x" + "4d" * 20
RPC_URL = "http://node.test/"


class FakeNode:
    """Answers eth_call getData/getDataBatch/owner and eth_getCode from a dict."""

    def __init__(self, data=None):
        self.data = data or {}
        self.requests = []

    def result(self, method, params):
        if method == "eth_getCode":
            return "0x6080" if params[0].lower() == OWNER_ADDRESS else "0x"
        call = bytes.fromhex(params[0]["data"][2:])
        sel, args = call[:4], call[4:]
        if sel == GET_DATA:
            (key,) = decode(["bytes32"], args)
            return "0x" + encode(["bytes"], [self.data.get(key, b"")]).hex()
        if sel == GET_DATA_BATCH:
            (keys,) = decode(["bytes32[]"], args)
            return "0x" + encode(["bytes[]"], [[self.data.get(k, b"") for k in keys]]).hex()
        if sel == OWNER:
            return "0x" + encode(["address"], [OWNER_ADDRESS]).hex()
        raise AssertionError(f"unexpected call {sel.hex()}")

    def __call__(self, request):
        body = json.loads(request.content)
        self.requests.append(body)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": self.result(body["method"], body["params"])})


def make_store(handler, **config):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JsonRpcLedgerStore(LedgerConfig(rpc_url=RPC_URL, **config), client=client)


@pytest.mark.asyncio
async def test_get_data_present_and_absent():
    key = permissions_key("0x" + "c0" * 20)
    node = FakeNode({key: b"\x08\x00"})
    store = make_store(node)

    assert await store.get_data(PROFILE, key) == b"\x08\x00"
    assert await store.get_data(PROFILE, bytes(32), block=12) == b""

    first, second = node.requests
    assert first["method"] == "eth_call"
    assert first["params"][0]["to"] == to_address(PROFILE)
    assert first["params"][1] == "latest"
    assert second["params"][1] == "0xc"
    await store.aclose()


@pytest.mark.asyncio
async def test_get_data_batch_is_chunked():
    keys = [i.to_bytes(32, "big") for i in range(5)]
    node = FakeNode({k: bytes([i + 1]) for i, k in enumerate(keys)})
    store = make_store(node, max_batch_size=2)

    values = await store.get_data_batch(PROFILE, keys)

    assert values == [b"\x01", b"\x02", b"\x03", b"\x04", b"\x05"]
    assert len(node.requests) == 3


@pytest.mark.asyncio
async def test_batch_count_mismatch_is_transport_error():
    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0x" + encode(["bytes[]"], [[b"\x01"]]).hex()})

    store = make_store(handler)
    with pytest.raises(TransportError):
        await store.get_data_batch(PROFILE, [bytes(32), bytes(31) + b"\x01"])


@pytest.mark.asyncio
async def test_owner_and_code():
    store = make_store(FakeNode())
    owner = await store.get_owner(PROFILE)
    assert owner == to_address(OWNER_ADDRESS)
    assert await store.get_code(owner) == b"\x60\x80"
    assert await store.get_code(PROFILE) == b""


@pytest.mark.asyncio
async def test_rpc_error_object_raises_transport_error():
    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32000, "message": "execution reverted"}}
        )

    store = make_store(handler)
    with pytest.raises(TransportError) as exc:
        await store.get_data(PROFILE, bytes(32))
    assert exc.value.details["rpc_error"]["message"] == "execution reverted"
    assert exc.value.details["account"] == to_address(PROFILE)
    assert exc.value.retryable


@pytest.mark.asyncio
async def test_http_failure_raises_transport_error():
    store = make_store(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(TransportError) as exc:
        await store.get_data(PROFILE, bytes(32))
    assert exc.value.details["method"] == "eth_call"


@pytest.mark.asyncio
async def test_invalid_json_raises_transport_error():
    store = make_store(lambda request: httpx.Response(200, text="not json"))
    with pytest.raises(TransportError):
        await store.get_data(PROFILE, bytes(32))


@pytest.mark.asyncio
async def test_undecodable_result_raises_transport_error():
    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0x1234"})

    store = make_store(handler)
    with pytest.raises(TransportError):
        await store.get_data(PROFILE, bytes(32))


@pytest.mark.asyncio
async def test_timeout_raises_remote_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow node", request=request)

    store = make_store(handler)
    with pytest.raises(RemoteTimeoutError) as exc:
        await store.get_data(PROFILE, bytes(32))
    assert exc.value.details["rpc_url"] == RPC_URL


@pytest.mark.asyncio
async def test_fetch_content_uses_given_client():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, content=b'{"LSP4Metadata": {}}')

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        body = await fetch_content("https://gw.test/ipfs/QmDoc", client)
        assert not client.is_closed
    assert body == b'{"LSP4Metadata": {}}'
    assert seen == ["https://gw.test/ipfs/QmDoc"]


@pytest.mark.asyncio
async def test_fetch_content_maps_errors():
    def slow(request):
        raise httpx.ReadTimeout("slow gateway", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(slow)) as client:
        with pytest.raises(RemoteTimeoutError) as exc:
            await fetch_content("https://gw.test/ipfs/QmSlow", client)
    assert exc.value.details["url"] == "https://gw.test/ipfs/QmSlow"

    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(502))) as client:
        with pytest.raises(TransportError) as exc:
            await fetch_content("https://gw.test/ipfs/QmDown", client)
    assert exc.value.details["url"] == "https://gw.test/ipfs/QmDown"
