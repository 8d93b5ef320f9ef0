"""
Shared offline fixtures: an in-memory JSON-RPC chain served through
httpx.MockTransport, pre-loaded with a WHYPE/USDC Kittenswap position.
"""

import json

import httpx
import pytest

from krlp_cli.central_config import RpcSettings
from krlp_cli.rpc_transport import RpcTransport
from krlp_cli.word_codec import encode_address, encode_bool, encode_int, encode_uint

ZERO = "0x" + "0" * 40

ADDR = {
    "factory": "0x5f95e92c338e6453111fc55ee66d4aafcce661a7",
    "position_manager": "0x9ea4459c8defbf561495d95414b9cf1e2242a3e2",
    "farming_center": "0x211bd8917d433b7cc1f4497aba906554ab6ee479",
    "eternal_farming": "0xf3b57fe4d5d0927c3a5e549cb6af1866687e2d62",
    "router": "0x4e73e421480a7e0c24fb3c11019254ede194f736",
    "pool": "0x12df9913e9e08453440e3c4b1ae73819160b513e",
    "whype": "0x5555555555555555555555555555555555555555",
    "usdc": "0xb88339cb7199b77e23db6e890353e22632ba630f",
    "kitten": "0x618275f8efe54c2afa87bfb9f210a52f0ff89364",
    "owner": "0x1111111111111111111111111111111111111111",
}

TOKEN_ID = 12345


def words(*encoded: str) -> str:
    return "0x" + "".join(encoded)


def abi_string(text: str) -> str:
    raw = text.encode()
    padded = raw + b"\x00" * (-len(raw) % 32)
    return words(encode_uint(32), encode_uint(len(raw))) + padded.hex()


class FakeChain:
    """Routes JSON-RPC requests to canned results.

    eth_call routes match on (to, calldata prefix, block tag or any); the
    most recently registered route wins.
    """

    def __init__(self):
        self.routes = []
        self.methods = {}
        self.requests = []

    def on_call(self, to, prefix, result=None, error=None, block=None):
        self.routes.append((to.lower(), prefix.lower(), block, result, error))

    def on_method(self, method, result):
        self.methods[method] = result

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        method, params = body["method"], body["params"]
        if method == "eth_call":
            tx, block = params
            for to, prefix, blk, result, error in reversed(self.routes):
                if tx["to"].lower() == to and tx["data"].lower().startswith(prefix) and blk in (None, block):
                    if error is not None:
                        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": error})
                    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": body["id"],
                "error": {"code": -32000, "message": "execution reverted"},
            })
        if method in self.methods:
            value = self.methods[method]
            if callable(value):
                value = value(params)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": value})
        return httpx.Response(200, json={
            "jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "method not found"},
        })

    def transport(self, **overrides) -> RpcTransport:
        settings = RpcSettings(rpc_url="http://fake.rpc", max_retries=0, **overrides)
        return RpcTransport(settings, transport=httpx.MockTransport(self.handler))

    def calls_to(self, method):
        return [r for r in self.requests if r["method"] == method]


def load_kitten_position(chain: FakeChain) -> FakeChain:
    pm, pool = ADDR["position_manager"], ADDR["pool"]
    chain.on_call(pm, "0x6352211e", words(encode_address(ADDR["owner"])))
    chain.on_call(pm, "0x99fbab88", words(
        encode_uint(0),
        encode_address(ZERO),
        encode_address(ADDR["whype"]),
        encode_address(ADDR["usdc"]),
        encode_address(ZERO),
        encode_int(-242570, 24),
        encode_int(-242070, 24),
        encode_uint(1000),
        encode_uint(0),
        encode_uint(0),
        encode_uint(0),
        encode_uint(0),
    ))
    chain.on_call(ADDR["factory"], "0xd9a641e1", words(encode_address(pool)))
    chain.on_call(pool, "0xe76c01e4", words(
        encode_uint(1 << 96),
        encode_int(-242319, 24),
        encode_uint(3000),
        encode_uint(0),
        encode_uint(0),
        encode_bool(True),
    ))
    chain.on_call(pool, "0xd0c93a7c", words(encode_int(10, 24)))
    chain.on_call(ADDR["whype"], "0x95d89b41", abi_string("WHYPE"))
    chain.on_call(ADDR["usdc"], "0x95d89b41", abi_string("USDC"))
    chain.on_call(ADDR["whype"], "0x06fdde03", abi_string("Wrapped HYPE"))
    chain.on_call(ADDR["usdc"], "0x06fdde03", abi_string("USD Coin"))
    chain.on_call(ADDR["whype"], "0x313ce567", words(encode_uint(18)))
    chain.on_call(ADDR["usdc"], "0x313ce567", words(encode_uint(6)))
    chain.on_call(ADDR["whype"], "0x70a08231", words(encode_uint(2 * 10**18)))
    chain.on_call(ADDR["usdc"], "0x70a08231", words(encode_uint(50 * 10**6)))
    chain.on_call(pm, "0xe7ce18a3", words(encode_address(ZERO)))
    chain.on_call(ADDR["farming_center"], "0xb02c43d0", words(encode_uint(0)))
    return chain


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def kitten_chain() -> FakeChain:
    return load_kitten_position(FakeChain())
