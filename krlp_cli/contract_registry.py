"""
Kittenswap Contract Registry — HyperEVM mainnet (chain 999)
============================================================

Contract addresses, 4-byte selectors and the static-argument layouts of
every write call this tool encodes or decodes. Kittenswap runs the Algebra
Integral concentrated-liquidity design (one pool per pair and deployer,
global tick in ``globalState()``, eternal farming).

Sources:
  • Algebra Integral core/periphery interfaces
    https://github.com/cryptoalgebra/Algebra
  • Kittenswap deployment addresses on HyperEVM
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Tuple

from eth_utils import function_signature_to_4byte_selector

from krlp_cli.errors import CodecError, PartialDecodeError
from krlp_cli.word_codec import (
    ABI_WORD_HEX,
    SELECTOR_HEX,
    decode_address,
    decode_bool,
    decode_int,
    decode_uint,
    encode_address,
    encode_bool,
    encode_call_data,
    encode_int,
    encode_uint,
    strip_0x,
)

# ── Contract Addresses ──────────────────────────────────────────────────

CONTRACTS = MappingProxyType(
    {
        "factory": "0x5f95e92c338e6453111fc55ee66d4aafcce661a7",
        "quoterV2": "0xc58874216afe47779aded27b8aad77e8bd6ebebb",
        "router": "0x4e73e421480a7e0c24fb3c11019254ede194f736",
        "positionManager": "0x9ea4459c8defbf561495d95414b9cf1e2242a3e2",
        "farmingCenter": "0x211bd8917d433b7cc1f4497aba906554ab6ee479",
        "eternalFarming": "0xf3b57fe4d5d0927c3a5e549cb6af1866687e2d62",
    }
)

# ── ABI Function Selectors ──────────────────────────────────────────────
# First 4 bytes of keccak256(function_signature).

SELECTORS: dict[str, str] = {
    # NonfungiblePositionManager (ERC-721 Enumerable + farming hooks)
    "ownerOf":                "0x6352211e",  # ownerOf(uint256)
    "balanceOf":              "0x70a08231",  # balanceOf(address)
    "tokenOfOwnerByIndex":    "0x2f745c59",  # tokenOfOwnerByIndex(address,uint256)
    "positions":              "0x99fbab88",  # positions(uint256)
    "farmingCenter":          "0xdd56e5d8",  # farmingCenter()
    "farmingApprovals":       "0x2d0b22de",  # farmingApprovals(uint256)
    "tokenFarmedIn":          "0xe7ce18a3",  # tokenFarmedIn(uint256)

    # AlgebraFactory
    "poolByPair":             "0xd9a641e1",  # poolByPair(address,address)
    "customPoolByPair":       "0x" + function_signature_to_4byte_selector(
        "customPoolByPair(address,address,address)"
    ).hex(),

    # AlgebraPool (read-only state)
    "globalState":            "0xe76c01e4",  # globalState()
    "tickSpacing":            "0xd0c93a7c",  # tickSpacing()

    # ERC-20
    "symbol":                 "0x95d89b41",  # symbol()
    "name":                   "0x06fdde03",  # name()
    "decimals":               "0x313ce567",  # decimals()
    "allowance":              "0xdd62ed3e",  # allowance(address,address)

    # FarmingCenter / AlgebraEternalFarming
    "incentiveKeys":          "0x57655846",  # incentiveKeys(address)
    "deposits":               "0xb02c43d0",  # deposits(uint256)
    "rewards":                "0xe70b9e27",  # rewards(address,address)
    "incentives":             "0x" + function_signature_to_4byte_selector("incentives(bytes32)").hex(),

    # SwapRouter / QuoterV2
    "WNativeToken":           "0x8af3ac85",  # WNativeToken()
    "quoteExactInputSingle":  "0xe94764c4",  # quoteExactInputSingle((address,address,address,uint256,uint160))
}

# Batching envelopes (decoded one level deep, never built for sending)
MULTICALL_SELECTOR = "0xac9650d8"            # multicall(bytes[])
MULTICALL_DEADLINE_SELECTOR = "0x5ae401dc"   # multicall(uint256,bytes[])


# ── Static Call Layouts ─────────────────────────────────────────────────
# Every write call this tool touches takes only static arguments (tuples of
# static members are ABI-encoded inline), so one word per field.


def _bits(kind: str, prefix: str) -> int:
    return int(kind[len(prefix):] or 256)


def encode_field(kind: str, value) -> str:
    if kind == "address":
        return encode_address(value)
    if kind == "bool":
        return encode_bool(value)
    if kind.startswith("uint"):
        return encode_uint(value, _bits(kind, "uint"))
    if kind.startswith("int"):
        return encode_int(value, _bits(kind, "int"))
    raise CodecError(f"Unsupported ABI kind: {kind}")


def decode_field(kind: str, word: str):
    if kind == "address":
        return decode_address(word)
    if kind == "bool":
        return decode_bool(word)
    if kind.startswith("uint"):
        return decode_uint(word)
    if kind.startswith("int"):
        return decode_int(word, _bits(kind, "int"))
    raise CodecError(f"Unsupported ABI kind: {kind}")


@dataclass(frozen=True)
class CallSpec:
    """Named static-argument function: selector + ordered (field, kind)."""

    name: str
    selector: str
    fields: Tuple[Tuple[str, str], ...]

    def encode(self, **args) -> str:
        missing = [f for f, _ in self.fields if f not in args]
        if missing:
            raise CodecError(f"{self.name}: missing arguments {missing}")
        return encode_call_data(self.selector, [encode_field(k, args[f]) for f, k in self.fields])

    def decode_args(self, words: List[str]) -> Dict[str, object]:
        if len(words) < len(self.fields):
            raise PartialDecodeError(self.name, len(self.fields), len(words))
        return {f: decode_field(k, words[i]) for i, (f, k) in enumerate(self.fields)}

    def matches(self, calldata: str) -> bool:
        return strip_0x(calldata)[:SELECTOR_HEX] == self.selector[2:]


_KEY_FIELDS = (
    ("rewardToken", "address"),
    ("bonusRewardToken", "address"),
    ("pool", "address"),
    ("nonce", "uint256"),
)

WRITE_CALLS = MappingProxyType(
    {
        "collect": CallSpec("collect", "0xfc6f7865", (
            ("tokenId", "uint256"),
            ("recipient", "address"),
            ("amount0Max", "uint128"),
            ("amount1Max", "uint128"),
        )),
        "decreaseLiquidity": CallSpec("decreaseLiquidity", "0x0c49ccbe", (
            ("tokenId", "uint256"),
            ("liquidity", "uint128"),
            ("amount0Min", "uint256"),
            ("amount1Min", "uint256"),
            ("deadline", "uint256"),
        )),
        "burn": CallSpec("burn", "0x42966c68", (("tokenId", "uint256"),)),
        "mint": CallSpec("mint", "0xfe3f3be7", (
            ("token0", "address"),
            ("token1", "address"),
            ("deployer", "address"),
            ("tickLower", "int24"),
            ("tickUpper", "int24"),
            ("amount0Desired", "uint256"),
            ("amount1Desired", "uint256"),
            ("amount0Min", "uint256"),
            ("amount1Min", "uint256"),
            ("recipient", "address"),
            ("deadline", "uint256"),
        )),
        "exactInputSingle": CallSpec("exactInputSingle", "0x1679c792", (
            ("tokenIn", "address"),
            ("tokenOut", "address"),
            ("deployer", "address"),
            ("recipient", "address"),
            ("deadline", "uint256"),
            ("amountIn", "uint256"),
            ("amountOutMinimum", "uint256"),
            ("limitSqrtPrice", "uint160"),
        )),
        "approve": CallSpec("approve", "0x095ea7b3", (
            ("spender", "address"),
            ("amount", "uint256"),
        )),
        "approveForFarming": CallSpec("approveForFarming", "0x832f630a", (
            ("tokenId", "uint256"),
            ("approve", "bool"),
            ("farmingAddress", "address"),
        )),
        "enterFarming": CallSpec("enterFarming", "0x5739f0b9", _KEY_FIELDS + (("tokenId", "uint256"),)),
        "exitFarming": CallSpec("exitFarming", "0x4473eca6", _KEY_FIELDS + (("tokenId", "uint256"),)),
        "collectRewards": CallSpec("collectRewards", "0x6af00aee", _KEY_FIELDS + (("tokenId", "uint256"),)),
        "claimReward": CallSpec("claimReward", "0x2f2d783d", (
            ("rewardToken", "address"),
            ("to", "address"),
            ("amountRequested", "uint256"),
        )),
    }
)

QUOTE_EXACT_INPUT_SINGLE = CallSpec("quoteExactInputSingle", SELECTORS["quoteExactInputSingle"], (
    ("tokenIn", "address"),
    ("tokenOut", "address"),
    ("deployer", "address"),
    ("amountIn", "uint256"),
    ("limitSqrtPrice", "uint160"),
))

# Calls carrying an incentive key in their first four words.
FARMING_KEY_CALLS = ("enterFarming", "exitFarming", "collectRewards")


def read_call(name: str, *words: str) -> str:
    """Calldata for a read selector from SELECTORS with pre-encoded words."""
    return encode_call_data(SELECTORS[name], list(words))


def selector_of(calldata: str) -> str:
    raw = strip_0x(calldata)
    if len(raw) < SELECTOR_HEX:
        raise CodecError("Calldata shorter than a 4-byte selector")
    return "0x" + raw[:SELECTOR_HEX]


def calldata_words(calldata: str) -> List[str]:
    """Argument words after the selector; a ragged tail is a CodecError."""
    body = strip_0x(calldata)[SELECTOR_HEX:]
    if len(body) % ABI_WORD_HEX:
        raise CodecError(f"Calldata tail of {len(body) % ABI_WORD_HEX // 2} bytes is not a whole 32-byte word")
    return [body[i:i + ABI_WORD_HEX] for i in range(0, len(body), ABI_WORD_HEX)]
