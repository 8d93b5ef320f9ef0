#!/usr/bin/env python3
"""
Word Codec — Fixed-Width ABI Encoding/Decoding
===============================================

Stateless helpers shared by the contract reader, the calldata builders and
the transaction forensics engine:

  • Scalar encoding (uint<N>, int<N>, address, bool, bytes32) → one word
  • Word decoding (uint, int over N bits, address, bool, bytes32)
  • Dynamic data (string, bytes[]) with relative-offset resolution
  • Revert payloads: Error(string) and Panic(uint256)
  • Input normalization (address, tx hash, token id, bps, decimal amounts)

All constants reference the Ethereum ABI specification:
  https://docs.soliditylang.org/en/latest/abi-spec.html

Terminology:
  • Word:  32 bytes = 256 bits = 64 hex characters
  • Slot:  Position of a 32-byte word in an ABI response
  • Q256:  2^256 — two's complement boundary for int256

Words are handled as lower-case hex strings without the 0x prefix; full
payloads (calldata, return data) carry the 0x prefix.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from krlp_cli.errors import CodecError, InputValidationError

# ── ABI Word Constants ──────────────────────────────────────────────────

ABI_WORD_BYTES = 32          # 1 ABI word = 32 bytes
ABI_WORD_HEX = 64            # 32 bytes × 2 hex chars = 64 hex characters
ADDRESS_HEX = 40              # 20 bytes × 2 = 40 hex characters
ADDRESS_PAD_HEX = 24          # Left padding in a 32-byte slot = 64 - 40 = 24 hex chars
SELECTOR_HEX = 8              # 4-byte function selector
Q256 = 2 ** 256              # int256 overflow boundary (two's complement wrap)

ZERO_ADDRESS = "0x" + "0" * ADDRESS_HEX
ZERO_WORD = "0" * ABI_WORD_HEX

# Solidity revert payload selectors
ERROR_STRING_SELECTOR = "08c379a0"   # Error(string)
PANIC_SELECTOR = "4e487b71"          # Panic(uint256)

# Ref: https://docs.soliditylang.org/en/latest/control-structures.html#panic-via-assert-and-error-via-require
PANIC_REASONS = {
    0x01: "assertion failure",
    0x11: "arithmetic overflow/underflow",
    0x12: "division or modulo by zero",
    0x21: "invalid enum conversion",
    0x22: "invalid storage byte array encoding",
    0x31: "pop on empty array",
    0x32: "array index out of bounds",
    0x41: "memory allocation overflow",
    0x51: "call to uninitialized function pointer",
}

_HEX_RE = re.compile(r"^(?:0x)?([0-9a-fA-F]*)$")
_ADDRESS_RE = re.compile(r"^(?:HL:)?0x([0-9a-fA-F]{40})$", re.IGNORECASE)
_TX_HASH_RE = re.compile(r"^0x([0-9a-fA-F]{64})$")
_DECIMAL_RE = re.compile(r"^\d+(\.\d+)?$")


def strip_0x(data: str) -> str:
    """Drop an optional 0x prefix and validate the remainder is hex."""
    m = _HEX_RE.fullmatch(str(data or "").strip())
    if not m:
        raise CodecError(f"Not a hex string: {str(data)[:20]}")
    return m.group(1).lower()


# ── Input Normalization ─────────────────────────────────────────────────


def normalize_address(value) -> Optional[str]:
    """Return the canonical lower-case 0x address, or None if malformed.

    Accepts an optional ``HL:`` prefix (HyperEVM explorer notation).

    >>> normalize_address("HL:0xB88339CB7199b77E23DB6E890353E22632Ba630f")
    '0xb88339cb7199b77e23db6e890353e22632ba630f'
    """
    m = _ADDRESS_RE.fullmatch(str(value or "").strip())
    return "0x" + m.group(1).lower() if m else None


def assert_address(value, field: str = "address") -> str:
    addr = normalize_address(value)
    if addr is None:
        raise InputValidationError(
            f"Invalid {field}: expected 0x + 40 hex chars (optionally HL:0x...), got {value!r}"
        )
    return addr


def normalize_tx_hash(value) -> Optional[str]:
    m = _TX_HASH_RE.fullmatch(str(value or "").strip())
    return "0x" + m.group(1).lower() if m else None


def assert_tx_hash(value) -> str:
    h = normalize_tx_hash(value)
    if h is None:
        raise InputValidationError(f"Invalid tx hash: expected 0x + 64 hex chars, got {value!r}")
    return h


def parse_token_id(value) -> int:
    """Position NFT ids are plain non-negative decimal integers."""
    text = str(value if value is not None else "").strip()
    if not text.isdigit():
        raise InputValidationError(f"Invalid token id: {value!r}")
    return int(text)


def parse_bps(value, default: int, lo: int = 0, hi: int = 10_000) -> int:
    """Parse a basis-point value, clamping into [lo, hi]; None → default."""
    if value is None or str(value).strip() == "":
        return default
    try:
        n = int(Decimal(str(value).strip()))
    except Exception as err:  # noqa: BLE001
        raise InputValidationError(f"Invalid bps value: {value!r}") from err
    return max(lo, min(hi, n))


# ── ABI Encoding ────────────────────────────────────────────────────────


def _check_bits(bits: int) -> int:
    if isinstance(bits, bool) or not isinstance(bits, int) or bits < 1 or bits > 256:
        raise CodecError(f"Bit width must be within 1..256, got {bits!r}")
    return bits


def _as_int(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CodecError(f"Expected an integer, got {type(value).__name__}")
    return value


def encode_uint(value: int, bits: int = 256) -> str:
    """ABI-encode an unsigned integer as one 32-byte word.

    >>> encode_uint(1)
    '0000000000000000000000000000000000000000000000000000000000000001'
    """
    bits = _check_bits(bits)
    n = _as_int(value)
    if n < 0:
        raise CodecError(f"Unsigned value cannot be negative: {n}")
    if n > (1 << bits) - 1:
        raise CodecError(f"Value {n} exceeds uint{bits}")
    return format(n, f"0{ABI_WORD_HEX}x")


def encode_int(value: int, bits: int = 256) -> str:
    """ABI-encode a signed integer, sign-extended across the full word.

    A narrow type such as int24 (ticks) still occupies 256 bits with the
    sign propagated, not a 24-bit two's complement in the low bytes.

    >>> encode_int(-887220, 24)
    'fffffffffffffffffffffffffffffffffffffffffffffffffffffffffff27e8c'
    """
    bits = _check_bits(bits)
    n = _as_int(value)
    lo = -(1 << (bits - 1))
    hi = (1 << (bits - 1)) - 1
    if n < lo or n > hi:
        raise CodecError(f"Signed value {n} out of range for int{bits}")
    if n < 0:
        n = Q256 + n
    return format(n, f"0{ABI_WORD_HEX}x")


def encode_address(value) -> str:
    """ABI-encode an address as 32 bytes (left-padded).

    >>> encode_address('0xC36442b4a4522E871399CD717aBDD847Ab11FE88')
    '000000000000000000000000c36442b4a4522e871399cd717abdd847ab11fe88'
    """
    addr = normalize_address(value)
    if addr is None:
        raise CodecError(f"Malformed address: {value!r}")
    return addr[2:].zfill(ABI_WORD_HEX)


def encode_bool(value: bool) -> str:
    if not isinstance(value, bool):
        raise CodecError(f"Expected bool, got {type(value).__name__}")
    return encode_uint(1 if value else 0)


def encode_bytes32(value: str) -> str:
    raw = strip_0x(value)
    if len(raw) != ABI_WORD_HEX:
        raise CodecError(f"bytes32 must be exactly 32 bytes, got {len(raw) // 2}")
    try:
        int(raw, 16)
    except ValueError as err:
        raise CodecError(f"bytes32 is not hex: {value!r}") from err
    return raw.lower()


def encode_call_data(selector: str, words: Optional[List[str]] = None) -> str:
    """Join a 4-byte selector and pre-encoded words into 0x calldata."""
    sel = strip_0x(selector)
    if len(sel) != SELECTOR_HEX:
        raise CodecError(f"Selector must be 4 bytes, got {selector!r}")
    body = "".join(words or [])
    if len(body) % ABI_WORD_HEX:
        raise CodecError("Encoded arguments are not word-aligned")
    return "0x" + sel + body


# ── ABI Decoding ────────────────────────────────────────────────────────


def decode_words(data_hex: str) -> List[str]:
    """Split return data into 64-hex-char words.

    Raises CodecError if the payload is not a multiple of 32 bytes.
    """
    raw = strip_0x(data_hex)
    if len(raw) % ABI_WORD_HEX:
        raise CodecError(f"Invalid ABI data length: {len(raw)} hex chars is not word-aligned")
    return [raw[i:i + ABI_WORD_HEX] for i in range(0, len(raw), ABI_WORD_HEX)]


def _word(word: str) -> str:
    w = strip_0x(word)
    if len(w) != ABI_WORD_HEX:
        raise CodecError(f"ABI word must be 64 hex chars, got {len(w)}")
    return w


def decode_uint(word: str) -> int:
    return int(_word(word), 16)


def decode_int(word: str, bits: int = 256) -> int:
    """Decode a two's complement integer over ``bits`` (low bits of the word).

    >>> decode_int('f' * 64, 24)
    -1
    """
    bits = _check_bits(bits)
    x = int(_word(word), 16) & ((1 << bits) - 1)
    if x & (1 << (bits - 1)):
        return x - (1 << bits)
    return x


def decode_address(word: str) -> str:
    """Decode address (last 20 bytes of 32-byte slot)."""
    return "0x" + _word(word)[ADDRESS_PAD_HEX:]


def decode_bool(word: str) -> bool:
    val = decode_uint(word)
    if val not in (0, 1):
        raise CodecError(f"Invalid bool encoding: {val}")
    return val == 1


def decode_bytes32(word: str) -> str:
    return "0x" + _word(word)


def _clean_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8").rstrip("\x00").strip()
    except UnicodeDecodeError:
        return ""


def decode_dynamic_string(data_hex: str) -> str:
    """Decode an ABI ``string`` return value (offset + length + bytes).

    Never raises: malformed or truncated input yields "" and callers apply
    their own default label.
    """
    try:
        data = bytes.fromhex(strip_0x(data_hex))
    except (CodecError, ValueError):
        return ""
    if len(data) < 2 * ABI_WORD_BYTES or len(data) % ABI_WORD_BYTES:
        return ""
    offset = int.from_bytes(data[:ABI_WORD_BYTES], "big")
    if offset % ABI_WORD_BYTES or offset + ABI_WORD_BYTES > len(data):
        return ""
    length = int.from_bytes(data[offset:offset + ABI_WORD_BYTES], "big")
    start = offset + ABI_WORD_BYTES
    if start + length > len(data):
        return ""
    return _clean_text(data[start:start + length])


def decode_fixed_bytes32_as_string(data_hex: str) -> str:
    """Decode a ``bytes32`` label (legacy ERC-20 symbol/name). Never raises."""
    try:
        data = bytes.fromhex(strip_0x(data_hex))
    except (CodecError, ValueError):
        return ""
    if len(data) < ABI_WORD_BYTES:
        return ""
    head = data[:ABI_WORD_BYTES].rstrip(b"\x00")
    if b"\x00" in head:
        # Embedded NULs mean this is not a left-aligned text label.
        return ""
    return _clean_text(head)


def decode_string_field(data_hex: str) -> str:
    """Try ``string`` first, then ``bytes32``; "" if neither decodes."""
    return decode_dynamic_string(data_hex) or decode_fixed_bytes32_as_string(data_hex)


def decode_dynamic_byte_array(body_hex: str, offset_bytes: int) -> List[str]:
    """Decode a ``bytes[]`` located at ``offset_bytes`` inside ``body_hex``.

    Element offsets are relative to the start of the array's data region
    (the word right after the length word), not to the start of the body.

    Returns the elements as 0x-prefixed hex strings.
    """
    data = bytes.fromhex(strip_0x(body_hex))
    if offset_bytes < 0 or offset_bytes + ABI_WORD_BYTES > len(data):
        raise CodecError("bytes[] offset out of bounds")
    count = int.from_bytes(data[offset_bytes:offset_bytes + ABI_WORD_BYTES], "big")
    region = offset_bytes + ABI_WORD_BYTES
    if region + count * ABI_WORD_BYTES > len(data):
        raise CodecError(f"bytes[] declares {count} elements but head is truncated")

    out: List[str] = []
    for i in range(count):
        slot = region + i * ABI_WORD_BYTES
        rel = int.from_bytes(data[slot:slot + ABI_WORD_BYTES], "big")
        pos = region + rel
        if pos + ABI_WORD_BYTES > len(data):
            raise CodecError(f"bytes[] element {i} offset out of bounds")
        length = int.from_bytes(data[pos:pos + ABI_WORD_BYTES], "big")
        start = pos + ABI_WORD_BYTES
        if start + length > len(data):
            raise CodecError(f"bytes[] element {i} data out of bounds")
        out.append("0x" + data[start:start + length].hex())
    return out


# ── Revert Payloads ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class PanicCode:
    code: int
    reason: Optional[str]

    def describe(self) -> str:
        if self.reason:
            return f"panic 0x{self.code:02x}: {self.reason}"
        return f"panic 0x{self.code:02x}"


def _revert_body(revert_hex: str, selector: str) -> Optional[str]:
    try:
        raw = strip_0x(revert_hex)
    except CodecError:
        return None
    if not raw.startswith(selector):
        return None
    return raw[SELECTOR_HEX:]


def decode_error_string(revert_hex: str) -> Optional[str]:
    """Decode ``Error(string)`` revert data; None when the selector differs."""
    body = _revert_body(revert_hex, ERROR_STRING_SELECTOR)
    if body is None:
        return None
    return decode_dynamic_string(body)


def decode_panic_code(revert_hex: str) -> Optional[PanicCode]:
    """Decode ``Panic(uint256)`` revert data; None when the selector differs."""
    body = _revert_body(revert_hex, PANIC_SELECTOR)
    if body is None or len(body) < ABI_WORD_HEX:
        return None
    code = int(body[:ABI_WORD_HEX], 16)
    return PanicCode(code=code, reason=PANIC_REASONS.get(code))


# ── Quantities & Display ────────────────────────────────────────────────


def to_hex_quantity(value: int) -> str:
    """JSON-RPC quantity encoding (no leading zeros)."""
    n = _as_int(value)
    if n < 0:
        raise CodecError(f"Negative hex quantity is invalid: {n}")
    return hex(n)


def hex_to_int(value, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    return int(str(value), 16)


def format_units(raw: int, decimals: int = 18, precision: int = 6) -> str:
    """Render base units with at most ``precision`` fractional digits.

    Extra digits are truncated, never rounded.

    >>> format_units(1_234_567, 6, 2)
    '1.23'
    """
    n = int(raw)
    sign = "-" if n < 0 else ""
    whole, frac = divmod(abs(n), 10 ** decimals)
    if precision <= 0 or decimals == 0:
        return f"{sign}{whole}"
    frac_str = str(frac).zfill(decimals)[:min(decimals, precision)].rstrip("0")
    return f"{sign}{whole}.{frac_str}" if frac_str else f"{sign}{whole}"


def parse_decimal_to_units(amount, decimals: int = 18) -> int:
    """Parse a human decimal amount into base units (exact, no floats)."""
    text = str(amount if amount is not None else "").strip()
    if not _DECIMAL_RE.fullmatch(text):
        raise InputValidationError(f"Invalid decimal amount: {amount!r}")
    whole, _, frac = text.partition(".")
    if len(frac) > decimals:
        raise InputValidationError(f"Too many decimal places for a {decimals}-decimals token")
    return int(whole) * 10 ** decimals + int((frac or "0").ljust(decimals, "0")[:decimals] or "0")
