"""
Resilient RPC Transport — JSON-RPC over HTTP with classified retry
==================================================================

  • RpcTransport.call            — one attempt, hard timeout, typed failure
  • RpcTransport.call_with_retry — bounded exponential backoff + jitter,
                                   retrying only transient failures
  • Thin eth_* wrappers (eth_call with an explicit block tag and sender)
  • Broadcast pass-through of an already-signed payload, gated by "SEND"

Each call opens a short-lived httpx.AsyncClient; no connection is kept
between calls. Request ids come from an injected RequestIdCounter.

Ref: https://ethereum.org/en/developers/docs/apis/json-rpc/
"""

import asyncio
import random
import time
from typing import Any, Callable, Optional, Union

import httpx
from loguru import logger

from krlp_cli.central_config import RpcSettings
from krlp_cli.errors import BroadcastBlockedError, InputValidationError, KrlpError
from krlp_cli.word_codec import assert_tx_hash, to_hex_quantity

BROADCAST_CONFIRMATION = "SEND"
MIN_SIGNED_TX_HEX = 120          # "0x" + shortest plausible signed legacy tx

RETRYABLE_HTTP_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})
RETRYABLE_RPC_CODES = frozenset({-32005})   # limit exceeded / rate limited
TRANSIENT_MARKERS = (
    "rate limit",
    "too many requests",
    "429",
    "timeout",
    "timed out",
    "temporarily unavailable",
    "fetch failed",
    "connection failed",
    "econnreset",
    "connection reset",
    "socket hang up",
)

BlockRef = Union[int, str]


class RequestIdCounter:
    """Monotonic JSON-RPC request id source, one per transport (or shared)."""

    def __init__(self, start: int = 1):
        self._next = start

    def next(self) -> int:
        value = self._next
        self._next += 1
        return value


class RpcFailure(KrlpError):
    """A JSON-RPC call that did not produce a result."""

    def __init__(
        self,
        message: str,
        *,
        method: str,
        http_status: Optional[int] = None,
        rpc_code: Optional[int] = None,
        rpc_message: Optional[str] = None,
        rpc_data: Any = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.method = method
        self.http_status = http_status
        self.rpc_code = rpc_code
        self.rpc_message = rpc_message
        self.rpc_data = rpc_data
        self.timed_out = timed_out

    @property
    def revert_data(self) -> Optional[str]:
        data = self.rpc_data
        if isinstance(data, dict):
            data = data.get("data")
        if isinstance(data, str) and data.startswith("0x") and len(data) > 2:
            return data.lower()
        return None

    @property
    def is_revert(self) -> bool:
        if self.revert_data is not None:
            return True
        return "execution reverted" in (self.rpc_message or "").lower()


def is_retryable(err: BaseException) -> bool:
    """Pure predicate: should this failure be retried automatically?"""
    if not isinstance(err, RpcFailure):
        return False
    if err.timed_out:
        return True
    if err.http_status in RETRYABLE_HTTP_STATUS:
        return True
    if err.rpc_code in RETRYABLE_RPC_CODES:
        return True
    if err.is_revert:
        return False
    text = f"{err.rpc_message or ''} {err}".lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


def backoff_delay(
    attempt: int,
    base_seconds: float,
    max_seconds: float,
    rand: Callable[[], float] = random.random,
) -> float:
    """min(max, base·2^attempt) plus up to 20% jitter."""
    delay = min(max_seconds, base_seconds * (2 ** attempt))
    return delay + delay * 0.2 * rand()


def block_tag(block: BlockRef) -> str:
    if isinstance(block, bool):
        raise InputValidationError(f"Invalid block reference: {block!r}")
    if isinstance(block, int):
        return to_hex_quantity(block)
    tag = str(block).strip().lower()
    if tag in ("latest", "pending", "earliest", "safe", "finalized") or tag.startswith("0x"):
        return tag
    if tag.isdigit():
        return to_hex_quantity(int(tag))
    raise InputValidationError(f"Invalid block reference: {block!r}")


class RpcTransport:
    def __init__(
        self,
        settings: Optional[RpcSettings] = None,
        *,
        counter: Optional[RequestIdCounter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.settings = settings or RpcSettings()
        self.counter = counter or RequestIdCounter()
        self._transport = transport
        self._sleep = sleep

    # ── Core ────────────────────────────────────────────────────────────

    async def call(self, method: str, params: Optional[list] = None, timeout: Optional[float] = None) -> Any:
        """Issue one JSON-RPC request; raise RpcFailure on any failure."""
        payload = {
            "jsonrpc": "2.0",
            "id": self.counter.next(),
            "method": method,
            "params": params or [],
        }
        timeout = timeout or self.settings.timeout_seconds
        logger.debug("rpc → {} id={}", method, payload["id"])
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.post(self.settings.rpc_url, json=payload)
        except httpx.TimeoutException as err:
            raise RpcFailure(
                f"{method} timed out after {timeout}s", method=method, timed_out=True
            ) from err
        except httpx.TransportError as err:
            raise RpcFailure(
                f"{method} connection failed: {type(err).__name__}: {err}", method=method
            ) from err

        if not resp.is_success:
            raise RpcFailure(
                f"{method} HTTP {resp.status_code}: {resp.text[:200]}",
                method=method,
                http_status=resp.status_code,
            )
        try:
            body = resp.json()
        except ValueError as err:
            raise RpcFailure(
                f"{method} returned a non-JSON body", method=method, http_status=resp.status_code
            ) from err

        if not isinstance(body, dict):
            raise RpcFailure(f"{method} returned an unexpected envelope", method=method)
        if body.get("error") is not None:
            error = body["error"] if isinstance(body["error"], dict) else {"message": str(body["error"])}
            message = str(error.get("message", ""))
            raise RpcFailure(
                f"{method} RPC error {error.get('code')}: {message}",
                method=method,
                http_status=resp.status_code,
                rpc_code=error.get("code"),
                rpc_message=message,
                rpc_data=error.get("data"),
            )
        return body.get("result")

    async def call_with_retry(self, method: str, params: Optional[list] = None) -> Any:
        """call() retried on transient failures; the last failure is re-raised unchanged."""
        max_retries = self.settings.max_retries
        for attempt in range(max_retries + 1):
            try:
                return await self.call(method, params)
            except RpcFailure as err:
                if attempt >= max_retries or not is_retryable(err):
                    raise
                delay = backoff_delay(
                    attempt, self.settings.retry_base_seconds, self.settings.retry_max_seconds
                )
                logger.warning(
                    "{} failed ({}), retry {}/{} in {:.2f}s",
                    method, err, attempt + 1, max_retries, delay,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")

    # ── eth_* wrappers ──────────────────────────────────────────────────

    async def eth_call(
        self,
        to: str,
        data: str,
        block: BlockRef = "latest",
        sender: Optional[str] = None,
        value: Optional[int] = None,
    ) -> str:
        """Read-only simulated call at ``block``; returns 0x-hex return data."""
        tx = {"to": to, "data": data}
        if sender:
            tx["from"] = sender
        if value:
            tx["value"] = to_hex_quantity(value)
        result = await self.call_with_retry("eth_call", [tx, block_tag(block)])
        return result if isinstance(result, str) else "0x"

    async def chain_id(self) -> int:
        return int(await self.call_with_retry("eth_chainId"), 16)

    async def block_number(self) -> int:
        return int(await self.call_with_retry("eth_blockNumber"), 16)

    async def gas_price(self) -> int:
        return int(await self.call_with_retry("eth_gasPrice"), 16)

    async def estimate_gas(self, tx: dict, block: BlockRef = "latest") -> int:
        return int(await self.call_with_retry("eth_estimateGas", [tx, block_tag(block)]), 16)

    async def get_block_by_number(self, block: BlockRef = "latest", full: bool = False) -> Optional[dict]:
        return await self.call_with_retry("eth_getBlockByNumber", [block_tag(block), full])

    async def get_transaction_by_hash(self, tx_hash: str) -> Optional[dict]:
        return await self.call_with_retry("eth_getTransactionByHash", [assert_tx_hash(tx_hash)])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        return await self.call_with_retry("eth_getTransactionReceipt", [assert_tx_hash(tx_hash)])

    async def get_balance(self, address: str, block: BlockRef = "latest") -> int:
        return int(await self.call_with_retry("eth_getBalance", [address, block_tag(block)]), 16)

    # ── Broadcast ───────────────────────────────────────────────────────

    async def send_raw_transaction(self, raw_tx: str, confirmation: Optional[str]) -> str:
        """Forward an already-signed transaction verbatim.

        Requires ``confirmation == "SEND"``. Single attempt, no retry.
        """
        if confirmation != BROADCAST_CONFIRMATION:
            raise BroadcastBlockedError(
                f"Broadcast blocked: pass confirmation {BROADCAST_CONFIRMATION!r} to send"
            )
        raw = str(raw_tx or "").strip()
        if (
            not raw.startswith("0x")
            or len(raw) % 2
            or len(raw) < MIN_SIGNED_TX_HEX
            or any(c not in "0123456789abcdefABCDEF" for c in raw[2:])
        ):
            raise InputValidationError("Raw transaction must be signed 0x-hex of plausible length")
        logger.info("broadcasting signed tx ({} hex chars)", len(raw))
        return await self.call(
            "eth_sendRawTransaction", [raw], timeout=self.settings.broadcast_timeout_seconds
        )

    async def wait_for_receipt(
        self, tx_hash: str, timeout_seconds: float = 120.0, poll_seconds: float = 2.0
    ) -> Optional[dict]:
        """Poll for a receipt; None if it does not appear within the timeout."""
        deadline = time.monotonic() + timeout_seconds
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt:
                return receipt
            if time.monotonic() >= deadline:
                return None
            await self._sleep(poll_seconds)
