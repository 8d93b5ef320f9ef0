#!/usr/bin/env python3
"""
Transaction Forensics Engine
============================

Given a transaction hash: what did it call, and if it failed, why?
Nothing is executed; replays are read-only ``eth_call`` simulations.

Pipeline:
─────────
1. eth_getTransactionByHash + eth_getTransactionReceipt (concurrently)
   → status: success / reverted / pending / not_found
2. Calldata decode by selector table (first match wins), unwrapping at most
   one level of multicall(bytes[]) / multicall(uint256,bytes[])
3. For reverted transactions, with pinned block tags:
     before = inclusion block − 1
     after  = latest block number, read once, used as an explicit hex tag
   • replay the original call (from, to, data, value) at both blocks
   • allowance + balance of every token the decoded call spends, at both
     (native value sent with the tx covers the wrapped-native leg first)
   • pool tick at ``before`` for mint calls, block timestamp at inclusion
4. Root-cause ranking, first match is primary:
     deadline_expired → approval_race → funding_race →
     static_insufficiency → out_of_range_mint → revert → unknown

A replay that could not run at all (no gas funds, pruned state, transport
failure) is "replay unavailable": it yields ``unknown`` with
``inferred=False`` and is never reported as a revert of the original logic.

Refs:
  • Solidity revert encoding — Error(string) 0x08c379a0, Panic(uint256) 0x4e487b71
    https://docs.soliditylang.org/en/latest/control-structures.html
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from krlp_cli.contract_registry import (
    MULTICALL_DEADLINE_SELECTOR,
    MULTICALL_SELECTOR,
    WRITE_CALLS,
    calldata_words,
)
from krlp_cli.errors import CodecError, KrlpError, PartialDecodeError
from krlp_cli.rpc_transport import RpcFailure
from krlp_cli.word_codec import (
    SELECTOR_HEX,
    assert_tx_hash,
    decode_dynamic_byte_array,
    decode_error_string,
    decode_panic_code,
    decode_uint,
    hex_to_int,
    strip_0x,
    to_hex_quantity,
)
from position_reader import ContractReader

# ── Status / Outcome Tags ───────────────────────────────────────────────

TX_SUCCESS = "success"
TX_REVERTED = "reverted"
TX_PENDING = "pending"
TX_NOT_FOUND = "not_found"

DECODED = "decoded"
PARTIAL = "partial"
UNKNOWN = "unknown"

REPLAY_OK = "ok"
REPLAY_REVERTED = "reverted"
REPLAY_UNAVAILABLE = "replay_unavailable"

CAUSE_DEADLINE = "deadline_expired"
CAUSE_APPROVAL_RACE = "approval_race"
CAUSE_FUNDING_RACE = "funding_race"
CAUSE_STATIC_INSUFFICIENCY = "static_insufficiency"
CAUSE_OUT_OF_RANGE_MINT = "out_of_range_mint"
CAUSE_REVERT = "revert"
CAUSE_UNKNOWN = "unknown"

# Node messages meaning the simulation itself could not run.
REPLAY_UNAVAILABLE_MARKERS = (
    "insufficient funds",
    "gas required exceeds",
    "header not found",
    "missing trie node",
    "pruned",
    "state is not available",
    "unknown block",
    "intrinsic gas too low",
)


# ── Calldata Decoding ───────────────────────────────────────────────────


@dataclass(frozen=True)
class DecodedCall:
    status: str                               # decoded | partial | unknown
    selector: Optional[str]
    name: Optional[str] = None
    args: Dict[str, Any] = field(default_factory=dict)
    inner: Tuple["DecodedCall", ...] = ()
    error: Optional[str] = None

    @property
    def is_multicall(self) -> bool:
        return self.name == "multicall"

    def flatten(self) -> List["DecodedCall"]:
        """Inner calls of a multicall, else just this call."""
        return list(self.inner) if self.is_multicall else [self]


def _static_decoder(name: str) -> Callable[[str], DecodedCall]:
    spec = WRITE_CALLS[name]

    def decode(calldata: str) -> DecodedCall:
        try:
            args = spec.decode_args(calldata_words(calldata))
        except (PartialDecodeError, CodecError) as err:
            return DecodedCall(PARTIAL, spec.selector, name, error=str(err))
        return DecodedCall(DECODED, spec.selector, name, args)

    return decode


def _multicall_decoder(with_deadline: bool) -> Callable[[str], DecodedCall]:
    selector = MULTICALL_DEADLINE_SELECTOR if with_deadline else MULTICALL_SELECTOR

    def decode(calldata: str) -> DecodedCall:
        try:
            words = calldata_words(calldata)
        except CodecError as err:
            return DecodedCall(PARTIAL, selector, "multicall", error=str(err))
        needed = 2 if with_deadline else 1
        if len(words) < needed:
            return DecodedCall(
                PARTIAL, selector, "multicall", error=str(PartialDecodeError("multicall", needed, len(words)))
            )
        args: Dict[str, Any] = {}
        if with_deadline:
            args["deadline"] = decode_uint(words[0])
        offset = decode_uint(words[needed - 1])
        try:
            items = decode_dynamic_byte_array(strip_0x(calldata)[SELECTOR_HEX:], offset)
        except (CodecError, ValueError) as err:
            return DecodedCall(PARTIAL, selector, "multicall", args, error=str(err))
        args["calls"] = len(items)
        inner = tuple(decode_calldata(item, allow_nested=False) for item in items)
        return DecodedCall(DECODED, selector, "multicall", args, inner)

    return decode


# Priority order; the first matching selector wins.
DECODER_TABLE: Tuple[Tuple[str, Callable[[str], DecodedCall]], ...] = (
    (MULTICALL_SELECTOR, _multicall_decoder(False)),
    (MULTICALL_DEADLINE_SELECTOR, _multicall_decoder(True)),
) + tuple(
    (WRITE_CALLS[name].selector, _static_decoder(name))
    for name in (
        "collect",
        "decreaseLiquidity",
        "burn",
        "mint",
        "exactInputSingle",
        "approve",
        "approveForFarming",
        "enterFarming",
        "exitFarming",
        "collectRewards",
        "claimReward",
    )
)

_MULTICALL_SELECTORS = (MULTICALL_SELECTOR, MULTICALL_DEADLINE_SELECTOR)


def decode_calldata(calldata: str, allow_nested: bool = True) -> DecodedCall:
    """Decode calldata against DECODER_TABLE; ``unknown`` when nothing matches."""
    try:
        raw = strip_0x(calldata)
    except CodecError as err:
        return DecodedCall(UNKNOWN, None, error=str(err))
    if len(raw) < SELECTOR_HEX:
        return DecodedCall(UNKNOWN, None, error="calldata shorter than a selector")
    selector = "0x" + raw[:SELECTOR_HEX]
    for candidate, decoder in DECODER_TABLE:
        if candidate != selector:
            continue
        if candidate in _MULTICALL_SELECTORS and not allow_nested:
            return DecodedCall(UNKNOWN, selector, "multicall", error="nested multicall is not unwrapped")
        return decoder("0x" + raw)
    return DecodedCall(UNKNOWN, selector)


def describe_revert(data: Optional[str]) -> Optional[str]:
    """Error(string) text or Panic description; None for custom errors."""
    if not data:
        return None
    reason = decode_error_string(data)
    if reason is not None:
        return reason or "Error(string) with empty reason"
    panic = decode_panic_code(data)
    if panic is not None:
        return panic.describe()
    return None


# ── Requirements & Token Checks ─────────────────────────────────────────


@dataclass(frozen=True)
class TokenRequirement:
    token: str
    amount: int
    spender: str
    source: str


def derive_requirements(
    decoded: DecodedCall, spender: str, value: int = 0, wrapped_native: Optional[str] = None
) -> List[TokenRequirement]:
    """Tokens the call pulls from the sender, spent by the tx target.

    Native ``value`` sent with the tx pays the wrapped-native legs first (the
    target wraps it), so those legs only require the uncovered remainder.
    """
    native_left = value if wrapped_native else 0
    wrapped_native = (wrapped_native or "").lower()
    out: List[TokenRequirement] = []
    for call in decoded.flatten():
        if call.status != DECODED:
            continue
        a = call.args
        if call.name == "mint":
            pairs = [(a["token0"], a["amount0Desired"], "mint.amount0Desired"),
                     (a["token1"], a["amount1Desired"], "mint.amount1Desired")]
        elif call.name == "exactInputSingle":
            pairs = [(a["tokenIn"], a["amountIn"], "exactInputSingle.amountIn")]
        else:
            continue
        for token, amount, source in pairs:
            if native_left > 0 and token.lower() == wrapped_native:
                covered = min(native_left, amount)
                native_left -= covered
                amount -= covered
            if amount > 0:
                out.append(TokenRequirement(token, amount, spender, source))
    return out


def extract_deadlines(decoded: DecodedCall) -> List[int]:
    deadlines = []
    if decoded.status == DECODED and "deadline" in decoded.args:
        deadlines.append(decoded.args["deadline"])
    for call in decoded.inner:
        if call.status == DECODED and "deadline" in call.args:
            deadlines.append(call.args["deadline"])
    return deadlines


@dataclass(frozen=True)
class TokenCheck:
    """Allowance / balance before inclusion and at replay; None = read failed."""

    requirement: TokenRequirement
    allowance_before: Optional[int]
    allowance_after: Optional[int]
    balance_before: Optional[int]
    balance_after: Optional[int]

    def _race(self, before: Optional[int], after: Optional[int]) -> bool:
        if before is None or after is None:
            return False
        return before < self.requirement.amount <= after

    def _short_both(self, before: Optional[int], after: Optional[int]) -> bool:
        if before is None or after is None:
            return False
        return before < self.requirement.amount and after < self.requirement.amount

    @property
    def approval_race(self) -> bool:
        return self._race(self.allowance_before, self.allowance_after)

    @property
    def funding_race(self) -> bool:
        return self._race(self.balance_before, self.balance_after)

    @property
    def static_shortfall(self) -> bool:
        return self._short_both(self.allowance_before, self.allowance_after) or self._short_both(
            self.balance_before, self.balance_after
        )


# ── Replay ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ReplayResult:
    block: str
    outcome: str                     # ok | reverted | replay_unavailable
    return_data: Optional[str] = None
    revert_data: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None


def classify_replay_failure(err: RpcFailure, block: str) -> ReplayResult:
    """A revert payload always wins; node markers only apply without one."""
    data = err.revert_data
    if data is not None:
        return ReplayResult(
            block, REPLAY_REVERTED, revert_data=data, reason=describe_revert(data), error=err.rpc_message
        )
    message = (err.rpc_message or str(err)).lower()
    if any(marker in message for marker in REPLAY_UNAVAILABLE_MARKERS):
        return ReplayResult(block, REPLAY_UNAVAILABLE, error=err.rpc_message or str(err))
    if err.is_revert:
        return ReplayResult(block, REPLAY_REVERTED, error=err.rpc_message)
    # Transport-level failure: nothing is known about the call itself.
    return ReplayResult(block, REPLAY_UNAVAILABLE, error=str(err))


# ── Diagnosis ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RootCause:
    kind: str
    summary: str
    evidence: Dict[str, Any] = field(default_factory=dict)
    inferred: bool = True


@dataclass
class Diagnosis:
    tx_hash: str
    status: str
    decoded: Optional[DecodedCall] = None
    sender: Optional[str] = None
    target: Optional[str] = None
    inclusion_block: Optional[int] = None
    block_timestamp: Optional[int] = None
    pinned_before: Optional[str] = None
    pinned_after: Optional[str] = None
    replay_before: Optional[ReplayResult] = None
    replay_after: Optional[ReplayResult] = None
    pool_tick_before: Optional[int] = None
    checks: List[TokenCheck] = field(default_factory=list)
    causes: List[RootCause] = field(default_factory=list)

    @property
    def primary_cause(self) -> Optional[RootCause]:
        return self.causes[0] if self.causes else None

    @property
    def replay_unavailable(self) -> bool:
        return any(
            r is not None and r.outcome == REPLAY_UNAVAILABLE for r in (self.replay_before, self.replay_after)
        )


def rank_root_causes(
    decoded: DecodedCall,
    checks: List[TokenCheck],
    block_timestamp: Optional[int] = None,
    pool_tick_before: Optional[int] = None,
    replay_before: Optional[ReplayResult] = None,
    replay_after: Optional[ReplayResult] = None,
) -> List[RootCause]:
    """All matching causes in priority order; the first one is primary."""
    causes: List[RootCause] = []

    deadlines = extract_deadlines(decoded)
    if block_timestamp is not None and deadlines and min(deadlines) <= block_timestamp:
        causes.append(RootCause(
            CAUSE_DEADLINE,
            f"deadline {min(deadlines)} ≤ inclusion block timestamp {block_timestamp}",
            {"deadline": min(deadlines), "block_timestamp": block_timestamp},
            inferred=False,
        ))

    for check in checks:
        if check.approval_race:
            r = check.requirement
            causes.append(RootCause(
                CAUSE_APPROVAL_RACE,
                f"allowance of {r.token} for {r.spender} was {check.allowance_before} before inclusion "
                f"(needed {r.amount}) but is {check.allowance_after} now: approval landed too late",
                {"token": r.token, "required": r.amount,
                 "before": check.allowance_before, "after": check.allowance_after},
            ))
    for check in checks:
        if check.funding_race:
            r = check.requirement
            causes.append(RootCause(
                CAUSE_FUNDING_RACE,
                f"balance of {r.token} was {check.balance_before} before inclusion "
                f"(needed {r.amount}) but is {check.balance_after} now: funds arrived too late",
                {"token": r.token, "required": r.amount,
                 "before": check.balance_before, "after": check.balance_after},
            ))
    for check in checks:
        if check.static_shortfall:
            r = check.requirement
            causes.append(RootCause(
                CAUSE_STATIC_INSUFFICIENCY,
                f"{r.token} allowance/balance below {r.amount} both before inclusion and now",
                {"token": r.token, "required": r.amount,
                 "allowance": [check.allowance_before, check.allowance_after],
                 "balance": [check.balance_before, check.balance_after]},
                inferred=False,
            ))

    if pool_tick_before is not None:
        for call in decoded.flatten():
            if call.status != DECODED or call.name != "mint":
                continue
            a = call.args
            outside = pool_tick_before < a["tickLower"] or pool_tick_before >= a["tickUpper"]
            if outside and a["amount0Min"] > 0 and a["amount1Min"] > 0:
                causes.append(RootCause(
                    CAUSE_OUT_OF_RANGE_MINT,
                    f"pool tick {pool_tick_before} outside [{a['tickLower']}, {a['tickUpper']}) "
                    "while both minimum amounts are non-zero: mint must revert",
                    {"tick": pool_tick_before, "tick_lower": a["tickLower"], "tick_upper": a["tickUpper"],
                     "amount0_min": a["amount0Min"], "amount1_min": a["amount1Min"]},
                    inferred=False,
                ))

    for replay in (replay_before, replay_after):
        if replay is not None and replay.outcome == REPLAY_REVERTED:
            text = replay.reason or f"custom error / raw revert {replay.revert_data or '(no data)'}"
            causes.append(RootCause(
                CAUSE_REVERT, text,
                {"block": replay.block, "revert_data": replay.revert_data},
            ))
            break

    if not causes:
        unavailable = [r for r in (replay_before, replay_after) if r is not None and r.outcome == REPLAY_UNAVAILABLE]
        if unavailable:
            causes.append(RootCause(
                CAUSE_UNKNOWN,
                "replay unavailable: unknown, do not infer a root cause",
                {"replay_errors": [r.error for r in unavailable]},
                inferred=False,
            ))
        else:
            errors = [r.error for r in (replay_before, replay_after) if r is not None and r.error]
            causes.append(RootCause(
                CAUSE_UNKNOWN,
                "no structured cause found" + (f": {errors[0]}" if errors else ""),
                {"replay_errors": errors},
                inferred=False,
            ))
    return causes


async def _maybe(coro) -> Optional[int]:
    """Read that degrades to None on failure (reported, never guessed)."""
    try:
        return await coro
    except KrlpError as err:
        logger.debug("forensics read failed: {}", err)
        return None


class TxForensics:
    """
    Usage:
        forensics = TxForensics(ContractReader(RpcTransport()))
        diagnosis = await forensics.diagnose("0x...")
    """

    def __init__(self, reader: ContractReader):
        self.reader = reader
        self.transport = reader.transport

    async def replay(self, tx: dict, block: str) -> ReplayResult:
        to = tx.get("to")
        if not to:
            return ReplayResult(block, REPLAY_UNAVAILABLE, error="contract creation is not replayed")
        try:
            out = await self.transport.eth_call(
                to,
                tx.get("input") or "0x",
                block=block,
                sender=tx.get("from"),
                value=hex_to_int(tx.get("value"), 0),
            )
        except RpcFailure as err:
            return classify_replay_failure(err, block)
        return ReplayResult(block, REPLAY_OK, return_data=out)

    async def _check(self, req: TokenRequirement, owner: str, before: str, after: str) -> TokenCheck:
        r = self.reader
        results = await asyncio.gather(
            _maybe(r.read_allowance(req.token, owner, req.spender, block=before)),
            _maybe(r.read_allowance(req.token, owner, req.spender, block=after)),
            _maybe(r.read_balance(req.token, owner, block=before)),
            _maybe(r.read_balance(req.token, owner, block=after)),
        )
        return TokenCheck(req, *results)

    async def _mint_pool_tick(self, decoded: DecodedCall, before: str) -> Optional[int]:
        for call in decoded.flatten():
            if call.status == DECODED and call.name == "mint":
                a = call.args
                try:
                    pool = await self.reader.read_pool_address(a["token0"], a["token1"], a["deployer"])
                    if pool is None:
                        return None
                    return (await self.reader.read_pool_state(pool, block=before)).tick
                except KrlpError as err:
                    logger.debug("pool tick at {} unavailable: {}", before, err)
                    return None
        return None

    async def _requirements(self, decoded: DecodedCall, target: str, value: int) -> List[TokenRequirement]:
        if value <= 0 or not target:
            return derive_requirements(decoded, target)
        try:
            wrapped = await self.reader.read_wnative_token(target)
        except KrlpError as err:
            # Which leg the native value paid is unknown; token checks would guess.
            logger.warning("WNativeToken of {} unavailable, token checks skipped: {}", target, err)
            return []
        return derive_requirements(decoded, target, value, wrapped)

    async def _block_timestamp(self, block: int) -> Optional[int]:
        try:
            header = await self.transport.get_block_by_number(block)
        except RpcFailure as err:
            logger.debug("block {} header unavailable: {}", block, err)
            return None
        return hex_to_int((header or {}).get("timestamp"))

    async def diagnose(self, tx_hash: str) -> Diagnosis:
        tx_hash = assert_tx_hash(tx_hash)
        tx, receipt = await asyncio.gather(
            self.transport.get_transaction_by_hash(tx_hash),
            self.transport.get_transaction_receipt(tx_hash),
        )
        if not tx:
            return Diagnosis(tx_hash, TX_NOT_FOUND)

        decoded = decode_calldata(tx.get("input") or "0x")
        diagnosis = Diagnosis(
            tx_hash,
            TX_PENDING,
            decoded=decoded,
            sender=(tx.get("from") or "").lower() or None,
            target=(tx.get("to") or "").lower() or None,
        )
        if not receipt:
            return diagnosis

        diagnosis.inclusion_block = hex_to_int(receipt.get("blockNumber"))
        if hex_to_int(receipt.get("status"), 0) == 1:
            diagnosis.status = TX_SUCCESS
            return diagnosis
        diagnosis.status = TX_REVERTED

        inclusion = diagnosis.inclusion_block or 0
        latest = await self.transport.block_number()
        before = to_hex_quantity(max(0, inclusion - 1))
        after = to_hex_quantity(latest)
        diagnosis.pinned_before, diagnosis.pinned_after = before, after

        value = hex_to_int(tx.get("value"), 0) or 0
        requirements = await self._requirements(decoded, diagnosis.target or "", value)
        owner = diagnosis.sender or ""
        (
            diagnosis.block_timestamp,
            diagnosis.replay_before,
            diagnosis.replay_after,
            diagnosis.pool_tick_before,
            checks,
        ) = await asyncio.gather(
            self._block_timestamp(inclusion),
            self.replay(tx, before),
            self.replay(tx, after),
            self._mint_pool_tick(decoded, before),
            asyncio.gather(*(self._check(req, owner, before, after) for req in requirements)),
        )
        diagnosis.checks = list(checks)
        diagnosis.causes = rank_root_causes(
            decoded,
            diagnosis.checks,
            block_timestamp=diagnosis.block_timestamp,
            pool_tick_before=diagnosis.pool_tick_before,
            replay_before=diagnosis.replay_before,
            replay_after=diagnosis.replay_after,
        )
        logger.info("diagnosed {}: {}", tx_hash, diagnosis.primary_cause.kind)
        return diagnosis
