"""
Kittenswap LP CLI — Command Implementations
===========================================

All CLI command handlers live here, keeping run.py as a thin argparse
dispatcher. Each public ``cmd_*`` coroutine corresponds to a subcommand and
prints plain-text lines to stdout (full addresses and full calldata, never
truncated). Everything is dry-run except ``broadcast-raw``, which only
forwards an already-signed payload.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from loguru import logger

from krlp_cli.calldata import (
    MAX_UINT128,
    MAX_UINT256,
    apply_slippage,
    build_approve_calldata,
    build_approve_for_farming_calldata,
    build_burn_calldata,
    build_claim_reward_calldata,
    build_collect_calldata,
    build_decrease_liquidity_calldata,
    build_farming_collect_rewards_calldata,
    build_farming_enter_calldata,
    build_farming_exit_calldata,
    build_mint_calldata,
    build_swap_exact_input_single_calldata,
)
from krlp_cli.central_config import (
    HEARTBEAT_EDGE_BPS,
    PROJECT_NAME,
    PROJECT_VERSION,
    RebalancePolicy,
)
from krlp_cli.contract_registry import CONTRACTS, SELECTORS, WRITE_CALLS
from krlp_cli.errors import InputValidationError, KrlpError
from krlp_cli.rpc_transport import RpcFailure, RpcTransport
from krlp_cli.word_codec import (
    ZERO_ADDRESS,
    assert_address,
    format_units,
    parse_decimal_to_units,
    to_hex_quantity,
)
from incentive_keys import ExplorerHistorySource, IncentiveKeyResolver
from position_reader import AmountPair, ContractReader, PositionContext
from range_engine import (
    CenteredRange,
    assert_tick_aligned,
    balance_rebalance_hint,
    evaluate_rebalance_need,
    plan_replacement_range,
    range_headroom_pct,
    tick_to_price,
)
from tx_forensics import TX_REVERTED, TxForensics, describe_revert


@dataclass(frozen=True)
class PlanStep:
    step: str
    to: str
    data: str
    value: int = 0


def _emit(lines: List[str]) -> None:
    print("\n".join(lines))


def _amount(raw: Optional[int], decimals: int, symbol, precision: int = 8) -> str:
    if raw is None:
        return "n/a"
    return f"{format_units(raw, decimals, precision)} {symbol}"


async def _deadline(transport: RpcTransport, seconds: int) -> int:
    """Latest block timestamp + ``seconds`` (wall clock if the header read fails)."""
    try:
        block = await transport.get_block_by_number("latest")
        now = int(block["timestamp"], 16)
    except (RpcFailure, KeyError, TypeError, ValueError):
        now = int(time.time())
    return now + seconds


async def _gas_lines(reader: ContractReader, sender: str, steps: List[PlanStep]) -> List[str]:
    gas_price, estimates = await asyncio.gather(
        _safe_gas_price(reader.transport),
        asyncio.gather(*(reader.estimate_call_gas(sender, s.to, s.data, s.value) for s in steps)),
    )
    lines = ["- transaction templates (full calldata):"]
    for i, (step, est) in enumerate(zip(steps, estimates), 1):
        lines.append(f"  - step {i}: {step.step}")
        lines.append(f"    - to: {step.to}")
        lines.append(f"    - value: {to_hex_quantity(step.value)} ({format_units(step.value, 18, 8)} HYPE)")
        lines.append(f"    - data: {step.data}")
        lines.append(f"    - gas est: {est.gas}" if est.ok else f"    - gas est: unavailable ({est.error})")
    total = sum(e.gas for e in estimates if e.ok)
    if gas_price is not None:
        lines.append(f"- gas price: {format_units(gas_price, 9, 3)} gwei")
        lines.append(f"- total gas est (available steps): {total}")
        lines.append(f"- est total fee: {format_units(total * gas_price, 18, 8)} HYPE")
    else:
        lines.append("- gas price: unavailable")
    return lines


async def _safe_gas_price(transport: RpcTransport) -> Optional[int]:
    try:
        return await transport.gas_price()
    except RpcFailure:
        return None


def _or_unknown(value) -> str:
    return "unknown (read failure)" if value is None else str(value)


async def _optional(coro, label: str):
    """Best-effort read for display: None (logged) instead of aborting the command."""
    try:
        return await coro
    except KrlpError as err:
        logger.warning("{} unavailable: {}", label, err)
        return None


# ── health / contracts ──────────────────────────────────────────────────


async def cmd_health(transport: RpcTransport) -> int:
    """RPC reachability + chain id check."""
    chain_id, block, gas_price = await asyncio.gather(
        transport.chain_id(), transport.block_number(), transport.gas_price()
    )
    expected = transport.settings.chain_id
    ok = chain_id == expected
    _emit([
        f"{PROJECT_NAME} v{PROJECT_VERSION}",
        f"- rpc: {transport.settings.rpc_url}",
        f"- chain id: {chain_id} ({'ok' if ok else f'MISMATCH, expected {expected}'})",
        f"- latest block: {block}",
        f"- gas price: {format_units(gas_price, 9, 3)} gwei",
    ])
    return 0 if ok else 1


def cmd_contracts() -> int:
    lines = ["Kittenswap contracts (HyperEVM)"]
    lines += [f"- {name}: {addr}" for name, addr in CONTRACTS.items()]
    lines.append("Read selectors")
    lines += [f"- {name}: {sel}" for name, sel in SELECTORS.items()]
    lines.append("Write selectors")
    lines += [f"- {spec.name}: {spec.selector}" for spec in WRITE_CALLS.values()]
    _emit(lines)
    return 0


# ── position / status ───────────────────────────────────────────────────


def _position_lines(ctx: PositionContext, native_balance: Optional[int] = None) -> List[str]:
    p, t0, t1 = ctx.position, ctx.token0, ctx.token1
    price = tick_to_price(ctx.pool_state.tick, t0.decimals, t1.decimals)
    headroom = range_headroom_pct(ctx.pool_state.tick, p.tick_lower, p.tick_upper)
    lines = [
        f"Kittenswap position #{ctx.token_id}",
        f"- nft owner: {ctx.owner}",
        f"- pair: {t0.symbol} ({p.token0}) / {t1.symbol} ({p.token1})",
        f"- token names: {t0.name or t0.symbol} | {t1.name or t1.symbol}",
        f"- deployer: {p.deployer}",
        f"- pool: {ctx.pool}",
        f"- tick spacing: {ctx.tick_spacing}",
        f"- range: [{p.tick_lower}, {p.tick_upper}) | current tick {ctx.pool_state.tick}",
        f"- price ({t1.symbol} per {t0.symbol}): {price if price is not None else 'n/a'}",
        f"- liquidity: {p.liquidity}",
        f"- tokens owed: {_amount(p.tokens_owed0, t0.decimals, t0.symbol)} | {_amount(p.tokens_owed1, t1.decimals, t1.symbol)}",
        f"- min headroom: {f'{headroom:.2f}%' if headroom is not None else 'n/a'} of width",
        f"- wallet balances: {_amount(t0.balance, t0.decimals, t0.symbol)} | {_amount(t1.balance, t1.decimals, t1.symbol)}",
        f"- native balance: {_amount(native_balance, 18, 'HYPE')}",
    ]
    lines += [f"- note: {n}" for n in ctx.notes]
    return lines


async def cmd_position(reader: ContractReader, token_id: int, owner: Optional[str] = None) -> int:
    ctx = await reader.load_position_context(token_id, owner)
    native = await _optional(reader.read_native_balance(ctx.owner), "native balance")
    _emit(_position_lines(ctx, native))
    return 0


async def cmd_status(reader: ContractReader, token_id: int, edge_bps: int = HEARTBEAT_EDGE_BPS) -> int:
    """Heartbeat-style decision: exit code 2 when a rebalance is due."""
    ctx = await reader.load_position_context(token_id)
    p = ctx.position
    ev = evaluate_rebalance_need(ctx.pool_state.tick, p.tick_lower, p.tick_upper, edge_bps)
    _emit([
        f"Kittenswap status #{token_id}",
        f"- range: [{p.tick_lower}, {p.tick_upper}) | current tick {ctx.pool_state.tick}",
        f"- headroom ticks: lower {ev.lower_headroom_ticks} | upper {ev.upper_headroom_ticks}",
        f"- edge buffer: {ev.edge_buffer_ticks} ticks ({edge_bps} bps of {ev.width_ticks})",
        f"- decision: {'REBALANCE' if ev.should_rebalance else 'HOLD'} ({ev.reason})",
    ])
    return 2 if ev.should_rebalance else 0


# ── plan ────────────────────────────────────────────────────────────────


def build_rebalance_steps(
    ctx: PositionContext,
    suggested: CenteredRange,
    recipient: str,
    deadline: int,
    slippage_bps: int,
    decrease_preview: Optional[AmountPair] = None,
    amount0_desired: Optional[int] = None,
    amount1_desired: Optional[int] = None,
    burn_old: bool = False,
) -> List[PlanStep]:
    """collect → decrease → collect → (burn) → (mint), all to the position manager."""
    pm = CONTRACTS["positionManager"]
    token_id = ctx.token_id
    min0 = apply_slippage(decrease_preview.amount0, slippage_bps) if decrease_preview else 0
    min1 = apply_slippage(decrease_preview.amount1, slippage_bps) if decrease_preview else 0

    steps = [
        PlanStep("collect_before", pm, build_collect_calldata(token_id, recipient, MAX_UINT128, MAX_UINT128)),
        PlanStep(
            "decrease_liquidity",
            pm,
            build_decrease_liquidity_calldata(token_id, ctx.position.liquidity, deadline, min0, min1),
        ),
        PlanStep("collect_after", pm, build_collect_calldata(token_id, recipient, MAX_UINT128, MAX_UINT128)),
    ]
    if burn_old:
        steps.append(PlanStep("burn_old_nft", pm, build_burn_calldata(token_id)))
    if amount0_desired is not None and amount1_desired is not None:
        if amount0_desired <= 0 or amount1_desired <= 0:
            raise InputValidationError("amount0 and amount1 must be > 0 for mint calldata")
        assert_tick_aligned(suggested.tick_lower, ctx.tick_spacing)
        assert_tick_aligned(suggested.tick_upper, ctx.tick_spacing)
        steps.append(PlanStep("mint_new_position", pm, build_mint_calldata(
            token0=ctx.position.token0,
            token1=ctx.position.token1,
            deployer=ctx.position.deployer,
            tick_lower=suggested.tick_lower,
            tick_upper=suggested.tick_upper,
            amount0_desired=amount0_desired,
            amount1_desired=amount1_desired,
            amount0_min=apply_slippage(amount0_desired, slippage_bps),
            amount1_min=apply_slippage(amount1_desired, slippage_bps),
            recipient=recipient,
            deadline=deadline,
            tick_spacing=ctx.tick_spacing,
        )))
    return steps


async def cmd_plan(
    reader: ContractReader,
    token_id: int,
    owner: Optional[str] = None,
    recipient: Optional[str] = None,
    policy: Optional[RebalancePolicy] = None,
    width_bump_ticks: int = 0,
    amount0: Optional[str] = None,
    amount1: Optional[str] = None,
    burn_old: bool = False,
) -> int:
    policy = (policy or RebalancePolicy()).normalized()
    ctx = await reader.load_position_context(token_id, owner)
    sender = assert_address(owner, "owner") if owner else ctx.owner
    recipient = assert_address(recipient, "recipient") if recipient else sender
    p, t0, t1 = ctx.position, ctx.token0, ctx.token1

    plan = plan_replacement_range(
        ctx.pool_state.tick, p.tick_lower, p.tick_upper, ctx.tick_spacing, policy.edge_bps, width_bump_ticks
    )
    deadline = await _deadline(reader.transport, policy.deadline_seconds)

    preview: Optional[AmountPair] = None
    preview_note = None
    if p.liquidity > 0:
        try:
            preview = await reader.simulate_decrease_liquidity(token_id, p.liquidity, sender, deadline)
        except KrlpError as err:
            preview_note = f"decrease simulation unavailable ({err}); minimums left at 0"
    fees, native = await asyncio.gather(
        _optional(reader.simulate_collect(token_id, sender, recipient), "collect simulation"),
        _optional(reader.read_native_balance(sender), "native balance"),
    )

    amount0_raw = parse_decimal_to_units(amount0, t0.decimals) if amount0 is not None else None
    amount1_raw = parse_decimal_to_units(amount1, t1.decimals) if amount1 is not None else None
    steps = build_rebalance_steps(
        ctx, plan.suggested, recipient, deadline, policy.slippage_bps, preview,
        amount0_raw, amount1_raw, burn_old,
    )

    ev = plan.evaluation
    lines = [
        f"Kittenswap LP rebalance plan ({token_id})",
        f"- from (tx sender): {sender}",
        f"- recipient: {recipient}",
        f"- nft owner: {ctx.owner}{'' if ctx.owner == sender else ' [DIFFERS FROM from]'}",
        f"- pool: {ctx.pool}",
        f"- current ticks: [{p.tick_lower}, {p.tick_upper}) | current {ctx.pool_state.tick}",
        f"- decision: {'REBALANCE' if ev.should_rebalance else 'NO_REBALANCE'} ({ev.reason})",
        f"- width: base {plan.base_width} | bump requested {plan.bump_requested} "
        f"| applied {plan.bump_applied} | target {plan.target_width}",
        f"- suggested ticks: [{plan.suggested.tick_lower}, {plan.suggested.tick_upper})",
        f"- policy: edge={policy.edge_bps}bps slippage={policy.slippage_bps}bps deadline={policy.deadline_seconds}s",
        f"- deadline unix: {deadline}",
        f"- wallet balances: {_amount(t0.balance, t0.decimals, t0.symbol)} | {_amount(t1.balance, t1.decimals, t1.symbol)}",
    ]
    if preview is not None:
        lines.append(
            f"- decrease preview: {_amount(preview.amount0, t0.decimals, t0.symbol)} "
            f"+ {_amount(preview.amount1, t1.decimals, t1.symbol)}"
        )
    lines.append(
        f"- collectable fees now: {_amount(fees.amount0, t0.decimals, t0.symbol)} "
        f"+ {_amount(fees.amount1, t1.decimals, t1.symbol)}"
        if fees is not None else "- collectable fees now: simulation unavailable"
    )
    lines.append(f"- native balance (gas): {_amount(native, 18, 'HYPE')}")
    if preview_note:
        lines.append(f"- note: {preview_note}")

    price = tick_to_price(ctx.pool_state.tick, t0.decimals, t1.decimals)
    if t0.balance is not None and t1.balance is not None and price:
        hint = balance_rebalance_hint(
            Decimal(format_units(t0.balance, t0.decimals, 18)),
            Decimal(format_units(t1.balance, t1.decimals, 18)),
            Decimal(repr(price)),
        )
        if hint is not None and hint.overweight != "balanced":
            side = t0 if hint.overweight == "token0" else t1
            lines.append(
                f"- balance hint: {side.symbol} overweight ({hint.skew_pct:.1f}% skew); "
                f"swap ~{hint.swap_amount:.6f} {side.symbol} toward 50/50"
            )
    if amount0_raw is None or amount1_raw is None:
        lines.append("- mint calldata: not generated (provide both --amount0 and --amount1)")
    if not burn_old:
        lines.append("- burn step: skipped (pass --burn-old once liquidity and owed fees are zero)")

    lines += await _gas_lines(reader, sender, steps)
    lines += [
        "- safety:",
        "  - dry-run only: this command does not sign or broadcast",
        "  - if nft owner != from, execution fails unless the sender is an approved operator",
    ]
    _emit(lines)
    return 0


# ── swap-plan ───────────────────────────────────────────────────────────


async def cmd_swap_plan(
    reader: ContractReader,
    token_in: str,
    token_out: str,
    amount_in: str,
    owner: str,
    recipient: Optional[str] = None,
    deployer: str = ZERO_ADDRESS,
    policy: Optional[RebalancePolicy] = None,
    native_in: bool = False,
    approve_max: bool = False,
) -> int:
    """Single-hop exactInputSingle plan (no multi-hop routing)."""
    policy = (policy or RebalancePolicy()).normalized()
    token_in, token_out = assert_address(token_in, "tokenIn"), assert_address(token_out, "tokenOut")
    if token_in == token_out:
        raise InputValidationError("tokenIn and tokenOut must differ")
    owner = assert_address(owner, "owner")
    recipient = assert_address(recipient, "recipient") if recipient else owner
    deployer = assert_address(deployer, "deployer")
    router = CONTRACTS["router"]

    meta_in, meta_out = await asyncio.gather(
        reader.read_token_snapshot(token_in, owner), reader.read_token_snapshot(token_out, owner)
    )
    amount_raw = parse_decimal_to_units(amount_in, meta_in.decimals)
    if amount_raw <= 0:
        raise InputValidationError("amount-in must be > 0")
    if native_in:
        wnative = await reader.read_wnative_token()
        if token_in != wnative:
            raise InputValidationError(f"--native-in requires tokenIn == router WNativeToken ({wnative})")

    quote = await reader.quote_exact_input_single(token_in, token_out, amount_raw, deployer)
    min_out = apply_slippage(quote.amount_out, policy.slippage_bps)
    deadline = await _deadline(reader.transport, policy.deadline_seconds)

    allowance: Optional[int] = None
    if not native_in:
        try:
            allowance = await reader.read_allowance(token_in, owner, router)
        except KrlpError:
            allowance = None
    needs_approval = not native_in and (allowance is None or allowance < amount_raw)

    steps: List[PlanStep] = []
    if needs_approval:
        steps.append(PlanStep(
            "approve_token_in", token_in,
            build_approve_calldata(router, MAX_UINT256 if approve_max else amount_raw),
        ))
    steps.append(PlanStep(
        "swap_exact_input_single",
        router,
        build_swap_exact_input_single_calldata(
            token_in=token_in,
            token_out=token_out,
            deployer=deployer,
            recipient=recipient,
            deadline=deadline,
            amount_in=amount_raw,
            amount_out_minimum=min_out,
        ),
        amount_raw if native_in else 0,
    ))

    lines = [
        "Kittenswap swap plan (exactInputSingle)",
        f"- from (tx sender): {owner}",
        f"- recipient: {recipient}",
        f"- router: {router}",
        f"- deployer: {deployer}",
        f"- token in: {meta_in.symbol} ({token_in})",
        f"- token out: {meta_out.symbol} ({token_out})",
        f"- amount in: {_amount(amount_raw, meta_in.decimals, meta_in.symbol)}",
        f"- quoted amount out: {_amount(quote.amount_out, meta_out.decimals, meta_out.symbol)}",
        f"- minimum amount out: {_amount(min_out, meta_out.decimals, meta_out.symbol)}",
        f"- quote fee: {quote.fee} | ticks crossed: {quote.ticks_crossed}",
        f"- deadline unix: {deadline}",
        f"- router allowance: {_amount(allowance, meta_in.decimals, meta_in.symbol) if not native_in else 'n/a (native in)'}",
        f"- approval required: {'YES' if needs_approval else 'NO'}",
    ]
    lines += await _gas_lines(reader, owner, steps)
    _emit(lines)
    return 0


# ── farm-status ─────────────────────────────────────────────────────────


async def cmd_farm_status(
    reader: ContractReader,
    token_id: int,
    account: Optional[str] = None,
    history: Optional[ExplorerHistorySource] = None,
    resolver: Optional[IncentiveKeyResolver] = None,
) -> int:
    ctx = await reader.load_position_context(token_id)
    account = assert_address(account, "account") if account else ctx.owner
    fc = CONTRACTS["farmingCenter"]
    pm = CONTRACTS["positionManager"]
    status, approval, wired = await asyncio.gather(
        reader.read_stake_status(token_id),
        reader.read_farming_approval(token_id),
        _optional(reader.read_farming_center(), "position manager farmingCenter"),
    )
    staked = {True: "YES", False: "NO", None: "UNKNOWN (read failure)"}[status.staked]
    if wired is None:
        wiring = "unknown (read failure)"
    else:
        wiring = f"{wired} ({'matches' if wired == fc else 'MISMATCH with'} configured {fc})"
    lines = [
        f"Kittenswap farm status #{token_id}",
        f"- pool: {ctx.pool}",
        f"- staked in configured Kittenswap farm: {staked} ({status.code})",
        f"- tokenFarmedIn: {status.farmed_in or 'n/a'}",
        f"- deposit incentive id: {status.deposit_id or 'n/a'}",
        f"- farming approval: {approval}",
        f"- position manager farmingCenter: {wiring}",
    ]
    if status.error:
        lines.append(f"- read error: {status.error}")
    if status.staked:
        resolver = resolver or IncentiveKeyResolver(reader, history=history)
        resolution = await resolver.resolve(ctx.pool, token_id, account)
        key = resolution.key
        reward, bonus, incentive = await asyncio.gather(
            _optional(reader.read_reward_balance(account, key.reward_token), "reward balance"),
            _optional(reader.read_reward_balance(account, key.bonus_reward_token), "bonus reward balance"),
            _optional(reader.read_incentive(resolution.incentive_id), "incentive state"),
        )
        if incentive is None:
            state = "unknown (read failure)"
        else:
            state = "DEACTIVATED" if incentive.deactivated else "active"
        lines += [
            f"- incentive key ({resolution.source}): reward {key.reward_token} | bonus {key.bonus_reward_token} "
            f"| pool {key.pool} | nonce {key.nonce}",
            f"- incentive {resolution.incentive_id}: {state}",
            f"- accrued (claimable) rewards: {_or_unknown(reward)} | bonus {_or_unknown(bonus)}",
            "- transaction templates (full calldata):",
            f"  - collect_rewards: to {fc} data {build_farming_collect_rewards_calldata(key, token_id)}",
        ]
        if reward is not None:
            lines.append(
                f"  - claim_reward: to {fc} data {build_claim_reward_calldata(key.reward_token, account, reward)}"
            )
        lines.append(f"  - exit_farming: to {fc} data {build_farming_exit_calldata(key, token_id)}")
    elif status.staked is False:
        key = await _optional(reader.read_incentive_key(ctx.pool), "active incentive key")
        lines.append("- transaction templates (full calldata):")
        if approval != fc:
            lines.append(
                f"  - approve_for_farming: to {pm} data {build_approve_for_farming_calldata(token_id, fc)}"
            )
        if key is None:
            lines.append("  - enter_farming: no active incentive key readable for this pool")
        else:
            lines.append(f"  - enter_farming: to {fc} data {build_farming_enter_calldata(key, token_id)}")
    _emit(lines)
    return 0


# ── diagnose ────────────────────────────────────────────────────────────


async def cmd_diagnose(reader: ContractReader, tx_hash: str) -> int:
    d = await TxForensics(reader).diagnose(tx_hash)
    lines = [f"Transaction diagnosis {d.tx_hash}", f"- status: {d.status}"]
    if d.decoded is not None:
        call = d.decoded
        lines.append(f"- call: {call.name or 'unknown'} ({call.status}, selector {call.selector})")
        for inner in call.inner:
            lines.append(f"  - inner: {inner.name or 'unknown'} ({inner.status}, selector {inner.selector})")
        for k, v in call.args.items():
            lines.append(f"  - {k}: {v}")
        if call.error:
            lines.append(f"  - decode error: {call.error}")
    if d.inclusion_block is not None:
        lines.append(f"- inclusion block: {d.inclusion_block} (timestamp {d.block_timestamp})")
    if d.status == TX_REVERTED:
        lines.append(f"- pinned blocks: before {d.pinned_before} | after {d.pinned_after}")
        for label, r in (("before", d.replay_before), ("after", d.replay_after)):
            if r is not None:
                detail = r.reason or describe_revert(r.revert_data) or r.error or ""
                lines.append(f"- replay {label}: {r.outcome} {detail}".rstrip())
        for c in d.checks:
            lines.append(
                f"- {c.requirement.token} needs {c.requirement.amount} for {c.requirement.spender}: "
                f"allowance {c.allowance_before} → {c.allowance_after}, balance {c.balance_before} → {c.balance_after}"
            )
        for i, cause in enumerate(d.causes):
            tag = "primary" if i == 0 else "also"
            lines.append(f"- cause ({tag}): {cause.kind}{' [inferred]' if cause.inferred else ''}: {cause.summary}")
    _emit(lines)
    return 0


# ── broadcast-raw ───────────────────────────────────────────────────────


async def cmd_broadcast_raw(
    transport: RpcTransport, raw_tx: str, confirmation: Optional[str], wait: bool = True
) -> int:
    tx_hash = await transport.send_raw_transaction(raw_tx, confirmation)
    lines = ["HyperEVM raw broadcast", f"- tx hash: {tx_hash}"]
    if wait:
        receipt = await transport.wait_for_receipt(tx_hash, transport.settings.broadcast_timeout_seconds)
        if receipt is None:
            lines.append("- receipt status: n/a (timed out waiting)")
        else:
            ok = int(receipt.get("status", "0x0"), 16) == 1
            lines.append(f"- receipt status: {'success' if ok else 'revert'}")
            if receipt.get("gasUsed"):
                lines.append(f"- gas used: {int(receipt['gasUsed'], 16)}")
    else:
        lines.append("- receipt wait: skipped (--no-wait)")
    _emit(lines)
    return 0
