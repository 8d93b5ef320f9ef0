#!/usr/bin/env python3
"""
Tick-Range Decision Engine
==========================

Pure integer math over (current tick, [tickLower, tickUpper), tick spacing):
HOLD vs REBALANCE, the centered replacement range, and the gradual
widening policy. No I/O; every function is deterministic.

FORMULA SOURCES:
────────────────
1. Algebra Integral — tick-indexed concentrated liquidity
   https://docs.algebra.finance/algebra-integral-documentation
   - Position is active while  tickLower ≤ currentTick < tickUpper
   - Range bounds must be multiples of the pool's tickSpacing

2. Uniswap V3 Whitepaper §6.1 — price ↔ tick
   https://uniswap.org/whitepaper-v3.pdf
   - p(i) = 1.0001^i × 10^(d0 − d1)

Decision:
  width          = upper − lower                       (must be > 0)
  edgeBuffer     = ⌊width × edgeBps / 10000⌋
  OUT_OF_RANGE   : current < lower  or  current ≥ upper
  NEAR_EDGE      : in range and min(current−lower, upper−current) ≤ edgeBuffer
  HEALTHY        : otherwise (the only no-action state)

Centered range (spacing s):
  center   = round(current / s) · s
  newLower = ⌊(center − ⌊width/2⌋) / s⌋ · s
  newUpper = newLower + ⌈width / s⌉ · s
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from krlp_cli.errors import InputValidationError, StateInvariantError

BPS = 10_000
DEFAULT_EDGE_BPS = 1500

OUT_OF_RANGE = "out_of_range"
NEAR_EDGE = "near_edge"
HEALTHY = "healthy"


@dataclass(frozen=True)
class RebalanceEvaluation:
    width_ticks: int
    lower_headroom_ticks: int
    upper_headroom_ticks: int
    edge_buffer_ticks: int
    out_of_range: bool
    near_edge: bool
    should_rebalance: bool
    reason: str

    @property
    def min_headroom_ticks(self) -> int:
        return min(self.lower_headroom_ticks, self.upper_headroom_ticks)


@dataclass(frozen=True)
class CenteredRange:
    tick_lower: int
    tick_upper: int

    @property
    def width_ticks(self) -> int:
        return self.tick_upper - self.tick_lower


@dataclass(frozen=True)
class ReplacementPlan:
    evaluation: RebalanceEvaluation
    base_width: int
    bump_requested: int
    bump_applied: int
    target_width: int
    suggested: CenteredRange


def _width(lower: int, upper: int) -> int:
    width = upper - lower
    if width <= 0:
        raise InputValidationError(f"Invalid tick range: [{lower}, {upper}]")
    return width


def _spacing(tick_spacing: int) -> int:
    s = abs(int(tick_spacing or 1))
    if s < 1:
        raise InputValidationError(f"Invalid tick spacing: {tick_spacing}")
    return s


def align_tick_down(tick: int, spacing: int) -> int:
    s = _spacing(spacing)
    return (tick // s) * s


def align_tick_nearest(tick: int, spacing: int) -> int:
    """Nearest multiple of ``spacing``; halves round toward +∞."""
    s = _spacing(spacing)
    return ((2 * tick + s) // (2 * s)) * s


def assert_tick_aligned(tick: int, spacing: int) -> int:
    if tick % _spacing(spacing):
        raise StateInvariantError(f"Tick {tick} is not a multiple of tick spacing {spacing}")
    return tick


def evaluate_rebalance_need(
    current_tick: int, tick_lower: int, tick_upper: int, edge_bps: int = DEFAULT_EDGE_BPS
) -> RebalanceEvaluation:
    """Classify the range as out_of_range / near_edge / healthy.

    >>> evaluate_rebalance_need(-242319, -242570, -242070).reason
    'healthy'
    """
    width = _width(tick_lower, tick_upper)
    lower_headroom = current_tick - tick_lower
    upper_headroom = tick_upper - current_tick
    edge_ticks = width * max(0, min(BPS, int(edge_bps))) // BPS
    out_of_range = current_tick < tick_lower or current_tick >= tick_upper
    near_edge = not out_of_range and min(lower_headroom, upper_headroom) <= edge_ticks
    if out_of_range:
        reason = OUT_OF_RANGE
    elif near_edge:
        reason = NEAR_EDGE
    else:
        reason = HEALTHY
    return RebalanceEvaluation(
        width_ticks=width,
        lower_headroom_ticks=lower_headroom,
        upper_headroom_ticks=upper_headroom,
        edge_buffer_ticks=edge_ticks,
        out_of_range=out_of_range,
        near_edge=near_edge,
        should_rebalance=out_of_range or near_edge,
        reason=reason,
    )


def suggest_centered_range(current_tick: int, old_lower: int, old_upper: int, tick_spacing: int) -> CenteredRange:
    """Re-center the old width on the current tick, spacing-aligned."""
    width = _width(old_lower, old_upper)
    s = _spacing(tick_spacing)
    center = align_tick_nearest(current_tick, s)
    new_lower = align_tick_down(center - width // 2, s)
    new_upper = new_lower + (-(-width // s)) * s
    if new_upper <= new_lower:
        new_upper = new_lower + s
    return CenteredRange(new_lower, new_upper)


def widened_width(old_width: int, bump_requested_ticks: int, tick_spacing: int) -> tuple:
    """(bump_applied, target_width) with the bump rounded up to spacing."""
    if bump_requested_ticks < 0:
        raise InputValidationError(f"Width bump cannot be negative: {bump_requested_ticks}")
    s = _spacing(tick_spacing)
    bump_applied = (-(-bump_requested_ticks // s)) * s
    return bump_applied, old_width + bump_applied


def plan_replacement_range(
    current_tick: int,
    tick_lower: int,
    tick_upper: int,
    tick_spacing: int,
    edge_bps: int = DEFAULT_EDGE_BPS,
    width_bump_ticks: int = 0,
) -> ReplacementPlan:
    """Evaluate, then center a replacement range.

    The widening bump is applied only when the evaluation triggers a
    rebalance; a healthy range is re-centered at its current width.
    """
    evaluation = evaluate_rebalance_need(current_tick, tick_lower, tick_upper, edge_bps)
    base_width = evaluation.width_ticks
    if evaluation.should_rebalance:
        bump_applied, target_width = widened_width(base_width, width_bump_ticks, tick_spacing)
    else:
        bump_applied, target_width = 0, base_width
    suggested = suggest_centered_range(current_tick, tick_lower, tick_lower + target_width, tick_spacing)
    return ReplacementPlan(
        evaluation=evaluation,
        base_width=base_width,
        bump_requested=width_bump_ticks,
        bump_applied=bump_applied,
        target_width=target_width,
        suggested=suggested,
    )


# ── Display Helpers ─────────────────────────────────────────────────────


def range_headroom_pct(current_tick: int, tick_lower: int, tick_upper: int) -> Optional[float]:
    """Smallest edge distance as a percent of width (negative when outside)."""
    width = tick_upper - tick_lower
    if width <= 0:
        return None
    return min(current_tick - tick_lower, tick_upper - current_tick) / width * 100


def tick_to_price(tick: int, decimals0: int = 18, decimals1: int = 18) -> Optional[float]:
    """token1 per token0 at ``tick`` (float, for display only)."""
    try:
        out = math.pow(1.0001, tick) * math.pow(10, decimals0 - decimals1)
    except OverflowError:
        return None
    return out if math.isfinite(out) else None


@dataclass(frozen=True)
class BalanceHint:
    overweight: str               # "token0" | "token1" | "balanced"
    value0_in_token1: Decimal
    value1: Decimal
    swap_amount: Decimal          # in units of the overweight token
    skew_pct: Decimal


def balance_rebalance_hint(
    amount0: Optional[Decimal],
    amount1: Optional[Decimal],
    price1_per_0: Optional[Decimal],
    tolerance_bps: int = 100,
) -> Optional[BalanceHint]:
    """Which wallet side is overweight and roughly how much to swap toward 50/50."""
    if amount0 is None or amount1 is None or not price1_per_0 or price1_per_0 <= 0:
        return None
    value0 = Decimal(amount0) * Decimal(price1_per_0)
    value1 = Decimal(amount1)
    total = value0 + value1
    if total <= 0:
        return None
    half = total / 2
    skew = (value0 - half) / total * 100
    if abs(value0 - half) * BPS <= total * tolerance_bps:
        return BalanceHint("balanced", value0, value1, Decimal(0), skew)
    if value0 > half:
        return BalanceHint("token0", value0, value1, (value0 - half) / Decimal(price1_per_0), skew)
    return BalanceHint("token1", value0, value1, value1 - half, skew)
