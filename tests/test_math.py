"""
Test Suite — Tick-Range Decision Engine
========================================

Validates range_engine.py against hand-computed expectations:

  - HOLD vs REBALANCE on the live WHYPE/USDC scenario
    ([-242570, -242070) at tick -242319, spacing 10)
  - tick alignment (down / nearest, negative ticks)
  - centered replacement range and gradual widening
  - wallet balance hint toward 50/50

Run:  python -m pytest tests/test_math.py -v
"""

from decimal import Decimal

import pytest

from krlp_cli.errors import InputValidationError, StateInvariantError
from range_engine import (
    HEALTHY,
    NEAR_EDGE,
    OUT_OF_RANGE,
    CenteredRange,
    align_tick_down,
    align_tick_nearest,
    assert_tick_aligned,
    balance_rebalance_hint,
    evaluate_rebalance_need,
    plan_replacement_range,
    range_headroom_pct,
    suggest_centered_range,
    tick_to_price,
    widened_width,
)

LOWER, UPPER, CURRENT, SPACING = -242570, -242070, -242319, 10


# ── Rebalance Decision ───────────────────────────────────────────────────

class TestEvaluateRebalanceNeed:
    """width 500, headroom lower 251 / upper 249."""

    def test_scenario_hold_at_15_percent(self):
        ev = evaluate_rebalance_need(CURRENT, LOWER, UPPER, 1500)
        assert ev.width_ticks == 500
        assert ev.edge_buffer_ticks == 75
        assert (ev.lower_headroom_ticks, ev.upper_headroom_ticks) == (251, 249)
        assert ev.should_rebalance is False
        assert ev.reason == HEALTHY

    def test_scenario_rebalance_at_50_percent(self):
        ev = evaluate_rebalance_need(CURRENT, LOWER, UPPER, 5000)
        assert ev.edge_buffer_ticks == 250
        assert ev.near_edge is True
        assert ev.should_rebalance is True
        assert ev.reason == NEAR_EDGE

    def test_upper_bound_is_exclusive(self):
        ev = evaluate_rebalance_need(UPPER, LOWER, UPPER, 0)
        assert ev.out_of_range is True
        assert ev.reason == OUT_OF_RANGE

    def test_lower_bound_is_inclusive(self):
        ev = evaluate_rebalance_need(LOWER, LOWER, UPPER, 0)
        assert ev.out_of_range is False
        # Zero headroom is always within a zero-tick buffer.
        assert ev.near_edge is True

    def test_below_range(self):
        ev = evaluate_rebalance_need(LOWER - 1, LOWER, UPPER)
        assert ev.out_of_range and ev.should_rebalance
        assert ev.min_headroom_ticks == -1

    @pytest.mark.parametrize("lower,upper", [(0, 0), (10, -10)])
    def test_invalid_width(self, lower, upper):
        with pytest.raises(InputValidationError):
            evaluate_rebalance_need(0, lower, upper)

    @pytest.mark.parametrize("edge_bps,expected", [(-100, 0), (20_000, 500)])
    def test_edge_bps_clamped(self, edge_bps, expected):
        assert evaluate_rebalance_need(CURRENT, LOWER, UPPER, edge_bps).edge_buffer_ticks == expected

    @pytest.mark.parametrize("tick", range(LOWER - 20, UPPER + 20, 37))
    def test_reason_consistent_with_flags(self, tick):
        ev = evaluate_rebalance_need(tick, LOWER, UPPER, 1500)
        assert ev.should_rebalance == (ev.out_of_range or ev.near_edge)
        assert (ev.reason == HEALTHY) == (not ev.should_rebalance)
        assert not (ev.out_of_range and ev.near_edge)


# ── Tick Alignment ───────────────────────────────────────────────────────

class TestAlignment:
    @pytest.mark.parametrize("tick,expected", [(15, 10), (-5, -10), (-10, -10), (0, 0), (-242319, -242320)])
    def test_align_down(self, tick, expected):
        assert align_tick_down(tick, 10) == expected

    @pytest.mark.parametrize("tick,expected", [(4, 0), (5, 10), (-5, 0), (-6, -10), (-15, -10), (-242319, -242320)])
    def test_align_nearest_halves_up(self, tick, expected):
        assert align_tick_nearest(tick, 10) == expected

    def test_assert_aligned(self):
        assert assert_tick_aligned(-242570, 10) == -242570
        with pytest.raises(StateInvariantError):
            assert_tick_aligned(-242575, 10)


# ── Centered Range ───────────────────────────────────────────────────────

class TestSuggestCenteredRange:
    def test_scenario_is_already_centered(self):
        assert suggest_centered_range(CURRENT, LOWER, UPPER, SPACING) == CenteredRange(LOWER, UPPER)

    def test_recenters_on_moved_price(self):
        r = suggest_centered_range(100, 0, 50, 10)
        assert (r.tick_lower, r.tick_upper) == (70, 120)

    def test_unaligned_width_rounds_up(self):
        r = suggest_centered_range(0, 0, 55, 10)
        assert (r.tick_lower, r.tick_upper) == (-30, 30)
        assert r.width_ticks == 60

    @pytest.mark.parametrize("current", [-887000, -242319, -1, 0, 7, 99_999])
    @pytest.mark.parametrize("spacing", [1, 10, 60, 200])
    def test_aligned_and_contains_width(self, current, spacing):
        r = suggest_centered_range(current, -1000, -500, spacing)
        assert r.tick_lower % spacing == 0
        assert r.tick_upper % spacing == 0
        assert r.width_ticks >= 500
        assert r.width_ticks < 500 + spacing

    def test_idempotent(self):
        first = suggest_centered_range(12_345, 0, 600, 60)
        second = suggest_centered_range(12_345, first.tick_lower, first.tick_upper, 60)
        assert first == second


# ── Widening Policy ──────────────────────────────────────────────────────

class TestWidening:
    def test_bump_rounded_to_spacing(self):
        assert widened_width(500, 15, 10) == (20, 520)
        assert widened_width(500, 0, 10) == (0, 500)

    def test_negative_bump(self):
        with pytest.raises(InputValidationError):
            widened_width(500, -1, 10)

    def test_healthy_range_not_widened(self):
        plan = plan_replacement_range(CURRENT, LOWER, UPPER, SPACING, edge_bps=1500, width_bump_ticks=100)
        assert plan.evaluation.should_rebalance is False
        assert plan.bump_applied == 0
        assert plan.target_width == 500
        assert plan.suggested == CenteredRange(LOWER, UPPER)

    def test_rebalance_applies_bump(self):
        plan = plan_replacement_range(CURRENT, LOWER, UPPER, SPACING, edge_bps=5000, width_bump_ticks=100)
        assert plan.bump_requested == 100
        assert plan.bump_applied == 100
        assert plan.target_width == 600
        assert plan.suggested == CenteredRange(-242620, -242020)

    @pytest.mark.parametrize("bump", [0, 1, 9, 10, 250, 1000])
    def test_monotonic(self, bump):
        plan = plan_replacement_range(UPPER + 5, LOWER, UPPER, SPACING, width_bump_ticks=bump)
        assert plan.target_width >= plan.base_width
        assert plan.suggested.width_ticks >= plan.target_width


# ── Display Helpers ──────────────────────────────────────────────────────

class TestDisplayHelpers:
    def test_headroom_pct(self):
        assert range_headroom_pct(CURRENT, LOWER, UPPER) == pytest.approx(49.8)
        assert range_headroom_pct(0, 10, 10) is None

    def test_tick_to_price(self):
        assert tick_to_price(0) == pytest.approx(1.0)
        assert tick_to_price(0, 18, 6) == pytest.approx(1e12)
        assert tick_to_price(-242319, 18, 6) == pytest.approx(1.0001 ** -242319 * 1e12)

    def test_tick_to_price_overflow(self):
        assert tick_to_price(10**9) is None


class TestBalanceHint:
    def test_balanced(self):
        hint = balance_rebalance_hint(Decimal(10), Decimal(10), Decimal(1))
        assert hint.overweight == "balanced"
        assert hint.swap_amount == 0

    def test_token0_overweight(self):
        hint = balance_rebalance_hint(Decimal(30), Decimal(10), Decimal(1))
        assert hint.overweight == "token0"
        assert hint.swap_amount == Decimal(10)
        assert hint.skew_pct == Decimal(25)

    def test_token1_overweight_priced(self):
        hint = balance_rebalance_hint(Decimal(1), Decimal(100), Decimal(20))
        assert hint.overweight == "token1"
        assert hint.swap_amount == Decimal(40)

    def test_within_tolerance(self):
        hint = balance_rebalance_hint(Decimal("10.05"), Decimal("9.95"), Decimal(1), tolerance_bps=100)
        assert hint.overweight == "balanced"

    @pytest.mark.parametrize("a0,a1,price", [(None, Decimal(1), Decimal(1)), (Decimal(1), Decimal(1), None),
                                             (Decimal(0), Decimal(0), Decimal(1)), (Decimal(1), Decimal(1), Decimal(-1))])
    def test_unusable_inputs(self, a0, a1, price):
        assert balance_rebalance_hint(a0, a1, price) is None
