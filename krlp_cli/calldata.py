"""
Write Calldata Builders
=======================

Pure functions from structured arguments to 0x-hex calldata. Nothing here
signs or sends; the output is handed to the user's own signer.

Incentive keys are encoded inline as four words:
  (rewardToken, bonusRewardToken, pool, nonce)
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from krlp_cli.contract_registry import (
    MULTICALL_DEADLINE_SELECTOR,
    MULTICALL_SELECTOR,
    QUOTE_EXACT_INPUT_SINGLE,
    WRITE_CALLS,
)
from krlp_cli.errors import InputValidationError, StateInvariantError
from krlp_cli.word_codec import (
    ABI_WORD_BYTES,
    ZERO_ADDRESS,
    encode_address,
    encode_call_data,
    encode_uint,
    strip_0x,
)

MAX_UINT128 = (1 << 128) - 1
MAX_UINT256 = (1 << 256) - 1


@dataclass(frozen=True)
class IncentiveKey:
    reward_token: str
    bonus_reward_token: str
    pool: str
    nonce: int

    def words(self) -> List[str]:
        return [
            encode_address(self.reward_token),
            encode_address(self.bonus_reward_token),
            encode_address(self.pool),
            encode_uint(self.nonce),
        ]

    def with_nonce(self, nonce: int) -> "IncentiveKey":
        return IncentiveKey(self.reward_token, self.bonus_reward_token, self.pool, nonce)


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Minimum acceptable amount after ``slippage_bps`` (floored)."""
    if slippage_bps < 0 or slippage_bps > 10_000:
        raise InputValidationError(f"Slippage must be within 0..10000 bps, got {slippage_bps}")
    return amount * (10_000 - slippage_bps) // 10_000


def assert_range(tick_lower: int, tick_upper: int, tick_spacing: Optional[int] = None) -> None:
    if tick_lower >= tick_upper:
        raise StateInvariantError(f"Invalid tick range: [{tick_lower}, {tick_upper})")
    if tick_spacing:
        for tick in (tick_lower, tick_upper):
            if tick % tick_spacing:
                raise StateInvariantError(f"Tick {tick} is not aligned to spacing {tick_spacing}")


# ── Position Manager ────────────────────────────────────────────────────


def build_collect_calldata(
    token_id: int, recipient: str, amount0_max: int = MAX_UINT128, amount1_max: int = MAX_UINT128
) -> str:
    return WRITE_CALLS["collect"].encode(
        tokenId=token_id, recipient=recipient, amount0Max=amount0_max, amount1Max=amount1_max
    )


def build_decrease_liquidity_calldata(
    token_id: int, liquidity: int, deadline: int, amount0_min: int = 0, amount1_min: int = 0
) -> str:
    return WRITE_CALLS["decreaseLiquidity"].encode(
        tokenId=token_id,
        liquidity=liquidity,
        amount0Min=amount0_min,
        amount1Min=amount1_min,
        deadline=deadline,
    )


def build_burn_calldata(token_id: int) -> str:
    return WRITE_CALLS["burn"].encode(tokenId=token_id)


def build_mint_calldata(
    *,
    token0: str,
    token1: str,
    tick_lower: int,
    tick_upper: int,
    amount0_desired: int,
    amount1_desired: int,
    recipient: str,
    deadline: int,
    amount0_min: int = 0,
    amount1_min: int = 0,
    deployer: str = ZERO_ADDRESS,
    tick_spacing: Optional[int] = None,
) -> str:
    """mint(MintParams) for a new range; ticks are checked before encoding."""
    assert_range(tick_lower, tick_upper, tick_spacing)
    return WRITE_CALLS["mint"].encode(
        token0=token0,
        token1=token1,
        deployer=deployer,
        tickLower=tick_lower,
        tickUpper=tick_upper,
        amount0Desired=amount0_desired,
        amount1Desired=amount1_desired,
        amount0Min=amount0_min,
        amount1Min=amount1_min,
        recipient=recipient,
        deadline=deadline,
    )


# ── ERC-20 / Farming ────────────────────────────────────────────────────


def build_approve_calldata(spender: str, amount: int) -> str:
    return WRITE_CALLS["approve"].encode(spender=spender, amount=amount)


def build_approve_for_farming_calldata(token_id: int, farming_address: str, approve: bool = True) -> str:
    return WRITE_CALLS["approveForFarming"].encode(
        tokenId=token_id, approve=approve, farmingAddress=farming_address
    )


def _farming_call(name: str, key: IncentiveKey, token_id: int) -> str:
    return WRITE_CALLS[name].encode(
        rewardToken=key.reward_token,
        bonusRewardToken=key.bonus_reward_token,
        pool=key.pool,
        nonce=key.nonce,
        tokenId=token_id,
    )


def build_farming_enter_calldata(key: IncentiveKey, token_id: int) -> str:
    return _farming_call("enterFarming", key, token_id)


def build_farming_exit_calldata(key: IncentiveKey, token_id: int) -> str:
    return _farming_call("exitFarming", key, token_id)


def build_farming_collect_rewards_calldata(key: IncentiveKey, token_id: int) -> str:
    return _farming_call("collectRewards", key, token_id)


def build_claim_reward_calldata(reward_token: str, to: str, amount_requested: int) -> str:
    return WRITE_CALLS["claimReward"].encode(
        rewardToken=reward_token, to=to, amountRequested=amount_requested
    )


# ── Router / Quoter (single hop only) ───────────────────────────────────


def build_swap_exact_input_single_calldata(
    *,
    token_in: str,
    token_out: str,
    recipient: str,
    deadline: int,
    amount_in: int,
    amount_out_minimum: int,
    deployer: str = ZERO_ADDRESS,
    limit_sqrt_price: int = 0,
) -> str:
    return WRITE_CALLS["exactInputSingle"].encode(
        tokenIn=token_in,
        tokenOut=token_out,
        deployer=deployer,
        recipient=recipient,
        deadline=deadline,
        amountIn=amount_in,
        amountOutMinimum=amount_out_minimum,
        limitSqrtPrice=limit_sqrt_price,
    )


def build_quote_exact_input_single_calldata(
    token_in: str, token_out: str, amount_in: int, deployer: str = ZERO_ADDRESS, limit_sqrt_price: int = 0
) -> str:
    return QUOTE_EXACT_INPUT_SINGLE.encode(
        tokenIn=token_in,
        tokenOut=token_out,
        deployer=deployer,
        amountIn=amount_in,
        limitSqrtPrice=limit_sqrt_price,
    )


# ── Multicall ───────────────────────────────────────────────────────────


def _pad32(raw: bytes) -> bytes:
    return raw + b"\x00" * (-len(raw) % ABI_WORD_BYTES)


def encode_bytes_array(items: Sequence[str]) -> str:
    """ABI body of a ``bytes[]`` (length word, relative offsets, elements)."""
    blobs = [bytes.fromhex(strip_0x(item)) for item in items]
    head: List[str] = [encode_uint(len(blobs))]
    tail = b""
    cursor = len(blobs) * ABI_WORD_BYTES
    for blob in blobs:
        head.append(encode_uint(cursor + len(tail)))
        tail += bytes.fromhex(encode_uint(len(blob))) + _pad32(blob)
    return "".join(head) + tail.hex()


def build_multicall_calldata(calls: Sequence[str], deadline: Optional[int] = None) -> str:
    """multicall(bytes[]) or, with a deadline, multicall(uint256,bytes[])."""
    if deadline is None:
        return encode_call_data(MULTICALL_SELECTOR, [encode_uint(0x20), encode_bytes_array(calls)])
    return encode_call_data(
        MULTICALL_DEADLINE_SELECTOR,
        [encode_uint(deadline), encode_uint(0x40), encode_bytes_array(calls)],
    )
