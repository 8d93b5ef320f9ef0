#!/usr/bin/env python3
"""
On-Chain Contract Reader for Kittenswap (Algebra Integral)
===========================================================

Reads live position / pool / token / farming state via public JSON-RPC.
No web3.py dependency — raw eth_call through krlp_cli.rpc_transport and the
word codec. Every read hits the chain; nothing is cached between calls.

Data Sources (per RPC call):
─────────────────────────────
1. NonfungiblePositionManager.positions(tokenId)
   Returns: nonce, operator, token0, token1, deployer, tickLower, tickUpper,
            liquidity, feeGrowthInside0LastX128, feeGrowthInside1LastX128,
            tokensOwed0, tokensOwed1
2. AlgebraFactory.poolByPair(tokenA, tokenB)
   AlgebraFactory.customPoolByPair(deployer, tokenA, tokenB)
3. AlgebraPool.globalState() → price, tick, lastFee, pluginConfig,
   communityFee, unlocked;  AlgebraPool.tickSpacing()
4. ERC-20 symbol/name/decimals/balanceOf/allowance
5. Farming: positionManager.tokenFarmedIn(tokenId), farmingCenter.deposits(tokenId),
   eternalFarming.incentiveKeys(pool), eternalFarming.incentives(incentiveId),
   eternalFarming.rewards(owner, token)

Stake membership is derived, never stored: a position counts as staked only
when tokenFarmedIn(tokenId) is the configured FarmingCenter AND the
FarmingCenter holds a non-zero deposit id for it. The NFT never changes
custody when staked, so ownership is not a signal.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from krlp_cli.calldata import (
    MAX_UINT128,
    IncentiveKey,
    build_collect_calldata,
    build_decrease_liquidity_calldata,
    build_quote_exact_input_single_calldata,
)
from krlp_cli.contract_registry import CONTRACTS, read_call
from krlp_cli.errors import CodecError, KrlpError, PartialDecodeError, StateInvariantError
from krlp_cli.rpc_transport import BlockRef, RpcFailure, RpcTransport
from krlp_cli.word_codec import (
    ZERO_ADDRESS,
    ZERO_WORD,
    assert_address,
    decode_address,
    decode_bool,
    decode_bytes32,
    decode_int,
    decode_string_field,
    decode_uint,
    decode_words,
    encode_address,
    encode_bytes32,
    encode_uint,
    to_hex_quantity,
)

MAX_ENUMERATED_POSITIONS = 500
ZERO_BYTES32 = "0x" + ZERO_WORD


# ── Result Types ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Position:
    token_id: int
    nonce: int
    operator: str
    token0: str
    token1: str
    deployer: str
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int
    tokens_owed1: int


@dataclass(frozen=True)
class PoolState:
    sqrt_price_x96: int
    tick: int
    last_fee: int
    plugin_config: int
    community_fee: int
    unlocked: bool


@dataclass(frozen=True)
class TokenLabel:
    """Best-effort ERC-20 text field; ``value`` is always printable."""

    value: str
    ok: bool
    error: Optional[str] = None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TokenSnapshot:
    address: str
    symbol: TokenLabel
    decimals: int
    balance: Optional[int] = None
    name: Optional[TokenLabel] = None


@dataclass(frozen=True)
class StakeStatus:
    """Stake membership. ``staked is None`` means a read failed: unknown."""

    token_id: int
    staked: Optional[bool]
    code: str
    farmed_in: Optional[str] = None
    deposit_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class IncentiveState:
    incentive_id: str
    total_reward: int
    bonus_reward: int
    virtual_pool: str
    minimal_position_width: int
    deactivated: bool


@dataclass(frozen=True)
class SwapQuote:
    amount_out: int
    amount_in: int
    sqrt_price_x96_after: int
    ticks_crossed: int
    gas_estimate: int
    fee: int


@dataclass(frozen=True)
class AmountPair:
    amount0: int
    amount1: int
    calldata: str


@dataclass(frozen=True)
class GasEstimate:
    ok: bool
    gas: Optional[int] = None
    error: Optional[str] = None


@dataclass
class PositionContext:
    token_id: int
    owner: str
    position: Position
    pool: str
    pool_state: PoolState
    tick_spacing: int
    token0: TokenSnapshot
    token1: TokenSnapshot
    notes: List[str] = field(default_factory=list)


def _require(words: List[str], n: int, label: str) -> List[str]:
    if len(words) < n:
        raise PartialDecodeError(label, n, len(words))
    return words


# ── Contract Reader ─────────────────────────────────────────────────────


class ContractReader:
    """
    Typed accessors over a RpcTransport.

    Usage:
        reader = ContractReader(RpcTransport(RpcSettings.from_env()))
        ctx = await reader.load_position_context(12345)
    """

    def __init__(self, transport: RpcTransport, contracts=CONTRACTS):
        self.transport = transport
        self.contracts = contracts

    async def _words(
        self, to: str, data: str, block: BlockRef = "latest", sender: Optional[str] = None
    ) -> List[str]:
        out = await self.transport.eth_call(to, data, block=block, sender=sender)
        return decode_words(out)

    async def _address(self, to: str, data: str, label: str) -> str:
        words = _require(await self._words(to, data), 1, label)
        return decode_address(words[0])

    async def _uint(self, to: str, data: str, label: str, block: BlockRef = "latest") -> int:
        words = _require(await self._words(to, data, block=block), 1, label)
        return decode_uint(words[0])

    # ── Position NFT ────────────────────────────────────────────────────

    async def read_owner_of(self, token_id: int) -> str:
        data = read_call("ownerOf", encode_uint(token_id))
        return await self._address(self.contracts["positionManager"], data, "ownerOf")

    async def read_position(self, token_id: int) -> Position:
        """positions(uint256) → 12 words; fewer is a partial decode."""
        data = read_call("positions", encode_uint(token_id))
        w = _require(await self._words(self.contracts["positionManager"], data), 12, "positions")
        return Position(
            token_id=token_id,
            nonce=decode_uint(w[0]),
            operator=decode_address(w[1]),
            token0=decode_address(w[2]),
            token1=decode_address(w[3]),
            deployer=decode_address(w[4]),
            tick_lower=decode_int(w[5], 24),
            tick_upper=decode_int(w[6], 24),
            liquidity=decode_uint(w[7]),
            fee_growth_inside0_last_x128=decode_uint(w[8]),
            fee_growth_inside1_last_x128=decode_uint(w[9]),
            tokens_owed0=decode_uint(w[10]),
            tokens_owed1=decode_uint(w[11]),
        )

    async def read_nft_balance(self, owner: str) -> int:
        data = read_call("balanceOf", encode_address(owner))
        return await self._uint(self.contracts["positionManager"], data, "balanceOf")

    async def read_token_of_owner_by_index(self, owner: str, index: int) -> int:
        data = read_call("tokenOfOwnerByIndex", encode_address(owner), encode_uint(index))
        return await self._uint(self.contracts["positionManager"], data, "tokenOfOwnerByIndex")

    async def list_owned_token_ids(self, owner: str) -> List[int]:
        owner = assert_address(owner, "owner")
        count = await self.read_nft_balance(owner)
        if count > MAX_ENUMERATED_POSITIONS:
            raise StateInvariantError(
                f"{owner} holds {count} positions; refusing to enumerate more than {MAX_ENUMERATED_POSITIONS}"
            )
        return list(
            await asyncio.gather(*(self.read_token_of_owner_by_index(owner, i) for i in range(count)))
        )

    # ── Factory / Pool ──────────────────────────────────────────────────

    async def read_pool_address(self, token_a: str, token_b: str, deployer: Optional[str] = None) -> Optional[str]:
        """Pool for a pair (+ optional custom deployer); None when not deployed."""
        if deployer and deployer.lower() != ZERO_ADDRESS:
            data = read_call(
                "customPoolByPair", encode_address(deployer), encode_address(token_a), encode_address(token_b)
            )
        else:
            data = read_call("poolByPair", encode_address(token_a), encode_address(token_b))
        words = await self._words(self.contracts["factory"], data)
        pool = decode_address(words[0]) if words else None
        if not pool or pool == ZERO_ADDRESS:
            return None
        return pool

    async def read_pool_state(self, pool: str, block: BlockRef = "latest") -> PoolState:
        w = _require(await self._words(pool, read_call("globalState"), block=block), 6, "globalState")
        return PoolState(
            sqrt_price_x96=decode_uint(w[0]),
            tick=decode_int(w[1], 24),
            last_fee=decode_uint(w[2]),
            plugin_config=decode_uint(w[3]),
            community_fee=decode_uint(w[4]),
            unlocked=decode_bool(w[5]),
        )

    async def read_tick_spacing(self, pool: str) -> int:
        w = _require(await self._words(pool, read_call("tickSpacing")), 1, "tickSpacing")
        spacing = decode_int(w[0], 24)
        if spacing <= 0:
            raise StateInvariantError(f"Pool {pool} reports non-positive tick spacing {spacing}")
        return spacing

    # ── ERC-20 ──────────────────────────────────────────────────────────

    async def _label(self, token: str, selector_name: str, fallback: str) -> TokenLabel:
        try:
            out = await self.transport.eth_call(token, read_call(selector_name))
        except (RpcFailure, CodecError) as err:
            logger.debug("{}() on {} failed: {}", selector_name, token, err)
            return TokenLabel(fallback, ok=False, error=str(err))
        text = decode_string_field(out)
        if not text:
            return TokenLabel(fallback, ok=False, error=f"undecodable {selector_name}()")
        return TokenLabel(text, ok=True)

    async def read_symbol(self, token: str) -> TokenLabel:
        return await self._label(token, "symbol", "UNK")

    async def read_name(self, token: str) -> TokenLabel:
        return await self._label(token, "name", "Unknown Token")

    async def read_decimals(self, token: str) -> int:
        decimals = await self._uint(token, read_call("decimals"), "decimals")
        if decimals > 255:
            raise CodecError(f"decimals() on {token} returned {decimals}")
        return decimals

    async def read_balance(self, token: str, owner: str, block: BlockRef = "latest") -> int:
        return await self._uint(token, read_call("balanceOf", encode_address(owner)), "balanceOf", block=block)

    async def read_allowance(self, token: str, owner: str, spender: str, block: BlockRef = "latest") -> int:
        data = read_call("allowance", encode_address(owner), encode_address(spender))
        return await self._uint(token, data, "allowance", block=block)

    async def read_token_snapshot(self, token: str, owner: Optional[str] = None) -> TokenSnapshot:
        reads = [self.read_symbol(token), self.read_name(token), self.read_decimals(token)]
        if owner:
            reads.append(self.read_balance(token, owner))
        results = await asyncio.gather(*reads)
        return TokenSnapshot(
            address=token,
            symbol=results[0],
            name=results[1],
            decimals=results[2],
            balance=results[3] if owner else None,
        )

    async def read_native_balance(self, owner: str, block: BlockRef = "latest") -> int:
        return await self.transport.get_balance(assert_address(owner, "owner"), block)

    # ── Farming ─────────────────────────────────────────────────────────

    async def read_farming_center(self) -> str:
        return await self._address(self.contracts["positionManager"], read_call("farmingCenter"), "farmingCenter")

    async def read_farming_approval(self, token_id: int) -> str:
        data = read_call("farmingApprovals", encode_uint(token_id))
        return await self._address(self.contracts["positionManager"], data, "farmingApprovals")

    async def read_token_farmed_in(self, token_id: int) -> str:
        data = read_call("tokenFarmedIn", encode_uint(token_id))
        return await self._address(self.contracts["positionManager"], data, "tokenFarmedIn")

    async def read_incentive_key(self, pool: str) -> IncentiveKey:
        """Currently active eternal-farming key for a pool."""
        data = read_call("incentiveKeys", encode_address(pool))
        w = _require(await self._words(self.contracts["eternalFarming"], data), 4, "incentiveKeys")
        return IncentiveKey(
            reward_token=decode_address(w[0]),
            bonus_reward_token=decode_address(w[1]),
            pool=decode_address(w[2]),
            nonce=decode_uint(w[3]),
        )

    async def read_deposit(self, token_id: int) -> str:
        """FarmingCenter.deposits(tokenId) → incentive id (bytes32, zero if none)."""
        data = read_call("deposits", encode_uint(token_id))
        w = _require(await self._words(self.contracts["farmingCenter"], data), 1, "deposits")
        return decode_bytes32(w[0])

    async def read_reward_balance(self, owner: str, reward_token: str) -> int:
        data = read_call("rewards", encode_address(owner), encode_address(reward_token))
        return await self._uint(self.contracts["eternalFarming"], data, "rewards")

    async def read_incentive(self, incentive_id: str) -> IncentiveState:
        """AlgebraEternalFarming.incentives(bytes32 incentiveId)."""
        data = read_call("incentives", encode_bytes32(incentive_id))
        w = _require(await self._words(self.contracts["eternalFarming"], data), 5, "incentives")
        return IncentiveState(
            incentive_id=incentive_id.lower(),
            total_reward=decode_uint(w[0]),
            bonus_reward=decode_uint(w[1]),
            virtual_pool=decode_address(w[2]),
            minimal_position_width=decode_uint(w[3]),
            deactivated=decode_bool(w[4]),
        )

    async def read_stake_status(self, token_id: int) -> StakeStatus:
        """Conjunction of the farm pointer and a non-zero deposit id.

        Both reads succeed → ``staked`` is a definite bool. Any read failure
        → ``staked is None`` (code ``unknown_read_failure``); callers must not
        treat that as "not staked".
        """
        try:
            farmed_in, deposit_id = await asyncio.gather(
                self.read_token_farmed_in(token_id), self.read_deposit(token_id)
            )
        except KrlpError as err:
            logger.warning("stake status for #{} unknown: {}", token_id, err)
            return StakeStatus(token_id, None, "unknown_read_failure", error=str(err))

        pointer_ok = farmed_in == self.contracts["farmingCenter"].lower()
        deposit_ok = deposit_id != ZERO_BYTES32
        if pointer_ok and deposit_ok:
            code = "staked"
        elif pointer_ok:
            code = "farm_pointer_without_deposit"
        elif farmed_in != ZERO_ADDRESS:
            code = "farmed_in_other_contract"
        elif deposit_ok:
            code = "deposit_without_farm_pointer"
        else:
            code = "not_staked"
        return StakeStatus(token_id, pointer_ok and deposit_ok, code, farmed_in, deposit_id)

    # ── Router / Quoter ─────────────────────────────────────────────────

    async def read_wnative_token(self, contract: Optional[str] = None) -> str:
        """Wrapped native token of the router (or of ``contract``, e.g. the position manager)."""
        to = assert_address(contract, "contract") if contract else self.contracts["router"]
        return await self._address(to, read_call("WNativeToken"), "WNativeToken")

    async def quote_exact_input_single(
        self, token_in: str, token_out: str, amount_in: int, deployer: str = ZERO_ADDRESS, limit_sqrt_price: int = 0
    ) -> SwapQuote:
        data = build_quote_exact_input_single_calldata(token_in, token_out, amount_in, deployer, limit_sqrt_price)
        w = _require(await self._words(self.contracts["quoterV2"], data), 6, "quoteExactInputSingle")
        return SwapQuote(
            amount_out=decode_uint(w[0]),
            amount_in=decode_uint(w[1]),
            sqrt_price_x96_after=decode_uint(w[2]),
            ticks_crossed=decode_uint(w[3]),
            gas_estimate=decode_uint(w[4]),
            fee=decode_uint(w[5]),
        )

    # ── Simulations (eth_call as the owner, no state change) ────────────

    async def _simulate_pair(self, data: str, sender: str, label: str, block: BlockRef) -> AmountPair:
        w = _require(
            await self._words(self.contracts["positionManager"], data, block=block, sender=sender), 2, label
        )
        return AmountPair(decode_uint(w[0]), decode_uint(w[1]), data)

    async def simulate_collect(
        self, token_id: int, owner: str, recipient: Optional[str] = None, block: BlockRef = "latest"
    ) -> AmountPair:
        data = build_collect_calldata(token_id, recipient or owner, MAX_UINT128, MAX_UINT128)
        return await self._simulate_pair(data, owner, "collect", block)

    async def simulate_decrease_liquidity(
        self,
        token_id: int,
        liquidity: int,
        owner: str,
        deadline: int,
        amount0_min: int = 0,
        amount1_min: int = 0,
        block: BlockRef = "latest",
    ) -> AmountPair:
        data = build_decrease_liquidity_calldata(token_id, liquidity, deadline, amount0_min, amount1_min)
        return await self._simulate_pair(data, owner, "decreaseLiquidity", block)

    async def estimate_call_gas(self, sender: str, to: str, data: str, value: int = 0) -> GasEstimate:
        """eth_estimateGas that reports failure instead of raising."""
        tx = {
            "from": assert_address(sender, "sender"),
            "to": assert_address(to, "to"),
            "data": data,
            "value": to_hex_quantity(value),
        }
        try:
            return GasEstimate(ok=True, gas=await self.transport.estimate_gas(tx))
        except RpcFailure as err:
            return GasEstimate(ok=False, error=err.rpc_message or str(err))

    # ── Composite ───────────────────────────────────────────────────────

    async def load_position_context(self, token_id: int, owner: Optional[str] = None) -> PositionContext:
        """Owner + position, then pool, then pool state / spacing / tokens.

        Dependent reads are sequenced; independent ones run concurrently.
        """
        onchain_owner, position = await asyncio.gather(
            self.read_owner_of(token_id), self.read_position(token_id)
        )
        notes: List[str] = []
        if owner and assert_address(owner, "owner") != onchain_owner:
            notes.append(f"supplied owner {owner} differs from on-chain owner {onchain_owner}")

        pool = await self.read_pool_address(position.token0, position.token1, position.deployer)
        if pool is None:
            raise StateInvariantError(
                f"No pool found for {position.token0}/{position.token1} (deployer {position.deployer})"
            )

        pool_state, spacing, token0, token1 = await asyncio.gather(
            self.read_pool_state(pool),
            self.read_tick_spacing(pool),
            self.read_token_snapshot(position.token0, onchain_owner),
            self.read_token_snapshot(position.token1, onchain_owner),
        )
        if position.liquidity == 0:
            notes.append("position has zero liquidity")
        logger.debug("loaded position #{} pool={} tick={}", token_id, pool, pool_state.tick)
        return PositionContext(
            token_id=token_id,
            owner=onchain_owner,
            position=position,
            pool=pool,
            pool_state=pool_state,
            tick_spacing=spacing,
            token0=token0,
            token1=token1,
            notes=notes,
        )
