"""
Contract reader tests against an in-memory chain (httpx.MockTransport).

Covers typed decoding of positions / globalState, pool resolution, ERC-20
label fallbacks, enumeration guards and the stake-membership conjunction.
"""

import asyncio

import pytest

from conftest import ADDR, TOKEN_ID, ZERO, words
from krlp_cli.calldata import MAX_UINT128
from krlp_cli.contract_registry import SELECTORS, WRITE_CALLS, calldata_words
from krlp_cli.errors import CodecError, PartialDecodeError, StateInvariantError
from krlp_cli.word_codec import encode_address, encode_bool, encode_uint
from position_reader import MAX_ENUMERATED_POSITIONS, ContractReader

DEPOSIT_ID = "0x" + "ab" * 32


def _reader(chain):
    return ContractReader(chain.transport())


class TestPositionContext:
    def test_loads_full_context(self, kitten_chain):
        ctx = asyncio.run(_reader(kitten_chain).load_position_context(TOKEN_ID))
        assert ctx.owner == ADDR["owner"]
        assert ctx.pool == ADDR["pool"]
        assert ctx.tick_spacing == 10
        assert ctx.pool_state.tick == -242319
        assert ctx.pool_state.sqrt_price_x96 == 1 << 96
        assert ctx.pool_state.unlocked is True
        assert (ctx.position.tick_lower, ctx.position.tick_upper) == (-242570, -242070)
        assert ctx.position.liquidity == 1000
        assert ctx.token0.symbol.value == "WHYPE" and ctx.token0.decimals == 18
        assert ctx.token1.symbol.value == "USDC" and ctx.token1.decimals == 6
        assert str(ctx.token1.name) == "USD Coin"
        assert ctx.token0.balance == 2 * 10**18
        assert ctx.notes == []

    def test_owner_mismatch_noted(self, kitten_chain):
        other = "0x" + "22" * 20
        ctx = asyncio.run(_reader(kitten_chain).load_position_context(TOKEN_ID, owner=other))
        assert any("differs from on-chain owner" in n for n in ctx.notes)

    def test_zero_liquidity_noted(self, kitten_chain):
        pm = ADDR["position_manager"]
        kitten_chain.on_call(pm, SELECTORS["positions"], words(
            *([encode_uint(0)] * 2),
            encode_address(ADDR["whype"]),
            encode_address(ADDR["usdc"]),
            encode_address(ZERO),
            encode_uint(0), encode_uint(10),
            *([encode_uint(0)] * 5),
        ))
        ctx = asyncio.run(_reader(kitten_chain).load_position_context(TOKEN_ID))
        assert "position has zero liquidity" in ctx.notes

    def test_missing_pool_is_state_error(self, kitten_chain):
        kitten_chain.on_call(ADDR["factory"], SELECTORS["poolByPair"], words(encode_address(ZERO)))
        with pytest.raises(StateInvariantError, match="No pool"):
            asyncio.run(_reader(kitten_chain).load_position_context(TOKEN_ID))

    def test_short_positions_reply_is_partial(self, kitten_chain):
        kitten_chain.on_call(ADDR["position_manager"], SELECTORS["positions"], words(encode_uint(0)))
        with pytest.raises(PartialDecodeError) as exc:
            asyncio.run(_reader(kitten_chain).read_position(TOKEN_ID))
        assert exc.value.expected_words == 12

    def test_reads_are_not_cached(self, kitten_chain):
        reader = _reader(kitten_chain)
        asyncio.run(reader.read_pool_state(ADDR["pool"]))
        asyncio.run(reader.read_pool_state(ADDR["pool"]))
        state_calls = [r for r in kitten_chain.calls_to("eth_call") if r["params"][0]["data"] == SELECTORS["globalState"]]
        assert len(state_calls) == 2


class TestPoolResolution:
    def test_custom_deployer_uses_custom_pool_lookup(self, kitten_chain):
        deployer = "0x" + "33" * 20
        custom_pool = "0x" + "44" * 20
        kitten_chain.on_call(ADDR["factory"], SELECTORS["customPoolByPair"], words(encode_address(custom_pool)))
        pool = asyncio.run(_reader(kitten_chain).read_pool_address(ADDR["whype"], ADDR["usdc"], deployer))
        assert pool == custom_pool
        sent = kitten_chain.calls_to("eth_call")[-1]["params"][0]["data"]
        assert sent.startswith(SELECTORS["customPoolByPair"] + encode_address(deployer))

    def test_non_positive_spacing(self, kitten_chain):
        kitten_chain.on_call(ADDR["pool"], SELECTORS["tickSpacing"], words(encode_uint(0)))
        with pytest.raises(StateInvariantError):
            asyncio.run(_reader(kitten_chain).read_tick_spacing(ADDR["pool"]))


class TestTokenLabels:
    def test_reverting_symbol_falls_back(self, kitten_chain):
        kitten_chain.on_call(ADDR["whype"], SELECTORS["symbol"], error={"code": 3, "message": "execution reverted"})
        label = asyncio.run(_reader(kitten_chain).read_symbol(ADDR["whype"]))
        assert label.value == "UNK"
        assert label.ok is False
        assert "execution reverted" in label.error

    def test_bytes32_symbol(self, kitten_chain):
        kitten_chain.on_call(ADDR["kitten"], SELECTORS["symbol"], "0x" + b"KITTEN".ljust(32, b"\x00").hex())
        label = asyncio.run(_reader(kitten_chain).read_symbol(ADDR["kitten"]))
        assert (label.value, label.ok) == ("KITTEN", True)

    def test_token_names(self, kitten_chain):
        reader = _reader(kitten_chain)
        assert str(asyncio.run(reader.read_name(ADDR["usdc"]))) == "USD Coin"
        kitten_chain.on_call(ADDR["usdc"], SELECTORS["name"], error={"code": 3, "message": "execution reverted"})
        label = asyncio.run(reader.read_name(ADDR["usdc"]))
        assert (label.value, label.ok) == ("Unknown Token", False)

    def test_empty_symbol_is_not_ok(self, kitten_chain):
        kitten_chain.on_call(ADDR["kitten"], SELECTORS["symbol"], "0x")
        label = asyncio.run(_reader(kitten_chain).read_symbol(ADDR["kitten"]))
        assert str(label) == "UNK"
        assert label.ok is False


class TestEnumeration:
    def test_lists_owned_ids(self, chain):
        pm, owner = ADDR["position_manager"], ADDR["owner"]
        chain.on_call(pm, SELECTORS["balanceOf"], words(encode_uint(2)))
        for i, token_id in enumerate((7, 9)):
            prefix = SELECTORS["tokenOfOwnerByIndex"] + encode_address(owner) + encode_uint(i)
            chain.on_call(pm, prefix, words(encode_uint(token_id)))
        assert asyncio.run(_reader(chain).list_owned_token_ids(owner)) == [7, 9]

    def test_refuses_huge_enumeration(self, chain):
        chain.on_call(ADDR["position_manager"], SELECTORS["balanceOf"], words(encode_uint(MAX_ENUMERATED_POSITIONS + 1)))
        with pytest.raises(StateInvariantError):
            asyncio.run(_reader(chain).list_owned_token_ids(ADDR["owner"]))


class TestStakeStatus:
    def _set(self, chain, farmed_in, deposit):
        chain.on_call(ADDR["position_manager"], SELECTORS["tokenFarmedIn"], words(encode_address(farmed_in)))
        chain.on_call(ADDR["farming_center"], SELECTORS["deposits"], deposit)

    @pytest.mark.parametrize("farmed_in,deposit,staked,code", [
        (ADDR["farming_center"], DEPOSIT_ID, True, "staked"),
        (ADDR["farming_center"], "0x" + "0" * 64, False, "farm_pointer_without_deposit"),
        ("0x" + "99" * 20, DEPOSIT_ID, False, "farmed_in_other_contract"),
        (ZERO, DEPOSIT_ID, False, "deposit_without_farm_pointer"),
        (ZERO, "0x" + "0" * 64, False, "not_staked"),
    ])
    def test_conjunction(self, kitten_chain, farmed_in, deposit, staked, code):
        self._set(kitten_chain, farmed_in, deposit)
        status = asyncio.run(_reader(kitten_chain).read_stake_status(TOKEN_ID))
        assert status.staked is staked
        assert status.code == code

    def test_read_failure_is_unknown_not_false(self, kitten_chain):
        kitten_chain.on_call(
            ADDR["farming_center"], SELECTORS["deposits"], error={"code": -32603, "message": "internal error"}
        )
        status = asyncio.run(_reader(kitten_chain).read_stake_status(TOKEN_ID))
        assert status.staked is None
        assert status.code == "unknown_read_failure"
        assert "internal error" in status.error


class TestSimulationsAndQuotes:
    def test_decrease_simulated_as_owner(self, kitten_chain):
        kitten_chain.on_call(ADDR["position_manager"], "0x0c49ccbe", words(encode_uint(11), encode_uint(22)))
        pair = asyncio.run(_reader(kitten_chain).simulate_decrease_liquidity(TOKEN_ID, 1000, ADDR["owner"], 10**10))
        assert (pair.amount0, pair.amount1) == (11, 22)
        tx = kitten_chain.calls_to("eth_call")[-1]["params"][0]
        assert tx["from"] == ADDR["owner"]
        assert tx["data"] == pair.calldata

    def test_quote(self, kitten_chain):
        quoter = "0xc58874216afe47779aded27b8aad77e8bd6ebebb"
        kitten_chain.on_call(quoter, SELECTORS["quoteExactInputSingle"], words(
            encode_uint(900), encode_uint(1000), encode_uint(1 << 96), encode_uint(2), encode_uint(90_000), encode_uint(3000),
        ))
        q = asyncio.run(_reader(kitten_chain).quote_exact_input_single(ADDR["whype"], ADDR["usdc"], 1000))
        assert (q.amount_out, q.ticks_crossed, q.fee) == (900, 2, 3000)

    def test_gas_estimate_failure_is_reported(self, kitten_chain):
        est = asyncio.run(_reader(kitten_chain).estimate_call_gas(ADDR["owner"], ADDR["pool"], "0x"))
        assert est.ok is False
        assert est.error == "method not found"

    def test_gas_estimate(self, kitten_chain):
        kitten_chain.on_method("eth_estimateGas", "0x5208")
        est = asyncio.run(_reader(kitten_chain).estimate_call_gas(ADDR["owner"], ADDR["pool"], "0x"))
        assert (est.ok, est.gas) == (True, 21000)

    def test_collect_simulated_with_max_amounts(self, kitten_chain):
        collect = WRITE_CALLS["collect"]
        kitten_chain.on_call(ADDR["position_manager"], collect.selector, words(encode_uint(5), encode_uint(7)))
        pair = asyncio.run(_reader(kitten_chain).simulate_collect(TOKEN_ID, ADDR["owner"]))
        assert (pair.amount0, pair.amount1) == (5, 7)
        tx = kitten_chain.calls_to("eth_call")[-1]["params"][0]
        assert tx["from"] == ADDR["owner"]
        args = collect.decode_args(calldata_words(tx["data"]))
        assert args["recipient"] == ADDR["owner"]
        assert args["amount0Max"] == args["amount1Max"] == MAX_UINT128

    def test_native_balance(self, chain):
        chain.on_method("eth_getBalance", hex(3 * 10**18))
        assert asyncio.run(_reader(chain).read_native_balance(ADDR["owner"])) == 3 * 10**18
        assert chain.calls_to("eth_getBalance")[0]["params"] == [ADDR["owner"], "latest"]


class TestFarmingReads:
    INCENTIVE_ID = "0x" + "cd" * 32

    def test_farming_center(self, chain):
        chain.on_call(ADDR["position_manager"], SELECTORS["farmingCenter"], words(encode_address(ADDR["farming_center"])))
        assert asyncio.run(_reader(chain).read_farming_center()) == ADDR["farming_center"]

    def test_incentive_state(self, chain):
        chain.on_call(ADDR["eternal_farming"], SELECTORS["incentives"] + "cd" * 32, words(
            encode_uint(10**21), encode_uint(0), encode_address(ADDR["pool"]), encode_uint(60), encode_bool(True),
        ))
        state = asyncio.run(_reader(chain).read_incentive(self.INCENTIVE_ID))
        assert state.total_reward == 10**21
        assert state.virtual_pool == ADDR["pool"]
        assert state.minimal_position_width == 60
        assert state.deactivated is True

    def test_short_incentive_reply_is_partial(self, chain):
        chain.on_call(ADDR["eternal_farming"], SELECTORS["incentives"], words(encode_uint(1)))
        with pytest.raises(PartialDecodeError):
            asyncio.run(_reader(chain).read_incentive(self.INCENTIVE_ID))

    def test_bad_incentive_id_never_reaches_the_node(self, chain):
        with pytest.raises(CodecError):
            asyncio.run(_reader(chain).read_incentive("0x1234"))
        assert chain.requests == []

    def test_rewards(self, chain):
        data = SELECTORS["rewards"] + encode_address(ADDR["owner"]) + encode_address(ADDR["kitten"])
        chain.on_call(ADDR["eternal_farming"], data, words(encode_uint(42)))
        assert asyncio.run(_reader(chain).read_reward_balance(ADDR["owner"], ADDR["kitten"])) == 42

    def test_rewards_empty_reply_is_partial(self, chain):
        chain.on_call(ADDR["eternal_farming"], SELECTORS["rewards"], "0x")
        with pytest.raises(PartialDecodeError):
            asyncio.run(_reader(chain).read_reward_balance(ADDR["owner"], ADDR["kitten"]))
