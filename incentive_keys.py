#!/usr/bin/env python3
"""
Incentive Key Resolution — which eternal-farming program a position is in
==========================================================================

A staked position's FarmingCenter deposit holds an incentive id:

    incentiveId = keccak256(abi.encode(rewardToken, bonusRewardToken, pool, nonce))

Exiting or claiming needs the exact key behind that id. Lookup order:

  1. active   — eternalFarming.incentiveKeys(pool), hashed and compared
  2. nonce_back / nonce_forward — same tokens and pool, nonces in a bounded
     window below then above the active nonce (programs rotate by nonce)
  3. history  — the account's own past enterFarming / exitFarming /
     collectRewards calldata against the FarmingCenter, from a block
     explorer, re-hashed

Exhausting all sources is a hard failure; a guessed key either reverts or
silently does nothing in exit/claim calls.

Ref: https://github.com/cryptoalgebra/Algebra/tree/master/src/farming
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Protocol

import httpx
from eth_utils import keccak
from loguru import logger

from krlp_cli.calldata import IncentiveKey
from krlp_cli.central_config import ExplorerSettings, KeyScanSettings
from krlp_cli.contract_registry import FARMING_KEY_CALLS
from krlp_cli.errors import StateInvariantError
from krlp_cli.rpc_transport import RpcFailure
from krlp_cli.word_codec import assert_address
from position_reader import ZERO_BYTES32, ContractReader
from tx_forensics import decode_calldata

SOURCE_ACTIVE = "active"
SOURCE_NONCE_BACK = "nonce_back"
SOURCE_NONCE_FORWARD = "nonce_forward"
SOURCE_HISTORY = "history"


def compute_incentive_id(key: IncentiveKey) -> str:
    """keccak256 over the four ABI words of the key, as 0x bytes32."""
    return "0x" + keccak(hexstr="".join(key.words())).hex()


def nonce_scan_window(active_nonce: int, back: int, forward: int) -> List[int]:
    """Candidate nonces: below the active one (nearest first, ≥ 0), then above.

    >>> nonce_scan_window(3, 5, 2)
    [2, 1, 0, 4, 5]
    """
    below = [n for n in range(active_nonce - 1, active_nonce - back - 1, -1) if n >= 0]
    above = [active_nonce + i for i in range(1, forward + 1)]
    return below + above


@dataclass(frozen=True)
class KeyResolution:
    key: IncentiveKey
    incentive_id: str
    source: str


# ── History Sources ─────────────────────────────────────────────────────


class HistorySource(Protocol):
    async def fetch_farm_calls(self, account: str, farm: str) -> List[str]:
        """Raw calldata of ``account``'s past transactions sent to ``farm``."""
        ...


class ExplorerHistorySource:
    """Blockscout v2 ``/addresses/{account}/transactions`` reader.

    Follows ``next_page_params`` up to ``settings.max_pages`` pages, pausing
    ``settings.page_delay_seconds`` before every page after the first.
    """

    def __init__(
        self,
        settings: Optional[ExplorerSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or ExplorerSettings()
        self._transport = transport

    async def fetch_farm_calls(self, account: str, farm: str) -> List[str]:
        account = assert_address(account, "account")
        farm = assert_address(farm, "farm")
        url = f"{self.settings.base_url}/addresses/{account}/transactions"
        params: dict = {"filter": "from"}
        calls: List[str] = []

        async with httpx.AsyncClient(
            timeout=self.settings.timeout_seconds, transport=self._transport
        ) as client:
            for page in range(self.settings.max_pages):
                if page and self.settings.page_delay_seconds > 0:
                    await asyncio.sleep(self.settings.page_delay_seconds)
                try:
                    response = await client.get(url, params=params)
                except httpx.HTTPError as err:
                    raise RpcFailure(
                        f"explorer request failed: {type(err).__name__}",
                        method="explorer:transactions",
                        timed_out=isinstance(err, httpx.TimeoutException),
                    ) from err
                if response.status_code != 200:
                    raise RpcFailure(
                        f"explorer HTTP {response.status_code}",
                        method="explorer:transactions",
                        http_status=response.status_code,
                    )
                try:
                    data = response.json()
                except ValueError as err:
                    raise RpcFailure(
                        "explorer returned a non-JSON body",
                        method="explorer:transactions",
                        http_status=response.status_code,
                    ) from err
                if not isinstance(data, dict):
                    raise RpcFailure(
                        f"explorer returned {type(data).__name__}, expected an object",
                        method="explorer:transactions",
                    )
                for item in data.get("items") or []:
                    to = (item.get("to") or {}).get("hash") or ""
                    raw = item.get("raw_input") or ""
                    if to.lower() == farm and raw.startswith("0x"):
                        calls.append(raw)
                next_params = data.get("next_page_params")
                if not next_params:
                    break
                params = {"filter": "from", **next_params}
                logger.debug("explorer page {} for {} → {} farm calls so far", page + 1, account, len(calls))
        return calls


def keys_from_calldata(calldata: str) -> List[IncentiveKey]:
    """Incentive keys embedded in farm calls (one multicall level unwrapped)."""
    keys = []
    for call in decode_calldata(calldata).flatten():
        if call.status != "decoded" or call.name not in FARMING_KEY_CALLS:
            continue
        a = call.args
        keys.append(IncentiveKey(a["rewardToken"], a["bonusRewardToken"], a["pool"], a["nonce"]))
    return keys


# ── Resolver ────────────────────────────────────────────────────────────


class IncentiveKeyResolver:
    def __init__(
        self,
        reader: ContractReader,
        scan: Optional[KeyScanSettings] = None,
        history: Optional[HistorySource] = None,
    ):
        self.reader = reader
        self.scan = scan or KeyScanSettings()
        self.history = history

    async def resolve(self, pool: str, token_id: int, account: Optional[str] = None) -> KeyResolution:
        pool = assert_address(pool, "pool")
        deposit_id, active = await asyncio.gather(
            self.reader.read_deposit(token_id), self.reader.read_incentive_key(pool)
        )
        if deposit_id == ZERO_BYTES32:
            raise StateInvariantError(f"Position #{token_id} has no FarmingCenter deposit (not staked)")

        active_id = compute_incentive_id(active)
        if active_id == deposit_id:
            return KeyResolution(active, active_id, SOURCE_ACTIVE)

        below = set(range(max(0, active.nonce - self.scan.back), active.nonce))
        for nonce in nonce_scan_window(active.nonce, self.scan.back, self.scan.forward):
            candidate = active.with_nonce(nonce)
            cid = compute_incentive_id(candidate)
            if cid == deposit_id:
                source = SOURCE_NONCE_BACK if nonce in below else SOURCE_NONCE_FORWARD
                logger.info("#{} enrolled under stale key nonce {} (active {})", token_id, nonce, active.nonce)
                return KeyResolution(candidate, cid, source)

        if self.history is not None and account:
            farm = self.reader.contracts["farmingCenter"]
            for calldata in await self.history.fetch_farm_calls(account, farm):
                for candidate in keys_from_calldata(calldata):
                    if candidate.pool.lower() != pool:
                        continue
                    cid = compute_incentive_id(candidate)
                    if cid == deposit_id:
                        logger.info("#{} key recovered from transaction history", token_id)
                        return KeyResolution(candidate, cid, SOURCE_HISTORY)

        raise StateInvariantError(
            f"No incentive key for position #{token_id} matches deposit {deposit_id} "
            f"(active nonce {active.nonce}, scanned -{self.scan.back}/+{self.scan.forward}"
            f"{', history' if self.history is not None and account else ''})"
        )
