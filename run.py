#!/usr/bin/env python3
"""
Kittenswap LP Rebalance CLI
===========================

Planner, simulator and transaction forensics for Kittenswap concentrated
liquidity positions on HyperEVM. Never holds keys; ``broadcast-raw`` only
forwards an already-signed payload with an explicit ``--yes SEND``.

Usage:
  python run.py health                                         RPC + chain id check
  python run.py contracts                                      Addresses and selectors
  python run.py position <tokenId> [--owner 0x…]               Position / pool / wallet snapshot
  python run.py status   <tokenId> [--edge-bps N]              HOLD vs REBALANCE (heartbeat)
  python run.py plan     <tokenId> [--amount0 X --amount1 Y]   Rebalance transaction templates
  python run.py swap-plan <tokenIn> <tokenOut> --amount-in X --owner 0x…
  python run.py farm-status <tokenId> [--account 0x…]          Stake membership + incentive key
  python run.py diagnose <0xTxHash>                            Failed-transaction root cause
  python run.py broadcast-raw <0xSignedTx> --yes SEND          Forward a signed transaction

Environment:
  KRLP_RPC_URL, KRLP_LOG_LEVEL, KRLP_EXPLORER_API … (see krlp_cli/central_config.py)
"""

import sys
import asyncio
import argparse
from dataclasses import replace
from pathlib import Path

# ── Imports ───────────────────────────────────────────────────────────────

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from krlp_cli.central_config import (  # noqa: E402
    HEARTBEAT_EDGE_BPS,
    PROJECT_NAME,
    PROJECT_VERSION,
    ExplorerSettings,
    KeyScanSettings,
    RebalancePolicy,
    RpcSettings,
    configure_logging,
)
from krlp_cli.commands import (  # noqa: E402
    cmd_broadcast_raw,
    cmd_contracts,
    cmd_diagnose,
    cmd_farm_status,
    cmd_health,
    cmd_plan,
    cmd_position,
    cmd_status,
    cmd_swap_plan,
)
from krlp_cli.errors import KrlpError  # noqa: E402
from krlp_cli.rpc_transport import RpcTransport  # noqa: E402
from krlp_cli.word_codec import parse_bps, parse_token_id  # noqa: E402
from incentive_keys import ExplorerHistorySource, IncentiveKeyResolver  # noqa: E402
from position_reader import ContractReader  # noqa: E402


# ── CLI Parser ────────────────────────────────────────────────────────────


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="krlp",
        description=f"{PROJECT_NAME} v{PROJECT_VERSION}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py status 12345                      Heartbeat decision (5% edge buffer)
  python run.py plan 12345 --width-bump 100       Widen by 100 ticks if rebalancing
  python run.py diagnose 0x…                      Why did this transaction revert?
""",
    )
    parser.add_argument("--version", action="version", version=f"{PROJECT_NAME} v{PROJECT_VERSION}")
    parser.add_argument("--rpc-url", help="Override KRLP_RPC_URL")
    parser.add_argument("--log-level", help="loguru level (default KRLP_LOG_LEVEL or WARNING)")

    sub = parser.add_subparsers(dest="command", help="Available commands")

    sub.add_parser("health", help="RPC reachability and chain id")
    sub.add_parser("contracts", help="Kittenswap contract addresses and selectors")

    pos_p = sub.add_parser("position", help="Position, pool and wallet snapshot")
    pos_p.add_argument("token_id")
    pos_p.add_argument("--owner")

    status_p = sub.add_parser("status", help="HOLD vs REBALANCE (exit code 2 when due)")
    status_p.add_argument("token_id")
    status_p.add_argument("--edge-bps")

    plan_p = sub.add_parser("plan", help="Dry-run rebalance transaction templates")
    plan_p.add_argument("token_id")
    plan_p.add_argument("--owner")
    plan_p.add_argument("--recipient")
    plan_p.add_argument("--edge-bps")
    plan_p.add_argument("--slippage-bps")
    plan_p.add_argument("--deadline-seconds", type=int)
    plan_p.add_argument("--width-bump", type=int, default=0, help="Ticks to widen by when rebalancing")
    plan_p.add_argument("--amount0", help="Decimal amount of token0 for the new mint")
    plan_p.add_argument("--amount1", help="Decimal amount of token1 for the new mint")
    plan_p.add_argument("--burn-old", action="store_true", help="Include burn of the emptied NFT")

    swap_p = sub.add_parser("swap-plan", help="Dry-run single-hop swap templates")
    swap_p.add_argument("token_in")
    swap_p.add_argument("token_out")
    swap_p.add_argument("--amount-in", required=True)
    swap_p.add_argument("--owner", required=True)
    swap_p.add_argument("--recipient")
    swap_p.add_argument("--deployer", default="0x" + "0" * 40)
    swap_p.add_argument("--slippage-bps")
    swap_p.add_argument("--deadline-seconds", type=int)
    swap_p.add_argument("--native-in", action="store_true")
    swap_p.add_argument("--approve-max", action="store_true")

    farm_p = sub.add_parser("farm-status", help="Stake membership and incentive key")
    farm_p.add_argument("token_id")
    farm_p.add_argument("--account", help="Reward owner (defaults to the NFT owner)")
    farm_p.add_argument("--no-history", action="store_true", help="Skip the block-explorer fallback")

    diag_p = sub.add_parser("diagnose", help="Decode and diagnose a transaction")
    diag_p.add_argument("tx_hash")

    bc_p = sub.add_parser("broadcast-raw", help="Forward an already-signed transaction")
    bc_p.add_argument("raw_tx")
    bc_p.add_argument("--yes", help='Must be exactly "SEND"')
    bc_p.add_argument("--no-wait", action="store_true")

    return parser


def _policy(args) -> RebalancePolicy:
    d = RebalancePolicy()
    return RebalancePolicy(
        edge_bps=parse_bps(getattr(args, "edge_bps", None), d.edge_bps),
        slippage_bps=parse_bps(getattr(args, "slippage_bps", None), d.slippage_bps),
        deadline_seconds=getattr(args, "deadline_seconds", None) or d.deadline_seconds,
    ).normalized()


async def _dispatch(args, transport: RpcTransport) -> int:
    reader = ContractReader(transport)
    if args.command == "health":
        return await cmd_health(transport)
    if args.command == "position":
        return await cmd_position(reader, parse_token_id(args.token_id), args.owner)
    if args.command == "status":
        return await cmd_status(reader, parse_token_id(args.token_id), parse_bps(args.edge_bps, HEARTBEAT_EDGE_BPS))
    if args.command == "plan":
        return await cmd_plan(
            reader,
            parse_token_id(args.token_id),
            owner=args.owner,
            recipient=args.recipient,
            policy=_policy(args),
            width_bump_ticks=args.width_bump,
            amount0=args.amount0,
            amount1=args.amount1,
            burn_old=args.burn_old,
        )
    if args.command == "swap-plan":
        return await cmd_swap_plan(
            reader,
            args.token_in,
            args.token_out,
            args.amount_in,
            args.owner,
            recipient=args.recipient,
            deployer=args.deployer,
            policy=_policy(args),
            native_in=args.native_in,
            approve_max=args.approve_max,
        )
    if args.command == "farm-status":
        history = None if args.no_history else ExplorerHistorySource(ExplorerSettings.from_env())
        resolver = IncentiveKeyResolver(reader, KeyScanSettings.from_env(), history)
        return await cmd_farm_status(reader, parse_token_id(args.token_id), args.account, resolver=resolver)
    if args.command == "diagnose":
        return await cmd_diagnose(reader, args.tx_hash)
    if args.command == "broadcast-raw":
        return await cmd_broadcast_raw(transport, args.raw_tx, args.yes, wait=not args.no_wait)
    raise AssertionError(f"unhandled command {args.command}")


# ── Main ──────────────────────────────────────────────────────────────────


def main(argv=None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 0
    if args.command == "contracts":
        return cmd_contracts()

    settings = RpcSettings.from_env()
    if args.rpc_url:
        settings = replace(settings, rpc_url=args.rpc_url)
    try:
        return asyncio.run(_dispatch(args, RpcTransport(settings)))
    except KrlpError as err:
        print(f"❌ {type(err).__name__}: {err}")
        return 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n❌ Cancelled.")
        sys.exit(130)
