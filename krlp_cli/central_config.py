"""
Project Configuration — RPC endpoint, policy defaults, version, logging
========================================================================

Every value is defaulted here or taken from the environment / explicit
arguments; nothing is persisted to disk.

Environment:
  KRLP_RPC_URL, KRLP_CHAIN_ID, KRLP_TIMEOUT_SECONDS, KRLP_MAX_RETRIES,
  KRLP_RETRY_BASE_SECONDS, KRLP_RETRY_MAX_SECONDS,
  KRLP_KEY_SCAN_BACK, KRLP_KEY_SCAN_FORWARD,
  KRLP_EXPLORER_API, KRLP_LOG_LEVEL
"""

import os
import re
import sys
from dataclasses import dataclass, replace
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from typing import Mapping, Optional

from loguru import logger

# Version — single source of truth is pyproject.toml
try:
    PROJECT_VERSION = version("krlp-cli")
except PackageNotFoundError:
    # Dev / CI: package not installed — read pyproject.toml directly
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"
PROJECT_NAME = "Kittenswap LP Rebalance CLI"

HEARTBEAT_EDGE_BPS = 500
MAX_BPS = 10_000
MAX_DEADLINE_SECONDS = 86_400


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Ignoring malformed {}={!r}, using {}", key, raw, default)
        return default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        val = float(raw.strip())
    except ValueError:
        logger.warning("Ignoring malformed {}={!r}, using {}", key, raw, default)
        return default
    return val if val > 0 else default


@dataclass(frozen=True)
class RpcSettings:
    """HyperEVM JSON-RPC endpoint and retry policy."""

    rpc_url: str = "https://rpc.hyperliquid.xyz/evm"
    chain_id: int = 999
    timeout_seconds: float = 12.0
    broadcast_timeout_seconds: float = 120.0
    max_retries: int = 3
    retry_base_seconds: float = 0.35
    retry_max_seconds: float = 2.5

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RpcSettings":
        env = os.environ if env is None else env
        d = cls()
        base = _env_float(env, "KRLP_RETRY_BASE_SECONDS", d.retry_base_seconds)
        return cls(
            rpc_url=(env.get("KRLP_RPC_URL") or d.rpc_url).strip(),
            chain_id=_env_int(env, "KRLP_CHAIN_ID", d.chain_id),
            timeout_seconds=_env_float(env, "KRLP_TIMEOUT_SECONDS", d.timeout_seconds),
            broadcast_timeout_seconds=d.broadcast_timeout_seconds,
            max_retries=max(0, _env_int(env, "KRLP_MAX_RETRIES", d.max_retries)),
            retry_base_seconds=base,
            retry_max_seconds=max(base, _env_float(env, "KRLP_RETRY_MAX_SECONDS", d.retry_max_seconds)),
        )


@dataclass(frozen=True)
class RebalancePolicy:
    """Thresholds for the rebalance decision and the generated step plan."""

    edge_bps: int = 1500          # 15% of width: manual inspection default
    slippage_bps: int = 50        # 0.5% floor on minimum amounts
    deadline_seconds: int = 900   # latest block timestamp + 15 min

    def normalized(self) -> "RebalancePolicy":
        return replace(
            self,
            edge_bps=max(0, min(MAX_BPS, int(self.edge_bps))),
            slippage_bps=max(0, min(MAX_BPS, int(self.slippage_bps))),
            deadline_seconds=max(1, min(MAX_DEADLINE_SECONDS, int(self.deadline_seconds))),
        )


@dataclass(frozen=True)
class KeyScanSettings:
    """Nonce window for stale incentive-key lookup.

    These bounds are a tunable policy; a stale key outside the window falls
    through to the history source.
    """

    back: int = 64
    forward: int = 8

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "KeyScanSettings":
        env = os.environ if env is None else env
        return cls(
            back=max(0, _env_int(env, "KRLP_KEY_SCAN_BACK", cls.back)),
            forward=max(0, _env_int(env, "KRLP_KEY_SCAN_FORWARD", cls.forward)),
        )


@dataclass(frozen=True)
class ExplorerSettings:
    """Blockscout v2 explorer used as the last-resort key history source."""

    base_url: str = "https://www.hyperscan.com/api/v2"
    timeout_seconds: int = 15
    max_pages: int = 10
    # Pause between pages; public Blockscout instances throttle bursts.
    page_delay_seconds: float = 0.25

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ExplorerSettings":
        env = os.environ if env is None else env
        url = (env.get("KRLP_EXPLORER_API") or cls.base_url).strip().rstrip("/")
        return cls(
            base_url=url,
            max_pages=max(1, _env_int(env, "KRLP_EXPLORER_MAX_PAGES", cls.max_pages)),
            page_delay_seconds=_env_float(env, "KRLP_EXPLORER_PAGE_DELAY", cls.page_delay_seconds),
        )


# ── Logging ─────────────────────────────────────────────────────────────


def configure_logging(level: Optional[str] = None) -> None:
    """Route loguru to stderr so stdout carries only command output."""
    lvl = (level or os.environ.get("KRLP_LOG_LEVEL") or "WARNING").upper()
    logger.remove()
    logger.add(sys.stderr, level=lvl)
