"""Kittenswap LP rebalance planner and transaction forensics for HyperEVM."""

from krlp_cli.central_config import PROJECT_VERSION

__version__ = PROJECT_VERSION
