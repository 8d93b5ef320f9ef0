"""
Error Taxonomy
==============

Every failure raised by the engines falls into one of these classes so
callers can tell "definitively failed for reason X" apart from "unknown
because a read failed":

  • InputValidationError  — malformed user input, raised before any RPC
  • CodecError            — word codec encode/decode failure
  • StateInvariantError   — deterministic domain error, never retried
  • PartialDecodeError    — selector matched, payload too short
  • BroadcastBlockedError — missing out-of-band confirmation

Transport failures live in krlp_cli.rpc_transport (RpcFailure).
"""


class KrlpError(Exception):
    """Base class for all engine errors."""


class InputValidationError(KrlpError, ValueError):
    """Malformed address / hash / amount / tick supplied by the caller."""


class CodecError(InputValidationError):
    """A value cannot be encoded to, or decoded from, an ABI word."""


class StateInvariantError(KrlpError):
    """On-chain or range state violates a domain invariant."""


class PartialDecodeError(KrlpError):
    """Data matched a known shape but carried fewer words than required."""

    def __init__(self, label: str, expected_words: int, actual_words: int):
        self.label = label
        self.expected_words = expected_words
        self.actual_words = actual_words
        super().__init__(
            f"{label} returned {actual_words} words (expected >={expected_words})"
        )


class BroadcastBlockedError(InputValidationError):
    """Broadcast attempted without the explicit confirmation token."""
