"""
commitment.py - Hash commitments to 256-bit random values

Each party draws a uniform 256-bit value, publishes only its hash in the
ticket, and reveals the value at redemption. A commitment hash is
keccak256 of the value encoded as a big-endian uint256, the same digest as
`keccak256(abi.encodePacked(uint256(value)))`.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Optional
import secrets

from .core import MAX_UINT256
from .crypto import solidity_keccak


# Capability returning a uniform integer in [0, 2^256).
RandomSource = Callable[[], int]


def secure_random_source() -> int:
    return secrets.randbits(256)


def commitment_hash(value: int) -> bytes:
    """
    Hash a random value into its 32-byte commitment.

    Raises:
        ValueError: If value is outside the uint256 range
    """
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_UINT256:
        raise ValueError(f"Committed value must be a uint256, got {value!r}")
    return solidity_keccak(["uint256"], [value])


def verify_commitment(value: int, commit: bytes) -> bool:
    """Return True if `value` is the preimage of `commit`."""
    try:
        return commitment_hash(value) == bytes(commit)
    except ValueError:
        return False


@dataclass(frozen=True, slots=True)
class Commitment:
    """
    A random value together with its published hash.

    The value stays with its generator until reveal time and is kept out of
    the repr so it does not leak into logs.
    """
    value: int = field(repr=False)
    commit: bytes = b""

    def __post_init__(self):
        expected = commitment_hash(self.value)
        if not self.commit:
            object.__setattr__(self, 'commit', expected)
        elif bytes(self.commit) != expected:
            raise ValueError("Commitment hash does not match value")

    @classmethod
    def generate(cls, random_source: Optional[RandomSource] = None) -> Commitment:
        """Draw a fresh value from `random_source` (default: the OS CSPRNG)."""
        source = random_source or secure_random_source
        return cls(value=source())

    def reveal(self) -> int:
        return self.value
