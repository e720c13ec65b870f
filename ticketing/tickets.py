"""
tickets.py - Ticket structure, canonical hash and signing

A Ticket is created by the sender, signed over its hash, handed to the
receiver off-ledger, and consumed exactly once by the ledger.

The canonical hash packs the fields in this fixed order:

    sender            address   (20 bytes)
    receiver          address   (20 bytes)
    face_value        uint256
    win_prob          uint256
    expiration_block  uint256   (0 = never expires)
    sender_commit     bytes32
    receiver_commit   bytes32
    sender_nonce      uint32

and hashes them with keccak256, byte-for-byte equal to Solidity's
`keccak256(abi.encodePacked(...))` over the same struct.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple, Any

from .core import MAX_UINT256, MAX_UINT32, InvalidTicket, InvalidSignature
from .crypto import (
    SignatureScheme, DEFAULT_SIGNATURE_SCHEME,
    solidity_keccak, to_checksum,
)


TICKET_ABI_TYPES = (
    "address", "address", "uint256", "uint256", "uint256",
    "bytes32", "bytes32", "uint32",
)


def _check_uint(name: str, value: Any, maximum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTicket(f"{name} must be int, got {type(value).__name__}")
    if not 0 <= value <= maximum:
        raise InvalidTicket(f"{name} out of range: {value}")


def _check_bytes32(name: str, value: Any) -> None:
    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise InvalidTicket(f"{name} must be 32 bytes")


@dataclass(frozen=True, slots=True)
class Ticket:
    """
    A probabilistic payment instrument.

    Attributes:
        sender: Payer address; its escrow backs the ticket
        receiver: Payee address
        face_value: Tokens paid out if the ticket wins
        win_prob: Win probability numerator over 2^256
        expiration_block: Last block at which the ticket can be redeemed (0 = never)
        sender_commit: Hash of the sender's random value
        receiver_commit: Hash of the receiver's random value, fixed before signing
        sender_nonce: Per-sender uniqueness value
    """
    sender: str
    receiver: str
    face_value: int
    win_prob: int
    expiration_block: int
    sender_commit: bytes
    receiver_commit: bytes
    sender_nonce: int

    def __post_init__(self):
        for name in ('sender', 'receiver'):
            try:
                object.__setattr__(self, name, to_checksum(getattr(self, name)))
            except ValueError as e:
                raise InvalidTicket(f"{name}: {e}") from e
        _check_uint('face_value', self.face_value, MAX_UINT256)
        _check_uint('win_prob', self.win_prob, MAX_UINT256)
        _check_uint('expiration_block', self.expiration_block, MAX_UINT256)
        _check_uint('sender_nonce', self.sender_nonce, MAX_UINT32)
        _check_bytes32('sender_commit', self.sender_commit)
        _check_bytes32('receiver_commit', self.receiver_commit)
        object.__setattr__(self, 'sender_commit', bytes(self.sender_commit))
        object.__setattr__(self, 'receiver_commit', bytes(self.receiver_commit))

    def as_tuple(self) -> Tuple[Any, ...]:
        return (
            self.sender,
            self.receiver,
            self.face_value,
            self.win_prob,
            self.expiration_block,
            self.sender_commit,
            self.receiver_commit,
            self.sender_nonce,
        )

    @property
    def hash(self) -> bytes:
        return ticket_hash(self)

    def is_expired(self, current_block: int) -> bool:
        return self.expiration_block != 0 and current_block > self.expiration_block


def ticket_hash(ticket: Ticket) -> bytes:
    """Canonical 32-byte hash of a ticket, the digest the sender signs."""
    return solidity_keccak(TICKET_ABI_TYPES, ticket.as_tuple())


@dataclass(frozen=True, slots=True)
class SignedTicket:
    """A ticket with the sender's signature over its hash."""
    ticket: Ticket
    signature: bytes

    def __post_init__(self):
        object.__setattr__(self, 'signature', bytes(self.signature))

    @property
    def ticket_hash(self) -> bytes:
        return ticket_hash(self.ticket)


def sign_ticket(
    ticket: Ticket,
    private_key,
    scheme: Optional[SignatureScheme] = None,
) -> SignedTicket:
    """Sign the ticket hash with the sender's private key."""
    scheme = scheme or DEFAULT_SIGNATURE_SCHEME
    return SignedTicket(ticket=ticket, signature=scheme.sign(ticket_hash(ticket), private_key))


def verify_ticket_signature(
    signed: SignedTicket,
    scheme: Optional[SignatureScheme] = None,
) -> None:
    """
    Check that the signature recovers the ticket's sender.

    Raises:
        InvalidSignature: If the signature is malformed or recovers another account
    """
    scheme = scheme or DEFAULT_SIGNATURE_SCHEME
    recovered = scheme.recover(signed.ticket_hash, signed.signature)
    if recovered != signed.ticket.sender:
        raise InvalidSignature(
            f"Signature recovers {recovered}, expected sender {signed.ticket.sender}"
        )
