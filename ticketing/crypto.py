"""
crypto.py - Hash, Sign and Recover capabilities

Hashing is keccak256 over Solidity tightly-packed encodings, so every digest
computed here matches `keccak256(abi.encodePacked(...))` on the verifying
ledger. Signing uses recoverable secp256k1 ECDSA over the EIP-191 personal
message digest of a 32-byte hash.

The signature scheme is a capability: anything implementing SignatureScheme
can be handed to the ledger and the client.
"""

from __future__ import annotations
from typing import Protocol, Sequence, Any, runtime_checkable

from eth_abi.packed import encode_packed
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError as KeysValidationError
from eth_utils.exceptions import ValidationError as UtilsValidationError
from web3 import Web3

from .core import InvalidSignature


SIGNATURE_LENGTH = 65


def keccak256(data: bytes) -> bytes:
    return bytes(Web3.keccak(data))


def solidity_keccak(abi_types: Sequence[str], values: Sequence[Any]) -> bytes:
    """keccak256 of the tightly-packed encoding of `values` under `abi_types`."""
    return keccak256(encode_packed(list(abi_types), list(values)))


def to_checksum(address: str) -> str:
    """
    Normalise an address to EIP-55 checksum form.

    Raises:
        ValueError: If `address` is not a 20-byte hex address
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return Web3.to_checksum_address(address)


def address_of(private_key) -> str:
    """Checksum address controlled by `private_key`."""
    return Account.from_key(private_key).address


@runtime_checkable
class SignatureScheme(Protocol):
    """Capability for signing digests and recovering the signer."""

    def sign(self, digest: bytes, private_key) -> bytes:
        ...

    def recover(self, digest: bytes, signature: bytes) -> str:
        """Return the checksum address that produced `signature` over `digest`."""
        ...


class EthereumSignatureScheme:
    """
    Recoverable ECDSA over the Ethereum signed-message digest.

    The digest is wrapped as "\\x19Ethereum Signed Message:\\n32" + digest before
    signing, matching ECDSA.toEthSignedMessageHash on the verifying side.
    """

    def sign(self, digest: bytes, private_key) -> bytes:
        signed = Account.sign_message(encode_defunct(primitive=digest), private_key=private_key)
        return bytes(signed.signature)

    def recover(self, digest: bytes, signature: bytes) -> str:
        if len(signature) != SIGNATURE_LENGTH:
            raise InvalidSignature(
                f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}"
            )
        try:
            recovered = Account.recover_message(
                encode_defunct(primitive=digest), signature=signature
            )
        except (ValueError, BadSignature, KeysValidationError, UtilsValidationError) as e:
            raise InvalidSignature(f"Malformed signature: {e}") from e
        return Web3.to_checksum_address(recovered)


DEFAULT_SIGNATURE_SCHEME = EthereumSignatureScheme()


def sign_ticket_hash(ticket_hash: bytes, private_key) -> bytes:
    """65-byte signature over a 32-byte ticket hash with the default scheme."""
    return DEFAULT_SIGNATURE_SCHEME.sign(ticket_hash, private_key)


def recover_signer(ticket_hash: bytes, signature: bytes) -> str:
    """
    Checksum address that signed `ticket_hash` under the default scheme.

    Raises:
        InvalidSignature: If the signature is malformed
    """
    return DEFAULT_SIGNATURE_SCHEME.recover(ticket_hash, signature)
