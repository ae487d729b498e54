"""
Cryptographic primitives for Penny Channel.

This module provides:
- Hashing functions (SHA-256, Keccak-256)
- Key generation and Ethereum-style address derivation
- Digital signatures (ECDSA on secp256k1)
- Canonical JSON hashing for signed transport requests

Design Notes:
-------------
Session participants are identified by Ethereum addresses, so keys live on
secp256k1 and addresses are the last 20 bytes of keccak256(public_key).

Every request sent to the clearnode (create, submit, close) is serialized
as canonical JSON (sorted keys, no whitespace), hashed with Keccak-256 and
signed by each co-signing participant. The clearnode recovers the signer
addresses and sums their weights against the session quorum.
"""

import hashlib
import json
import secrets
from dataclasses import dataclass
from typing import Any, List, Optional

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """Compute SHA-256 hash."""
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: address derivation, request hashing.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def canonical_dumps(payload: Any) -> bytes:
    """Return canonical JSON bytes with sorted keys and stable formatting."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def hash_payload(payload: Any) -> bytes:
    """Keccak-256 of the canonical JSON form of a request payload."""
    return keccak256(canonical_dumps(payload))


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def address(self) -> str:
        """Ethereum-style 0x address of this keypair."""
        return address_from_public_key(self.public_key)

    @property
    def private_key_hex(self) -> str:
        """Return private key as hex string."""
        return self.private_key.hex()


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def keypair_from_hex(private_key_hex: str) -> KeyPair:
    """
    Load a keypair from a hex-encoded private key (0x prefix optional).

    Raises:
        ValueError: If the key is not 32 bytes of valid hex
    """
    private_key = hex_to_bytes(private_key_hex.strip())
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    public_key_point = secp256k1.privtopub(private_key)
    x_bytes = public_key_point[0].to_bytes(32, byteorder="big")
    y_bytes = public_key_point[1].to_bytes(32, byteorder="big")
    return x_bytes + y_bytes


def address_from_public_key(public_key: bytes) -> str:
    """
    Derive address from public key.

    Address = last 20 bytes of keccak256(public_key), hex-encoded with 0x prefix.
    """
    return "0x" + keccak256(public_key)[-20:].hex()


# =============================================================================
# Digital Signatures (ECDSA)
# =============================================================================


def sign(message_hash: bytes, private_key: bytes) -> bytes:
    """
    Sign a message hash using ECDSA on secp256k1.

    Args:
        message_hash: 32-byte hash of the message to sign
        private_key: 32-byte private key

    Returns:
        64-byte signature (r || s, each 32 bytes)
    """
    if len(message_hash) != 32:
        raise ValueError("Message hash must be 32 bytes")
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    v, r, s = secp256k1.ecdsa_raw_sign(message_hash, private_key)

    # Low-s normalization (EIP-2)
    if s > SECP256K1_ORDER // 2:
        s = SECP256K1_ORDER - s

    return r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")


def recover_public_key(message_hash: bytes, signature: bytes, recovery_id: int) -> Optional[bytes]:
    """
    Recover public key from signature.

    Args:
        message_hash: 32-byte hash
        signature: 64-byte signature (r || s)
        recovery_id: 0 or 1 (which of two possible public keys)

    Returns:
        64-byte public key, or None if recovery fails
    """
    if len(message_hash) != 32 or len(signature) != 64:
        return None

    r = int.from_bytes(signature[:32], byteorder="big")
    s = int.from_bytes(signature[32:], byteorder="big")
    if not (1 <= r < SECP256K1_ORDER and 1 <= s < SECP256K1_ORDER):
        return None

    try:
        recovered = secp256k1.ecdsa_raw_recover(message_hash, (27 + recovery_id, r, s))
    except (ValueError, ZeroDivisionError):
        return None
    if not recovered:
        return None

    return recovered[0].to_bytes(32, byteorder="big") + recovered[1].to_bytes(32, byteorder="big")


def verify(message_hash: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verify an ECDSA signature against a known public key.

    Returns:
        True if signature is valid, False otherwise
    """
    if len(public_key) != 64:
        return False
    return any(
        recover_public_key(message_hash, signature, recovery_id) == public_key
        for recovery_id in (0, 1)
    )


def recover_addresses(message_hash: bytes, signature: bytes) -> List[str]:
    """
    Candidate signer addresses for a signature.

    Signatures carry no recovery id, so both candidates are returned; the
    caller matches them against a known participant set.
    """
    addresses = []
    for recovery_id in (0, 1):
        public_key = recover_public_key(message_hash, signature, recovery_id)
        if public_key is not None:
            addresses.append(address_from_public_key(public_key))
    return addresses


def sign_payload(payload: Any, private_key: bytes) -> str:
    """Sign the canonical hash of a payload; returns a 0x-prefixed hex signature."""
    return bytes_to_hex(sign(hash_payload(payload), private_key))


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def is_valid_address(address: str) -> bool:
    """Check if string is a valid address format."""
    if not isinstance(address, str) or not address.startswith("0x"):
        return False
    if len(address) != 42:  # 0x + 40 hex chars
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False
