"""
Unit tests for cryptographic primitives.

Tests cover:
1. Key generation and address derivation
2. Signing and verification
3. Signer recovery
4. Hashing and canonical payloads
"""

import pytest

from penny.crypto import (
    SECP256K1_ORDER,
    bytes_to_hex,
    canonical_dumps,
    generate_keypair,
    hash_payload,
    hex_to_bytes,
    is_valid_address,
    keccak256,
    keypair_from_hex,
    private_key_to_public_key,
    recover_addresses,
    recover_public_key,
    sha256,
    sign,
    sign_payload,
    verify,
)


class TestKeyGeneration:
    """Tests for key generation."""

    def test_keypair_lengths(self):
        kp = generate_keypair()
        assert len(kp.private_key) == 32
        assert len(kp.public_key) == 64

    def test_address_format(self):
        """Address should be 0x-prefixed 40 hex chars."""
        kp = generate_keypair()
        assert kp.address.startswith("0x")
        assert len(kp.address) == 42
        assert is_valid_address(kp.address)

    def test_keypairs_are_unique(self):
        assert generate_keypair().private_key != generate_keypair().private_key

    def test_known_address(self):
        """Private key 1 maps to the well-known Ethereum address."""
        kp = keypair_from_hex("0x" + "00" * 31 + "01")
        assert kp.address == "0x7e5f4552091a69125d5dfcb7b8c2659029395bdf"

    def test_keypair_from_hex_roundtrip(self):
        kp = generate_keypair()
        loaded = keypair_from_hex(kp.private_key_hex)
        assert loaded.public_key == kp.public_key
        assert loaded.address == kp.address

    def test_bad_private_key(self):
        with pytest.raises(ValueError):
            private_key_to_public_key(b"\x01" * 31)
        with pytest.raises(ValueError):
            keypair_from_hex("0xzz")


class TestSigning:
    """Tests for ECDSA signing."""

    def test_sign_and_verify(self):
        kp = generate_keypair()
        msg_hash = keccak256(b"bid")
        sig = sign(msg_hash, kp.private_key)
        assert len(sig) == 64
        assert verify(msg_hash, sig, kp.public_key)

    def test_low_s(self):
        kp = generate_keypair()
        sig = sign(keccak256(b"bid"), kp.private_key)
        assert int.from_bytes(sig[32:], "big") <= SECP256K1_ORDER // 2

    def test_wrong_message_fails(self):
        kp = generate_keypair()
        sig = sign(keccak256(b"bid"), kp.private_key)
        assert not verify(keccak256(b"other"), sig, kp.public_key)

    def test_wrong_key_fails(self):
        kp, other = generate_keypair(), generate_keypair()
        sig = sign(keccak256(b"bid"), kp.private_key)
        assert not verify(keccak256(b"bid"), sig, other.public_key)

    def test_bad_hash_length(self):
        kp = generate_keypair()
        with pytest.raises(ValueError):
            sign(b"short", kp.private_key)


class TestRecovery:
    """Tests for signer recovery."""

    def test_recover_addresses_includes_signer(self):
        kp = generate_keypair()
        msg_hash = keccak256(b"bid")
        sig = sign(msg_hash, kp.private_key)
        assert kp.address in recover_addresses(msg_hash, sig)

    def test_recover_rejects_bad_input(self):
        assert recover_public_key(b"\x00" * 32, b"\x00" * 64, 0) is None
        assert recover_public_key(b"\x00" * 31, b"\x01" * 64, 0) is None
        assert recover_addresses(keccak256(b"x"), b"\x00" * 64) == []

    def test_sign_payload(self):
        """Payload signatures are over the canonical hash."""
        kp = generate_keypair()
        req = [1, "submit_app_state", {"version": 3, "app_session_id": "0xab"}, 1700000000000]
        signature = sign_payload(req, kp.private_key)

        assert signature.startswith("0x")
        assert kp.address in recover_addresses(hash_payload(req), hex_to_bytes(signature))


class TestHashing:
    """Tests for hash functions."""

    def test_keccak_empty(self):
        assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_sha256_length(self):
        assert len(sha256(b"x")) == 32

    def test_canonical_dumps_ignores_key_order(self):
        assert canonical_dumps({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'
        assert hash_payload({"b": 1, "a": 2}) == hash_payload({"a": 2, "b": 1})

    def test_hex_roundtrip(self):
        assert hex_to_bytes(bytes_to_hex(b"\x01\xff")) == b"\x01\xff"
        assert hex_to_bytes("01ff") == b"\x01\xff"

    @pytest.mark.parametrize("address,expected", [
        ("0x" + "ab" * 20, True),
        ("0x" + "ab" * 19, False),
        ("ab" * 21, False),
        ("0x" + "zz" * 20, False),
        (None, False),
    ])
    def test_is_valid_address(self, address, expected):
        assert is_valid_address(address) is expected
