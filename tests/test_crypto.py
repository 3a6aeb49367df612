import pytest

from bunkerclient.common.crypto import CryptoUtils


def test_generate_secret_key_is_valid():
    """Test generated keys are usable secp256k1 scalars."""
    secret_key = CryptoUtils.generate_secret_key()

    assert len(secret_key) == 32
    assert CryptoUtils.is_valid_secret_key(secret_key)
    assert CryptoUtils.is_hex_key(CryptoUtils.public_key_hex(secret_key))


def test_invalid_secret_keys():
    """Test zero, short and out-of-range keys are rejected."""
    assert not CryptoUtils.is_valid_secret_key(bytes(32))
    assert not CryptoUtils.is_valid_secret_key(b"\x01" * 31)
    assert not CryptoUtils.is_valid_secret_key(b"\xff" * 32)


def test_known_public_key():
    """Test the x-only key for secret key 1 is the generator point."""
    secret_key = (1).to_bytes(32, "big")

    assert CryptoUtils.public_key_hex(secret_key) == (
        "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
    )


def test_shared_secret_is_symmetric():
    """Test ECDH agreement between two parties."""
    alice = CryptoUtils.generate_secret_key()
    bob = CryptoUtils.generate_secret_key()

    assert CryptoUtils.shared_secret(alice, CryptoUtils.public_key_hex(bob)) == (
        CryptoUtils.shared_secret(bob, CryptoUtils.public_key_hex(alice))
    )


def test_nip04_between_parties():
    """Test a message encrypted by one party decrypts for the other."""
    alice = CryptoUtils.generate_secret_key()
    bob = CryptoUtils.generate_secret_key()

    payload = CryptoUtils.nip04_encrypt(alice, CryptoUtils.public_key_hex(bob), "hello bunker")

    assert "?iv=" in payload
    assert CryptoUtils.nip04_decrypt(bob, CryptoUtils.public_key_hex(alice), payload) == (
        "hello bunker"
    )


def test_nip04_rejects_payload_without_iv():
    """Test malformed payloads raise ValueError."""
    secret_key = CryptoUtils.generate_secret_key()

    with pytest.raises(ValueError):
        CryptoUtils.nip04_decrypt(secret_key, CryptoUtils.public_key_hex(secret_key), "abcd")


def test_compute_event_id():
    """Test the NIP-01 serialization hash is stable."""
    pubkey = "ab" * 32

    first = CryptoUtils.compute_event_id(pubkey, 1700000000, 1, [["t", "x"]], "hi")
    second = CryptoUtils.compute_event_id(pubkey, 1700000000, 1, [["t", "x"]], "hi")
    other = CryptoUtils.compute_event_id(pubkey, 1700000000, 1, [], "hi")

    assert first == second
    assert first != other
    assert len(first) == 64


def test_npub_encoding():
    """Test bech32 npub encoding and decoding."""
    pubkey = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"

    npub = CryptoUtils.npub_encode(pubkey)

    assert npub.startswith("npub1")
    assert CryptoUtils.npub_decode(npub) == pubkey
    with pytest.raises(ValueError):
        CryptoUtils.npub_decode("nsec1" + npub[5:])
