"""
Tests for the credential vault and key/signature primitives
"""
import hashlib
import hmac

import pytest
from cryptography.fernet import Fernet

from integrations_hub.core.exceptions import VaultError
from integrations_hub.core.security import (
    CredentialVault,
    derive_fernet_key,
    display_prefix,
    generate_api_key,
    hash_api_key,
    mask_secret,
    sign_payload,
)


def test_encrypt_does_not_store_plaintext():
    vault = CredentialVault([Fernet.generate_key()])
    blob = vault.encrypt({"access_token": "sq0atp-very-secret"})

    assert "very-secret" not in blob
    assert vault.decrypt(blob) == {"access_token": "sq0atp-very-secret"}


def test_decrypt_empty_blob_is_empty_credentials():
    vault = CredentialVault([Fernet.generate_key()])
    assert vault.decrypt(None) == {}
    assert vault.decrypt("") == {}


def test_tampered_blob_is_rejected():
    vault = CredentialVault([Fernet.generate_key()])
    blob = vault.encrypt({"token": "abc"})
    tampered = blob[:-4] + ("AAAA" if not blob.endswith("AAAA") else "BBBB")

    with pytest.raises(VaultError):
        vault.decrypt(tampered)


def test_blob_from_another_key_is_rejected():
    blob = CredentialVault([Fernet.generate_key()]).encrypt({"token": "abc"})

    with pytest.raises(VaultError):
        CredentialVault([Fernet.generate_key()]).decrypt(blob)


def test_key_rotation():
    """Old blobs stay readable after rotation and can be re-encrypted under the new key"""
    old_key = Fernet.generate_key()
    new_key = Fernet.generate_key()
    old_blob = CredentialVault([old_key]).encrypt({"token": "abc"})

    rotating = CredentialVault([new_key, old_key])
    assert rotating.decrypt(old_blob) == {"token": "abc"}

    rotated = rotating.rotate(old_blob)
    assert CredentialVault([new_key]).decrypt(rotated) == {"token": "abc"}


def test_derived_key_is_valid_fernet_key():
    vault = CredentialVault([derive_fernet_key("some secret")])
    assert vault.decrypt(vault.encrypt({"a": 1})) == {"a": 1}


def test_api_key_format_and_hash():
    key = generate_api_key()

    assert key.startswith("ps_")
    assert len(key) == 3 + 64
    assert generate_api_key() != key
    assert hash_api_key(key) == hashlib.sha256(key.encode()).hexdigest()
    assert display_prefix(key) == key[:12]


def test_sign_payload_is_hmac_sha256():
    body = b'{"order_id":"o-1"}'
    expected = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()
    assert sign_payload(body, "whsec") == expected


def test_mask_secret():
    assert mask_secret("abcdefghijkl") == "********ijkl"
    assert mask_secret("short") == "********"
