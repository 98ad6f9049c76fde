from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from typing import Any, Dict, List, Optional
from .config import settings
from .exceptions import VaultError
import base64
import hashlib
import hmac
import json
import secrets

API_KEY_DISPLAY_LENGTH = 12


def derive_fernet_key(secret: str) -> bytes:
    key = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key)


def get_encryption_keys() -> List[bytes]:
    """Primary key first, then the keys still accepted for decryption"""
    primary = settings.CREDENTIALS_ENCRYPTION_KEY
    keys = [primary.encode() if primary else derive_fernet_key(settings.SECRET_KEY)]
    keys.extend(k.encode() for k in settings.previous_encryption_keys)
    return keys


class CredentialVault:
    """
    Authenticated encryption of provider/webhook credentials at rest.

    Credentials are JSON objects; the stored form is a Fernet token
    (AES-128-CBC + HMAC-SHA256). New blobs are always encrypted with the
    first key; any configured key may decrypt.
    """

    def __init__(self, keys: Optional[List[bytes]] = None):
        keys = keys or get_encryption_keys()
        self._fernet = MultiFernet([Fernet(k) for k in keys])

    def encrypt(self, credentials: Optional[Dict[str, Any]]) -> str:
        data = json.dumps(credentials or {}, sort_keys=True).encode()
        return self._fernet.encrypt(data).decode()

    def decrypt(self, blob: Optional[str]) -> Dict[str, Any]:
        if not blob:
            return {}
        try:
            data = self._fernet.decrypt(blob.encode())
        except InvalidToken as e:
            raise VaultError("Stored credentials could not be decrypted") from e
        return json.loads(data)

    def rotate(self, blob: str) -> str:
        """Re-encrypt a blob under the primary key"""
        try:
            return self._fernet.rotate(blob.encode()).decode()
        except InvalidToken as e:
            raise VaultError("Stored credentials could not be decrypted") from e


_vault: Optional[CredentialVault] = None


def get_vault() -> CredentialVault:
    global _vault
    if _vault is None:
        _vault = CredentialVault()
    return _vault


def generate_api_key(prefix: Optional[str] = None) -> str:
    return (prefix if prefix is not None else settings.API_KEY_PREFIX) + secrets.token_hex(32)


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode()).hexdigest()


def display_prefix(api_key: str) -> str:
    return api_key[:API_KEY_DISPLAY_LENGTH]


def sign_payload(body: bytes, secret: str) -> str:
    """HMAC-SHA256 signature sent with webhook deliveries"""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def mask_secret(value: str) -> str:
    if not value or len(value) < 8:
        return "********"
    return f"********{value[-4:]}"
