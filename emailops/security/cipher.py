"""Authenticated encryption of client credential bags.

Credentials are stored as ``{ciphertext, iv, authTag}`` with every part
base64 encoded. AES-256-GCM is used with a fresh 96-bit IV per call and a
128-bit tag; the tag is verified before any plaintext is returned.
"""

import base64
import binascii
import json
import os
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from loguru import logger

from emailops.core.constants import (
    ENCRYPTION_IV_BYTES,
    ENCRYPTION_KEY_BYTES,
    ENCRYPTION_TAG_BYTES,
    ENV_ENCRYPTION_KEY,
)
from emailops.core.exceptions import ConfigurationError, EncryptionError
from shared.utils.env import get_env


@dataclass(frozen=True)
class EncryptedPayload:
    """Stored form of an encrypted secret; all fields are base64 text."""

    ciphertext: str
    iv: str
    auth_tag: str

    def to_dict(self) -> Dict[str, str]:
        return {"ciphertext": self.ciphertext, "iv": self.iv, "authTag": self.auth_tag}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EncryptedPayload":
        try:
            return cls(
                ciphertext=data["ciphertext"],
                iv=data["iv"],
                auth_tag=data.get("authTag", data.get("auth_tag")),
            )
        except KeyError as e:
            raise EncryptionError(f"Encrypted payload is missing field {e}")


def _b64decode(value: Optional[str], field_name: str) -> bytes:
    if not value:
        raise EncryptionError(f"Encrypted payload field '{field_name}' is empty")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise EncryptionError(f"Encrypted payload field '{field_name}' is not valid base64: {e}")


class CredentialCipher:
    """AES-256-GCM cipher bound to a single process-wide key.

    Example:
        ```python
        cipher = CredentialCipher.from_env()
        payload = cipher.encrypt_credentials({"apiKey": "abc-us6"})
        credentials = cipher.decrypt_credentials(payload)
        ```
    """

    def __init__(self, key_hex: Optional[str]):
        """Initialize the cipher.

        Args:
            key_hex: 64 hex characters (32 bytes)

        Raises:
            ConfigurationError: If the key is missing or malformed
        """
        self._aesgcm = AESGCM(self._parse_key(key_hex))

    @staticmethod
    def _parse_key(key_hex: Optional[str]) -> bytes:
        if not key_hex:
            raise ConfigurationError(f"{ENV_ENCRYPTION_KEY} is not set")
        expected_length = ENCRYPTION_KEY_BYTES * 2
        if len(key_hex) != expected_length:
            raise ConfigurationError(
                f"{ENV_ENCRYPTION_KEY} must be {expected_length} hex characters, got {len(key_hex)}"
            )
        try:
            return bytes.fromhex(key_hex)
        except ValueError:
            raise ConfigurationError(f"{ENV_ENCRYPTION_KEY} must contain only hex characters")

    @classmethod
    def from_env(cls) -> "CredentialCipher":
        return cls(get_env(ENV_ENCRYPTION_KEY))

    @staticmethod
    def generate_key() -> str:
        """Generate a random key suitable for ``ENCRYPTION_KEY``."""
        return secrets.token_hex(ENCRYPTION_KEY_BYTES)

    @staticmethod
    def validate_key(key_hex: Optional[str]) -> bool:
        try:
            CredentialCipher._parse_key(key_hex)
        except ConfigurationError:
            return False
        return True

    def encrypt(self, plaintext: str) -> EncryptedPayload:
        """Encrypt text with a fresh random IV.

        Args:
            plaintext: Secret text

        Returns:
            EncryptedPayload with base64 ciphertext, IV and tag
        """
        iv = os.urandom(ENCRYPTION_IV_BYTES)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-ENCRYPTION_TAG_BYTES], sealed[-ENCRYPTION_TAG_BYTES:]
        return EncryptedPayload(
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
            iv=base64.b64encode(iv).decode("ascii"),
            auth_tag=base64.b64encode(tag).decode("ascii"),
        )

    def decrypt(self, payload: EncryptedPayload) -> str:
        """Verify and decrypt a payload.

        Args:
            payload: Stored ciphertext, IV and tag

        Returns:
            The original plaintext

        Raises:
            EncryptionError: On tampering, wrong key, truncation or malformed input
        """
        ciphertext = _b64decode(payload.ciphertext, "ciphertext") if payload.ciphertext else b""
        iv = _b64decode(payload.iv, "iv")
        tag = _b64decode(payload.auth_tag, "authTag")

        if len(iv) != ENCRYPTION_IV_BYTES:
            raise EncryptionError(f"IV must be {ENCRYPTION_IV_BYTES} bytes, got {len(iv)}")
        if len(tag) != ENCRYPTION_TAG_BYTES:
            raise EncryptionError(f"Auth tag must be {ENCRYPTION_TAG_BYTES} bytes, got {len(tag)}")

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            logger.warning("Credential decryption failed: authentication tag mismatch")
            raise EncryptionError("Failed to decrypt credentials: authentication failed")

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncryptionError(f"Decrypted credentials are not valid UTF-8: {e}")

    def encrypt_credentials(self, credentials: Mapping[str, Any]) -> EncryptedPayload:
        """Serialize a credential bag to JSON and encrypt it."""
        return self.encrypt(json.dumps(dict(credentials)))

    def decrypt_credentials(self, payload: EncryptedPayload) -> Dict[str, Any]:
        """Decrypt a payload produced by :meth:`encrypt_credentials`.

        Raises:
            EncryptionError: If decryption fails or the plaintext is not a JSON object
        """
        plaintext = self.decrypt(payload)
        try:
            credentials = json.loads(plaintext)
        except json.JSONDecodeError as e:
            raise EncryptionError(f"Decrypted credentials are not valid JSON: {e}")
        if not isinstance(credentials, dict):
            raise EncryptionError("Decrypted credentials must be a JSON object")
        return credentials
