"""Credential encryption."""

from emailops.security.cipher import CredentialCipher, EncryptedPayload

__all__ = ["CredentialCipher", "EncryptedPayload"]
