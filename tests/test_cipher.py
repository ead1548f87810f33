import base64
from dataclasses import replace

import pytest

from emailops.core.exceptions import ConfigurationError, EncryptionError
from emailops.security.cipher import CredentialCipher, EncryptedPayload

from tests.conftest import TEST_ENCRYPTION_KEY


def _flip_first_byte(value: str) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestKeyValidation:
    @pytest.mark.parametrize("key", [None, "", "abc", "0" * 63, "0" * 65, "g" * 64])
    def test_rejects_malformed_keys(self, key):
        with pytest.raises(ConfigurationError):
            CredentialCipher(key)

    def test_validate_key(self):
        assert CredentialCipher.validate_key(TEST_ENCRYPTION_KEY)
        assert not CredentialCipher.validate_key("xyz")

    def test_generated_key_is_usable(self):
        key = CredentialCipher.generate_key()
        assert len(key) == 64
        assert CredentialCipher(key).decrypt(CredentialCipher(key).encrypt("hi")) == "hi"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
        assert CredentialCipher.from_env().decrypt_credentials(
            CredentialCipher(TEST_ENCRYPTION_KEY).encrypt_credentials({"apiKey": "k"})
        ) == {"apiKey": "k"}


class TestEncryptDecrypt:
    def test_round_trip_credentials(self, cipher):
        creds = {"apiKey": "abc123-us6", "nested": {"token": "t"}}
        assert cipher.decrypt_credentials(cipher.encrypt_credentials(creds)) == creds

    def test_round_trip_empty_and_unicode(self, cipher):
        for text in ["", "clé secrète ✓"]:
            assert cipher.decrypt(cipher.encrypt(text)) == text

    def test_iv_and_tag_sizes(self, cipher):
        payload = cipher.encrypt("secret")
        assert len(base64.b64decode(payload.iv)) == 12
        assert len(base64.b64decode(payload.auth_tag)) == 16

    def test_fresh_iv_per_call(self, cipher):
        first = cipher.encrypt("same")
        second = cipher.encrypt("same")
        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext

    def test_payload_dict_uses_auth_tag_key(self, cipher):
        payload = cipher.encrypt("x")
        as_dict = payload.to_dict()
        assert set(as_dict) == {"ciphertext", "iv", "authTag"}
        assert EncryptedPayload.from_dict(as_dict) == payload


class TestTamperDetection:
    def test_modified_ciphertext(self, cipher):
        payload = cipher.encrypt("secret value")
        with pytest.raises(EncryptionError):
            cipher.decrypt(replace(payload, ciphertext=_flip_first_byte(payload.ciphertext)))

    def test_modified_tag(self, cipher):
        payload = cipher.encrypt("secret value")
        with pytest.raises(EncryptionError):
            cipher.decrypt(replace(payload, auth_tag=_flip_first_byte(payload.auth_tag)))

    def test_modified_iv(self, cipher):
        payload = cipher.encrypt("secret value")
        with pytest.raises(EncryptionError):
            cipher.decrypt(replace(payload, iv=_flip_first_byte(payload.iv)))

    def test_wrong_key(self, cipher):
        payload = cipher.encrypt("secret value")
        other = CredentialCipher("f" * 64)
        with pytest.raises(EncryptionError):
            other.decrypt(payload)

    def test_truncated_tag(self, cipher):
        payload = cipher.encrypt("secret value")
        short_tag = base64.b64encode(base64.b64decode(payload.auth_tag)[:8]).decode("ascii")
        with pytest.raises(EncryptionError):
            cipher.decrypt(replace(payload, auth_tag=short_tag))

    def test_invalid_base64(self, cipher):
        payload = cipher.encrypt("secret value")
        with pytest.raises(EncryptionError):
            cipher.decrypt(replace(payload, iv="not base64!!"))

    def test_non_object_credentials(self, cipher):
        with pytest.raises(EncryptionError):
            cipher.decrypt_credentials(cipher.encrypt("[1, 2, 3]"))
