"""Shared dependencies of the job processors."""

import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from loguru import logger

from emailops.adapters.factory import create_platform_adapter
from emailops.core.exceptions import NotFoundError
from emailops.core.protocols import EmailPlatformAdapter, MirrorRepository
from emailops.domain.models import Client, Credential
from emailops.security.cipher import CredentialCipher, EncryptedPayload

AdapterFactory = Callable[[str, str, Mapping[str, Any]], EmailPlatformAdapter]


class ClientLocks:
    """One re-entrant lock per client id, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = defaultdict(threading.RLock)

    @contextmanager
    def hold(self, client_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks[client_id]
        with lock:
            yield


class ProcessorContext:
    """Repository, cipher and adapter factory handed to every processor.

    Args:
        repository: Mirror store
        cipher: Credential cipher
        adapter_factory: Builds an adapter from (client_id, platform, credentials)
    """

    def __init__(
        self,
        repository: MirrorRepository,
        cipher: CredentialCipher,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        self.repository = repository
        self.cipher = cipher
        self.adapter_factory = adapter_factory or create_platform_adapter
        self.client_locks = ClientLocks()

    def require_client(self, client_id: str) -> Client:
        client = self.repository.get_client(client_id)
        if client is None:
            raise NotFoundError("Client", client_id)
        return client

    def adapter_for(self, client: Client) -> EmailPlatformAdapter:
        """Decrypt the client's credential and build its platform adapter.

        Raises:
            NotFoundError: If the client has no stored credential
            EncryptionError: If the credential cannot be decrypted
        """
        credential = self.repository.get_credential(client.id)
        if credential is None:
            raise NotFoundError("Credential", client.id)
        credentials = self.cipher.decrypt_credentials(
            EncryptedPayload(credential.ciphertext, credential.iv, credential.auth_tag)
        )
        return self.adapter_factory(client.id, client.platform, credentials)

    def persist_refreshed_credentials(self, client: Client, adapter: EmailPlatformAdapter) -> bool:
        """Re-encrypt and store tokens the adapter refreshed during the job."""
        refreshed = getattr(adapter, "refreshed_credentials", None)
        if not refreshed:
            return False
        credential = self.repository.get_credential(client.id)
        if credential is None:
            return False
        payload = self.cipher.encrypt_credentials(refreshed)
        self.repository.save_credential(
            replace(credential, ciphertext=payload.ciphertext, iv=payload.iv, auth_tag=payload.auth_tag)
        )
        logger.bind(client_id=client.id).info("Stored refreshed platform credentials")
        return True
