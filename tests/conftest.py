"""Shared fixtures: fixed cipher key, fake vendor HTTP session, in-memory store."""

import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from emailops.core.constants import CampaignStatus, ClientStatus
from emailops.domain.models import (
    Client,
    ConnectionTestResult,
    Credential,
    Metrics,
    PaginatedResult,
    PaginationOptions,
    PlatformCampaign,
    PlatformList,
)
from emailops.jobs.processors.context import ProcessorContext
from emailops.repository.memory import InMemoryMirrorRepository
from emailops.security.cipher import CredentialCipher

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int = 200, payload: Any = None, headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.content = json.dumps(payload).encode("utf-8") if payload is not None else b""
        self.text = self.content.decode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """Routes requests by method and URL suffix to queued responses.

    The last response of a route repeats once the others are used up.
    Every call is recorded in ``calls``.
    """

    def __init__(self):
        self.routes: List[Dict[str, Any]] = []
        self.calls: List[Dict[str, Any]] = []

    def add(self, method: str, url_suffix: str, *responses: FakeResponse) -> "FakeSession":
        self.routes.append({"method": method, "suffix": url_suffix, "responses": list(responses)})
        return self

    def request(self, method, url, params=None, json=None, headers=None, auth=None, timeout=None, data=None):
        self.calls.append(
            {"method": method, "url": url, "params": params, "json": json, "headers": headers, "data": data}
        )
        candidates = [r for r in self.routes if r["method"] == method and url.endswith(r["suffix"])]
        if not candidates:
            return FakeResponse(404, {"message": f"No route for {method} {url}"})
        route = max(candidates, key=lambda r: len(r["suffix"]))
        responses = route["responses"]
        return responses.pop(0) if len(responses) > 1 else responses[0]

    def calls_to(self, url_suffix: str, method: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            c
            for c in self.calls
            if c["url"].endswith(url_suffix) and (method is None or c["method"] == method)
        ]


class FakeAdapter:
    """Scriptable adapter used by processor tests."""

    platform = "Fake"

    def __init__(self, client_id: str, credentials: Dict[str, Any]):
        self.client_id = client_id
        self.credentials = credentials
        self.campaigns: List[PlatformCampaign] = []
        self.lists: List[PlatformList] = []
        self.metrics: Dict[str, Metrics] = {}
        self.connection = ConnectionTestResult(success=True, message="ok")
        self.fail_with: Optional[Exception] = None
        self.refreshed_credentials: Optional[Dict[str, Any]] = None
        self.before_fetch: Optional[Callable[[], None]] = None

    def test_connection(self) -> ConnectionTestResult:
        return self.connection

    def get_campaigns(self, options: Optional[PaginationOptions] = None) -> PaginatedResult[PlatformCampaign]:
        if self.before_fetch:
            self.before_fetch()
        if self.fail_with:
            raise self.fail_with
        options = options or PaginationOptions()
        items = self.campaigns[: options.limit]
        return PaginatedResult(items=items, total=len(self.campaigns), page=1, limit=options.limit, has_more=False)

    def get_lists(self) -> List[PlatformList]:
        return list(self.lists)

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        if external_id not in self.metrics:
            raise KeyError(external_id)
        return self.metrics[external_id]


class FakeAdapterFactory:
    """Hands out one FakeAdapter per client and remembers them."""

    def __init__(self):
        self.adapters: Dict[str, FakeAdapter] = {}

    def for_client(self, client_id: str) -> FakeAdapter:
        if client_id not in self.adapters:
            self.adapters[client_id] = FakeAdapter(client_id, {})
        return self.adapters[client_id]

    def __call__(self, client_id: str, platform: str, credentials: Dict[str, Any]) -> FakeAdapter:
        adapter = self.for_client(client_id)
        adapter.credentials = dict(credentials)
        return adapter


@pytest.fixture
def cipher() -> CredentialCipher:
    return CredentialCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture
def repository() -> InMemoryMirrorRepository:
    return InMemoryMirrorRepository()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def adapter_factory() -> FakeAdapterFactory:
    return FakeAdapterFactory()


@pytest.fixture
def context(repository, cipher, adapter_factory) -> ProcessorContext:
    return ProcessorContext(repository, cipher, adapter_factory)


@pytest.fixture
def make_client(repository, cipher):
    """Create a client, optionally with an encrypted credential."""

    def _make(
        name: str = "Acme",
        status: ClientStatus = ClientStatus.ACTIVE,
        industry: Optional[str] = "RETAIL",
        credentials: Optional[Dict[str, Any]] = None,
    ) -> Client:
        client = repository.save_client(Client(name=name, platform="MAILCHIMP", industry=industry, status=status))
        if credentials is not None:
            payload = cipher.encrypt_credentials(credentials)
            repository.save_credential(
                Credential(
                    client_id=client.id,
                    ciphertext=payload.ciphertext,
                    iv=payload.iv,
                    auth_tag=payload.auth_tag,
                )
            )
        return client

    return _make


def platform_campaign(external_id: str, **overrides: Any) -> PlatformCampaign:
    values = {
        "external_id": external_id,
        "name": f"Campaign {external_id}",
        "status": CampaignStatus.DRAFT,
        "subject_line": f"Subject {external_id}",
    }
    values.update(overrides)
    return PlatformCampaign(**values)
