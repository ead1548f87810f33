"""HTTP client for vendor REST APIs.

This module keeps HTTP communication apart from the adapters' translation
logic. Each adapter owns one ``VendorHTTPClient`` configured with its base
URL and auth scheme.
"""

from typing import Any, Callable, Dict, Iterator, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from loguru import logger

from emailops.core.constants import MAX_PAGES, REQUEST_TIMEOUT_SECONDS, HTTPMethod
from emailops.core.exceptions import TransportError
from shared.utils.logging import sanitize_log_data

TRANSPORT_RETRIES = 2
TRANSPORT_BACKOFF_FACTOR = 0.5


def create_session() -> requests.Session:
    """Create a requests session that retries idempotent calls on 5xx.

    429 is not retried here; it surfaces to the adapter as a rate limit.
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=TRANSPORT_RETRIES,
        backoff_factor=TRANSPORT_BACKOFF_FACTOR,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["HEAD", "GET", "OPTIONS"],
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    return session


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class VendorHTTPClient:
    """JSON-over-HTTP client with pluggable auth and one-shot token refresh.

    This client handles:
    - Auth header injection from a callable, re-evaluated per request
    - A single refresh-and-retry on 401 when a refresh callable is given
    - TransportError for every non-2xx response and network failure
    - Request logging with credentials redacted
    """

    def __init__(
        self,
        base_url: str,
        auth_headers: Optional[Callable[[], Dict[str, str]]] = None,
        refresh: Optional[Callable[[], None]] = None,
        auth: Optional[Any] = None,
        default_headers: Optional[Dict[str, str]] = None,
        session: Optional[Any] = None,
        timeout: int = REQUEST_TIMEOUT_SECONDS,
    ):
        """Initialize the HTTP client.

        Args:
            base_url: Root URL; relative paths are joined onto it
            auth_headers: Returns the auth headers for the current credentials
            refresh: Renews the credentials; enables the 401 retry
            auth: requests auth object (e.g. HTTP basic) passed on every call
            default_headers: Extra headers sent on every call
            session: Injected session, mainly for tests
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self._auth_headers = auth_headers
        self._refresh = refresh
        self._auth = auth
        self._default_headers = default_headers or {}
        self._session = session if session is not None else create_session()
        self.timeout = timeout

    def build_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path:
            return self.base_url
        return f"{self.base_url}/{path.lstrip('/')}"

    def _build_headers(self, additional_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        headers.update(self._default_headers)
        if self._auth_headers:
            headers.update(self._auth_headers())
        if additional_headers:
            headers.update(additional_headers)
        return headers

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Any:
        return self.request(HTTPMethod.GET.value, path, params=params, **kwargs)

    def post(self, path: str, json: Optional[Any] = None, **kwargs: Any) -> Any:
        return self.request(HTTPMethod.POST.value, path, json=json, **kwargs)

    def put(self, path: str, json: Optional[Any] = None, **kwargs: Any) -> Any:
        return self.request(HTTPMethod.PUT.value, path, json=json, **kwargs)

    def patch(self, path: str, json: Optional[Any] = None, **kwargs: Any) -> Any:
        return self.request(HTTPMethod.PATCH.value, path, json=json, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Any:
        return self.request(HTTPMethod.DELETE.value, path, **kwargs)

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        _refreshed: bool = False,
    ) -> Any:
        """Execute a request and decode the JSON body.

        Args:
            method: HTTP method
            path: Path relative to ``base_url`` or an absolute URL
            params: Query parameters
            json: JSON body
            headers: Additional headers

        Returns:
            Decoded JSON, or an empty dict for empty bodies (204)

        Raises:
            TransportError: For non-2xx responses and network failures
        """
        url = self.build_url(path)
        logger.debug(f"{method} {url}")
        if params:
            logger.debug(f"Params: {sanitize_log_data(params)}")

        try:
            response = self._session.request(
                method=method,
                url=url,
                params=params,
                json=json,
                headers=self._build_headers(headers),
                auth=self._auth,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request timeout after {self.timeout}s: {e}")
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Connection error: {e}")

        status_code = response.status_code

        if status_code == 401 and self._refresh is not None and not _refreshed:
            logger.info("Access token rejected, refreshing...")
            self._refresh()
            return self.request(method, path, params=params, json=json, headers=headers, _refreshed=True)

        if status_code >= 400:
            payload = self._decode(response)
            raise TransportError(
                f"{method} {url} returned HTTP {status_code}",
                status_code=status_code,
                response_body=(response.text or "")[:500],
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                payload=payload,
            )

        if status_code == 204 or not response.content:
            return {}

        payload = self._decode(response)
        if payload is None:
            raise TransportError(
                "Invalid JSON in response",
                status_code=status_code,
                response_body=(response.text or "")[:500],
            )
        return payload

    @staticmethod
    def _decode(response: Any) -> Optional[Any]:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def iter_cursor_pages(
        self,
        path: str,
        params: Optional[Dict[str, Any]],
        next_url: Callable[[Any], Optional[str]],
        max_pages: int = MAX_PAGES,
    ) -> Iterator[Any]:
        """Yield response pages following a vendor "next" link.

        Stops when the link is absent, repeats a URL already fetched, or
        ``max_pages`` pages were read.

        Args:
            path: First page path
            params: Query parameters for the first page only
            next_url: Extracts the next URL from a response
            max_pages: Hard upper bound on requests
        """
        seen = set()
        url: Optional[str] = path
        current_params = params
        pages = 0

        while url and pages < max_pages:
            response = self.get(url, params=current_params)
            pages += 1
            seen.add(url)
            yield response

            url = next_url(response)
            current_params = None
            if url in seen:
                logger.warning(f"Pagination cursor did not advance, stopping at page {pages}")
                break

        if url and pages >= max_pages:
            logger.warning(f"Stopped pagination after {max_pages} pages")

    def fetch_cursor_page(
        self,
        path: str,
        params: Optional[Dict[str, Any]],
        next_url: Callable[[Any], Optional[str]],
        page: int,
    ) -> Dict[str, Any]:
        """Walk a cursor-paginated endpoint forward to the 1-indexed ``page``.

        Returns an empty dict when the vendor runs out of pages first.
        """
        page = min(max(page, 1), MAX_PAGES)
        for current, response in enumerate(
            self.iter_cursor_pages(path, params, next_url, max_pages=page), start=1
        ):
            if current == page:
                return response
        return {}
