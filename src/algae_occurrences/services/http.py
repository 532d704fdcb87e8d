"""
HTTP transports with retry, backoff and a fallback path.

Two request paths reach the GBIF API:

- ``RetryTransport`` (primary): an ``httpx.AsyncClient`` wrapped in an
  explicit retry budget with exponential backoff.  Connection errors,
  timeouts and 429/502/503/504 responses are retried; anything else is
  returned straight away.
- ``FallbackTransport``: a blocking ``requests.Session`` (see
  ``create_session``) run in a worker thread.  Tried once the primary path
  has used up its retries on a network/timeout failure, i.e. when the primary
  path looks unreachable.  Its failure is final for that request.

Neither raises for transport problems: both return a ``TransportResult``
whose ``error`` says what went wrong, so callers can tell "GBIF said no"
apart from "GBIF could not be reached".

Usage::

    transport = RetryTransport(API_BASE, fallback=FallbackTransport(API_BASE))
    result = await transport.get("species/match", {"name": "Ulva lactuca"})
    if result.ok:
        print(result.data["usageKey"])
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

USER_AGENT = "algae-occurrences/0.1 (+https://www.gbif.org/developer/summary)"

DEFAULT_TIMEOUT = 10.0  # seconds, per request
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF = 0.5  # seconds before the first retry; doubles each time

#: Statuses that mean "try again later" rather than "no".
RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})

#: Retry strategy for the blocking fallback session.
DEFAULT_RETRY = Retry(
    total=2,
    backoff_factor=1,  # 0s, 1s between retries
    status_forcelist=sorted(RETRYABLE_STATUSES),
    allowed_methods=["GET", "HEAD", "OPTIONS"],
    raise_on_status=False,  # status errors become TransportResult errors
)


# =============================================================================
# Results
# =============================================================================


class FailureKind(StrEnum):
    """What kind of transport failure happened."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    DECODE = "decode"


class TransportError(Exception):
    """A request that produced no usable response."""

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.url = url

    @property
    def unreachable(self) -> bool:
        """True when the server could not be reached at all."""
        return self.kind in (FailureKind.NETWORK, FailureKind.TIMEOUT)

    @property
    def retryable(self) -> bool:
        return self.unreachable or self.status_code in RETRYABLE_STATUSES

    @property
    def not_found(self) -> bool:
        return self.kind == FailureKind.HTTP_STATUS and self.status_code == 404

    def __repr__(self) -> str:
        return f"TransportError({self.kind.value}, {str(self)!r}, status_code={self.status_code})"


@dataclass
class TransportResult:
    """Outcome of one logical GET, after retries and fallback."""

    data: Any = None
    status_code: int | None = None
    error: TransportError | None = None
    attempts: int = 1
    via_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the decoded body, or raise the ``TransportError``."""
        if self.error is not None:
            raise self.error
        return self.data


def encode_params(params: dict[str, Any] | None) -> dict[str, Any]:
    """Drop None values and spell booleans the way the GBIF API expects."""
    encoded: dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        encoded[key] = str(value).lower() if isinstance(value, bool) else value
    return encoded


def _join(base_url: str, endpoint: str) -> str:
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


# =============================================================================
# Blocking session (fallback path)
# =============================================================================


def create_session(
    retry: Retry | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> requests.Session:
    """
    Build a ``requests.Session`` with retry adapter mounted.

    Args:
        retry: Custom retry strategy (defaults to ``DEFAULT_RETRY``).
        timeout: Default timeout applied to every request.
    """
    s = requests.Session()
    adapter = HTTPAdapter(max_retries=retry or DEFAULT_RETRY)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    s.headers["User-Agent"] = USER_AGENT

    # Inject a default timeout so callers don't need to pass ``timeout=``.
    _original_send = s.send

    def _send_with_timeout(
        prepared: requests.PreparedRequest, **kwargs: object
    ) -> requests.Response:
        kwargs.setdefault("timeout", timeout)
        return _original_send(prepared, **kwargs)  # type: ignore[arg-type]

    s.send = _send_with_timeout  # type: ignore[method-assign]
    return s


class FallbackTransport:
    """Secondary request path: blocking ``requests`` session in a worker thread."""

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url
        self.session = session or create_session(timeout=timeout)

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> TransportResult:
        return await asyncio.to_thread(self._get_sync, endpoint, encode_params(params))

    def _get_sync(self, endpoint: str, params: dict[str, Any]) -> TransportResult:
        url = _join(self.base_url, endpoint)
        try:
            resp = self.session.get(url, params=params)
        except requests.Timeout as e:
            return TransportResult(error=TransportError(FailureKind.TIMEOUT, str(e), url=url))
        except requests.RequestException as e:
            return TransportResult(error=TransportError(FailureKind.NETWORK, str(e), url=url))

        if resp.status_code >= 400:
            error = TransportError(
                FailureKind.HTTP_STATUS,
                f"HTTP {resp.status_code} from {url}",
                status_code=resp.status_code,
                url=url,
            )
            return TransportResult(status_code=resp.status_code, error=error)
        try:
            data = resp.json()
        except ValueError as e:
            error = TransportError(FailureKind.DECODE, f"Invalid JSON from {url}: {e}", url=url)
            return TransportResult(status_code=resp.status_code, error=error)
        return TransportResult(data=data, status_code=resp.status_code)

    def close(self) -> None:
        self.session.close()


# =============================================================================
# Async client (primary path)
# =============================================================================


class RetryTransport:
    """Async GET with an explicit retry budget and exponential backoff."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        backoff: float = DEFAULT_BACKOFF,
        fallback: FallbackTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.retries = retries
        self.backoff = backoff
        self.fallback = fallback
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> TransportResult:
        """
        GET ``endpoint`` relative to the base URL.

        Retries retryable failures up to ``retries`` times, sleeping
        ``backoff``, ``2 * backoff``, ``4 * backoff``... in between.  When the
        budget runs out on a network/timeout failure and a fallback is
        configured, the fallback gets one go.
        """
        url = _join(self.base_url, endpoint)
        query = encode_params(params)
        delay = self.backoff
        budget = self.retries
        attempts = 0

        while True:
            attempts += 1
            result = await self._attempt(url, query)
            if result.error is None or not result.error.retryable or budget <= 0:
                break
            logger.info(
                "Retrying %s in %.2fs after %s (%d retries left)",
                endpoint,
                delay,
                result.error.kind.value,
                budget,
            )
            await asyncio.sleep(delay)
            delay *= 2
            budget -= 1

        result.attempts = attempts
        if result.error is not None and result.error.unreachable and self.fallback is not None:
            logger.warning("GBIF unreachable for %s, trying fallback path: %s", endpoint, result.error)
            fallback_result = await self.fallback.get(endpoint, params)
            fallback_result.attempts = attempts + 1
            fallback_result.via_fallback = True
            if fallback_result.error is not None:
                logger.error("Fallback request failed for %s: %s", endpoint, fallback_result.error)
            return fallback_result
        return result

    async def _attempt(self, url: str, params: dict[str, Any]) -> TransportResult:
        try:
            resp = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            return TransportResult(error=TransportError(FailureKind.TIMEOUT, str(e) or "timeout", url=url))
        except httpx.TransportError as e:
            return TransportResult(error=TransportError(FailureKind.NETWORK, str(e) or repr(e), url=url))

        if resp.status_code >= 400:
            error = TransportError(
                FailureKind.HTTP_STATUS,
                f"HTTP {resp.status_code} from {url}",
                status_code=resp.status_code,
                url=url,
            )
            return TransportResult(status_code=resp.status_code, error=error)
        try:
            data = resp.json()
        except ValueError as e:
            error = TransportError(FailureKind.DECODE, f"Invalid JSON from {url}: {e}", url=url)
            return TransportResult(status_code=resp.status_code, error=error)
        return TransportResult(data=data, status_code=resp.status_code)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
        if self.fallback is not None:
            self.fallback.close()
