"""HTTP client for the storefront catalog/cart backend used by chat tools.

Wraps ``httpx.AsyncClient`` with:
- base URL + API prefix construction
- static Bearer token auth
- retry with exponential backoff (network / 5xx errors)
- circuit breaker: fail fast after N consecutive failures
- request timing logs
- connection-pool lifecycle tied to FastAPI lifespan
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from errors.exceptions import StorefrontError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BASE_DELAY = 0.5  # seconds, doubles each attempt
CIRCUIT_OPEN_THRESHOLD = 5
CIRCUIT_RESET_TIMEOUT = 60  # seconds


class CircuitOpenError(StorefrontError):
    """Raised while the circuit breaker considers the storefront unavailable."""

    def __init__(self, url: str = "") -> None:
        super().__init__(503, "circuit breaker open, storefront unavailable", url=url)


class StorefrontClient:
    """Async HTTP client for the storefront REST API."""

    def __init__(
        self,
        base_url: str,
        api_prefix: str = "",
        api_token: str = "",
        timeout: float = 15,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ) -> None:
        self._base_url = f"{base_url.rstrip('/')}{api_prefix}"
        self._api_token = api_token
        self._timeout = timeout
        self._transport = transport
        self._retry_base_delay = retry_base_delay
        self._http: httpx.AsyncClient | None = None

        self._consecutive_failures = 0
        self._circuit_opened_at: float | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> StorefrontClient:
        return cls(
            base_url=settings.storefront_base_url,
            api_prefix=settings.storefront_api_prefix,
            api_token=settings.storefront_api_token,
            timeout=settings.storefront_timeout,
        )

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        if self._http is not None:
            return
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=headers,
            transport=self._transport,
            limits=httpx.Limits(
                max_connections=30,
                max_keepalive_connections=15,
                keepalive_expiry=30,
            ),
        )
        logger.info("StorefrontClient started — base_url=%s", self._base_url)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.info("StorefrontClient closed")

    # -- public API ----------------------------------------------------------

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET with retry; raises :class:`StorefrontError` on 4xx."""
        return await self._request_with_retry("GET", path, params=params)

    async def post(self, path: str, json_body: dict[str, Any] | None = None) -> Any:
        return await self._request_with_retry("POST", path, json_body=json_body)

    async def put(self, path: str, json_body: dict[str, Any] | None = None) -> Any:
        return await self._request_with_retry("PUT", path, json_body=json_body)

    # -- circuit breaker -----------------------------------------------------

    @property
    def circuit_open(self) -> bool:
        if self._consecutive_failures < CIRCUIT_OPEN_THRESHOLD:
            return False
        if self._circuit_opened_at is not None:
            if time.monotonic() - self._circuit_opened_at >= CIRCUIT_RESET_TIMEOUT:
                logger.info("Circuit breaker half-open — attempting probe request")
                return False
        return True

    def _record_success(self) -> None:
        if self._consecutive_failures > 0:
            logger.info(
                "Storefront recovered after %d consecutive failures",
                self._consecutive_failures,
            )
        self._consecutive_failures = 0
        self._circuit_opened_at = None

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= CIRCUIT_OPEN_THRESHOLD and self._circuit_opened_at is None:
            self._circuit_opened_at = time.monotonic()
            logger.warning(
                "Circuit breaker OPEN — %d consecutive failures, will retry after %ds",
                self._consecutive_failures,
                CIRCUIT_RESET_TIMEOUT,
            )

    # -- retry logic ---------------------------------------------------------

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        """Retry transport errors and 5xx with exponential backoff; 4xx raise at once."""
        if self.circuit_open:
            raise CircuitOpenError(url=f"{self._base_url}{path}")

        client = self._ensure_started()
        last_exc: Exception | None = None

        for attempt in range(1, MAX_RETRIES + 1):
            t0 = time.monotonic()
            try:
                response = await client.request(method, path, params=params, json=json_body)
            except httpx.TransportError as exc:
                elapsed_ms = (time.monotonic() - t0) * 1000
                self._record_failure()
                last_exc = exc
                logger.warning(
                    "%s %s → network error (%.0fms): %s [attempt %d/%d]",
                    method, path, elapsed_ms, exc, attempt, MAX_RETRIES,
                )
                if attempt < MAX_RETRIES:
                    await asyncio.sleep(self._retry_base_delay * (2 ** (attempt - 1)))
                    continue
                break

            elapsed_ms = (time.monotonic() - t0) * 1000
            logger.info("%s %s → %d (%.0fms)", method, path, response.status_code, elapsed_ms)

            if 400 <= response.status_code < 500:
                self._record_success()  # server is alive
                raise StorefrontError(
                    status_code=response.status_code,
                    detail=response.text[:500] if response.text else f"HTTP {response.status_code}",
                    url=str(response.url),
                )

            if response.status_code >= 500:
                self._record_failure()
                last_exc = StorefrontError(
                    status_code=response.status_code,
                    detail=response.text[:200] if response.text else "",
                    url=str(response.url),
                )
                if attempt < MAX_RETRIES:
                    delay = self._retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        "%s %s → 5xx, retry %d/%d in %.1fs",
                        method, path, attempt, MAX_RETRIES, delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise last_exc

            self._record_success()
            if not response.text:
                return {}
            return response.json()

        raise StorefrontError(
            status_code=503,
            detail=f"storefront unreachable: {last_exc}",
            url=f"{self._base_url}{path}",
        ) from last_exc

    def _ensure_started(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError("StorefrontClient not started — call await client.start() first")
        return self._http
