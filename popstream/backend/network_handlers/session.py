from __future__ import annotations

from typing import Any, Dict, Mapping, Optional
import random
import time

import requests
from requests.adapters import HTTPAdapter

from popstream.backend.common.errors import ProviderError
from popstream.backend.common.logging import get_logger
from popstream.config import settings

log = get_logger(__name__)


# ---------------- Exceptions ----------------

class NetError(ProviderError): ...
class TimeoutError(NetError): ...
class ConnectionFailed(NetError): ...
class Unauthorized(NetError): ...
class NotFound(NetError): ...
class RateLimited(NetError): ...
class Upstream5xx(NetError): ...
class Client4xx(NetError): ...


def _map_http_error(status: int) -> NetError:
    if status == 401: return Unauthorized("401 Unauthorized")
    if status == 404: return NotFound("404 Not Found")
    if status == 429: return RateLimited("429 Too Many Requests")
    if 500 <= status < 600: return Upstream5xx(f"{status} Upstream error")

    return Client4xx(f"{status} HTTP error")

def _sleep_with_jitter(base_ms: int, attempt: int, max_ms: int, jitter_ms: int):
    backoff = min(max_ms, int((2 ** (attempt - 1)) * base_ms))
    jitter = random.randint(0, max(0, jitter_ms))
    time.sleep((backoff + jitter) / 1000.0)


_RETRYABLE = (TimeoutError, ConnectionFailed, RateLimited, Upstream5xx)


class HttpSession:
    """
    Per-service HTTP client:
      - base URL + default headers from provider settings
      - exponential backoff + jitter on transient failures
      - typed error mapping onto :class:`ProviderError`
    """

    def __init__(
        self,
        service: str,
        *,
        base_url: Optional[str] = None,
        timeout: int = 15,
        max_attempts: int = 3,
        base_backoff_ms: int = 300,
        max_backoff_ms: int = 4000,
        jitter_ms: int = 200,
    ):
        self.service = service
        self.base_url = (base_url or settings.get_base_url(service) or "").rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.base_backoff_ms = base_backoff_ms
        self.max_backoff_ms = max_backoff_ms
        self.jitter_ms = jitter_ms

        self._session = requests.Session()
        self._session.mount("http://", HTTPAdapter(pool_connections=4, pool_maxsize=8))
        self._session.mount("https://", HTTPAdapter(pool_connections=4, pool_maxsize=8))
        self._session.headers.update(settings.get_default_headers(service))

    def get_json(
        self,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._once(url, params, headers)
            except _RETRYABLE as exc:
                if attempt >= self.max_attempts:
                    log.warning("http_give_up", service=self.service, url=url, attempt=attempt, error=str(exc))
                    raise
                log.debug("http_retry", service=self.service, url=url, attempt=attempt, error=str(exc))
                _sleep_with_jitter(self.base_backoff_ms, attempt, self.max_backoff_ms, self.jitter_ms)

    def _once(self, url: str, params: Optional[Mapping[str, Any]], headers: Optional[Dict[str, str]]) -> Any:
        try:
            response = self._session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            raise TimeoutError(str(exc)) from exc
        except requests.ConnectionError as exc:
            raise ConnectionFailed(str(exc)) from exc
        if response.status_code >= 400:
            raise _map_http_error(response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise NetError(f"{self.service} returned invalid JSON") from exc

    def close(self) -> None:
        self._session.close()
