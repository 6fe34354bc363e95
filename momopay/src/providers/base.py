import logging
from typing import Any, Dict, Iterable, Optional

import requests

from ..errors import ProviderError
from ..utils import fixed_retry


logger = logging.getLogger(__name__)


class _RetryableError(Exception):
    def __init__(self, error: ProviderError):
        super().__init__(error.message)
        self.error = error


def parse_body(resp: requests.Response) -> Any:
    text = resp.text or ""
    if not text.strip():
        return {}
    try:
        return resp.json()
    except ValueError:
        return {"raw": text}


class ProviderClient:
    """Cliente HTTP base para las APIs de dinero móvil.

    Aplica timeout y un reintento fijo: errores de red, timeouts y respuestas
    5xx se reintentan; las 4xx se devuelven como ``ProviderError`` sin reintento.
    """

    name = "base"

    def __init__(self, base_url: str, timeout_ms: int = 10000, max_retries: int = 3, retry_delay_ms: int = 1000):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout_ms / 1000.0
        self.max_retries = max_retries
        self.retry_delay = retry_delay_ms / 1000.0

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        expected: Iterable[int] = (200,),
        auth: Any = None,
        error_prefix: str = "",
    ) -> requests.Response:
        url = self._url(path)
        expected = tuple(expected)
        prefix = error_prefix or f"{self.name} {method} {path}"

        def _do():
            try:
                resp = requests.request(
                    method,
                    url,
                    headers=headers,
                    json=json,
                    params=params,
                    auth=auth,
                    timeout=self.timeout,
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                raise _RetryableError(ProviderError(f"{prefix} failed: {exc}")) from exc
            if resp.status_code in expected:
                return resp
            body = parse_body(resp)
            error = ProviderError(f"{prefix} failed: {resp.status_code} {body}", provider_status=resp.status_code, body=body)
            if resp.status_code >= 500:
                raise _RetryableError(error)
            raise error

        try:
            return fixed_retry(_do, max_tries=self.max_retries, delay=self.retry_delay, retry_on=(_RetryableError,))
        except _RetryableError as exc:
            logger.error("%s: giving up after %d attempts", prefix, self.max_retries)
            raise exc.error from None
