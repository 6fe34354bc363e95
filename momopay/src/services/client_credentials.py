"""Caché de tokens de corta vida para los flujos client credentials.

Dos formas de uso:
    - ``token_is_fresh`` para tokens persistidos (MTNUser / AirtelUser);
    - ``ClientCredentials`` para tokens que viven solo en memoria del proceso.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional, Tuple

from ..utils import utcnow


def token_is_fresh(token: Optional[str], expires_at: Optional[datetime], buffer_seconds: int, now: Optional[datetime] = None) -> bool:
    """True si el token existe y no vence dentro del margen ``buffer_seconds``."""
    if not token or not expires_at:
        return False
    now = now or utcnow()
    return expires_at - timedelta(seconds=buffer_seconds) > now


def expiry_from(expires_in, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(seconds=int(expires_in or 3600))


class ClientCredentials(ABC):
    # sin lock: dos refrescos concurrentes piden dos tokens
    def __init__(self, client_id: str, client_secret: str, refresh_buffer: int = 30):
        if not client_id or not client_secret:
            raise RuntimeError("Client credentials require client_id and client_secret")
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_buffer = refresh_buffer
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    def token(self) -> str:
        now = time.time()
        if self._token and now < self._expires_at - self.refresh_buffer:
            return self._token
        value, expires_in = self._fetch_token()
        if not value:
            raise RuntimeError("Client credentials response did not return an access token")
        self._token = value
        self._expires_at = now + (expires_in or 3600)
        return self._token

    def reset(self) -> None:
        self._token = None
        self._expires_at = 0.0

    @abstractmethod
    def _fetch_token(self) -> Tuple[Optional[str], int]:
        """Return a tuple (access_token, expires_in)."""
