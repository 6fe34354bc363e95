"""Token OAuth2 (client credentials) de Airtel Money persistido en ``AirtelUser``."""

import logging
from typing import Any, Dict, Optional

from ..config import Config
from ..db import SessionLocal
from ..errors import ConfigurationError, ProviderError
from ..models import AirtelUser
from ..providers.airtel import AirtelClient
from ..utils import isoformat, utcnow
from . import airtel_encryption
from .client_credentials import expiry_from, token_is_fresh


logger = logging.getLogger(__name__)


class AirtelAuthService:
    def __init__(self, client: Optional[AirtelClient] = None):
        self.client = client or AirtelClient()
        self.client_id = Config.AIRTEL_CLIENT_ID
        self.client_secret = Config.AIRTEL_CLIENT_SECRET
        self.refresh_buffer = Config.TOKEN_REFRESH_BUFFER

    def _active_user(self) -> Optional[AirtelUser]:
        return SessionLocal.query(AirtelUser).filter_by(is_active=True).order_by(AirtelUser.created_at.desc()).first()

    def get_access_token(self) -> Dict[str, Any]:
        """Pide un token nuevo al endpoint OAuth2 (sin caché)."""
        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                "Airtel client credentials (AIRTEL_CLIENT_ID and AIRTEL_CLIENT_SECRET) are not configured"
            )
        logger.info("Requesting Airtel access token")
        return self.client.oauth_token(self.client_id, self.client_secret)

    def initialize_user(self) -> AirtelUser:
        user = self._active_user()
        if user is None:
            logger.info("No active Airtel user, creating one")
            data = self.get_access_token()
            user = AirtelUser(
                client_id=str(self.client_id),
                access_token=data["access_token"],
                token_expires_at=expiry_from(data.get("expires_in")),
                token_type=data.get("token_type") or "Bearer",
                scope=data.get("scope"),
                extra={},
            )
            SessionLocal.add(user)
            SessionLocal.commit()
            return user
        return self.refresh_token_if_needed(user)

    def refresh_token_if_needed(self, user: AirtelUser) -> AirtelUser:
        if token_is_fresh(user.access_token, user.token_expires_at, self.refresh_buffer):
            return user
        logger.info("Airtel access token missing or expiring, refreshing")
        data = self.get_access_token()
        user.access_token = data["access_token"]
        user.token_expires_at = expiry_from(data.get("expires_in"))
        user.token_type = data.get("token_type") or user.token_type
        user.scope = data.get("scope") or user.scope
        SessionLocal.commit()
        return user

    def get_user(self) -> AirtelUser:
        return self.initialize_user()

    def get_valid_access_token(self) -> str:
        return self.initialize_user().access_token

    def update_usage_stats(self, success: bool = True) -> None:
        user = self._active_user()
        if user is None:
            return
        user.increment_usage(success)
        SessionLocal.commit()

    def get_user_stats(self) -> Optional[Dict[str, Any]]:
        user = self._active_user()
        return user.usage_stats if user else None

    def reset_user(self) -> int:
        deleted = SessionLocal.query(AirtelUser).delete()
        SessionLocal.commit()
        logger.info("Airtel users reset (%d removed)", deleted)
        return deleted

    def get_user_status(self) -> Dict[str, Any]:
        user = self._active_user()
        if user is None:
            return {"exists": False, "message": "No Airtel user found"}
        return {"exists": True, **user.to_dict()}

    def test_token(self) -> Dict[str, Any]:
        user = self._active_user()
        if user is None or not user.token_valid:
            return {"success": False, "error": "Token is invalid or expired"}
        return {"success": True, "message": "Token is valid", "expires_at": isoformat(user.token_expires_at)}

    def test_connectivity(self) -> Dict[str, Any]:
        try:
            self.initialize_user()
        except (ProviderError, ConfigurationError) as e:
            logger.error("Airtel connectivity test failed: %s", e.message)
            return {"success": False, "error": e.message, "timestamp": isoformat(utcnow())}
        return {"success": True, "token": self.test_token(), "timestamp": isoformat(utcnow())}

    def get_encryption_keys(self, country: Optional[str] = None, currency: Optional[str] = None) -> Dict[str, Any]:
        token = self.get_valid_access_token()
        return self.client.encryption_keys(token, country or Config.AIRTEL_COUNTRY, currency or Config.AIRTEL_CURRENCY)

    def encrypt_pin(self, pin: str, country: Optional[str] = None, currency: Optional[str] = None) -> Dict[str, Any]:
        keys = self.get_encryption_keys(country, currency)
        if not airtel_encryption.is_key_valid(keys):
            logger.warning("Airtel encryption key is expired or missing valid_upto")
        return airtel_encryption.encrypt_pin_with_key(pin, keys)
