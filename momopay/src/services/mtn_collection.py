"""Collection de MTN con credenciales de entorno (MTN_API_USER / MTN_API_KEY).

A diferencia de ``MTNAuthService`` este camino no persiste tokens: los guarda
en memoria del proceso y los refresca 30 s antes de que venzan.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from ..config import Config
from ..db import SessionLocal
from ..errors import ConfigurationError
from ..models import MTNUser
from ..providers.mtn import MTNClient
from .client_credentials import ClientCredentials


logger = logging.getLogger(__name__)


class MTNCollectionCredentials(ClientCredentials):
    def __init__(self, client: MTNClient, api_user: str, api_key: str, subscription_key: Optional[str]):
        super().__init__(client_id=api_user, client_secret=api_key, refresh_buffer=Config.COLLECTION_TOKEN_BUFFER)
        self.client = client
        self.subscription_key = subscription_key

    def _fetch_token(self):
        logger.info("Requesting MTN collection token for %s", self.client_id)
        data = self.client.create_token("collection", self.client_id, self.client_secret, self.subscription_key)
        return data.get("access_token"), int(data.get("expires_in") or 3600)


# (api_user, subscription_key) -> credenciales con su token en memoria
_CREDENTIALS: Dict[Tuple[str, Optional[str]], MTNCollectionCredentials] = {}


def reset_token_cache() -> None:
    _CREDENTIALS.clear()


class MTNCollectionService:
    def __init__(self, client: Optional[MTNClient] = None):
        self.client = client or MTNClient()
        self.subscription_key = Config.MTN_COLLECTION_WIDGET_KEY or Config.MTN_COLLECTIONS_KEY

    def _credentials(self) -> MTNCollectionCredentials:
        api_user, api_key = Config.MTN_API_USER, Config.MTN_API_KEY
        if not api_user or not api_key:
            raise ConfigurationError("MTN_API_USER or MTN_API_KEY not set")
        cache_key = (api_user, self.subscription_key)
        creds = _CREDENTIALS.get(cache_key)
        if creds is None or creds.client_secret != api_key:
            creds = MTNCollectionCredentials(self.client, api_user, api_key, self.subscription_key)
            _CREDENTIALS[cache_key] = creds
        creds.client = self.client
        return creds

    def get_token(self, api_user: str, api_key: str, subscription_key: Optional[str] = None) -> Dict[str, Any]:
        """Intercambio directo usuario/clave -> token, sin caché."""
        return self.client.create_token("collection", api_user, api_key, subscription_key or self.subscription_key)

    def get_valid_token(self) -> str:
        return self._credentials().token()

    def _env(self, target_environment: Optional[str]) -> str:
        return target_environment or Config.MTN_TARGET_ENVIRONMENT

    def get_account_balance(self, target_environment: Optional[str] = None) -> Dict[str, Any]:
        token = self.get_valid_token()
        return self.client.get_balance("collection", token, self.subscription_key, self._env(target_environment))

    def request_to_pay(
        self,
        reference_id: str,
        data: Dict[str, Any],
        target_environment: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        token = self.get_valid_token()
        body = {
            "amount": str(data.get("amount")),
            "currency": data.get("currency"),
            "externalId": data.get("externalId"),
            "payer": data.get("payer"),
            "payerMessage": data.get("payerMessage") or "",
            "payeeNote": data.get("payeeNote") or "",
        }
        return self.client.submit(
            "collection",
            "requesttopay",
            token,
            self.subscription_key,
            reference_id,
            body,
            self._env(target_environment),
            callback_url=callback_url or Config.MTN_CALLBACK_URL,
        )

    def get_request_to_pay_status(self, reference_id: str, target_environment: Optional[str] = None) -> Dict[str, Any]:
        token = self.get_valid_token()
        return self.client.get_status(
            "collection", "requesttopay", token, self.subscription_key, reference_id, self._env(target_environment)
        )

    def get_mtn_user(self) -> MTNUser:
        """Usuario MTN activo; si no existe se registra con las credenciales de entorno (sin tokens)."""
        user = SessionLocal.query(MTNUser).filter_by(is_active=True).order_by(MTNUser.created_at.desc()).first()
        if user is not None:
            return user
        if not Config.MTN_API_USER or not Config.MTN_API_KEY:
            raise ConfigurationError(
                "MTN user not found. Initialize the MTN user first or set MTN_API_USER and MTN_API_KEY."
            )
        keys = Config.mtn_subscription_keys()
        keys["collections"] = self.subscription_key
        user = MTNUser(
            x_reference_id=Config.MTN_API_USER,
            api_key=Config.MTN_API_KEY,
            provider_callback_host=Config.MTN_PROVIDER_CALLBACK_HOST,
            subscription_keys=keys,
            is_active=True,
            extra={},
        )
        SessionLocal.add(user)
        SessionLocal.commit()
        return user
