"""Credenciales MTN MoMo persistidas: API user, API key y tokens por producto.

El registro activo de ``MTNUser`` guarda un token de collection y otro de
disbursement, cada uno con su propia expiración. Se refrescan por separado
cuando faltan o vencen dentro de ``Config.TOKEN_REFRESH_BUFFER`` (5 min).
"""

import logging
import time
import uuid
from typing import Any, Dict, Optional

from ..config import Config
from ..db import SessionLocal
from ..errors import ProviderError
from ..models import MTNUser
from ..providers.mtn import MTNClient
from ..utils import isoformat, utcnow
from .client_credentials import expiry_from, token_is_fresh


logger = logging.getLogger(__name__)

PRODUCTS = ("collection", "disbursement")
PROVISIONING_DELAY = 0.5  # segundos entre pasos del sandbox


class MTNAuthService:
    def __init__(self, client: Optional[MTNClient] = None):
        self.client = client or MTNClient()
        self.subscription_keys = Config.mtn_subscription_keys()
        self.callback_host = Config.MTN_PROVIDER_CALLBACK_HOST
        self.refresh_buffer = Config.TOKEN_REFRESH_BUFFER

    def _key_for(self, product: str) -> Optional[str]:
        if product == "disbursement":
            return self.subscription_keys.get("disbursements")
        return self.subscription_keys.get("collections")

    def _active_user(self) -> Optional[MTNUser]:
        return SessionLocal.query(MTNUser).filter_by(is_active=True).order_by(MTNUser.created_at.desc()).first()

    def _create_token(self, product: str, api_user: str, api_key: str) -> Dict[str, Any]:
        logger.info("Requesting MTN %s token", product)
        return self.client.create_token(product, api_user, api_key, self._key_for(product))

    def initialize_user(self) -> MTNUser:
        """Devuelve el usuario MTN activo con tokens vigentes, creándolo si no existe."""
        user = self._active_user()
        if user is None:
            logger.info("No active MTN user, creating one")
            return self._create_user()
        self.refresh_tokens_if_needed(user)
        return user

    def _create_user(self) -> MTNUser:
        if Config.MTN_API_USER and Config.MTN_API_KEY:
            api_user, api_key = Config.MTN_API_USER, Config.MTN_API_KEY
        else:
            # sandbox: el propio servicio provisiona el API user
            api_user = str(uuid.uuid4())
            logger.info("Provisioning MTN API user %s", api_user)
            self.client.create_api_user(api_user, self._key_for("collection"), self.callback_host)
            time.sleep(PROVISIONING_DELAY)
            api_key = self.client.create_api_key(api_user, self._key_for("collection"))
            time.sleep(PROVISIONING_DELAY)

        collection = self._create_token("collection", api_user, api_key)
        time.sleep(PROVISIONING_DELAY)
        disbursement = self._create_token("disbursement", api_user, api_key)

        now = utcnow()
        user = MTNUser(
            x_reference_id=api_user,
            api_key=api_key,
            provider_callback_host=self.callback_host,
            collection_token=collection["access_token"],
            collection_token_expires_at=expiry_from(collection.get("expires_in"), now),
            disbursement_token=disbursement["access_token"],
            disbursement_token_expires_at=expiry_from(disbursement.get("expires_in"), now),
            subscription_keys=self.subscription_keys,
            extra={},
        )
        SessionLocal.add(user)
        SessionLocal.commit()
        logger.info("MTN user %s created", api_user)
        return user

    def refresh_tokens_if_needed(self, user: MTNUser) -> MTNUser:
        changed = False
        for product in PRODUCTS:
            token = getattr(user, f"{product}_token")
            expires_at = getattr(user, f"{product}_token_expires_at")
            if token_is_fresh(token, expires_at, self.refresh_buffer):
                continue
            logger.info("MTN %s token missing or expiring, refreshing", product)
            data = self._create_token(product, user.x_reference_id, user.api_key)
            setattr(user, f"{product}_token", data["access_token"])
            setattr(user, f"{product}_token_expires_at", expiry_from(data.get("expires_in")))
            changed = True
        if changed:
            SessionLocal.commit()
        return user

    def get_user(self) -> MTNUser:
        return self.initialize_user()

    def get_collection_token(self) -> str:
        return self.initialize_user().collection_token

    def get_disbursement_token(self) -> str:
        return self.initialize_user().disbursement_token

    def token_for(self, product: str) -> str:
        if product == "disbursement":
            return self.get_disbursement_token()
        return self.get_collection_token()

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
        deleted = SessionLocal.query(MTNUser).delete()
        SessionLocal.commit()
        logger.info("MTN users reset (%d removed)", deleted)
        return deleted

    def get_user_status(self) -> Dict[str, Any]:
        user = self._active_user()
        if user is None:
            return {"exists": False, "message": "No MTN user found"}
        return {"exists": True, **user.to_dict()}

    def test_token(self, product: str, token: str) -> Dict[str, Any]:
        try:
            data = self.client.get_balance(product, token, self._key_for(product), Config.MTN_TARGET_ENVIRONMENT)
        except ProviderError as e:
            return {"success": False, "status": e.provider_status, "error": e.message}
        return {"success": True, "status": 200, "data": data}

    def test_connectivity(self) -> Dict[str, Any]:
        try:
            user = self.initialize_user()
        except ProviderError as e:
            logger.error("MTN connectivity test failed: %s", e.message)
            return {"success": False, "error": e.message, "timestamp": isoformat(utcnow())}
        return {
            "success": True,
            "collection": self.test_token("collection", user.collection_token),
            "disbursement": self.test_token("disbursement", user.disbursement_token),
            "timestamp": isoformat(utcnow()),
        }
