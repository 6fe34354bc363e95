from typing import Any, Dict, Optional

import requests

from ..config import Config
from ..errors import ProviderError
from .base import ProviderClient, parse_body


# producto MTN -> tipos de transacción que expone
PRODUCT_KINDS = {
    "collection": ("requesttopay",),
    "disbursement": ("transfer", "refund"),
}


class MTNClient(ProviderClient):
    """Endpoints HTTP de MTN MoMo (sandbox de provisioning, tokens, collection y disbursement)."""

    name = "mtn"

    def __init__(self, base_url: str | None = None):
        super().__init__(
            base_url or Config.MTN_BASE_URL,
            timeout_ms=Config.MTN_API_TIMEOUT,
            max_retries=Config.MTN_MAX_RETRIES,
            retry_delay_ms=Config.MTN_RETRY_DELAY,
        )

    def _bearer_headers(self, token: str, subscription_key: Optional[str], target_environment: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "X-Target-Environment": target_environment,
            "Ocp-Apim-Subscription-Key": subscription_key or "",
            "Content-Type": "application/json",
        }

    def create_api_user(self, x_reference_id: str, subscription_key: str, callback_host: str) -> Dict[str, Any]:
        headers = {
            "X-Reference-Id": x_reference_id,
            "Content-Type": "application/json",
            "Ocp-Apim-Subscription-Key": subscription_key or "",
        }
        try:
            resp = self._request(
                "POST",
                "/v1_0/apiuser",
                headers=headers,
                json={"providerCallbackHost": callback_host},
                expected=(200, 201),
                error_prefix="Create API user",
            )
        except ProviderError as exc:
            if exc.provider_status == 409:
                return {"message": "User already exists"}
            raise
        return parse_body(resp)

    def create_api_key(self, x_reference_id: str, subscription_key: str) -> str:
        resp = self._request(
            "POST",
            f"/v1_0/apiuser/{x_reference_id}/apikey",
            headers={"Content-Type": "application/json", "Ocp-Apim-Subscription-Key": subscription_key or ""},
            json={},
            expected=(200, 201),
            error_prefix="Create API key",
        )
        api_key = parse_body(resp).get("apiKey")
        if not api_key:
            raise ProviderError("Create API key failed: response did not contain apiKey")
        return api_key

    def create_token(self, product: str, api_user: str, api_key: str, subscription_key: str) -> Dict[str, Any]:
        """Intercambia usuario/clave (Basic) por un bearer token del producto."""
        resp = self._request(
            "POST",
            f"/{product}/token/",
            headers={"Content-Type": "application/json", "Ocp-Apim-Subscription-Key": subscription_key or ""},
            auth=requests.auth.HTTPBasicAuth(api_user, api_key),
            expected=(200,),
            error_prefix=f"Create {product} token",
        )
        data = parse_body(resp)
        if not data.get("access_token"):
            raise ProviderError(f"Create {product} token failed: no access_token in response", provider_status=resp.status_code, body=data)
        return data

    def submit(
        self,
        product: str,
        kind: str,
        token: str,
        subscription_key: str,
        reference_id: str,
        body: Dict[str, Any],
        target_environment: str,
        callback_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """POST de requesttopay / transfer / refund. MTN responde 202 sin cuerpo."""
        if kind not in PRODUCT_KINDS.get(product, ()):
            raise ValueError(f"{kind} is not a {product} operation")
        headers = self._bearer_headers(token, subscription_key, target_environment)
        headers["X-Reference-Id"] = reference_id
        if callback_url:
            headers["X-Callback-Url"] = callback_url
        resp = self._request(
            "POST",
            f"/{product}/v1_0/{kind}",
            headers=headers,
            json=body,
            expected=(200, 201, 202),
            error_prefix=f"MTN {kind}",
        )
        return {"status": resp.status_code, "reference_id": reference_id}

    def get_status(self, product: str, kind: str, token: str, subscription_key: str, reference_id: str, target_environment: str) -> Dict[str, Any]:
        resp = self._request(
            "GET",
            f"/{product}/v1_0/{kind}/{reference_id}",
            headers=self._bearer_headers(token, subscription_key, target_environment),
            expected=(200,),
            error_prefix=f"MTN {kind} status",
        )
        return parse_body(resp)

    def get_balance(self, product: str, token: str, subscription_key: str, target_environment: str) -> Dict[str, Any]:
        resp = self._request(
            "GET",
            f"/{product}/v1_0/account/balance",
            headers=self._bearer_headers(token, subscription_key, target_environment),
            expected=(200,),
            error_prefix=f"MTN {product} balance",
        )
        return parse_body(resp)
