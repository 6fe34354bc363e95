from typing import Any, Dict, Optional

from ..config import Config
from ..errors import ProviderError
from .base import ProviderClient, parse_body


class AirtelClient(ProviderClient):
    """Endpoints HTTP de Airtel Money (OAuth2, collection, refund, enquiry, balance)."""

    name = "airtel"

    def __init__(self, base_url: str | None = None):
        super().__init__(
            base_url or Config.AIRTEL_BASE_URL,
            timeout_ms=Config.AIRTEL_API_TIMEOUT,
            max_retries=Config.AIRTEL_MAX_RETRIES,
            retry_delay_ms=Config.AIRTEL_RETRY_DELAY,
        )

    def _headers(self, token: str, country: str, currency: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Accept": "*/*",
            "Content-Type": "application/json",
            "X-Country": country,
            "X-Currency": currency,
            "Authorization": f"Bearer {token}",
        }
        headers.update(extra or {})
        return headers

    def oauth_token(self, client_id: str, client_secret: str) -> Dict[str, Any]:
        resp = self._request(
            "POST",
            "/auth/oauth2/token",
            headers={"Content-Type": "application/json", "Accept": "*/*"},
            json={
                "client_id": str(client_id),
                "client_secret": str(client_secret),
                "grant_type": "client_credentials",
            },
            expected=(200,),
            error_prefix="Airtel access token",
        )
        data = parse_body(resp)
        if not data.get("access_token"):
            raise ProviderError("Airtel access token failed: no access_token in response", provider_status=resp.status_code, body=data)
        return data

    def encryption_keys(self, token: str, country: str, currency: str) -> Dict[str, Any]:
        resp = self._request(
            "GET",
            "/v1/rsa/encryption-keys",
            headers=self._headers(token, country, currency),
            expected=(200,),
            error_prefix="Airtel encryption keys",
        )
        return parse_body(resp)

    def ussd_push(self, token: str, body: Dict[str, Any], country: str, currency: str, extra_headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        resp = self._request(
            "POST",
            "/merchant/v2/payments/",
            headers=self._headers(token, country, currency, extra_headers),
            json=body,
            expected=(200, 201, 202),
            error_prefix="USSD Push payment",
        )
        return parse_body(resp)

    def refund(self, token: str, body: Dict[str, Any], country: str, currency: str, extra_headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        resp = self._request(
            "POST",
            "/standard/v2/payments/refund",
            headers=self._headers(token, country, currency, extra_headers),
            json=body,
            expected=(200, 201, 202),
            error_prefix="Refund",
        )
        return parse_body(resp)

    def transaction(self, token: str, transaction_id: str, country: str, currency: str) -> Dict[str, Any]:
        resp = self._request(
            "GET",
            f"/standard/v1/payments/{transaction_id}",
            headers=self._headers(token, country, currency),
            expected=(200,),
            error_prefix="Transaction enquiry",
        )
        return parse_body(resp)

    def balance(self, token: str, wallet_type: str, country: str, currency: str) -> Dict[str, Any]:
        resp = self._request(
            "GET",
            "/standard/v2/users/balance",
            headers=self._headers(token, country, currency),
            params={"type": wallet_type},
            expected=(200,),
            error_prefix="Balance enquiry",
        )
        return parse_body(resp)
