"""Operaciones de pago de Airtel Money: USSD push, refund, enquiry y balance."""

import base64
import hashlib
import json
import logging
import os
from typing import Any, Dict, Optional

from ..config import Config
from ..errors import PaymentError, ProviderError, ValidationError
from ..providers.airtel import AirtelClient
from .airtel_auth import AirtelAuthService


logger = logging.getLogger(__name__)

COLLECTION_SUCCESS = "DP00800001001"
COLLECTION_ERRORS = {
    "DP00800001000": "Ambiguous - The transaction is still processing. Please check transaction status.",
    "DP00800001001": "Success - Transaction is successful.",
    "DP00800001002": "Incorrect Pin - Incorrect pin has been entered.",
    "DP00800001003": "Exceeds withdrawal amount limit - The User has exceeded their wallet allowed transaction limit.",
    "DP00800001004": "Invalid Amount - The amount User is trying to transfer is less than the minimum amount allowed.",
    "DP00800001005": "Transaction ID is invalid - User didn't enter the pin.",
    "DP00800001006": "In process - Transaction in pending state. Please check after sometime.",
    "DP00800001007": "Not enough balance - User wallet does not have enough money to cover the payable amount.",
    "DP00800001008": "Refused - The transaction was refused.",
    "DP00800001010": "Transaction not permitted to Payee - Payee is already initiated for churn or barred or not registered on Airtel Money platform.",
    "DP00800001024": "Transaction Timed Out - The transaction was timed out.",
    "DP00800001025": "Transaction Not Found - The transaction was not found.",
    "DP00800001026": "Forbidden - X-signature and payload did not match.",
    "DP00800001029": "Transaction Expired - Transaction has been expired.",
}

BALANCE_SUCCESS = "DP02100000001"
BALANCE_ERRORS = {
    "DP02100000000": "Balance enquiry failed",
    "DP02100000002": "User Not Found - Invalid MSISDN provided as input",
}
WALLET_TYPES = ("DISB", "COLL", "CASHIN", "CASHOUT")


def collection_error_message(code: Optional[str], default: str = "") -> str:
    return COLLECTION_ERRORS.get(code or "", default or "Transaction failed")


def _status_block(body: Any) -> Dict[str, Any]:
    if isinstance(body, dict) and isinstance(body.get("status"), dict):
        return body["status"]
    return {}


def sign_request(body: Dict[str, Any]) -> Dict[str, str]:
    """Cabeceras x-signature / x-key.

    x-signature es el SHA-256 del cuerpo JSON en base64 y x-key una clave
    aleatoria de 32 bytes en base64.
    """
    # TODO: reemplazar por AES del cuerpo + RSA de la clave AES cuando Airtel publique el esquema
    digest = hashlib.sha256(json.dumps(body, separators=(",", ":")).encode("utf-8")).digest()
    return {
        "x-signature": base64.b64encode(digest).decode("ascii"),
        "x-key": base64.b64encode(os.urandom(32)).decode("ascii"),
    }


class AirtelPaymentService:
    def __init__(self, auth: Optional[AirtelAuthService] = None, client: Optional[AirtelClient] = None):
        self.client = client or AirtelClient()
        self.auth = auth or AirtelAuthService(client=self.client)
        self.default_msisdn = Config.AIRTEL_MSISDN
        self.sign_requests = Config.AIRTEL_SIGN_REQUESTS

    def _signature_headers(self, body: Dict[str, Any], country: str, currency: str) -> Dict[str, str]:
        if not self.sign_requests:
            return {}
        try:
            self.auth.get_encryption_keys(country, currency)
        except ProviderError as e:
            logger.warning("Encryption keys retrieval failed, proceeding without signature: %s", e.message)
            return {}
        return sign_request(body)

    def _raise_collection_error(self, error: ProviderError, prefix: str):
        status = _status_block(error.body)
        code = status.get("response_code")
        if code:
            raise ProviderError(
                collection_error_message(code, status.get("message")),
                provider_status=error.provider_status,
                body=error.body,
            ) from error
        raise ProviderError(f"{prefix} failed: {status.get('message') or error.message}", error.provider_status, error.body) from error

    def ussd_push_payment(self, payment_data: Dict[str, Any], country: Optional[str] = None, currency: Optional[str] = None) -> Dict[str, Any]:
        """Pide al suscriptor que apruebe el cobro en su teléfono (USSD push)."""
        country = country or Config.AIRTEL_COUNTRY
        currency = currency or Config.AIRTEL_CURRENCY
        if not isinstance(payment_data, dict):
            raise ValidationError("Payment data must be a JSON object")
        subscriber = payment_data.get("subscriber")
        transaction = payment_data.get("transaction")
        if not payment_data.get("reference") or not subscriber or not transaction:
            raise ValidationError("Missing required fields: reference, subscriber, transaction")
        if not isinstance(subscriber, dict) or not isinstance(transaction, dict):
            raise ValidationError("subscriber and transaction must be objects")
        if not subscriber.get("country"):
            raise ValidationError("Missing required subscriber field: country")
        msisdn = subscriber.get("msisdn") or self.default_msisdn
        if not msisdn:
            raise ValidationError("Missing required subscriber field: msisdn (provide in payload or set AIRTEL_MSISDN)")
        if not transaction.get("amount") or not transaction.get("id"):
            raise ValidationError("Missing required transaction fields: amount, id")

        body = {
            "reference": payment_data["reference"],
            "subscriber": {
                "country": subscriber["country"],
                "currency": subscriber.get("currency") or currency,
                "msisdn": msisdn,
            },
            "transaction": {"amount": transaction["amount"], "id": transaction["id"]},
        }
        # pagos transfronterizos
        for field in ("country", "currency"):
            if transaction.get(field):
                body["transaction"][field] = transaction[field]

        token = self.auth.get_valid_access_token()
        headers = self._signature_headers(body, country, currency)
        try:
            data = self.client.ussd_push(token, body, country, currency, extra_headers=headers)
        except ProviderError as e:
            self.auth.update_usage_stats(False)
            self._raise_collection_error(e, "USSD Push payment")

        code = _status_block(data).get("response_code")
        if code and code != COLLECTION_SUCCESS:
            self.auth.update_usage_stats(False)
            raise ProviderError(collection_error_message(code, _status_block(data).get("message")), body=data)
        self.auth.update_usage_stats(True)
        logger.info("Airtel USSD push %s initiated", transaction["id"])
        return data

    def refund(self, refund_data: Dict[str, Any], country: Optional[str] = None, currency: Optional[str] = None) -> Dict[str, Any]:
        country = country or Config.AIRTEL_COUNTRY
        currency = currency or Config.AIRTEL_CURRENCY
        if not isinstance(refund_data, dict) or not refund_data.get("airtel_money_id"):
            raise ValidationError("Missing required field: airtel_money_id")
        body = {"transaction": {"airtel_money_id": refund_data["airtel_money_id"]}}
        token = self.auth.get_valid_access_token()
        headers = self._signature_headers(body, country, currency)
        try:
            data = self.client.refund(token, body, country, currency, extra_headers=headers)
        except ProviderError as e:
            self._raise_collection_error(e, "Refund")

        status = _status_block(data)
        code = status.get("response_code")
        if code and not status.get("success") and code != COLLECTION_SUCCESS:
            raise ProviderError(collection_error_message(code, status.get("message")), body=data)
        logger.info("Airtel refund for %s processed", refund_data["airtel_money_id"])
        return data

    def transaction_enquiry(self, transaction_id: str, country: Optional[str] = None, currency: Optional[str] = None) -> Dict[str, Any]:
        if not transaction_id:
            raise ValidationError("Transaction ID is required")
        token = self.auth.get_valid_access_token()
        try:
            return self.client.transaction(token, transaction_id, country or Config.AIRTEL_COUNTRY, currency or Config.AIRTEL_CURRENCY)
        except ProviderError as e:
            message = _status_block(e.body).get("message") or e.message
            raise ProviderError(f"Transaction enquiry failed: {message}", e.provider_status, e.body) from e

    def get_balance(self, wallet_type: str = "COLL", country: Optional[str] = None, currency: Optional[str] = None) -> Dict[str, Any]:
        if wallet_type not in WALLET_TYPES:
            raise ValidationError(f"Invalid wallet type. Must be one of: {', '.join(WALLET_TYPES)}")
        token = self.auth.get_valid_access_token()
        try:
            data = self.client.balance(token, wallet_type, country or Config.AIRTEL_COUNTRY, currency or Config.AIRTEL_CURRENCY)
        except ProviderError as e:
            status = _status_block(e.body)
            message = BALANCE_ERRORS.get(status.get("response_code"), status.get("message") or e.message)
            raise ProviderError(message, e.provider_status, e.body) from e

        status = _status_block(data)
        code = status.get("response_code")
        if code in BALANCE_ERRORS:
            raise ProviderError(BALANCE_ERRORS[code], body=data)
        if status and code != BALANCE_SUCCESS and not status.get("success"):
            raise PaymentError(status.get("message") or "Balance enquiry failed", details=data)
        return data
