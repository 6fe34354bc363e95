"""Pagos MTN genéricos: request-to-pay (collection), transfer y refund (disbursement).

Cada operación crea primero el ``Payment`` en PENDING, luego llama a MTN con
el token del producto correspondiente y guarda la respuesta. Si el proveedor
falla, el pago queda FAILED con el error y la excepción se propaga.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from ..config import Config
from ..db import SessionLocal
from ..errors import NotFoundError, ProviderError, ValidationError
from ..models import Payment, PaymentStatus, status_from_provider
from ..providers.mtn import MTNClient
from ..utils import utcnow
from .mtn_auth import MTNAuthService


logger = logging.getLogger(__name__)

# operación -> (producto MTN, kind del endpoint, parte que paga o recibe)
OPERATIONS = {
    "request_to_pay": ("collection", "requesttopay", "payer"),
    "transfer": ("disbursement", "transfer", "payee"),
    "refund": ("disbursement", "refund", None),
}
STATUS_KIND = {"request_to_pay": "requesttopay", "transfer": "transfer", "refund": "refund"}


def _parse_amount(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_payment_request(operation: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Valida y normaliza el cuerpo de una operación; lanza ``ValidationError``."""
    data = {} if data is None else data
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    errors: List[str] = []
    amount = _parse_amount(data.get("amount"))
    currency = data.get("currency") or Config.PAYMENT_DEFAULT_CURRENCY
    max_len = Config.PAYMENT_MAX_MESSAGE_LENGTH

    if amount is None or amount <= 0:
        errors.append("Amount must be greater than 0")
    elif amount > Config.PAYMENT_MAX_AMOUNT:
        errors.append(f"Amount must not exceed {Config.PAYMENT_MAX_AMOUNT}")
    if currency not in Config.PAYMENT_SUPPORTED_CURRENCIES:
        errors.append(f"Currency must be one of: {', '.join(Config.PAYMENT_SUPPORTED_CURRENCIES)}")
    if not data.get("external_id"):
        errors.append("External ID is required")

    out: Dict[str, Any] = {
        "amount": amount,
        "currency": currency,
        "external_id": str(data.get("external_id") or ""),
        "payer_message": data.get("payer_message") or "",
        "payee_note": data.get("payee_note") or "",
    }

    party_field = OPERATIONS[operation][2]
    if party_field:
        party = data.get(party_field) or {}
        if not isinstance(party, dict):
            errors.append(f"{party_field.capitalize()} must be an object")
            party = {}
        party_type = party.get("party_id_type") or "MSISDN"
        if not party.get("party_id"):
            errors.append(f"{party_field.capitalize()} party ID is required")
        if party_type not in Config.PARTY_ID_TYPES:
            errors.append(f"Invalid {party_field} party ID type")
        out[party_field] = {"partyIdType": party_type, "partyId": str(party.get("party_id") or "")}

    if operation == "refund":
        if not data.get("reference_id_to_refund"):
            errors.append("Reference ID to refund is required")
        out["reference_id_to_refund"] = data.get("reference_id_to_refund")

    if len(out["payer_message"]) > max_len:
        errors.append(f"Payer message must be {max_len} characters or less")
    if len(out["payee_note"]) > max_len:
        errors.append(f"Payee note must be {max_len} characters or less")

    if errors:
        raise ValidationError(errors)
    return out


def _parse_date(value) -> Optional[datetime]:
    if not value or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", ""))
    except ValueError as e:
        raise ValidationError(f"Invalid date format: {value}") from e


class PaymentService:
    def __init__(self, auth: Optional[MTNAuthService] = None, client: Optional[MTNClient] = None):
        self.client = client or MTNClient()
        self.auth = auth or MTNAuthService(client=self.client)
        self.target_environment = Config.MTN_TARGET_ENVIRONMENT

    def _subscription_key(self, product: str) -> Optional[str]:
        keys = Config.mtn_subscription_keys()
        return keys["disbursements"] if product == "disbursement" else keys["collections"]

    def _submit(self, operation: str, data: Dict[str, Any], callback_url: Optional[str] = None) -> Payment:
        product, kind, party_field = OPERATIONS[operation]
        dto = validate_payment_request(operation, data)
        user = self.auth.initialize_user()

        payment = Payment(
            x_reference_id=str(uuid.uuid4()),
            api_user_id=user.x_reference_id,
            transaction_type=product,
            transaction_sub_type=operation,
            amount=dto["amount"],
            currency=dto["currency"],
            external_id=dto["external_id"],
            payer_message=dto["payer_message"],
            payee_note=dto["payee_note"],
            reference_id_to_refund=dto.get("reference_id_to_refund"),
            status=PaymentStatus.PENDING.value,
            service_type=f"{product}s",
            subscription_key=self._subscription_key(product),
            extra={},
        )
        if party_field:
            setattr(payment, f"{party_field}_party_id_type", dto[party_field]["partyIdType"])
            setattr(payment, f"{party_field}_party_id", dto[party_field]["partyId"])
        SessionLocal.add(payment)
        SessionLocal.commit()

        body = {
            "amount": str(dto["amount"]),
            "currency": dto["currency"],
            "externalId": dto["external_id"],
            "payerMessage": dto["payer_message"],
            "payeeNote": dto["payee_note"],
        }
        if party_field:
            body[party_field] = dto[party_field]
        if operation == "refund":
            body["referenceIdToRefund"] = dto["reference_id_to_refund"]

        token = getattr(user, f"{product}_token")
        try:
            result = self.client.submit(
                product,
                kind,
                token,
                self._subscription_key(product),
                payment.x_reference_id,
                body,
                self.target_environment,
                callback_url=callback_url,
            )
        except ProviderError as e:
            logger.error("MTN %s %s failed: %s", operation, payment.x_reference_id, e.message)
            payment.apply_status(PaymentStatus.FAILED)
            payment.mtn_error = {"message": e.message, "status": e.provider_status, "body": e.body}
            SessionLocal.commit()
            self.auth.update_usage_stats(False)
            raise

        payment.mtn_response = {"status": result["status"], "referenceId": result["reference_id"]}
        payment.status = PaymentStatus.PENDING.value
        payment.processed_at = utcnow()
        SessionLocal.commit()
        self.auth.update_usage_stats(True)
        logger.info("MTN %s %s accepted", operation, payment.x_reference_id)
        return payment

    def request_to_pay(self, data: Dict[str, Any], callback_url: Optional[str] = None) -> Payment:
        return self._submit("request_to_pay", data, callback_url)

    def transfer(self, data: Dict[str, Any], callback_url: Optional[str] = None) -> Payment:
        return self._submit("transfer", data, callback_url)

    def refund(self, data: Dict[str, Any], callback_url: Optional[str] = None) -> Payment:
        return self._submit("refund", data, callback_url)

    def get_payment_by_id(self, payment_id: str) -> Payment:
        payment = SessionLocal.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    def get_payment_status(self, payment_id: str) -> Payment:
        """Consulta a MTN el estado del pago y lo sobrescribe localmente."""
        payment = self.get_payment_by_id(payment_id)
        product = payment.transaction_type
        user = self.auth.initialize_user()
        data = self.client.get_status(
            product,
            STATUS_KIND[payment.transaction_sub_type],
            getattr(user, f"{product}_token"),
            self._subscription_key(product),
            payment.x_reference_id,
            self.target_environment,
        )
        payment.mtn_status = data.get("status")
        payment.mtn_response = data
        status = status_from_provider(data.get("status"))
        if status in (PaymentStatus.SUCCESSFUL, PaymentStatus.FAILED):
            payment.status = status.value
            payment.completed_at = utcnow()
        SessionLocal.commit()
        return payment

    def get_account_balance(self, service_type: str = "collection") -> Dict[str, Any]:
        if service_type not in ("collection", "disbursement"):
            raise ValidationError("Service type must be collection or disbursement")
        token = self.auth.token_for(service_type)
        return self.client.get_balance(service_type, token, self._subscription_key(service_type), self.target_environment)

    def get_all_payments(self, filters: Optional[Dict[str, Any]] = None) -> List[Payment]:
        filters = filters or {}
        query = SessionLocal.query(Payment)
        if filters.get("transaction_type"):
            query = query.filter(Payment.transaction_type == filters["transaction_type"])
        if filters.get("status"):
            query = query.filter(Payment.status == filters["status"])
        date_from, date_to = _parse_date(filters.get("date_from")), _parse_date(filters.get("date_to"))
        if date_from and date_to:
            query = query.filter(Payment.created_at >= date_from, Payment.created_at <= date_to)
        limit = int(filters.get("limit") or 50)
        skip = int(filters.get("skip") or 0)
        return query.order_by(Payment.created_at.desc()).offset(skip).limit(limit).all()

    def get_service_stats(self) -> Dict[str, Any]:
        counts = dict(SessionLocal.query(Payment.status, func.count(Payment.id)).group_by(Payment.status).all())
        successful_amount = (
            SessionLocal.query(func.coalesce(func.sum(Payment.amount), 0.0))
            .filter(Payment.status == PaymentStatus.SUCCESSFUL.value)
            .scalar()
        )
        return {
            "total_payments": sum(counts.values()),
            "by_status": {s.value: counts.get(s.value, 0) for s in PaymentStatus},
            "total_successful_amount": float(successful_amount or 0),
            "mtn_user": self.auth.get_user_stats(),
        }
