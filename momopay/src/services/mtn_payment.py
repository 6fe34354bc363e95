import logging
import uuid
from typing import Any, Dict, Optional

from ..config import Config
from ..db import SessionLocal
from ..errors import ProviderError, ValidationError
from ..models import Payment, PaymentStatus, status_from_provider
from ..utils import utcnow
from .mtn_collection import MTNCollectionService


logger = logging.getLogger(__name__)

PAYMENT_CURRENCY = "RWF"
PAYER_MESSAGE = "subscription"
PAYEE_NOTE = "tsinda"


def default_callback_url(callback_url: Optional[str] = None) -> Optional[str]:
    if callback_url:
        return callback_url
    if Config.MTN_CALLBACK_URL:
        return Config.MTN_CALLBACK_URL
    if Config.BASE_URL:
        return f"{Config.BASE_URL.rstrip('/')}/api/mtn-payment/callback"
    return None


class MTNPaymentService:
    """Cobro simplificado: teléfono + monto, siempre en RWF, vía collection."""

    def __init__(self, collection: Optional[MTNCollectionService] = None):
        self.collection = collection or MTNCollectionService()

    def request_payment(
        self,
        user_id: str,
        phone: str,
        amount,
        target_environment: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        errors = []
        if not user_id:
            errors.append("user_id is required")
        if not phone:
            errors.append("phone_number is required")
        try:
            if amount is None or float(amount) <= 0:
                errors.append("amount must be greater than 0")
        except (TypeError, ValueError):
            errors.append("amount must be a number")
        if errors:
            raise ValidationError(errors)

        reference_id = str(uuid.uuid4())
        payer = {"partyIdType": "MSISDN", "partyId": str(phone)}
        mtn_user = self.collection.get_mtn_user()

        payment = Payment(
            x_reference_id=reference_id,
            api_user_id=mtn_user.x_reference_id,
            transaction_type="collection",
            transaction_sub_type="request_to_pay",
            amount=float(amount),
            currency=PAYMENT_CURRENCY,
            external_id=str(user_id),
            payer_party_id_type="MSISDN",
            payer_party_id=str(phone),
            payer_message=PAYER_MESSAGE,
            payee_note=PAYEE_NOTE,
            status=PaymentStatus.PENDING.value,
            mtn_status=PaymentStatus.PENDING.value,
            service_type="collections",
            subscription_key=self.collection.subscription_key,
            extra={},
        )
        SessionLocal.add(payment)
        SessionLocal.commit()
        logger.info("Payment %s saved as PENDING (external id %s)", reference_id, user_id)

        request_data = {
            "amount": str(amount),
            "currency": PAYMENT_CURRENCY,
            "externalId": str(user_id),
            "payer": payer,
            "payerMessage": PAYER_MESSAGE,
            "payeeNote": PAYEE_NOTE,
        }
        try:
            result = self.collection.request_to_pay(
                reference_id, request_data, target_environment, default_callback_url(callback_url)
            )
        except ProviderError as e:
            payment.apply_status(PaymentStatus.FAILED)
            payment.mtn_error = {"message": e.message, "status": e.provider_status, "body": e.body}
            SessionLocal.commit()
            raise

        payment.mtn_response = {"status": result["status"], "referenceId": result["reference_id"]}
        payment.processed_at = utcnow()
        SessionLocal.commit()
        return {
            "reference_id": reference_id,
            "status": result["status"],
            "user_id": str(user_id),
            "phone_number": str(phone),
            "amount": float(amount),
            "currency": PAYMENT_CURRENCY,
            "payment_id": payment.id,
        }

    def get_payment_status(self, reference_id: str, target_environment: Optional[str] = None) -> Dict[str, Any]:
        data = self.collection.get_request_to_pay_status(reference_id, target_environment)
        payment = SessionLocal.query(Payment).filter_by(x_reference_id=reference_id).first()
        status = status_from_provider(data.get("status"))
        if payment is not None and status is not None:
            payment.apply_status(status, response=data)
            SessionLocal.commit()
        return data

    def get_account_balance(self, target_environment: Optional[str] = None) -> Dict[str, Any]:
        return self.collection.get_account_balance(target_environment)
