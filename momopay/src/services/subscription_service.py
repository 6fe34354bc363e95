"""Cobro de suscripciones por MTN o Airtel."""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config import Config
from ..db import SessionLocal
from ..errors import NotFoundError, PaymentError, ValidationError
from ..models import PaymentStatus, Subscription, status_from_provider
from .airtel_payment import AirtelPaymentService
from .payment_service import PaymentService


logger = logging.getLogger(__name__)

CHANNELS = ("MTN", "AIRTEL")


def _is_uuid(value: Any) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_subscription_request(data: Dict[str, Any]) -> Dict[str, Any]:
    data = {} if data is None else data
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    required = ("user_id", "amount", "number_of_months", "msisdn", "payment_channel")
    if any(not data.get(field) for field in required):
        raise ValidationError(f"Missing required fields: {', '.join(required)}")
    channel = str(data["payment_channel"]).upper()
    errors = []
    if channel not in CHANNELS:
        errors.append('Invalid payment channel. Must be "MTN" or "AIRTEL"')
    if not _is_number(data["amount"]) or data["amount"] <= 0:
        errors.append("Amount must be a positive number")
    if not isinstance(data["number_of_months"], int) or isinstance(data["number_of_months"], bool) or data["number_of_months"] < 1:
        errors.append("Number of months must be at least 1")
    if not _is_uuid(data["user_id"]):
        errors.append("Invalid user_id format. Must be a valid UUID")
    if errors:
        raise ValidationError(errors)
    return {**data, "payment_channel": channel}


class SubscriptionService:
    def __init__(self, airtel: Optional[AirtelPaymentService] = None, mtn: Optional[PaymentService] = None):
        self._airtel = airtel
        self._mtn = mtn

    @property
    def airtel(self) -> AirtelPaymentService:
        if self._airtel is None:
            self._airtel = AirtelPaymentService()
        return self._airtel

    @property
    def mtn(self) -> PaymentService:
        if self._mtn is None:
            self._mtn = PaymentService()
        return self._mtn

    def create_subscription_payment(self, data: Dict[str, Any]) -> Subscription:
        data = validate_subscription_request(data)
        channel = data["payment_channel"]
        months = data["number_of_months"]
        country = data.get("country") or Config.AIRTEL_COUNTRY
        currency = data.get("currency") or Config.AIRTEL_CURRENCY

        subscription = Subscription(
            user_id=str(data["user_id"]),
            amount=float(data["amount"]),
            currency=currency,
            number_of_months=months,
            payment_channel=channel,
            msisdn=str(data["msisdn"]),
            transaction_id=f"SUB-{uuid.uuid4()}",
            status=PaymentStatus.PENDING.value,
            extra={},
        )
        SessionLocal.add(subscription)
        SessionLocal.commit()

        try:
            if channel == "AIRTEL":
                self._pay_with_airtel(subscription, data, country, currency)
            else:
                self._pay_with_mtn(subscription, currency)
        except PaymentError as e:
            logger.error("Subscription %s payment failed: %s", subscription.transaction_id, e.message)
            error = {"message": e.message}
            if channel == "AIRTEL":
                subscription.airtel_error = error
            else:
                subscription.mtn_error = error
            subscription.apply_status(PaymentStatus.FAILED)
            SessionLocal.commit()
            raise

        SessionLocal.commit()
        return subscription

    def _pay_with_airtel(self, subscription: Subscription, data: Dict[str, Any], country: str, currency: str) -> None:
        months = subscription.number_of_months
        payment_data = {
            "reference": f"Subscription payment for {months} month(s)",
            "subscriber": {"country": country, "currency": currency, "msisdn": subscription.msisdn},
            "transaction": {"amount": data["amount"], "id": subscription.transaction_id},
        }
        if data.get("transaction_country"):
            payment_data["transaction"]["country"] = data["transaction_country"]
        if data.get("transaction_currency"):
            payment_data["transaction"]["currency"] = data["transaction_currency"]

        response = self.airtel.ussd_push_payment(payment_data, country, currency)
        subscription.airtel_response = response
        tx = ((response or {}).get("data") or {}).get("transaction") or {}
        if not tx:
            return
        subscription.airtel_status = tx.get("status")
        if tx.get("airtel_money_id"):
            subscription.airtel_money_id = str(tx["airtel_money_id"])
        status = status_from_provider(tx.get("status"))
        if status in (PaymentStatus.SUCCESSFUL, PaymentStatus.FAILED):
            subscription.apply_status(status)
        else:
            subscription.status = PaymentStatus.PENDING.value

    def _pay_with_mtn(self, subscription: Subscription, currency: str) -> None:
        months = subscription.number_of_months
        payment = self.mtn.request_to_pay({
            "amount": subscription.amount,
            "currency": currency,
            "external_id": subscription.transaction_id,
            "payer": {"party_id_type": "MSISDN", "party_id": subscription.msisdn},
            "payer_message": f"Subscription payment for {months} month(s)",
            "payee_note": f"Tsinda subscription - {months} month(s)",
        })
        subscription.mtn_response = payment.to_dict()
        subscription.mtn_reference_id = payment.x_reference_id
        subscription.mtn_status = payment.status
        status = status_from_provider(payment.status)
        if status in (PaymentStatus.SUCCESSFUL, PaymentStatus.FAILED):
            subscription.apply_status(status)
        else:
            subscription.status = PaymentStatus.PENDING.value

    def get_subscription_by_id(self, subscription_id: str) -> Subscription:
        subscription = SessionLocal.get(Subscription, subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription not found")
        return subscription

    def get_subscriptions_by_user_id(self, user_id: str) -> List[Subscription]:
        return (
            SessionLocal.query(Subscription)
            .filter_by(user_id=str(user_id))
            .order_by(Subscription.created_at.desc())
            .all()
        )

    def get_all_subscriptions(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        filters = filters or {}
        query = SessionLocal.query(Subscription)
        if filters.get("user_id"):
            query = query.filter(Subscription.user_id == str(filters["user_id"]))
        if filters.get("status"):
            query = query.filter(Subscription.status == filters["status"])
        if filters.get("date_from") and filters.get("date_to"):
            try:
                date_from = datetime.fromisoformat(str(filters["date_from"]).replace("Z", ""))
                date_to = datetime.fromisoformat(str(filters["date_to"]).replace("Z", ""))
            except ValueError as e:
                raise ValidationError("Invalid date format") from e
            query = query.filter(Subscription.created_at >= date_from, Subscription.created_at <= date_to)
        total = query.count()
        limit = int(filters.get("limit") or 50)
        skip = int(filters.get("skip") or 0)
        items = query.order_by(Subscription.created_at.desc()).offset(skip).limit(limit).all()
        return {"subscriptions": [s.to_dict() for s in items], "total": total, "limit": limit, "skip": skip}
