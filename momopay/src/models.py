"""Modelos persistidos: credenciales de proveedores, pagos, suscripciones y callbacks."""

import uuid
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text

from .db import Base
from .utils import add_months, isoformat, utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Códigos de estado de transacción que envía Airtel
AIRTEL_STATUS_DESCRIPTIONS = {
    "TS": "Transaction Success",
    "TF": "Transaction Failed",
    "TA": "Transaction Ambiguous",
    "TIP": "Transaction In Progress",
    "TE": "Transaction Expired",
}

AIRTEL_STATUS_MAP = {
    "TS": PaymentStatus.SUCCESSFUL,
    "TF": PaymentStatus.FAILED,
    "TE": PaymentStatus.CANCELLED,
    "TA": PaymentStatus.PENDING,
    "TIP": PaymentStatus.PENDING,
}


def status_from_provider(value: Optional[str]) -> Optional[PaymentStatus]:
    """Traduce un estado de MTN o un código de Airtel al enum local."""
    if not value:
        return None
    value = str(value).upper()
    if value in AIRTEL_STATUS_MAP:
        return AIRTEL_STATUS_MAP[value]
    try:
        return PaymentStatus(value)
    except ValueError:
        return None


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class UsageStatsMixin:
    total_transactions = Column(Integer, default=0, nullable=False)
    successful_transactions = Column(Integer, default=0, nullable=False)
    failed_transactions = Column(Integer, default=0, nullable=False)
    last_used_at = Column(DateTime)

    def increment_usage(self, success: bool = True) -> None:
        self.total_transactions = (self.total_transactions or 0) + 1
        if success:
            self.successful_transactions = (self.successful_transactions or 0) + 1
        else:
            self.failed_transactions = (self.failed_transactions or 0) + 1
        self.last_used_at = utcnow()

    @property
    def usage_stats(self) -> Dict[str, Any]:
        return {
            "total_transactions": self.total_transactions or 0,
            "successful_transactions": self.successful_transactions or 0,
            "failed_transactions": self.failed_transactions or 0,
            "last_used_at": isoformat(self.last_used_at),
        }


def _token_valid(token: Optional[str], expires_at) -> bool:
    return bool(token and expires_at and expires_at > utcnow())


class MTNUser(TimestampMixin, UsageStatsMixin, Base):
    __tablename__ = "mtn_users"

    id = Column(String(36), primary_key=True, default=_uuid)
    x_reference_id = Column(String(64), unique=True, nullable=False, index=True)
    api_key = Column(String(128), nullable=False)
    provider_callback_host = Column(String(255))

    collection_token = Column(Text)
    collection_token_expires_at = Column(DateTime)
    disbursement_token = Column(Text)
    disbursement_token_expires_at = Column(DateTime)

    subscription_keys = Column(JSON, default=dict)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    default_currency = Column(String(8), default="EUR")
    extra = Column("metadata", JSON, default=dict)

    @property
    def collection_token_valid(self) -> bool:
        return _token_valid(self.collection_token, self.collection_token_expires_at)

    @property
    def disbursement_token_valid(self) -> bool:
        return _token_valid(self.disbursement_token, self.disbursement_token_expires_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "x_reference_id": self.x_reference_id,
            "is_active": self.is_active,
            "has_collection_token": bool(self.collection_token),
            "has_disbursement_token": bool(self.disbursement_token),
            "collection_token_valid": self.collection_token_valid,
            "disbursement_token_valid": self.disbursement_token_valid,
            "collection_token_expires_at": isoformat(self.collection_token_expires_at),
            "disbursement_token_expires_at": isoformat(self.disbursement_token_expires_at),
            "usage_stats": self.usage_stats,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class AirtelUser(TimestampMixin, UsageStatsMixin, Base):
    __tablename__ = "airtel_users"

    id = Column(String(36), primary_key=True, default=_uuid)
    client_id = Column(String(128), unique=True, nullable=False, index=True)
    access_token = Column(Text, nullable=False)
    token_expires_at = Column(DateTime, nullable=False)
    token_type = Column(String(32), default="Bearer")
    scope = Column(String(255))
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    default_currency = Column(String(8), default="RWF")
    extra = Column("metadata", JSON, default=dict)

    @property
    def token_valid(self) -> bool:
        return _token_valid(self.access_token, self.token_expires_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "is_active": self.is_active,
            "has_access_token": bool(self.access_token),
            "token_valid": self.token_valid,
            "token_type": self.token_type,
            "token_expires_at": isoformat(self.token_expires_at),
            "usage_stats": self.usage_stats,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_uuid)
    # X-Reference-Id enviado a MTN; identifica la transacción en el proveedor
    x_reference_id = Column(String(64), unique=True, nullable=False, index=True)
    api_user_id = Column(String(64))

    transaction_type = Column(String(32), nullable=False, index=True)  # collection | disbursement
    transaction_sub_type = Column(String(32), nullable=False)  # request_to_pay | transfer | refund

    amount = Column(Float, nullable=False)
    currency = Column(String(8), nullable=False)
    external_id = Column(String(128), nullable=False, index=True)

    payer_party_id_type = Column(String(16))
    payer_party_id = Column(String(128))
    payee_party_id_type = Column(String(16))
    payee_party_id = Column(String(128))
    payer_message = Column(String(160))
    payee_note = Column(String(160))
    reference_id_to_refund = Column(String(64))

    status = Column(String(16), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    mtn_status = Column(String(16))
    mtn_response = Column(JSON)
    mtn_error = Column(JSON)

    processed_at = Column(DateTime)
    completed_at = Column(DateTime)
    failed_at = Column(DateTime)

    service_type = Column(String(32), nullable=False)  # collections | disbursements
    subscription_key = Column(String(128))
    extra = Column("metadata", JSON, default=dict)

    @property
    def payer(self) -> Optional[Dict[str, str]]:
        if not self.payer_party_id:
            return None
        return {"partyIdType": self.payer_party_id_type, "partyId": self.payer_party_id}

    @property
    def payee(self) -> Optional[Dict[str, str]]:
        if not self.payee_party_id:
            return None
        return {"partyIdType": self.payee_party_id_type, "partyId": self.payee_party_id}

    def apply_status(self, status: PaymentStatus, response: Any = None) -> None:
        """Sobrescribe el estado con lo que reporta el proveedor."""
        self.status = status.value
        self.mtn_status = status.value
        if response is not None:
            self.mtn_response = response
        now = utcnow()
        if status == PaymentStatus.SUCCESSFUL:
            self.completed_at = now
            self.failed_at = None
        elif status == PaymentStatus.FAILED:
            self.failed_at = now
            self.completed_at = None
        elif status == PaymentStatus.CANCELLED:
            self.completed_at = now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "x_reference_id": self.x_reference_id,
            "transaction_type": self.transaction_type,
            "transaction_sub_type": self.transaction_sub_type,
            "amount": self.amount,
            "currency": self.currency,
            "external_id": self.external_id,
            "payer": self.payer,
            "payee": self.payee,
            "payer_message": self.payer_message,
            "payee_note": self.payee_note,
            "reference_id_to_refund": self.reference_id_to_refund,
            "status": self.status,
            "mtn_status": self.mtn_status,
            "processed_at": isoformat(self.processed_at),
            "completed_at": isoformat(self.completed_at),
            "failed_at": isoformat(self.failed_at),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class Subscription(TimestampMixin, Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(8), default="RWF", nullable=False)
    number_of_months = Column(Integer, nullable=False)
    payment_channel = Column(String(16), nullable=False, index=True)  # MTN | AIRTEL
    msisdn = Column(String(32), nullable=False)

    transaction_id = Column(String(64), unique=True, index=True)
    airtel_money_id = Column(String(64), index=True)
    mtn_reference_id = Column(String(64), index=True)

    status = Column(String(16), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    airtel_status = Column(String(8))
    mtn_status = Column(String(16))

    start_date = Column(DateTime)
    end_date = Column(DateTime)

    airtel_response = Column(JSON)
    airtel_error = Column(JSON)
    mtn_response = Column(JSON)
    mtn_error = Column(JSON)

    processed_at = Column(DateTime)
    completed_at = Column(DateTime)
    extra = Column("metadata", JSON, default=dict)

    @property
    def duration(self) -> int:
        if self.start_date and self.end_date:
            months = (self.end_date.year - self.start_date.year) * 12 + self.end_date.month - self.start_date.month
            return max(months, 0)
        return self.number_of_months

    def apply_status(self, status: PaymentStatus) -> None:
        self.status = status.value
        now = utcnow()
        if status == PaymentStatus.SUCCESSFUL:
            self.processed_at = now
            if not self.start_date:
                self.start_date = now
            self.end_date = add_months(self.start_date, self.number_of_months)
        elif status in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            self.completed_at = now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "currency": self.currency,
            "number_of_months": self.number_of_months,
            "payment_channel": self.payment_channel,
            "msisdn": self.msisdn,
            "transaction_id": self.transaction_id,
            "airtel_money_id": self.airtel_money_id,
            "mtn_reference_id": self.mtn_reference_id,
            "status": self.status,
            "airtel_status": self.airtel_status,
            "mtn_status": self.mtn_status,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
            "duration": self.duration,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class MTNCallback(TimestampMixin, Base):
    __tablename__ = "mtn_callbacks"

    id = Column(String(36), primary_key=True, default=_uuid)
    financial_transaction_id = Column(String(64), index=True)
    external_id = Column(String(128), nullable=False, index=True)
    amount = Column(String(32))
    currency = Column(String(8))
    status = Column(String(16), index=True)
    payee_party_id_type = Column(String(16))
    payee_party_id = Column(String(128))
    payee_note = Column(String(255))
    payer_message = Column(String(255))
    callback_data = Column(JSON, nullable=False)

    processed = Column(Boolean, default=False, nullable=False, index=True)
    processed_at = Column(DateTime)
    processing_error = Column(Text)
    ip_address = Column(String(64))
    user_agent = Column(String(255))

    def mark_processed(self) -> None:
        self.processed = True
        self.processed_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "financial_transaction_id": self.financial_transaction_id,
            "external_id": self.external_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "payee_note": self.payee_note,
            "payer_message": self.payer_message,
            "processed": self.processed,
            "processed_at": isoformat(self.processed_at),
            "processing_error": self.processing_error,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": isoformat(self.created_at),
        }


class AirtelCallback(TimestampMixin, Base):
    __tablename__ = "airtel_callbacks"

    id = Column(String(36), primary_key=True, default=_uuid)
    transaction_id = Column(String(128), nullable=False, index=True)
    airtel_money_id = Column(String(128), nullable=False, index=True)
    status_code = Column(String(8), nullable=False, index=True)
    message = Column(Text, default="")
    callback_data = Column(JSON, nullable=False)

    processed = Column(Boolean, default=False, nullable=False, index=True)
    processed_at = Column(DateTime)
    processing_error = Column(Text)
    ip_address = Column(String(64))
    user_agent = Column(String(255))

    @property
    def status_description(self) -> str:
        return AIRTEL_STATUS_DESCRIPTIONS.get(self.status_code, "Unknown")

    def mark_processed(self) -> None:
        self.processed = True
        self.processed_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "airtel_money_id": self.airtel_money_id,
            "status_code": self.status_code,
            "status_description": self.status_description,
            "message": self.message,
            "processed": self.processed,
            "processed_at": isoformat(self.processed_at),
            "processing_error": self.processing_error,
            "callback_data": self.callback_data,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
