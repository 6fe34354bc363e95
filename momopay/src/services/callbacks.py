"""Reconciliación de webhooks de MTN y Airtel.

Cada callback se guarda tal cual llega y después se aplica sobre el registro
local más reciente con el mismo identificador externo. El proveedor manda:
no hay máquina de estados ni detección de duplicados.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..db import SessionLocal
from ..errors import NotFoundError, ValidationError
from ..models import AirtelCallback, MTNCallback, Payment, Subscription, status_from_provider


logger = logging.getLogger(__name__)

MTN_REQUIRED = ("externalId", "status", "amount", "currency")


def _latest(model, **criteria):
    return SessionLocal.query(model).filter_by(**criteria).order_by(model.created_at.desc()).first()


def _save_failed(callback) -> None:
    """Guarda la fila de callback fallido; si la base tampoco responde solo se registra en el log."""
    try:
        SessionLocal.add(callback)
        SessionLocal.commit()
    except SQLAlchemyError:
        logger.exception("Could not store failed callback")
        SessionLocal.rollback()


class CallbackService:
    def handle_mtn_callback(self, payload: Dict[str, Any], ip: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, Any]:
        if not payload or not isinstance(payload, dict):
            raise ValidationError("Invalid callback data")
        missing = [f for f in MTN_REQUIRED if not payload.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(MTN_REQUIRED)}")

        external_id = str(payload["externalId"])
        try:
            payee = payload.get("payee") if isinstance(payload.get("payee"), dict) else {}
            callback = MTNCallback(
                financial_transaction_id=payload.get("financialTransactionId"),
                external_id=external_id,
                amount=str(payload["amount"]),
                currency=payload["currency"],
                status=payload["status"],
                payee_party_id_type=payee.get("partyIdType"),
                payee_party_id=payee.get("partyId"),
                payee_note=payload.get("payeeNote"),
                payer_message=payload.get("payerMessage"),
                callback_data=payload,
                ip_address=ip,
                user_agent=user_agent or "Unknown",
            )
            SessionLocal.add(callback)
            SessionLocal.commit()

            status = status_from_provider(payload["status"])
            payment = _latest(Payment, external_id=external_id)
            if payment is None:
                logger.warning("MTN callback for unknown external id %s", external_id)
            else:
                payment.mtn_response = payload
                if payload.get("financialTransactionId"):
                    payment.extra = {**(payment.extra or {}), "financialTransactionId": payload["financialTransactionId"]}
                if status is not None:
                    payment.apply_status(status)
                    logger.info("Payment %s updated to %s from MTN callback", payment.x_reference_id, status.value)
                else:
                    logger.warning("MTN callback with unknown status %s for %s", payload["status"], external_id)

            subscription = _latest(Subscription, transaction_id=external_id)
            if subscription is not None and status is not None:
                subscription.mtn_status = status.value
                subscription.mtn_response = payload
                subscription.apply_status(status)

            callback.mark_processed()
            SessionLocal.commit()
            return {"success": True, "callback": callback.to_dict()}
        except Exception as e:
            logger.exception("MTN callback processing failed for %s", external_id)
            SessionLocal.rollback()
            failed = MTNCallback(
                external_id=external_id,
                callback_data=payload,
                processing_error=str(e),
                ip_address=ip,
                user_agent=user_agent or "Unknown",
            )
            _save_failed(failed)
            return {"success": False, "error": str(e), "callback": failed.to_dict()}

    def handle_airtel_callback(self, payload: Dict[str, Any], ip: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, Any]:
        if not isinstance(payload, dict) or not isinstance(payload.get("transaction"), dict):
            raise ValidationError("Invalid callback data")
        tx = payload["transaction"]
        if not tx.get("id") or not tx.get("status_code") or not tx.get("airtel_money_id"):
            raise ValidationError("Missing required transaction fields")

        transaction_id = str(tx["id"])
        try:
            callback = AirtelCallback(
                transaction_id=transaction_id,
                airtel_money_id=str(tx["airtel_money_id"]),
                status_code=tx["status_code"],
                message=tx.get("message") or "",
                callback_data=payload,
                ip_address=ip,
                user_agent=user_agent or "Unknown",
            )
            SessionLocal.add(callback)
            SessionLocal.commit()
            logger.info("Airtel callback %s for %s: %s", callback.id, transaction_id, tx["status_code"])

            subscription = _latest(Subscription, transaction_id=transaction_id)
            status = status_from_provider(tx["status_code"])
            if subscription is not None and status is not None:
                subscription.airtel_status = tx["status_code"]
                subscription.airtel_money_id = str(tx["airtel_money_id"])
                subscription.airtel_response = payload
                subscription.apply_status(status)
                logger.info("Subscription %s updated to %s from Airtel callback", subscription.id, status.value)

            callback.mark_processed()
            SessionLocal.commit()
            return {"success": True, "transaction_id": transaction_id, "callback": callback.to_dict()}
        except Exception as e:
            logger.exception("Airtel callback processing failed for %s", transaction_id)
            SessionLocal.rollback()
            failed = AirtelCallback(
                transaction_id=transaction_id,
                airtel_money_id=str(tx.get("airtel_money_id") or "unknown"),
                status_code=tx.get("status_code") or "TF",
                message=tx.get("message") or "Processing failed",
                callback_data=payload,
                processed=False,
                processing_error=str(e),
                ip_address=ip,
                user_agent=user_agent or "Unknown",
            )
            _save_failed(failed)
            return {"success": False, "error": str(e), "callback": failed.to_dict()}

    def list_airtel_callbacks(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        filters = filters or {}
        query = SessionLocal.query(AirtelCallback)
        for field in ("transaction_id", "airtel_money_id", "status_code"):
            if filters.get(field):
                query = query.filter(getattr(AirtelCallback, field) == filters[field])
        if filters.get("processed") is not None:
            query = query.filter(AirtelCallback.processed == bool(filters["processed"]))
        if filters.get("date_from") and filters.get("date_to"):
            try:
                date_from = datetime.fromisoformat(str(filters["date_from"]).replace("Z", ""))
                date_to = datetime.fromisoformat(str(filters["date_to"]).replace("Z", ""))
            except ValueError as e:
                raise ValidationError("Invalid date format") from e
            query = query.filter(AirtelCallback.created_at >= date_from, AirtelCallback.created_at <= date_to)
        total = query.count()
        limit = int(filters.get("limit") or 50)
        skip = int(filters.get("skip") or 0)
        items = query.order_by(AirtelCallback.created_at.desc()).offset(skip).limit(limit).all()
        return {"callbacks": [c.to_dict() for c in items], "total": total, "limit": limit, "skip": skip}

    def get_airtel_callback(self, callback_id: str) -> AirtelCallback:
        callback = SessionLocal.get(AirtelCallback, callback_id)
        if callback is None:
            raise NotFoundError("Callback not found")
        return callback

    def get_airtel_callbacks_by_transaction(self, transaction_id: str) -> List[AirtelCallback]:
        return (
            SessionLocal.query(AirtelCallback)
            .filter_by(transaction_id=transaction_id)
            .order_by(AirtelCallback.created_at.desc())
            .all()
        )
