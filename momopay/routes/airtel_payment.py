"""Pagos Airtel Money y el webhook de notificaciones de Airtel."""

import logging

from flask import Blueprint, jsonify, request

from ..src.errors import ValidationError
from ..src.responses import client_meta, ok
from ..src.services.airtel_payment import AirtelPaymentService
from ..src.services.callbacks import CallbackService
from ..src.utils import isoformat, utcnow


logger = logging.getLogger(__name__)

bp = Blueprint("airtel_payment", __name__)


def _country_currency():
    country = request.headers.get("X-Country") or request.args.get("country")
    currency = request.headers.get("X-Currency") or request.args.get("currency")
    return country, currency


@bp.get("/health")
def health():
    return ok({
        "status": "healthy",
        "service": "Airtel Payment Service",
        "timestamp": isoformat(utcnow()),
    }, "Airtel payment service is healthy")


@bp.get("/balance")
def balance():
    country, currency = _country_currency()
    wallet_type = (request.args.get("type") or "COLL").upper()
    data = AirtelPaymentService().get_balance(wallet_type, country, currency)
    return ok(data, "Balance retrieved successfully")


@bp.get("/transaction/<transaction_id>")
def transaction(transaction_id: str):
    country, currency = _country_currency()
    data = AirtelPaymentService().transaction_enquiry(transaction_id, country, currency)
    return ok(data, "Transaction enquiry completed successfully")


@bp.post("/ussd-push")
def ussd_push():
    country, currency = _country_currency()
    data = AirtelPaymentService().ussd_push_payment(request.get_json(silent=True) or {}, country, currency)
    return ok(data, "USSD Push payment initiated successfully")


@bp.post("/refund")
def refund():
    country, currency = _country_currency()
    data = AirtelPaymentService().refund(request.get_json(silent=True) or {}, country, currency)
    return ok(data, "Refund processed successfully")


@bp.post("/callback")
def callback():
    payload = request.get_json(silent=True) or {}
    ip, user_agent = client_meta()
    try:
        result = CallbackService().handle_airtel_callback(payload, ip, user_agent)
    except ValidationError as e:
        logger.error("Rejected Airtel callback: %s", e.message)
        return jsonify({"success": False, "message": e.errors[0]}), 400

    # siempre 200 para que Airtel no reintente
    if not result["success"]:
        return jsonify({
            "success": False,
            "message": "Callback received but processing failed",
            "error": result["error"],
        }), 200
    return jsonify({
        "success": True,
        "message": "Callback received and processed",
        "transaction_id": result["transaction_id"],
        "callback_id": result["callback"]["id"],
    }), 200


@bp.get("/callbacks")
def list_callbacks():
    processed = request.args.get("processed")
    filters = {
        "transaction_id": request.args.get("transaction_id"),
        "airtel_money_id": request.args.get("airtel_money_id"),
        "status_code": request.args.get("status_code"),
        "processed": None if processed is None else processed.lower() == "true",
        "date_from": request.args.get("date_from"),
        "date_to": request.args.get("date_to"),
        "limit": request.args.get("limit", type=int) or 50,
        "skip": request.args.get("skip", type=int) or 0,
    }
    return ok(CallbackService().list_airtel_callbacks(filters), "Callbacks retrieved successfully")


@bp.get("/callbacks/<callback_id>")
def get_callback(callback_id: str):
    return ok(CallbackService().get_airtel_callback(callback_id).to_dict(), "Callback retrieved successfully")


@bp.get("/callbacks/transaction/<transaction_id>")
def callbacks_by_transaction(transaction_id: str):
    items = CallbackService().get_airtel_callbacks_by_transaction(transaction_id)
    return ok([c.to_dict() for c in items], "Callbacks retrieved successfully")
