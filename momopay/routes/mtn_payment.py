"""Cobros MTN simplificados y el webhook que MTN llama al resolverlos."""

import logging

from flask import Blueprint, jsonify, request

from ..src.errors import ValidationError
from ..src.responses import client_meta, json_body, ok, target_environment
from ..src.services.callbacks import CallbackService
from ..src.services.mtn_payment import MTNPaymentService


logger = logging.getLogger(__name__)

bp = Blueprint("mtn_payment", __name__)


@bp.route("/callback", methods=["POST", "PUT"])
def callback():
    payload = request.get_json(silent=True) or {}
    ip, user_agent = client_meta()
    try:
        result = CallbackService().handle_mtn_callback(payload, ip, user_agent)
    except ValidationError as e:
        logger.error("Rejected MTN callback: %s", e.message)
        return jsonify({"success": False, "message": e.errors[0]}), 400

    # siempre 200 para que MTN no reintente
    if not result["success"]:
        return jsonify({
            "success": False,
            "message": "Callback received but processing failed",
            "error": result["error"],
        }), 200
    return jsonify({
        "success": True,
        "message": "Callback received and processed",
        "callback_id": result["callback"]["id"],
    }), 200


@bp.post("/payment")
def request_payment():
    p = json_body()
    if not p.get("user_id") or not p.get("phone_number") or p.get("amount") is None:
        raise ValidationError("Missing required fields: user_id, phone_number, amount")
    amount = p["amount"]
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise ValidationError("Amount must be a positive number")
    callback_url = request.headers.get("X-Callback-Url") or request.args.get("callback_url")
    result = MTNPaymentService().request_payment(
        p["user_id"], p["phone_number"], amount, target_environment(), callback_url
    )
    return ok(result, "Payment request submitted successfully", status=202)


@bp.get("/payment/<reference_id>/status")
def payment_status(reference_id: str):
    data = MTNPaymentService().get_payment_status(reference_id, target_environment())
    return ok(data, "Payment status retrieved successfully")


@bp.get("/balance")
def balance():
    data = MTNPaymentService().get_account_balance(target_environment())
    return ok(data, "Account balance retrieved successfully")
