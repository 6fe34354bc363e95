"""Collection MTN con la misma forma de rutas y cuerpos que la API de MTN."""

import uuid

from flask import Blueprint, request

from ..src.errors import ValidationError
from ..src.responses import json_body, ok, target_environment
from ..src.services.mtn_collection import MTNCollectionService


bp = Blueprint("mtn_collection", __name__)


@bp.post("/collection/token/")
def token():
    svc = MTNCollectionService()
    user = svc.get_mtn_user()
    data = svc.get_token(user.x_reference_id, user.api_key)
    return ok({
        "access_token": data.get("access_token"),
        "token_type": data.get("token_type") or "Bearer",
        "expires_in": data.get("expires_in"),
    }, "Collection token retrieved successfully")


@bp.get("/collection/v1_0/account/balance")
def balance():
    data = MTNCollectionService().get_account_balance(target_environment())
    return ok(data, "Account balance retrieved successfully")


@bp.post("/collection/v1_0/requesttopay")
def request_to_pay():
    p = json_body()
    if not all(p.get(f) for f in ("amount", "currency", "externalId", "payer")):
        raise ValidationError("Missing required fields: amount, currency, externalId, payer")
    payer = p["payer"] if isinstance(p["payer"], dict) else {}
    if not payer.get("partyIdType") or not payer.get("partyId"):
        raise ValidationError("Payer must have partyIdType and partyId")

    reference_id = request.headers.get("X-Reference-Id") or str(uuid.uuid4())
    callback_url = request.headers.get("X-Callback-Url")
    result = MTNCollectionService().request_to_pay(reference_id, p, target_environment(), callback_url)
    return ok(result, "Request to pay submitted successfully", status=202)


@bp.get("/collection/v1_0/requesttopay/<reference_id>")
def request_to_pay_status(reference_id: str):
    data = MTNCollectionService().get_request_to_pay_status(reference_id, target_environment())
    return ok(data, "Payment status retrieved successfully")
