"""Administración del token OAuth2 de Airtel y utilidades de cifrado del PIN."""

from flask import Blueprint, request

from ..src.config import validate_airtel_config
from ..src.errors import ValidationError
from ..src.responses import fail, json_body, ok
from ..src.services.airtel_auth import AirtelAuthService
from ..src.utils import isoformat, utcnow


bp = Blueprint("airtel_auth", __name__)


@bp.get("/health")
def health():
    return ok({"status": "healthy", "service": "Airtel Auth Service", "timestamp": isoformat(utcnow())}, "Airtel auth service is healthy")


@bp.get("/status")
def status():
    return ok(AirtelAuthService().get_user_status(), "Airtel user status retrieved successfully")


@bp.post("/initialize")
def initialize():
    user = AirtelAuthService().initialize_user()
    return ok(user.to_dict(), "Airtel user initialized successfully")


@bp.delete("/reset")
def reset():
    deleted = AirtelAuthService().reset_user()
    return ok({"deleted": deleted}, "Airtel user reset successfully")


@bp.get("/tokens/access")
def access_token():
    user = AirtelAuthService().initialize_user()
    return ok({
        "access_token": user.access_token,
        "token_type": user.token_type,
        "expires_at": isoformat(user.token_expires_at),
    }, "Access token retrieved successfully")


@bp.get("/test")
def connectivity():
    result = AirtelAuthService().test_connectivity()
    if not result["success"]:
        return fail(result["error"], code="CONNECTIVITY_ERROR", status=502, details=result)
    return ok(result, "Airtel connectivity test completed")


@bp.get("/stats")
def stats():
    data = AirtelAuthService().get_user_stats()
    if data is None:
        return fail("No Airtel user found", code="NOT_FOUND", status=404)
    return ok(data, "Airtel user stats retrieved successfully")


@bp.get("/config-check")
def config_check():
    result = validate_airtel_config()
    if not result["is_valid"]:
        return fail("Airtel configuration has issues", code="CONFIGURATION_ERROR", status=400, details=result)
    return ok(result, "Airtel configuration is valid")


@bp.get("/encryption-keys")
def encryption_keys():
    keys = AirtelAuthService().get_encryption_keys(request.args.get("country"), request.args.get("currency"))
    return ok(keys, "Encryption keys retrieved successfully")


@bp.post("/encrypt-pin")
def encrypt_pin():
    p = json_body()
    pin = p.get("pin")
    if not pin:
        raise ValidationError("pin is required")
    result = AirtelAuthService().encrypt_pin(str(pin), p.get("country"), p.get("currency"))
    return ok(result, "PIN encrypted successfully")
