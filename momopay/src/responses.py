from typing import Any, Dict, Optional, Tuple

from flask import jsonify, request

from .errors import PaymentError, ValidationError
from .utils import isoformat, utcnow


def ok(data: Any = None, message: str = "OK", status: int = 200):
    return jsonify({
        "success": True,
        "message": message,
        "data": data,
        "timestamp": isoformat(utcnow()),
    }), status


def fail(message: str, code: str = "PAYMENT_ERROR", status: int = 500, details: Optional[Any] = None):
    return jsonify({
        "success": False,
        "error": {"code": code, "message": message, "details": details},
        "timestamp": isoformat(utcnow()),
    }), status


def from_error(err: PaymentError):
    return fail(err.message, code=err.code, status=err.status_code, details=err.details)


def client_meta() -> Tuple[Optional[str], str]:
    """(ip, user-agent) de la petición actual, respetando X-Forwarded-For."""
    forwarded = request.headers.get("X-Forwarded-For")
    ip = forwarded.split(",")[0].strip() if forwarded else request.remote_addr
    return ip, request.headers.get("User-Agent") or "Unknown"


def target_environment() -> Optional[str]:
    return request.headers.get("X-Target-Environment") or request.args.get("target_environment")


def json_body() -> Dict[str, Any]:
    """Cuerpo JSON de la petición; vacío si no hay cuerpo, ``ValidationError`` si no es un objeto."""
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body
