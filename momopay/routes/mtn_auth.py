"""Administración del usuario MTN MoMo y de sus tokens."""

from flask import Blueprint

from ..src.responses import fail, ok
from ..src.services.mtn_auth import MTNAuthService
from ..src.utils import isoformat, utcnow


bp = Blueprint("mtn_auth", __name__)


@bp.get("/health")
def health():
    return ok({"status": "healthy", "service": "MTN Auth Service", "timestamp": isoformat(utcnow())}, "MTN auth service is healthy")


@bp.get("/status")
def status():
    return ok(MTNAuthService().get_user_status(), "MTN user status retrieved successfully")


@bp.post("/initialize")
def initialize():
    user = MTNAuthService().initialize_user()
    return ok(user.to_dict(), "MTN user initialized successfully")


@bp.delete("/reset")
def reset():
    deleted = MTNAuthService().reset_user()
    return ok({"deleted": deleted}, "MTN user reset successfully")


@bp.get("/tokens/collection")
def collection_token():
    user = MTNAuthService().initialize_user()
    return ok({
        "token": user.collection_token,
        "expires_at": isoformat(user.collection_token_expires_at),
    }, "Collection token retrieved successfully")


@bp.get("/tokens/disbursement")
def disbursement_token():
    user = MTNAuthService().initialize_user()
    return ok({
        "token": user.disbursement_token,
        "expires_at": isoformat(user.disbursement_token_expires_at),
    }, "Disbursement token retrieved successfully")


@bp.get("/test")
def connectivity():
    result = MTNAuthService().test_connectivity()
    if not result["success"]:
        return fail(result["error"], code="CONNECTIVITY_ERROR", status=502, details=result)
    return ok(result, "MTN connectivity test completed")


@bp.get("/stats")
def stats():
    data = MTNAuthService().get_user_stats()
    if data is None:
        return fail("No MTN user found", code="NOT_FOUND", status=404)
    return ok(data, "MTN user stats retrieved successfully")
