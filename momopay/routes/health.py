import logging

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..src.config import Config
from ..src.db import SessionLocal


logger = logging.getLogger(__name__)

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    try:
        SessionLocal.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        database = "unavailable"
    healthy = database == "ok"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "service": Config.SERVICE_NAME,
        "version": Config.SERVICE_VERSION,
        "database": database,
        "providers": {
            "mtn": bool(Config.MTN_COLLECTIONS_KEY and Config.MTN_DISBURSEMENTS_KEY),
            "airtel": bool(Config.AIRTEL_CLIENT_ID and Config.AIRTEL_CLIENT_SECRET),
        },
        "debug": Config.DEBUG,
    }), 200 if healthy else 503
