from flask import Flask, jsonify, request, g
import time
import logging
from werkzeug.exceptions import HTTPException
from flask_cors import CORS

from .src.config import Config
from .src.db import SessionLocal, init_db
from .src.errors import PaymentError
from .src.responses import fail, from_error
from .routes.health import bp as health_bp
from .routes.mtn_auth import bp as mtn_auth_bp
from .routes.airtel_auth import bp as airtel_auth_bp
from .routes.payments import bp as payments_bp
from .routes.mtn_payment import bp as mtn_payment_bp
from .routes.airtel_payment import bp as airtel_payment_bp
from .routes.subscriptions import bp as subscriptions_bp
from .routes.mtn_collection import bp as mtn_collection_bp


logger = logging.getLogger(__name__)


def create_app():
    app = Flask(__name__)
    app.config.from_object(Config)

    CORS(app, resources={r"/*": {"origins": Config.CORS_ORIGINS}}, supports_credentials=True)

    init_db(Config.DATABASE_URL)

    app.register_blueprint(health_bp)
    app.register_blueprint(mtn_auth_bp, url_prefix="/api/mtn")
    app.register_blueprint(airtel_auth_bp, url_prefix="/api/airtel")
    app.register_blueprint(payments_bp, url_prefix="/api/payments")
    app.register_blueprint(mtn_payment_bp, url_prefix="/api/mtn-payment")
    app.register_blueprint(airtel_payment_bp, url_prefix="/api/airtel-payment")
    app.register_blueprint(subscriptions_bp, url_prefix="/api/subscriptions")
    app.register_blueprint(mtn_collection_bp, url_prefix="/api/mtn-collection")

    # Logging simple de todas las peticiones entrantes
    logging.basicConfig(level=logging.DEBUG if Config.DEBUG else logging.INFO)

    problems = Config.validate()
    for problem in problems:
        logger.warning("Configuration: %s", problem)

    @app.before_request
    def _log_start():
        g._start_time = time.time()

    @app.after_request
    def _log_request(resp):
        started = getattr(g, '_start_time', None)
        dur_ms = int((time.time() - started) * 1000) if started else -1
        logging.info(
            "%s %s -> %s (%d ms) ip=%s",
            request.method,
            request.path,
            resp.status_code,
            dur_ms,
            request.headers.get('X-Forwarded-For', request.remote_addr),
        )
        return resp

    @app.teardown_appcontext
    def _close_session(exc):
        SessionLocal.remove()

    @app.errorhandler(PaymentError)
    def _payment_error(err):
        SessionLocal.rollback()
        if err.status_code >= 500:
            logger.error("%s: %s", err.code, err.message)
        return from_error(err)

    @app.errorhandler(Exception)
    def _unexpected_error(err):
        if isinstance(err, HTTPException):
            return err
        SessionLocal.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return fail("Internal server error", code="INTERNAL_ERROR", status=500)

    @app.get("/")
    def root():
        return jsonify({"name": Config.SERVICE_NAME, "status": "ok"}), 200

    return app
