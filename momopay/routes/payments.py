from flask import Blueprint, request

from ..src.config import Config
from ..src.errors import ValidationError
from ..src.models import PaymentStatus
from ..src.responses import ok
from ..src.services.payment_service import PaymentService
from ..src.utils import isoformat, utcnow


bp = Blueprint("payments", __name__)

TRANSACTION_TYPES = ("collection", "disbursement")


def _int_arg(name: str, default: int, low: int, high: int | None = None) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be a number") from e
    if value < low or (high is not None and value > high):
        bound = f"between {low} and {high}" if high is not None else f"at least {low}"
        raise ValidationError(f"{name} must be {bound}")
    return value


@bp.get("/health")
def health():
    return ok({
        "status": "healthy",
        "service": Config.SERVICE_NAME,
        "version": Config.SERVICE_VERSION,
        "timestamp": isoformat(utcnow()),
    }, "Payment service is healthy")


@bp.get("/stats")
def stats():
    return ok(PaymentService().get_service_stats(), "Service stats retrieved successfully")


@bp.get("/balance")
def balance():
    service_type = request.args.get("service_type") or "collection"
    return ok(PaymentService().get_account_balance(service_type), "Account balance retrieved successfully")


@bp.get("/")
def list_payments():
    transaction_type = request.args.get("transaction_type")
    status = request.args.get("status")
    if transaction_type and transaction_type not in TRANSACTION_TYPES:
        raise ValidationError("Invalid transaction type")
    if status and status not in {s.value for s in PaymentStatus}:
        raise ValidationError("Invalid status")
    filters = {
        "transaction_type": transaction_type,
        "status": status,
        "date_from": request.args.get("date_from"),
        "date_to": request.args.get("date_to"),
        "limit": _int_arg("limit", 50, 1, 100),
        "skip": _int_arg("skip", 0, 0),
    }
    payments = PaymentService().get_all_payments(filters)
    return ok([p.to_dict() for p in payments], "Payments retrieved successfully")


@bp.get("/<payment_id>")
def get_payment(payment_id: str):
    return ok(PaymentService().get_payment_by_id(payment_id).to_dict(), "Payment retrieved successfully")


@bp.get("/<payment_id>/status")
def payment_status(payment_id: str):
    payment = PaymentService().get_payment_status(payment_id)
    return ok(payment.to_dict(), "Payment status retrieved successfully")


@bp.post("/request-to-pay")
def request_to_pay():
    payment = PaymentService().request_to_pay(request.get_json(silent=True) or {}, request.headers.get("X-Callback-Url"))
    return ok(payment.to_dict(), "Request to pay initiated successfully", status=201)


@bp.post("/transfer")
def transfer():
    payment = PaymentService().transfer(request.get_json(silent=True) or {}, request.headers.get("X-Callback-Url"))
    return ok(payment.to_dict(), "Transfer initiated successfully", status=201)


@bp.post("/refund")
def refund():
    payment = PaymentService().refund(request.get_json(silent=True) or {}, request.headers.get("X-Callback-Url"))
    return ok(payment.to_dict(), "Refund initiated successfully", status=201)
