from flask import Blueprint, request

from ..src.responses import ok
from ..src.services.subscription_service import SubscriptionService


bp = Blueprint("subscriptions", __name__)


@bp.post("/payment")
def create_payment():
    subscription = SubscriptionService().create_subscription_payment(request.get_json(silent=True) or {})
    return ok(subscription.to_dict(), "Subscription payment initiated successfully", status=201)


@bp.get("/")
def list_subscriptions():
    filters = {
        "user_id": request.args.get("user_id"),
        "status": request.args.get("status"),
        "date_from": request.args.get("date_from"),
        "date_to": request.args.get("date_to"),
        "limit": request.args.get("limit", type=int) or 50,
        "skip": request.args.get("skip", type=int) or 0,
    }
    return ok(SubscriptionService().get_all_subscriptions(filters), "Subscriptions retrieved successfully")


@bp.get("/<subscription_id>")
def get_subscription(subscription_id: str):
    return ok(SubscriptionService().get_subscription_by_id(subscription_id).to_dict(), "Subscription retrieved successfully")


@bp.get("/user/<user_id>")
def by_user(user_id: str):
    items = SubscriptionService().get_subscriptions_by_user_id(user_id)
    return ok([s.to_dict() for s in items], "Subscriptions retrieved successfully")
