import uuid

import pytest

from momopay.src.db import SessionLocal
from momopay.src.errors import ProviderError, ValidationError
from momopay.src.models import Payment, Subscription
from momopay.src.services.subscription_service import SubscriptionService, validate_subscription_request

from conftest import mock_http_response


USER_ID = str(uuid.uuid4())


def _request(channel: str, **extra) -> dict:
    return {
        "user_id": USER_ID,
        "amount": 3000,
        "number_of_months": 3,
        "msisdn": "250733000000",
        "payment_channel": channel,
        **extra,
    }


def _ussd_response(status: str = "TS", code: str = "DP00800001001") -> dict:
    return {
        "data": {"transaction": {"id": "x", "status": status, "airtel_money_id": "am-9"}},
        "status": {"response_code": code, "success": code == "DP00800001001", "message": "ok"},
    }


def test_validation_errors():
    with pytest.raises(ValidationError) as exc:
        validate_subscription_request({"user_id": USER_ID, "amount": 1})
    assert exc.value.errors == ["Missing required fields: user_id, amount, number_of_months, msisdn, payment_channel"]

    with pytest.raises(ValidationError) as exc:
        validate_subscription_request(_request("tigo", user_id="not-a-uuid", amount="10", number_of_months=1.5))
    assert exc.value.errors == [
        'Invalid payment channel. Must be "MTN" or "AIRTEL"',
        "Amount must be a positive number",
        "Number of months must be at least 1",
        "Invalid user_id format. Must be a valid UUID",
    ]


def test_channel_is_case_insensitive():
    assert validate_subscription_request(_request("airtel"))["payment_channel"] == "AIRTEL"


def test_airtel_subscription_successful_push(airtel_token):
    airtel_token.add("POST", "/merchant/v2/payments/", mock_http_response(_ussd_response("TS")))

    sub = SubscriptionService().create_subscription_payment(_request("AIRTEL", transaction_currency="USD"))

    assert sub.status == "SUCCESSFUL"
    assert sub.airtel_status == "TS"
    assert sub.airtel_money_id == "am-9"
    assert sub.transaction_id.startswith("SUB-")
    assert sub.duration == 3
    push = airtel_token.called("POST", "/merchant/v2/payments/")[0]
    assert push["json"]["transaction"] == {"amount": 3000, "id": sub.transaction_id, "currency": "USD"}
    assert push["json"]["subscriber"]["msisdn"] == "250733000000"
    assert push["json"]["reference"] == "Subscription payment for 3 month(s)"


def test_airtel_subscription_in_progress_stays_pending(airtel_token):
    airtel_token.add("POST", "/merchant/v2/payments/", mock_http_response(_ussd_response("TIP")))
    sub = SubscriptionService().create_subscription_payment(_request("AIRTEL"))
    assert sub.status == "PENDING"
    assert sub.end_date is None


def test_airtel_error_code_marks_subscription_failed(airtel_token):
    airtel_token.add("POST", "/merchant/v2/payments/", mock_http_response(_ussd_response("TF", "DP00800001007")))
    with pytest.raises(ProviderError) as exc:
        SubscriptionService().create_subscription_payment(_request("AIRTEL"))
    assert exc.value.message.startswith("Not enough balance")

    sub = SessionLocal.query(Subscription).one()
    assert sub.status == "FAILED"
    assert sub.airtel_error["message"].startswith("Not enough balance")


def test_mtn_subscription_goes_through_request_to_pay(mtn_tokens):
    mtn_tokens.add("POST", "/collection/v1_0/requesttopay", mock_http_response(None, 202))

    sub = SubscriptionService().create_subscription_payment(_request("MTN"))

    assert sub.status == "PENDING"
    assert sub.mtn_status == "PENDING"
    payment = SessionLocal.query(Payment).one()
    assert payment.external_id == sub.transaction_id
    assert sub.mtn_reference_id == payment.x_reference_id
    call = mtn_tokens.called("POST", "/collection/v1_0/requesttopay")[0]
    assert call["json"]["payer"] == {"partyIdType": "MSISDN", "partyId": "250733000000"}
    assert call["json"]["currency"] == "RWF"


def test_subscription_routes(client, airtel_token):
    airtel_token.add("POST", "/merchant/v2/payments/", mock_http_response(_ussd_response("TS")))
    r = client.post("/api/subscriptions/payment", json=_request("AIRTEL"))
    assert r.status_code == 201
    created = r.get_json()["data"]

    r = client.get(f"/api/subscriptions/{created['id']}")
    assert r.get_json()["data"]["status"] == "SUCCESSFUL"

    r = client.get(f"/api/subscriptions/user/{USER_ID}")
    assert [s["id"] for s in r.get_json()["data"]] == [created["id"]]

    r = client.get("/api/subscriptions/?status=SUCCESSFUL")
    assert r.get_json()["data"]["total"] == 1

    assert client.get("/api/subscriptions/unknown").status_code == 404


def test_subscription_route_provider_failure(client, airtel_token):
    airtel_token.add("POST", "/merchant/v2/payments/", mock_http_response({"error": "down"}, 503))
    r = client.post("/api/subscriptions/payment", json=_request("AIRTEL"))
    assert r.status_code == 502
    assert r.get_json()["error"]["code"] == "PROVIDER_ERROR"
    assert SessionLocal.query(Subscription).one().status == "FAILED"


def test_subscription_route_rejects_bad_user_id(client):
    r = client.post("/api/subscriptions/payment", json=_request("MTN", user_id="42"))
    assert r.status_code == 400


def test_subscription_route_rejects_list_body(client):
    r = client.post("/api/subscriptions/payment", json=[_request("AIRTEL")])
    assert r.status_code == 400
    assert r.get_json()["error"]["details"] == ["Request body must be a JSON object"]
    assert SessionLocal.query(Subscription).count() == 0


def test_invalid_date_filter_keeps_parse_error():
    with pytest.raises(ValidationError) as exc:
        SubscriptionService().get_all_subscriptions({"date_from": "soon", "date_to": "later"})
    assert isinstance(exc.value.__cause__, ValueError)
