import pytest

from momopay.src.db import SessionLocal
from momopay.src.errors import NotFoundError, ProviderError, ValidationError
from momopay.src.models import Payment, PaymentStatus
from momopay.src.services.payment_service import PaymentService, validate_payment_request

from conftest import mock_http_response


RTP_BODY = {
    "amount": 100,
    "currency": "EUR",
    "external_id": "order-1",
    "payer": {"party_id_type": "MSISDN", "party_id": "46733123453"},
    "payer_message": "pay",
    "payee_note": "note",
}


@pytest.fixture
def mtn(mtn_tokens):
    mtn_tokens.add("POST", "/collection/v1_0/requesttopay", mock_http_response(None, 202))
    mtn_tokens.add("POST", "/disbursement/v1_0/transfer", mock_http_response(None, 202))
    mtn_tokens.add("POST", "/disbursement/v1_0/refund", mock_http_response(None, 202))
    return mtn_tokens


def test_validation_collects_every_error():
    with pytest.raises(ValidationError) as exc:
        validate_payment_request("request_to_pay", {"amount": -1, "currency": "GBP", "payer": {"party_id_type": "PHONE"}})
    assert set(exc.value.errors) == {
        "Amount must be greater than 0",
        "Currency must be one of: EUR, USD, XAF, XOF, RWF",
        "External ID is required",
        "Payer party ID is required",
        "Invalid payer party ID type",
    }


def test_validation_limits_amount_and_message_length():
    body = dict(RTP_BODY, amount=2_000_000, payer_message="x" * 161)
    with pytest.raises(ValidationError) as exc:
        validate_payment_request("request_to_pay", body)
    assert "Amount must not exceed 1000000" in exc.value.errors
    assert "Payer message must be 160 characters or less" in exc.value.errors


def test_validation_normalizes_party_and_defaults_currency():
    dto = validate_payment_request("transfer", {"amount": "5", "external_id": 9, "payee": {"party_id": 123}})
    assert dto["amount"] == 5.0
    assert dto["currency"] == "EUR"
    assert dto["external_id"] == "9"
    assert dto["payee"] == {"partyIdType": "MSISDN", "partyId": "123"}


def test_refund_requires_reference():
    with pytest.raises(ValidationError) as exc:
        validate_payment_request("refund", {"amount": 1, "external_id": "e"})
    assert exc.value.errors == ["Reference ID to refund is required"]


def test_request_to_pay_persists_pending_payment(mtn):
    payment = PaymentService().request_to_pay(RTP_BODY, callback_url="https://me/cb")
    assert payment.status == "PENDING"
    assert payment.transaction_type == "collection"
    assert payment.payer == {"partyIdType": "MSISDN", "partyId": "46733123453"}
    assert payment.processed_at is not None

    call = mtn.called("POST", "/collection/v1_0/requesttopay")[0]
    assert call["headers"]["X-Reference-Id"] == payment.x_reference_id
    assert call["headers"]["Authorization"] == "Bearer coll-tok"
    assert call["headers"]["X-Callback-Url"] == "https://me/cb"
    assert call["json"] == {
        "amount": "100.0",
        "currency": "EUR",
        "externalId": "order-1",
        "payerMessage": "pay",
        "payeeNote": "note",
        "payer": {"partyIdType": "MSISDN", "partyId": "46733123453"},
    }
    assert PaymentService().auth.get_user_stats()["successful_transactions"] == 1


def test_transfer_and_refund_use_disbursement_token(mtn):
    svc = PaymentService()
    svc.transfer({"amount": 10, "external_id": "t-1", "payee": {"party_id": "1"}})
    svc.refund({"amount": 10, "external_id": "r-1", "reference_id_to_refund": "orig"})

    transfer = mtn.called("POST", "/disbursement/v1_0/transfer")[0]
    assert transfer["headers"]["Authorization"] == "Bearer disb-tok"
    assert transfer["headers"]["Ocp-Apim-Subscription-Key"] == "disb-key"
    refund = mtn.called("POST", "/disbursement/v1_0/refund")[0]
    assert refund["json"]["referenceIdToRefund"] == "orig"
    assert SessionLocal.query(Payment).filter_by(transaction_type="disbursement").count() == 2


def test_provider_rejection_marks_payment_failed(mtn_tokens):
    mtn_tokens.add("POST", "/collection/v1_0/requesttopay", mock_http_response({"message": "bad payer"}, 400))
    with pytest.raises(ProviderError):
        PaymentService().request_to_pay(RTP_BODY)

    payment = SessionLocal.query(Payment).one()
    assert payment.status == "FAILED"
    assert payment.failed_at is not None
    assert payment.mtn_error["status"] == 400
    assert PaymentService().auth.get_user_stats()["failed_transactions"] == 1


def test_status_check_overwrites_local_status(mtn):
    payment = PaymentService().request_to_pay(RTP_BODY)
    mtn.add("GET", f"/requesttopay/{payment.x_reference_id}", mock_http_response({"status": "SUCCESSFUL"}))

    updated = PaymentService().get_payment_status(payment.id)
    assert updated.status == "SUCCESSFUL"
    assert updated.mtn_status == "SUCCESSFUL"
    assert updated.completed_at is not None


def test_status_check_keeps_pending(mtn):
    payment = PaymentService().request_to_pay(RTP_BODY)
    mtn.add("GET", f"/requesttopay/{payment.x_reference_id}", mock_http_response({"status": "PENDING"}))
    assert PaymentService().get_payment_status(payment.id).status == "PENDING"


def test_unknown_payment():
    with pytest.raises(NotFoundError):
        PaymentService().get_payment_by_id("missing")


def test_filters_and_stats(mtn):
    svc = PaymentService()
    first = svc.request_to_pay(RTP_BODY)
    svc.transfer({"amount": 40, "external_id": "t-1", "payee": {"party_id": "1"}})
    first.apply_status(PaymentStatus.SUCCESSFUL)
    SessionLocal.commit()

    assert len(svc.get_all_payments({"transaction_type": "disbursement"})) == 1
    assert [p.id for p in svc.get_all_payments({"status": "SUCCESSFUL"})] == [first.id]
    assert len(svc.get_all_payments({"limit": 1})) == 1

    stats = svc.get_service_stats()
    assert stats["total_payments"] == 2
    assert stats["by_status"]["SUCCESSFUL"] == 1
    assert stats["by_status"]["PENDING"] == 1
    assert stats["total_successful_amount"] == 100.0


def test_balance_rejects_unknown_service_type():
    with pytest.raises(ValidationError):
        PaymentService().get_account_balance("remittance")


def test_payment_routes(client, mtn):
    r = client.post("/api/payments/request-to-pay", json=RTP_BODY)
    assert r.status_code == 201
    payment = r.get_json()["data"]
    assert payment["status"] == "PENDING"

    r = client.get(f"/api/payments/{payment['id']}")
    assert r.get_json()["data"]["external_id"] == "order-1"

    r = client.get("/api/payments/?status=PENDING&limit=10")
    assert [p["id"] for p in r.get_json()["data"]] == [payment["id"]]

    r = client.get("/api/payments/stats")
    assert r.get_json()["data"]["total_payments"] == 1


def test_payment_routes_reject_bad_input(client):
    r = client.post("/api/payments/transfer", json={"amount": 0})
    assert r.status_code == 400
    body = r.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert "Amount must be greater than 0" in body["error"]["details"]

    assert client.get("/api/payments/?limit=500").status_code == 400
    assert client.get("/api/payments/?status=DONE").status_code == 400
    assert client.get("/api/payments/nope").status_code == 404


def test_provider_server_error_maps_to_bad_gateway(client, mtn_tokens):
    mtn_tokens.add("POST", "/collection/v1_0/requesttopay", mock_http_response({"error": "down"}, 500))
    r = client.post("/api/payments/request-to-pay", json=RTP_BODY)
    assert r.status_code == 502
    assert r.get_json()["error"]["code"] == "PROVIDER_ERROR"


def test_payment_routes_reject_non_object_bodies(client):
    r = client.post("/api/payments/request-to-pay", json={**RTP_BODY, "payer": "46733123453"})
    assert r.status_code == 400
    assert "Payer must be an object" in r.get_json()["error"]["details"]

    r = client.post("/api/payments/transfer", json=[RTP_BODY])
    assert r.status_code == 400
    assert r.get_json()["error"]["details"] == ["Request body must be a JSON object"]
    assert SessionLocal.query(Payment).count() == 0


def test_invalid_date_filter_keeps_parse_error():
    with pytest.raises(ValidationError) as exc:
        PaymentService().get_all_payments({"date_from": "yesterday", "date_to": "today"})
    assert exc.value.errors == ["Invalid date format: yesterday"]
    assert isinstance(exc.value.__cause__, ValueError)


def test_list_route_rejects_invalid_dates(client):
    r = client.get("/api/payments/?date_from=bad&date_to=bad")
    assert r.status_code == 400
    assert r.get_json()["error"]["details"] == ["Invalid date format: bad"]
