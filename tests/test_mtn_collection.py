from unittest.mock import patch

import pytest

from momopay.src.errors import ConfigurationError
from momopay.src.models import MTNUser
from momopay.src.services.mtn_collection import MTNCollectionService

from conftest import mock_http_response, token_response


PAYER = {"partyIdType": "MSISDN", "partyId": "250788000000"}


def test_collection_token_is_cached_across_instances(mtn_tokens):
    assert MTNCollectionService().get_valid_token() == "coll-tok"
    assert MTNCollectionService().get_valid_token() == "coll-tok"
    assert len(mtn_tokens.called("POST", "/collection/token/")) == 1


def test_collection_token_refreshed_thirty_seconds_before_expiry(http):
    http.add("POST", "/collection/token/", token_response("first", 100), token_response("second", 100))
    svc = MTNCollectionService()
    with patch("momopay.src.services.client_credentials.time.time", return_value=1000.0):
        assert svc.get_valid_token() == "first"
    with patch("momopay.src.services.client_credentials.time.time", return_value=1065.0):
        assert svc.get_valid_token() == "first"
    with patch("momopay.src.services.client_credentials.time.time", return_value=1075.0):
        assert svc.get_valid_token() == "second"


def test_widget_key_preferred_over_collections_key(mtn_tokens, settings, monkeypatch):
    monkeypatch.setattr(settings, "MTN_COLLECTION_WIDGET_KEY", "widget-key")
    MTNCollectionService().get_valid_token()
    call = mtn_tokens.called("POST", "/collection/token/")[0]
    assert call["headers"]["Ocp-Apim-Subscription-Key"] == "widget-key"


def test_missing_env_credentials(settings, monkeypatch):
    monkeypatch.setattr(settings, "MTN_API_KEY", None)
    with pytest.raises(ConfigurationError):
        MTNCollectionService().get_valid_token()
    with pytest.raises(ConfigurationError):
        MTNCollectionService().get_mtn_user()


def test_get_mtn_user_registers_env_user_without_tokens():
    user = MTNCollectionService().get_mtn_user()
    assert isinstance(user, MTNUser)
    assert user.x_reference_id == "api-user-1"
    assert user.collection_token is None
    assert MTNCollectionService().get_mtn_user().id == user.id


def test_request_to_pay_route(client, mtn_tokens, settings, monkeypatch):
    monkeypatch.setattr(settings, "MTN_CALLBACK_URL", "https://me.test/api/mtn-payment/callback")
    mtn_tokens.add("POST", "/collection/v1_0/requesttopay", mock_http_response(None, 202))
    r = client.post(
        "/api/mtn-collection/collection/v1_0/requesttopay",
        json={"amount": 150, "currency": "RWF", "externalId": "ext-1", "payer": PAYER},
        headers={"X-Reference-Id": "ref-77", "X-Target-Environment": "sandbox"},
    )
    assert r.status_code == 202
    assert r.get_json()["data"] == {"status": 202, "reference_id": "ref-77"}

    call = mtn_tokens.called("POST", "/collection/v1_0/requesttopay")[0]
    assert call["json"]["amount"] == "150"
    assert call["json"]["payer"] == PAYER
    assert call["headers"]["X-Target-Environment"] == "sandbox"
    assert call["headers"]["X-Callback-Url"] == "https://me.test/api/mtn-payment/callback"


def test_request_to_pay_route_validates_payer(client):
    r = client.post(
        "/api/mtn-collection/collection/v1_0/requesttopay",
        json={"amount": 150, "currency": "RWF", "externalId": "ext-1", "payer": {"partyId": "1"}},
    )
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "VALIDATION_ERROR"


def test_request_to_pay_status_route(client, mtn_tokens):
    mtn_tokens.add("GET", "/requesttopay/ref-77", mock_http_response({
        "externalId": "ext-1", "status": "SUCCESSFUL", "financialTransactionId": "ft-1",
    }))
    r = client.get("/api/mtn-collection/collection/v1_0/requesttopay/ref-77")
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "SUCCESSFUL"
    call = mtn_tokens.called("GET", "/requesttopay/ref-77")[0]
    assert call["headers"]["X-Target-Environment"] == "mtnrwanda"


def test_collection_token_route(client, mtn_tokens):
    r = client.post("/api/mtn-collection/collection/token/")
    assert r.status_code == 200
    assert r.get_json()["data"]["access_token"] == "coll-tok"
    call = mtn_tokens.called("POST", "/collection/token/")[0]
    assert call["auth"].username == "api-user-1"
