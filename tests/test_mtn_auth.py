from datetime import timedelta

import pytest

from momopay.src.db import SessionLocal
from momopay.src.errors import ProviderError
from momopay.src.models import MTNUser
from momopay.src.services.mtn_auth import MTNAuthService
from momopay.src.utils import utcnow

from conftest import mock_http_response, token_response


def test_initialize_creates_user_from_env_credentials(mtn_tokens):
    user = MTNAuthService().initialize_user()
    assert user.x_reference_id == "api-user-1"
    assert user.collection_token == "coll-tok"
    assert user.disbursement_token == "disb-tok"
    assert user.collection_token_valid and user.disbursement_token_valid
    assert not mtn_tokens.called("POST", "/v1_0/apiuser")
    assert SessionLocal.query(MTNUser).count() == 1


def test_collection_and_disbursement_use_their_own_subscription_keys(mtn_tokens):
    MTNAuthService().initialize_user()
    coll = mtn_tokens.called("POST", "/collection/token/")[0]
    disb = mtn_tokens.called("POST", "/disbursement/token/")[0]
    assert coll["headers"]["Ocp-Apim-Subscription-Key"] == "coll-key"
    assert disb["headers"]["Ocp-Apim-Subscription-Key"] == "disb-key"


def test_sandbox_provisioning_when_no_env_credentials(mtn_tokens, settings, monkeypatch):
    monkeypatch.setattr(settings, "MTN_API_USER", None)
    monkeypatch.setattr(settings, "MTN_API_KEY", None)
    mtn_tokens.add("POST", "/v1_0/apiuser", mock_http_response(None, 201))
    mtn_tokens.add("POST", "/apikey", mock_http_response({"apiKey": "generated-key"}, 201))

    user = MTNAuthService().initialize_user()

    assert user.api_key == "generated-key"
    create = mtn_tokens.called("POST", "/v1_0/apiuser")[0]
    assert create["headers"]["X-Reference-Id"] == user.x_reference_id
    assert create["json"] == {"providerCallbackHost": "https://callbacks.test"}
    token_call = mtn_tokens.called("POST", "/collection/token/")[0]
    assert token_call["auth"].username == user.x_reference_id


def test_valid_tokens_are_reused(mtn_tokens):
    svc = MTNAuthService()
    svc.initialize_user()
    svc.get_collection_token()
    svc.get_disbursement_token()
    assert len(mtn_tokens.called("POST", "/collection/token/")) == 1
    assert len(mtn_tokens.called("POST", "/disbursement/token/")) == 1


def test_token_expiring_within_five_minutes_is_refreshed(http):
    http.add("POST", "/collection/token/", token_response("coll-1"), token_response("coll-2"))
    http.add("POST", "/disbursement/token/", token_response("disb-1"))
    svc = MTNAuthService()
    user = svc.initialize_user()
    user.collection_token_expires_at = utcnow() + timedelta(minutes=4)
    user.disbursement_token_expires_at = utcnow() + timedelta(minutes=50)
    SessionLocal.commit()

    assert svc.get_collection_token() == "coll-2"
    assert svc.get_disbursement_token() == "disb-1"
    assert len(http.called("POST", "/disbursement/token/")) == 1


def test_token_endpoint_rejection_propagates(http):
    http.add("POST", "/collection/token/", mock_http_response({"error": "unauthorized"}, 401))
    with pytest.raises(ProviderError) as exc:
        MTNAuthService().initialize_user()
    assert exc.value.provider_status == 401
    assert SessionLocal.query(MTNUser).count() == 0


def test_usage_stats_and_reset(mtn_tokens):
    svc = MTNAuthService()
    assert svc.get_user_stats() is None
    svc.initialize_user()
    svc.update_usage_stats(True)
    svc.update_usage_stats(False)
    stats = svc.get_user_stats()
    assert stats["total_transactions"] == 2
    assert stats["successful_transactions"] == 1
    assert stats["failed_transactions"] == 1

    assert svc.reset_user() == 1
    assert svc.get_user_status() == {"exists": False, "message": "No MTN user found"}


def test_connectivity_reports_each_product(mtn_tokens):
    mtn_tokens.add("GET", "/collection/v1_0/account/balance", mock_http_response({"availableBalance": "1"}))
    mtn_tokens.add("GET", "/disbursement/v1_0/account/balance", mock_http_response({"error": "no"}, 404))
    result = MTNAuthService().test_connectivity()
    assert result["success"] is True
    assert result["collection"]["success"] is True
    assert result["disbursement"] == {"success": False, "status": 404, "error": result["disbursement"]["error"]}


def test_auth_routes(client, mtn_tokens):
    r = client.post("/api/mtn/initialize")
    assert r.status_code == 200
    assert r.get_json()["data"]["has_collection_token"] is True

    r = client.get("/api/mtn/tokens/disbursement")
    assert r.get_json()["data"]["token"] == "disb-tok"

    r = client.get("/api/mtn/status")
    assert r.get_json()["data"]["exists"] is True

    r = client.delete("/api/mtn/reset")
    assert r.get_json()["data"] == {"deleted": 1}

    r = client.get("/api/mtn/stats")
    assert r.status_code == 404
    assert r.get_json()["success"] is False
