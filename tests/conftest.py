import json
from unittest.mock import Mock, patch

import pytest

from momopay import create_app
from momopay.src.config import Config
from momopay.src.db import drop_db, init_db
from momopay.src.services import mtn_auth, mtn_collection


def mock_http_response(json_data=None, status_code: int = 200) -> Mock:
    """Mock de requests.Response; sin json_data el cuerpo queda vacío (p.ej. 202 de MTN)."""
    resp = Mock()
    resp.ok = 200 <= status_code < 400
    resp.status_code = status_code
    if json_data is None:
        resp.text = ""
        resp.json.side_effect = ValueError("no body")
    else:
        resp.text = json.dumps(json_data)
        resp.json.return_value = json_data
    resp.headers = {"Content-Type": "application/json"}
    return resp


def token_response(token: str = "tok", expires_in: int = 3600) -> Mock:
    return mock_http_response({"access_token": token, "token_type": "access_token", "expires_in": expires_in})


class FakeHTTP:
    """Enruta llamadas a requests.request por (método, sufijo de path).

    Cada ruta tiene una cola de respuestas; la última se repite.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method: str, path: str, *responses):
        self.routes.setdefault((method.upper(), path), []).extend(responses)
        return self

    def __call__(self, method, url, **kwargs):
        self.calls.append({"method": method.upper(), "url": url, **kwargs})
        for (route_method, path), queue in self.routes.items():
            if route_method == method.upper() and url.endswith(path):
                resp = queue.pop(0) if len(queue) > 1 else queue[0]
                if isinstance(resp, Exception):
                    raise resp
                return resp
        raise AssertionError(f"unexpected request {method} {url}")

    def called(self, method: str, path: str):
        return [c for c in self.calls if c["method"] == method.upper() and c["url"].endswith(path)]


TEST_SETTINGS = {
    "DATABASE_URL": "sqlite://",
    "DEBUG": False,
    "BASE_URL": None,
    "MTN_BASE_URL": "https://mtn.test",
    "MTN_API_USER": "api-user-1",
    "MTN_API_KEY": "api-key-1",
    "MTN_CALLBACK_URL": None,
    "MTN_TARGET_ENVIRONMENT": "mtnrwanda",
    "MTN_PROVIDER_CALLBACK_HOST": "https://callbacks.test",
    "MTN_COLLECTION_WIDGET_KEY": None,
    "MTN_COLLECTIONS_KEY": "coll-key",
    "MTN_DISBURSEMENTS_KEY": "disb-key",
    "MTN_REMITTANCES_KEY": None,
    "MTN_MAX_RETRIES": 3,
    "MTN_RETRY_DELAY": 0,
    "AIRTEL_BASE_URL": "https://airtel.test",
    "AIRTEL_CLIENT_ID": "airtel-client",
    "AIRTEL_CLIENT_SECRET": "airtel-secret",
    "AIRTEL_MSISDN": None,
    "AIRTEL_COUNTRY": "RW",
    "AIRTEL_CURRENCY": "RWF",
    "AIRTEL_SIGN_REQUESTS": False,
    "AIRTEL_MAX_RETRIES": 3,
    "AIRTEL_RETRY_DELAY": 0,
    "PAYMENT_MAX_AMOUNT": 1000000,
    "PAYMENT_DEFAULT_CURRENCY": "EUR",
    "PAYMENT_SUPPORTED_CURRENCIES": ["EUR", "USD", "XAF", "XOF", "RWF"],
    "TOKEN_REFRESH_BUFFER": 300,
    "COLLECTION_TOKEN_BUFFER": 30,
}


@pytest.fixture(autouse=True)
def settings(monkeypatch):
    for name, value in TEST_SETTINGS.items():
        monkeypatch.setattr(Config, name, value)
    monkeypatch.setattr(mtn_auth, "PROVISIONING_DELAY", 0)
    mtn_collection.reset_token_cache()
    init_db("sqlite://")
    yield Config
    drop_db()
    mtn_collection.reset_token_cache()


@pytest.fixture
def http():
    fake = FakeHTTP()
    with patch("momopay.src.providers.base.requests.request", side_effect=fake):
        yield fake


@pytest.fixture
def mtn_tokens(http):
    http.add("POST", "/collection/token/", token_response("coll-tok"))
    http.add("POST", "/disbursement/token/", token_response("disb-tok"))
    return http


@pytest.fixture
def airtel_token(http):
    http.add("POST", "/auth/oauth2/token", mock_http_response({
        "access_token": "airtel-tok",
        "expires_in": "3600",
        "token_type": "bearer",
    }))
    return http


@pytest.fixture
def app():
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
