import os
from typing import Any, Dict, List

from dotenv import load_dotenv


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name) or default)
    except ValueError:
        return default


def _list_env(name: str, default: str) -> List[str]:
    return [item.strip() for item in (os.getenv(name) or default).split(",") if item.strip()]


class Config:
    load_dotenv()

    DEBUG = os.getenv("DEBUG", "true").lower() == "true"
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    SERVICE_NAME = os.getenv("SERVICE_NAME", "Payment Service")
    SERVICE_VERSION = os.getenv("SERVICE_VERSION", "1.0.0")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///momopay.db")
    # URL pública de este servicio, usada para construir callbacks por defecto
    BASE_URL = os.getenv("BASE_URL")

    # MTN MoMo
    MTN_BASE_URL = os.getenv("MTN_BASE_URL", "https://proxy.momoapi.mtn.co.rw")
    MTN_API_USER = os.getenv("MTN_API_USER")
    MTN_API_KEY = os.getenv("MTN_API_KEY")
    MTN_PROVIDER_CALLBACK_HOST = os.getenv("MTN_PROVIDER_CALLBACK_HOST", "https://webhook.site/your-unique-id")
    MTN_CALLBACK_URL = os.getenv("MTN_CALLBACK_URL")
    MTN_TARGET_ENVIRONMENT = os.getenv("MTN_TARGET_ENVIRONMENT", "mtnrwanda")
    MTN_COLLECTION_WIDGET_KEY = os.getenv("MTN_COLLECTION_WIDGET_KEY")
    MTN_COLLECTIONS_KEY = os.getenv("MTN_COLLECTIONS_KEY")
    MTN_DISBURSEMENTS_KEY = os.getenv("MTN_DISBURSEMENTS_KEY")
    MTN_REMITTANCES_KEY = os.getenv("MTN_REMITTANCES_KEY")
    MTN_MAX_RETRIES = _int_env("MTN_MAX_RETRIES", 3)
    MTN_RETRY_DELAY = _int_env("MTN_RETRY_DELAY", 1000)  # ms
    MTN_API_TIMEOUT = _int_env("MTN_API_TIMEOUT", 10000)  # ms

    # Airtel Money
    AIRTEL_BASE_URL = os.getenv("AIRTEL_BASE_URL", "https://openapiuat.airtel.africa")
    AIRTEL_CLIENT_ID = os.getenv("AIRTEL_CLIENT_ID")
    AIRTEL_CLIENT_SECRET = os.getenv("AIRTEL_CLIENT_SECRET")
    AIRTEL_MSISDN = os.getenv("AIRTEL_MSISDN")
    AIRTEL_COUNTRY = os.getenv("AIRTEL_COUNTRY", "RW")
    AIRTEL_CURRENCY = os.getenv("AIRTEL_CURRENCY", "RWF")
    AIRTEL_SIGN_REQUESTS = os.getenv("AIRTEL_SIGN_REQUESTS", "false").lower() == "true"
    AIRTEL_MAX_RETRIES = _int_env("AIRTEL_MAX_RETRIES", 3)
    AIRTEL_RETRY_DELAY = _int_env("AIRTEL_RETRY_DELAY", 1000)  # ms
    AIRTEL_API_TIMEOUT = _int_env("AIRTEL_API_TIMEOUT", 10000)  # ms

    # Pagos
    PAYMENT_MAX_AMOUNT = _int_env("PAYMENT_MAX_AMOUNT", 1000000)
    PAYMENT_DEFAULT_CURRENCY = os.getenv("PAYMENT_DEFAULT_CURRENCY", "EUR")
    PAYMENT_SUPPORTED_CURRENCIES = _list_env("PAYMENT_SUPPORTED_CURRENCIES", "EUR,USD,XAF,XOF,RWF")
    PAYMENT_MAX_MESSAGE_LENGTH = 160
    PARTY_ID_TYPES = ("MSISDN", "EMAIL", "PARTY_CODE")

    # Margen (segundos) antes de la expiración en que un token se considera vencido
    TOKEN_REFRESH_BUFFER = _int_env("TOKEN_REFRESH_BUFFER", 300)
    COLLECTION_TOKEN_BUFFER = _int_env("COLLECTION_TOKEN_BUFFER", 30)

    @classmethod
    def mtn_subscription_keys(cls) -> Dict[str, Any]:
        return {
            "collection_widget": cls.MTN_COLLECTION_WIDGET_KEY,
            "collections": cls.MTN_COLLECTIONS_KEY,
            "disbursements": cls.MTN_DISBURSEMENTS_KEY,
            "remittances": cls.MTN_REMITTANCES_KEY,
        }

    @classmethod
    def validate(cls) -> List[str]:
        errors = []
        if not cls.MTN_COLLECTIONS_KEY:
            errors.append("MTN_COLLECTIONS_KEY is required")
        if not cls.MTN_DISBURSEMENTS_KEY:
            errors.append("MTN_DISBURSEMENTS_KEY is required")
        if not cls.AIRTEL_CLIENT_ID:
            errors.append("AIRTEL_CLIENT_ID is required")
        if not cls.AIRTEL_CLIENT_SECRET:
            errors.append("AIRTEL_CLIENT_SECRET is required")
        if cls.PAYMENT_MAX_AMOUNT <= 0:
            errors.append("PAYMENT_MAX_AMOUNT must be greater than 0")
        if cls.PAYMENT_DEFAULT_CURRENCY not in cls.PAYMENT_SUPPORTED_CURRENCIES:
            errors.append("PAYMENT_DEFAULT_CURRENCY must be in PAYMENT_SUPPORTED_CURRENCIES")
        return errors


_PLACEHOLDER_MARKERS = ("your_", "example")


def _check_secret_like(value: str) -> str | None:
    if not value.strip():
        return "is empty"
    if any(marker in value for marker in _PLACEHOLDER_MARKERS):
        return "contains placeholder value"
    return None


def _check_number(value: str) -> str | None:
    try:
        int(value)
    except ValueError:
        return "must be a number"
    return None


def _check_base_url(value: str) -> str | None:
    if not value.startswith(("http://", "https://")):
        return "must start with http:// or https://"
    if "airtel.africa" not in value:
        return "should contain airtel.africa domain"
    return None


def validate_airtel_config() -> Dict[str, Any]:
    """Revisa las variables AIRTEL_* del entorno y reporta problemas.

    Los secretos se enmascaran en el resultado.
    """
    checks = [
        ("AIRTEL_BASE_URL", False, _check_base_url),
        ("AIRTEL_CLIENT_ID", True, _check_secret_like),
        ("AIRTEL_CLIENT_SECRET", True, _check_secret_like),
        ("AIRTEL_MSISDN", False, lambda v: "contains placeholder value" if "your_" in v else None),
        ("AIRTEL_API_TIMEOUT", False, _check_number),
        ("AIRTEL_MAX_RETRIES", False, _check_number),
        ("AIRTEL_RETRY_DELAY", False, _check_number),
    ]
    issues: List[str] = []
    values: Dict[str, Any] = {}
    for name, required, check in checks:
        value = os.getenv(name)
        values[name] = ("***" if "SECRET" in name else value) if value else None
        if required and not value:
            issues.append(f"{name} is required but not set")
            continue
        if value:
            problem = check(value)
            if problem:
                issues.append(f"{name} {problem}")
    return {"is_valid": not issues, "issues": issues, "config": values}
