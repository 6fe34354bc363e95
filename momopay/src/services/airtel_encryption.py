"""Cifrado del PIN para Airtel: RSA-OAEP (SHA-256 + MGF1), salida en base64."""

import base64
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from ..errors import PaymentError
from ..utils import utcnow


_PEM_MARKERS = re.compile(r"-----(BEGIN|END) PUBLIC KEY-----")


def format_public_key(key: str) -> str:
    body = re.sub(r"\s", "", _PEM_MARKERS.sub("", key or ""))
    return f"-----BEGIN PUBLIC KEY-----\n{body}\n-----END PUBLIC KEY-----"


def encrypt_pin(pin: str, public_key_pem: str) -> str:
    if "-----BEGIN" not in public_key_pem:
        public_key_pem = format_public_key(public_key_pem)
    try:
        key = serialization.load_pem_public_key(public_key_pem.encode("utf-8"))
        encrypted = key.encrypt(
            str(pin).encode("utf-8"),
            padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None),
        )
    except (ValueError, TypeError) as e:
        raise PaymentError(f"PIN encryption failed: {e}") from e
    return base64.b64encode(encrypted).decode("ascii")


def encrypt_pin_with_key(pin: str, key_data: Dict[str, Any]) -> Dict[str, Any]:
    """``key_data`` es la respuesta de /v1/rsa/encryption-keys (con ``data.key``)."""
    data = (key_data or {}).get("data") or {}
    if not data.get("key"):
        raise PaymentError("PIN encryption with key failed: invalid encryption key data")
    return {
        "key_id": data.get("key_id"),
        "encrypted_pin": encrypt_pin(pin, format_public_key(data["key"])),
        "valid_upto": data.get("valid_upto"),
    }


def _parse_datetime(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def is_key_valid(key_data: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    valid_upto = ((key_data or {}).get("data") or {}).get("valid_upto")
    if not valid_upto:
        return False
    expires = _parse_datetime(valid_upto)
    return bool(expires and expires > (now or utcnow()))
