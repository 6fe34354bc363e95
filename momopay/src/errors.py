"""Excepciones del dominio de pagos.

Cada excepción conoce el código HTTP y el código de error con que se
devuelve al cliente; el handler registrado en ``create_app`` las serializa.
"""

from typing import Any, List, Optional


class PaymentError(Exception):
    status_code = 500
    code = "PAYMENT_ERROR"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(PaymentError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, errors: List[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}", details=self.errors)


class NotFoundError(PaymentError):
    status_code = 404
    code = "NOT_FOUND"


class ConfigurationError(PaymentError):
    status_code = 500
    code = "CONFIGURATION_ERROR"


class ProviderError(PaymentError):
    """Error devuelto (o provocado) por la API de MTN o Airtel."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, provider_status: Optional[int] = None, body: Any = None):
        super().__init__(message, details=body)
        self.provider_status = provider_status
        self.body = body

    @property
    def status_code(self) -> int:  # type: ignore[override]
        if self.provider_status in (400, 404, 409):
            return self.provider_status
        return 502
