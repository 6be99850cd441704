from __future__ import annotations

from typing import Any


class PortalError(Exception):
    """Base for every failure the request/payment subsystem reports to its caller.

    ``detail`` is the human-readable message shown to the user. ``provider_detail``
    carries the PIX provider's raw diagnostic, untouched, when there is one.
    ``configuration_problem`` separates "fix your setup" from "try again later".
    """

    status_code = 400
    code = "PORTAL_ERROR"
    configuration_problem = False

    def __init__(self, detail: str, *, provider_detail: Any = None):
        super().__init__(detail)
        self.detail = detail
        self.provider_detail = provider_detail

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "detail": self.detail,
            "code": self.code,
            "configuration_problem": bool(self.configuration_problem),
        }
        if self.provider_detail is not None:
            payload["provider_detail"] = self.provider_detail
        return payload


class ValidationError(PortalError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFound(PortalError):
    status_code = 404
    code = "NOT_FOUND"


class UnknownTransaction(NotFound):
    code = "UNKNOWN_TRANSACTION"


class InvalidTransition(PortalError):
    status_code = 409
    code = "INVALID_TRANSITION"


class InvalidState(PortalError):
    status_code = 409
    code = "INVALID_STATE"


class PreconditionFailed(PortalError):
    status_code = 412
    code = "PRECONDITION_FAILED"


class GatewayNotConfigured(PortalError):
    status_code = 503
    code = "GATEWAY_NOT_CONFIGURED"
    configuration_problem = True


class GatewayError(PortalError):
    """Transport-level failure talking to the PIX provider (timeout, DNS, TLS reset)."""

    status_code = 504
    code = "GATEWAY_ERROR"


class AuthError(GatewayError):
    status_code = 502
    code = "GATEWAY_AUTH_ERROR"
    configuration_problem = True


class ChargeError(GatewayError):
    status_code = 502
    code = "GATEWAY_CHARGE_ERROR"

    def __init__(self, detail: str, *, provider_detail: Any = None, http_status: int | None = None):
        super().__init__(detail, provider_detail=provider_detail)
        self.http_status = http_status
        # 4xx from the provider means the request itself (key, amount, scope) is wrong.
        self.configuration_problem = http_status is not None and 400 <= http_status < 500
