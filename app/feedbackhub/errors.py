"""
Error taxonomy shared by the policy, service and HTTP layers.

Services return `(value, PolicyError | None)` instead of raising; the HTTP
layer turns the error kind into a status code with `error_response`.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from flask import jsonify

NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
NOT_FOUND = "NOT_FOUND"
PERMISSION_DENIED = "PERMISSION_DENIED"
INVALID_STATE = "INVALID_STATE"
VALIDATION_FAILED = "VALIDATION_FAILED"
RATE_LIMITED = "RATE_LIMITED"

HTTP_STATUS = {
    NOT_AUTHENTICATED: 401,
    NOT_FOUND: 404,
    PERMISSION_DENIED: 403,
    INVALID_STATE: 409,
    VALIDATION_FAILED: 400,
    RATE_LIMITED: 429,
}


@dataclass(frozen=True)
class PolicyError:
    kind: str
    message: str
    details: tuple[str, ...] = field(default_factory=tuple)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS.get(self.kind, 400)

    def to_dict(self) -> dict:
        out: dict[str, object] = {"kind": self.kind, "message": self.message}
        if self.details:
            out["details"] = list(self.details)
        return out


def not_authenticated(message: str = "Authentication required.") -> PolicyError:
    return PolicyError(NOT_AUTHENTICATED, message)


def not_found(what: str) -> PolicyError:
    return PolicyError(NOT_FOUND, f"{what} not found.")


def permission_denied(message: str) -> PolicyError:
    return PolicyError(PERMISSION_DENIED, message)


def invalid_state(message: str) -> PolicyError:
    return PolicyError(INVALID_STATE, message)


def validation_failed(errors: list[str] | str) -> PolicyError:
    if isinstance(errors, str):
        return PolicyError(VALIDATION_FAILED, errors)
    return PolicyError(VALIDATION_FAILED, errors[0] if len(errors) == 1 else "Invalid request.", tuple(errors))


def error_response(err: PolicyError):
    return jsonify({"error": err.to_dict()}), err.status_code
