"""
backend/errors.py

Error taxonomy shared by the auth gate, provisioning, resource access and
route layers. main.py maps every AppError to a `{"error": ...}` response.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors the route layer converts into a response."""
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str = ""):
        self.message = message or self.public_message
        super().__init__(self.message)

    def client_message(self, expose_detail: bool) -> str:
        return self.message


class AuthError(AppError):
    """No valid session, or the identity provider rejected the token."""
    status_code = 401
    public_message = "Unauthorized"

    def client_message(self, expose_detail: bool) -> str:
        # Never leak why verification failed
        return self.public_message


class AccessDeniedError(AuthError):
    """Authenticated, but not allowed to touch the target resource."""
    status_code = 403
    public_message = "Access denied"


class ValidationError(AppError):
    """Missing or malformed input fields."""
    status_code = 400
    public_message = "Validation failed"


class NotFoundError(AppError):
    status_code = 404
    public_message = "Not found"


class StorageError(AppError):
    """Storage-service failure, carrying the upstream message."""
    status_code = 500

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Failed to {operation}: {detail}" if detail else f"Failed to {operation}")

    def client_message(self, expose_detail: bool) -> str:
        if expose_detail:
            return self.message
        return f"Failed to {self.operation}"


class StorageUnavailable(StorageError):
    """Storage unreachable or the call exceeded its timeout."""


class ProvisionError(AppError):
    """Bootstrap of a user's primary portfolio failed."""
    STORAGE_UNAVAILABLE = "storage_unavailable"
    CONSTRAINT_VIOLATION = "constraint_violation"
    INVALID_USER = "invalid_user"

    def __init__(self, kind: str, detail: str = ""):
        self.kind = kind
        self.detail = detail
        self.status_code = 400 if kind == self.INVALID_USER else 500
        super().__init__(f"Failed to provision portfolio ({kind}): {detail}" if detail else f"Failed to provision portfolio ({kind})")

    def client_message(self, expose_detail: bool) -> str:
        if expose_detail or self.kind == self.INVALID_USER:
            return self.message
        return "Failed to provision portfolio"


def describe_validation_errors(errors) -> str:
    """pydantic/FastAPI error list -> 'field: msg, field: msg'."""
    parts = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc)
        parts.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return ", ".join(parts)
