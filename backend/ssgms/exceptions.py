"""Typed exceptions for the grant management service.

Business rules raise these instead of ``HTTPException`` so they can be
exercised without a web stack.  ``main.py`` registers a single handler that
turns any ``GrantsAppError`` into ``{"detail": ..., "code": ...}`` with the
class's ``status_code``.

    GrantsAppError
    +-- ValidationError          422  rejected before any write
    +-- AuthenticationError      401  missing or invalid session token
    +-- PermissionDeniedError    403
    +-- NotFoundError            404
    +-- ConflictError            409  duplicate year / duplicate invite
    +-- ReferenceInUseError      409  delete blocked by a foreign key
    +-- IdentityProviderError    502  admin API call failed
    +-- StorageError             502  document blob store call failed
    +-- ConfigurationError       500
"""
from __future__ import annotations


class GrantsAppError(Exception):
    """Base class for every expected failure in the service."""

    status_code: int = 400
    code: str = "GRANTS_APP_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(GrantsAppError):
    status_code = 422
    code = "VALIDATION_FAILED"


class AuthenticationError(GrantsAppError):
    status_code = 401
    code = "NOT_AUTHENTICATED"


class PermissionDeniedError(GrantsAppError):
    status_code = 403
    code = "PERMISSION_DENIED"


class NotFoundError(GrantsAppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(GrantsAppError):
    status_code = 409
    code = "CONFLICT"


class ReferenceInUseError(GrantsAppError):
    """A delete was refused because other rows still reference the target."""

    status_code = 409
    code = "REFERENCE_IN_USE"

    def __init__(self, entity_type: str, entity_id: object, message: str | None = None) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            message
            or f"Failed to delete {entity_type} {entity_id}. It might be in use."
        )


class IdentityProviderError(GrantsAppError):
    status_code = 502
    code = "IDENTITY_PROVIDER_ERROR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(GrantsAppError):
    status_code = 500
    code = "CONFIGURATION_ERROR"


class StorageError(GrantsAppError):
    status_code = 502
    code = "STORAGE_ERROR"
