"""Domain error taxonomy.

WHAT:
    Exception types raised by the service layer (progress, checklist,
    metrics ingestion, notifications) and translated to HTTP responses by
    the single handler registered in `portal/main.py`.

WHY:
    - Services stay HTTP-agnostic and can be reused by scripts and tests.
    - The UI needs to tell "reconnect your Meta account" apart from
      "try again later", so external failures get distinct types.

REFERENCES:
    - portal/main.py (`portal_error_handler`)
    - portal/services/metrics_ingestor.py (external error translation)
"""

from typing import List, Optional


class PortalError(Exception):
    """Base class for all domain errors.

    Attributes:
        message: Human-readable description, safe to show to end users
        status_code: HTTP status the API layer responds with
        code: Stable machine-readable identifier for the frontend
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(PortalError):
    """Bad or missing input. Lists every offending field, not just the first."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, *, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = list(fields or [])

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["fields"] = self.fields
        return payload


class NotFoundError(PortalError):
    """Unknown customer, tutorial, notification or ad account."""

    status_code = 404
    code = "not_found"


class AuthError(PortalError):
    """No usable Meta credential is stored for the customer."""

    status_code = 401
    code = "meta_not_connected"


class ExternalAuthError(AuthError):
    """Meta rejected the stored credential (expired, revoked, missing scope)."""

    code = "reconnect_required"


class ExternalApiError(PortalError):
    """Meta returned an error that is not credential related. Retryable."""

    status_code = 502
    code = "external_api_error"


class NetworkError(ExternalApiError):
    """Meta could not be reached (timeout, connection reset). Retryable."""

    status_code = 503
    code = "network_error"


class ConflictError(PortalError):
    """Duplicate submission (e.g. a second onboarding checklist)."""

    status_code = 409
    code = "conflict"


class PersistenceError(PortalError):
    """Storage failure. Fatal to the request; always logged by the raiser."""

    status_code = 500
    code = "persistence_error"
