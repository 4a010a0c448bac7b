"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Every exception
carries a stable ``error_code`` so the mobile client can branch on it;
main.py renders them as ``{"error": detail, "code": error_code}``.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any, List


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class ValidationError(APIException):
    """Malformed or out-of-range input."""

    def __init__(self, detail: str = "Invalid request", details: Optional[List[Dict[str, str]]] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="invalid_request"
        )
        self.details = details or []


class TierLimitError(APIException):
    """The caller's tier does not allow this action."""

    GOAL_RESTRICTED = "goal_restricted"
    EQUIPMENT_RESTRICTED = "equipment_restricted"
    DAILY_LIMIT = "daily_limit"
    PREMIUM_REQUIRED = "premium_required"

    def __init__(self, detail: str, code: str):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=code
        )

    @property
    def code(self) -> str:
        return self.error_code


class UnauthorizedError(APIException):
    """Server-to-server key missing or wrong."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="unauthorized"
        )


class ProviderError(APIException):
    """
    A generation, billing or storage provider is unavailable or misbehaving.

    The detail is what the client sees; keep internals in the log.
    """

    def __init__(self, detail: str = "Upstream provider error", error_code: str = "provider_error"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code
        )


class NoProviderConfiguredError(ProviderError):
    def __init__(self):
        super().__init__(
            detail="Workout generation is not configured",
            error_code="no_provider_configured"
        )


class PlanSchemaError(ProviderError):
    def __init__(self):
        super().__init__(
            detail="AI response did not match schema",
            error_code="invalid_plan"
        )


class ProviderUnavailableError(ProviderError):
    """Integration has no credentials configured."""

    def __init__(self, provider: str):
        super().__init__(
            detail="Server misconfigured",
            error_code="provider_unavailable"
        )
        self.provider = provider


class StorageError(ProviderError):
    def __init__(self):
        super().__init__(
            detail="Storage unavailable",
            error_code="storage_unavailable"
        )


class ReceiptNotPaidError(APIException):
    """Receipt refers to a checkout that has not been paid."""

    def __init__(self, detail: str = "Purchase has not been paid"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="receipt_not_paid"
        )


class UnsupportedProviderError(APIException):
    def __init__(self, provider: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported billing provider: {provider}",
            error_code="unsupported_provider"
        )
        self.provider = provider
