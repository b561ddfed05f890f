# app/core/errors.py
"""
Domain errors for the order / payment / inventory flow.

All of them are HTTPException subclasses, so services raise them exactly
like a plain HTTPException and FastAPI renders the usual {"detail": ...}
body. Routers never need to translate them.

    ValidationFailed           400  malformed / missing checkout fields
    InvalidStatus              400  status value outside the order enum
    IllegalTransition          400  order state machine violation
    PaymentVerificationFailed  400  gateway signature or charged amount mismatch
    NotFound                   404  order / product absent (or not yours)
    StorageError               500  persistence failure mid-write
"""

from typing import Any

from fastapi import HTTPException, status


class ShopError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request failed"

    def __init__(self, detail: Any = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail if detail is not None else self.default_detail,
        )


class ValidationFailed(ShopError):
    default_detail = "Validation failed"


class InvalidStatus(ShopError):
    default_detail = "Invalid status"


class IllegalTransition(ShopError):
    default_detail = "Illegal status transition"


class PaymentVerificationFailed(ShopError):
    default_detail = "Payment verification failed"


class NotFound(ShopError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class StorageError(ShopError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Storage failure, the operation was rolled back"
