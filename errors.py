"""
Storefront errors

Every failure the cart and checkout paths can report. Each error knows the
HTTP status it maps to; main.py renders them as {"success": false, ...}.
"""
from typing import Any, Dict


class CommerceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_payload(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class ValidationError(CommerceError):
    """Bad input the customer has to correct (empty cart, missing contact info)."""
    status_code = 400


class NotFoundError(CommerceError):
    status_code = 404


class UnavailableError(CommerceError):
    """The product or its campaign exists but is not active."""
    status_code = 403


class InsufficientStockError(CommerceError):
    status_code = 409

    def __init__(self, remaining: int, message: str = ""):
        super().__init__(message or f"Insufficient stock. Only {remaining} left")
        self.remaining = remaining

    def as_payload(self) -> Dict[str, Any]:
        payload = super().as_payload()
        payload["remaining"] = self.remaining
        return payload


class TransientStoreError(CommerceError):
    """A database write failed. Earlier writes of the same checkout stay applied."""
    status_code = 503
