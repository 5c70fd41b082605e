# Overview: Error taxonomy shared by the sale engine services and API routes.

from __future__ import annotations


class SaleEngineError(Exception):
    """
    Base class for business-rule failures raised by the sale engine.

    Routes map subclasses to HTTP statuses through `status_code`; `details`
    carries structured context (ids, requested vs available quantities).
    """
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFoundError(SaleEngineError):
    """Sale, item, product, inventory or shift absent (or owned by another tenant)."""
    status_code = 404


class InvalidStateError(SaleEngineError):
    """Operation not legal for the sale's current status."""
    status_code = 422

    def __init__(self, operation: str, status: str, details: dict | None = None):
        super().__init__(
            f"Cannot {operation} a sale with status {status}",
            details={"operation": operation, "status": status, **(details or {})},
        )
        self.operation = operation
        self.status = status


class InsufficientStockError(SaleEngineError):
    """Reservation or deduction would exceed available stock."""
    status_code = 422


class InsufficientPaymentError(SaleEngineError):
    """Amount paid is below the net amount due."""
    status_code = 422


class ValidationError(SaleEngineError, ValueError):
    """400-level input problem (non-positive quantity, short void reason, ...)."""
    status_code = 400
