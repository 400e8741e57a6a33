# Overview: Error taxonomy shared by the ledger services and the API layer.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(LedgerError):
    """Referenced product, customer, bill, order or employee is absent."""
    status_code = 404


class ConflictError(LedgerError, ValueError):
    """409-level business rule conflict (e.g., duplicate mobile, illegal transition)."""
    status_code = 409


class InsufficientStockError(ConflictError):
    """Requested quantity exceeds current stock at deduction time."""

    def __init__(self, product_id: int, requested: int, available: int, *, product_name: str | None = None,
                 item_index: int | None = None):
        label = product_name or f"product {product_id}"
        details = {
            "product_id": product_id,
            "requested_quantity": requested,
            "available": available,
        }
        if item_index is not None:
            details["item_index"] = item_index
        super().__init__(f"Insufficient stock for {label}", details=details)
        self.product_id = product_id
        self.requested = requested
        self.available = available


class DuplicateIdentifierError(ConflictError):
    """
    A generated bill/order/employee number collided on insert.

    Recovered by bounded retry; only reaches callers as ConflictError.
    """

    def __init__(self, namespace: str, identifier: str | None = None):
        super().__init__(
            f"Identifier already in use in {namespace}",
            details={"namespace": namespace, "identifier": identifier},
        )
        self.namespace = namespace
        self.identifier = identifier


class AuthenticationError(LedgerError):
    """Missing, invalid or expired credentials."""
    status_code = 401
