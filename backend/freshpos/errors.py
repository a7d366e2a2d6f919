# Overview: Error taxonomy shared by services and routes.

"""
Every error raised by the ledger, catalog, sales and reporting services is a
FreshPOSError. Routes render them as {"error": message, "details": {...}} with
the error's status code.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any


class FreshPOSError(Exception):
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


@dataclass(frozen=True)
class Violation:
    field: str
    rule: str
    message: str
    value: Any = None

    def to_dict(self) -> dict:
        return asdict(self)


class ValidationError(FreshPOSError, ValueError):
    """400-level input problem. Always carries every violated rule."""
    status_code = 400

    def __init__(self, message: str, violations: list[Violation] | None = None):
        self.violations = list(violations or [])
        super().__init__(message, {"violations": [v.to_dict() for v in self.violations]})

    @classmethod
    def single(cls, field: str, rule: str, message: str, value: Any = None) -> "ValidationError":
        return cls(message, [Violation(field, rule, message, value)])


class NotFoundError(FreshPOSError, LookupError):
    status_code = 404


class InsufficientStock(FreshPOSError):
    """
    Authoritative ledger check failed.

    items: [{"product_id", "requested", "available"}], quantities in kg.
    """
    status_code = 409

    def __init__(self, message: str, items: list[dict]):
        self.items = items
        super().__init__(message, {"items": items})


class ConflictError(FreshPOSError, ValueError):
    """409-level conflict: lock contention, lost optimistic race, duplicate name."""
    status_code = 409


class PersistenceError(FreshPOSError):
    """Storage failure; fatal to the current request."""
    status_code = 500
