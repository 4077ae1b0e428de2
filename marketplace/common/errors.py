"""
Error taxonomy for the marketplace services.

Services raise these; the application factory renders them as JSON with the
matching HTTP status. Catch `MarketplaceError` to handle any business failure.
"""
from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """Base exception for all business-rule failures."""

    code: str = "marketplace_error"
    status_code: int = 500

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        if message is None:
            message = "An unspecified marketplace error occurred."
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": False, "error": self.code, "details": self.message}
        payload.update(self.extra)
        return payload


class NotFound(MarketplaceError):
    """Raised when the referenced entity does not exist."""

    code = "not_found"
    status_code = 404


class CapacityExceeded(MarketplaceError):
    """
    Raised when adding quantity would push a group past its target.

    `available` is the exact quantity that can still be committed, so the
    caller can retry with a valid amount.
    """

    code = "capacity_exceeded"
    status_code = 400

    def __init__(self, group_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"Adding {requested} would exceed target quantity. Available: {available}",
            group_id=group_id,
            requested=requested,
            available=available,
        )
        self.group_id = group_id
        self.requested = requested
        self.available = available


class Conflict(MarketplaceError):
    """Raised on a duplicate (vendor_id, group_id) commitment."""

    code = "conflict"
    status_code = 409


class InvalidReference(MarketplaceError):
    """Raised when a foreign key target (vendor, supplier, group) is absent."""

    code = "invalid_reference"
    status_code = 400


class InvalidArgument(MarketplaceError):
    """Raised for non-positive quantities, unknown status values and missing fields."""

    code = "invalid_argument"
    status_code = 400
