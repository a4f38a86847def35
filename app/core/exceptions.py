from typing import List, Optional


class MarketplaceServiceError(Exception):
    """Base exception for all service-related errors."""
    status_code = 500

class NotFoundError(MarketplaceServiceError):
    """Raised when a requested entity does not exist."""
    status_code = 404

class ProductNotFoundError(NotFoundError):
    """Raised when product is not found."""
    pass

class PurchaseNotFoundError(NotFoundError):
    """Raised when purchase is not found."""
    pass

class OfferNotFoundError(NotFoundError):
    """Raised when offer is not found."""
    pass

class UserNotFoundError(NotFoundError):
    """Raised when a user profile is not found."""
    pass

class ValidationError(MarketplaceServiceError):
    """Raised when data validation or a business rule fails."""
    status_code = 400

class PermissionDeniedError(MarketplaceServiceError):
    """Raised when the caller is not the party allowed to act."""
    status_code = 403

class PaymentPlatformError(MarketplaceServiceError):
    """Base exception for payment platform errors."""
    pass

class StripeAPIError(PaymentPlatformError):
    """Raised when Stripe API calls fail."""

    def __init__(self, message: str, error_type: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.code = code

    def to_dict(self) -> dict:
        return {"message": self.message, "type": self.error_type, "code": self.code}

class WebhookSignatureError(PaymentPlatformError):
    """Raised when an inbound webhook fails signature verification."""
    status_code = 400

class PayoutError(MarketplaceServiceError):
    """Raised when a payout cannot be triggered.

    Carries the step log collected so far and the HTTP status the caller
    should answer with.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        logs: Optional[List[str]] = None,
        extra: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.logs = logs or []
        self.extra = extra or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        body.update(self.extra)
        body["logs"] = self.logs
        return body
