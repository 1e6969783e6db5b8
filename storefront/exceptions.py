"""Error taxonomy for the storefront checkout and webhook flows.

Every error carries the HTTP status it maps to; the application-level
exception handler in ``storefront.main`` renders them as
``{"error": ..., "code": ..., "details": ...}``.
"""


class StorefrontError(Exception):
    """Base class for all storefront errors."""

    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details=None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class InvalidPayloadError(StorefrontError):
    """Client input is malformed; resubmitting it unchanged never helps."""

    def __init__(self, message: str = "Invalid payload", details=None):
        super().__init__(message, code="INVALID_PAYLOAD", status_code=400, details=details)


class ProductsUnavailableError(StorefrontError):
    """Some referenced products are missing or inactive."""

    def __init__(self, missing_ids):
        self.missing_ids = list(missing_ids)
        super().__init__(
            "Some products not found or inactive",
            code="PRODUCTS_UNAVAILABLE",
            status_code=400,
            details=f"Missing product IDs: {', '.join(self.missing_ids)}",
        )


class InvalidPromoCodeError(StorefrontError):
    def __init__(self, message: str = "Invalid or expired promo code"):
        super().__init__(message, code="INVALID_PROMO_CODE", status_code=400)


class RateLimitedError(StorefrontError):
    """Raised by the admission guard; carries the limiter decision for headers."""

    def __init__(self, decision, retry_after: int):
        self.decision = decision
        self.retry_after = retry_after
        super().__init__(
            f"Too many checkout attempts. Try again in {retry_after} seconds.",
            code="RATE_LIMIT_EXCEEDED",
            status_code=429,
        )


class MissingSignatureError(StorefrontError):
    def __init__(self, message: str = "Missing stripe-signature"):
        super().__init__(message, code="MISSING_SIGNATURE", status_code=400)


class InvalidSignatureError(StorefrontError):
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, code="INVALID_SIGNATURE", status_code=400)


class ServerMisconfiguredError(StorefrontError):
    """Operator action required (e.g. webhook secret not set)."""

    def __init__(self, message: str = "Server configuration missing", details=None):
        super().__init__(message, code="SERVER_MISCONFIGURED", status_code=500, details=details)


class PaymentProviderError(StorefrontError):
    def __init__(self, message: str = "Payment provider error", details=None):
        super().__init__(message, code="PAYMENT_PROVIDER_ERROR", status_code=502, details=details)


class PersistenceFailureError(StorefrontError):
    """Surfaced as a 500 so Stripe redelivers the webhook later."""

    def __init__(self, message: str = "Failed to process order"):
        super().__init__(message, code="PERSISTENCE_FAILURE", status_code=500)


class ProductNotFoundError(StorefrontError):
    def __init__(self, message: str = "Product not found"):
        super().__init__(message, code="PRODUCT_NOT_FOUND", status_code=404)


class OrderNotFoundError(StorefrontError):
    def __init__(self, message: str = "Order not found"):
        super().__init__(message, code="ORDER_NOT_FOUND", status_code=404)
