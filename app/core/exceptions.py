"""
Storefront Exception Hierarchy

All exceptions include code, message, and details so the HTTP layer can
render them as {"ok": false, "error": {...}} without crashing the process.

Exception Hierarchy:
    PlatformError
    └── ShippingError
        ├── CarrierAuthenticationError
        │   └── CarrierLockoutError
        ├── CarrierBackoffError
        ├── CarrierApiError
        ├── CarrierTransportError
        ├── ShipmentValidationError
        ├── ShipmentPreconditionError
        │   └── OrderCancelledError
        └── OrderNotFoundError
"""
import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class PlatformError(Exception):
    """
    Base exception for all storefront custom errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
        http_status: Status the platform API answers with
    """

    default_code: str = "PLATFORM_ERROR"
    default_severity: str = "P2"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# SHIPPING ERRORS
# =============================================================================

class ShippingError(PlatformError):
    """Base exception for carrier/shipping errors."""
    default_code = "SHIPPING_ERROR"
    default_severity = "P1"
    http_status = 400


class CarrierAuthenticationError(ShippingError):
    """Missing/invalid carrier credentials or a rejected token after re-login."""
    default_code = "CARRIER_AUTH_FAILED"
    default_severity = "P0"
    http_status = 502


class CarrierLockoutError(CarrierAuthenticationError):
    """Carrier locked the account after too many failed logins."""
    default_code = "CARRIER_ACCOUNT_LOCKED"
    http_status = 503

    def __init__(
        self,
        message: str,
        retry_after_seconds: Optional[int] = None,
        **kwargs
    ):
        self.retry_after_seconds = retry_after_seconds
        details = kwargs.pop("details", {})
        details["retry_after_seconds"] = retry_after_seconds
        if retry_after_seconds:
            details["wait_hint"] = f"Wait about {_humanize_seconds(retry_after_seconds)} before trying again"
        super().__init__(message, details=details, **kwargs)

    @property
    def wait_hint(self) -> Optional[str]:
        return self.details.get("wait_hint")


class CarrierBackoffError(ShippingError):
    """A login was attempted too soon after a failed one."""
    default_code = "CARRIER_AUTH_BACKOFF"
    default_severity = "P2"
    http_status = 503

    def __init__(
        self,
        message: str,
        retry_after_seconds: Optional[int] = None,
        **kwargs
    ):
        self.retry_after_seconds = retry_after_seconds
        details = kwargs.pop("details", {})
        details["retry_after_seconds"] = retry_after_seconds
        super().__init__(message, details=details, **kwargs)


class CarrierApiError(ShippingError):
    """Carrier answered with a 4xx/5xx that is not otherwise classified."""
    default_code = "CARRIER_API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
        **kwargs
    ):
        self.status_code = status_code
        self.body = body
        details = kwargs.pop("details", {})
        details.update({
            "status_code": status_code,
            "body": body,
        })
        super().__init__(message, details=details, **kwargs)


class CarrierTransportError(ShippingError):
    """Network failure or timeout talking to the carrier."""
    default_code = "CARRIER_TRANSPORT_ERROR"
    http_status = 504

    def __init__(
        self,
        message: str,
        timeout: bool = False,
        **kwargs
    ):
        self.timeout = timeout
        details = kwargs.pop("details", {})
        details["timeout"] = timeout
        super().__init__(message, code="CARRIER_TIMEOUT" if timeout else None, details=details, **kwargs)


class ShipmentValidationError(ShippingError):
    """Mapped payload breaks one or more carrier rules; never sent."""
    default_code = "SHIPMENT_PAYLOAD_INVALID"
    default_severity = "P2"

    def __init__(
        self,
        message: str,
        violations: Optional[List[str]] = None,
        **kwargs
    ):
        self.violations = list(violations or [])
        details = kwargs.pop("details", {})
        details["violations"] = self.violations
        super().__init__(message, details=details, **kwargs)


class ShipmentPreconditionError(ShippingError):
    """Fulfillment step attempted before its prerequisite exists on the order."""
    default_code = "SHIPMENT_PRECONDITION_FAILED"
    default_severity = "P3"

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        missing_field: Optional[str] = None,
        **kwargs
    ):
        self.step = step
        self.missing_field = missing_field
        details = kwargs.pop("details", {})
        details.update({
            "step": step,
            "missing_field": missing_field,
        })
        super().__init__(message, details=details, **kwargs)


class OrderCancelledError(ShipmentPreconditionError):
    """Cancelled orders never reach the carrier."""
    default_code = "ORDER_CANCELLED"


class OrderNotFoundError(ShippingError):
    default_code = "ORDER_NOT_FOUND"
    default_severity = "P3"
    http_status = 404


def _humanize_seconds(seconds: int) -> str:
    if seconds >= 3600 and seconds % 3600 == 0:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''}"
    if seconds >= 60:
        minutes = -(-seconds // 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
