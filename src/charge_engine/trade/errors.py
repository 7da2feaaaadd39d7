"""Trade error taxonomy.

Every error carries a stable ``code`` so the HTTP layer and callers can
branch on it without parsing messages.
"""

from __future__ import annotations


class TradeError(Exception):
    """Base class for all trade errors."""

    code = "TRADE_ERROR"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class ValidationError(TradeError):
    """Malformed or missing create parameters."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class OrderAlreadyPaid(TradeError):
    """The order already has a paid charge."""

    code = "ORDER_ALREADY_PAID"

    def __init__(self, app_id: int, order_no: str):
        self.app_id = app_id
        self.order_no = order_no
        super().__init__(f"Order {order_no} of app {app_id} is already paid")


class ChannelRejected(TradeError):
    """The payment platform refused or failed the request."""

    code = "CHANNEL_REJECTED"

    def __init__(self, message: str, platform_code: str | None = None, retryable: bool = True):
        self.platform_code = platform_code
        self.retryable = retryable
        super().__init__(message)


class ChannelTransportError(TradeError):
    """The platform could not be reached or did not answer in time."""

    code = "CHANNEL_TRANSPORT_ERROR"


class ChannelNotConfigured(TradeError):
    """No adapter is registered for the channel."""

    code = "CHANNEL_NOT_CONFIGURED"


class ChargeNotFound(TradeError):
    """The charge does not exist."""

    code = "CHARGE_NOT_FOUND"

    def __init__(self, charge_no: str):
        self.charge_no = charge_no
        super().__init__(f"Charge {charge_no} not found")


class RefundNotFound(TradeError):
    """The refund does not exist."""

    code = "REFUND_NOT_FOUND"

    def __init__(self, refund_no: str):
        self.refund_no = refund_no
        super().__init__(f"Refund {refund_no} not found")


class ChargeNotRefundable(TradeError):
    """The charge is not paid or lacks refund headroom."""

    code = "CHARGE_NOT_REFUNDABLE"

    def __init__(self, charge_no: str, reason: str):
        self.charge_no = charge_no
        self.reason = reason
        super().__init__(f"Charge {charge_no} cannot be refunded: {reason}")


class ConcurrentModification(TradeError):
    """The stored record changed between read and write."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, entity: str, key: str, expected_version: int | None):
        self.entity = entity
        self.key = key
        self.expected_version = expected_version
        super().__init__(
            f"{entity} {key} was modified concurrently (expected version {expected_version})"
        )


class UnverifiedNotification(TradeError):
    """A platform notification failed authentication."""

    code = "UNVERIFIED_NOTIFICATION"

    def __init__(self, business_id: str, reason: str = "signature check failed"):
        self.business_id = business_id
        self.reason = reason
        super().__init__(f"Notification for {business_id} rejected: {reason}")
