# ============================================================================
# Priority Transfers Notify - Delivery Module
# ============================================================================

from .base import DeliveryChannel, DeliveryResult
from .email import EmailDelivery

__all__ = [
    "DeliveryChannel",
    "DeliveryResult",
    "EmailDelivery",
]
