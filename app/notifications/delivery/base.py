# ============================================================================
# Priority Transfers Notify - Base Delivery Channel
# ============================================================================

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass
class DeliveryResult:
    """Result of a delivery attempt."""
    success: bool
    recipient: str
    channel: str
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, recipient: str, channel: str, message_id: str = None) -> "DeliveryResult":
        return cls(success=True, recipient=recipient, channel=channel, message_id=message_id)

    @classmethod
    def fail(cls, recipient: str, channel: str, error: str) -> "DeliveryResult":
        return cls(success=False, recipient=recipient, channel=channel, error=error)

    def to_dict(self) -> Dict[str, Any]:
        """Response body for the HTTP layer: {success} or {success, error}."""
        data: Dict[str, Any] = {"success": self.success}
        if self.error:
            data["error"] = self.error
        return data


class DeliveryChannel(ABC):
    """Abstract base class for delivery channels.

    send() makes exactly one attempt and reports failure through the
    returned DeliveryResult. It must not raise.
    """

    channel_name: str = "base"

    @abstractmethod
    def send(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> DeliveryResult:
        """Send a message through this channel."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test if the channel is properly configured."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the channel is configured."""
        pass
