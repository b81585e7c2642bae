"""Telnyx webhook envelope"""

from pydantic import BaseModel
from typing import Optional, Dict, Any


class TelnyxWebhook(BaseModel):
    """
    Telnyx v2 event envelope:
    {"data": {"event_type": "message.received", "id": ..., "payload": {...}}, "meta": {...}}
    """
    data: Dict[str, Any]
    meta: Optional[Dict[str, Any]] = None

    @property
    def event_type(self) -> Optional[str]:
        return self.data.get("event_type")

    @property
    def payload(self) -> Any:
        """Raw payload; its shape is checked by the consumer"""
        return self.data.get("payload")
