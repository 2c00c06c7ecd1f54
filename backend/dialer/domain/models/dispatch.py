"""
Dispatch Result Models
"""
from pydantic import BaseModel
from typing import Optional

from dialer.domain.models.queue_item import QueueItem


class CallCredentials(BaseModel):
    """Tenant-scoped calling identity resolved before placing calls"""
    account_sid: str
    auth_token: str
    default_from_number: Optional[str] = None

    def require_from_number(self) -> str:
        from dialer.core.exceptions import ConfigurationError

        if not self.default_from_number:
            raise ConfigurationError("default_from_missing")
        return self.default_from_number


class DispatchResult(BaseModel):
    """
    Result of a sequential dispatch.

    `item` is None when the queue had nothing to dial, which callers must
    treat as "try again later" rather than as an error.
    """
    item: Optional[QueueItem] = None
    call_handle: Optional[str] = None

    @property
    def nothing_to_dial(self) -> bool:
        return self.item is None

    def to_response(self) -> dict:
        response = {"ok": True, "next": self.item.to_response() if self.item else None}
        if self.call_handle:
            response["call_sid"] = self.call_handle
        return response
