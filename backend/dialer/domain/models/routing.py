"""
Routing Models
Typed correlation payload handed to the task router and the assignment reply
"""
import json
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from typing import Any, Optional, Union
from enum import Enum

from dialer.core.exceptions import CorrelationError


class AssignmentAction(str, Enum):
    DEQUEUE = "dequeue"
    REJECT = "reject"


class RoutingCorrelation(BaseModel):
    """
    Identifies the queue item behind a routing task.

    Serialized as the task's attributes when the answered call is enqueued
    into the workflow, and validated again when the assignment callback
    returns it.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    tenant_id: str = Field(..., min_length=1)
    campaign_id: str = Field(..., min_length=1)
    queue_id: str = Field(..., min_length=1)
    channel: str = "voice"

    def to_attributes(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_attributes(cls, raw: Union[str, bytes, dict, None]) -> "RoutingCorrelation":
        """
        Parse task attributes back into a correlation.

        Raises:
            CorrelationError: If the payload is absent, not JSON, or missing fields
        """
        if raw is None or raw == "" or raw == b"":
            raise CorrelationError("task_attributes_missing")

        data: Any = raw
        if isinstance(raw, (str, bytes)):
            try:
                data = json.loads(raw)
            except ValueError as e:
                raise CorrelationError("task_attributes_not_json", str(e))

        if not isinstance(data, dict):
            raise CorrelationError("task_attributes_not_object")

        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise CorrelationError("task_attributes_invalid", str(e))


class AssignmentInstruction(BaseModel):
    """Reply to the routing provider's assignment callback"""
    instruction: AssignmentAction
    from_number: Optional[str] = None
    post_work_activity_sid: Optional[str] = None

    @classmethod
    def reject(cls) -> "AssignmentInstruction":
        return cls(instruction=AssignmentAction.REJECT)

    def to_provider_dict(self) -> dict:
        """Provider wire format: optional keys are omitted rather than null."""
        body: dict = {"instruction": self.instruction.value}
        if self.from_number:
            body["from"] = self.from_number
        if self.post_work_activity_sid:
            body["post_work_activity_sid"] = self.post_work_activity_sid
        return body


class RoutingConfig(BaseModel):
    """Tenant routing resources bootstrapped in the task router"""
    workspace_sid: str
    workflow_sid: str
    taskqueue_sid: Optional[str] = None
