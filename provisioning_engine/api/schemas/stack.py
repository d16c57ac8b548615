from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class ApplyRequest(BaseModel):
    # overrides the configured certificate for this run
    certificate_arn: Optional[str] = None


class RunReportResponse(BaseModel):
    stack_name: str
    operation: str
    status: str
    created: List[str]
    updated: List[str]
    unchanged: List[str]
    deleted: List[str]
    rolled_back: List[str]
    failed_resource: Optional[str] = None
    error_message: Optional[str] = None
    blocked_chain: List[str]
    blocked: List[str]
    outputs: Dict[str, Any]


class ResourceRecordResponse(BaseModel):
    logical_id: str
    kind: str
    state: str
    physical_id: Optional[str] = None
    error_message: Optional[str] = None
    updated_at: datetime


class StackStatusResponse(BaseModel):
    stack_name: str
    resources: List[ResourceRecordResponse]


class PlannedChangeResponse(BaseModel):
    logical_id: str
    kind: str
    action: str
    wave: int
