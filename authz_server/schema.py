# (c) Copyright Datacraft, 2026
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from authz_server.abac.models import AccessDecision


class RequestContext(BaseModel):
    """Caller-supplied context for a permission check."""
    department: str | None = None  # id, code or name of an assigned department
    location: str | None = None  # id or name of an assigned location
    ip_address: str | None = None
    user_agent: str | None = None
    additional_attributes: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class PermissionCheckRequest(BaseModel):
    user_id: str
    resource_type: str
    resource_id: str | None = None
    action: str
    context: RequestContext | None = None

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class PermissionResult(BaseModel):
    allowed: bool
    reason: str
    decision: AccessDecision
    execution_time: float  # milliseconds

    model_config = ConfigDict(from_attributes=True)


class PermissionProbe(BaseModel):
    """One (resource type, action) pair of a bulk or any/all request."""
    resource_type: str
    action: str
    resource_id: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BulkPermissionRequest(BaseModel):
    user_id: str
    permissions: list[PermissionProbe]
    context: RequestContext | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BulkPermissionItem(BaseModel):
    resource_type: str
    resource_id: str | None = None
    action: str
    allowed: bool
    reason: str
    evaluated: bool = True  # False when the batch was cancelled first


class BulkPermissionResult(BaseModel):
    user_id: str
    results: list[BulkPermissionItem]
    execution_time: float
    cancelled: bool = False


class ProbeSetRequest(BaseModel):
    """Request body for any/all checks."""
    user_id: str
    permissions: list[PermissionProbe]
    context: RequestContext | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProbeSetResponse(BaseModel):
    allowed: bool


class ResourcePermission(BaseModel):
    action: str
    allowed: bool
    reason: str


class ActionResource(BaseModel):
    resource_type: str
    resource_id: str | None = None
    allowed: bool


class EffectivePermission(BaseModel):
    resource_type: str
    action: str
    reason: str
    evaluation_time: float


class AuditClearResponse(BaseModel):
    cleared: int
    decision: AccessDecision


class PermissionStats(BaseModel):
    total_evaluations: int
    permits: int
    denies: int
    cache_hits: int
    cache_misses: int
    average_evaluation_time: float
    policy_count: int
    generation: int
    audit_entries: int
