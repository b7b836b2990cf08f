# (c) Copyright Datacraft, 2026
"""Permission check API endpoints."""
import logging

from fastapi import APIRouter, HTTPException, Depends, Query, Request, status

from authz_server import schema
from authz_server.abac.models import AccessDecision, Effect
from authz_server.exceptions import AccessDeniedError
from authz_server.services.permissions import PermissionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/permissions", tags=["Permissions"])


def get_permission_service(request: Request) -> PermissionService:
	return request.app.state.permission_service


@router.post("/check", response_model=schema.PermissionResult)
def check_permission(
	request: schema.PermissionCheckRequest,
	service: PermissionService = Depends(get_permission_service),
) -> schema.PermissionResult:
	"""Check a single permission."""
	return service.check_permission(request)


@router.post("/check-bulk", response_model=schema.BulkPermissionResult)
def check_bulk_permissions(
	request: schema.BulkPermissionRequest,
	service: PermissionService = Depends(get_permission_service),
) -> schema.BulkPermissionResult:
	"""Check several permissions for one user; results keep request order."""
	return service.check_bulk_permissions(request)


@router.post("/any", response_model=schema.ProbeSetResponse)
def has_any_permission(
	request: schema.ProbeSetRequest,
	service: PermissionService = Depends(get_permission_service),
) -> schema.ProbeSetResponse:
	allowed = service.has_any_permission(
		request.user_id, request.permissions, request.context
	)
	return schema.ProbeSetResponse(allowed=allowed)


@router.post("/all", response_model=schema.ProbeSetResponse)
def has_all_permissions(
	request: schema.ProbeSetRequest,
	service: PermissionService = Depends(get_permission_service),
) -> schema.ProbeSetResponse:
	allowed = service.has_all_permissions(
		request.user_id, request.permissions, request.context
	)
	return schema.ProbeSetResponse(allowed=allowed)


@router.get(
	"/users/{user_id}/resources/{resource_type}",
	response_model=list[schema.ResourcePermission],
)
def get_user_resource_permissions(
	user_id: str,
	resource_type: str,
	resource_id: str | None = None,
	service: PermissionService = Depends(get_permission_service),
) -> list[schema.ResourcePermission]:
	"""All catalogued actions of a resource type, allowed or not."""
	return service.get_user_resource_permissions(user_id, resource_type, resource_id)


@router.get(
	"/users/{user_id}/actions/{action}",
	response_model=list[schema.ActionResource],
)
def get_user_action_resources(
	user_id: str,
	action: str,
	service: PermissionService = Depends(get_permission_service),
) -> list[schema.ActionResource]:
	"""Resource types the user may perform the action on."""
	return service.get_user_action_resources(user_id, action)


@router.get(
	"/users/{user_id}/effective",
	response_model=list[schema.EffectivePermission],
)
def get_effective_permissions(
	user_id: str,
	service: PermissionService = Depends(get_permission_service),
) -> list[schema.EffectivePermission]:
	return service.get_effective_permissions(user_id)


@router.get("/audit-log", response_model=list[AccessDecision])
def get_audit_log(
	limit: int | None = Query(default=None, gt=0),
	user_id: str | None = None,
	effect: Effect | None = None,
	service: PermissionService = Depends(get_permission_service),
) -> list[AccessDecision]:
	"""Recorded decisions, newest first."""
	return service.get_audit_log(limit=limit, user_id=user_id, effect=effect)


@router.delete("/audit-log", response_model=schema.AuditClearResponse)
def clear_audit_log(
	requested_by: str,
	service: PermissionService = Depends(get_permission_service),
) -> schema.AuditClearResponse:
	"""Clear the audit log; the requester must be allowed to delete it."""
	try:
		return service.clear_audit_log(requested_by)
	except AccessDeniedError as e:
		raise HTTPException(
			status_code=status.HTTP_403_FORBIDDEN,
			detail=str(e),
		)


@router.get("/stats", response_model=schema.PermissionStats)
def get_stats(
	service: PermissionService = Depends(get_permission_service),
) -> schema.PermissionStats:
	return service.get_stats()
