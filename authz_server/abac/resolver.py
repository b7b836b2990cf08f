# (c) Copyright Datacraft, 2026
"""Builds subject, resource and environment bundles for a permission check."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from ipaddress import ip_address, ip_network
from typing import Any, Callable
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from authz_server.config import Settings, get_settings
from authz_server.directory import Directory, UserRecord
from authz_server.exceptions import ResolutionError
from authz_server.schema import PermissionCheckRequest, RequestContext
from .models import (
	WEEKDAYS, Action, ClearanceLevel, EnvironmentAttributes, ResourceAttributes,
	ResourceType, SubjectAttributes, utc_now,
)

logger = logging.getLogger(__name__)

# directory clearance -> ordinal clearance
CLEARANCE_MAP = {
	'basic': ClearanceLevel.INTERNAL,
	'confidential': ClearanceLevel.CONFIDENTIAL,
	'secret': ClearanceLevel.RESTRICTED,
	'top-secret': ClearanceLevel.TOP_SECRET,
}

# environment attributes computed here, never taken from the caller
DERIVED_ENVIRONMENT = {
	'current_time', 'day_of_week', 'is_business_hours', 'time_zone',
	'request_ip', 'is_internal_network',
}

RESOURCE_FIELDS = set(ResourceAttributes.model_fields) - {
	'resource_id', 'resource_type', 'custom_attributes'
}
ENVIRONMENT_FIELDS = set(EnvironmentAttributes.model_fields) - {'custom_attributes'}


@dataclass(frozen=True)
class ResolvedRequest:
	subject: SubjectAttributes
	resource: ResourceAttributes
	action: str
	environment: EnvironmentAttributes


def _zone(name: str) -> tzinfo:
	if name.upper() == 'UTC':
		return timezone.utc
	return ZoneInfo(name)


class AttributeResolver:
	"""
	Turns a permission check request into attribute bundles.

	Any failure to resolve raises ResolutionError; callers treat that as
	deny. ``additional_attributes`` in the request context are routed by
	key: ``subject.<name>``, ``resource.<name>`` and ``environment.<name>``
	go to that bundle's custom attributes (or field, for resource and
	environment); bare keys go to the resource or environment field of that
	name, otherwise to the resource's custom attributes.
	"""

	def __init__(
		self,
		directory: Directory,
		settings: Settings | None = None,
		clock: Callable[[], datetime] | None = None,
	):
		self.directory = directory
		self.settings = settings or get_settings()
		self.clock = clock or utc_now
		self._zone = _zone(self.settings.time_zone)
		self._networks = [
			ip_network(cidr, strict=False) for cidr in self.settings.trusted_networks
		]

	def resolve(self, request: PermissionCheckRequest) -> ResolvedRequest:
		context = request.context or RequestContext()
		user = self.resolve_user(request.user_id)
		routed = self._route(context.additional_attributes)

		return ResolvedRequest(
			subject=self.build_subject(user, context, routed['subject']),
			resource=self.build_resource(
				request.resource_type,
				request.resource_id,
				routed['resource'],
				routed['resource_custom'],
			),
			action=self.build_action(request.action),
			environment=self.build_environment(
				context, routed['environment'], routed['environment_custom']
			),
		)

	def resolve_user(self, user_id: str) -> UserRecord:
		try:
			user = self.directory.get_user(user_id)
		except Exception as e:
			raise ResolutionError(f"directory lookup failed for user {user_id}: {e}") from e
		if user is None:
			raise ResolutionError(f"user {user_id} not found")
		return user

	def build_subject(
		self,
		user: UserRecord,
		context: RequestContext,
		custom: dict[str, Any] | None = None,
	) -> SubjectAttributes:
		if not user.roles:
			raise ResolutionError(f"user {user.id} has no role assigned")

		role = next(
			(r for r in user.roles if r.id == user.current_role_id), user.roles[0]
		)

		if context.department:
			department = self._pick(user.departments, context.department)
			if department is None:
				raise ResolutionError(
					f"department {context.department} is not assigned to user {user.id}"
				)
		else:
			department = next(
				(d for d in user.departments if d.id == user.current_department_id),
				user.departments[0] if user.departments else None,
			)

		if context.location:
			location = self._pick(user.locations, context.location)
			if location is None:
				raise ResolutionError(
					f"location {context.location} is not assigned to user {user.id}"
				)
		else:
			location = next(
				(loc for loc in user.locations if loc.id == user.current_location_id),
				user.locations[0] if user.locations else None,
			)

		try:
			return SubjectAttributes(
				user_id=user.id,
				username=user.name,
				email=user.email,
				role=role,
				roles=user.roles,
				department=department,
				departments=user.departments,
				location=location,
				locations=user.locations,
				employee_type=user.employee_type,
				seniority=user.seniority,
				clearance_level=CLEARANCE_MAP.get(
					user.clearance_level, ClearanceLevel.INTERNAL
				),
				account_status=user.account_status,
				on_duty=user.on_duty,
				assigned_workflow_stages=user.assigned_workflow_stages,
				delegated_authorities=user.delegated_authorities,
				special_permissions=user.special_permissions,
				approval_limit=user.approval_limit,
				custom_attributes=custom or {},
			)
		except ValidationError as e:
			raise ResolutionError(f"invalid subject attributes for {user.id}: {e}") from e

	def build_resource(
		self,
		resource_type: str,
		resource_id: str | None = None,
		fields: dict[str, Any] | None = None,
		custom: dict[str, Any] | None = None,
	) -> ResourceAttributes:
		if not resource_type:
			raise ResolutionError("resource type is required")
		if ResourceType.parse(resource_type) is ResourceType.CUSTOM:
			logger.debug(f"Resource type {resource_type} is custom")
		values = {'resource_name': resource_type}
		values.update(fields or {})
		try:
			return ResourceAttributes(
				resource_id=resource_id or resource_type,
				resource_type=resource_type,
				custom_attributes=custom or {},
				**values,
			)
		except ValidationError as e:
			raise ResolutionError(f"invalid resource attributes: {e}") from e

	def build_action(self, action: str) -> str:
		if not action:
			raise ResolutionError("action is required")
		if Action.parse(action) is Action.CUSTOM:
			logger.debug(f"Action {action} is custom")
		return action

	def build_environment(
		self,
		context: RequestContext,
		fields: dict[str, Any] | None = None,
		custom: dict[str, Any] | None = None,
	) -> EnvironmentAttributes:
		now = self._now()
		settings = self.settings
		values = {
			'user_agent': context.user_agent,
			'custom_attributes': custom or {},
		}
		values.update(fields or {})
		try:
			return EnvironmentAttributes(
				current_time=now,
				day_of_week=WEEKDAYS[now.weekday()],
				is_business_hours=(
					settings.business_hours_start <= now.hour < settings.business_hours_end
				),
				time_zone=settings.time_zone,
				request_ip=context.ip_address,
				is_internal_network=self._is_trusted(context.ip_address),
				**values,
			)
		except ValidationError as e:
			raise ResolutionError(f"invalid environment attributes: {e}") from e

	def _now(self) -> datetime:
		"""Current time floored to the configured granularity, in the local zone."""
		now = self.clock()
		if now.tzinfo is None:
			now = now.replace(tzinfo=timezone.utc)
		ts = now.timestamp()
		floored = ts - ts % self.settings.clock_granularity_seconds
		return datetime.fromtimestamp(floored, tz=self._zone)

	def _is_trusted(self, ip: str | None) -> bool:
		if not ip:
			return False
		try:
			address = ip_address(ip)
		except ValueError as e:
			raise ResolutionError(f"invalid IP address: {ip}") from e
		return any(address in network for network in self._networks)

	def _route(self, attributes: dict[str, Any]) -> dict[str, dict[str, Any]]:
		routed: dict[str, dict[str, Any]] = {
			'subject': {},
			'resource': {},
			'resource_custom': {},
			'environment': {},
			'environment_custom': {},
		}
		for key, value in attributes.items():
			scope, _, name = key.partition('.')
			if not name:
				scope, name = None, key

			if scope == 'subject':
				routed['subject'][name] = value
			elif scope == 'resource' or (scope is None and name in RESOURCE_FIELDS):
				bucket = 'resource' if name in RESOURCE_FIELDS else 'resource_custom'
				routed[bucket][name] = value
			elif scope == 'environment' or (scope is None and name in ENVIRONMENT_FIELDS):
				if name in DERIVED_ENVIRONMENT:
					raise ResolutionError(f"environment attribute {name} cannot be overridden")
				bucket = 'environment' if name in ENVIRONMENT_FIELDS else 'environment_custom'
				routed[bucket][name] = value
			else:
				routed['resource_custom'][key] = value
		return routed

	@staticmethod
	def _pick(items, wanted: str):
		for item in items:
			if wanted in (item.id, item.name, getattr(item, 'code', None)):
				return item
		return None
