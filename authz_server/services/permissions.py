# (c) Copyright Datacraft, 2026
"""Permission checking service on top of the ABAC engine."""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from authz_server import schema
from authz_server.abac.audit import AuditLog, InMemoryAuditLog, SQLAuditLog
from authz_server.abac.cache import DecisionCache
from authz_server.abac.engine import PolicyEngine
from authz_server.abac.models import (
	AccessDecision, Effect, Policy, PolicyOutcome, PolicyResult,
)
from authz_server.abac.resolver import AttributeResolver
from authz_server.abac.store import PolicySnapshot, PolicyStore
from authz_server.config import Settings, get_settings
from authz_server.db.engine import create_session_factory
from authz_server.directory import Directory
from authz_server.exceptions import AccessDeniedError, ResolutionError

logger = logging.getLogger(__name__)

AUDIT_LOG_RESOURCE = 'audit-log'
CANCELLED_REASON = "cancelled before evaluation"


class PermissionService:
	"""
	Entry point for permission checks.

	Resolves attributes through the directory, consults the decision cache,
	evaluates misses with the policy engine against one store snapshot and
	records every decision in the audit log. Any failure to establish the
	request's attributes ends in deny.
	"""

	def __init__(
		self,
		directory: Directory,
		policies: Iterable[Policy | Mapping[str, Any]] = (),
		*,
		store: PolicyStore | None = None,
		engine: PolicyEngine | None = None,
		cache: DecisionCache | None = None,
		audit_log: AuditLog | None = None,
		settings: Settings | None = None,
		clock: Callable[[], datetime] | None = None,
	):
		self.settings = settings or get_settings()
		self.store = store or PolicyStore(policies)
		self.engine = engine or PolicyEngine(evaluated_by=self.settings.evaluated_by)
		self.resolver = AttributeResolver(directory, self.settings, clock)

		if cache is None and self.settings.cache_enabled:
			cache = DecisionCache(
				max_entries=self.settings.cache_max_entries,
				ttl_seconds=self.settings.cache_ttl_seconds,
			)
		self.cache = cache

		if audit_log is None and self.settings.audit_enabled:
			if self.settings.audit_db_url:
				audit_log = SQLAuditLog(create_session_factory(self.settings.audit_db_url))
			else:
				audit_log = InMemoryAuditLog(self.settings.audit_max_entries)
		self.audit_log = audit_log

		self.action_catalog = self.settings.action_catalog

		self._stats_lock = threading.Lock()
		self._evaluations = 0
		self._permits = 0
		self._denies = 0
		self._evaluation_time = 0.0

	# Single checks

	def check_permission(
		self,
		request: schema.PermissionCheckRequest,
	) -> schema.PermissionResult:
		"""Check one permission. Resolution and evaluation failures come back as deny."""
		start_time = time.perf_counter()
		decision = self._decide(request, self.store.snapshot)
		execution_time = (time.perf_counter() - start_time) * 1000
		self._record(decision)

		return schema.PermissionResult(
			allowed=decision.allowed,
			reason=decision.reason,
			decision=decision,
			execution_time=execution_time,
		)

	def has_permission(
		self,
		user_id: str,
		resource_type: str,
		action: str,
		resource_id: str | None = None,
		context: schema.RequestContext | None = None,
	) -> bool:
		result = self.check_permission(schema.PermissionCheckRequest(
			user_id=user_id,
			resource_type=resource_type,
			resource_id=resource_id,
			action=action,
			context=context,
		))
		return result.allowed

	def _decide(
		self,
		request: schema.PermissionCheckRequest,
		snapshot: PolicySnapshot,
	) -> AccessDecision:
		try:
			resolved = self.resolver.resolve(request)
		except ResolutionError as e:
			logger.warning(f"Denying {request.action} on {request.resource_type} for {request.user_id}: {e}")
			return self._deny(request, f"attribute resolution failed: {e}", 'attribute-resolution')

		fingerprint = None
		if self.cache is not None:
			try:
				fingerprint = self.cache.fingerprint(
					resolved.subject, resolved.resource, resolved.action, resolved.environment
				)
			except (TypeError, ValueError) as e:
				logger.warning(f"Not caching decision for user {request.user_id}: {e}")

		try:
			if fingerprint is not None:
				cached = self.cache.get(fingerprint, snapshot.generation)
				if cached is not None:
					return cached

			decision = self.engine.evaluate_access(
				resolved.subject,
				resolved.resource,
				resolved.action,
				resolved.environment,
				snapshot.policies,
			)
			if fingerprint is not None:
				self.cache.put(fingerprint, snapshot.generation, decision)
			return decision
		except Exception as e:
			logger.exception(f"Permission check failed for user {request.user_id}")
			return self._deny(request, f"permission check failed: {e}", 'permission-service')

	def _deny(
		self,
		request: schema.PermissionCheckRequest,
		reason: str,
		source: str,
	) -> AccessDecision:
		return AccessDecision(
			effect=Effect.DENY,
			reason=reason,
			evaluated_policies=[PolicyResult(
				policy_id=source,
				effect=PolicyOutcome.INDETERMINATE,
				reason=reason,
			)],
			evaluated_by=self.settings.evaluated_by,
			subject_id=request.user_id,
			resource_type=request.resource_type,
			resource_id=request.resource_id,
			action=request.action,
		)

	def _record(self, decision: AccessDecision) -> None:
		with self._stats_lock:
			self._evaluations += 1
			if decision.allowed:
				self._permits += 1
			else:
				self._denies += 1
			self._evaluation_time += decision.evaluation_time

		if self.audit_log is None:
			return
		try:
			self.audit_log.append(decision)
		except Exception:
			logger.exception(f"Failed to audit decision {decision.request_id}")

	# Batches

	def check_bulk_permissions(
		self,
		request: schema.BulkPermissionRequest,
		cancel_event: threading.Event | None = None,
	) -> schema.BulkPermissionResult:
		"""
		Check several permissions for one user.

		All probes are evaluated against the same policy snapshot and the
		results come back in request order. Once ``cancel_event`` is set no
		further probe is evaluated; those entries are returned with
		``evaluated=False`` and the result is flagged ``cancelled``.
		"""
		start_time = time.perf_counter()
		snapshot = self.store.snapshot
		cancel_event = cancel_event or threading.Event()

		checks = [
			schema.PermissionCheckRequest(
				user_id=request.user_id,
				resource_type=probe.resource_type,
				resource_id=probe.resource_id,
				action=probe.action,
				context=request.context,
			)
			for probe in request.permissions
		]

		decisions: list[AccessDecision | None] = [None] * len(checks)
		if checks:
			workers = min(self.settings.bulk_workers, len(checks))
			with ThreadPoolExecutor(max_workers=workers) as pool:
				futures = [
					pool.submit(self._check_unless_cancelled, check, snapshot, cancel_event)
					for check in checks
				]
				for index, future in enumerate(futures):
					decisions[index] = future.result()

		results = []
		for check, decision in zip(checks, decisions):
			if decision is None:
				results.append(schema.BulkPermissionItem(
					resource_type=check.resource_type,
					resource_id=check.resource_id,
					action=check.action,
					allowed=False,
					reason=CANCELLED_REASON,
					evaluated=False,
				))
			else:
				results.append(schema.BulkPermissionItem(
					resource_type=check.resource_type,
					resource_id=check.resource_id,
					action=check.action,
					allowed=decision.allowed,
					reason=decision.reason,
				))

		cancelled = any(not item.evaluated for item in results)
		if cancelled:
			logger.info(f"Bulk check for {request.user_id} cancelled")

		return schema.BulkPermissionResult(
			user_id=request.user_id,
			results=results,
			execution_time=(time.perf_counter() - start_time) * 1000,
			cancelled=cancelled,
		)

	def _check_unless_cancelled(
		self,
		request: schema.PermissionCheckRequest,
		snapshot: PolicySnapshot,
		cancel_event: threading.Event,
	) -> AccessDecision | None:
		if cancel_event.is_set():
			return None
		decision = self._decide(request, snapshot)
		self._record(decision)
		return decision

	def get_user_resource_permissions(
		self,
		user_id: str,
		resource_type: str,
		resource_id: str | None = None,
		context: schema.RequestContext | None = None,
	) -> list[schema.ResourcePermission]:
		"""Every catalogued action on one resource type, allowed or not."""
		permissions = []
		for action in self.actions_for(resource_type):
			result = self.check_permission(schema.PermissionCheckRequest(
				user_id=user_id,
				resource_type=resource_type,
				resource_id=resource_id,
				action=action,
				context=context,
			))
			permissions.append(schema.ResourcePermission(
				action=action, allowed=result.allowed, reason=result.reason
			))
		return permissions

	def get_user_action_resources(
		self,
		user_id: str,
		action: str,
		context: schema.RequestContext | None = None,
	) -> list[schema.ActionResource]:
		"""Resource types on which the user may perform ``action``."""
		resources = []
		for resource_type in self.resource_types():
			result = self.check_permission(schema.PermissionCheckRequest(
				user_id=user_id,
				resource_type=resource_type,
				action=action,
				context=context,
			))
			if result.allowed:
				resources.append(schema.ActionResource(
					resource_type=resource_type, allowed=True
				))
		return resources

	def has_any_permission(
		self,
		user_id: str,
		permissions: list[schema.PermissionProbe],
		context: schema.RequestContext | None = None,
	) -> bool:
		"""True as soon as one probe is allowed."""
		for probe in permissions:
			if self.has_permission(
				user_id, probe.resource_type, probe.action, probe.resource_id, context
			):
				return True
		return False

	def has_all_permissions(
		self,
		user_id: str,
		permissions: list[schema.PermissionProbe],
		context: schema.RequestContext | None = None,
	) -> bool:
		"""False as soon as one probe is denied."""
		for probe in permissions:
			if not self.has_permission(
				user_id, probe.resource_type, probe.action, probe.resource_id, context
			):
				return False
		return True

	def get_effective_permissions(
		self,
		user_id: str,
		context: schema.RequestContext | None = None,
	) -> list[schema.EffectivePermission]:
		"""
		Probe every catalogued resource type and action.

		Expensive; meant for administration and debugging. Unknown users
		have no permissions.
		"""
		try:
			self.resolver.resolve_user(user_id)
		except ResolutionError as e:
			logger.debug(f"No effective permissions for {user_id}: {e}")
			return []

		effective = []
		for resource_type in self.resource_types():
			for action in self.actions_for(resource_type):
				result = self.check_permission(schema.PermissionCheckRequest(
					user_id=user_id,
					resource_type=resource_type,
					action=action,
					context=context,
				))
				if result.allowed:
					effective.append(schema.EffectivePermission(
						resource_type=resource_type,
						action=action,
						reason=result.reason,
						evaluation_time=result.execution_time,
					))
		return effective

	# Catalog

	def actions_for(self, resource_type: str) -> list[str]:
		return list(self.action_catalog.get(resource_type, ['read']))

	def resource_types(self) -> list[str]:
		return list(self.action_catalog)

	# Policy administration

	def get_policies(self) -> list[Policy]:
		return self.store.policies

	def add_policy(self, policy: Policy | Mapping[str, Any]) -> Policy:
		return self.store.add(policy)

	def replace_policy(self, policy: Policy | Mapping[str, Any]) -> Policy:
		return self.store.replace(policy)

	def remove_policy(self, policy_id: str) -> bool:
		return self.store.remove(policy_id)

	def set_policies(self, policies: Iterable[Policy | Mapping[str, Any]]) -> None:
		self.store.set_policies(policies)

	# Statistics and audit

	def get_stats(self) -> schema.PermissionStats:
		with self._stats_lock:
			evaluations = self._evaluations
			permits = self._permits
			denies = self._denies
			total_time = self._evaluation_time

		snapshot = self.store.snapshot
		return schema.PermissionStats(
			total_evaluations=evaluations,
			permits=permits,
			denies=denies,
			cache_hits=self.cache.hits if self.cache is not None else 0,
			cache_misses=self.cache.misses if self.cache is not None else 0,
			average_evaluation_time=total_time / evaluations if evaluations else 0.0,
			policy_count=len(snapshot),
			generation=snapshot.generation,
			audit_entries=len(self.audit_log) if self.audit_log is not None else 0,
		)

	def get_audit_log(
		self,
		limit: int | None = None,
		user_id: str | None = None,
		effect: Effect | None = None,
	) -> list[AccessDecision]:
		"""Recorded decisions, newest first."""
		if self.audit_log is None:
			return []
		return self.audit_log.entries(limit=limit, user_id=user_id, effect=effect)

	def clear_audit_log(
		self,
		requested_by: str,
		context: schema.RequestContext | None = None,
	) -> schema.AuditClearResponse:
		"""
		Drop all audit entries.

		The caller must be permitted ``delete`` on ``audit-log``; otherwise
		AccessDeniedError is raised and nothing is removed. The authorizing
		decision is recorded again after the clear.
		"""
		result = self.check_permission(schema.PermissionCheckRequest(
			user_id=requested_by,
			resource_type=AUDIT_LOG_RESOURCE,
			action='delete',
			context=context,
		))
		if not result.allowed:
			logger.warning(f"User {requested_by} may not clear the audit log: {result.reason}")
			raise AccessDeniedError(result)

		cleared = 0
		if self.audit_log is not None:
			cleared = self.audit_log.clear()
			self.audit_log.append(result.decision)
		logger.info(f"Audit log cleared by {requested_by}; {cleared} entries removed")

		return schema.AuditClearResponse(cleared=cleared, decision=result.decision)
