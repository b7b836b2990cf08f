# (c) Copyright Datacraft, 2026
"""ABAC Policy Evaluation Engine."""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from authz_server.exceptions import ConfigurationError, EvaluationError
from .models import (
	AccessDecision, Advice, Effect, EnvironmentAttributes, Obligation, Policy,
	PolicyOutcome, PolicyResult, ResourceAttributes, SubjectAttributes,
)
from .conditions import ConditionEvaluator

logger = logging.getLogger(__name__)

NO_APPLICABLE_POLICY = "no applicable policy"


@dataclass(frozen=True)
class EvaluationContext:
	"""The four attribute bundles of one request."""
	subject: SubjectAttributes
	resource: ResourceAttributes
	action: str
	environment: EnvironmentAttributes

	def as_mapping(self) -> dict[str, Any]:
		return {
			'subject': self.subject,
			'resource': self.resource,
			'action': self.action,
			'environment': self.environment,
		}


class PolicyEngine:
	"""
	Attribute-Based Access Control decision function.

	``evaluate_access`` is pure: the outcome depends only on its arguments.
	Policies are combined with deny-overrides; when nothing applies the
	decision is deny. Malformed policies and per-policy faults are recorded
	as ``indeterminate`` and skipped, they never abort the evaluation.
	"""

	def __init__(
		self,
		evaluator: ConditionEvaluator | None = None,
		evaluated_by: str = 'policy-engine',
	):
		self.evaluator = evaluator or ConditionEvaluator()
		self.evaluated_by = evaluated_by

	def evaluate_access(
		self,
		subject: SubjectAttributes,
		resource: ResourceAttributes,
		action: str,
		environment: EnvironmentAttributes,
		policies: Iterable[Policy | Mapping[str, Any]],
	) -> AccessDecision:
		"""
		Evaluate an access request against a set of policies.

		Args:
			subject: Attributes of the requesting user
			resource: Attributes of the target resource
			action: Action being performed
			environment: Request context
			policies: Candidate policies, as models or raw mappings

		Returns:
			AccessDecision with the combined effect
		"""
		start_time = time.perf_counter()
		context = EvaluationContext(subject, resource, action, environment)
		mapping = context.as_mapping()

		results: list[PolicyResult] = []
		valid: list[Policy] = []
		for raw in policies:
			try:
				valid.append(self._coerce(raw))
			except ConfigurationError as e:
				logger.warning(f"Skipping malformed policy {e.policy_id}: {e}")
				results.append(PolicyResult(
					policy_id=e.policy_id or '<unknown>',
					effect=PolicyOutcome.INDETERMINATE,
					reason=str(e),
				))

		permits: list[Policy] = []
		denies: list[Policy] = []

		for policy in sorted(valid, key=lambda p: (-p.priority, p.id)):
			try:
				applicable, why = self._is_applicable(policy, context, mapping)
			except (EvaluationError, ConfigurationError) as e:
				logger.warning(f"Skipping policy {policy.id} after evaluation fault: {e}")
				results.append(PolicyResult(
					policy_id=policy.id,
					policy_name=policy.name,
					effect=PolicyOutcome.INDETERMINATE,
					reason=str(e),
				))
				continue
			except Exception as e:
				logger.exception(f"Unexpected fault evaluating policy {policy.id}")
				results.append(PolicyResult(
					policy_id=policy.id,
					policy_name=policy.name,
					effect=PolicyOutcome.INDETERMINATE,
					reason=f"internal error: {e}",
				))
				continue

			if not applicable:
				results.append(PolicyResult(
					policy_id=policy.id,
					policy_name=policy.name,
					effect=PolicyOutcome.NOT_APPLICABLE,
					reason=why,
				))
				continue

			if policy.effect == Effect.DENY:
				denies.append(policy)
			else:
				permits.append(policy)
			results.append(PolicyResult(
				policy_id=policy.id,
				policy_name=policy.name,
				effect=PolicyOutcome(policy.effect.value),
				obligations=policy.obligations,
				advice=policy.advice,
			))

		if not results:
			results.append(PolicyResult(
				policy_id='<none>',
				effect=PolicyOutcome.NOT_APPLICABLE,
				reason="no policies supplied",
			))

		# Deny overrides
		if denies:
			effect = Effect.DENY
			winners = denies
			reason = f"denied by policy {denies[0].name} ({denies[0].id})"
		elif permits:
			effect = Effect.PERMIT
			winners = permits
			reason = f"permitted by policy {permits[0].name} ({permits[0].id})"
		else:
			effect = Effect.DENY
			winners = []
			reason = NO_APPLICABLE_POLICY

		obligations = self._union(o for p in winners for o in p.obligations)
		advice = self._union(a for p in winners for a in p.advice)

		return AccessDecision(
			effect=effect,
			reason=reason,
			obligations=obligations,
			advice=advice,
			evaluated_policies=results,
			evaluation_time=(time.perf_counter() - start_time) * 1000,
			evaluated_by=self.evaluated_by,
			audit_required=resource.requires_audit or any(
				o.type == 'audit' for o in obligations
			),
			subject_id=subject.user_id,
			resource_type=resource.resource_type,
			resource_id=resource.resource_id,
			action=action,
		)

	def _coerce(self, raw: Policy | Mapping[str, Any]) -> Policy:
		"""Validate a raw policy record, instances included (``model_construct`` skips validation)."""
		if isinstance(raw, Policy):
			policy_id = getattr(raw, 'id', None)
			raw = dict(raw)
		else:
			policy_id = raw.get('id') if isinstance(raw, Mapping) else None
		try:
			return Policy.model_validate(raw)
		except ValidationError as e:
			raise ConfigurationError(
				f"malformed policy: {e.error_count()} validation error(s)",
				policy_id=str(policy_id) if policy_id is not None else None,
			) from e

	def _is_applicable(
		self,
		policy: Policy,
		context: EvaluationContext,
		mapping: dict[str, Any],
	) -> tuple[bool, str | None]:
		"""Check whether all of a policy's predicates match the request."""
		if not policy.enabled:
			return False, "policy disabled"

		now = context.environment.current_time
		if policy.effective_from and self._before(now, policy.effective_from):
			return False, "policy not yet effective"
		if policy.effective_to and self._before(policy.effective_to, now):
			return False, "policy expired"

		target = policy.target
		if target.actions and context.action not in target.actions:
			return False, "action not targeted"

		if not self.evaluator.evaluate_conditions(target.subjects, mapping, 'subject'):
			return False, "subject does not match"
		if not self.evaluator.evaluate_conditions(target.resources, mapping, 'resource'):
			return False, "resource does not match"
		if not self.evaluator.evaluate_conditions(
			target.environment, mapping, 'environment'
		):
			return False, "environment does not match"

		for rule in policy.rules:
			if not self.evaluator.evaluate_expression(rule.condition, mapping):
				return False, f"rule {rule.id} not satisfied"

		return True, None

	@staticmethod
	def _before(left: datetime, right: datetime) -> bool:
		# naive timestamps are taken as UTC
		if left.tzinfo is None:
			left = left.replace(tzinfo=timezone.utc)
		if right.tzinfo is None:
			right = right.replace(tzinfo=timezone.utc)
		return left < right

	@staticmethod
	def _union(items: Iterable[Obligation | Advice]) -> list:
		"""De-duplicate by id, keeping the first (highest priority) entry."""
		seen: dict[str, Obligation | Advice] = {}
		for item in items:
			seen.setdefault(item.id, item)
		return list(seen.values())
