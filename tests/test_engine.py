# (c) Copyright Datacraft, 2026
from datetime import datetime, timezone

import pytest

from authz_server.abac.engine import NO_APPLICABLE_POLICY, PolicyEngine
from authz_server.abac.models import Effect, Policy, PolicyOutcome, Role

from conftest import policy, resource_is, role_is


@pytest.fixture
def engine():
	return PolicyEngine()


def outcomes(decision):
	return {r.policy_id: r.effect for r in decision.evaluated_policies}


def test_no_policies_is_default_deny(engine, subject, resource, environment):
	decision = engine.evaluate_access(subject, resource, 'approve', environment, [])

	assert decision.effect == Effect.DENY
	assert not decision.allowed
	assert decision.reason == NO_APPLICABLE_POLICY
	assert decision.evaluated_policies


def test_staff_cannot_approve(
	engine, subject, resource, environment, manager_approve_policy, finance_approve_policy,
):
	staff = subject.model_copy(update={'role': Role(id='role-staff', name='Staff')})
	decision = engine.evaluate_access(
		staff, resource, 'approve', environment,
		[manager_approve_policy, finance_approve_policy],
	)

	assert not decision.allowed
	assert decision.reason == NO_APPLICABLE_POLICY
	assert outcomes(decision) == {
		'manager-approve-pr': PolicyOutcome.NOT_APPLICABLE,
		'finance-approve-pr': PolicyOutcome.NOT_APPLICABLE,
	}


def test_manager_approves_during_business_hours(
	engine, subject, resource, environment, manager_approve_policy, after_hours_deny_policy,
):
	decision = engine.evaluate_access(
		subject, resource, 'approve', environment,
		[manager_approve_policy, after_hours_deny_policy],
	)

	assert decision.allowed
	assert decision.reason == (
		"permitted by policy Managers approve purchase requests (manager-approve-pr)"
	)
	assert [o.id for o in decision.obligations] == ['audit-approval']
	assert decision.audit_required


def test_deny_overrides_after_hours(
	engine, subject, resource, after_hours_environment,
	manager_approve_policy, after_hours_deny_policy,
):
	decision = engine.evaluate_access(
		subject, resource, 'approve', after_hours_environment,
		[manager_approve_policy, after_hours_deny_policy],
	)

	assert not decision.allowed
	assert decision.reason == "denied by policy No approvals after hours (after-hours-approval)"
	assert outcomes(decision) == {
		'manager-approve-pr': PolicyOutcome.PERMIT,
		'after-hours-approval': PolicyOutcome.DENY,
	}
	# only the winning side's obligations and advice are carried
	assert decision.obligations == []
	assert [a.id for a in decision.advice] == ['retry-tomorrow']


def test_deny_overrides_many_permits(engine, subject, resource, environment):
	permits = [
		policy(f'permit-{i}', 'permit', priority=1000 + i, target={'actions': ['read']})
		for i in range(5)
	]
	deny = policy('deny-low', 'deny', priority=-10, target={'actions': ['read']})

	decision = engine.evaluate_access(
		subject, resource, 'read', environment, permits + [deny]
	)

	assert decision.effect == Effect.DENY
	assert decision.reason == "denied by policy deny-low (deny-low)"


def test_permit_obligations_and_advice_are_unioned(engine, subject, resource, environment):
	first = policy(
		'a', 'permit', priority=10,
		obligations=[{'id': 'log', 'type': 'logging'}],
		advice=[{'id': 'tip', 'type': 'recommendation', 'message': 'first'}],
	)
	second = policy(
		'b', 'permit', priority=5,
		obligations=[{'id': 'log', 'type': 'logging'}, {'id': 'notify', 'type': 'notification'}],
		advice=[{'id': 'tip', 'type': 'recommendation', 'message': 'second'}],
	)

	decision = engine.evaluate_access(subject, resource, 'read', environment, [second, first])

	assert [o.id for o in decision.obligations] == ['log', 'notify']
	assert [a.message for a in decision.advice] == ['first']
	assert not decision.audit_required


def test_evaluated_policies_are_ordered_by_priority(engine, subject, resource, environment):
	decision = engine.evaluate_access(subject, resource, 'read', environment, [
		policy('low', 'permit', priority=1),
		policy('high-b', 'permit', priority=9),
		policy('high-a', 'permit', priority=9),
	])

	assert [r.policy_id for r in decision.evaluated_policies] == ['high-a', 'high-b', 'low']
	assert decision.reason == "permitted by policy high-a (high-a)"


def test_malformed_policy_is_skipped(engine, subject, resource, environment, caplog):
	missing_effect = {'id': 'broken', 'name': 'Broken'}
	decision = engine.evaluate_access(subject, resource, 'read', environment, [
		missing_effect,
		policy('reader', 'permit', target={'actions': ['read']}),
	])

	assert decision.allowed
	assert outcomes(decision)['broken'] == PolicyOutcome.INDETERMINATE
	assert 'broken' in caplog.text


def test_faulty_policy_is_indeterminate(engine, subject, resource, environment):
	faulty = policy('faulty', 'deny', target={
		'subjects': [{'attribute': 'role.name', 'operator': 'in', 'value': 'Staff'}],
	})
	decision = engine.evaluate_access(subject, resource, 'read', environment, [faulty])

	# the deny could not be established, so nothing applies
	assert not decision.allowed
	assert decision.reason == NO_APPLICABLE_POLICY
	assert outcomes(decision) == {'faulty': PolicyOutcome.INDETERMINATE}


def test_disabled_and_expired_policies_do_not_apply(engine, subject, resource, environment):
	decision = engine.evaluate_access(subject, resource, 'read', environment, [
		policy('disabled', 'permit', enabled=False),
		policy('expired', 'permit', effective_to=datetime(2026, 1, 1, tzinfo=timezone.utc)),
		policy('future', 'permit', effective_from=datetime(2027, 1, 1)),
	])

	assert decision.reason == NO_APPLICABLE_POLICY
	assert set(outcomes(decision).values()) == {PolicyOutcome.NOT_APPLICABLE}


def test_rules_must_all_hold(engine, subject, resource, environment):
	limited = policy(
		'approval-limit', 'permit',
		target={'subjects': [role_is('Department Manager')], 'resources': [resource_is('purchase-request')]},
		rules=[{
			'id': 'under-limit',
			'condition': {
				'attribute': 'resource.total_value.amount', 'operator': '<=', 'value': 1000,
			},
		}],
	)
	decision = engine.evaluate_access(subject, resource, 'approve', environment, [limited])

	assert not decision.allowed
	assert decision.evaluated_policies[0].reason == "rule under-limit not satisfied"


def test_clearance_target(engine, subject, resource, environment):
	secret = resource.model_copy(update={'data_classification': 'restricted'})
	clearance = policy('clearance', 'permit', target={'subjects': [{
		'attribute': 'clearance_level', 'operator': '>=',
		'value': {'ref': 'resource.data_classification'},
	}]})

	assert engine.evaluate_access(subject, resource, 'read', environment, [clearance]).allowed
	assert not engine.evaluate_access(subject, secret, 'read', environment, [clearance]).allowed


def test_evaluation_is_deterministic(
	engine, subject, resource, after_hours_environment, policies,
):
	first = engine.evaluate_access(subject, resource, 'approve', after_hours_environment, policies)
	second = engine.evaluate_access(subject, resource, 'approve', after_hours_environment, policies)

	assert (first.effect, first.reason) == (second.effect, second.reason)
	assert first.evaluated_policies == second.evaluated_policies
	assert first.request_id != second.request_id


def test_accepts_policy_models(engine, subject, resource, environment, report_view_policy):
	report = resource.model_copy(update={'resource_type': 'report'})
	decision = engine.evaluate_access(
		subject, report, 'view', environment, [Policy.model_validate(report_view_policy)]
	)

	assert decision.allowed
	assert decision.subject_id == 'u-manager'
	assert decision.resource_type == 'report'
	assert decision.action == 'view'


def test_unvalidated_policy_model_is_skipped(
	engine, subject, resource, environment, report_view_policy,
):
	report = resource.model_copy(update={'resource_type': 'report'})
	unvalidated = Policy.model_construct(id='bad', name='bad')
	decision = engine.evaluate_access(
		subject, report, 'view', environment, [unvalidated, report_view_policy]
	)

	assert decision.allowed
	assert outcomes(decision)['bad'] == PolicyOutcome.INDETERMINATE
	assert outcomes(decision)['report-view'] == PolicyOutcome.PERMIT


def test_policy_on_custom_resource_kind(engine, subject, resource, environment):
	custom_only = policy('custom-read', 'permit', target={
		'resources': [{'attribute': 'kind', 'operator': '==', 'value': 'custom'}],
	})
	timesheet = resource.model_copy(update={'resource_type': 'timesheet'})

	assert engine.evaluate_access(subject, timesheet, 'read', environment, [custom_only]).allowed
	assert not engine.evaluate_access(subject, resource, 'read', environment, [custom_only]).allowed
