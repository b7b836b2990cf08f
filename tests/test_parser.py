# (c) Copyright Datacraft, 2026
import pytest

from authz_server.abac.engine import PolicyEngine
from authz_server.abac.models import Effect, Operator
from authz_server.abac.parser import PolicyParser
from authz_server.exceptions import ConfigurationError

MANAGER_APPROVAL = """
# purchase approvals
PERMIT approve, reject ON purchase-request
WHEN subject.role.name = "Department Manager"
AND subject.clearance_level >= "confidential"
AND resource.total_value.amount <= 5000
DURING business_hours
PRIORITY 200
REQUIRE audit, notification
ADVISE information "Logged for review"
"""


@pytest.fixture
def parser():
	return PolicyParser()


def test_parse_effect_and_targets(parser):
	parsed = parser.parse(MANAGER_APPROVAL)

	assert parsed.effect == Effect.PERMIT
	assert parsed.actions == ['approve', 'reject']
	assert parsed.resource_types == ['purchase-request']
	assert parsed.priority == 200


def test_parse_conditions(parser):
	parsed = parser.parse(MANAGER_APPROVAL)

	subjects = [(c.attribute, c.operator, c.value) for c in parsed.subject_conditions]
	assert subjects == [
		('subject.role.name', Operator.EQUALS, 'Department Manager'),
		('subject.clearance_level', Operator.GREATER_THAN_OR_EQUAL, 'confidential'),
	]
	resource = parsed.resource_conditions[0]
	assert (resource.attribute, resource.operator, resource.value) == (
		'resource.total_value.amount', Operator.LESS_THAN_OR_EQUAL, 5000
	)
	environment = parsed.environment_conditions[0]
	assert (environment.attribute, environment.value) == ('environment.is_business_hours', True)


def test_compile_policy(parser):
	policy = parser.compile(MANAGER_APPROVAL, 'pr-approval', name='Manager approval')

	assert policy.id == 'pr-approval'
	assert policy.name == 'Manager approval'
	assert policy.target.actions == ['approve', 'reject']
	assert policy.target.resources[0].attribute == 'resource.resource_type'
	assert policy.target.resources[0].value == ['purchase-request']
	assert [o.id for o in policy.obligations] == ['pr-approval:audit', 'pr-approval:notification']
	assert policy.advice[0].message == 'Logged for review'


def test_compiled_policy_evaluates(parser, subject, resource, environment, after_hours_environment):
	policy = parser.compile(MANAGER_APPROVAL, 'pr-approval')
	engine = PolicyEngine()

	decision = engine.evaluate_access(subject, resource, 'approve', environment, [policy])
	assert decision.allowed
	assert decision.audit_required

	decision = engine.evaluate_access(
		subject, resource, 'approve', after_hours_environment, [policy]
	)
	assert not decision.allowed


@pytest.mark.parametrize('text, attribute, operator, value', [
	('WHEN subject.department.code IN ["PUR", "FIN"]', 'subject.department.code', Operator.IN, ['PUR', 'FIN']),
	('WHEN subject.department.code NOT IN ["KIT"]', 'subject.department.code', Operator.NOT_IN, ['KIT']),
	('WHEN resource.owner = subject.user_id', 'resource.owner', Operator.EQUALS, {'ref': 'subject.user_id'}),
	('WHEN resource.workflow_stage IS NOT null', 'resource.workflow_stage', Operator.NOT_EQUALS, None),
	('WHEN environment.request_ip IN RANGE "10.0.0.0/8"', 'environment.request_ip', Operator.IP_IN_RANGE, '10.0.0.0/8'),
	('WHEN subject.email ENDS WITH "@example.com"', 'subject.email', Operator.ENDS_WITH, '@example.com'),
	('WHEN subject.email ends   with "@example.com"', 'subject.email', Operator.ENDS_WITH, '@example.com'),
	('WHEN subject.username STARTS WITH "Dana"', 'subject.username', Operator.STARTS_WITH, 'Dana'),
	('WHEN subject.special_permissions NOT CONTAINS "override"', 'subject.special_permissions', Operator.NOT_CONTAINS, 'override'),
	('WHEN subject.seniority>3', 'subject.seniority', Operator.GREATER_THAN, 3),
	('WHEN NOT subject.on_duty', 'subject.on_duty', Operator.EQUALS, False),
	('WHEN NOT subject.role.name = "Staff"', 'subject.role.name', Operator.NOT_EQUALS, 'Staff'),
	('WHEN role.name = "Staff"', 'subject.role.name', Operator.EQUALS, 'Staff'),
	('WHEN env.is_holiday = false', 'environment.is_holiday', Operator.EQUALS, False),
])
def test_condition_forms(parser, text, attribute, operator, value):
	parsed = parser.parse(f"DENY *\n{text}")
	conditions = (
		parsed.subject_conditions + parsed.resource_conditions + parsed.environment_conditions
	)

	assert len(conditions) == 1
	assert (conditions[0].attribute, conditions[0].operator, conditions[0].value) == (
		attribute, operator, value
	)


def test_wildcards_target_everything(parser):
	policy = parser.compile("DENY * ON *\nWHEN subject.account_status != \"active\"", 'inactive')

	assert policy.effect == Effect.DENY
	assert policy.target.actions == []
	assert policy.target.resources == []


def test_time_window(parser):
	parsed = parser.parse("PERMIT read ON report\nDURING 22:00 - 06:00")

	condition = parsed.environment_conditions[0]
	assert condition.operator == Operator.TIME_BETWEEN
	assert condition.value == ['22:00', '06:00']


def test_unknown_obligation_becomes_custom(parser):
	policy = parser.compile("PERMIT read ON report\nREQUIRE watermark", 'wm')

	assert policy.obligations[0].type == 'custom'
	assert policy.obligations[0].attributes == {'name': 'watermark'}


@pytest.mark.parametrize('text', [
	'WHEN subject.role.name = "Staff"',
	'PERMIT read\nDENY read',
	'PERMIT read\nPRIORITY high',
	'PERMIT read\nDURING lunchtime',
	'PERMIT read\nADVISE shout "hey"',
	'PERMIT read\nGRANT everything',
	'PERMIT read\nWHEN subject.role.name "Staff"',
	'PERMIT read\nWHEN NOT subject.role.name MATCHES "^S"',
])
def test_malformed_text(parser, text):
	with pytest.raises(ConfigurationError):
		parser.parse(text)
