# (c) Copyright Datacraft, 2026
from datetime import datetime, timezone

import pytest

from authz_server.abac.models import (
	Department, EnvironmentAttributes, Location, ResourceAttributes, Role,
	SubjectAttributes,
)
from authz_server.config import Settings
from authz_server.directory import InMemoryDirectory, UserRecord
from authz_server.services.permissions import PermissionService

# Wednesday
BUSINESS_HOURS = datetime(2026, 3, 11, 10, 0, tzinfo=timezone.utc)
AFTER_HOURS = datetime(2026, 3, 11, 21, 0, tzinfo=timezone.utc)

STAFF = Role(id='role-staff', name='Staff', hierarchy=5)
DEPARTMENT_MANAGER = Role(id='role-dm', name='Department Manager', hierarchy=3)
FINANCIAL_MANAGER = Role(id='role-fm', name='Financial Manager', hierarchy=2)
SYSTEM_ADMINISTRATOR = Role(id='role-admin', name='System Administrator', hierarchy=0)

PURCHASING = Department(id='dept-pur', name='Purchasing', code='PUR')
FINANCE = Department(id='dept-fin', name='Finance', code='FIN')
KITCHEN = Department(id='dept-kit', name='Kitchen', code='KIT')

HEAD_OFFICE = Location(id='loc-ho', name='Head Office', type='office')
MAIN_WAREHOUSE = Location(id='loc-wh', name='Main Warehouse', type='warehouse')


def policy(policy_id, effect, **kwargs):
	"""Raw policy record, the way an administration surface supplies it."""
	return {'id': policy_id, 'name': kwargs.pop('name', policy_id), 'effect': effect, **kwargs}


def role_is(name):
	return {'attribute': 'role.name', 'operator': '==', 'value': name}


def resource_is(resource_type):
	return {'attribute': 'resource_type', 'operator': '==', 'value': resource_type}


@pytest.fixture
def manager_approve_policy():
	return policy(
		'manager-approve-pr', 'permit',
		name='Managers approve purchase requests',
		priority=100,
		target={
			'subjects': [role_is('Department Manager')],
			'resources': [resource_is('purchase-request')],
			'actions': ['approve'],
		},
		obligations=[{'id': 'audit-approval', 'type': 'audit'}],
	)


@pytest.fixture
def after_hours_deny_policy():
	return policy(
		'after-hours-approval', 'deny',
		name='No approvals after hours',
		priority=50,
		target={
			'actions': ['approve'],
			'environment': [
				{'attribute': 'is_business_hours', 'operator': '==', 'value': False}
			],
		},
		advice=[{
			'id': 'retry-tomorrow', 'type': 'information',
			'message': 'Approvals reopen at 08:00',
		}],
	)


@pytest.fixture
def finance_approve_policy():
	return policy(
		'finance-approve-pr', 'permit',
		name='Finance approves purchase requests',
		priority=100,
		target={
			'subjects': [role_is('Financial Manager')],
			'resources': [resource_is('purchase-request')],
			'actions': ['approve'],
		},
	)


@pytest.fixture
def report_view_policy():
	return policy(
		'report-view', 'permit',
		name='Everyone views reports',
		target={'resources': [resource_is('report')], 'actions': ['view']},
	)


@pytest.fixture
def audit_admin_policy():
	return policy(
		'audit-log-admin', 'permit',
		name='Administrators manage the audit log',
		priority=500,
		target={
			'subjects': [role_is('System Administrator')],
			'resources': [resource_is('audit-log')],
		},
	)


@pytest.fixture
def policies(
	manager_approve_policy,
	after_hours_deny_policy,
	finance_approve_policy,
	report_view_policy,
	audit_admin_policy,
):
	return [
		manager_approve_policy,
		after_hours_deny_policy,
		finance_approve_policy,
		report_view_policy,
		audit_admin_policy,
	]


@pytest.fixture
def users():
	return [
		UserRecord(
			id='u-staff', name='Sam Staff', email='sam@example.com',
			roles=[STAFF], departments=[KITCHEN], locations=[HEAD_OFFICE],
		),
		UserRecord(
			id='u-manager', name='Dana Manager',
			roles=[DEPARTMENT_MANAGER, STAFF],
			departments=[PURCHASING, KITCHEN],
			locations=[HEAD_OFFICE, MAIN_WAREHOUSE],
			clearance_level='confidential',
		),
		UserRecord(
			id='u-finance', name='Frankie Finance',
			roles=[FINANCIAL_MANAGER], departments=[FINANCE], locations=[HEAD_OFFICE],
			clearance_level='secret',
		),
		UserRecord(
			id='u-admin', name='Alex Admin',
			roles=[SYSTEM_ADMINISTRATOR], departments=[FINANCE], locations=[HEAD_OFFICE],
			clearance_level='top-secret',
		),
		UserRecord(id='u-norole', name='Nobody'),
	]


@pytest.fixture
def directory(users):
	return InMemoryDirectory(users)


@pytest.fixture
def settings():
	return Settings(audit_db_url=None)


@pytest.fixture
def make_service(directory, policies, settings):
	def factory(clock_at=BUSINESS_HOURS, **kwargs):
		kwargs.setdefault('settings', settings)
		return PermissionService(
			directory,
			kwargs.pop('policies', policies),
			clock=lambda: clock_at,
			**kwargs,
		)
	return factory


@pytest.fixture
def service(make_service):
	return make_service()


@pytest.fixture
def subject():
	return SubjectAttributes(
		user_id='u-manager',
		role=DEPARTMENT_MANAGER,
		roles=[DEPARTMENT_MANAGER, STAFF],
		department=PURCHASING,
		departments=[PURCHASING, KITCHEN],
		location=HEAD_OFFICE,
		locations=[HEAD_OFFICE],
		clearance_level='confidential',
	)


@pytest.fixture
def resource():
	return ResourceAttributes(
		resource_id='pr-1001',
		resource_type='purchase-request',
		owner='u-staff',
		data_classification='internal',
		total_value={'amount': 2500.0, 'currency': 'USD'},
	)


@pytest.fixture
def environment():
	return EnvironmentAttributes(
		current_time=BUSINESS_HOURS,
		request_ip='10.1.2.3',
		is_internal_network=True,
	)


@pytest.fixture
def after_hours_environment():
	return EnvironmentAttributes(current_time=AFTER_HOURS, request_ip='10.1.2.3')
