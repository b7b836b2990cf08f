# (c) Copyright Datacraft, 2026
"""ABAC data models and audit log schema."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, model_validator
from sqlalchemy import String, Index, Text, Boolean, Float, JSON, Uuid, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from authz_server.db.base import Base

BUSINESS_HOURS_START = 8
BUSINESS_HOURS_END = 18

WEEKDAYS = (
	'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday'
)


def utc_now() -> datetime:
	return datetime.now(timezone.utc)


class Effect(str, Enum):
	"""Terminal effect of a policy or decision."""
	PERMIT = 'permit'
	DENY = 'deny'


class PolicyOutcome(str, Enum):
	"""Per-policy evaluation outcome recorded on a decision."""
	PERMIT = 'permit'
	DENY = 'deny'
	NOT_APPLICABLE = 'not_applicable'
	INDETERMINATE = 'indeterminate'


class ClearanceLevel(str, Enum):
	"""Ordinal sensitivity scale shared by subjects and resources."""
	PUBLIC = 'public'
	INTERNAL = 'internal'
	CONFIDENTIAL = 'confidential'
	RESTRICTED = 'restricted'
	TOP_SECRET = 'top_secret'

	@property
	def rank(self) -> int:
		return CLEARANCE_ORDER.index(self)


CLEARANCE_ORDER = [
	ClearanceLevel.PUBLIC,
	ClearanceLevel.INTERNAL,
	ClearanceLevel.CONFIDENTIAL,
	ClearanceLevel.RESTRICTED,
	ClearanceLevel.TOP_SECRET,
]


class ResourceType(str, Enum):
	"""Known resource types; anything else is CUSTOM."""
	PURCHASE_REQUEST = 'purchase-request'
	PURCHASE_ORDER = 'purchase-order'
	GOODS_RECEIVED_NOTE = 'goods-received-note'
	VENDOR = 'vendor'
	PRODUCT = 'product'
	RECIPE = 'recipe'
	INVENTORY_ITEM = 'inventory-item'
	STOCK_ADJUSTMENT = 'stock-adjustment'
	USER = 'user'
	ROLE = 'role'
	POLICY = 'policy'
	REPORT = 'report'
	DASHBOARD = 'dashboard'
	WORKFLOW = 'workflow'
	AUDIT_LOG = 'audit-log'
	CUSTOM = 'custom'

	@classmethod
	def parse(cls, value: str) -> 'ResourceType':
		try:
			return cls(value)
		except ValueError:
			return cls.CUSTOM


class Action(str, Enum):
	"""Known actions; anything else is CUSTOM."""
	CREATE = 'create'
	READ = 'read'
	UPDATE = 'update'
	DELETE = 'delete'
	SUBMIT = 'submit'
	APPROVE = 'approve'
	REJECT = 'reject'
	CANCEL = 'cancel'
	VIEW = 'view'
	LIST = 'list'
	EXPORT = 'export'
	IMPORT = 'import'
	CUSTOM = 'custom'

	@classmethod
	def parse(cls, value: str) -> 'Action':
		try:
			return cls(value)
		except ValueError:
			return cls.CUSTOM


class Operator(str, Enum):
	"""Comparison operators for attribute conditions."""
	EQUALS = '=='
	NOT_EQUALS = '!='
	GREATER_THAN = '>'
	LESS_THAN = '<'
	GREATER_THAN_OR_EQUAL = '>='
	LESS_THAN_OR_EQUAL = '<='
	IN = 'in'
	NOT_IN = 'not_in'
	CONTAINS = 'contains'
	NOT_CONTAINS = 'not_contains'
	MATCHES = 'matches'
	EXISTS = 'exists'
	NOT_EXISTS = 'not_exists'
	STARTS_WITH = 'starts_with'
	ENDS_WITH = 'ends_with'
	IP_IN_RANGE = 'ip_in_range'
	TIME_BETWEEN = 'time_between'


class LogicalOperator(str, Enum):
	AND = 'AND'
	OR = 'OR'
	NOT = 'NOT'


# Directory-shaped records carried inside subject attributes

class Role(BaseModel):
	model_config = ConfigDict(frozen=True, from_attributes=True)

	id: str
	name: str
	description: str | None = None
	permissions: list[str] = Field(default_factory=list)
	hierarchy: int = 0  # lower is more senior
	is_system: bool = False


class Department(BaseModel):
	model_config = ConfigDict(frozen=True, from_attributes=True)

	id: str
	name: str
	code: str | None = None
	status: Literal['active', 'inactive'] = 'active'
	parent_department: str | None = None
	cost_center: str | None = None
	managers: list[str] = Field(default_factory=list)
	assigned_users: list[str] = Field(default_factory=list)


class Location(BaseModel):
	model_config = ConfigDict(frozen=True, from_attributes=True)

	id: str
	name: str
	type: str | None = None  # hotel, restaurant, warehouse, office, kitchen, store
	address: str | None = None
	parent_location: str | None = None


class Money(BaseModel):
	model_config = ConfigDict(frozen=True)

	amount: float
	currency: str = 'USD'


# Attribute bundles

class SubjectAttributes(BaseModel):
	"""Attributes describing the user making the request."""
	model_config = ConfigDict(frozen=True)

	user_id: str
	username: str | None = None
	email: str | None = None
	role: Role
	roles: list[Role] = Field(default_factory=list)
	department: Department | None = None
	departments: list[Department] = Field(default_factory=list)
	location: Location | None = None
	locations: list[Location] = Field(default_factory=list)
	employee_type: Literal[
		'full-time', 'part-time', 'contractor', 'temporary', 'intern'
	] = 'full-time'
	seniority: int = 0
	clearance_level: ClearanceLevel = ClearanceLevel.INTERNAL
	account_status: Literal[
		'active', 'suspended', 'locked', 'inactive', 'pending'
	] = 'active'
	on_duty: bool = True
	assigned_workflow_stages: list[str] = Field(default_factory=list)
	delegated_authorities: list[str] = Field(default_factory=list)
	special_permissions: list[str] = Field(default_factory=list)
	approval_limit: Money | None = None
	custom_attributes: dict[str, Any] = Field(default_factory=dict)


class ResourceAttributes(BaseModel):
	"""Attributes describing the resource being accessed."""
	model_config = ConfigDict(frozen=True)

	resource_id: str
	resource_type: str
	resource_name: str | None = None
	owner: str | None = None
	owner_department: str | None = None
	owner_location: str | None = None
	data_classification: ClearanceLevel = ClearanceLevel.INTERNAL
	document_status: str | None = None
	workflow_stage: str | None = None
	total_value: Money | None = None
	created_at: datetime | None = None
	updated_at: datetime | None = None
	requires_audit: bool = False
	custom_attributes: dict[str, Any] = Field(default_factory=dict)

	@property
	def kind(self) -> ResourceType:
		return ResourceType.parse(self.resource_type)


class EnvironmentAttributes(BaseModel):
	"""Attributes describing the context of the request.

	``day_of_week`` and ``is_business_hours`` are derived from
	``current_time`` when not given explicitly, using the default
	BUSINESS_HOURS_START and BUSINESS_HOURS_END. The resolver always passes
	both, computed from the configured business hours.
	"""
	model_config = ConfigDict(frozen=True)

	current_time: datetime
	day_of_week: str
	is_business_hours: bool
	is_holiday: bool = False
	time_zone: str = 'UTC'
	request_ip: str | None = None
	is_internal_network: bool = False
	device_type: Literal['desktop', 'mobile', 'tablet', 'api', 'system'] = 'desktop'
	user_agent: str | None = None
	session_id: str | None = None
	authentication_method: Literal[
		'password', 'sso', 'mfa', 'biometric', 'api_key', 'service_account'
	] = 'password'
	session_age: int = 0  # minutes since login
	threat_level: Literal['low', 'medium', 'high', 'critical'] = 'low'
	maintenance_mode: bool = False
	emergency_mode: bool = False
	request_source: Literal['ui', 'api', 'webhook', 'scheduled', 'system'] = 'ui'
	batch_operation: bool = False
	custom_attributes: dict[str, Any] = Field(default_factory=dict)

	@model_validator(mode='before')
	@classmethod
	def _derive_calendar(cls, data: Any) -> Any:
		if not isinstance(data, dict) or 'current_time' not in data:
			return data
		current = data['current_time']
		if isinstance(current, str):
			current = datetime.fromisoformat(current)
		data = dict(data)
		data.setdefault('day_of_week', WEEKDAYS[current.weekday()])
		data.setdefault(
			'is_business_hours',
			BUSINESS_HOURS_START <= current.hour < BUSINESS_HOURS_END,
		)
		return data


# Policy definition

class AttributeCondition(BaseModel):
	"""Single predicate over an attribute path.

	``value`` may be ``{"ref": "resource.data_classification"}`` to compare
	against another attribute of the same request.
	"""
	model_config = ConfigDict(frozen=True)

	attribute: str
	operator: Operator
	value: Any = None
	description: str | None = None


class Expression(BaseModel):
	"""Simple predicate or AND/OR/NOT composite of expressions."""
	model_config = ConfigDict(frozen=True)

	type: Literal['simple', 'composite'] = 'simple'
	attribute: str | None = None
	operator: Operator | None = None
	value: Any = None
	expressions: list['Expression'] = Field(default_factory=list)
	logical_operator: LogicalOperator | None = None


class Rule(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	description: str = ''
	condition: Expression


class PolicyTarget(BaseModel):
	"""Where a policy applies. Empty lists match anything."""
	model_config = ConfigDict(frozen=True)

	subjects: list[AttributeCondition] = Field(default_factory=list)
	resources: list[AttributeCondition] = Field(default_factory=list)
	actions: list[str] = Field(default_factory=list)
	environment: list[AttributeCondition] = Field(default_factory=list)


class Obligation(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	type: Literal['audit', 'notification', 'logging', 'approval', 'encryption', 'custom']
	attributes: dict[str, Any] = Field(default_factory=dict)
	description: str | None = None


class Advice(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	type: Literal['recommendation', 'warning', 'information', 'best_practice']
	message: str
	attributes: dict[str, Any] = Field(default_factory=dict)


class Policy(BaseModel):
	"""Immutable ABAC policy. Higher priority is evaluated first."""
	model_config = ConfigDict(frozen=True)

	id: str
	name: str
	description: str = ''
	priority: int = 0
	enabled: bool = True
	target: PolicyTarget = Field(default_factory=PolicyTarget)
	rules: list[Rule] = Field(default_factory=list)
	effect: Effect
	obligations: list[Obligation] = Field(default_factory=list)
	advice: list[Advice] = Field(default_factory=list)
	version: str = '1'
	created_by: str | None = None
	tags: list[str] = Field(default_factory=list)
	category: str | None = None
	effective_from: datetime | None = None
	effective_to: datetime | None = None


# Decisions

class PolicyResult(BaseModel):
	model_config = ConfigDict(frozen=True)

	policy_id: str
	policy_name: str | None = None
	effect: PolicyOutcome
	obligations: list[Obligation] = Field(default_factory=list)
	advice: list[Advice] = Field(default_factory=list)
	reason: str | None = None


class AccessDecision(BaseModel):
	"""Outcome of one evaluation. Never mutated after construction."""
	model_config = ConfigDict(frozen=True)

	request_id: str = Field(default_factory=lambda: f"req-{uuid.uuid4().hex}")
	effect: Effect
	reason: str = Field(min_length=1)
	obligations: list[Obligation] = Field(default_factory=list)
	advice: list[Advice] = Field(default_factory=list)
	evaluated_policies: list[PolicyResult] = Field(min_length=1)
	evaluation_time: float = 0  # milliseconds
	cache_hit: bool = False
	timestamp: datetime = Field(default_factory=utc_now)
	evaluated_by: str = 'policy-engine'
	audit_required: bool = False

	# request identity, kept for audit queries
	subject_id: str | None = None
	resource_type: str | None = None
	resource_id: str | None = None
	action: str | None = None

	@property
	def allowed(self) -> bool:
		return self.effect == Effect.PERMIT


# SQLAlchemy model for durable audit storage

class DecisionLogEntry(Base):
	"""Audit row for a single access decision."""

	__tablename__ = "access_decision_logs"

	id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
	request_id: Mapped[str] = mapped_column(String(64), nullable=False)
	subject_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
	resource_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
	resource_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
	action: Mapped[str | None] = mapped_column(String(50), nullable=True)
	decision: Mapped[str] = mapped_column(String(10), nullable=False)
	reason: Mapped[str] = mapped_column(Text, nullable=False)
	cache_hit: Mapped[bool] = mapped_column(Boolean, default=False)
	audit_required: Mapped[bool] = mapped_column(Boolean, default=False)
	evaluation_time_ms: Mapped[float] = mapped_column(Float, nullable=False)
	decision_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
	created_at: Mapped[datetime] = mapped_column(
		DateTime(timezone=True), nullable=False, default=utc_now
	)

	__table_args__ = (
		Index("idx_decision_log_created", "created_at"),
		Index("idx_decision_log_subject", "subject_id"),
		Index("idx_decision_log_decision", "decision"),
	)

	def __repr__(self):
		return f"DecisionLogEntry({self.request_id}: {self.decision})"


Expression.model_rebuild()
