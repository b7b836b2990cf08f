# (c) Copyright Datacraft, 2026
"""Attribute-Based Access Control (ABAC) module."""
from .engine import PolicyEngine, NO_APPLICABLE_POLICY
from .models import (
	AccessDecision, Effect, Policy, PolicyOutcome, PolicyResult, PolicyTarget,
	AttributeCondition, Expression, Rule, Operator, ClearanceLevel,
	SubjectAttributes, ResourceAttributes, EnvironmentAttributes,
	ResourceType, Action,
)
from .conditions import ConditionEvaluator
from .store import PolicyStore, PolicySnapshot
from .cache import DecisionCache
from .audit import AuditLog, InMemoryAuditLog, SQLAuditLog
from .parser import PolicyParser

__all__ = [
	'PolicyEngine',
	'NO_APPLICABLE_POLICY',
	'AccessDecision',
	'Effect',
	'Policy',
	'PolicyOutcome',
	'PolicyResult',
	'PolicyTarget',
	'AttributeCondition',
	'Expression',
	'Rule',
	'Operator',
	'ClearanceLevel',
	'SubjectAttributes',
	'ResourceAttributes',
	'EnvironmentAttributes',
	'ResourceType',
	'Action',
	'ConditionEvaluator',
	'PolicyStore',
	'PolicySnapshot',
	'DecisionCache',
	'AuditLog',
	'InMemoryAuditLog',
	'SQLAuditLog',
	'PolicyParser',
]
