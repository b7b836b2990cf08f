# (c) Copyright Datacraft, 2026
import logging

from functools import lru_cache
from ipaddress import ip_network

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from authz_server.abac.models import (
	BUSINESS_HOURS_END, BUSINESS_HOURS_START, Action, ResourceType,
)


logger = logging.getLogger(__name__)


DEFAULT_ACTION_CATALOG: dict[str, list[str]] = {
	'purchase-request': [
		'create', 'read', 'update', 'delete', 'submit', 'approve', 'reject', 'cancel'
	],
	'purchase-order': [
		'create', 'read', 'update', 'delete', 'submit', 'approve', 'cancel'
	],
	'goods-received-note': ['create', 'read', 'update', 'delete', 'submit'],
	'vendor': ['create', 'read', 'update', 'delete'],
	'product': ['create', 'read', 'update', 'delete'],
	'recipe': ['create', 'read', 'update', 'delete'],
	'inventory-item': ['create', 'read', 'update', 'delete'],
	'stock-adjustment': ['create', 'read', 'update', 'delete', 'submit', 'approve'],
	'user': ['create', 'read', 'update', 'delete'],
	'role': ['create', 'read', 'update', 'delete'],
	'policy': ['create', 'read', 'update', 'delete'],
	'report': ['view', 'export'],
	'dashboard': ['view'],
	'workflow': ['create', 'read', 'update', 'delete'],
	'audit-log': ['view', 'delete'],
}

DEFAULT_TRUSTED_NETWORKS = [
	'10.0.0.0/8',
	'172.16.0.0/12',
	'192.168.0.0/16',
	'127.0.0.0/8',
]


class Settings(BaseSettings):
	# Environment attribute derivation
	business_hours_start: int = Field(default=BUSINESS_HOURS_START, ge=0, le=23)
	business_hours_end: int = Field(default=BUSINESS_HOURS_END, ge=1, le=24)
	time_zone: str = Field(default="UTC", description="Zone used for wall-clock attributes")
	clock_granularity_seconds: int = Field(
		default=60, gt=0, description="Request time is floored to this many seconds"
	)
	trusted_networks: list[str] = Field(default_factory=lambda: list(DEFAULT_TRUSTED_NETWORKS))

	# Decision cache
	cache_enabled: bool = True
	cache_ttl_seconds: int = Field(default=300, gt=0)
	cache_max_entries: int = Field(default=10_000, gt=0)

	# Audit log
	audit_enabled: bool = True
	audit_max_entries: int = Field(default=10_000, gt=0)
	audit_db_url: str | None = Field(
		default=None, description="SQLAlchemy URL; in-memory log when unset"
	)

	# Bulk evaluation
	bulk_workers: int = Field(default=4, gt=0)

	evaluated_by: str = "permission-service"

	# resource type -> actions probed by enumeration APIs
	action_catalog: dict[str, list[str]] = Field(
		default_factory=lambda: {k: list(v) for k, v in DEFAULT_ACTION_CATALOG.items()}
	)

	model_config = SettingsConfigDict(env_prefix='authz_')

	@field_validator('trusted_networks')
	@classmethod
	def _check_networks(cls, value: list[str]) -> list[str]:
		for cidr in value:
			ip_network(cidr, strict=False)
		return value

	@field_validator('action_catalog')
	@classmethod
	def _check_catalog(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
		for resource_type, actions in value.items():
			if not actions:
				raise ValueError(f"resource type {resource_type!r} has no actions")
			if ResourceType.parse(resource_type) is ResourceType.CUSTOM:
				logger.info(f"Catalog lists custom resource type {resource_type}")
			custom = [a for a in actions if Action.parse(a) is Action.CUSTOM]
			if custom:
				logger.info(f"Catalog lists custom actions for {resource_type}: {custom}")
		return value

	@model_validator(mode='after')
	def _check_business_hours(self) -> 'Settings':
		if self.business_hours_start >= self.business_hours_end:
			raise ValueError("business_hours_start must be before business_hours_end")
		return self


@lru_cache()
def get_settings():
	return Settings()
