# (c) Copyright Datacraft, 2026
"""Read-only view of the identity directory used to resolve subjects."""
import threading
from typing import Iterable, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

from authz_server.abac.models import Department, Location, Money, Role


class UserRecord(BaseModel):
	"""User as supplied by the directory service."""
	id: str
	name: str
	email: str | None = None
	roles: list[Role] = Field(default_factory=list)
	departments: list[Department] = Field(default_factory=list)
	locations: list[Location] = Field(default_factory=list)

	# active context; the first assignment is used when unset
	current_role_id: str | None = None
	current_department_id: str | None = None
	current_location_id: str | None = None

	clearance_level: Literal['basic', 'confidential', 'secret', 'top-secret'] | None = None
	employee_type: Literal[
		'full-time', 'part-time', 'contractor', 'temporary', 'intern'
	] = 'full-time'
	seniority: int = 0
	account_status: Literal[
		'active', 'suspended', 'locked', 'inactive', 'pending'
	] = 'active'
	on_duty: bool = True
	assigned_workflow_stages: list[str] = Field(default_factory=list)
	delegated_authorities: list[str] = Field(default_factory=list)
	special_permissions: list[str] = Field(default_factory=list)
	approval_limit: Money | None = None

	model_config = ConfigDict(from_attributes=True)


class Directory(Protocol):
	"""Identity/directory collaborator."""

	def get_user(self, user_id: str) -> UserRecord | None:
		...


class InMemoryDirectory:
	"""Directory backed by a dict, for embedding and tests."""

	def __init__(self, users: Iterable[UserRecord] = ()):
		self._users = {user.id: user for user in users}
		self._lock = threading.Lock()

	def get_user(self, user_id: str) -> UserRecord | None:
		return self._users.get(user_id)

	def add_user(self, user: UserRecord) -> None:
		with self._lock:
			self._users[user.id] = user

	def remove_user(self, user_id: str) -> bool:
		with self._lock:
			return self._users.pop(user_id, None) is not None
