# (c) Copyright Datacraft, 2026
"""In-process policy working set with a generation counter."""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

from pydantic import ValidationError

from authz_server.exceptions import ConfigurationError
from .models import Policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicySnapshot:
	"""Immutable view of the store at one generation."""
	generation: int
	policies: tuple[Policy, ...]

	def get(self, policy_id: str) -> Policy | None:
		for policy in self.policies:
			if policy.id == policy_id:
				return policy
		return None

	def __len__(self) -> int:
		return len(self.policies)

	def __iter__(self) -> Iterator[Policy]:
		return iter(self.policies)


class PolicyStore:
	"""
	Copy-on-write policy store.

	Readers take ``snapshot`` with a single reference read and never block.
	Writers are serialized by a lock and publish the new policy tuple and the
	bumped generation together, so a reader never sees one without the other.
	"""

	def __init__(self, policies: Iterable[Policy | Mapping[str, Any]] = ()):
		self._lock = threading.Lock()
		self._snapshot = PolicySnapshot(0, self._validated(policies))

	@property
	def snapshot(self) -> PolicySnapshot:
		return self._snapshot

	@property
	def generation(self) -> int:
		return self._snapshot.generation

	@property
	def policies(self) -> list[Policy]:
		return list(self._snapshot.policies)

	def get(self, policy_id: str) -> Policy | None:
		return self._snapshot.get(policy_id)

	def __len__(self) -> int:
		return len(self._snapshot)

	def add(self, policy: Policy | Mapping[str, Any]) -> Policy:
		"""Add a new policy. Its id must not exist yet."""
		policy = self._validate(policy)
		with self._lock:
			current = self._snapshot
			if current.get(policy.id) is not None:
				raise ValueError(f"Policy already exists: {policy.id}")
			self._publish(current.policies + (policy,))
		logger.info(f"Added policy {policy.id}; generation {self.generation}")
		return policy

	def replace(self, policy: Policy | Mapping[str, Any]) -> Policy:
		"""Replace an existing policy wholesale."""
		policy = self._validate(policy)
		with self._lock:
			current = self._snapshot
			if current.get(policy.id) is None:
				raise ValueError(f"Policy not found: {policy.id}")
			self._publish(tuple(
				policy if p.id == policy.id else p for p in current.policies
			))
		logger.info(f"Replaced policy {policy.id}; generation {self.generation}")
		return policy

	def remove(self, policy_id: str) -> bool:
		"""Remove a policy. Returns False (and keeps the generation) if absent."""
		with self._lock:
			current = self._snapshot
			if current.get(policy_id) is None:
				return False
			self._publish(tuple(p for p in current.policies if p.id != policy_id))
		logger.info(f"Removed policy {policy_id}; generation {self.generation}")
		return True

	def set_policies(self, policies: Iterable[Policy | Mapping[str, Any]]) -> None:
		"""Replace the whole working set."""
		validated = self._validated(policies)
		with self._lock:
			self._publish(validated)
		logger.info(
			f"Loaded {len(validated)} policies; generation {self.generation}"
		)

	def _publish(self, policies: tuple[Policy, ...]) -> None:
		# caller holds the lock
		self._snapshot = PolicySnapshot(self._snapshot.generation + 1, policies)

	def _validated(
		self,
		policies: Iterable[Policy | Mapping[str, Any]],
	) -> tuple[Policy, ...]:
		validated = tuple(self._validate(p) for p in policies)
		ids = [p.id for p in validated]
		if len(ids) != len(set(ids)):
			raise ConfigurationError("Duplicate policy ids in policy set")
		return validated

	@staticmethod
	def _validate(policy: Policy | Mapping[str, Any]) -> Policy:
		if isinstance(policy, Policy):
			policy_id = getattr(policy, 'id', None)
			policy = dict(policy)
		else:
			policy_id = policy.get('id') if isinstance(policy, Mapping) else None
		try:
			return Policy.model_validate(policy)
		except ValidationError as e:
			raise ConfigurationError(
				f"Malformed policy: {e}", policy_id=policy_id
			) from e
