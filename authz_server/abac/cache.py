# (c) Copyright Datacraft, 2026
"""Decision memoization keyed by attribute fingerprint and policy generation."""
import hashlib
import json
import logging
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from .models import (
	AccessDecision, EnvironmentAttributes, ResourceAttributes, SubjectAttributes,
	utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
	generation: int
	expires_at: float
	decision: AccessDecision


class DecisionCache:
	"""
	Thread-safe LRU of access decisions.

	An entry is only served for the policy generation it was computed
	under; anything older is dropped on lookup, so store mutations never
	require a sweep.
	"""

	def __init__(
		self,
		max_entries: int = 10_000,
		ttl_seconds: float = 300,
		clock: Callable[[], float] = time.monotonic,
	):
		self.max_entries = max_entries
		self.ttl_seconds = ttl_seconds
		self._clock = clock
		self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
		self._lock = threading.Lock()
		self.hits = 0
		self.misses = 0

	@staticmethod
	def fingerprint(
		subject: SubjectAttributes,
		resource: ResourceAttributes,
		action: str,
		environment: EnvironmentAttributes,
	) -> str:
		"""Stable digest of everything a decision depends on."""
		payload = {
			'subject': subject.model_dump(mode='json'),
			'resource': resource.model_dump(mode='json'),
			'action': action,
			'environment': environment.model_dump(mode='json'),
		}
		encoded = json.dumps(payload, sort_keys=True, default=str).encode('utf-8')
		return hashlib.sha256(encoded).hexdigest()

	def get(self, fingerprint: str, generation: int) -> AccessDecision | None:
		"""Return a cache-hit copy of the stored decision, or None."""
		with self._lock:
			entry = self._entries.get(fingerprint)
			if entry is None:
				self.misses += 1
				return None
			if entry.generation != generation or entry.expires_at <= self._clock():
				del self._entries[fingerprint]
				self.misses += 1
				return None
			self._entries.move_to_end(fingerprint)
			self.hits += 1
			decision = entry.decision

		logger.debug(f"Decision cache hit for {fingerprint[:12]}")
		return decision.model_copy(update={
			'request_id': f"req-{uuid.uuid4().hex}",
			'cache_hit': True,
			'evaluation_time': 0.0,
			'timestamp': utc_now(),
		})

	def put(self, fingerprint: str, generation: int, decision: AccessDecision) -> None:
		with self._lock:
			self._entries[fingerprint] = CacheEntry(
				generation=generation,
				expires_at=self._clock() + self.ttl_seconds,
				decision=decision,
			)
			self._entries.move_to_end(fingerprint)
			while len(self._entries) > self.max_entries:
				self._entries.popitem(last=False)

	def clear(self) -> None:
		with self._lock:
			self._entries.clear()

	def __len__(self) -> int:
		return len(self._entries)
