# (c) Copyright Datacraft, 2026
"""Append-only audit trail of access decisions."""
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque

from sqlalchemy import select, delete, func
from sqlalchemy.orm import Session, sessionmaker

from .models import AccessDecision, DecisionLogEntry, Effect

logger = logging.getLogger(__name__)


class AuditLog(ABC):
	"""Audit log interface. ``entries`` returns the newest decisions first."""

	@abstractmethod
	def append(self, decision: AccessDecision) -> None:
		...

	@abstractmethod
	def entries(
		self,
		limit: int | None = None,
		user_id: str | None = None,
		effect: Effect | None = None,
	) -> list[AccessDecision]:
		...

	@abstractmethod
	def clear(self) -> int:
		"""Drop every entry and return how many were removed."""

	@abstractmethod
	def __len__(self) -> int:
		...


class InMemoryAuditLog(AuditLog):
	"""Bounded in-process audit log; the oldest entries fall off first."""

	def __init__(self, max_entries: int = 10_000):
		self._entries: deque[AccessDecision] = deque(maxlen=max_entries)
		self._lock = threading.Lock()

	def append(self, decision: AccessDecision) -> None:
		with self._lock:
			self._entries.append(decision)

	def entries(
		self,
		limit: int | None = None,
		user_id: str | None = None,
		effect: Effect | None = None,
	) -> list[AccessDecision]:
		with self._lock:
			snapshot = list(self._entries)

		result = []
		for decision in reversed(snapshot):
			if user_id is not None and decision.subject_id != user_id:
				continue
			if effect is not None and decision.effect != effect:
				continue
			result.append(decision)
			if limit is not None and len(result) >= limit:
				break
		return result

	def clear(self) -> int:
		with self._lock:
			count = len(self._entries)
			self._entries.clear()
		return count

	def __len__(self) -> int:
		return len(self._entries)


class SQLAuditLog(AuditLog):
	"""Audit log persisted through SQLAlchemy, one row per decision."""

	def __init__(self, session_factory: sessionmaker[Session]):
		self.session_factory = session_factory

	def append(self, decision: AccessDecision) -> None:
		entry = DecisionLogEntry(
			request_id=decision.request_id,
			subject_id=decision.subject_id,
			resource_type=decision.resource_type,
			resource_id=decision.resource_id,
			action=decision.action,
			decision=decision.effect.value,
			reason=decision.reason,
			cache_hit=decision.cache_hit,
			audit_required=decision.audit_required,
			evaluation_time_ms=decision.evaluation_time,
			decision_snapshot=decision.model_dump(mode='json'),
			created_at=decision.timestamp,
		)
		with self.session_factory() as db:
			db.add(entry)
			db.commit()

	def entries(
		self,
		limit: int | None = None,
		user_id: str | None = None,
		effect: Effect | None = None,
	) -> list[AccessDecision]:
		stmt = select(DecisionLogEntry).order_by(
			DecisionLogEntry.created_at.desc(), DecisionLogEntry.request_id.desc()
		)
		if user_id is not None:
			stmt = stmt.where(DecisionLogEntry.subject_id == user_id)
		if effect is not None:
			stmt = stmt.where(DecisionLogEntry.decision == effect.value)
		if limit is not None:
			stmt = stmt.limit(limit)

		with self.session_factory() as db:
			rows = list(db.scalars(stmt))
		return [AccessDecision.model_validate(row.decision_snapshot) for row in rows]

	def clear(self) -> int:
		with self.session_factory() as db:
			count = db.execute(delete(DecisionLogEntry)).rowcount
			db.commit()
		return count

	def __len__(self) -> int:
		with self.session_factory() as db:
			return db.scalar(select(func.count()).select_from(DecisionLogEntry)) or 0
