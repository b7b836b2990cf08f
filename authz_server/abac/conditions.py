# (c) Copyright Datacraft, 2026
"""Condition evaluators for ABAC targets and rules."""
import logging
import re
from datetime import datetime, time
from typing import Any, Callable, Mapping
from ipaddress import ip_address, ip_network

from pydantic import BaseModel

from authz_server.exceptions import ConfigurationError, EvaluationError
from .models import (
	AttributeCondition, ClearanceLevel, Expression, LogicalOperator, Operator
)

logger = logging.getLogger(__name__)

# Attributes compared on the clearance scale instead of lexically
ORDINAL_ATTRIBUTES = {'clearance_level', 'data_classification'}

_MISSING = object()


class ConditionEvaluator:
	"""Evaluates attribute conditions against a request context.

	The context is a mapping with ``subject``, ``resource``, ``action`` and
	``environment`` keys. Attribute paths use dot notation, e.g.
	``subject.role.name`` or ``resource.total_value.amount``. A path that
	crosses a list maps over its items, so ``subject.roles.name`` yields the
	names of every role held.
	"""

	def __init__(self):
		self._operators: dict[Operator, Callable[[Any, Any], bool]] = {
			Operator.EQUALS: self._eq,
			Operator.NOT_EQUALS: self._neq,
			Operator.GREATER_THAN: self._gt,
			Operator.GREATER_THAN_OR_EQUAL: self._gte,
			Operator.LESS_THAN: self._lt,
			Operator.LESS_THAN_OR_EQUAL: self._lte,
			Operator.IN: self._in,
			Operator.NOT_IN: self._not_in,
			Operator.CONTAINS: self._contains,
			Operator.NOT_CONTAINS: self._not_contains,
			Operator.STARTS_WITH: self._starts_with,
			Operator.ENDS_WITH: self._ends_with,
			Operator.MATCHES: self._matches,
			Operator.EXISTS: self._exists,
			Operator.NOT_EXISTS: self._not_exists,
			Operator.IP_IN_RANGE: self._ip_in_range,
			Operator.TIME_BETWEEN: self._time_between,
		}

	def evaluate_conditions(
		self,
		conditions: list[AttributeCondition],
		context: Mapping[str, Any],
		scope: str | None = None,
	) -> bool:
		"""All conditions must hold. ``scope`` prefixes relative paths."""
		for condition in conditions:
			path = self._scoped(condition.attribute, scope)
			if not self.compare(path, condition.operator, condition.value, context):
				return False
		return True

	def evaluate_expression(
		self,
		expression: Expression,
		context: Mapping[str, Any],
	) -> bool:
		"""Evaluate a simple or composite rule expression."""
		if expression.type == 'simple':
			if not expression.attribute or expression.operator is None:
				raise ConfigurationError(
					"simple expression requires attribute and operator"
				)
			return self.compare(
				expression.attribute, expression.operator, expression.value, context
			)

		if not expression.expressions or expression.logical_operator is None:
			raise ConfigurationError(
				"composite expression requires expressions and logical_operator"
			)

		logic = expression.logical_operator
		if logic == LogicalOperator.NOT:
			if len(expression.expressions) != 1:
				raise ConfigurationError("NOT expression takes exactly one operand")
			return not self.evaluate_expression(expression.expressions[0], context)
		if logic == LogicalOperator.OR:
			return any(self.evaluate_expression(e, context) for e in expression.expressions)
		return all(self.evaluate_expression(e, context) for e in expression.expressions)

	def compare(
		self,
		path: str,
		operator: Operator,
		expected: Any,
		context: Mapping[str, Any],
	) -> bool:
		"""Apply one operator to the value found at ``path``."""
		op_func = self._operators.get(operator)
		if op_func is None:
			raise ConfigurationError(f"Unknown operator: {operator}")

		value = self.resolve_path(context, path)
		if isinstance(expected, dict) and set(expected) == {'ref'}:
			expected = self.resolve_path(context, expected['ref'])

		if path.rsplit('.', 1)[-1] in ORDINAL_ATTRIBUTES:
			value = self._rank(value)
			expected = self._rank(expected)

		try:
			return op_func(value, expected)
		except TypeError as e:
			raise EvaluationError(
				f"cannot apply {operator.value!r} to {path}: {e}"
			) from e

	def resolve_path(self, context: Mapping[str, Any], path: str) -> Any:
		"""Get nested value using dot notation; ``None`` when absent."""
		value: Any = context
		for key in path.split('.'):
			value = self._step(value, key)
			if value is None:
				return None
		return value

	def _step(self, value: Any, key: str) -> Any:
		if isinstance(value, (list, tuple, set)):
			if key.isdigit():
				index = int(key)
				return list(value)[index] if index < len(value) else None
			return [item for item in (self._step(v, key) for v in value) if item is not None]
		if isinstance(value, Mapping):
			return value.get(key)
		if isinstance(value, BaseModel):
			found = getattr(value, key, _MISSING)
			if found is not _MISSING:
				return found
			custom = getattr(value, 'custom_attributes', None)
			if isinstance(custom, Mapping):
				return custom.get(key)
			return None
		return None

	@staticmethod
	def _scoped(path: str, scope: str | None) -> str:
		if not scope or path == scope or path.startswith(f"{scope}."):
			return path
		return f"{scope}.{path}"

	@staticmethod
	def _rank(value: Any) -> Any:
		if isinstance(value, ClearanceLevel):
			return value.rank
		if isinstance(value, str):
			try:
				return ClearanceLevel(value).rank
			except ValueError:
				raise EvaluationError(f"Unknown clearance level: {value}")
		if isinstance(value, (list, tuple, set)):
			return [ConditionEvaluator._rank(v) for v in value]
		return value

	# Operator implementations

	def _eq(self, value: Any, expected: Any) -> bool:
		return value == expected

	def _neq(self, value: Any, expected: Any) -> bool:
		return value != expected

	def _gt(self, value: Any, expected: Any) -> bool:
		if value is None:
			return False
		return value > expected

	def _gte(self, value: Any, expected: Any) -> bool:
		if value is None:
			return False
		return value >= expected

	def _lt(self, value: Any, expected: Any) -> bool:
		if value is None:
			return False
		return value < expected

	def _lte(self, value: Any, expected: Any) -> bool:
		if value is None:
			return False
		return value <= expected

	def _in(self, value: Any, expected: Any) -> bool:
		if not isinstance(expected, (list, tuple, set)):
			raise ConfigurationError(f"'in' expects a list, got {expected!r}")
		if isinstance(value, (list, tuple, set)):
			# any held value is listed, e.g. subject.roles.name in [...]
			return any(v in expected for v in value)
		return value in expected

	def _not_in(self, value: Any, expected: Any) -> bool:
		return not self._in(value, expected)

	def _contains(self, value: Any, expected: Any) -> bool:
		if isinstance(value, str):
			return isinstance(expected, str) and expected in value
		if isinstance(value, (list, tuple, set)):
			return expected in value
		if isinstance(value, Mapping):
			return expected in value
		return False

	def _not_contains(self, value: Any, expected: Any) -> bool:
		return not self._contains(value, expected)

	def _starts_with(self, value: Any, expected: str) -> bool:
		if not isinstance(value, str):
			return False
		return value.startswith(expected)

	def _ends_with(self, value: Any, expected: str) -> bool:
		if not isinstance(value, str):
			return False
		return value.endswith(expected)

	def _matches(self, value: Any, pattern: str) -> bool:
		if not isinstance(value, str):
			return False
		try:
			return re.search(pattern, value) is not None
		except re.error as e:
			raise ConfigurationError(f"Invalid regex pattern {pattern!r}: {e}") from e

	def _exists(self, value: Any, expected: Any) -> bool:
		exists = value is not None and value != []
		return exists == (True if expected is None else bool(expected))

	def _not_exists(self, value: Any, expected: Any) -> bool:
		return not self._exists(value, True if expected is None else expected)

	def _ip_in_range(self, value: Any, expected: str | list[str]) -> bool:
		"""Check if IP address is in CIDR range(s)."""
		if not value:
			return False
		ranges = [expected] if isinstance(expected, str) else expected
		try:
			networks = [ip_network(cidr, strict=False) for cidr in ranges]
		except ValueError as e:
			raise ConfigurationError(f"Invalid CIDR: {e}") from e
		try:
			ip = ip_address(value)
		except ValueError:
			logger.debug(f"Not an IP address: {value!r}")
			return False
		return any(ip in network for network in networks)

	def _time_between(self, value: Any, expected: list[str]) -> bool:
		"""Check if time is between two times (HH:MM format)."""
		if not isinstance(expected, (list, tuple)) or len(expected) != 2:
			raise ConfigurationError(f"time_between expects [start, end], got {expected!r}")

		if isinstance(value, datetime):
			current_time = value.time()
		elif isinstance(value, time):
			current_time = value
		else:
			return False

		try:
			start = time.fromisoformat(expected[0])
			end = time.fromisoformat(expected[1])
		except ValueError as e:
			raise ConfigurationError(f"Invalid time format: {e}") from e

		if start <= end:
			return start <= current_time < end
		# Crosses midnight
		return current_time >= start or current_time < end
