# (c) Copyright Datacraft, 2026
"""Policy language parser for human-readable policies."""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, get_args

from pydantic import ValidationError

from authz_server.exceptions import ConfigurationError
from .models import (
	Advice, AttributeCondition, Effect, Obligation, Operator, Policy, PolicyTarget,
)

logger = logging.getLogger(__name__)

SCOPES = ('subject', 'resource', 'environment', 'action')

OBLIGATION_TYPES = set(get_args(Obligation.model_fields['type'].annotation))
ADVICE_TYPES = set(get_args(Advice.model_fields['type'].annotation))

NEGATIONS = {
	Operator.EQUALS: Operator.NOT_EQUALS,
	Operator.NOT_EQUALS: Operator.EQUALS,
	Operator.IN: Operator.NOT_IN,
	Operator.NOT_IN: Operator.IN,
	Operator.CONTAINS: Operator.NOT_CONTAINS,
	Operator.NOT_CONTAINS: Operator.CONTAINS,
	Operator.EXISTS: Operator.NOT_EXISTS,
	Operator.NOT_EXISTS: Operator.EXISTS,
	Operator.GREATER_THAN: Operator.LESS_THAN_OR_EQUAL,
	Operator.LESS_THAN_OR_EQUAL: Operator.GREATER_THAN,
	Operator.LESS_THAN: Operator.GREATER_THAN_OR_EQUAL,
	Operator.GREATER_THAN_OR_EQUAL: Operator.LESS_THAN,
}


@dataclass
class ParsedPolicy:
	"""Complete parsed policy structure."""
	effect: Effect | None = None
	actions: list[str] = field(default_factory=list)
	resource_types: list[str] = field(default_factory=list)
	subject_conditions: list[AttributeCondition] = field(default_factory=list)
	resource_conditions: list[AttributeCondition] = field(default_factory=list)
	environment_conditions: list[AttributeCondition] = field(default_factory=list)
	obligations: list[dict] = field(default_factory=list)
	advice: list[dict] = field(default_factory=list)
	priority: int = 0
	raw_text: str = ''


class PolicyParser:
	"""
	Parser for human-readable policy language.

	Policy format:
	```
	PERMIT/DENY actions ON resource_types
	WHEN subject.attr operator value
	AND resource.attr operator value
	DURING time_condition
	PRIORITY number
	REQUIRE obligation_type, ...
	ADVISE advice_type "message"
	```

	Example:
	```
	PERMIT approve ON purchase-request
	WHEN subject.role.name = "Department Manager"
	AND subject.clearance_level >= "confidential"
	DURING business_hours
	REQUIRE audit
	```

	``*`` as actions or resource types means any. A value that is itself an
	attribute path (``resource.owner``) compares against that attribute.
	"""

	# Operators; words need surrounding whitespace, symbols do not
	OPERATORS = {
		'=': Operator.EQUALS,
		'==': Operator.EQUALS,
		'!=': Operator.NOT_EQUALS,
		'<>': Operator.NOT_EQUALS,
		'>': Operator.GREATER_THAN,
		'>=': Operator.GREATER_THAN_OR_EQUAL,
		'<': Operator.LESS_THAN,
		'<=': Operator.LESS_THAN_OR_EQUAL,
		'IN': Operator.IN,
		'NOT IN': Operator.NOT_IN,
		'CONTAINS': Operator.CONTAINS,
		'NOT CONTAINS': Operator.NOT_CONTAINS,
		'STARTS WITH': Operator.STARTS_WITH,
		'ENDS WITH': Operator.ENDS_WITH,
		'MATCHES': Operator.MATCHES,
		'IS': Operator.EQUALS,
		'IS NOT': Operator.NOT_EQUALS,
		'IN RANGE': Operator.IP_IN_RANGE,
	}

	def __init__(self):
		self._operator_patterns = []
		for op_text, op_code in self.OPERATORS.items():
			if op_text[0].isalpha():
				word = re.escape(op_text).replace(r"\ ", r"\s+")
				pattern = rf'\s+{word}\s+'
			else:
				pattern = rf'\s*{re.escape(op_text)}\s*'
			self._operator_patterns.append(
				(re.compile(pattern, flags=re.IGNORECASE), len(op_text), op_code)
			)

	def compile(
		self,
		policy_text: str,
		policy_id: str,
		name: str | None = None,
		**metadata: Any,
	) -> Policy:
		"""Parse policy text straight into a Policy."""
		return self.to_policy(self.parse(policy_text), policy_id, name, **metadata)

	def parse(self, policy_text: str) -> ParsedPolicy:
		"""Parse policy text into structured format."""
		result = ParsedPolicy(raw_text=policy_text)

		for line in self._lines(policy_text):
			self._parse_line(line, result)

		if result.effect is None:
			raise ConfigurationError("policy text has no PERMIT or DENY line")
		return result

	def to_policy(
		self,
		parsed: ParsedPolicy,
		policy_id: str,
		name: str | None = None,
		**metadata: Any,
	) -> Policy:
		"""Convert a parsed policy into an immutable Policy record."""
		resources = list(parsed.resource_conditions)
		if parsed.resource_types:
			resources.insert(0, AttributeCondition(
				attribute='resource.resource_type',
				operator=Operator.IN,
				value=parsed.resource_types,
			))

		try:
			return Policy(
				id=policy_id,
				name=name or policy_id,
				effect=parsed.effect,
				priority=parsed.priority,
				target=PolicyTarget(
					subjects=parsed.subject_conditions,
					resources=resources,
					actions=parsed.actions,
					environment=parsed.environment_conditions,
				),
				obligations=[
					{**o, 'id': f"{policy_id}:{o['id']}"} for o in parsed.obligations
				],
				advice=[{**a, 'id': f"{policy_id}:{a['id']}"} for a in parsed.advice],
				**metadata,
			)
		except ValidationError as e:
			raise ConfigurationError(f"invalid policy {policy_id}: {e}", policy_id) from e

	def _lines(self, text: str) -> list[str]:
		"""Strip comments, join continuations and normalize whitespace."""
		text = re.sub(r'\\\s*\n', ' ', text)
		lines = []
		for line in text.splitlines():
			line = re.sub(r'\s(#|//).*$', '', f" {line}").strip()
			line = re.sub(r'\s+', ' ', line)
			if line:
				lines.append(line)
		return lines

	def _parse_line(self, line: str, result: ParsedPolicy):
		"""Parse a single policy line."""
		keyword = line.split(' ', 1)[0].upper()

		if keyword in ('PERMIT', 'ALLOW', 'DENY'):
			self._parse_effect_line(line, result)
		elif keyword in ('WHEN', 'AND', 'IF'):
			self._parse_condition_line(line, result)
		elif keyword == 'DURING':
			self._parse_during_line(line, result)
		elif keyword == 'PRIORITY':
			self._parse_priority_line(line, result)
		elif keyword == 'REQUIRE':
			self._parse_require_line(line, result)
		elif keyword == 'ADVISE':
			self._parse_advise_line(line, result)
		else:
			raise ConfigurationError(f"Unrecognised policy line: {line}")

	def _parse_effect_line(self, line: str, result: ParsedPolicy):
		"""Parse effect line: PERMIT/DENY actions ON resource_types."""
		if result.effect is not None:
			raise ConfigurationError("policy text has more than one effect line")

		keyword, _, rest = line.partition(' ')
		result.effect = Effect.DENY if keyword.upper() == 'DENY' else Effect.PERMIT

		parts = re.split(r'\s+ON\s+', rest, maxsplit=1, flags=re.IGNORECASE)
		actions = self._names(parts[0])
		if actions != ['*']:
			result.actions.extend(actions)

		if len(parts) == 2:
			resources = self._names(parts[1])
			if resources != ['*']:
				result.resource_types.extend(resources)

	def _parse_condition_line(self, line: str, result: ParsedPolicy):
		"""Parse condition line: WHEN/AND subject.attr op value."""
		line = re.sub(r'^(WHEN|AND|IF)\s+', '', line, flags=re.IGNORECASE).strip()
		condition = self._parse_condition(line)

		scope, _, rest = condition.attribute.partition('.')
		if scope == 'env':
			condition = condition.model_copy(update={'attribute': f"environment.{rest}"})
			scope = 'environment'

		if scope == 'resource':
			result.resource_conditions.append(condition)
		elif scope == 'environment':
			result.environment_conditions.append(condition)
		elif scope == 'subject':
			result.subject_conditions.append(condition)
		else:
			# Default to subject condition
			result.subject_conditions.append(condition.model_copy(
				update={'attribute': f"subject.{condition.attribute}"}
			))

	def _parse_condition(self, expr: str) -> AttributeCondition:
		"""Parse a single condition expression."""
		negated = False
		if expr.upper().startswith('NOT '):
			negated = True
			expr = expr[4:].strip()

		best = None
		for pattern, length, op_code in self._operator_patterns:
			match = pattern.search(expr)
			if match is None or match.start() == 0:
				continue
			key = (match.start(), -length)
			if best is None or key < best[0]:
				best = (key, match, op_code)

		if best is None:
			# Bare attribute is a boolean test
			if not re.fullmatch(r'[\w.]+', expr):
				raise ConfigurationError(f"Could not parse condition: {expr}")
			return AttributeCondition(
				attribute=expr, operator=Operator.EQUALS, value=not negated
			)

		_, match, operator = best
		attribute = expr[:match.start()].strip()
		value = self._parse_value(expr[match.end():].strip())

		if negated:
			if operator not in NEGATIONS:
				raise ConfigurationError(f"Cannot negate operator {operator.value}: {expr}")
			operator = NEGATIONS[operator]

		return AttributeCondition(attribute=attribute, operator=operator, value=value)

	def _parse_value(self, value_str: str) -> Any:
		"""Parse a value from string."""
		value_str = value_str.strip()

		# List
		if value_str.startswith('[') and value_str.endswith(']'):
			inner = value_str[1:-1].strip()
			if not inner:
				return []
			return [self._parse_value(v) for v in inner.split(',')]

		# String (quoted)
		if len(value_str) >= 2 and value_str[0] == value_str[-1] and value_str[0] in '"\'':
			return value_str[1:-1]

		lowered = value_str.lower()
		if lowered == 'true':
			return True
		if lowered == 'false':
			return False
		if lowered in ('null', 'none'):
			return None

		# Number
		try:
			if '.' in value_str:
				return float(value_str)
			return int(value_str)
		except ValueError:
			pass

		# Attribute reference
		if value_str.split('.', 1)[0] in SCOPES and '.' in value_str:
			return {'ref': value_str}

		return value_str

	def _parse_during_line(self, line: str, result: ParsedPolicy):
		"""Parse time constraint: DURING business_hours / after_hours / HH:MM - HH:MM."""
		line = re.sub(r'^DURING\s+', '', line, flags=re.IGNORECASE).strip()

		if line.lower() in ('business_hours', 'after_hours'):
			result.environment_conditions.append(AttributeCondition(
				attribute='environment.is_business_hours',
				operator=Operator.EQUALS,
				value=line.lower() == 'business_hours',
			))
			return

		match = re.fullmatch(r'(\d{2}:\d{2})\s*-\s*(\d{2}:\d{2})', line)
		if not match:
			raise ConfigurationError(f"Unrecognised time constraint: {line}")
		result.environment_conditions.append(AttributeCondition(
			attribute='environment.current_time',
			operator=Operator.TIME_BETWEEN,
			value=[match.group(1), match.group(2)],
		))

	def _parse_priority_line(self, line: str, result: ParsedPolicy):
		match = re.fullmatch(r'PRIORITY\s+(-?\d+)', line, flags=re.IGNORECASE)
		if not match:
			raise ConfigurationError(f"Invalid priority: {line}")
		result.priority = int(match.group(1))

	def _parse_require_line(self, line: str, result: ParsedPolicy):
		"""Parse obligations: REQUIRE audit, notification."""
		line = re.sub(r'^REQUIRE\s+', '', line, flags=re.IGNORECASE).strip()

		for name in self._names(line):
			if name in OBLIGATION_TYPES:
				result.obligations.append({'id': name, 'type': name})
			else:
				result.obligations.append({
					'id': name, 'type': 'custom', 'attributes': {'name': name},
				})

	def _parse_advise_line(self, line: str, result: ParsedPolicy):
		"""Parse advice: ADVISE warning "message"."""
		match = re.fullmatch(
			r'ADVISE\s+(\w+)\s+(["\'])(.*)\2', line, flags=re.IGNORECASE
		)
		if not match or match.group(1).lower() not in ADVICE_TYPES:
			raise ConfigurationError(f"Invalid advice: {line}")
		advice_type = match.group(1).lower()
		result.advice.append({
			'id': f"{advice_type}-{len(result.advice) + 1}",
			'type': advice_type,
			'message': match.group(3),
		})

	@staticmethod
	def _names(text: str) -> list[str]:
		return [n.strip().lower() for n in text.split(',') if n.strip()]
