# (c) Copyright Datacraft, 2026
"""Authorization error taxonomy."""


class AuthorizationError(Exception):
	"""Base class for all authorization errors."""


class ResolutionError(AuthorizationError):
	"""Subject, resource or context could not be turned into attributes."""


class EvaluationError(AuthorizationError):
	"""Internal fault while scoring a single policy."""

	def __init__(self, message: str, policy_id: str | None = None):
		super().__init__(message)
		self.policy_id = policy_id


class ConfigurationError(AuthorizationError):
	"""A policy or setting is malformed."""

	def __init__(self, message: str, policy_id: str | None = None):
		super().__init__(message)
		self.policy_id = policy_id


class AccessDeniedError(AuthorizationError):
	"""Raised by guarded operations when their own permission check is denied."""

	def __init__(self, result):
		super().__init__(result.reason)
		self.result = result
