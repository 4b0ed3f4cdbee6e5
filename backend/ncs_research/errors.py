"""Domain errors raised by the token economy and form services.

Each error carries a user-facing ``message``; ``main`` translates them into
JSON responses so none of them surfaces as an unhandled fault.
"""

from __future__ import annotations


class NCSError(Exception):
	status_code = 400

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message


class ValidationError(NCSError):
	"""A required field is missing or invalid. The user can correct it."""

	def __init__(self, message: str, field: str | None = None) -> None:
		super().__init__(message)
		self.field = field


class InsufficientBalance(NCSError):
	status_code = 409

	def __init__(self, balance: int, requested: int) -> None:
		super().__init__(f"insufficient balance: {balance} available, {requested} requested")
		self.balance = balance
		self.requested = requested


class AlreadyCompleted(NCSError):
	status_code = 200

	def __init__(self, task_id: str) -> None:
		super().__init__(f"task {task_id} already completed")
		self.task_id = task_id


class InvalidAmount(NCSError):
	"""Non-positive ledger amount or negative evaluator input. Programming error."""

	status_code = 500


class NotFound(NCSError):
	status_code = 404
