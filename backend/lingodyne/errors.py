"""
Error taxonomy for the test workflow.

Handlers raise these; ``main.py`` turns them into ``{"error", "code"}`` JSON
responses with the matching status code.
"""
from __future__ import annotations


class LingodyneError(Exception):
	status_code = 500
	default_message = "Internal server error"

	def __init__(self, message: str | None = None) -> None:
		self.message = message or self.default_message
		super().__init__(self.message)

	@property
	def code(self) -> str:
		return type(self).__name__


class Unauthenticated(LingodyneError):
	status_code = 401
	default_message = "Could not validate credentials"


class Forbidden(LingodyneError):
	status_code = 403
	default_message = "Access denied"


class NotFound(LingodyneError):
	status_code = 404
	default_message = "Not found"


class ValidationFailed(LingodyneError):
	status_code = 400
	default_message = "Invalid request"


class AlreadySubmitted(LingodyneError):
	status_code = 400
	default_message = "Test already submitted"

	def __init__(self, message: str | None = None, *, status: str | None = None) -> None:
		super().__init__(message)
		self.status = status


class InvalidTransition(LingodyneError):
	"""Requested status change is not allowed from the current status."""
	status_code = 409
	default_message = "Invalid status transition"


class Conflict(LingodyneError):
	status_code = 409
	default_message = "Resource already exists"


class ConcurrentUpdate(LingodyneError):
	status_code = 409
	default_message = "Test was modified by another request, reload and try again"


class PersistenceFailure(LingodyneError):
	status_code = 500
	default_message = "Failed to save changes"


class DeliveryFailure(LingodyneError):
	status_code = 502
	default_message = "Failed to send e-mail"
