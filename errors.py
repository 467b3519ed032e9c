# Domain errors raised by the core and mapped to HTTP status codes in main.py


class ServiceError(Exception):
	status_code = 500

	def __init__(self, message: str):
		super().__init__(message)
		self.message = message


class ValidationError(ServiceError):
	"""Malformed or missing input (bad URL, zero-length recording, reserved name)."""
	status_code = 400


class NotFoundError(ServiceError):
	"""Unknown id, or a record owned by another account."""
	status_code = 404


class ConflictError(ServiceError):
	"""Duplicate video or kid name, kid limit, view cap."""
	status_code = 409


class DependencyError(ServiceError):
	"""An external collaborator (short-link resolver) failed."""
	status_code = 502


class InternalError(ServiceError):
	status_code = 500
