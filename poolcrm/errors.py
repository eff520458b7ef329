"""Domain error types.

Every error carries a machine readable ``code`` (the vocabulary shared with
API callers) and the HTTP status the routes answer with.  Services raise
these; the action layer turns them into result envelopes.
"""

from __future__ import annotations

VALIDATION_ERROR = 'VALIDATION_ERROR'
UNAUTHORIZED = 'UNAUTHORIZED'
FORBIDDEN = 'FORBIDDEN'
NOT_FOUND = 'NOT_FOUND'
CONFLICT = 'CONFLICT'
INTERNAL_ERROR = 'INTERNAL_ERROR'

STATUS_CODES = {
    VALIDATION_ERROR: 400,
    UNAUTHORIZED: 401,
    FORBIDDEN: 403,
    NOT_FOUND: 404,
    CONFLICT: 409,
    INTERNAL_ERROR: 500,
}

GENERIC_MESSAGE = 'An unexpected error occurred'


class AppError(Exception):
    code = INTERNAL_ERROR

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.code]


class ValidationError(AppError):
    code = VALIDATION_ERROR


class UnauthorizedError(AppError):
    code = UNAUTHORIZED

    def __init__(self, message: str = 'Authentication required') -> None:
        super().__init__(message)


class ForbiddenError(AppError):
    code = FORBIDDEN

    def __init__(self, message: str = 'Permission denied') -> None:
        super().__init__(message)


class NotFoundError(AppError):
    code = NOT_FOUND

    def __init__(self, resource: str = 'Resource') -> None:
        super().__init__(f'{resource} not found')


class ConflictError(AppError):
    code = CONFLICT

    def __init__(self, message: str = 'This record was modified by another user. '
                                      'Please refresh and try again.',
                 details: dict | None = None) -> None:
        super().__init__(message, details)


class InternalError(AppError):
    code = INTERNAL_ERROR

    def __init__(self, message: str = GENERIC_MESSAGE) -> None:
        super().__init__(message)
