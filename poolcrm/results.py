"""Uniform success/failure envelope returned by every action."""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable

from flask import jsonify

from poolcrm import db
from poolcrm.errors import AppError, GENERIC_MESSAGE, INTERNAL_ERROR, STATUS_CODES

logger = logging.getLogger(__name__)


def success_result(data: Any) -> dict:
    return {'success': True, 'data': data}


def error_result(error: str, code: str | None = None) -> dict:
    result = {'success': False, 'error': error}
    if code:
        result['code'] = code
    return result


def action(description: str) -> Callable:
    """Wrap an action so that it always returns an envelope.

    Domain errors become ``{success: False, error, code}`` with their own
    message.  Anything else is logged with its traceback and reported with a
    generic message so storage details never reach the caller.  The session
    is rolled back on every failure.
    """

    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args, **kwargs) -> dict:
            try:
                return success_result(fn(*args, **kwargs))
            except AppError as e:
                db.session.rollback()
                logger.info('%s: %s (%s)', description, e.message, e.code)
                return error_result(e.message, e.code)
            except Exception:
                db.session.rollback()
                logger.exception('%s', description)
                return error_result(GENERIC_MESSAGE, INTERNAL_ERROR)

        return wrapper

    return decorator


def envelope_response(result: dict, success_status: int = 200):
    """Serialise an envelope with the HTTP status matching its code."""
    if result.get('success'):
        return jsonify(result), success_status
    status = STATUS_CODES.get(result.get('code') or INTERNAL_ERROR, 500)
    return jsonify(result), status
