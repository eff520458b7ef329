"""Shared pydantic helpers for command payloads."""

from __future__ import annotations

import uuid
from typing import Optional, Type, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from poolcrm.errors import ValidationError

ModelT = TypeVar('ModelT', bound=BaseModel)

_VALUE_ERROR_PREFIX = 'Value error, '


def validate(model_cls: Type[ModelT], payload) -> ModelT:
    """Validate ``payload`` against ``model_cls`` or raise ``ValidationError``.

    The first pydantic error becomes the message; all of them are kept in
    ``details['errors']`` keyed by dotted field path.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    try:
        return model_cls.model_validate(payload)
    except PydanticValidationError as e:
        errors = {}
        for err in e.errors():
            field = '.'.join(str(p) for p in err.get('loc', ())) or '_'
            msg = err.get('msg', 'Invalid value')
            if msg.startswith(_VALUE_ERROR_PREFIX):
                msg = msg[len(_VALUE_ERROR_PREFIX):]
            errors.setdefault(field, msg)
        field, msg = next(iter(errors.items()))
        message = msg if field == '_' else f'{field}: {msg}'
        raise ValidationError(message, {'errors': errors})


def check_uuid(value: Optional[str], label: str = 'id') -> Optional[str]:
    if value is None:
        return None
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        raise ValueError(f'Invalid {label}')


def check_http_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    parsed = urlparse(value)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ValueError('Location URL must be an http or https URL')
    return value


def clean_text(value: Optional[str]) -> Optional[str]:
    """Strip whitespace; empty strings become ``None``."""
    if value is None:
        return None
    value = value.strip()
    return value or None
