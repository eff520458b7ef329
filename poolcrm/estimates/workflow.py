# poolcrm/estimates/workflow.py

"""Estimate status workflow.

Estimates only ever move forward::

    draft -> sent -> internal_final -> converted
                 \\              \\-> declined
                  \\-> converted | declined

``converted`` and ``declined`` are terminal.  ``STATUS_TRANSITIONS`` is the
only place the edges are written down; everything else asks
:func:`get_allowed_next_statuses`.
"""

from __future__ import annotations

from datetime import date

from poolcrm.errors import ValidationError

DRAFT = 'draft'
SENT = 'sent'
INTERNAL_FINAL = 'internal_final'
CONVERTED = 'converted'
DECLINED = 'declined'

ESTIMATE_STATUSES = (DRAFT, SENT, INTERNAL_FINAL, CONVERTED, DECLINED)

STATUS_TRANSITIONS = {
    DRAFT: (SENT,),
    SENT: (INTERNAL_FINAL, CONVERTED, DECLINED),
    INTERNAL_FINAL: (CONVERTED, DECLINED),
    CONVERTED: (),
    DECLINED: (),
}

STATUS_LABELS = {
    DRAFT: 'Draft',
    SENT: 'Sent',
    INTERNAL_FINAL: 'Final',
    CONVERTED: 'Converted',
    DECLINED: 'Declined',
}


def get_allowed_next_statuses(status: str) -> tuple:
    return STATUS_TRANSITIONS.get(status, ())


def is_valid_status_transition(current: str, target: str) -> bool:
    return target in get_allowed_next_statuses(current)


def is_terminal(status: str) -> bool:
    return status in STATUS_TRANSITIONS and not STATUS_TRANSITIONS[status]


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def assert_transition(current: str, target: str) -> None:
    if target not in STATUS_TRANSITIONS:
        raise ValidationError(f'Unknown estimate status: {target}')
    if not is_valid_status_transition(current, target):
        raise ValidationError(
            f'Cannot transition estimate from {current} to {target}',
            {'current_status': current, 'target_status': target,
             'allowed': list(get_allowed_next_statuses(current))},
        )


def is_expired(status: str, valid_until: date | None, today: date | None = None) -> bool:
    """Only sent estimates expire; a past date on any other status is ignored."""
    if status != SENT or valid_until is None:
        return False
    return valid_until < (today or date.today())
