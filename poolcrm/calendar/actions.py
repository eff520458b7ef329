"""Calendar actions: authenticate, validate, call the store, invalidate views.

Each function takes the current principal and a plain payload dict and
returns a result envelope; nothing here raises.
"""

from flask import current_app

from poolcrm.auth import require_admin
from poolcrm.calendar.schemas import (
    CreateEventInput,
    CustomerEventsInput,
    EventIdInput,
    EventVersionInput,
    ListEventsInput,
    RangeInput,
    RescheduleInput,
    UpdateEventInput,
)
from poolcrm.calendar.service import CalendarService
from poolcrm.results import action
from poolcrm.revalidation import revalidate_paths
from poolcrm.schemas import validate
from poolcrm.timeutils import get_calendar_range_utc, get_default_event_times

CALENDAR_PATH = '/admin/calendar'


def customer_path(customer_id):
    return f'/admin/customers/{customer_id}'


def _service():
    return CalendarService(timezone=current_app.config.get('DEFAULT_TIMEZONE'))


def _invalidate(event):
    revalidate_paths(CALENDAR_PATH, customer_path(event['customer_id']))


@action('Create calendar event')
def create_event(principal, payload):
    admin = require_admin(principal)
    data = validate(CreateEventInput, payload)
    event = _service().create(data, admin.admin_id)
    _invalidate(event)
    return event


@action('Update calendar event')
def update_event(principal, payload):
    require_admin(principal)
    data = validate(UpdateEventInput, payload)
    event = _service().update(data)
    _invalidate(event)
    return event


@action('Reschedule calendar event')
def reschedule_event(principal, payload):
    require_admin(principal)
    data = validate(RescheduleInput, payload)
    event = _service().reschedule(
        data.id, data.version, data.start_datetime, data.end_datetime, data.all_day
    )
    _invalidate(event)
    return event


@action('Cancel calendar event')
def cancel_event(principal, payload):
    require_admin(principal)
    data = validate(EventVersionInput, payload)
    event = _service().cancel(data.id, data.version)
    _invalidate(event)
    return event


@action('Complete calendar event')
def complete_event(principal, payload):
    require_admin(principal)
    data = validate(EventVersionInput, payload)
    event = _service().complete(data.id, data.version)
    _invalidate(event)
    return event


@action('Delete calendar event')
def delete_event(principal, payload):
    require_admin(principal)
    data = validate(EventIdInput, payload)
    service = _service()
    customer_id = service.get_customer_id(data.id)
    deleted = service.delete(data.id)
    paths = [CALENDAR_PATH]
    if customer_id:
        paths.append(customer_path(customer_id))
    revalidate_paths(*paths)
    return {'id': data.id, 'deleted': deleted}


@action('Fetch calendar event')
def get_event(principal, payload):
    require_admin(principal)
    data = validate(EventIdInput, payload)
    return _service().get_by_id(data.id)


@action('Fetch calendar range')
def get_events_in_range(principal, payload):
    require_admin(principal)
    payload = dict(payload or {})
    if 'from' in payload and 'to' in payload:
        payload.update(get_calendar_range_utc(
            payload.pop('from'), payload.pop('to'),
            current_app.config.get('DEFAULT_TIMEZONE'),
        ))
    data = validate(RangeInput, payload)
    return _service().get_in_range(
        data.start, data.end,
        customer_id=data.customer_id, status=data.status, event_type=data.event_type,
    )


@action('List calendar events')
def list_events(principal, payload):
    require_admin(principal)
    data = validate(ListEventsInput, payload)
    return _service().list(data)


@action('Fetch customer events')
def get_customer_events(principal, payload):
    require_admin(principal)
    data = validate(CustomerEventsInput, payload)
    return _service().get_by_customer(
        data.customer_id, status=data.status, limit=data.limit, upcoming=data.upcoming
    )


@action('Default event times')
def default_event_times(principal, payload=None):
    require_admin(principal)
    return get_default_event_times(current_app.config.get('DEFAULT_TIMEZONE'))
