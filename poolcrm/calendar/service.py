# poolcrm/calendar/service.py

"""Calendar event store with optimistic concurrency.

Every mutation of an existing event is a single conditional ``UPDATE`` keyed
on ``(id, version)``; the row count decides whether the caller won.  A
failed write is then diagnosed against a fresh read so the caller learns
whether the event is gone, frozen in a terminal status or simply stale.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime, time, timedelta

from sqlalchemy import and_, delete, or_, update
from sqlalchemy.orm import joinedload

from poolcrm import db
from poolcrm.calendar.schemas import (
    CreateEventInput,
    EVENT_STATUSES,
    ListEventsInput,
    UpdateEventInput,
)
from poolcrm.directory import (
    admin_summary,
    customer_exists,
    customer_summary,
    get_customer_id_for_pool,
    get_customer_id_for_property,
    get_property_id_for_pool,
    pool_summary,
    property_summary,
)
from poolcrm.errors import ConflictError, NotFoundError, ValidationError
from poolcrm.models import CalendarEvent
from poolcrm.timeutils import (
    UTC,
    all_day_bounds,
    all_day_dates,
    default_timezone,
    ensure_utc,
    get_zone,
    parse_datetime,
    to_iso,
    utcnow,
)

logger = logging.getLogger(__name__)

SCHEDULED = 'scheduled'
COMPLETED = 'completed'
CANCELED = 'canceled'

TEXT_FIELDS = ('title', 'description', 'event_type', 'location_url')


def event_to_dict(event: CalendarEvent) -> dict:
    """The one read model every calendar query returns."""
    data = {
        'id': event.id,
        'customer_id': event.customer_id,
        'property_id': event.property_id,
        'pool_id': event.pool_id,
        'title': event.title,
        'description': event.description,
        'event_type': event.event_type,
        'status': event.status,
        'start_datetime': to_iso(event.start_datetime),
        'end_datetime': to_iso(event.end_datetime),
        'all_day': bool(event.all_day),
        'location_url': event.location_url,
        'created_by': event.created_by,
        'version': event.version,
        'created_at': to_iso(event.created_at),
        'updated_at': to_iso(event.updated_at),
        'customer': customer_summary(event.customer),
        'property': property_summary(event.property),
        'pool': pool_summary(event.pool),
        'created_by_admin': admin_summary(event.created_by_admin),
    }
    if event.all_day:
        first, last = all_day_dates(event.start_datetime, event.end_datetime)
        data['all_day_dates'] = {'start': first.isoformat(), 'end': last.isoformat()}
    return data


def encode_cursor(event: CalendarEvent) -> str:
    raw = json.dumps({'start': to_iso(event.start_datetime), 'id': event.id})
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str):
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode()).decode())
        return parse_datetime(data['start']), str(data['id'])
    except (binascii.Error, ValueError, KeyError, TypeError, UnicodeDecodeError, ValidationError):
        raise ValidationError('Invalid cursor')


class CalendarService:
    def __init__(self, session=None, timezone: str | None = None) -> None:
        self.session = session or db.session
        self.timezone = timezone or default_timezone()

    # -- reads -------------------------------------------------------------

    def _query(self):
        return self.session.query(CalendarEvent).options(
            joinedload(CalendarEvent.customer),
            joinedload(CalendarEvent.property),
            joinedload(CalendarEvent.pool),
            joinedload(CalendarEvent.created_by_admin),
        )

    def _load(self, event_id) -> CalendarEvent:
        event = self._query().filter(CalendarEvent.id == event_id).one_or_none()
        if event is None:
            raise NotFoundError('Calendar event')
        return event

    def get_by_id(self, event_id) -> dict:
        return event_to_dict(self._load(event_id))

    def get_customer_id(self, event_id):
        return self.session.query(CalendarEvent.customer_id).filter(
            CalendarEvent.id == event_id
        ).scalar()

    def get_in_range(self, start, end, customer_id=None, status=None, event_type=None) -> list:
        """Events intersecting ``[start, end)``, ordered by start.

        Timed events match on their instants (a zero-length event matches
        when its instant falls inside the window).  All-day events match on
        the local calendar dates the window covers.
        """
        window_start = parse_datetime(start)
        window_end = parse_datetime(end)
        if window_end < window_start:
            raise ValidationError('Range end must not be before its start')
        if window_end == window_start:
            return []

        zone = get_zone(self.timezone)
        first_day = window_start.astimezone(zone).date()
        last_day = (window_end - timedelta(microseconds=1)).astimezone(zone).date()
        day_start = datetime.combine(first_day, time.min, tzinfo=UTC)
        day_end = datetime.combine(last_day + timedelta(days=1), time.min, tzinfo=UTC)

        timed = and_(
            CalendarEvent.all_day.is_(False),
            CalendarEvent.start_datetime < window_end,
            or_(
                CalendarEvent.end_datetime > window_start,
                CalendarEvent.start_datetime >= window_start,
            ),
        )
        all_day = and_(
            CalendarEvent.all_day.is_(True),
            CalendarEvent.start_datetime < day_end,
            CalendarEvent.end_datetime > day_start,
        )
        q = self._query().filter(or_(timed, all_day))
        if customer_id:
            q = q.filter(CalendarEvent.customer_id == customer_id)
        if status:
            q = q.filter(CalendarEvent.status == status)
        if event_type:
            q = q.filter(CalendarEvent.event_type == event_type)
        events = q.order_by(CalendarEvent.start_datetime, CalendarEvent.id).all()
        return [event_to_dict(e) for e in events]

    def list(self, params: ListEventsInput) -> dict:
        q = self._query()
        if params.customer_id:
            q = q.filter(CalendarEvent.customer_id == params.customer_id)
        if params.status:
            q = q.filter(CalendarEvent.status == params.status)
        if params.event_type:
            q = q.filter(CalendarEvent.event_type == params.event_type)
        if params.date_from is not None:
            q = q.filter(CalendarEvent.start_datetime >= parse_datetime(params.date_from))
        if params.date_to is not None:
            q = q.filter(CalendarEvent.start_datetime < parse_datetime(params.date_to))
        if params.cursor:
            c_start, c_id = decode_cursor(params.cursor)
            q = q.filter(or_(
                CalendarEvent.start_datetime > c_start,
                and_(CalendarEvent.start_datetime == c_start, CalendarEvent.id > c_id),
            ))
        rows = (
            q.order_by(CalendarEvent.start_datetime, CalendarEvent.id)
            .limit(params.limit + 1)
            .all()
        )
        has_more = len(rows) > params.limit
        rows = rows[:params.limit]
        return {
            'events': [event_to_dict(e) for e in rows],
            'has_more': has_more,
            'next_cursor': encode_cursor(rows[-1]) if has_more else None,
        }

    def get_by_customer(self, customer_id, status=None, limit=10, upcoming=True) -> list:
        q = self._query().filter(CalendarEvent.customer_id == customer_id)
        if status:
            q = q.filter(CalendarEvent.status == status)
        if upcoming:
            q = q.filter(CalendarEvent.start_datetime >= utcnow())
            q = q.order_by(CalendarEvent.start_datetime, CalendarEvent.id)
        else:
            q = q.order_by(CalendarEvent.start_datetime.desc(), CalendarEvent.id.desc())
        return [event_to_dict(e) for e in q.limit(limit).all()]

    # -- writes ------------------------------------------------------------

    def _check_references(self, customer_id, property_id, pool_id) -> None:
        if not customer_exists(customer_id):
            raise NotFoundError('Customer')
        if property_id and get_customer_id_for_property(property_id) != customer_id:
            raise ValidationError('Property does not belong to this customer')
        if pool_id:
            if get_customer_id_for_pool(pool_id) != customer_id:
                raise ValidationError('Pool does not belong to this customer')
            if property_id and get_property_id_for_pool(pool_id) != property_id:
                raise ValidationError('Pool does not belong to this property')

    @staticmethod
    def _normalize_times(start, end, all_day: bool):
        if all_day:
            return all_day_bounds(start, end)
        if end is None:
            raise ValidationError('End time is required')
        start_dt = parse_datetime(start)
        end_dt = parse_datetime(end)
        if end_dt < start_dt:
            raise ValidationError('End time must not be before start time')
        return start_dt, end_dt

    def create(self, data: CreateEventInput, admin_id: str) -> dict:
        self._check_references(data.customer_id, data.property_id, data.pool_id)
        start, end = self._normalize_times(data.start_datetime, data.end_datetime, data.all_day)
        now = utcnow()
        event = CalendarEvent(
            customer_id=data.customer_id,
            property_id=data.property_id,
            pool_id=data.pool_id,
            title=data.title,
            description=data.description,
            event_type=data.event_type,
            status=SCHEDULED,
            start_datetime=start,
            end_datetime=end,
            all_day=data.all_day,
            location_url=data.location_url,
            created_by=admin_id,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(event)
        self.session.commit()
        logger.info('Created calendar event %s for customer %s', event.id, event.customer_id)
        return self.get_by_id(event.id)

    def _conditional_update(self, event_id, version: int, values: dict,
                            require_scheduled: bool) -> dict:
        stmt = update(CalendarEvent).where(
            CalendarEvent.id == event_id,
            CalendarEvent.version == version,
        )
        if require_scheduled:
            stmt = stmt.where(CalendarEvent.status == SCHEDULED)
        stmt = stmt.values(
            version=CalendarEvent.version + 1,
            updated_at=utcnow(),
            **values,
        ).execution_options(synchronize_session=False)
        result = self.session.execute(stmt)
        if result.rowcount == 1:
            self.session.commit()
            return self.get_by_id(event_id)

        self.session.rollback()
        current = self.session.get(CalendarEvent, event_id, populate_existing=True)
        if current is None:
            raise NotFoundError('Calendar event')
        if require_scheduled and current.status != SCHEDULED:
            raise ValidationError(
                f'Cannot modify a {current.status} event',
                {'status': current.status},
            )
        logger.info('Version conflict on event %s (expected %s, found %s)',
                    event_id, version, current.version)
        raise ConflictError(details={'current_version': current.version})

    def update(self, data: UpdateEventInput) -> dict:
        current = self.session.get(CalendarEvent, data.id, populate_existing=True)
        if current is None:
            raise NotFoundError('Calendar event')
        fields = data.model_fields_set
        values = {}

        for name in TEXT_FIELDS:
            if name in fields:
                if name == 'title' and data.title is None:
                    raise ValidationError('Title is required')
                if name == 'event_type' and data.event_type is None:
                    raise ValidationError('Event type is required')
                values[name] = getattr(data, name)

        if fields & {'customer_id', 'property_id', 'pool_id'}:
            customer_id = data.customer_id if 'customer_id' in fields else current.customer_id
            if customer_id is None:
                raise ValidationError('Customer is required')
            property_id = data.property_id if 'property_id' in fields else current.property_id
            pool_id = data.pool_id if 'pool_id' in fields else current.pool_id
            self._check_references(customer_id, property_id, pool_id)
            values.update(customer_id=customer_id, property_id=property_id, pool_id=pool_id)

        timing_change = bool(fields & {'start_datetime', 'end_datetime', 'all_day'})
        status_change = data.status is not None and data.status != current.status
        require_scheduled = timing_change or status_change
        if require_scheduled and current.status != SCHEDULED:
            raise ValidationError(
                f'Cannot change the time or status of a {current.status} event',
                {'status': current.status},
            )

        if timing_change:
            all_day = current.all_day if data.all_day is None else data.all_day
            start = data.start_datetime if data.start_datetime is not None else ensure_utc(current.start_datetime)
            end = data.end_datetime if data.end_datetime is not None else ensure_utc(current.end_datetime)
            if all_day and data.end_datetime is None and not current.all_day:
                end = None
            values['start_datetime'], values['end_datetime'] = self._normalize_times(start, end, all_day)
            values['all_day'] = all_day

        if status_change:
            if data.status not in EVENT_STATUSES or data.status == SCHEDULED:
                raise ValidationError(f'Cannot change event status to {data.status}')
            values['status'] = data.status

        return self._conditional_update(data.id, data.version, values, require_scheduled)

    def reschedule(self, event_id, version: int, start, end=None, all_day=None) -> dict:
        current = self.session.get(CalendarEvent, event_id, populate_existing=True)
        if current is None:
            raise NotFoundError('Calendar event')
        all_day = current.all_day if all_day is None else all_day
        start_dt, end_dt = self._normalize_times(start, end, all_day)
        values = {'start_datetime': start_dt, 'end_datetime': end_dt, 'all_day': all_day}
        return self._conditional_update(event_id, version, values, require_scheduled=True)

    def cancel(self, event_id, version: int) -> dict:
        return self._conditional_update(event_id, version, {'status': CANCELED}, require_scheduled=True)

    def complete(self, event_id, version: int) -> dict:
        return self._conditional_update(event_id, version, {'status': COMPLETED}, require_scheduled=True)

    def delete(self, event_id) -> bool:
        """Hard delete; deleting a missing event is not an error."""
        result = self.session.execute(
            delete(CalendarEvent)
            .where(CalendarEvent.id == event_id)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount > 0
