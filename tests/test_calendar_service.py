import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from poolcrm import create_app, db
from poolcrm.calendar.schemas import CreateEventInput, ListEventsInput, UpdateEventInput
from poolcrm.calendar.service import CalendarService
from poolcrm.errors import ConflictError, NotFoundError, ValidationError
from poolcrm.models import Admin, CalendarEvent, Customer, Pool, Property

UTC = timezone.utc


def setup_app():
    app = create_app('testing')
    with app.app_context():
        db.drop_all()
        db.create_all()
    return app


def seed():
    admin = Admin(email='ops@example.com', full_name='Ops', password_hash='x')
    cust = Customer(name='Jane Pool', phone='555-0100', email='jane@example.com')
    other = Customer(name='Other', phone='555-0199')
    db.session.add_all([admin, cust, other])
    db.session.flush()
    prop = Property(customer_id=cust.id, address_line1='1 Main St', city='Miami', state='FL')
    other_prop = Property(customer_id=other.id, address_line1='9 Side St')
    db.session.add_all([prop, other_prop])
    db.session.flush()
    pool = Pool(property_id=prop.id, type='inground')
    db.session.add(pool)
    db.session.commit()
    return admin.id, cust.id, prop.id, pool.id, other_prop.id


def new_event(service, admin_id, customer_id, **kw):
    data = dict(
        customer_id=customer_id,
        title='Consultation',
        event_type='consultation',
        start_datetime='2024-06-01T10:00:00Z',
        end_datetime='2024-06-01T11:00:00Z',
    )
    data.update(kw)
    return service.create(CreateEventInput(**data), admin_id)


def test_create_starts_at_version_one_with_read_model():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, prop_id, pool_id, _ = seed()
        svc = CalendarService()
        ev = new_event(svc, admin_id, cust_id, property_id=prop_id, pool_id=pool_id)
        assert ev['version'] == 1
        assert ev['status'] == 'scheduled'
        assert ev['start_datetime'] == '2024-06-01T10:00:00Z'
        assert ev['customer'] == {'id': cust_id, 'name': 'Jane Pool', 'phone': '555-0100'}
        assert ev['property']['address_line1'] == '1 Main St'
        assert ev['pool'] == {'id': pool_id, 'type': 'inground'}
        assert ev['created_by_admin']['full_name'] == 'Ops'
        assert svc.get_by_id(ev['id']) == ev


def test_create_checks_references():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, prop_id, pool_id, other_prop = seed()
        svc = CalendarService()
        with pytest.raises(NotFoundError):
            new_event(svc, admin_id, '00000000-0000-4000-8000-000000000000')
        with pytest.raises(ValidationError):
            new_event(svc, admin_id, cust_id, property_id=other_prop)
        with pytest.raises(ValidationError):
            new_event(svc, admin_id, cust_id, property_id=other_prop, pool_id=pool_id)
        with pytest.raises(ValidationError):
            new_event(svc, admin_id, cust_id,
                      start_datetime='2024-06-01T12:00:00Z',
                      end_datetime='2024-06-01T11:00:00Z')
        assert CalendarEvent.query.count() == 0


def test_zero_length_event_allowed():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        ev = new_event(CalendarService(), admin_id, cust_id,
                       end_datetime='2024-06-01T10:00:00Z')
        assert ev['start_datetime'] == ev['end_datetime']


def test_version_increments_once_per_successful_write():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService()
        ev = new_event(svc, admin_id, cust_id)
        version = ev['version']
        for i in range(4):
            ev = svc.update(UpdateEventInput(id=ev['id'], version=version, title=f'Visit {i}'))
            assert ev['version'] == version + 1
            version = ev['version']
        ev = svc.reschedule(ev['id'], version, '2024-06-02T10:00:00Z', '2024-06-02T11:00:00Z')
        ev = svc.complete(ev['id'], ev['version'])
        assert ev['version'] == 1 + 6
        assert ev['status'] == 'completed'


def test_concurrent_updates_one_wins():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService()
        ev = new_event(svc, admin_id, cust_id)
        first = svc.update(UpdateEventInput(id=ev['id'], version=1, title='Winner'))
        assert first['version'] == 2
        with pytest.raises(ConflictError) as exc:
            svc.update(UpdateEventInput(id=ev['id'], version=1, title='Loser'))
        assert exc.value.details['current_version'] == 2
        stored = svc.get_by_id(ev['id'])
        assert stored['title'] == 'Winner'
        assert stored['version'] == 2


def test_reschedule_then_stale_cancel_conflicts():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService()
        ev = new_event(svc, admin_id, cust_id)
        assert ev['version'] == 1

        moved = svc.reschedule(ev['id'], 1, '2024-06-01T14:00:00Z', '2024-06-01T15:00:00Z')
        assert moved['version'] == 2
        assert moved['start_datetime'] == '2024-06-01T14:00:00Z'

        with pytest.raises(ConflictError):
            svc.cancel(ev['id'], 1)

        fresh = svc.get_by_id(ev['id'])
        assert fresh['version'] == 2
        canceled = svc.cancel(ev['id'], fresh['version'])
        assert canceled['version'] == 3
        assert canceled['status'] == 'canceled'


def test_terminal_event_is_frozen():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService()
        ev = new_event(svc, admin_id, cust_id)
        done = svc.complete(ev['id'], 1)
        assert done['version'] == 2

        with pytest.raises(ValidationError) as exc:
            svc.reschedule(ev['id'], 2, '2024-06-03T10:00:00Z', '2024-06-03T11:00:00Z')
        assert 'completed' in exc.value.message
        with pytest.raises(ValidationError):
            svc.cancel(ev['id'], 2)
        with pytest.raises(ValidationError):
            svc.complete(ev['id'], 2)
        with pytest.raises(ValidationError):
            svc.update(UpdateEventInput(id=ev['id'], version=2, status='scheduled'))
        with pytest.raises(ValidationError):
            svc.update(UpdateEventInput(id=ev['id'], version=2,
                                        start_datetime='2024-06-03T10:00:00Z'))

        after = svc.get_by_id(ev['id'])
        assert after == done

        # plain text edits still go through
        edited = svc.update(UpdateEventInput(id=ev['id'], version=2, description='Notes'))
        assert edited['version'] == 3
        assert edited['status'] == 'completed'


def test_missing_event():
    app = setup_app()
    with app.app_context():
        seed()
        svc = CalendarService()
        missing = '00000000-0000-4000-8000-000000000000'
        with pytest.raises(NotFoundError):
            svc.get_by_id(missing)
        with pytest.raises(NotFoundError):
            svc.cancel(missing, 1)
        assert svc.delete(missing) is False


def test_delete_is_hard_and_idempotent():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService()
        ev = new_event(svc, admin_id, cust_id)
        assert svc.delete(ev['id']) is True
        assert svc.delete(ev['id']) is False
        assert db.session.get(CalendarEvent, ev['id']) is None


def test_range_query_half_open_and_zero_length():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService(timezone='America/New_York')
        inside = new_event(svc, admin_id, cust_id, title='Inside')
        touching = new_event(svc, admin_id, cust_id, title='Ends at window start',
                             start_datetime='2024-06-01T08:00:00Z',
                             end_datetime='2024-06-01T09:00:00Z')
        point = new_event(svc, admin_id, cust_id, title='Point',
                          start_datetime='2024-06-01T09:00:00Z',
                          end_datetime='2024-06-01T09:00:00Z')
        at_end = new_event(svc, admin_id, cust_id, title='Starts at window end',
                           start_datetime='2024-06-01T12:00:00Z',
                           end_datetime='2024-06-01T13:00:00Z')
        spanning = new_event(svc, admin_id, cust_id, title='Spanning',
                             start_datetime='2024-06-01T07:00:00Z',
                             end_datetime='2024-06-01T13:00:00Z')

        found = svc.get_in_range('2024-06-01T09:00:00Z', '2024-06-01T12:00:00Z')
        ids = [e['id'] for e in found]
        assert ids == [spanning['id'], point['id'], inside['id']]
        assert touching['id'] not in ids
        assert at_end['id'] not in ids


def test_range_matches_all_day_by_local_date():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService(timezone='America/New_York')
        ev = new_event(svc, admin_id, cust_id, title='Install day', all_day=True,
                       start_datetime='2024-06-03', end_datetime=None)
        assert ev['start_datetime'] == '2024-06-03T00:00:00Z'
        assert ev['end_datetime'] == '2024-06-04T00:00:00Z'
        assert ev['all_day_dates'] == {'start': '2024-06-03', 'end': '2024-06-03'}

        # local day 2024-06-03 in New York is 04:00Z .. 04:00Z next day
        day = svc.get_in_range('2024-06-03T04:00:00Z', '2024-06-04T04:00:00Z')
        assert [e['id'] for e in day] == [ev['id']]
        before = svc.get_in_range('2024-06-02T04:00:00Z', '2024-06-03T04:00:00Z')
        assert before == []


def test_range_filters():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService()
        a = new_event(svc, admin_id, cust_id)
        b = new_event(svc, admin_id, cust_id, event_type='follow_up')
        svc.cancel(b['id'], 1)
        window = ('2024-06-01T00:00:00Z', '2024-06-02T00:00:00Z')
        assert [e['id'] for e in svc.get_in_range(*window, status='scheduled')] == [a['id']]
        assert [e['id'] for e in svc.get_in_range(*window, event_type='follow_up')] == [b['id']]
        with pytest.raises(ValidationError):
            svc.get_in_range('2024-06-02T00:00:00Z', '2024-06-01T00:00:00Z')


def test_cursor_pagination_walks_everything_once():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService()
        base = datetime(2024, 6, 1, 9, tzinfo=UTC)
        created = set()
        for i in range(7):
            start = base + timedelta(hours=i // 2)  # pairs share a start
            ev = new_event(svc, admin_id, cust_id,
                           start_datetime=start.isoformat(),
                           end_datetime=(start + timedelta(hours=1)).isoformat())
            created.add(ev['id'])

        seen, cursor, pages = [], None, 0
        while True:
            page = svc.list(ListEventsInput(limit=3, cursor=cursor))
            seen.extend(e['id'] for e in page['events'])
            pages += 1
            if not page['has_more']:
                assert page['next_cursor'] is None
                break
            cursor = page['next_cursor']
        assert pages == 3
        assert len(seen) == len(set(seen)) == 7
        assert set(seen) == created

        with pytest.raises(ValidationError):
            svc.list(ListEventsInput(cursor='bogus!'))


def test_get_by_customer_upcoming_and_past():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, *_ = seed()
        svc = CalendarService()
        now = datetime.now(UTC).replace(microsecond=0)
        past = new_event(svc, admin_id, cust_id, title='Past',
                         start_datetime=(now - timedelta(days=2)).isoformat(),
                         end_datetime=(now - timedelta(days=2, hours=-1)).isoformat())
        soon = new_event(svc, admin_id, cust_id, title='Soon',
                         start_datetime=(now + timedelta(days=1)).isoformat(),
                         end_datetime=(now + timedelta(days=1, hours=1)).isoformat())
        later = new_event(svc, admin_id, cust_id, title='Later',
                          start_datetime=(now + timedelta(days=5)).isoformat(),
                          end_datetime=(now + timedelta(days=5, hours=1)).isoformat())

        upcoming = svc.get_by_customer(cust_id)
        assert [e['id'] for e in upcoming] == [soon['id'], later['id']]
        everything = svc.get_by_customer(cust_id, upcoming=False)
        assert [e['id'] for e in everything] == [later['id'], soon['id'], past['id']]
        assert len(svc.get_by_customer(cust_id, limit=1)) == 1
