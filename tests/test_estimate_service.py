import os
import sys
import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from poolcrm import create_app, db
from poolcrm.errors import ConflictError, NotFoundError, ValidationError
from poolcrm.estimates.schemas import (
    CreateEstimateInput,
    EditLineItemInput,
    ListEstimatesInput,
    NewLineItemInput,
    RemoveLineItemInput,
    UpdateEstimateInput,
)
from poolcrm.estimates.line_items import calculate_line_item_total
from poolcrm.estimates.service import EstimateService
from poolcrm.money import calculate_tax
from poolcrm.models import Admin, Customer, Estimate, EstimateLineItem, Pool, Property
from poolcrm.schemas import validate


def setup_app():
    app = create_app('testing')
    with app.app_context():
        db.drop_all()
        db.create_all()
    return app


def seed():
    admin = Admin(email='sales@example.com', full_name='Sales', password_hash='x')
    cust = Customer(name='Acme Pools', phone='555-0101', email='acme@example.com')
    other = Customer(name='Someone Else')
    db.session.add_all([admin, cust, other])
    db.session.flush()
    prop = Property(customer_id=other.id, address_line1='2 Elm')
    db.session.add(prop)
    db.session.flush()
    foreign_pool = Pool(property_id=prop.id, type='spa')
    db.session.add(foreign_pool)
    db.session.commit()
    return admin.id, cust.id, foreign_pool.id


def line(qty, price, description='Work'):
    return {'id': str(uuid.uuid4()), 'description': description,
            'quantity': qty, 'unit_price_cents': price}


def make_estimate(svc, admin_id, customer_id, items=None, **kw):
    data = dict(customer_id=customer_id,
                line_items=items or [line(2, 5000), line(1, 5000)],
                tax_rate='0.07')
    data.update(kw)
    return svc.create(CreateEstimateInput(**data), admin_id)


def test_create_computes_totals_and_numbers():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        first = make_estimate(svc, admin_id, cust_id)
        second = make_estimate(svc, admin_id, cust_id)
        assert first['estimate_number'] == 'EST-0001'
        assert second['estimate_number'] == 'EST-0002'
        assert first['status'] == 'draft'
        assert first['version'] == 1
        assert first['subtotal_cents'] == 15000
        assert first['tax_amount_cents'] == 1050
        assert first['total_cents'] == 16050
        assert [i['total_cents'] for i in first['line_items']] == [10000, 5000]
        assert first['customer']['email'] == 'acme@example.com'
        assert first['allowed_next_statuses'] == ['sent']
        assert svc.get_by_number('EST-0002')['id'] == second['id']


def test_number_follows_highest_existing():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        first = make_estimate(svc, admin_id, cust_id)
        make_estimate(svc, admin_id, cust_id)
        svc.delete(first['id'])
        third = make_estimate(svc, admin_id, cust_id)
        assert third['estimate_number'] == 'EST-0003'


def test_create_rejects_bad_references():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, foreign_pool = seed()
        svc = EstimateService()
        with pytest.raises(NotFoundError):
            make_estimate(svc, admin_id, str(uuid.uuid4()))
        with pytest.raises(ValidationError):
            make_estimate(svc, admin_id, cust_id, pool_id=foreign_pool)
        assert Estimate.query.count() == 0


def test_status_workflow_and_compare_and_set():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        est = make_estimate(svc, admin_id, cust_id)
        with pytest.raises(ValidationError):
            svc.update_status(est['id'], 'converted')
        assert svc.get_by_id(est['id'])['status'] == 'draft'

        sent = svc.update_status(est['id'], 'sent')
        assert sent['status'] == 'sent'
        assert sent['version'] == 2
        assert sent['valid_until'] is not None

        with pytest.raises(ConflictError):
            svc.update_status(est['id'], 'declined', version=1)
        declined = svc.update_status(est['id'], 'declined', version=2)
        assert declined['allowed_next_statuses'] == []
        with pytest.raises(ValidationError):
            svc.update_status(est['id'], 'draft')


def test_expired_flag_only_for_sent():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        yesterday = date.today() - timedelta(days=2)
        est = make_estimate(svc, admin_id, cust_id, valid_until=yesterday.isoformat())
        assert svc.get_by_id(est['id'])['is_expired'] is False
        svc.update_status(est['id'], 'sent')
        assert svc.get_by_id(est['id'])['is_expired'] is True
        assert [e['id'] for e in svc.expired()] == [est['id']]
        svc.update_status(est['id'], 'converted')
        after = svc.get_by_id(est['id'])
        assert after['valid_until'] == yesterday.isoformat()
        assert after['is_expired'] is False
        assert svc.expired() == []


def test_duplicate_resets_workflow():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        items = [line(2, 5000, 'Pump'), line(1, 2500, 'Filter'), line(5, 500, 'Labor')]
        est = make_estimate(svc, admin_id, cust_id, items=items,
                            valid_until=(date.today() + timedelta(days=10)).isoformat())
        svc.update_status(est['id'], 'sent')
        source = svc.update_status(est['id'], 'converted')
        assert source['subtotal_cents'] == 15000

        copy = svc.duplicate(est['id'], admin_id)
        assert copy['id'] != source['id']
        assert copy['estimate_number'] != source['estimate_number']
        assert copy['status'] == 'draft'
        assert copy['version'] == 1
        assert copy['valid_until'] is None
        assert len(copy['line_items']) == 3
        assert {i['id'] for i in copy['line_items']}.isdisjoint(
            {i['id'] for i in source['line_items']})
        strip = lambda rows: [(i['description'], i['quantity'], i['unit_price_cents'],
                               i['total_cents']) for i in rows]
        assert strip(copy['line_items']) == strip(source['line_items'])
        for key in ('subtotal_cents', 'tax_amount_cents', 'total_cents', 'tax_rate'):
            assert copy[key] == source[key]
        assert svc.get_by_id(est['id'])['status'] == 'converted'


def test_update_replaces_items_and_recomputes():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        est = make_estimate(svc, admin_id, cust_id)
        kept = dict(est['line_items'][1], quantity=3)
        kept.pop('total_cents')
        kept.pop('position')
        fresh = line(1, 1234, 'New')
        updated = svc.update(UpdateEstimateInput(
            id=est['id'], version=1, line_items=[fresh, kept], tax_rate='0.1',
            notes='  Call first  '))
        assert updated['version'] == 2
        assert [i['id'] for i in updated['line_items']] == [fresh['id'], kept['id']]
        assert updated['subtotal_cents'] == 1234 + 15000
        assert updated['tax_amount_cents'] == 1623  # 1623.4
        assert updated['total_cents'] == 16234 + 1623
        assert updated['notes'] == 'Call first'
        assert EstimateLineItem.query.filter_by(estimate_id=est['id']).count() == 2

        with pytest.raises(ConflictError):
            svc.update(UpdateEstimateInput(id=est['id'], version=1, notes='stale'))
        assert svc.get_by_id(est['id'])['notes'] == 'Call first'


def test_tax_only_update_recomputes_totals():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        est = make_estimate(svc, admin_id, cust_id)
        updated = svc.update(UpdateEstimateInput(id=est['id'], tax_rate=Decimal('0')))
        assert updated['tax_amount_cents'] == 0
        assert updated['total_cents'] == updated['subtotal_cents'] == 15000


def test_line_item_operations_keep_totals_consistent():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        est = make_estimate(svc, admin_id, cust_id, items=[line(1, 1000)])
        first_id = est['line_items'][0]['id']

        est = svc.add_line_item(NewLineItemInput(estimate_id=est['id'], quantity='1.5',
                                                 unit_price_cents=333, description='Chem'))
        assert len(est['line_items']) == 2
        assert est['line_items'][1]['total_cents'] == 500
        assert est['subtotal_cents'] == 1500
        assert est['version'] == 2

        est = svc.edit_line_item(EditLineItemInput(estimate_id=est['id'], id=first_id,
                                                   quantity=2, version=2))
        assert est['subtotal_cents'] == 2500
        assert est['total_cents'] == est['subtotal_cents'] + est['tax_amount_cents']

        est = svc.remove_line_item(RemoveLineItemInput(estimate_id=est['id'], id=first_id))
        assert [i['total_cents'] for i in est['line_items']] == [500]
        assert est['subtotal_cents'] == 500
        assert est['tax_amount_cents'] == 35

        only = est['line_items'][0]['id']
        with pytest.raises(ValidationError):
            svc.remove_line_item(RemoveLineItemInput(estimate_id=est['id'], id=only))
        assert len(svc.get_by_id(est['id'])['line_items']) == 1


def assert_stored_totals_consistent(estimate_id):
    est = db.session.get(Estimate, estimate_id)
    rows = EstimateLineItem.query.filter_by(estimate_id=estimate_id).all()
    for row in rows:
        assert row.total_cents == calculate_line_item_total(row.quantity, row.unit_price_cents)
    subtotal = sum(row.total_cents for row in rows)
    assert est.subtotal_cents == subtotal
    assert est.tax_amount_cents == calculate_tax(subtotal, est.tax_rate)
    assert est.total_cents == subtotal + est.tax_amount_cents


def test_stored_totals_match_stored_rows():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        est = make_estimate(svc, admin_id, cust_id,
                            items=[line('2.5', 4999), line('0.3333', 99999999),
                                   line('1.0625', 1234)],
                            tax_rate='0.08875')
        db.session.remove()

        assert_stored_totals_consistent(est['id'])
        reloaded = EstimateService().get_by_id(est['id'])
        assert reloaded['subtotal_cents'] == est['subtotal_cents']
        assert reloaded['tax_rate'] == 0.08875

        # an unrelated edit recomputes from the stored rows without drift
        noted = EstimateService().update(UpdateEstimateInput(id=est['id'], notes='Gate code 42'))
        assert noted['subtotal_cents'] == est['subtotal_cents']
        assert noted['total_cents'] == est['total_cents']
        db.session.remove()
        assert_stored_totals_consistent(est['id'])


def test_rejects_precision_the_columns_cannot_hold():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        with pytest.raises(ValidationError) as exc:
            validate(CreateEstimateInput, {'customer_id': cust_id,
                                           'line_items': [line('0.00005', 99999999)]})
        assert 'line_items.0.quantity' in exc.value.details['errors']
        with pytest.raises(ValidationError) as exc:
            validate(CreateEstimateInput, {'customer_id': cust_id, 'line_items': [line(1, 100)],
                                           'tax_rate': '0.123456'})
        assert 'tax_rate' in exc.value.details['errors']

        est = make_estimate(svc, admin_id, cust_id, items=[line(1, 100)])
        with pytest.raises(ValidationError):
            validate(EditLineItemInput, {'estimate_id': est['id'],
                                         'id': est['line_items'][0]['id'],
                                         'quantity': '1.23456'})
        assert Estimate.query.count() == 1


def test_list_filters_sorts_and_pages():
    app = setup_app()
    with app.app_context():
        admin_id, cust_id, _ = seed()
        svc = EstimateService()
        ids = [make_estimate(svc, admin_id, cust_id)['id'] for _ in range(5)]
        svc.update_status(ids[0], 'sent')
        svc.update_status(ids[1], 'sent')

        page = svc.list(ListEstimatesInput(limit=2, sort_by='estimate_number', sort_order='asc'))
        assert page['total'] == 5
        assert page['has_more'] is True
        assert [e['estimate_number'] for e in page['estimates']] == ['EST-0001', 'EST-0002']

        last = svc.list(ListEstimatesInput(limit=2, offset=4, sort_by='estimate_number'))
        assert last['has_more'] is False
        assert len(last['estimates']) == 1

        sent = svc.list(ListEstimatesInput(status='sent'))
        assert {e['id'] for e in sent['estimates']} == {ids[0], ids[1]}
        mixed = svc.list(ListEstimatesInput(status=['sent', 'draft']))
        assert mixed['total'] == 5


def test_delete_missing_estimate():
    app = setup_app()
    with app.app_context():
        seed()
        with pytest.raises(NotFoundError):
            EstimateService().delete(str(uuid.uuid4()))
