# poolcrm/customers/routes.py

from flask import Blueprint, request

from poolcrm import db
from poolcrm.auth import current_principal, require_admin
from poolcrm.customers.schemas import CustomerCreate, PoolCreate, PropertyCreate
from poolcrm.directory import customer_detail, get_pools_for_customer, pool_detail
from poolcrm.errors import NotFoundError
from poolcrm.models import Customer, Pool, Property
from poolcrm.results import action, envelope_response
from poolcrm.revalidation import revalidate_paths
from poolcrm.schemas import validate

bp = Blueprint('customers', __name__)


def _json():
    return request.get_json(silent=True) or {}


def _active_customer(customer_id):
    customer = db.session.get(Customer, customer_id)
    if customer is None or customer.deleted_at is not None:
        raise NotFoundError('Customer')
    return customer


@action('List customers')
def list_customers(principal, q=''):
    require_admin(principal)
    query = Customer.query.filter(Customer.deleted_at.is_(None))
    if q:
        term = f'%{q}%'
        query = query.filter(Customer.name.ilike(term))
    return [
        {'id': c.id, 'name': c.name, 'phone': c.phone, 'email': c.email}
        for c in query.order_by(Customer.name).all()
    ]


@action('Create customer')
def create_customer(principal, payload):
    require_admin(principal)
    data = validate(CustomerCreate, payload)
    customer = Customer(name=data.name, phone=data.phone, email=data.email)
    db.session.add(customer)
    db.session.commit()
    revalidate_paths('/admin/customers')
    return customer_detail(customer)


@action('Fetch customer')
def get_customer(principal, customer_id):
    require_admin(principal)
    return customer_detail(_active_customer(customer_id))


@action('Create property')
def create_property(principal, payload):
    require_admin(principal)
    data = validate(PropertyCreate, payload)
    _active_customer(data.customer_id)
    prop = Property(
        customer_id=data.customer_id,
        address_line1=data.address_line1.strip(),
        city=data.city,
        state=data.state,
        zip_code=data.zip_code,
    )
    db.session.add(prop)
    db.session.commit()
    revalidate_paths(f'/admin/customers/{data.customer_id}')
    return {
        'id': prop.id,
        'customer_id': prop.customer_id,
        'address_line1': prop.address_line1,
        'city': prop.city,
        'state': prop.state,
        'zip_code': prop.zip_code,
    }


@action('Create pool')
def create_pool(principal, payload):
    require_admin(principal)
    data = validate(PoolCreate, payload)
    prop = db.session.get(Property, data.property_id)
    if prop is None:
        raise NotFoundError('Property')
    pool = Pool(
        property_id=prop.id,
        type=data.type,
        surface_type=data.surface_type,
        volume_gallons=data.volume_gallons,
    )
    db.session.add(pool)
    db.session.commit()
    revalidate_paths(f'/admin/customers/{prop.customer_id}')
    return pool_detail(pool)


@action('List customer pools')
def list_pools(principal, customer_id):
    require_admin(principal)
    _active_customer(customer_id)
    return [pool_detail(p) for p in get_pools_for_customer(customer_id)]


@bp.route('/', methods=['GET'])
def customers_index():
    q = request.args.get('q', '').strip()
    return envelope_response(list_customers(current_principal(), q))


@bp.route('/', methods=['POST'])
def customers_create():
    return envelope_response(create_customer(current_principal(), _json()), success_status=201)


@bp.route('/<customer_id>', methods=['GET'])
def customers_detail(customer_id):
    return envelope_response(get_customer(current_principal(), customer_id))


@bp.route('/<customer_id>/properties', methods=['POST'])
def properties_create(customer_id):
    payload = dict(_json(), customer_id=customer_id)
    return envelope_response(create_property(current_principal(), payload), success_status=201)


@bp.route('/properties/<property_id>/pools', methods=['POST'])
def pools_create(property_id):
    payload = dict(_json(), property_id=property_id)
    return envelope_response(create_pool(current_principal(), payload), success_status=201)


@bp.route('/<customer_id>/pools', methods=['GET'])
def pools_index(customer_id):
    return envelope_response(list_pools(current_principal(), customer_id))
