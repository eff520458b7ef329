# poolcrm/directory.py

"""Lookups against customers, properties and pools.

The scheduling and estimate code only needs to know that referenced records
exist and who owns them; those questions are answered here.
"""

from __future__ import annotations

from poolcrm import db
from poolcrm.models import Admin, Customer, Pool, Property


def customer_exists(customer_id) -> bool:
    if not customer_id:
        return False
    return db.session.query(
        Customer.query.filter(
            Customer.id == customer_id,
            Customer.deleted_at.is_(None),
        ).exists()
    ).scalar()


def get_customer_id_for_property(property_id):
    if not property_id:
        return None
    return db.session.query(Property.customer_id).filter(Property.id == property_id).scalar()


def get_customer_id_for_pool(pool_id):
    if not pool_id:
        return None
    return (
        db.session.query(Property.customer_id)
        .join(Pool, Pool.property_id == Property.id)
        .filter(Pool.id == pool_id)
        .scalar()
    )


def get_property_id_for_pool(pool_id):
    if not pool_id:
        return None
    return db.session.query(Pool.property_id).filter(Pool.id == pool_id).scalar()


def get_pools_for_customer(customer_id) -> list:
    return (
        Pool.query.join(Property, Pool.property_id == Property.id)
        .filter(Property.customer_id == customer_id)
        .order_by(Property.address_line1, Pool.type)
        .all()
    )


def customer_summary(customer: Customer | None, with_email=False):
    if customer is None:
        return None
    out = {'id': customer.id, 'name': customer.name, 'phone': customer.phone}
    if with_email:
        out['email'] = customer.email
    return out


def property_summary(prop: Property | None):
    if prop is None:
        return None
    return {
        'id': prop.id,
        'address_line1': prop.address_line1,
        'city': prop.city,
        'state': prop.state,
    }


def pool_summary(pool: Pool | None):
    if pool is None:
        return None
    return {'id': pool.id, 'type': pool.type}


def admin_summary(admin: Admin | None):
    if admin is None:
        return None
    return {'id': admin.id, 'full_name': admin.full_name, 'email': admin.email}


def customer_detail(customer: Customer) -> dict:
    return {
        'id': customer.id,
        'name': customer.name,
        'phone': customer.phone,
        'email': customer.email,
        'properties': [
            dict(property_summary(p), zip_code=p.zip_code,
                 pools=[pool_detail(pool) for pool in p.pools])
            for p in customer.properties
        ],
    }


def pool_detail(pool: Pool) -> dict:
    return {
        'id': pool.id,
        'property_id': pool.property_id,
        'type': pool.type,
        'surface_type': pool.surface_type,
        'volume_gallons': pool.volume_gallons,
    }
