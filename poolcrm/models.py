import uuid
from datetime import datetime, timezone

from poolcrm import db


def new_id():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


class Admin(db.Model):
    __tablename__ = 'admin'
    id            = db.Column(db.String(36), primary_key=True, default=new_id)
    email         = db.Column(db.String(255), unique=True, nullable=False)
    full_name     = db.Column(db.String(200), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active     = db.Column(db.Boolean, nullable=False, default=True)
    created_at    = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)


class Customer(db.Model):
    __tablename__ = 'customer'
    id         = db.Column(db.String(36), primary_key=True, default=new_id)
    name       = db.Column(db.String(200), nullable=False)
    phone      = db.Column(db.String(40))
    email      = db.Column(db.String(255))
    deleted_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    properties = db.relationship(
        'Property',
        back_populates='customer',
        cascade='all, delete-orphan'
    )


class Property(db.Model):
    __tablename__ = 'property'
    id            = db.Column(db.String(36), primary_key=True, default=new_id)
    customer_id   = db.Column(
        db.String(36),
        db.ForeignKey('customer.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    address_line1 = db.Column(db.String(200), nullable=False)
    city          = db.Column(db.String(100))
    state         = db.Column(db.String(40))
    zip_code      = db.Column(db.String(20))

    customer = db.relationship('Customer', back_populates='properties')
    pools = db.relationship(
        'Pool',
        back_populates='property',
        cascade='all, delete-orphan'
    )


class Pool(db.Model):
    __tablename__ = 'pool'
    id             = db.Column(db.String(36), primary_key=True, default=new_id)
    property_id    = db.Column(
        db.String(36),
        db.ForeignKey('property.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    type           = db.Column(db.String(40), nullable=False)  # inground, above_ground, ...
    surface_type   = db.Column(db.String(40))
    volume_gallons = db.Column(db.Integer)

    property = db.relationship('Property', back_populates='pools')


class CalendarEvent(db.Model):
    __tablename__ = 'calendar_event'
    id             = db.Column(db.String(36), primary_key=True, default=new_id)
    customer_id    = db.Column(db.String(36), db.ForeignKey('customer.id'), nullable=False, index=True)
    property_id    = db.Column(db.String(36), db.ForeignKey('property.id'))
    pool_id        = db.Column(db.String(36), db.ForeignKey('pool.id'))
    title          = db.Column(db.String(200), nullable=False)
    description    = db.Column(db.Text)
    event_type     = db.Column(db.String(32), nullable=False, default='consultation')
    status         = db.Column(db.String(32), nullable=False, default='scheduled')
    start_datetime = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    end_datetime   = db.Column(db.DateTime(timezone=True), nullable=False)
    all_day        = db.Column(db.Boolean, nullable=False, default=False)
    location_url   = db.Column(db.String(2048))
    created_by     = db.Column(db.String(36), db.ForeignKey('admin.id'), nullable=False)
    version        = db.Column(db.Integer, nullable=False, default=1)
    created_at     = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at     = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint('end_datetime >= start_datetime', name='ck_calendar_event_time_order'),
        db.Index('ix_calendar_event_start_id', 'start_datetime', 'id'),
    )

    customer = db.relationship('Customer')
    property = db.relationship('Property')
    pool = db.relationship('Pool')
    created_by_admin = db.relationship('Admin')


class Estimate(db.Model):
    __tablename__ = 'estimate'
    id               = db.Column(db.String(36), primary_key=True, default=new_id)
    sequence         = db.Column(db.Integer, unique=True, nullable=False)
    estimate_number  = db.Column(db.String(32), unique=True, nullable=False)
    status           = db.Column(db.String(32), nullable=False, default='draft')
    customer_id      = db.Column(db.String(36), db.ForeignKey('customer.id'), nullable=False, index=True)
    pool_id          = db.Column(db.String(36), db.ForeignKey('pool.id'))
    subtotal_cents   = db.Column(db.BigInteger, nullable=False, default=0)
    tax_rate         = db.Column(db.Numeric(6, 5), nullable=False, default=0)
    tax_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_cents      = db.Column(db.BigInteger, nullable=False, default=0)
    valid_until      = db.Column(db.Date)
    notes            = db.Column(db.Text)
    created_by       = db.Column(db.String(36), db.ForeignKey('admin.id'), nullable=False)
    version          = db.Column(db.Integer, nullable=False, default=1)
    created_at       = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at       = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    line_items = db.relationship(
        'EstimateLineItem',
        back_populates='estimate',
        cascade='all, delete-orphan',
        order_by='EstimateLineItem.position'
    )
    customer = db.relationship('Customer')
    pool = db.relationship('Pool')
    created_by_admin = db.relationship('Admin')


class EstimateLineItem(db.Model):
    __tablename__ = 'estimate_line_item'
    estimate_id      = db.Column(
        db.String(36),
        db.ForeignKey('estimate.id', ondelete='CASCADE'),
        primary_key=True
    )
    # client proposed, unique within its estimate
    id               = db.Column(db.String(36), primary_key=True)
    position         = db.Column(db.Integer, nullable=False, default=0)
    description      = db.Column(db.String(500), nullable=False, default='')
    quantity         = db.Column(db.Numeric(10, 4), nullable=False, default=0)
    unit_price_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_cents      = db.Column(db.BigInteger, nullable=False, default=0)

    estimate = db.relationship('Estimate', back_populates='line_items')
