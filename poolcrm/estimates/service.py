# poolcrm/estimates/service.py

"""Estimate persistence.

Totals are always recomputed from the line items before anything is
written.  Writes that change an existing estimate go through one
conditional ``UPDATE`` that also bumps ``version``; when the caller passes
the version they read, a concurrent edit turns into a ``ConflictError``
instead of a silent overwrite.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from flask import current_app, has_app_context
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from poolcrm import db
from poolcrm.directory import (
    admin_summary,
    customer_exists,
    customer_summary,
    get_customer_id_for_pool,
    pool_summary,
)
from poolcrm.errors import ConflictError, InternalError, NotFoundError, ValidationError
from poolcrm.estimates.line_items import LineItemList, clone_line_items
from poolcrm.estimates.schemas import (
    CreateEstimateInput,
    EditLineItemInput,
    ListEstimatesInput,
    NewLineItemInput,
    RemoveLineItemInput,
    UpdateEstimateInput,
)
from poolcrm.estimates.workflow import (
    DRAFT,
    SENT,
    assert_transition,
    get_allowed_next_statuses,
    is_expired,
    status_label,
)
from poolcrm.models import Estimate, EstimateLineItem, new_id
from poolcrm.timeutils import get_zone, to_iso, utcnow

logger = logging.getLogger(__name__)

NUMBER_ATTEMPTS = 3

SORT_COLUMNS = {
    'created_at': Estimate.created_at,
    'updated_at': Estimate.updated_at,
    'estimate_number': Estimate.sequence,
    'total_cents': Estimate.total_cents,
    'valid_until': Estimate.valid_until,
}


def business_today(tz: str | None = None) -> date:
    return utcnow().astimezone(get_zone(tz)).date()


def line_item_to_dict(item: EstimateLineItem) -> dict:
    return {
        'id': item.id,
        'position': item.position,
        'description': item.description,
        'quantity': float(item.quantity),
        'unit_price_cents': item.unit_price_cents,
        'total_cents': item.total_cents,
    }


def estimate_to_dict(est: Estimate, today: date | None = None) -> dict:
    today = today or business_today()
    return {
        'id': est.id,
        'estimate_number': est.estimate_number,
        'status': est.status,
        'status_label': status_label(est.status),
        'customer_id': est.customer_id,
        'pool_id': est.pool_id,
        'line_items': [line_item_to_dict(i) for i in est.line_items],
        'subtotal_cents': est.subtotal_cents,
        'tax_rate': float(est.tax_rate),
        'tax_amount_cents': est.tax_amount_cents,
        'total_cents': est.total_cents,
        'valid_until': est.valid_until.isoformat() if est.valid_until else None,
        'notes': est.notes,
        'created_by': est.created_by,
        'version': est.version,
        'created_at': to_iso(est.created_at),
        'updated_at': to_iso(est.updated_at),
        'customer': customer_summary(est.customer, with_email=True),
        'pool': pool_summary(est.pool),
        'created_by_admin': admin_summary(est.created_by_admin),
        'is_expired': is_expired(est.status, est.valid_until, today),
        'allowed_next_statuses': list(get_allowed_next_statuses(est.status)),
    }


def _item_rows(items: LineItemList, estimate_id: str, existing: dict) -> list:
    """ORM rows for ``items`` in order, reusing rows whose id is kept."""
    rows = []
    for position, item in enumerate(items):
        row = existing.get(item.id)
        if row is None:
            row = EstimateLineItem(estimate_id=estimate_id, id=item.id)
        row.position = position
        row.description = item.description
        row.quantity = item.quantity
        row.unit_price_cents = item.unit_price_cents
        row.total_cents = item.total_cents
        rows.append(row)
    return rows


class EstimateService:
    def __init__(self, session=None, config=None) -> None:
        self.session = session or db.session
        if config is None:
            config = current_app.config if has_app_context() else {}
        self.prefix = config.get('ESTIMATE_NUMBER_PREFIX', 'EST')
        self.valid_days = int(config.get('ESTIMATE_VALID_DAYS', 30))
        self.timezone = config.get('DEFAULT_TIMEZONE')

    # -- reads -------------------------------------------------------------

    def _query(self):
        return self.session.query(Estimate).options(
            selectinload(Estimate.line_items),
            joinedload(Estimate.customer),
            joinedload(Estimate.pool),
            joinedload(Estimate.created_by_admin),
        )

    def _load(self, estimate_id) -> Estimate:
        est = self._query().filter(Estimate.id == estimate_id).one_or_none()
        if est is None:
            raise NotFoundError('Estimate')
        return est

    def _to_dict(self, est: Estimate) -> dict:
        return estimate_to_dict(est, business_today(self.timezone))

    def get_by_id(self, estimate_id) -> dict:
        return self._to_dict(self._load(estimate_id))

    def get_by_number(self, estimate_number: str) -> dict:
        est = self._query().filter(Estimate.estimate_number == estimate_number).one_or_none()
        if est is None:
            raise NotFoundError('Estimate')
        return self._to_dict(est)

    def list(self, params: ListEstimatesInput) -> dict:
        q = self.session.query(Estimate)
        if params.customer_id:
            q = q.filter(Estimate.customer_id == params.customer_id)
        statuses = params.statuses()
        if statuses:
            q = q.filter(Estimate.status.in_(statuses))
        total = q.count()
        column = SORT_COLUMNS[params.sort_by]
        order = column.asc() if params.sort_order == 'asc' else column.desc()
        rows = (
            q.options(
                selectinload(Estimate.line_items),
                joinedload(Estimate.customer),
                joinedload(Estimate.pool),
                joinedload(Estimate.created_by_admin),
            )
            .order_by(order, Estimate.id)
            .offset(params.offset)
            .limit(params.limit)
            .all()
        )
        return {
            'estimates': [self._to_dict(e) for e in rows],
            'total': total,
            'has_more': params.offset + len(rows) < total,
        }

    def expired(self, today: date | None = None) -> list:
        today = today or business_today(self.timezone)
        rows = (
            self._query()
            .filter(Estimate.status == SENT, Estimate.valid_until < today)
            .order_by(Estimate.valid_until, Estimate.sequence)
            .all()
        )
        return [estimate_to_dict(e, today) for e in rows]

    # -- writes ------------------------------------------------------------

    def format_number(self, sequence: int) -> str:
        return f'{self.prefix}-{sequence:04d}'

    def _next_sequence(self) -> int:
        return (self.session.query(func.max(Estimate.sequence)).scalar() or 0) + 1

    def _insert(self, build) -> Estimate:
        """Insert with the next estimate number, retrying a lost number race."""
        for attempt in range(1, NUMBER_ATTEMPTS + 1):
            sequence = self._next_sequence()
            est = build(sequence, self.format_number(sequence))
            self.session.add(est)
            try:
                self.session.commit()
                return est
            except IntegrityError:
                self.session.rollback()
                logger.info('Estimate number %s taken, retrying (%s/%s)',
                            est.estimate_number, attempt, NUMBER_ATTEMPTS)
        raise InternalError('Could not allocate an estimate number')

    def create(self, data: CreateEstimateInput, admin_id: str) -> dict:
        if not customer_exists(data.customer_id):
            raise NotFoundError('Customer')
        if data.pool_id and get_customer_id_for_pool(data.pool_id) != data.customer_id:
            raise ValidationError('Pool does not belong to this customer')
        items = LineItemList(data.line_items)
        totals = items.totals(data.tax_rate)

        def build(sequence, number):
            now = utcnow()
            est = Estimate(
                id=new_id(),
                sequence=sequence,
                estimate_number=number,
                status=DRAFT,
                customer_id=data.customer_id,
                pool_id=data.pool_id,
                subtotal_cents=totals.subtotal_cents,
                tax_rate=data.tax_rate,
                tax_amount_cents=totals.tax_amount_cents,
                total_cents=totals.total_cents,
                valid_until=data.valid_until,
                notes=data.notes,
                created_by=admin_id,
                version=1,
                created_at=now,
                updated_at=now,
            )
            est.line_items = _item_rows(items, est.id, {})
            return est

        est = self._insert(build)
        logger.info('Created estimate %s (%s)', est.estimate_number, est.id)
        return self.get_by_id(est.id)

    def _write(self, est: Estimate, values: dict, version=None, expected_status=None,
               items: LineItemList | None = None) -> dict:
        """Conditionally update ``est`` and, when given, replace its items."""
        if items is not None:
            totals = items.totals(values.get('tax_rate', est.tax_rate))
            values.update(
                subtotal_cents=totals.subtotal_cents,
                tax_amount_cents=totals.tax_amount_cents,
                total_cents=totals.total_cents,
            )
        stmt = update(Estimate).where(Estimate.id == est.id)
        if version is not None:
            stmt = stmt.where(Estimate.version == version)
        if expected_status is not None:
            stmt = stmt.where(Estimate.status == expected_status)
        stmt = stmt.values(
            version=Estimate.version + 1,
            updated_at=utcnow(),
            **values,
        ).execution_options(synchronize_session=False)
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            self.session.rollback()
            current = self.session.get(Estimate, est.id, populate_existing=True)
            if current is None:
                raise NotFoundError('Estimate')
            logger.info('Conflicting write on estimate %s', est.id)
            raise ConflictError(details={
                'current_version': current.version,
                'current_status': current.status,
            })
        if items is not None:
            existing = {row.id: row for row in est.line_items}
            est.line_items = _item_rows(items, est.id, existing)
        self.session.commit()
        return self.get_by_id(est.id)

    def update(self, data: UpdateEstimateInput) -> dict:
        est = self._load(data.id)
        fields = data.model_fields_set
        values = {}
        if 'pool_id' in fields:
            if data.pool_id and get_customer_id_for_pool(data.pool_id) != est.customer_id:
                raise ValidationError('Pool does not belong to this customer')
            values['pool_id'] = data.pool_id
        if 'tax_rate' in fields:
            if data.tax_rate is None:
                raise ValidationError('Tax rate is required')
            values['tax_rate'] = data.tax_rate
        if 'notes' in fields:
            values['notes'] = data.notes
        if 'valid_until' in fields:
            values['valid_until'] = data.valid_until
        if 'line_items' in fields and data.line_items is None:
            raise ValidationError('At least one line item is required')
        items = LineItemList(data.line_items if data.line_items is not None else est.line_items)
        return self._write(est, values, version=data.version, items=items)

    def update_status(self, estimate_id, status: str, version=None) -> dict:
        est = self._load(estimate_id)
        observed = est.status
        assert_transition(observed, status)
        values = {'status': status}
        if status == SENT and est.valid_until is None:
            values['valid_until'] = business_today(self.timezone) + timedelta(days=self.valid_days)
        result = self._write(est, values, version=version, expected_status=observed)
        logger.info('Estimate %s moved %s -> %s', est.estimate_number, observed, status)
        return result

    def add_line_item(self, data: NewLineItemInput) -> dict:
        est = self._load(data.estimate_id)
        items = LineItemList(est.line_items)
        items.add(
            data.id,
            description=data.description,
            quantity=data.quantity,
            unit_price_cents=data.unit_price_cents,
        )
        return self._write(est, {}, version=data.version, items=items)

    def edit_line_item(self, data: EditLineItemInput) -> dict:
        est = self._load(data.estimate_id)
        items = LineItemList(est.line_items)
        changes = {
            name: getattr(data, name)
            for name in ('description', 'quantity', 'unit_price_cents')
            if name in data.model_fields_set and getattr(data, name) is not None
        }
        items.edit(data.id, **changes)
        return self._write(est, {}, version=data.version, items=items)

    def remove_line_item(self, data: RemoveLineItemInput) -> dict:
        est = self._load(data.estimate_id)
        items = LineItemList(est.line_items)
        items.remove(data.id)
        return self._write(est, {}, version=data.version, items=items)

    def duplicate(self, estimate_id, admin_id: str) -> dict:
        source = self._load(estimate_id)
        items = LineItemList(clone_line_items(source.line_items))
        totals = items.totals(source.tax_rate)

        def build(sequence, number):
            now = utcnow()
            est = Estimate(
                id=new_id(),
                sequence=sequence,
                estimate_number=number,
                status=DRAFT,
                customer_id=source.customer_id,
                pool_id=source.pool_id,
                subtotal_cents=totals.subtotal_cents,
                tax_rate=source.tax_rate,
                tax_amount_cents=totals.tax_amount_cents,
                total_cents=totals.total_cents,
                valid_until=None,
                notes=source.notes,
                created_by=admin_id,
                version=1,
                created_at=now,
                updated_at=now,
            )
            est.line_items = _item_rows(items, est.id, {})
            return est

        est = self._insert(build)
        logger.info('Duplicated estimate %s as %s', source.estimate_number, est.estimate_number)
        return self.get_by_id(est.id)

    def delete(self, estimate_id) -> dict:
        est = self._load(estimate_id)
        info = {'id': est.id, 'customer_id': est.customer_id,
                'estimate_number': est.estimate_number}
        self.session.delete(est)
        self.session.commit()
        return info
