# poolcrm/estimates/line_items.py

"""Line item arithmetic and the ordered working set used while editing.

Totals are never taken from callers: every line total and every estimate
aggregate is recomputed here from quantity and unit price.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Iterable, NamedTuple

from poolcrm.errors import NotFoundError, ValidationError
from poolcrm.money import calculate_tax, round_half_up, to_decimal

MAX_DESCRIPTION_LENGTH = 500
MAX_QUANTITY = Decimal('9999')
MAX_UNIT_PRICE_CENTS = 99_999_999
# scales of the quantity and tax_rate columns
QUANTITY_PLACES = 4
TAX_RATE_PLACES = 5


class Totals(NamedTuple):
    subtotal_cents: int
    tax_amount_cents: int
    total_cents: int


@dataclass(frozen=True)
class LineItem:
    id: str
    description: str = ''
    quantity: Decimal = Decimal(0)
    unit_price_cents: int = 0

    @property
    def total_cents(self) -> int:
        return calculate_line_item_total(self.quantity, self.unit_price_cents)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'description': self.description,
            'quantity': float(self.quantity),
            'unit_price_cents': self.unit_price_cents,
            'total_cents': self.total_cents,
        }


def calculate_line_item_total(quantity, unit_price_cents: int) -> int:
    return round_half_up(to_decimal(quantity) * int(unit_price_cents))


def calculate_estimate_totals(items: Iterable, tax_rate) -> Totals:
    """Aggregate line totals and apply tax (half-up on the subtotal)."""
    subtotal = sum(
        calculate_line_item_total(_field(i, 'quantity'), _field(i, 'unit_price_cents'))
        for i in items
    )
    tax = calculate_tax(subtotal, tax_rate)
    return Totals(subtotal, tax, subtotal + tax)


def _field(item, name):
    if isinstance(item, dict):
        return item[name]
    return getattr(item, name)


def fits_places(value, places: int) -> bool:
    """True when ``value`` is stored unchanged at ``places`` decimal places."""
    value = to_decimal(value)
    return value == value.quantize(Decimal(1).scaleb(-places))


def normalize_quantity(value) -> Decimal:
    try:
        quantity = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError('Quantity must be a number')
    if not quantity.is_finite() or quantity < 0:
        raise ValidationError('Quantity must not be negative')
    if quantity > MAX_QUANTITY:
        raise ValidationError(f'Quantity must not exceed {MAX_QUANTITY}')
    if not fits_places(quantity, QUANTITY_PLACES):
        raise ValidationError(f'Quantity must have at most {QUANTITY_PLACES} decimal places')
    return quantity


def normalize_unit_price(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError('Unit price must be a whole number of cents')
    if value < 0 or value > MAX_UNIT_PRICE_CENTS:
        raise ValidationError(f'Unit price must be between 0 and {MAX_UNIT_PRICE_CENTS} cents')
    return value


def normalize_description(value) -> str:
    value = (value or '').strip()
    if len(value) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f'Description must be at most {MAX_DESCRIPTION_LENGTH} characters')
    return value


def normalize_item_id(value) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        raise ValidationError(f'Invalid line item id: {value}')


def make_line_item(data) -> LineItem:
    """Build a validated ``LineItem`` from a dict or another item."""
    if isinstance(data, LineItem):
        return data
    return LineItem(
        id=normalize_item_id(_field(data, 'id')),
        description=normalize_description(_field(data, 'description')),
        quantity=normalize_quantity(_field(data, 'quantity')),
        unit_price_cents=normalize_unit_price(_field(data, 'unit_price_cents')),
    )


class LineItemList:
    """Ordered, id-unique line items with at least one entry once populated."""

    def __init__(self, items: Iterable = ()) -> None:
        self._items: list[LineItem] = []
        for raw in items:
            item = make_line_item(raw)
            if self._index(item.id) is not None:
                raise ValidationError(f'Duplicate line item id: {item.id}')
            self._items.append(item)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    @property
    def items(self) -> list[LineItem]:
        return list(self._items)

    def _index(self, item_id: str):
        for i, item in enumerate(self._items):
            if item.id == item_id:
                return i
        return None

    def get(self, item_id: str) -> LineItem:
        idx = self._index(item_id)
        if idx is None:
            raise NotFoundError('Line item')
        return self._items[idx]

    def add(self, item_id: str | None = None, **fields) -> LineItem:
        """Append a blank line (or one built from ``fields``) with a fresh id."""
        item_id = normalize_item_id(item_id) if item_id else str(uuid.uuid4())
        if self._index(item_id) is not None:
            raise ValidationError(f'Duplicate line item id: {item_id}')
        item = make_line_item({
            'id': item_id,
            'description': fields.get('description', ''),
            'quantity': fields.get('quantity', 0),
            'unit_price_cents': fields.get('unit_price_cents', 0),
        })
        self._items.append(item)
        return item

    def remove(self, item_id: str) -> LineItem:
        idx = self._index(item_id)
        if idx is None:
            raise NotFoundError('Line item')
        if len(self._items) == 1:
            raise ValidationError('An estimate must have at least one line item')
        return self._items.pop(idx)

    def edit(self, item_id: str, **fields) -> LineItem:
        idx = self._index(item_id)
        if idx is None:
            raise NotFoundError('Line item')
        changes = {}
        if 'description' in fields:
            changes['description'] = normalize_description(fields['description'])
        if 'quantity' in fields:
            changes['quantity'] = normalize_quantity(fields['quantity'])
        if 'unit_price_cents' in fields:
            changes['unit_price_cents'] = normalize_unit_price(fields['unit_price_cents'])
        unknown = set(fields) - {'description', 'quantity', 'unit_price_cents'}
        if unknown:
            raise ValidationError(f'Unknown line item field: {sorted(unknown)[0]}')
        item = replace(self._items[idx], **changes)
        self._items[idx] = item
        return item

    def totals(self, tax_rate) -> Totals:
        return calculate_estimate_totals(self._items, tax_rate)


def clone_line_items(items: Iterable) -> list[LineItem]:
    """Copy items in order, each with a freshly generated id."""
    return [
        LineItem(
            id=str(uuid.uuid4()),
            description=_field(i, 'description') or '',
            quantity=to_decimal(_field(i, 'quantity')),
            unit_price_cents=int(_field(i, 'unit_price_cents')),
        )
        for i in items
    ]
