"""Estimate command payloads."""

from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from poolcrm.estimates.line_items import (
    MAX_QUANTITY,
    MAX_UNIT_PRICE_CENTS,
    QUANTITY_PLACES,
    TAX_RATE_PLACES,
    fits_places,
)
from poolcrm.estimates.workflow import ESTIMATE_STATUSES
from poolcrm.schemas import check_uuid, clean_text

EstimateStatus = Literal['draft', 'sent', 'internal_final', 'converted', 'declined']
SortField = Literal['created_at', 'updated_at', 'estimate_number', 'total_cents', 'valid_until']


def check_places(value, places, label):
    if value is not None and not fits_places(value, places):
        raise ValueError(f'{label} must have at most {places} decimal places')
    return value


class LineItemInput(BaseModel):
    """Schema for one line item; totals are always derived"""

    id: str
    description: str = Field(default='', max_length=500)
    quantity: Decimal = Field(ge=0, le=MAX_QUANTITY)
    unit_price_cents: int = Field(ge=0, le=MAX_UNIT_PRICE_CENTS)

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'line item id')

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v):
        return check_places(v, QUANTITY_PLACES, 'Quantity')

    @field_validator('description')
    @classmethod
    def strip_description(cls, v):
        return (v or '').strip()


class NewLineItemInput(BaseModel):
    estimate_id: str
    id: Optional[str] = None
    description: str = Field(default='', max_length=500)
    quantity: Decimal = Field(default=Decimal(0), ge=0, le=MAX_QUANTITY)
    unit_price_cents: int = Field(default=0, ge=0, le=MAX_UNIT_PRICE_CENTS)
    version: Optional[int] = Field(default=None, ge=1)

    @field_validator('estimate_id')
    @classmethod
    def validate_estimate_id(cls, v):
        return check_uuid(v, 'estimate id')

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v):
        return check_places(v, QUANTITY_PLACES, 'Quantity')

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'line item id')


class EditLineItemInput(BaseModel):
    estimate_id: str
    id: str
    description: Optional[str] = Field(default=None, max_length=500)
    quantity: Optional[Decimal] = Field(default=None, ge=0, le=MAX_QUANTITY)
    unit_price_cents: Optional[int] = Field(default=None, ge=0, le=MAX_UNIT_PRICE_CENTS)
    version: Optional[int] = Field(default=None, ge=1)

    @field_validator('estimate_id')
    @classmethod
    def validate_estimate_id(cls, v):
        return check_uuid(v, 'estimate id')

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v):
        return check_places(v, QUANTITY_PLACES, 'Quantity')

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'line item id')


class RemoveLineItemInput(BaseModel):
    estimate_id: str
    id: str
    version: Optional[int] = Field(default=None, ge=1)

    @field_validator('estimate_id')
    @classmethod
    def validate_estimate_id(cls, v):
        return check_uuid(v, 'estimate id')

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'line item id')


def _unique_ids(items):
    if items is None:
        return items
    seen = set()
    for item in items:
        if item.id in seen:
            raise ValueError(f'Duplicate line item id: {item.id}')
        seen.add(item.id)
    return items


class CreateEstimateInput(BaseModel):
    """Schema for creating a draft estimate"""

    customer_id: str
    pool_id: Optional[str] = None
    line_items: List[LineItemInput] = Field(min_length=1)
    tax_rate: Decimal = Field(default=Decimal(0), ge=0, le=1)
    notes: Optional[str] = Field(default=None, max_length=5000)
    valid_until: Optional[date] = None

    @field_validator('customer_id')
    @classmethod
    def validate_customer_id(cls, v):
        return check_uuid(v, 'customer id')

    @field_validator('pool_id', mode='before')
    @classmethod
    def validate_pool_id(cls, v):
        return check_uuid(v or None, 'pool id')

    @field_validator('line_items')
    @classmethod
    def validate_line_items(cls, v):
        return _unique_ids(v)

    @field_validator('tax_rate')
    @classmethod
    def validate_tax_rate(cls, v):
        return check_places(v, TAX_RATE_PLACES, 'Tax rate')

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, v):
        return clean_text(v)

    @field_validator('valid_until', mode='before')
    @classmethod
    def blank_date(cls, v):
        return v or None


class UpdateEstimateInput(BaseModel):
    """Partial update; omitted fields keep their stored values"""

    id: str
    version: Optional[int] = Field(default=None, ge=1)
    pool_id: Optional[str] = None
    line_items: Optional[List[LineItemInput]] = Field(default=None, min_length=1)
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=1)
    notes: Optional[str] = Field(default=None, max_length=5000)
    valid_until: Optional[date] = None

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'estimate id')

    @field_validator('pool_id', mode='before')
    @classmethod
    def validate_pool_id(cls, v):
        return check_uuid(v or None, 'pool id')

    @field_validator('line_items')
    @classmethod
    def validate_line_items(cls, v):
        return _unique_ids(v)

    @field_validator('tax_rate')
    @classmethod
    def validate_tax_rate(cls, v):
        return check_places(v, TAX_RATE_PLACES, 'Tax rate')

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, v):
        return clean_text(v)

    @field_validator('valid_until', mode='before')
    @classmethod
    def blank_date(cls, v):
        return v or None


class UpdateStatusInput(BaseModel):
    id: str
    status: EstimateStatus
    version: Optional[int] = Field(default=None, ge=1)

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'estimate id')


class EstimateIdInput(BaseModel):
    id: str

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'estimate id')


class ListEstimatesInput(BaseModel):
    customer_id: Optional[str] = None
    status: Optional[Union[EstimateStatus, List[EstimateStatus]]] = None
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    sort_by: SortField = 'created_at'
    sort_order: Literal['asc', 'desc'] = 'desc'

    @field_validator('customer_id')
    @classmethod
    def validate_customer_id(cls, v):
        return check_uuid(v, 'customer id')

    @field_validator('status', mode='before')
    @classmethod
    def split_status(cls, v):
        if isinstance(v, str) and ',' in v:
            return [s.strip() for s in v.split(',') if s.strip()]
        return v

    def statuses(self):
        if self.status is None:
            return []
        if isinstance(self.status, str):
            return [self.status]
        return [s for s in self.status if s in ESTIMATE_STATUSES]
