"""Calendar command payloads."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from poolcrm.schemas import check_http_url, check_uuid, clean_text

EVENT_TYPES = ('consultation', 'estimate_visit', 'follow_up', 'other')
EVENT_STATUSES = ('scheduled', 'completed', 'canceled')

EventType = Literal['consultation', 'estimate_visit', 'follow_up', 'other']
EventStatus = Literal['scheduled', 'completed', 'canceled']


class _EventFields(BaseModel):
    @field_validator('customer_id', 'property_id', 'pool_id', check_fields=False)
    @classmethod
    def validate_ids(cls, v, info):
        return check_uuid(v, info.field_name.replace('_', ' '))

    @field_validator('title', check_fields=False)
    @classmethod
    def validate_title(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError('Title is required')
        return v

    @field_validator('description', check_fields=False)
    @classmethod
    def validate_description(cls, v):
        return clean_text(v)

    @field_validator('location_url', check_fields=False)
    @classmethod
    def validate_location_url(cls, v):
        return check_http_url(v)


class CreateEventInput(_EventFields):
    """Schema for scheduling a new event"""

    customer_id: str
    property_id: Optional[str] = None
    pool_id: Optional[str] = None
    title: str = Field(max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    event_type: EventType = 'consultation'
    start_datetime: Any
    end_datetime: Any = None
    all_day: bool = False
    location_url: Optional[str] = None


class UpdateEventInput(_EventFields):
    """Partial update; only fields present in the payload are written"""

    id: str
    version: int = Field(ge=1)
    customer_id: Optional[str] = None
    property_id: Optional[str] = None
    pool_id: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    event_type: Optional[EventType] = None
    status: Optional[EventStatus] = None
    start_datetime: Any = None
    end_datetime: Any = None
    all_day: Optional[bool] = None
    location_url: Optional[str] = None

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'event id')


class RescheduleInput(BaseModel):
    id: str
    version: int = Field(ge=1)
    start_datetime: Any
    end_datetime: Any = None
    all_day: Optional[bool] = None

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'event id')


class EventVersionInput(BaseModel):
    id: str
    version: int = Field(ge=1)

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'event id')


class EventIdInput(BaseModel):
    id: str

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        return check_uuid(v, 'event id')


class RangeInput(BaseModel):
    start: Any
    end: Any
    customer_id: Optional[str] = None
    status: Optional[EventStatus] = None
    event_type: Optional[EventType] = None

    @field_validator('customer_id')
    @classmethod
    def validate_customer_id(cls, v):
        return check_uuid(v, 'customer id')


class ListEventsInput(BaseModel):
    customer_id: Optional[str] = None
    status: Optional[EventStatus] = None
    event_type: Optional[EventType] = None
    date_from: Any = None
    date_to: Any = None
    limit: int = Field(default=50, ge=1, le=100)
    cursor: Optional[str] = None

    @field_validator('customer_id')
    @classmethod
    def validate_customer_id(cls, v):
        return check_uuid(v, 'customer id')


class CustomerEventsInput(BaseModel):
    customer_id: str
    status: Optional[EventStatus] = None
    limit: int = Field(default=10, ge=1, le=100)
    upcoming: bool = True

    @field_validator('customer_id')
    @classmethod
    def validate_customer_id(cls, v):
        return check_uuid(v, 'customer id')
