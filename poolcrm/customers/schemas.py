"""Customer directory payloads."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from poolcrm.schemas import check_uuid, clean_text

POOL_TYPES = ('inground', 'above_ground', 'spa', 'other')


class CustomerCreate(BaseModel):
    """Schema for creating a new customer"""

    name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=40)
    email: Optional[str] = Field(default=None, max_length=255)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Name is required')
        return v

    @field_validator('phone', 'email')
    @classmethod
    def blank_to_none(cls, v):
        return clean_text(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v and ('@' not in v or v.startswith('@') or v.endswith('@')):
            raise ValueError('Invalid email address')
        return v.lower() if v else v


class PropertyCreate(BaseModel):
    customer_id: str
    address_line1: str = Field(min_length=1, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=40)
    zip_code: Optional[str] = Field(default=None, max_length=20)

    @field_validator('customer_id')
    @classmethod
    def validate_customer_id(cls, v):
        return check_uuid(v, 'customer id')


class PoolCreate(BaseModel):
    property_id: str
    type: str = 'inground'
    surface_type: Optional[str] = Field(default=None, max_length=40)
    volume_gallons: Optional[int] = Field(default=None, ge=0)

    @field_validator('property_id')
    @classmethod
    def validate_property_id(cls, v):
        return check_uuid(v, 'property id')

    @field_validator('type')
    @classmethod
    def validate_type(cls, v):
        if v not in POOL_TYPES:
            raise ValueError(f"Pool type must be one of {', '.join(POOL_TYPES)}")
        return v
