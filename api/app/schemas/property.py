import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UnitCreate(BaseModel):
    unit_number: str = Field(min_length=1, max_length=50)
    rent: Decimal = Field(gt=0)
    deposit: Decimal = Field(default=Decimal("0"), ge=0)
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: Decimal = Field(default=Decimal("0"), ge=0)
    square_feet: int | None = Field(default=None, gt=0)
    tenant_email: EmailStr | None = None  # assign an existing tenant account


class UnitUpdate(BaseModel):
    unit_number: str | None = Field(default=None, min_length=1, max_length=50)
    rent: Decimal | None = Field(default=None, gt=0)
    deposit: Decimal | None = Field(default=None, ge=0)
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: Decimal | None = Field(default=None, ge=0)
    square_feet: int | None = Field(default=None, gt=0)


class TenantAssignment(BaseModel):
    tenant_email: EmailStr | None = None  # None vacates the unit


class UnitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    property_id: uuid.UUID
    unit_number: str
    rent: Decimal
    deposit: Decimal
    bedrooms: int
    bathrooms: Decimal
    square_feet: int | None
    tenant_id: uuid.UUID | None
    created_at: datetime


class PropertyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    address: str = Field(min_length=1, max_length=500)
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None


class PropertyUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    address: str | None = Field(default=None, min_length=1, max_length=500)
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None


class PropertyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    landlord_id: uuid.UUID
    name: str
    address: str
    city: str | None
    state: str | None
    zip_code: str | None
    units: list[UnitResponse] = []
    created_at: datetime


class TenantSummary(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    phone: str | None
    property_id: uuid.UUID
    property_name: str
    unit_id: uuid.UUID
    unit_number: str
    rent: Decimal
