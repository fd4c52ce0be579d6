"""School Schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SchoolCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str | None = Field(None, max_length=50)
    province: str | None = Field(None, max_length=100)
    district: str | None = Field(None, max_length=100)
    sector: str | None = Field(None, max_length=100)
    user_id: int = Field(..., gt=0, description="Account with role 'school' that manages it")


class SchoolUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    code: str | None = Field(None, max_length=50)
    province: str | None = Field(None, max_length=100)
    district: str | None = Field(None, max_length=100)
    sector: str | None = Field(None, max_length=100)
    user_id: int | None = Field(None, gt=0)


class SchoolResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: str | None = None
    province: str | None = None
    district: str | None = None
    sector: str | None = None
    user_id: int
    created_at: datetime
    updated_at: datetime


class SchoolSummary(BaseModel):
    """Compact school reference embedded in device and application responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    province: str | None = None
    district: str | None = None
