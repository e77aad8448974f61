from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SessionCreateRequest(BaseModel):
    student_id: int = Field(gt=0)
    subject_id: int = Field(gt=0)
    course_id: int | None = Field(default=None, gt=0)
    title: str | None = Field(default=None, max_length=255)
    start_time: datetime
    end_time: datetime
    location: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class SessionUpdateRequest(BaseModel):
    model_config = ConfigDict(extra='forbid')

    student_id: int | None = Field(default=None, gt=0)
    subject_id: int | None = Field(default=None, gt=0)
    course_id: int | None = Field(default=None, gt=0)
    title: str | None = Field(default=None, max_length=255)
    start_time: datetime | None = None
    end_time: datetime | None = None
    location: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    attended: bool | None = None


class SessionCancelRequest(BaseModel):
    reason: str = Field(default='', max_length=255)


class SessionCompleteRequest(BaseModel):
    attended: bool | None = None
    performance_score: int | None = Field(default=None, ge=0, le=100)
    notes: str | None = None


class CartToggleRequest(BaseModel):
    product_id: int = Field(gt=0)


class PlaceOrderRequest(BaseModel):
    card_token: str = Field(min_length=1, max_length=120)


SessionStatusFilter = Literal['scheduled', 'completed', 'cancelled']
