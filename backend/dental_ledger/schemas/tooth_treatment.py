from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dental_ledger.models.tooth_treatment import (
    SessionStatus,
    TreatmentCategory,
    TreatmentStatus,
)


class ToothTreatmentCreate(BaseModel):
    tooth_name: str = Field(min_length=1)
    treatment_type: str = Field(min_length=1)
    treatment_category: TreatmentCategory
    treatment_status: TreatmentStatus = TreatmentStatus.planned
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    start_date: Optional[date] = None
    completion_date: Optional[date] = None
    notes: Optional[str] = None
    lab_id: Optional[int] = None
    lab_cost: Optional[Decimal] = Field(default=None, ge=0)


class ToothTreatmentUpdate(BaseModel):
    tooth_name: Optional[str] = Field(default=None, min_length=1)
    treatment_type: Optional[str] = Field(default=None, min_length=1)
    treatment_category: Optional[TreatmentCategory] = None
    treatment_status: Optional[TreatmentStatus] = None
    cost: Optional[Decimal] = Field(default=None, ge=0)
    start_date: Optional[date] = None
    completion_date: Optional[date] = None
    notes: Optional[str] = None
    lab_id: Optional[int] = None
    lab_cost: Optional[Decimal] = Field(default=None, ge=0)


class ToothTreatmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    tooth_number: int
    tooth_name: str
    treatment_type: str
    treatment_category: TreatmentCategory
    treatment_status: TreatmentStatus
    cost: Decimal
    priority: int
    start_date: Optional[date] = None
    completion_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TreatmentOrderUpdate(BaseModel):
    treatment_ids: list[int] = Field(min_length=1)


class TreatmentSessionCreate(BaseModel):
    session_type: str = Field(min_length=1)
    session_title: str = Field(min_length=1)
    session_description: Optional[str] = None
    session_date: date
    session_status: SessionStatus = SessionStatus.planned
    duration_minutes: int = Field(default=30, ge=1)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None


class TreatmentSessionUpdate(BaseModel):
    session_type: Optional[str] = Field(default=None, min_length=1)
    session_title: Optional[str] = Field(default=None, min_length=1)
    session_description: Optional[str] = None
    session_date: Optional[date] = None
    session_status: Optional[SessionStatus] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class TreatmentSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tooth_treatment_id: int
    session_number: int
    session_type: str
    session_title: str
    session_description: Optional[str] = None
    session_date: date
    session_status: SessionStatus
    duration_minutes: int
    cost: Decimal
    notes: Optional[str] = None
