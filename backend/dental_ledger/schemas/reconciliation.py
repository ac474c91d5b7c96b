from typing import Any, Optional

from pydantic import BaseModel, Field

from dental_ledger.schemas.billing import BillingSummaryOut
from dental_ledger.schemas.tooth_treatment import ToothTreatmentOut


class StepOut(BaseModel):
    name: str
    status: str
    required: bool
    action: Optional[str] = None
    message: Optional[str] = None
    error_type: Optional[str] = None


class ReportOut(BaseModel):
    operation: str
    treatment_id: Optional[int] = None
    outcome: str
    steps: list[StepOut]
    details: dict[str, Any] = Field(default_factory=dict)


class NotificationOut(BaseModel):
    level: str
    message: str


class TreatmentMutationOut(BaseModel):
    report: ReportOut
    notifications: list[NotificationOut]
    treatment: Optional[ToothTreatmentOut] = None


class ReorderOut(BaseModel):
    report: ReportOut
    notifications: list[NotificationOut]
    treatments: list[ToothTreatmentOut]


class PaymentRecordedOut(BaseModel):
    report: ReportOut
    notifications: list[NotificationOut]
    billing: BillingSummaryOut


class SweepOut(BaseModel):
    report: ReportOut
    notifications: list[NotificationOut]
    billing_rows: int
    lab_orders: int
