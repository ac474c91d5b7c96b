from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dental_ledger.models.billing import PaymentMethod, PaymentStatus


class BillingEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    tooth_treatment_id: Optional[int] = None
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: date
    description: Optional[str] = None
    notes: Optional[str] = None
    status: PaymentStatus
    total_amount_due: Decimal
    treatment_total_paid: Decimal
    remaining_balance: Decimal


class BillingSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    treatment_id: int
    total_amount_due: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    status: PaymentStatus
    entry_count: int
    entries: list[BillingEntryOut]


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[date] = None
    notes: Optional[str] = None
