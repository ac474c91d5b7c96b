from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from dental_ledger.models.lab_order import LabOrderStatus


class LabOrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    lab_id: int
    lab_name: Optional[str] = None
    patient_id: Optional[int] = None
    tooth_treatment_id: Optional[int] = None
    tooth_number: Optional[int] = None
    service_name: str
    cost: Decimal
    paid_amount: Decimal
    remaining_balance: Decimal
    status: LabOrderStatus
    order_date: date
    notes: Optional[str] = None
