from dental_ledger.models.base import Base
from dental_ledger.models.audit_log import AuditLog
from dental_ledger.models.patient import Lab, Patient
from dental_ledger.models.tooth_treatment import (
    SessionStatus,
    ToothTreatment,
    TreatmentCategory,
    TreatmentSession,
    TreatmentStatus,
)
from dental_ledger.models.billing import BillingEntry, PaymentMethod, PaymentStatus
from dental_ledger.models.lab_order import LabOrder, LabOrderStatus

__all__ = [
    "Base",
    "AuditLog",
    "Patient",
    "Lab",
    "ToothTreatment",
    "TreatmentCategory",
    "TreatmentStatus",
    "TreatmentSession",
    "SessionStatus",
    "BillingEntry",
    "PaymentMethod",
    "PaymentStatus",
    "LabOrder",
    "LabOrderStatus",
]
