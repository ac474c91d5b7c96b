from typing import Optional

from fastapi import APIRouter, Depends, status

from dental_ledger.deps import get_coordinator, get_notifier, raise_for_error, raise_for_report
from dental_ledger.schemas.billing import BillingSummaryOut, PaymentCreate
from dental_ledger.schemas.lab_order import LabOrderOut
from dental_ledger.schemas.reconciliation import (
    PaymentRecordedOut,
    ReorderOut,
    TreatmentMutationOut,
)
from dental_ledger.schemas.tooth_treatment import (
    ToothTreatmentCreate,
    ToothTreatmentOut,
    ToothTreatmentUpdate,
    TreatmentOrderUpdate,
)
from dental_ledger.services.errors import ReconciliationError
from dental_ledger.services.notifications import CollectingNotificationSink
from dental_ledger.services.reconciliation import ReconciliationCoordinator
from dental_ledger.services.results import ReconciliationReport

router = APIRouter(prefix="/patients/{patient_id}/teeth/{tooth_number}/treatments", tags=["treatments"])
patient_router = APIRouter(prefix="/patients/{patient_id}/tooth-treatments", tags=["treatments"])
treatment_router = APIRouter(prefix="/tooth-treatments", tags=["treatments"])


def _mutation(
    report: ReconciliationReport,
    coordinator: ReconciliationCoordinator,
    notifier: CollectingNotificationSink,
) -> dict:
    raise_for_report(report, notifier)
    treatment = None
    if report.treatment_id is not None:
        treatment = coordinator.plan.get(report.treatment_id)
    return {
        "report": report.as_dict(),
        "notifications": [item.as_dict() for item in notifier.drain()],
        "treatment": treatment,
    }


def _reordered(
    report: ReconciliationReport,
    coordinator: ReconciliationCoordinator,
    notifier: CollectingNotificationSink,
    patient_id: int,
    tooth_number: int,
) -> dict:
    raise_for_report(report, notifier)
    return {
        "report": report.as_dict(),
        "notifications": [item.as_dict() for item in notifier.drain()],
        "treatments": coordinator.plan.list_for_tooth(patient_id, tooth_number),
    }


@router.get("", response_model=list[ToothTreatmentOut])
def list_tooth_treatments(
    patient_id: int,
    tooth_number: int,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
):
    try:
        coordinator.gateway.patients.require(patient_id)
        return coordinator.plan.list_for_tooth(patient_id, tooth_number)
    except ReconciliationError as exc:
        raise_for_error(exc)


@router.post("", response_model=TreatmentMutationOut, status_code=status.HTTP_201_CREATED)
def create_tooth_treatment(
    patient_id: int,
    tooth_number: int,
    payload: ToothTreatmentCreate,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
    notifier: CollectingNotificationSink = Depends(get_notifier),
):
    report = coordinator.on_treatment_create(patient_id, tooth_number, payload.model_dump())
    return _mutation(report, coordinator, notifier)


@router.put("/order", response_model=ReorderOut)
def reorder_tooth_treatments(
    patient_id: int,
    tooth_number: int,
    payload: TreatmentOrderUpdate,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
    notifier: CollectingNotificationSink = Depends(get_notifier),
):
    report = coordinator.on_treatments_reorder(patient_id, tooth_number, payload.treatment_ids)
    return _reordered(report, coordinator, notifier, patient_id, tooth_number)


@router.post("/{index}/move-up", response_model=ReorderOut)
def move_tooth_treatment_up(
    patient_id: int,
    tooth_number: int,
    index: int,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
    notifier: CollectingNotificationSink = Depends(get_notifier),
):
    report = coordinator.on_treatment_move(patient_id, tooth_number, index, "up")
    return _reordered(report, coordinator, notifier, patient_id, tooth_number)


@router.post("/{index}/move-down", response_model=ReorderOut)
def move_tooth_treatment_down(
    patient_id: int,
    tooth_number: int,
    index: int,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
    notifier: CollectingNotificationSink = Depends(get_notifier),
):
    report = coordinator.on_treatment_move(patient_id, tooth_number, index, "down")
    return _reordered(report, coordinator, notifier, patient_id, tooth_number)


@patient_router.get("", response_model=list[ToothTreatmentOut])
def list_patient_tooth_treatments(
    patient_id: int,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
):
    try:
        coordinator.gateway.patients.require(patient_id)
        return coordinator.plan.list_for_patient(patient_id)
    except ReconciliationError as exc:
        raise_for_error(exc)


@treatment_router.get("/{treatment_id}", response_model=ToothTreatmentOut)
def get_tooth_treatment(
    treatment_id: int,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
):
    try:
        return coordinator.plan.require(treatment_id)
    except ReconciliationError as exc:
        raise_for_error(exc)


@treatment_router.patch("/{treatment_id}", response_model=TreatmentMutationOut)
def update_tooth_treatment(
    treatment_id: int,
    payload: ToothTreatmentUpdate,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
    notifier: CollectingNotificationSink = Depends(get_notifier),
):
    report = coordinator.on_treatment_edit(treatment_id, payload.model_dump(exclude_unset=True))
    return _mutation(report, coordinator, notifier)


@treatment_router.delete("/{treatment_id}", response_model=TreatmentMutationOut)
def delete_tooth_treatment(
    treatment_id: int,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
    notifier: CollectingNotificationSink = Depends(get_notifier),
):
    report = coordinator.on_treatment_delete(treatment_id)
    raise_for_report(report, notifier)
    return {
        "report": report.as_dict(),
        "notifications": [item.as_dict() for item in notifier.drain()],
        "treatment": None,
    }


@treatment_router.get("/{treatment_id}/billing", response_model=BillingSummaryOut)
def get_treatment_billing(
    treatment_id: int,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
):
    try:
        treatment = coordinator.plan.require(treatment_id)
    except ReconciliationError as exc:
        raise_for_error(exc)
    return coordinator.billing.summarize(treatment)


@treatment_router.post(
    "/{treatment_id}/payments",
    response_model=PaymentRecordedOut,
    status_code=status.HTTP_201_CREATED,
)
def record_treatment_payment(
    treatment_id: int,
    payload: PaymentCreate,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
    notifier: CollectingNotificationSink = Depends(get_notifier),
):
    report = coordinator.record_payment(
        treatment_id,
        payload.amount,
        method=payload.payment_method,
        payment_date=payload.payment_date,
        notes=payload.notes,
    )
    raise_for_report(report, notifier)
    treatment = coordinator.plan.require(treatment_id)
    return {
        "report": report.as_dict(),
        "notifications": [item.as_dict() for item in notifier.drain()],
        "billing": coordinator.billing.summarize(treatment),
    }


@treatment_router.get("/{treatment_id}/lab-order", response_model=Optional[LabOrderOut])
def get_treatment_lab_order(
    treatment_id: int,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
):
    try:
        coordinator.plan.require(treatment_id)
    except ReconciliationError as exc:
        raise_for_error(exc)
    return coordinator.labs.find_linked_order(treatment_id)


@treatment_router.post("/{treatment_id}/lab-order/relink", response_model=TreatmentMutationOut)
def relink_treatment_lab_order(
    treatment_id: int,
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
    notifier: CollectingNotificationSink = Depends(get_notifier),
):
    report = coordinator.relink_lab_order(treatment_id)
    return _mutation(report, coordinator, notifier)
