from fastapi import APIRouter, Depends, Response, status

from dental_ledger.deps import get_gateway, raise_for_error
from dental_ledger.schemas.tooth_treatment import (
    TreatmentSessionCreate,
    TreatmentSessionOut,
    TreatmentSessionUpdate,
)
from dental_ledger.services.errors import ReconciliationError
from dental_ledger.services.repositories import PersistenceGateway
from dental_ledger.services.treatment_sessions import TreatmentSessionService

router = APIRouter(prefix="/tooth-treatments/{treatment_id}/sessions", tags=["sessions"])


def get_session_service(
    gateway: PersistenceGateway = Depends(get_gateway),
) -> TreatmentSessionService:
    return TreatmentSessionService(gateway)


@router.get("", response_model=list[TreatmentSessionOut])
def list_treatment_sessions(
    treatment_id: int,
    service: TreatmentSessionService = Depends(get_session_service),
):
    try:
        return service.list_sessions(treatment_id)
    except ReconciliationError as exc:
        raise_for_error(exc)


@router.post("", response_model=TreatmentSessionOut, status_code=status.HTTP_201_CREATED)
def create_treatment_session(
    treatment_id: int,
    payload: TreatmentSessionCreate,
    service: TreatmentSessionService = Depends(get_session_service),
):
    try:
        return service.create(treatment_id, payload.model_dump())
    except ReconciliationError as exc:
        raise_for_error(exc)


@router.patch("/{session_id}", response_model=TreatmentSessionOut)
def update_treatment_session(
    treatment_id: int,
    session_id: int,
    payload: TreatmentSessionUpdate,
    service: TreatmentSessionService = Depends(get_session_service),
):
    try:
        return service.update(treatment_id, session_id, payload.model_dump(exclude_unset=True))
    except ReconciliationError as exc:
        raise_for_error(exc)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_treatment_session(
    treatment_id: int,
    session_id: int,
    service: TreatmentSessionService = Depends(get_session_service),
):
    try:
        service.delete(treatment_id, session_id)
    except ReconciliationError as exc:
        raise_for_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
