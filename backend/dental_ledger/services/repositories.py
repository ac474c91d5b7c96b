"""Persistence gateway over the SQLAlchemy session.

Every write commits on its own together with its audit entry; nothing here
spans more than one entity type, so multi-entity flows are not atomic.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from sqlalchemy import exists, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dental_ledger.models.billing import BillingEntry
from dental_ledger.models.lab_order import LabOrder
from dental_ledger.models.patient import Lab, Patient
from dental_ledger.models.tooth_treatment import ToothTreatment, TreatmentSession
from dental_ledger.services.audit import log_event, snapshot_model
from dental_ledger.services.errors import NotFoundError, PersistenceError


class Repository:
    model: type = object
    entity_type = "entity"

    def __init__(self, db: Session, actor: str | None = None) -> None:
        self.db = db
        self.actor = actor

    @contextmanager
    def _writing(self, operation: str) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f"{self.entity_type}.{operation}", exc) from exc

    def _audit(self, action: str, entity_id: Any, before: dict | None, after: Any | None) -> None:
        log_event(
            self.db,
            actor=self.actor,
            action=f"{self.entity_type}.{action}",
            entity_type=self.entity_type,
            entity_id=str(entity_id),
            before_data=before,
            after_obj=after,
        )

    def get(self, entity_id: int | None):
        if entity_id is None:
            return None
        try:
            return self.db.get(self.model, entity_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{self.entity_type}.get", exc) from exc

    def require(self, entity_id: int):
        entity = self.get(entity_id)
        if entity is None:
            raise NotFoundError(self.entity_type, entity_id)
        return entity

    def list_all(self) -> list:
        return self._scalars(select(self.model).order_by(self.model.id))

    def get_many(self, entity_ids: Iterable[int]) -> list:
        """Entities still present among ``entity_ids``; rows removed meanwhile are skipped."""
        found = []
        for entity_id in entity_ids:
            entity = self.get(entity_id)
            if entity is not None:
                found.append(entity)
        return found

    def _scalars(self, stmt) -> list:
        try:
            return list(self.db.scalars(stmt))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{self.entity_type}.query", exc) from exc

    def create(self, **fields):
        entity = self.model(**fields)
        with self._writing("create"):
            self.db.add(entity)
            self.db.flush()
            self._audit("created", entity.id, None, entity)
        self.db.refresh(entity)
        return entity

    def update(self, entity, changes: dict[str, Any]):
        before = snapshot_model(entity)
        with self._writing("update"):
            for field, value in changes.items():
                setattr(entity, field, value)
            self.db.add(entity)
            self.db.flush()
            self._audit("updated", entity.id, before, entity)
        self.db.refresh(entity)
        return entity

    def delete(self, entity) -> None:
        before = snapshot_model(entity)
        entity_id = entity.id
        with self._writing("delete"):
            self.db.delete(entity)
            self.db.flush()
            self._audit("deleted", entity_id, before, None)


class TreatmentRepository(Repository):
    model = ToothTreatment
    entity_type = "tooth_treatment"

    def list_for_tooth(self, patient_id: int, tooth_number: int) -> list[ToothTreatment]:
        stmt = (
            select(ToothTreatment)
            .where(
                ToothTreatment.patient_id == patient_id,
                ToothTreatment.tooth_number == tooth_number,
            )
            .order_by(ToothTreatment.priority, ToothTreatment.id)
        )
        return self._scalars(stmt)

    def list_by_patient(self, patient_id: int) -> list[ToothTreatment]:
        stmt = (
            select(ToothTreatment)
            .where(ToothTreatment.patient_id == patient_id)
            .order_by(ToothTreatment.tooth_number, ToothTreatment.priority)
        )
        return self._scalars(stmt)

    def max_priority(self, patient_id: int, tooth_number: int) -> int:
        stmt = select(func.max(ToothTreatment.priority)).where(
            ToothTreatment.patient_id == patient_id,
            ToothTreatment.tooth_number == tooth_number,
        )
        try:
            return int(self.db.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{self.entity_type}.max_priority", exc) from exc

    def _assign_priorities(self, ordered: list[ToothTreatment]) -> None:
        # Negative placeholders first so the per-tooth unique constraint holds mid-batch.
        for index, treatment in enumerate(ordered):
            treatment.priority = -(index + 1)
        self.db.flush()
        for index, treatment in enumerate(ordered):
            treatment.priority = index + 1
        self.db.flush()

    def apply_order(self, ordered: list[ToothTreatment]) -> list[ToothTreatment]:
        before = {str(t.id): t.priority for t in ordered}
        with self._writing("reorder"):
            self._assign_priorities(ordered)
            if ordered:
                log_event(
                    self.db,
                    actor=self.actor,
                    action=f"{self.entity_type}.reordered",
                    entity_type="tooth",
                    entity_id=f"{ordered[0].patient_id}:{ordered[0].tooth_number}",
                    before_data=before,
                    after_data={str(t.id): t.priority for t in ordered},
                )
        return ordered

    def delete(self, entity: ToothTreatment) -> None:
        before = snapshot_model(entity)
        entity_id = entity.id
        patient_id, tooth_number = entity.patient_id, entity.tooth_number
        with self._writing("delete"):
            self.db.delete(entity)
            self.db.flush()
            remaining = list(
                self.db.scalars(
                    select(ToothTreatment)
                    .where(
                        ToothTreatment.patient_id == patient_id,
                        ToothTreatment.tooth_number == tooth_number,
                    )
                    .order_by(ToothTreatment.priority, ToothTreatment.id)
                )
            )
            self._assign_priorities(remaining)
            self._audit("deleted", entity_id, before, None)


class SessionRepository(Repository):
    model = TreatmentSession
    entity_type = "treatment_session"

    def list_by_treatment(self, treatment_id: int) -> list[TreatmentSession]:
        stmt = (
            select(TreatmentSession)
            .where(TreatmentSession.tooth_treatment_id == treatment_id)
            .order_by(TreatmentSession.session_number)
        )
        return self._scalars(stmt)

    def next_session_number(self, treatment_id: int) -> int:
        stmt = select(func.max(TreatmentSession.session_number)).where(
            TreatmentSession.tooth_treatment_id == treatment_id
        )
        try:
            return int(self.db.scalar(stmt) or 0) + 1
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{self.entity_type}.next_session_number", exc) from exc

    def delete_many(self, sessions: Iterable[TreatmentSession]) -> int:
        removed = 0
        with self._writing("delete"):
            for session in sessions:
                before = snapshot_model(session)
                session_id = session.id
                self.db.delete(session)
                self._audit("deleted", session_id, before, None)
                removed += 1
            self.db.flush()
        return removed


class BillingRepository(Repository):
    model = BillingEntry
    entity_type = "payment"

    def list_by_treatment(self, treatment_id: int) -> list[BillingEntry]:
        stmt = (
            select(BillingEntry)
            .where(BillingEntry.tooth_treatment_id == treatment_id)
            .order_by(BillingEntry.id)
        )
        return self._scalars(stmt)

    def list_by_patient(self, patient_id: int) -> list[BillingEntry]:
        stmt = (
            select(BillingEntry)
            .where(BillingEntry.patient_id == patient_id)
            .order_by(BillingEntry.payment_date, BillingEntry.id)
        )
        return self._scalars(stmt)

    def list_orphans(self) -> list[BillingEntry]:
        stmt = (
            select(BillingEntry)
            .where(
                BillingEntry.tooth_treatment_id.is_not(None),
                ~exists().where(ToothTreatment.id == BillingEntry.tooth_treatment_id),
            )
            .order_by(BillingEntry.id)
        )
        return self._scalars(stmt)

    def update_many(self, rows: Iterable[BillingEntry], changes: dict[str, Any]) -> list[BillingEntry]:
        rows = list(rows)
        with self._writing("update"):
            for row in rows:
                before = snapshot_model(row)
                for field, value in changes.items():
                    setattr(row, field, value)
                self.db.add(row)
                self.db.flush()
                self._audit("updated", row.id, before, row)
        for row in rows:
            self.db.refresh(row)
        return rows

    def delete_many(self, rows: Iterable[BillingEntry]) -> int:
        removed = 0
        with self._writing("delete"):
            for row in rows:
                before = snapshot_model(row)
                row_id = row.id
                self.db.delete(row)
                self._audit("deleted", row_id, before, None)
                removed += 1
            self.db.flush()
        return removed


class LabOrderRepository(Repository):
    model = LabOrder
    entity_type = "lab_order"

    def list_by_treatment(self, treatment_id: int) -> list[LabOrder]:
        stmt = (
            select(LabOrder)
            .where(LabOrder.tooth_treatment_id == treatment_id)
            .order_by(LabOrder.id)
        )
        return self._scalars(stmt)

    def list_by_patient(self, patient_id: int) -> list[LabOrder]:
        stmt = select(LabOrder).where(LabOrder.patient_id == patient_id).order_by(LabOrder.id)
        return self._scalars(stmt)

    def list_unlinked_for_patient(self, patient_id: int) -> list[LabOrder]:
        stmt = (
            select(LabOrder)
            .where(LabOrder.patient_id == patient_id, LabOrder.tooth_treatment_id.is_(None))
            .order_by(LabOrder.id)
        )
        return self._scalars(stmt)

    def list_orphans(self) -> list[LabOrder]:
        stmt = (
            select(LabOrder)
            .where(
                LabOrder.tooth_treatment_id.is_not(None),
                ~exists().where(ToothTreatment.id == LabOrder.tooth_treatment_id),
            )
            .order_by(LabOrder.id)
        )
        return self._scalars(stmt)


class PatientDirectory(Repository):
    model = Patient
    entity_type = "patient"


class LabDirectory(Repository):
    model = Lab
    entity_type = "lab"


@dataclass
class PersistenceGateway:
    treatments: TreatmentRepository
    sessions: SessionRepository
    billing: BillingRepository
    lab_orders: LabOrderRepository
    patients: PatientDirectory
    labs: LabDirectory

    @classmethod
    def from_session(cls, db: Session, actor: str | None = None) -> "PersistenceGateway":
        return cls(
            treatments=TreatmentRepository(db, actor),
            sessions=SessionRepository(db, actor),
            billing=BillingRepository(db, actor),
            lab_orders=LabOrderRepository(db, actor),
            patients=PatientDirectory(db, actor),
            labs=LabDirectory(db, actor),
        )
