from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from dental_ledger.models.lab_order import LabOrder, LabOrderStatus
from dental_ledger.models.tooth_treatment import ToothTreatment, TreatmentCategory
from dental_ledger.services.money import ZERO, round_money
from dental_ledger.services.repositories import PersistenceGateway
from dental_ledger.services.treatment_catalog import tooth_label, treatment_label

logger = logging.getLogger(__name__)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_REMOVED = "removed"
ACTION_UNCHANGED = "unchanged"
ACTION_ABSENT = "absent"


@dataclass
class LabOrderChange:
    action: str
    order: LabOrder | None = None


class LabOrderSynchronizer:
    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        prosthetic_category: str = TreatmentCategory.prosthetic.value,
        relink_unlinked: bool = True,
    ) -> None:
        self.gateway = gateway
        self.prosthetic_category = prosthetic_category
        self.relink_unlinked = relink_unlinked

    def is_prosthetic(self, category) -> bool:
        value = getattr(category, "value", category)
        return value == self.prosthetic_category

    def needs_order(self, category, lab_id: int | None, lab_cost) -> bool:
        return bool(self.is_prosthetic(category) and lab_id and round_money(lab_cost) > ZERO)

    def find_linked_order(self, treatment_id: int) -> LabOrder | None:
        orders = self.gateway.lab_orders.list_by_treatment(treatment_id)
        if not orders:
            return None
        if len(orders) > 1:
            logger.warning(
                "Treatment %s has %s linked lab orders; using order %s",
                treatment_id,
                len(orders),
                orders[0].id,
            )
        return orders[0]

    def find_or_relink_unlinked(
        self, patient_id: int, treatment_id: int, tooth_number: int | None = None
    ) -> LabOrder | None:
        linked = self.find_linked_order(treatment_id)
        if linked is not None:
            return linked
        if not self.relink_unlinked:
            return None
        candidates = self.gateway.lab_orders.list_unlinked_for_patient(patient_id)
        if not candidates:
            return None
        order = candidates[0]
        changes: dict = {"tooth_treatment_id": treatment_id}
        if tooth_number is not None:
            changes["tooth_number"] = tooth_number
        order = self.gateway.lab_orders.update(order, changes)
        logger.info(
            "Relinked unlinked lab order %s of patient %s to treatment %s",
            order.id,
            patient_id,
            treatment_id,
        )
        return order

    def _service_name(self, treatment: ToothTreatment) -> str:
        return f"{treatment_label(treatment.treatment_type)} - tooth {treatment.tooth_number}"

    def upsert_order(self, treatment: ToothTreatment, lab_id: int, lab_cost) -> LabOrderChange:
        lab_cost = round_money(lab_cost)
        self.gateway.labs.require(lab_id)
        existing = self.find_or_relink_unlinked(
            treatment.patient_id, treatment.id, treatment.tooth_number
        )
        service_name = self._service_name(treatment)

        if existing is not None:
            changes = {
                "lab_id": lab_id,
                "cost": lab_cost,
                "service_name": service_name,
                "remaining_balance": lab_cost - round_money(existing.paid_amount),
            }
            pending = {
                key: value for key, value in changes.items() if getattr(existing, key) != value
            }
            if not pending:
                return LabOrderChange(ACTION_UNCHANGED, existing)
            order = self.gateway.lab_orders.update(existing, pending)
            return LabOrderChange(ACTION_UPDATED, order)

        patient = self.gateway.patients.require(treatment.patient_id)
        tooth = tooth_label(treatment.tooth_name, treatment.tooth_number)
        order = self.gateway.lab_orders.create(
            lab_id=lab_id,
            patient_id=treatment.patient_id,
            tooth_treatment_id=treatment.id,
            tooth_number=treatment.tooth_number,
            service_name=service_name,
            cost=lab_cost,
            paid_amount=ZERO,
            remaining_balance=lab_cost,
            status=LabOrderStatus.pending,
            order_date=date.today(),
            notes=(
                f"Lab order for {patient.full_name} - tooth {tooth} - "
                f"{treatment_label(treatment.treatment_type)}"
            ),
        )
        logger.info("Lab order %s created for treatment %s", order.id, treatment.id)
        return LabOrderChange(ACTION_CREATED, order)

    def remove_order_if_unneeded(
        self, treatment: ToothTreatment, lab_id: int | None, lab_cost
    ) -> LabOrderChange:
        if self.needs_order(treatment.treatment_category, lab_id, lab_cost):
            return LabOrderChange(ACTION_UNCHANGED, self.find_linked_order(treatment.id))
        existing = self.find_linked_order(treatment.id)
        if existing is None:
            return LabOrderChange(ACTION_ABSENT)
        self.gateway.lab_orders.delete(existing)
        logger.info("Lab order %s removed from treatment %s", existing.id, treatment.id)
        return LabOrderChange(ACTION_REMOVED)

    def synchronize(self, treatment: ToothTreatment, lab_id: int | None, lab_cost) -> LabOrderChange:
        if self.needs_order(treatment.treatment_category, lab_id, lab_cost):
            return self.upsert_order(treatment, lab_id, lab_cost)
        return self.remove_order_if_unneeded(treatment, lab_id, lab_cost)

    def remove_for_deleted_treatment(self, treatment_id: int) -> int:
        removed = 0
        for order in self.gateway.lab_orders.list_by_treatment(treatment_id):
            self.gateway.lab_orders.delete(order)
            removed += 1
        return removed

    def remove_orders(self, order_ids: list[int]) -> int:
        """Delete the given orders; ones already gone through the cascade count as removed."""
        for order in self.gateway.lab_orders.get_many(order_ids):
            self.gateway.lab_orders.delete(order)
        return len(order_ids)

    def sweep_orphans(self) -> int:
        removed = 0
        for order in self.gateway.lab_orders.list_orphans():
            self.gateway.lab_orders.delete(order)
            removed += 1
        if removed:
            logger.warning("Orphan sweep removed %s lab orders", removed)
        return removed
