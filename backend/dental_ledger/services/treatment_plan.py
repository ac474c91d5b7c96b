from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from dental_ledger.models.tooth_treatment import (
    ToothTreatment,
    TreatmentCategory,
    TreatmentStatus,
)
from dental_ledger.services.errors import ValidationError
from dental_ledger.services.money import round_money
from dental_ledger.services.repositories import PersistenceGateway

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "tooth_name",
    "treatment_type",
    "treatment_category",
    "treatment_status",
    "cost",
    "start_date",
    "completion_date",
    "notes",
)
REQUIRED_FIELDS = {"tooth_name", "treatment_type", "treatment_category", "treatment_status", "cost"}


@dataclass
class TreatmentChange:
    treatment: ToothTreatment
    old_cost: Decimal
    new_cost: Decimal
    old_category: TreatmentCategory
    new_category: TreatmentCategory
    changed_fields: set[str] = field(default_factory=set)

    @property
    def cost_changed(self) -> bool:
        return self.old_cost != self.new_cost

    @property
    def category_changed(self) -> bool:
        return self.old_category != self.new_category


class TreatmentPlanManager:
    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway

    def get(self, treatment_id: int) -> ToothTreatment | None:
        return self.gateway.treatments.get(treatment_id)

    def require(self, treatment_id: int) -> ToothTreatment:
        return self.gateway.treatments.require(treatment_id)

    def list_for_tooth(self, patient_id: int, tooth_number: int) -> list[ToothTreatment]:
        return self.gateway.treatments.list_for_tooth(patient_id, tooth_number)

    def list_for_patient(self, patient_id: int) -> list[ToothTreatment]:
        return self.gateway.treatments.list_by_patient(patient_id)

    def add_treatment(self, patient_id: int, tooth_number: int, data: dict[str, Any]) -> ToothTreatment:
        fields = {key: data[key] for key in EDITABLE_FIELDS if key in data}
        fields["cost"] = round_money(fields.get("cost"))
        fields.setdefault("treatment_status", TreatmentStatus.planned)
        if fields.get("start_date") is None:
            fields["start_date"] = date.today()
        priority = self.gateway.treatments.max_priority(patient_id, tooth_number) + 1
        treatment = self.gateway.treatments.create(
            patient_id=patient_id,
            tooth_number=tooth_number,
            priority=priority,
            **fields,
        )
        logger.info(
            "Treatment %s added to tooth %s of patient %s at priority %s",
            treatment.id,
            tooth_number,
            patient_id,
            priority,
        )
        return treatment

    def reorder_treatments(
        self, patient_id: int, tooth_number: int, ordered_ids: list[int]
    ) -> list[ToothTreatment]:
        current = self.list_for_tooth(patient_id, tooth_number)
        by_id = {treatment.id: treatment for treatment in current}
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("Treatment order contains duplicate ids")
        if set(ordered_ids) != set(by_id):
            raise ValidationError(
                "Treatment order must list every treatment of the tooth exactly once"
            )
        ordered = [by_id[treatment_id] for treatment_id in ordered_ids]
        return self.gateway.treatments.apply_order(ordered)

    def move_up(self, patient_id: int, tooth_number: int, index: int) -> list[ToothTreatment] | None:
        return self._swap(patient_id, tooth_number, index, index - 1)

    def move_down(self, patient_id: int, tooth_number: int, index: int) -> list[ToothTreatment] | None:
        return self._swap(patient_id, tooth_number, index, index + 1)

    def _swap(self, patient_id: int, tooth_number: int, index: int, other: int):
        current = self.list_for_tooth(patient_id, tooth_number)
        if not (0 <= index < len(current)) or not (0 <= other < len(current)):
            return None
        order = [treatment.id for treatment in current]
        order[index], order[other] = order[other], order[index]
        return self.reorder_treatments(patient_id, tooth_number, order)

    def update_treatment(self, treatment_id: int, patch: dict[str, Any]) -> TreatmentChange:
        treatment = self.require(treatment_id)
        old_cost = round_money(treatment.cost)
        old_category = treatment.treatment_category

        changes: dict[str, Any] = {}
        for key in EDITABLE_FIELDS:
            if key not in patch:
                continue
            value = patch[key]
            if value is None and key in REQUIRED_FIELDS:
                continue
            if key == "cost":
                value = round_money(value)
            current = getattr(treatment, key)
            if key == "cost":
                current = round_money(current)
            if current != value:
                changes[key] = value

        if changes:
            treatment = self.gateway.treatments.update(treatment, changes)
        return TreatmentChange(
            treatment=treatment,
            old_cost=old_cost,
            new_cost=round_money(treatment.cost),
            old_category=old_category,
            new_category=treatment.treatment_category,
            changed_fields=set(changes),
        )

    def delete_treatment(self, treatment_id: int) -> None:
        treatment = self.require(treatment_id)
        patient_id, tooth_number = treatment.patient_id, treatment.tooth_number
        self.gateway.treatments.delete(treatment)
        logger.info(
            "Treatment %s deleted; tooth %s of patient %s renumbered",
            treatment_id,
            tooth_number,
            patient_id,
        )
