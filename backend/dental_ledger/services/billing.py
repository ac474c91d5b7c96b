"""Billing rows derived from a treatment's cost.

Every row linked to a treatment carries the same aggregate snapshot
(total due, total paid across all linked rows, remaining balance, status);
rows differ only in their own ``amount``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from dental_ledger.models.billing import BillingEntry, PaymentMethod, PaymentStatus
from dental_ledger.models.tooth_treatment import ToothTreatment
from dental_ledger.services.errors import ValidationError
from dental_ledger.services.money import ZERO, money_sum, round_money
from dental_ledger.services.repositories import PersistenceGateway
from dental_ledger.services.treatment_catalog import tooth_label, treatment_label

logger = logging.getLogger(__name__)

POLICY_DETACH = "detach"
POLICY_DELETE = "delete"

ACTION_CREATED = "created"
ACTION_MIRRORED = "mirrored"
ACTION_UNCHANGED = "unchanged"
ACTION_NONE = "none"


def derive_status(total_due, total_paid) -> PaymentStatus:
    total_due = round_money(total_due)
    total_paid = round_money(total_paid)
    remaining = max(ZERO, total_due - total_paid)
    if total_due <= ZERO:
        return PaymentStatus.completed
    if remaining <= ZERO and total_paid > ZERO:
        return PaymentStatus.completed
    if total_paid > ZERO:
        return PaymentStatus.partial
    return PaymentStatus.pending


@dataclass(frozen=True)
class BillingSnapshot:
    total_amount_due: Decimal
    treatment_total_paid: Decimal
    remaining_balance: Decimal
    status: PaymentStatus

    @classmethod
    def compute(cls, total_due, amounts) -> "BillingSnapshot":
        total_due = round_money(total_due)
        total_paid = money_sum(amounts)
        return cls(
            total_amount_due=total_due,
            treatment_total_paid=total_paid,
            remaining_balance=max(ZERO, total_due - total_paid),
            status=derive_status(total_due, total_paid),
        )

    def as_changes(self) -> dict:
        return {
            "total_amount_due": self.total_amount_due,
            "treatment_total_paid": self.treatment_total_paid,
            "remaining_balance": self.remaining_balance,
            "status": self.status,
        }


@dataclass
class BillingChange:
    action: str
    entries: list[BillingEntry] = field(default_factory=list)


@dataclass
class BillingSummary:
    treatment_id: int
    total_amount_due: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    status: PaymentStatus
    entries: list[BillingEntry]

    @property
    def entry_count(self) -> int:
        return len(self.entries)


class BillingReconciler:
    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        default_method: PaymentMethod = PaymentMethod.cash,
    ) -> None:
        self.gateway = gateway
        self.default_method = default_method

    def _description(self, treatment: ToothTreatment) -> str:
        return (
            f"{treatment_label(treatment.treatment_type)} - tooth "
            f"{tooth_label(treatment.tooth_name, treatment.tooth_number)}"
        )

    def create_pending_invoice(self, treatment: ToothTreatment) -> BillingEntry | None:
        if treatment is None or treatment.id is None:
            return None
        cost = round_money(treatment.cost)
        if cost <= ZERO:
            return None
        if self.gateway.billing.list_by_treatment(treatment.id):
            return None

        patient = self.gateway.patients.require(treatment.patient_id)
        label = treatment_label(treatment.treatment_type)
        tooth = tooth_label(treatment.tooth_name, treatment.tooth_number)
        entry = self.gateway.billing.create(
            patient_id=treatment.patient_id,
            tooth_treatment_id=treatment.id,
            amount=ZERO,
            payment_method=self.default_method,
            payment_date=date.today(),
            description=self._description(treatment),
            notes=f"Pending payment for {patient.full_name} - tooth {tooth} - {label}",
            status=PaymentStatus.pending,
            total_amount_due=cost,
            treatment_total_paid=ZERO,
            remaining_balance=cost,
        )
        logger.info("Pending invoice %s created for treatment %s (%s)", entry.id, treatment.id, cost)
        return entry

    def reconcile_on_cost_change(
        self, treatment: ToothTreatment, old_cost, new_cost
    ) -> BillingChange:
        old_cost = round_money(old_cost)
        new_cost = round_money(new_cost)
        if old_cost == new_cost:
            return BillingChange(ACTION_UNCHANGED)

        rows = self.gateway.billing.list_by_treatment(treatment.id)
        if not rows:
            if new_cost > ZERO:
                entry = self.create_pending_invoice(treatment)
                return BillingChange(ACTION_CREATED, [entry] if entry else [])
            return BillingChange(ACTION_NONE)

        rows = self._mirror(treatment, rows, new_cost, note="cost changed")
        logger.info(
            "Treatment %s cost %s -> %s mirrored onto %s payment rows",
            treatment.id,
            old_cost,
            new_cost,
            len(rows),
        )
        return BillingChange(ACTION_MIRRORED, rows)

    def _mirror(
        self, treatment: ToothTreatment, rows: list[BillingEntry], total_due, note: str
    ) -> list[BillingEntry]:
        snapshot = BillingSnapshot.compute(total_due, [row.amount for row in rows])
        changes = snapshot.as_changes()
        changes["description"] = self._description(treatment)
        changes["notes"] = (
            f"Payment for tooth {tooth_label(treatment.tooth_name, treatment.tooth_number)} "
            f"({note})"
        )
        return self.gateway.billing.update_many(rows, changes)

    def record_payment(
        self,
        treatment: ToothTreatment,
        amount,
        *,
        method: PaymentMethod | None = None,
        payment_date: date | None = None,
        notes: str | None = None,
    ) -> BillingEntry:
        amount = round_money(amount)
        if amount <= ZERO:
            raise ValidationError("Payment amount must be greater than zero")
        rows = self.gateway.billing.list_by_treatment(treatment.id)
        snapshot = BillingSnapshot.compute(treatment.cost, [row.amount for row in rows] + [amount])
        entry = self.gateway.billing.create(
            patient_id=treatment.patient_id,
            tooth_treatment_id=treatment.id,
            amount=amount,
            payment_method=method or self.default_method,
            payment_date=payment_date or date.today(),
            description=self._description(treatment),
            notes=notes,
            **snapshot.as_changes(),
        )
        if rows:
            self.gateway.billing.update_many(rows, snapshot.as_changes())
        logger.info(
            "Payment %s of %s recorded for treatment %s (status %s)",
            entry.id,
            amount,
            treatment.id,
            snapshot.status.value,
        )
        return entry

    def summarize(self, treatment: ToothTreatment) -> BillingSummary:
        rows = self.gateway.billing.list_by_treatment(treatment.id)
        snapshot = BillingSnapshot.compute(treatment.cost, [row.amount for row in rows])
        return BillingSummary(
            treatment_id=treatment.id,
            total_amount_due=snapshot.total_amount_due,
            total_paid=snapshot.treatment_total_paid,
            remaining_balance=snapshot.remaining_balance,
            status=snapshot.status,
            entries=rows,
        )

    def _release(self, rows: list[BillingEntry], policy: str, reason: str) -> int:
        if not rows:
            return 0
        if policy == POLICY_DELETE:
            return self.gateway.billing.delete_many(rows)
        if policy != POLICY_DETACH:
            raise ValidationError(f"Unknown billing orphan policy: {policy}")
        for row in rows:
            suffix = f"[{reason}]"
            notes = f"{row.notes} {suffix}" if row.notes else suffix
            self.gateway.billing.update(row, {"tooth_treatment_id": None, "notes": notes})
        return len(rows)

    def release_for_deleted_treatment(self, treatment_id: int, policy: str = POLICY_DETACH) -> int:
        rows = self.gateway.billing.list_by_treatment(treatment_id)
        released = self._release(rows, policy, f"treatment #{treatment_id} deleted")
        if released:
            logger.info(
                "%s payment rows of treatment %s released (%s)", released, treatment_id, policy
            )
        return released

    def release_entries(
        self, entry_ids: list[int], treatment_id: int, policy: str = POLICY_DETACH
    ) -> int:
        """Release rows collected before their treatment was deleted.

        The foreign key may already have nulled ``tooth_treatment_id``; the
        note and the delete policy are still applied here.
        """
        rows = self.gateway.billing.get_many(entry_ids)
        released = self._release(rows, policy, f"treatment #{treatment_id} deleted")
        if released:
            logger.info(
                "%s payment rows of deleted treatment %s released (%s)",
                released,
                treatment_id,
                policy,
            )
        return released

    def sweep_orphans(self, policy: str = POLICY_DETACH) -> int:
        rows = self.gateway.billing.list_orphans()
        by_treatment: dict[int, list[BillingEntry]] = {}
        for row in rows:
            by_treatment.setdefault(row.tooth_treatment_id, []).append(row)
        released = 0
        for treatment_id, treatment_rows in by_treatment.items():
            released += self._release(
                treatment_rows, policy, f"treatment #{treatment_id} missing"
            )
        if released:
            logger.warning("Orphan sweep released %s payment rows (%s)", released, policy)
        return released
