"""Sequences plan, billing and lab order changes for one treatment mutation.

Each operation runs an ordered list of named steps and returns a
``ReconciliationReport``. The treatment write is the required step; billing
and lab order steps are optional and their failures are reported as warnings
without undoing the treatment write. Every operation emits exactly one
notification.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable

from dental_ledger.core.settings import Settings
from dental_ledger.models.billing import PaymentMethod
from dental_ledger.models.tooth_treatment import ToothTreatment
from dental_ledger.services.billing import POLICY_DELETE, POLICY_DETACH, BillingReconciler
from dental_ledger.services.errors import ReconciliationError, ValidationError
from dental_ledger.services.lab_orders import LabOrderSynchronizer
from dental_ledger.services.money import ZERO, round_money
from dental_ledger.services.notifications import (
    LoggingNotificationSink,
    Notification,
    NotificationLevel,
    NotificationSink,
)
from dental_ledger.services.repositories import PersistenceGateway
from dental_ledger.services.results import (
    STEP_BILLING,
    STEP_LAB_ORDER,
    STEP_LABELS,
    STEP_REORDER,
    STEP_SESSIONS,
    STEP_TREATMENT,
    STEP_VALIDATION,
    ReconciliationReport,
    ReportOutcome,
)
from dental_ledger.services.treatment_catalog import check_type_category
from dental_ledger.services.treatment_plan import TreatmentPlanManager
from dental_ledger.services.treatment_sessions import TreatmentSessionService

logger = logging.getLogger(__name__)

LAB_FIELDS = ("lab_id", "lab_cost")


def _join_labels(names: list[str]) -> str:
    labels = [STEP_LABELS.get(name, name) for name in names]
    if len(labels) == 1:
        return labels[0]
    return ", ".join(labels[:-1]) + " and " + labels[-1]


class ReconciliationCoordinator:
    def __init__(
        self,
        gateway: PersistenceGateway,
        notifier: NotificationSink | None = None,
        *,
        prosthetic_category: str = "prosthetic",
        relink_unlinked: bool = True,
        orphan_policy: str = POLICY_DETACH,
        default_method: PaymentMethod = PaymentMethod.cash,
    ) -> None:
        self.gateway = gateway
        self.notifier = notifier or LoggingNotificationSink()
        self.orphan_policy = orphan_policy
        self.plan = TreatmentPlanManager(gateway)
        self.sessions = TreatmentSessionService(gateway)
        self.billing = BillingReconciler(gateway, default_method=default_method)
        self.labs = LabOrderSynchronizer(
            gateway,
            prosthetic_category=prosthetic_category,
            relink_unlinked=relink_unlinked,
        )

    @classmethod
    def from_settings(
        cls,
        gateway: PersistenceGateway,
        settings: Settings,
        notifier: NotificationSink | None = None,
    ) -> "ReconciliationCoordinator":
        return cls(
            gateway,
            notifier,
            prosthetic_category=settings.prosthetic_category,
            relink_unlinked=settings.relink_unlinked_lab_orders,
            orphan_policy=settings.billing_orphan_policy,
            default_method=PaymentMethod(settings.default_payment_method),
        )

    # -- helpers ---------------------------------------------------------

    def _notify(self, level: NotificationLevel, message: str) -> None:
        self.notifier.notify(Notification(level, message))

    def _run_optional(
        self, report: ReconciliationReport, name: str, step: Callable[[], str | None]
    ) -> None:
        try:
            action = step()
        except ReconciliationError as exc:
            logger.warning(
                "%s step failed for treatment %s during %s: %s",
                name,
                report.treatment_id,
                report.operation,
                exc,
            )
            report.fail(name, exc)
            return
        report.succeed(name, action=action)

    def _finish(
        self,
        report: ReconciliationReport,
        success_message: str,
        *,
        subject: str = "Treatment",
        verb: str = "saved",
        success_level: NotificationLevel = NotificationLevel.success,
    ) -> ReconciliationReport:
        outcome = report.outcome
        if outcome == ReportOutcome.error:
            failed = next(step for step in report.failed_steps if step.required)
            if failed.name == STEP_VALIDATION:
                message = failed.message or "Invalid treatment data"
            else:
                message = f"{subject} could not be {verb}: {failed.message}"
            self._notify(NotificationLevel.error, message)
        elif outcome == ReportOutcome.warning:
            failed = report.failed_steps
            names = _join_labels([step.name for step in failed])
            noun = "step" if len(failed) == 1 else "steps"
            message = f"{subject} {verb}, but the {names} {noun} failed"
            if len(failed) == 1 and failed[0].message:
                message = f"{message}: {failed[0].message}"
            self._notify(NotificationLevel.warning, message)
        else:
            self._notify(success_level, success_message)
        return report

    def _validate_lab_fields(self, category, lab_id: int | None, lab_cost) -> None:
        if not self.labs.is_prosthetic(category):
            return
        if round_money(lab_cost) > ZERO and not lab_id:
            raise ValidationError("Select a lab when entering a lab cost for prosthetic work")
        if lab_id:
            self.gateway.labs.require(lab_id)

    # -- create ----------------------------------------------------------

    def on_treatment_create(
        self, patient_id: int, tooth_number: int, data: dict[str, Any]
    ) -> ReconciliationReport:
        report = ReconciliationReport(operation="create")
        lab_id = data.get("lab_id")
        lab_cost = data.get("lab_cost")
        try:
            if not data.get("treatment_type") or not data.get("treatment_category"):
                raise ValidationError("Treatment type and category are required")
            check_type_category(data.get("treatment_type"), data.get("treatment_category"))
            self.gateway.patients.require(patient_id)
            self._validate_lab_fields(data.get("treatment_category"), lab_id, lab_cost)
        except ReconciliationError as exc:
            report.fail(STEP_VALIDATION, exc, required=True)
            return self._finish(report, "", verb="added")

        try:
            treatment = self.plan.add_treatment(patient_id, tooth_number, data)
        except ReconciliationError as exc:
            logger.error("Treatment create failed for patient %s: %s", patient_id, exc)
            report.fail(STEP_TREATMENT, exc, required=True)
            return self._finish(report, "", verb="added")
        report.treatment_id = treatment.id
        report.succeed(STEP_TREATMENT, action="created", required=True)

        if round_money(treatment.cost) > ZERO:
            self._run_optional(report, STEP_BILLING, lambda: self._create_invoice(treatment))
        else:
            report.skip(STEP_BILLING, "No cost entered")

        if self.labs.needs_order(treatment.treatment_category, lab_id, lab_cost):
            self._run_optional(
                report,
                STEP_LAB_ORDER,
                lambda: self.labs.upsert_order(treatment, lab_id, lab_cost).action,
            )
        else:
            report.skip(STEP_LAB_ORDER, "No lab work requested")

        return self._finish(report, "Treatment added", verb="added")

    def _create_invoice(self, treatment: ToothTreatment) -> str:
        entry = self.billing.create_pending_invoice(treatment)
        return "created" if entry is not None else "unchanged"

    # -- edit ------------------------------------------------------------

    def _effective_lab_fields(
        self, treatment_id: int, patch: dict[str, Any]
    ) -> tuple[int | None, Any]:
        """Lab id and cost after the patch; fields it omits keep the linked order's values."""
        lab_id = patch.get("lab_id")
        lab_cost = patch.get("lab_cost")
        if "lab_id" in patch and "lab_cost" in patch:
            return lab_id, lab_cost
        linked = self.labs.find_linked_order(treatment_id)
        if "lab_id" not in patch:
            lab_id = linked.lab_id if linked is not None else None
        if "lab_cost" not in patch:
            # Clearing the lab drops the order along with its cost.
            lab_cost = linked.cost if linked is not None and lab_id else None
        return lab_id, lab_cost

    def on_treatment_edit(self, treatment_id: int, patch: dict[str, Any]) -> ReconciliationReport:
        report = ReconciliationReport(operation="edit", treatment_id=treatment_id)
        lab_fields_given = any(key in patch for key in LAB_FIELDS)
        lab_id = lab_cost = None
        try:
            existing = self.plan.require(treatment_id)
            category = patch.get("treatment_category") or existing.treatment_category
            if "treatment_type" in patch or "treatment_category" in patch:
                check_type_category(
                    patch.get("treatment_type") or existing.treatment_type, category
                )
            if lab_fields_given:
                lab_id, lab_cost = self._effective_lab_fields(treatment_id, patch)
                self._validate_lab_fields(category, lab_id, lab_cost)
        except ReconciliationError as exc:
            report.fail(STEP_VALIDATION, exc, required=True)
            return self._finish(report, "", verb="updated")

        treatment_patch = {key: value for key, value in patch.items() if key not in LAB_FIELDS}
        try:
            change = self.plan.update_treatment(treatment_id, treatment_patch)
        except ReconciliationError as exc:
            logger.error("Treatment %s update failed: %s", treatment_id, exc)
            report.fail(STEP_TREATMENT, exc, required=True)
            return self._finish(report, "", verb="updated")
        treatment = change.treatment
        report.succeed(
            STEP_TREATMENT,
            action="updated" if change.changed_fields else "unchanged",
            required=True,
        )

        if change.cost_changed:
            self._run_optional(
                report,
                STEP_BILLING,
                lambda: self.billing.reconcile_on_cost_change(
                    treatment, change.old_cost, change.new_cost
                ).action,
            )
        else:
            report.skip(STEP_BILLING, "Cost unchanged")

        if not self.labs.is_prosthetic(treatment.treatment_category):
            self._run_optional(
                report,
                STEP_LAB_ORDER,
                lambda: self.labs.remove_order_if_unneeded(treatment, None, None).action,
            )
        elif lab_fields_given:
            self._run_optional(
                report,
                STEP_LAB_ORDER,
                lambda: self.labs.synchronize(treatment, lab_id, lab_cost).action,
            )
        else:
            report.skip(STEP_LAB_ORDER, "Lab fields not submitted")

        return self._finish(report, "Treatment updated", verb="updated")

    # -- delete ----------------------------------------------------------

    def on_treatment_delete(self, treatment_id: int) -> ReconciliationReport:
        """Delete the treatment first, then release what was linked to it.

        Dependents are collected up front so a failed treatment delete leaves
        them untouched. Between the two phases the foreign keys (CASCADE for
        sessions and lab orders, SET NULL for payments) keep the rows consistent.
        """
        report = ReconciliationReport(operation="delete", treatment_id=treatment_id)
        try:
            self.plan.require(treatment_id)
            session_ids = [s.id for s in self.gateway.sessions.list_by_treatment(treatment_id)]
            order_ids = [o.id for o in self.gateway.lab_orders.list_by_treatment(treatment_id)]
            entry_ids = [e.id for e in self.gateway.billing.list_by_treatment(treatment_id)]
        except ReconciliationError as exc:
            report.fail(STEP_VALIDATION, exc, required=True)
            return self._finish(report, "", verb="deleted")

        try:
            self.plan.delete_treatment(treatment_id)
        except ReconciliationError as exc:
            logger.error("Treatment %s delete failed: %s", treatment_id, exc)
            report.fail(STEP_TREATMENT, exc, required=True)
            return self._finish(report, "", verb="deleted")
        report.succeed(STEP_TREATMENT, action="deleted", required=True)

        self._run_optional(
            report,
            STEP_SESSIONS,
            lambda: f"{self.sessions.delete_sessions(session_ids)} removed",
        )
        self._run_optional(
            report,
            STEP_LAB_ORDER,
            lambda: f"{self.labs.remove_orders(order_ids)} removed",
        )
        released = "deleted" if self.orphan_policy == POLICY_DELETE else "detached"
        self._run_optional(
            report,
            STEP_BILLING,
            lambda: (
                f"{self.billing.release_entries(entry_ids, treatment_id, self.orphan_policy)} "
                f"{released}"
            ),
        )
        return self._finish(report, "Treatment deleted", verb="deleted")

    # -- ordering --------------------------------------------------------

    def on_treatments_reorder(
        self, patient_id: int, tooth_number: int, ordered_ids: list[int]
    ) -> ReconciliationReport:
        report = ReconciliationReport(operation="reorder")
        try:
            self.plan.reorder_treatments(patient_id, tooth_number, ordered_ids)
        except ReconciliationError as exc:
            report.fail(STEP_REORDER, exc, required=True)
            return self._finish(report, "", subject="Treatment order", verb="saved")
        report.succeed(STEP_REORDER, action="reordered", required=True)
        return self._finish(report, "Treatment order saved", subject="Treatment order")

    def on_treatment_move(
        self, patient_id: int, tooth_number: int, index: int, direction: str
    ) -> ReconciliationReport:
        report = ReconciliationReport(operation=f"move_{direction}")
        move = self.plan.move_up if direction == "up" else self.plan.move_down
        try:
            moved = move(patient_id, tooth_number, index)
        except ReconciliationError as exc:
            report.fail(STEP_REORDER, exc, required=True)
            return self._finish(report, "", subject="Treatment order", verb="saved")
        if moved is None:
            report.skip(STEP_REORDER, "Treatment is already at the boundary")
            return self._finish(
                report,
                "Treatment order unchanged",
                subject="Treatment order",
                success_level=NotificationLevel.info,
            )
        report.succeed(STEP_REORDER, action="reordered", required=True)
        return self._finish(report, "Treatment order saved", subject="Treatment order")

    # -- explicit recovery actions ---------------------------------------

    def relink_lab_order(self, treatment_id: int) -> ReconciliationReport:
        report = ReconciliationReport(operation="relink", treatment_id=treatment_id)
        try:
            treatment = self.plan.require(treatment_id)
        except ReconciliationError as exc:
            report.fail(STEP_VALIDATION, exc, required=True)
            return self._finish(report, "", subject="Lab order", verb="reloaded")

        if not self.labs.is_prosthetic(treatment.treatment_category):
            report.skip(STEP_LAB_ORDER, "Treatment is not prosthetic work")
            return self._finish(
                report,
                "This treatment is not prosthetic work",
                subject="Lab order",
                success_level=NotificationLevel.info,
            )

        try:
            order = self.labs.find_or_relink_unlinked(
                treatment.patient_id, treatment.id, treatment.tooth_number
            )
        except ReconciliationError as exc:
            report.fail(STEP_LAB_ORDER, exc, required=True)
            return self._finish(report, "", subject="Lab order", verb="reloaded")
        if order is None:
            report.skip(STEP_LAB_ORDER, "No lab order for this treatment")
            return self._finish(
                report,
                "No lab order for this treatment",
                subject="Lab order",
                success_level=NotificationLevel.info,
            )
        report.details["lab_order_id"] = order.id
        report.succeed(STEP_LAB_ORDER, action="linked", required=True)
        return self._finish(report, "Lab order data reloaded", subject="Lab order")

    def sweep_orphans(self) -> ReconciliationReport:
        report = ReconciliationReport(operation="sweep")

        def sweep_billing() -> str:
            count = self.billing.sweep_orphans(self.orphan_policy)
            report.details["billing_rows"] = count
            return f"{count} released"

        def sweep_labs() -> str:
            count = self.labs.sweep_orphans()
            report.details["lab_orders"] = count
            return f"{count} removed"

        self._run_optional(report, STEP_BILLING, sweep_billing)
        self._run_optional(report, STEP_LAB_ORDER, sweep_labs)
        report.details.setdefault("billing_rows", 0)
        report.details.setdefault("lab_orders", 0)
        total = report.details["billing_rows"] + report.details["lab_orders"]
        return self._finish(
            report,
            f"Reconciliation sweep finished ({total} orphan records)",
            subject="Reconciliation sweep",
            verb="finished",
        )

    # -- payments --------------------------------------------------------

    def record_payment(
        self, treatment_id: int, amount: Decimal, **kwargs: Any
    ) -> ReconciliationReport:
        report = ReconciliationReport(operation="payment", treatment_id=treatment_id)
        try:
            treatment = self.plan.require(treatment_id)
            entry = self.billing.record_payment(treatment, amount, **kwargs)
        except ReconciliationError as exc:
            report.fail(STEP_BILLING, exc, required=True)
            return self._finish(report, "", subject="Payment", verb="recorded")
        report.details["payment_id"] = entry.id
        report.succeed(STEP_BILLING, action="recorded", required=True)
        return self._finish(report, "Payment recorded", subject="Payment")
