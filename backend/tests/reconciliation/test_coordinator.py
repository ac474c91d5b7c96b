from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dental_ledger.models import (
    AuditLog,
    Base,
    BillingEntry,
    Lab,
    LabOrder,
    LabOrderStatus,
    Patient,
    PaymentMethod,
    PaymentStatus,
    ToothTreatment,
    TreatmentCategory,
)
from dental_ledger.services.errors import PersistenceError
from dental_ledger.services.notifications import CollectingNotificationSink, NotificationLevel
from dental_ledger.services.reconciliation import ReconciliationCoordinator
from dental_ledger.services.repositories import (
    BillingRepository,
    PersistenceGateway,
    TreatmentRepository,
)
from dental_ledger.services.results import ReportOutcome, StepStatus
from dental_ledger.services.treatment_sessions import TreatmentSessionService


class BrokenBillingRepository(BillingRepository):
    def create(self, **fields):
        raise PersistenceError("payment.create", RuntimeError("disk full"))


class LockedTreatmentRepository(TreatmentRepository):
    def delete(self, entity):
        raise PersistenceError("tooth_treatment.delete", RuntimeError("database is locked"))


def _count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


def _prosthetic(treatment_data, lab, **overrides):
    data = treatment_data(
        tooth_name="Lower left first molar",
        treatment_type="crown_ceramic",
        treatment_category=TreatmentCategory.prosthetic,
        cost=Decimal("500"),
        lab_id=lab.id,
        lab_cost=Decimal("150"),
    )
    data.update(overrides)
    return data


def test_create_with_lab_work(coordinator, gateway, notifier, patient, lab, treatment_data):
    report = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))

    assert report.outcome == ReportOutcome.success
    assert [step.name for step in report.steps] == ["treatment", "billing", "lab_order"]
    rows = gateway.billing.list_by_treatment(report.treatment_id)
    assert len(rows) == 1
    assert rows[0].status == PaymentStatus.pending
    assert rows[0].total_amount_due == Decimal("500.00")
    order = gateway.lab_orders.list_by_treatment(report.treatment_id)
    assert len(order) == 1
    assert order[0].cost == Decimal("150.00")
    assert order[0].status == LabOrderStatus.pending
    assert [n.level for n in notifier.notifications] == [NotificationLevel.success]


def test_create_without_cost_or_lab_skips_optional_steps(
    coordinator, gateway, notifier, patient, treatment_data
):
    report = coordinator.on_treatment_create(patient.id, 16, treatment_data(cost=Decimal("0")))

    assert report.outcome == ReportOutcome.success
    assert report.step("billing").status == StepStatus.skipped
    assert report.step("lab_order").status == StepStatus.skipped
    assert gateway.billing.list_by_treatment(report.treatment_id) == []
    assert len(notifier.notifications) == 1


def test_validation_failure_writes_nothing(db, coordinator, notifier, patient, lab, treatment_data):
    data = _prosthetic(treatment_data, lab, lab_id=None)

    report = coordinator.on_treatment_create(patient.id, 36, data)

    assert report.outcome == ReportOutcome.error
    assert report.step("validation").status == StepStatus.failed
    assert report.treatment_id is None
    assert _count(db, ToothTreatment) == 0
    assert _count(db, BillingEntry) == 0
    assert _count(db, AuditLog) == 0
    assert [n.level for n in notifier.notifications] == [NotificationLevel.error]


def test_create_for_missing_patient_fails_fast(db, coordinator, treatment_data):
    report = coordinator.on_treatment_create(999, 16, treatment_data())

    assert report.outcome == ReportOutcome.error
    assert report.step("validation").error_type == "NotFoundError"
    assert _count(db, ToothTreatment) == 0


def test_billing_failure_keeps_treatment(db, patient, lab, treatment_data):
    gateway = PersistenceGateway.from_session(db)
    gateway.billing = BrokenBillingRepository(db)
    notifier = CollectingNotificationSink(forward=None)
    coordinator = ReconciliationCoordinator(gateway, notifier)

    report = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))

    assert report.outcome == ReportOutcome.warning
    assert report.step("treatment").ok
    assert report.step("billing").status == StepStatus.failed
    assert report.step("lab_order").ok
    assert gateway.treatments.get(report.treatment_id) is not None
    assert len(gateway.lab_orders.list_by_treatment(report.treatment_id)) == 1
    assert len(notifier.notifications) == 1
    warning = notifier.notifications[0]
    assert warning.level == NotificationLevel.warning
    assert "payment" in warning.message


def test_cost_cut_after_full_payment_completes_rows(
    coordinator, gateway, patient, treatment_data
):
    created = coordinator.on_treatment_create(patient.id, 16, treatment_data(cost=Decimal("500")))
    treatment = gateway.treatments.get(created.treatment_id)
    coordinator.billing.record_payment(treatment, Decimal("500"))

    report = coordinator.on_treatment_edit(treatment.id, {"cost": Decimal("300")})

    assert report.outcome == ReportOutcome.success
    assert report.step("billing").action == "mirrored"
    rows = gateway.billing.list_by_treatment(treatment.id)
    assert len(rows) == 2
    for row in rows:
        assert row.total_amount_due == Decimal("300.00")
        assert row.remaining_balance == Decimal("0.00")
        assert row.status == PaymentStatus.completed


def test_edit_without_changes_touches_nothing(db, coordinator, patient, treatment_data):
    created = coordinator.on_treatment_create(patient.id, 16, treatment_data())
    audit_before = _count(db, AuditLog)

    report = coordinator.on_treatment_edit(created.treatment_id, {"cost": Decimal("150.00")})

    assert report.step("treatment").action == "unchanged"
    assert report.step("billing").status == StepStatus.skipped
    assert _count(db, AuditLog) == audit_before


def test_category_change_away_from_prosthetic_drops_lab_order(
    coordinator, gateway, patient, lab, treatment_data
):
    created = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))

    report = coordinator.on_treatment_edit(
        created.treatment_id,
        {"treatment_type": "filling_cosmetic", "treatment_category": TreatmentCategory.restorative},
    )

    assert report.outcome == ReportOutcome.success
    assert report.step("lab_order").action == "removed"
    assert gateway.lab_orders.list_all() == []


def test_edit_lab_cost_updates_order(coordinator, gateway, patient, lab, treatment_data):
    created = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))

    report = coordinator.on_treatment_edit(
        created.treatment_id, {"lab_id": lab.id, "lab_cost": Decimal("180")}
    )

    assert report.step("lab_order").action == "updated"
    order = gateway.lab_orders.list_by_treatment(created.treatment_id)[0]
    assert order.cost == Decimal("180.00")


def test_edit_lab_id_alone_switches_lab_and_keeps_cost(
    db, coordinator, gateway, patient, lab, treatment_data
):
    created = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))
    other_lab = Lab(name="Zirkon Studio")
    db.add(other_lab)
    db.commit()
    order = gateway.lab_orders.list_by_treatment(created.treatment_id)[0]
    gateway.lab_orders.update(order, {"paid_amount": Decimal("50")})

    report = coordinator.on_treatment_edit(created.treatment_id, {"lab_id": other_lab.id})

    assert report.outcome == ReportOutcome.success
    assert report.step("lab_order").action == "updated"
    orders = gateway.lab_orders.list_by_treatment(created.treatment_id)
    assert len(orders) == 1
    assert orders[0].id == order.id
    assert orders[0].lab_id == other_lab.id
    assert orders[0].cost == Decimal("150.00")
    assert orders[0].paid_amount == Decimal("50.00")
    assert orders[0].remaining_balance == Decimal("100.00")


def test_edit_lab_cost_alone_keeps_linked_lab(coordinator, gateway, patient, lab, treatment_data):
    created = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))

    report = coordinator.on_treatment_edit(created.treatment_id, {"lab_cost": Decimal("200")})

    assert report.outcome == ReportOutcome.success
    assert report.step("validation") is None
    assert report.step("lab_order").action == "updated"
    order = gateway.lab_orders.list_by_treatment(created.treatment_id)[0]
    assert order.lab_id == lab.id
    assert order.cost == Decimal("200.00")


@pytest.mark.parametrize("patch", [{"lab_cost": Decimal("0")}, {"lab_id": None}])
def test_explicit_empty_lab_field_removes_order(
    coordinator, gateway, patient, lab, treatment_data, patch
):
    created = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))

    report = coordinator.on_treatment_edit(created.treatment_id, patch)

    assert report.outcome == ReportOutcome.success
    assert report.step("lab_order").action == "removed"
    assert gateway.lab_orders.list_all() == []


def test_edit_lab_id_without_order_needs_cost(coordinator, patient, lab, treatment_data):
    created = coordinator.on_treatment_create(
        patient.id, 36, _prosthetic(treatment_data, lab, lab_id=None, lab_cost=None)
    )

    report = coordinator.on_treatment_edit(created.treatment_id, {"lab_id": lab.id})

    assert report.outcome == ReportOutcome.success
    assert report.step("lab_order").action == "absent"


def test_create_rejects_type_from_other_category(db, coordinator, patient, treatment_data):
    data = treatment_data(treatment_type="crown_ceramic")

    report = coordinator.on_treatment_create(patient.id, 16, data)

    assert report.outcome == ReportOutcome.error
    assert report.step("validation").error_type == "ValidationError"
    assert _count(db, ToothTreatment) == 0
    assert _count(db, AuditLog) == 0


def test_edit_category_alone_must_match_type(coordinator, gateway, patient, lab, treatment_data):
    created = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))

    report = coordinator.on_treatment_edit(
        created.treatment_id, {"treatment_category": TreatmentCategory.restorative}
    )

    assert report.outcome == ReportOutcome.error
    assert report.step("validation").status == StepStatus.failed
    treatment = gateway.treatments.get(created.treatment_id)
    assert treatment.treatment_category == TreatmentCategory.prosthetic
    assert len(gateway.lab_orders.list_by_treatment(created.treatment_id)) == 1


def test_unknown_type_accepts_any_category(coordinator, patient, treatment_data):
    data = treatment_data(
        treatment_type="night_guard", treatment_category=TreatmentCategory.orthodontic
    )

    report = coordinator.on_treatment_create(patient.id, 16, data)

    assert report.outcome == ReportOutcome.success


def test_edit_without_lab_fields_leaves_order(coordinator, gateway, patient, lab, treatment_data):
    created = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))

    report = coordinator.on_treatment_edit(created.treatment_id, {"notes": "shade A2"})

    assert report.step("lab_order").status == StepStatus.skipped
    assert len(gateway.lab_orders.list_by_treatment(created.treatment_id)) == 1


def test_delete_clears_every_dependent(db, coordinator, gateway, patient, lab, treatment_data):
    created = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))
    treatment_id = created.treatment_id
    TreatmentSessionService(gateway).create(
        treatment_id,
        {"session_type": "impression", "session_title": "Impression", "session_date": date.today()},
    )

    report = coordinator.on_treatment_delete(treatment_id)

    assert report.outcome == ReportOutcome.success
    assert gateway.treatments.get(treatment_id) is None
    assert gateway.sessions.list_by_treatment(treatment_id) == []
    assert gateway.lab_orders.list_by_treatment(treatment_id) == []
    assert gateway.billing.list_by_treatment(treatment_id) == []
    assert [step.name for step in report.steps] == [
        "treatment",
        "sessions",
        "lab_order",
        "billing",
    ]
    assert report.step("sessions").action == "1 removed"
    assert report.step("lab_order").action == "1 removed"
    assert report.step("billing").action == "1 detached"
    rows = gateway.billing.list_by_patient(patient.id)
    assert len(rows) == 1
    assert rows[0].tooth_treatment_id is None
    assert rows[0].notes.endswith(f"[treatment #{treatment_id} deleted]")


def test_failed_treatment_delete_leaves_dependents_linked(db, patient, lab, treatment_data):
    gateway = PersistenceGateway.from_session(db)
    notifier = CollectingNotificationSink(forward=None)
    coordinator = ReconciliationCoordinator(gateway, notifier)
    created = coordinator.on_treatment_create(patient.id, 36, _prosthetic(treatment_data, lab))
    treatment_id = created.treatment_id
    coordinator.record_payment(treatment_id, Decimal("200"))
    TreatmentSessionService(gateway).create(
        treatment_id,
        {"session_type": "impression", "session_title": "Impression", "session_date": date.today()},
    )
    notifier.drain()
    gateway.treatments = LockedTreatmentRepository(db)

    report = coordinator.on_treatment_delete(treatment_id)

    assert report.outcome == ReportOutcome.error
    assert report.step("treatment").error_type == "PersistenceError"
    assert report.step("sessions") is None
    assert report.step("billing") is None
    treatment = gateway.treatments.get(treatment_id)
    assert treatment is not None
    assert len(gateway.sessions.list_by_treatment(treatment_id)) == 1
    assert len(gateway.lab_orders.list_by_treatment(treatment_id)) == 1
    rows = gateway.billing.list_by_treatment(treatment_id)
    assert len(rows) == 2
    assert all("deleted]" not in (row.notes or "") for row in rows)
    summary = coordinator.billing.summarize(treatment)
    assert summary.total_paid == Decimal("200.00")
    assert summary.remaining_balance == Decimal("300.00")
    assert [n.level for n in notifier.notifications] == [NotificationLevel.error]


def test_delete_with_delete_policy_removes_billing(db, patient, treatment_data):
    gateway = PersistenceGateway.from_session(db)
    coordinator = ReconciliationCoordinator(
        gateway, CollectingNotificationSink(forward=None), orphan_policy="delete"
    )
    created = coordinator.on_treatment_create(patient.id, 16, treatment_data())

    coordinator.on_treatment_delete(created.treatment_id)

    assert gateway.billing.list_by_patient(patient.id) == []


def test_delete_compacts_priorities(coordinator, gateway, patient, treatment_data):
    ids = [
        coordinator.on_treatment_create(patient.id, 16, treatment_data()).treatment_id
        for _ in range(3)
    ]

    coordinator.on_treatment_delete(ids[0])

    remaining = gateway.treatments.list_for_tooth(patient.id, 16)
    assert [(t.id, t.priority) for t in remaining] == [(ids[1], 1), (ids[2], 2)]


def test_delete_missing_treatment_reports_error(coordinator, notifier):
    report = coordinator.on_treatment_delete(5555)

    assert report.outcome == ReportOutcome.error
    assert len(notifier.notifications) == 1
    assert notifier.notifications[0].level == NotificationLevel.error


def test_reorder_through_coordinator(coordinator, gateway, patient, treatment_data):
    t1, t2, t3 = [
        coordinator.on_treatment_create(patient.id, 16, treatment_data()).treatment_id
        for _ in range(3)
    ]

    report = coordinator.on_treatments_reorder(patient.id, 16, [t3, t1, t2])

    assert report.outcome == ReportOutcome.success
    priorities = {t.id: t.priority for t in gateway.treatments.list_for_tooth(patient.id, 16)}
    assert priorities == {t3: 1, t1: 2, t2: 3}


def test_move_at_boundary_is_informational(coordinator, notifier, patient, treatment_data):
    coordinator.on_treatment_create(patient.id, 16, treatment_data())
    notifier.drain()

    report = coordinator.on_treatment_move(patient.id, 16, 0, "up")

    assert report.outcome == ReportOutcome.success
    assert report.step("reorder").status == StepStatus.skipped
    assert [n.level for n in notifier.notifications] == [NotificationLevel.info]


def test_relink_lab_order(db, coordinator, gateway, patient, lab, treatment_data):
    created = coordinator.on_treatment_create(
        patient.id, 36, _prosthetic(treatment_data, lab, lab_id=None, lab_cost=None)
    )
    order = LabOrder(
        lab_id=lab.id,
        patient_id=patient.id,
        service_name="Ceramic crown",
        cost=Decimal("150"),
        paid_amount=Decimal("0"),
        remaining_balance=Decimal("150"),
        status=LabOrderStatus.pending,
        order_date=date.today(),
    )
    db.add(order)
    db.commit()

    report = coordinator.relink_lab_order(created.treatment_id)

    assert report.outcome == ReportOutcome.success
    assert report.details["lab_order_id"] == order.id
    assert gateway.lab_orders.list_by_treatment(created.treatment_id)[0].id == order.id


def test_record_payment_through_coordinator(coordinator, gateway, patient, treatment_data):
    created = coordinator.on_treatment_create(patient.id, 16, treatment_data())

    report = coordinator.record_payment(
        created.treatment_id, Decimal("50"), method=PaymentMethod.bank_transfer
    )

    assert report.outcome == ReportOutcome.success
    entry = gateway.billing.get(report.details["payment_id"])
    assert entry.payment_method == PaymentMethod.bank_transfer
    assert entry.status == PaymentStatus.partial


@pytest.fixture()
def loose_db():
    # No foreign key enforcement, so rows can point at treatments that no longer exist.
    engine = create_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def test_sweep_releases_orphans(loose_db):
    patient = Patient(full_name="Ion Popescu")
    loose_db.add(patient)
    loose_db.flush()
    loose_db.add(
        BillingEntry(
            patient_id=patient.id,
            tooth_treatment_id=404,
            amount=Decimal("20"),
            payment_date=date.today(),
            total_amount_due=Decimal("100"),
            treatment_total_paid=Decimal("20"),
            remaining_balance=Decimal("80"),
            status=PaymentStatus.partial,
        )
    )
    loose_db.add(
        LabOrder(
            lab_id=7,
            patient_id=patient.id,
            tooth_treatment_id=404,
            service_name="Bridge",
            cost=Decimal("300"),
            order_date=date.today(),
        )
    )
    loose_db.commit()
    gateway = PersistenceGateway.from_session(loose_db)
    notifier = CollectingNotificationSink(forward=None)

    report = ReconciliationCoordinator(gateway, notifier).sweep_orphans()

    assert report.outcome == ReportOutcome.success
    assert report.details == {"billing_rows": 1, "lab_orders": 1}
    assert gateway.lab_orders.list_all() == []
    row = gateway.billing.list_all()[0]
    assert row.tooth_treatment_id is None
    assert "[treatment #404 missing]" in row.notes
    assert len(notifier.notifications) == 1
