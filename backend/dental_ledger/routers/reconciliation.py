from fastapi import APIRouter, Depends

from dental_ledger.deps import get_coordinator, get_notifier, raise_for_report
from dental_ledger.schemas.reconciliation import SweepOut
from dental_ledger.services.notifications import CollectingNotificationSink
from dental_ledger.services.reconciliation import ReconciliationCoordinator

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.post("/sweep", response_model=SweepOut)
def sweep_orphans(
    coordinator: ReconciliationCoordinator = Depends(get_coordinator),
    notifier: CollectingNotificationSink = Depends(get_notifier),
):
    report = coordinator.sweep_orphans()
    raise_for_report(report, notifier)
    return {
        "report": report.as_dict(),
        "notifications": [item.as_dict() for item in notifier.drain()],
        "billing_rows": report.details.get("billing_rows", 0),
        "lab_orders": report.details.get("lab_orders", 0),
    }
