from typing import NoReturn

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from dental_ledger.core.settings import settings
from dental_ledger.db.session import get_db
from dental_ledger.services.errors import (
    NotFoundError,
    PersistenceError,
    ReconciliationError,
    ValidationError,
)
from dental_ledger.services.notifications import CollectingNotificationSink
from dental_ledger.services.reconciliation import ReconciliationCoordinator
from dental_ledger.services.repositories import PersistenceGateway
from dental_ledger.services.results import ReconciliationReport, ReportOutcome

ERROR_STATUS = {
    ValidationError.__name__: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError.__name__: status.HTTP_404_NOT_FOUND,
    PersistenceError.__name__: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_actor(x_actor: str | None = Header(default=None)) -> str | None:
    if x_actor is None:
        return None
    return x_actor.strip() or None


def get_gateway(
    db: Session = Depends(get_db), actor: str | None = Depends(get_actor)
) -> PersistenceGateway:
    return PersistenceGateway.from_session(db, actor=actor)


def get_notifier() -> CollectingNotificationSink:
    return CollectingNotificationSink()


def get_coordinator(
    gateway: PersistenceGateway = Depends(get_gateway),
    notifier: CollectingNotificationSink = Depends(get_notifier),
) -> ReconciliationCoordinator:
    return ReconciliationCoordinator.from_settings(gateway, settings, notifier)


def raise_for_error(exc: ReconciliationError) -> NoReturn:
    raise HTTPException(
        status_code=ERROR_STATUS.get(type(exc).__name__, status.HTTP_400_BAD_REQUEST),
        detail=exc.message,
    )


def raise_for_report(report: ReconciliationReport, notifier: CollectingNotificationSink) -> None:
    if report.outcome != ReportOutcome.error:
        return
    failed = next(step for step in report.failed_steps if step.required)
    raise HTTPException(
        status_code=ERROR_STATUS.get(failed.error_type, status.HTTP_400_BAD_REQUEST),
        detail={
            "message": failed.message,
            "report": report.as_dict(),
            "notifications": [item.as_dict() for item in notifier.drain()],
        },
    )
