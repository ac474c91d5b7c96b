import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dental_ledger.core.settings import settings, validate_settings
from dental_ledger.db.session import engine
from dental_ledger.models import Base
from dental_ledger.routers.reconciliation import router as reconciliation_router
from dental_ledger.routers.sessions import router as sessions_router
from dental_ledger.routers.treatments import (
    patient_router as patient_treatments_router,
    router as tooth_treatments_router,
    treatment_router as treatments_router,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Dental Ledger API", version="0.1.0")
logger = logging.getLogger("dental_ledger.startup")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)
    logger.info(
        "Reconciliation ready (prosthetic category %s, orphan policy %s, relink %s)",
        settings.prosthetic_category,
        settings.billing_orphan_policy,
        "on" if settings.relink_unlinked_lab_orders else "off",
    )


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(tooth_treatments_router)
app.include_router(patient_treatments_router)
app.include_router(treatments_router)
app.include_router(sessions_router)
app.include_router(reconciliation_router)
