from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dental_ledger.db.session import build_engine
from dental_ledger.models import Base, Lab, Patient, TreatmentCategory
from dental_ledger.services.notifications import CollectingNotificationSink
from dental_ledger.services.reconciliation import ReconciliationCoordinator
from dental_ledger.services.repositories import PersistenceGateway


@pytest.fixture()
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def gateway(db):
    return PersistenceGateway.from_session(db, actor="tests")


@pytest.fixture()
def patient(db):
    patient = Patient(full_name="Maria Ionescu", phone="0722 000 111")
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


@pytest.fixture()
def lab(db):
    lab = Lab(name="Dental Art Lab", contact_info="lab@example.com")
    db.add(lab)
    db.commit()
    db.refresh(lab)
    return lab


@pytest.fixture()
def notifier():
    return CollectingNotificationSink(forward=None)


@pytest.fixture()
def coordinator(gateway, notifier):
    return ReconciliationCoordinator(gateway, notifier)


@pytest.fixture()
def treatment_data():
    def _build(**overrides):
        data = {
            "tooth_name": "Upper right first molar",
            "treatment_type": "filling_cosmetic",
            "treatment_category": TreatmentCategory.restorative,
            "cost": Decimal("150.00"),
        }
        data.update(overrides)
        return data

    return _build
