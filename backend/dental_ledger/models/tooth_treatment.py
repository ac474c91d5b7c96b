from __future__ import annotations

import enum
from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Date,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_ledger.models.base import Base, TimestampMixin


class TreatmentCategory(str, enum.Enum):
    preventive = "preventive"
    restorative = "restorative"
    endodontic = "endodontic"
    surgical = "surgical"
    cosmetic = "cosmetic"
    orthodontic = "orthodontic"
    periodontal = "periodontal"
    pediatric = "pediatric"
    prosthetic = "prosthetic"


class TreatmentStatus(str, enum.Enum):
    planned = "planned"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class SessionStatus(str, enum.Enum):
    planned = "planned"
    completed = "completed"
    cancelled = "cancelled"


class ToothTreatment(Base, TimestampMixin):
    __tablename__ = "tooth_treatments"
    __table_args__ = (
        UniqueConstraint(
            "patient_id", "tooth_number", "priority", name="uq_tooth_treatments_priority"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tooth_number: Mapped[int] = mapped_column(Integer, nullable=False)
    tooth_name: Mapped[str] = mapped_column(String(100), nullable=False)
    treatment_type: Mapped[str] = mapped_column(String(60), nullable=False)
    treatment_category: Mapped[TreatmentCategory] = mapped_column(
        Enum(TreatmentCategory, name="treatment_category"), nullable=False
    )
    treatment_status: Mapped[TreatmentStatus] = mapped_column(
        Enum(TreatmentStatus, name="treatment_status"),
        default=TreatmentStatus.planned,
        nullable=False,
    )
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    patient = relationship("Patient", back_populates="tooth_treatments", lazy="joined")


class TreatmentSession(Base, TimestampMixin):
    __tablename__ = "treatment_sessions"
    __table_args__ = (
        UniqueConstraint(
            "tooth_treatment_id", "session_number", name="uq_treatment_sessions_number"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tooth_treatment_id: Mapped[int] = mapped_column(
        ForeignKey("tooth_treatments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_number: Mapped[int] = mapped_column(Integer, nullable=False)
    session_type: Mapped[str] = mapped_column(String(60), nullable=False)
    session_title: Mapped[str] = mapped_column(String(200), nullable=False)
    session_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    session_status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="session_status"),
        default=SessionStatus.planned,
        nullable=False,
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
