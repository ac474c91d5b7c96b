from __future__ import annotations

from typing import Any

from dental_ledger.models.tooth_treatment import TreatmentSession
from dental_ledger.services.errors import NotFoundError
from dental_ledger.services.money import round_money
from dental_ledger.services.repositories import PersistenceGateway

SESSION_FIELDS = (
    "session_type",
    "session_title",
    "session_description",
    "session_date",
    "session_status",
    "duration_minutes",
    "cost",
    "notes",
)


class TreatmentSessionService:
    """Session CRUD scoped to one treatment."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway

    def list_sessions(self, treatment_id: int) -> list[TreatmentSession]:
        self.gateway.treatments.require(treatment_id)
        return self.gateway.sessions.list_by_treatment(treatment_id)

    def create(self, treatment_id: int, data: dict[str, Any]) -> TreatmentSession:
        self.gateway.treatments.require(treatment_id)
        fields = {key: data[key] for key in SESSION_FIELDS if key in data}
        fields["cost"] = round_money(fields.get("cost"))
        return self.gateway.sessions.create(
            tooth_treatment_id=treatment_id,
            session_number=self.gateway.sessions.next_session_number(treatment_id),
            **fields,
        )

    def _require_owned(self, treatment_id: int, session_id: int) -> TreatmentSession:
        session = self.gateway.sessions.get(session_id)
        if session is None or session.tooth_treatment_id != treatment_id:
            raise NotFoundError("treatment_session", session_id)
        return session

    def update(self, treatment_id: int, session_id: int, patch: dict[str, Any]) -> TreatmentSession:
        session = self._require_owned(treatment_id, session_id)
        changes = {key: patch[key] for key in SESSION_FIELDS if key in patch and patch[key] is not None}
        if "cost" in changes:
            changes["cost"] = round_money(changes["cost"])
        if not changes:
            return session
        return self.gateway.sessions.update(session, changes)

    def delete(self, treatment_id: int, session_id: int) -> None:
        session = self._require_owned(treatment_id, session_id)
        self.gateway.sessions.delete(session)

    def delete_sessions(self, session_ids: list[int]) -> int:
        sessions = self.gateway.sessions.get_many(session_ids)
        if sessions:
            self.gateway.sessions.delete_many(sessions)
        return len(session_ids)
