from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

STEP_TREATMENT = "treatment"
STEP_BILLING = "billing"
STEP_LAB_ORDER = "lab_order"
STEP_SESSIONS = "sessions"
STEP_REORDER = "reorder"
STEP_VALIDATION = "validation"

STEP_LABELS = {
    STEP_TREATMENT: "treatment",
    STEP_BILLING: "payment",
    STEP_LAB_ORDER: "lab order",
    STEP_SESSIONS: "treatment sessions",
    STEP_REORDER: "priority order",
    STEP_VALIDATION: "validation",
}


class StepStatus(str, enum.Enum):
    ok = "ok"
    skipped = "skipped"
    failed = "failed"


class ReportOutcome(str, enum.Enum):
    success = "success"
    warning = "warning"
    error = "error"


@dataclass
class StepResult:
    name: str
    status: StepStatus
    required: bool = False
    action: str | None = None
    message: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != StepStatus.failed

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "required": self.required,
            "action": self.action,
            "message": self.message,
            "error_type": self.error_type,
        }


@dataclass
class ReconciliationReport:
    operation: str
    treatment_id: int | None = None
    steps: list[StepResult] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    def succeed(
        self,
        name: str,
        *,
        action: str | None = None,
        required: bool = False,
        message: str | None = None,
    ) -> StepResult:
        return self._add(StepResult(name, StepStatus.ok, required, action, message))

    def skip(self, name: str, message: str | None = None) -> StepResult:
        return self._add(StepResult(name, StepStatus.skipped, False, None, message))

    def fail(self, name: str, error: BaseException, *, required: bool = False) -> StepResult:
        message = getattr(error, "message", None) or str(error)
        return self._add(
            StepResult(name, StepStatus.failed, required, None, message, type(error).__name__)
        )

    def _add(self, step: StepResult) -> StepResult:
        self.steps.append(step)
        return step

    def step(self, name: str) -> StepResult | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    @property
    def failed_steps(self) -> list[StepResult]:
        return [step for step in self.steps if step.status == StepStatus.failed]

    @property
    def outcome(self) -> ReportOutcome:
        failed = self.failed_steps
        if any(step.required for step in failed):
            return ReportOutcome.error
        if failed:
            return ReportOutcome.warning
        return ReportOutcome.success

    def as_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "treatment_id": self.treatment_id,
            "outcome": self.outcome.value,
            "steps": [step.as_dict() for step in self.steps],
            "details": dict(self.details),
        }
