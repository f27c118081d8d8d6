"""Pydantic models for the webhook server."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from license_fulfillment.engine.runner import ExecutionResult


class PurchaseEvent(BaseModel):
    """A transaction event; fields beyond ``data`` are carried through untouched."""

    model_config = ConfigDict(extra="allow")

    event_id: str | None = None
    event_type: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class ApiFailure(BaseModel):
    node: str
    error_kind: str
    message: str
    attempts: int
    error_chain: list[str]
    branch_index: int | None = None


class ApiStep(BaseModel):
    node: str
    status: str
    attempts: int
    finished_at: str
    error_kind: str | None = None
    message: str | None = None


ExecutionStatusName = Literal["ready", "running", "succeeded", "failed"]


class ApiExecution(BaseModel):
    execution_id: str
    status: ExecutionStatusName
    output: Any = None
    failure: ApiFailure | None = None
    steps: list[ApiStep] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ExecutionResult) -> ApiExecution:
        return cls(
            execution_id=result.execution_id,
            status=result.status.value,
            output=result.output,
            failure=ApiFailure.model_validate(result.failure.to_json()) if result.failure else None,
            steps=[ApiStep.model_validate(s.to_json()) for s in result.record.steps],
        )
