"""Workflow engine: definitions, path engine, step execution and runner."""

from license_fulfillment.engine.connectors import (
    Connector,
    ConnectorRegistry,
    CredentialProvider,
    EnvironmentCredentialProvider,
    StaticCredentialProvider,
)
from license_fulfillment.engine.definition import (
    Parallel,
    RetryPolicy,
    Task,
    TaskResource,
    WorkflowDefinition,
)
from license_fulfillment.engine.errors import (
    BranchFailed,
    CallFailed,
    CallTimeout,
    FulfillmentError,
    MissingField,
    StepFailed,
    UnknownConnector,
    WorkflowError,
)
from license_fulfillment.engine.executor import StepExecutor
from license_fulfillment.engine.runner import ExecutionResult, FailureReport, WorkflowRunner

__all__ = [
    "BranchFailed",
    "CallFailed",
    "CallTimeout",
    "Connector",
    "ConnectorRegistry",
    "CredentialProvider",
    "EnvironmentCredentialProvider",
    "ExecutionResult",
    "FailureReport",
    "FulfillmentError",
    "MissingField",
    "Parallel",
    "RetryPolicy",
    "StaticCredentialProvider",
    "StepExecutor",
    "StepFailed",
    "Task",
    "TaskResource",
    "UnknownConnector",
    "WorkflowDefinition",
    "WorkflowError",
    "WorkflowRunner",
]
