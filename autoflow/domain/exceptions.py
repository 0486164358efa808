"""Domain exceptions for the automation engine.

Defines domain-level exceptions that represent business rule violations.
These exceptions are independent of infrastructure concerns. Callers
(an HTTP layer, a job runner) map them to their own error responses
using message, error_code, and details.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from autoflow.domain.value_objects.validation import ValidationError


class AutoflowException(Exception):
    """Base exception for all engine errors.

    All custom exceptions inherit from this class to allow consistent
    error handling and logging.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. workflow_id, node_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(AutoflowException):
    """Raised when input validation fails (e.g. invalid argument or range)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class GraphValidationException(AutoflowException):
    """Raised when a workflow graph fails structural or schema validation.

    Blocks persistence; the graph is never auto-corrected.
    """

    def __init__(self, errors: list[ValidationError]) -> None:
        """Initialize with the validator's error list.

        Args:
            errors: Non-empty list of validation errors, in check order.
        """
        self.errors = list(errors)
        summary = "; ".join(e.message for e in self.errors[:3])
        if len(self.errors) > 3:
            summary += f" (+{len(self.errors) - 3} more)"
        super().__init__(
            f"Workflow graph is invalid: {summary}",
            "GRAPH_VALIDATION_ERROR",
            {"errors": [e.to_dict() for e in self.errors]},
        )


class ConfigurationException(AutoflowException):
    """Raised for unknown node types or handler registry misuse."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, "CONFIGURATION_ERROR", details)


class AuthorizationException(AutoflowException):
    """Raised when the user's role is below the one the operation requires."""

    def __init__(
        self,
        user_id: str | None = None,
        required_role: str | None = None,
        workflow_id: str | None = None,
        organization_id: str | None = None,
        message: str = "Permission denied",
    ) -> None:
        """Initialize with the denied user and required role.

        Args:
            user_id: Acting user.
            required_role: Minimum role the operation needs (e.g. 'editor').
            workflow_id: Workflow the check was made against, if any.
            organization_id: Organization the check was made against, if any.
            message: Human-readable message; default used when role omitted.
        """
        if required_role:
            target = workflow_id or organization_id
            message = f"Permission denied: requires role '{required_role}'"
            if target:
                message += f" on {target}"
        details: dict[str, Any] = {}
        if user_id:
            details["user_id"] = user_id
        if required_role:
            details["required_role"] = required_role
        if workflow_id:
            details["workflow_id"] = workflow_id
        if organization_id:
            details["organization_id"] = organization_id
        super().__init__(message, "PERMISSION_DENIED", details)


class StaleVersionException(AutoflowException):
    """Raised when a save was based on a version that is no longer current (optimistic lock).

    The caller must re-fetch the workflow and retry.
    """

    def __init__(
        self,
        workflow_id: str,
        base_version_id: str | None,
        current_version_id: str | None,
    ) -> None:
        super().__init__(
            "Workflow was updated by another editor; reload and retry.",
            "STALE_VERSION",
            {
                "workflow_id": workflow_id,
                "base_version_id": base_version_id,
                "current_version_id": current_version_id,
            },
        )


class ResourceNotFoundException(AutoflowException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize with resource type and id.

        Args:
            resource_type: Type of resource (e.g. 'workflow', 'workflow_version').
            resource_id: The ID that was not found.
        """
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            "RESOURCE_NOT_FOUND",
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class ExecutionException(AutoflowException):
    """A single node handler failure, isolated to its execution instance.

    Recorded in the execution log; never raised out of the engine.
    """

    def __init__(self, node_id: str, node_type: str, message: str) -> None:
        super().__init__(
            message,
            "EXECUTION_ERROR",
            {"node_id": node_id, "node_type": node_type},
        )


class HandlerException(AutoflowException):
    """Raised by action handlers to report a failed side effect.

    Any exception a handler raises fails the step; this one carries a
    clean message and optional details for the log.
    """

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, "HANDLER_ERROR", details)


class InvalidStateTransitionException(AutoflowException):
    """Raised when an execution instance is moved along an illegal edge of its state machine."""

    def __init__(self, instance_id: str, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Execution {instance_id} cannot move from '{from_status}' to '{to_status}'",
            "INVALID_STATE_TRANSITION",
            {"instance_id": instance_id, "from": from_status, "to": to_status},
        )


class DispatchCapacityException(AutoflowException):
    """Raised when an organization's execution queue is full."""

    def __init__(self, organization_id: str, limit: int) -> None:
        super().__init__(
            f"Organization {organization_id} has reached {limit} queued executions",
            "DISPATCH_CAPACITY",
            {"organization_id": organization_id, "limit": limit},
        )


class SqlNotConfiguredException(AutoflowException):
    """Raised when the sql storage backend is used without a database URL."""

    def __init__(self) -> None:
        super().__init__(
            message="This operation requires a SQL database that is not configured.",
            error_code="SERVICE_UNAVAILABLE",
        )
